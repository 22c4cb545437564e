# signal_wizard/__init__.py
"""
Signal Wizard

Turns a free-text monitoring request into a structured, persisted signal and
rebuilds wizard state from a saved signal for editing.

Quick Start:
    ```python
    from signal_wizard import SignalWizard, StepId

    async with SignalWizard() as wizard:
        wizard.query.set_raw_query("mentions of Acme AND NOT spam")
        await wizard.enhance()
        wizard.continue_()

        signal_id = await wizard.save()
    ```

Editing:
    ```python
    await wizard.start_edit("sig_123", StepId.NOTIFICATION_POLICY)
    ```
"""

__version__ = "0.1.0"

from .client import SignalApiClient
from .config import WizardConfig, get_config, initialize_config
from .errors import (
    EmptyQueryError,
    EnhancementFailedError,
    ErrorKind,
    InvalidTransitionError,
    QueryDepthError,
    RequestSupersededError,
    SignalNotFoundError,
    SignalWizardError,
    StoreReentrancyError,
    SubmissionFailedError,
)
from .filter_mapper import FilterMapper, to_filter_state, to_structured_query
from .grammar import BooleanQueryGrammar
from .models import (
    Clause,
    EntityRef,
    FilterState,
    NotificationPolicy,
    PersistedSignal,
    QueryNode,
    SelectionPolicy,
    SignalDraft,
    StepId,
    WorkflowScope,
)
from .store import SignalDraftStore
from .wizard import SignalWizard

__all__ = [
    "SignalWizard",
    "SignalApiClient",
    "SignalDraftStore",
    "FilterMapper",
    "BooleanQueryGrammar",
    "WizardConfig",
    "get_config",
    "initialize_config",
    "to_filter_state",
    "to_structured_query",
    "Clause",
    "EntityRef",
    "FilterState",
    "NotificationPolicy",
    "PersistedSignal",
    "QueryNode",
    "SelectionPolicy",
    "SignalDraft",
    "StepId",
    "WorkflowScope",
    "ErrorKind",
    "SignalWizardError",
    "EmptyQueryError",
    "EnhancementFailedError",
    "InvalidTransitionError",
    "QueryDepthError",
    "RequestSupersededError",
    "SignalNotFoundError",
    "StoreReentrancyError",
    "SubmissionFailedError",
]

# signal_wizard/errors.py
"""
Signal Wizard Errors

ErrorKind is the user-facing taxonomy attached to wizard steps.
The exception classes are what the pipeline, store and navigator raise.
"""

from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    """Step-level validation conditions."""
    EMPTY_QUERY = "empty_query"
    QUERY_REQUIRED = "query_required"
    QUERY_REQUIRED_FOR_WORKFLOW = "query_required_for_workflow"
    ENHANCEMENT_FAILED = "enhancement_failed"
    PARTIAL_RECONSTRUCTION = "partial_reconstruction"
    SCHEDULE_INCOMPLETE = "schedule_incomplete"
    NO_DELIVERY_METHOD_SELECTED = "no_delivery_method_selected"

    @property
    def is_warning(self) -> bool:
        """Warnings are shown to the user but never block a transition."""
        return self in WARNING_KINDS

    @property
    def message(self) -> str:
        return ERROR_MESSAGES[self]


WARNING_KINDS = frozenset({
    ErrorKind.PARTIAL_RECONSTRUCTION,
    ErrorKind.ENHANCEMENT_FAILED,
})

ERROR_MESSAGES = {
    ErrorKind.EMPTY_QUERY: "Enter a query before enhancing it.",
    ErrorKind.QUERY_REQUIRED: "Describe what you want to monitor.",
    ErrorKind.QUERY_REQUIRED_FOR_WORKFLOW: "This workflow needs a query to run against.",
    ErrorKind.ENHANCEMENT_FAILED: "We couldn't enhance your query. Try again.",
    ErrorKind.PARTIAL_RECONSTRUCTION: "Some filters on this signal may not display correctly.",
    ErrorKind.SCHEDULE_INCOMPLETE: "Pick the days and time this signal should deliver.",
    ErrorKind.NO_DELIVERY_METHOD_SELECTED: "Choose where scheduled updates should be sent.",
}


class SignalWizardError(Exception):
    """Base class for all wizard errors."""

    kind: Optional[ErrorKind] = None

    def __init__(self, message: Optional[str] = None):
        if message is None and self.kind is not None:
            message = self.kind.message
        super().__init__(message or self.__class__.__name__)


class EmptyQueryError(SignalWizardError):
    """Raised before any network call when the query is blank."""
    kind = ErrorKind.EMPTY_QUERY


class EnhancementFailedError(SignalWizardError):
    """The NLP conversion service failed or returned an unusable result."""
    kind = ErrorKind.ENHANCEMENT_FAILED


class RequestSupersededError(SignalWizardError):
    """A newer request replaced this one before it resolved."""


class QueryDepthError(SignalWizardError, ValueError):
    """Structured query nests deeper than the configured limit."""

    def __init__(self, depth: int, limit: int):
        self.depth = depth
        self.limit = limit
        super().__init__(f"Structured query depth {depth} exceeds limit {limit}")


class StoreReentrancyError(SignalWizardError, RuntimeError):
    """A patch was dispatched while another patch was still notifying."""


class InvalidTransitionError(SignalWizardError):
    """The requested step is not reachable from the current draft."""


class SubmissionFailedError(SignalWizardError):
    """Saving the signal to the backend failed."""


class SignalNotFoundError(SignalWizardError, LookupError):
    """The signal being edited does not exist."""

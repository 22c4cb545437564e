# signal_wizard/wizard.py
"""
Signal Wizard

Wires the draft store, step controllers, enhancement pipeline, suggestion
search and edit-mode reconstruction into one object the UI drives.

Usage:
    async with SignalWizard() as wizard:
        wizard.query.set_raw_query("mentions of Acme AND NOT spam")
        await wizard.enhance()
        wizard.continue_()                      # -> ENTITIES
        ...
        signal_id = await wizard.save()

    # Editing an existing signal, straight into the notification step
    await wizard.start_edit("sig_123", StepId.NOTIFICATION_POLICY)
"""

import logging
from typing import Optional

from .client import SignalApiClient
from .config import WizardConfig, get_config
from .enhancement import QueryEnhancementPipeline
from .errors import SignalNotFoundError
from .filter_mapper import FilterMapper
from .grammar import BooleanQueryGrammar
from .models import PersistedSignal, QueryNode, SignalDraft, StepId
from .reconstruct import EditModeReconstructor
from .steps import (
    AlertMethodsStepController,
    AnomalyStepController,
    EntitiesStepController,
    FiltersStepController,
    NotificationPolicyStepController,
    QueryStepController,
    ReviewStepController,
    WizardNavigator,
    build_controllers,
)
from .store import SignalDraftStore
from .submission import SignalSubmitter
from .suggestions import SuggestionSearch

logger = logging.getLogger(__name__)


class SignalWizard:
    """
    Signal creation and edit workflow.

    The store is only written through the step controllers, the enhancement
    pipeline and the suggestion search owned by this object.
    """

    def __init__(
        self,
        client: Optional[SignalApiClient] = None,
        config: Optional[WizardConfig] = None,
    ):
        self.config = config or get_config()
        self._owns_client = client is None
        self.client = client or SignalApiClient.from_config(self.config)

        self.store = SignalDraftStore()
        self.navigator = WizardNavigator(self.store)
        self.mapper = FilterMapper(max_depth=self.config.max_query_depth)

        self.pipeline = QueryEnhancementPipeline(
            self.store,
            self.client.enhancement.enhance,
            max_depth=self.config.max_query_depth,
        )
        self.suggestions = SuggestionSearch(
            self.store,
            self.client.suggestions.suggest,
            delay=self.config.suggestion_debounce,
        )
        self.controllers = build_controllers(
            self.store,
            self.navigator,
            grammar=BooleanQueryGrammar(),
            mapper=self.mapper,
            suggestions=self.suggestions,
            default_volume_field=self.config.default_volume_field,
            default_threshold=self.config.default_anomaly_threshold,
        )
        self.reconstructor = EditModeReconstructor(
            self.store,
            self.navigator,
            self.mapper,
            max_depth=self.config.max_query_depth,
        )
        self.submitter = SignalSubmitter(self.client.signals)

    # -------------------------------------------------------------------------
    # Step access
    # -------------------------------------------------------------------------

    @property
    def draft(self) -> SignalDraft:
        return self.store.get()

    @property
    def current_step(self) -> StepId:
        return self.navigator.current

    @property
    def has_filter_changes(self) -> bool:
        """Whether an edited signal's filters differ from what was loaded."""
        return self.store.get().has_filter_changes

    @property
    def query(self) -> QueryStepController:
        return self.controllers[StepId.QUERY]

    @property
    def entities(self) -> EntitiesStepController:
        return self.controllers[StepId.ENTITIES]

    @property
    def filters(self) -> FiltersStepController:
        return self.controllers[StepId.FILTERS]

    @property
    def anomaly(self) -> AnomalyStepController:
        return self.controllers[StepId.ANOMALY]

    @property
    def notification(self) -> NotificationPolicyStepController:
        return self.controllers[StepId.NOTIFICATION_POLICY]

    @property
    def alert_methods(self) -> AlertMethodsStepController:
        return self.controllers[StepId.ALERT_METHODS]

    @property
    def review(self) -> ReviewStepController:
        return self.controllers[StepId.REVIEW]

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def start_new(self) -> SignalDraft:
        """Begin a fresh signal."""
        self._abandon_requests()
        self.navigator.reset()
        return self.store.reset()

    def edit(self, persisted: PersistedSignal, start_step: StepId = StepId.QUERY) -> SignalDraft:
        """Resume editing an already-fetched signal at ``start_step``."""
        self._abandon_requests()
        return self.reconstructor.reconstruct(persisted, start_step)

    async def start_edit(self, signal_id: str, start_step: StepId = StepId.QUERY) -> SignalDraft:
        """Fetch a saved signal and resume editing it at ``start_step``."""
        persisted = await self.client.signals.get(signal_id)
        if persisted is None:
            raise SignalNotFoundError(f"Signal {signal_id} not found")
        return self.edit(persisted, start_step)

    async def enhance(self, text: Optional[str] = None) -> QueryNode:
        """Enhance ``text`` (or the draft's query) through the NLP service."""
        if text is not None:
            self.query.set_raw_query(text)
        return await self.pipeline.submit(self.store.get().raw_query)

    # -------------------------------------------------------------------------
    # Navigation
    # -------------------------------------------------------------------------

    def continue_(self):
        """Commit the current step; returns the blocking ErrorKind or None."""
        return self.navigator.advance()

    def back(self) -> StepId:
        return self.navigator.back()

    def go_to(self, step: StepId):
        return self.navigator.go_to(step)

    # -------------------------------------------------------------------------
    # Save / cancel
    # -------------------------------------------------------------------------

    async def save(self) -> Optional[str]:
        """
        Validate every reachable step and persist the signal.

        Returns the signal ID, or None when a step blocks saving (its error is
        attached to the draft). The draft is discarded after a successful save.

        Raises:
            SubmissionFailedError: the backend call failed; the draft is kept for retry
        """
        draft = self.store.get()
        blocking = self.review.first_blocking_error(draft)
        if blocking is not None:
            step, kind = blocking
            logger.info(f"Save blocked at {step.value}: {kind.value}")
            self.store.set_error(step, kind)
            return None

        signal_id = await self.submitter.submit(draft)
        self._abandon_requests()
        self.navigator.reset()
        self.store.reset()
        return signal_id

    def cancel(self) -> None:
        """Leave the wizard: ignore in-flight requests and discard the draft."""
        logger.info("Signal wizard cancelled")
        self._abandon_requests()
        self.navigator.reset()
        self.store.reset()

    def _abandon_requests(self) -> None:
        self.pipeline.cancel()
        self.suggestions.cancel()

    async def close(self):
        """Cancel outstanding work and close the API client if we created it."""
        self.cancel()
        if self._owns_client:
            await self.client.close()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

# signal_wizard/reconstruct.py
"""
Edit Mode Reconstruction

Rebuilds wizard state from a saved signal so editing can resume at any step.

The persisted filter query is flattened with the FilterMapper; clauses it does
not understand stay in ``opaque_clauses`` and are written back untouched on
save. Reconstruction never fails because of them, it only flags
PartialReconstruction. Inconsistent saved data (for example a scheduled signal
without a schedule) is flagged on its step the same way, so the user has to
fix it before moving past that step.
"""

import logging
from typing import Dict

from .errors import ErrorKind, QueryDepthError
from .filter_mapper import FilterMapper
from .models import PersistedSignal, SignalDraft, StepId, ensure_query_depth
from .steps import WizardNavigator, reachable_steps
from .store import SignalDraftStore

logger = logging.getLogger(__name__)


class EditModeReconstructor:
    """Seeds the draft store and navigator from a PersistedSignal."""

    def __init__(
        self,
        store: SignalDraftStore,
        navigator: WizardNavigator,
        mapper: FilterMapper,
        max_depth: int = 10,
    ):
        self._store = store
        self._navigator = navigator
        self._mapper = mapper
        self._max_depth = max_depth

    def reconstruct(self, persisted: PersistedSignal, start_step: StepId = StepId.QUERY) -> SignalDraft:
        filters = self._mapper.to_filter_state(persisted.filters)

        enhanced = persisted.enhanced_query
        if enhanced is not None:
            try:
                ensure_query_depth(enhanced, self._max_depth)
            except QueryDepthError as e:
                logger.warning(f"⚠️ Dropping enhanced query of signal {persisted.id}: {e}")
                enhanced = None

        draft = SignalDraft(
            name=persisted.name,
            raw_query=persisted.query,
            enhanced_query=enhanced,
            workflow=persisted.workflow,
            template_id=persisted.template_id,
            entities=persisted.entities,
            filters=filters,
            anomaly_config=persisted.anomaly_config,
            notification_policy=persisted.notification_policy,
            selection_policy=persisted.selection_policy,
            selection_config=persisted.selection_config,
            schedule_policy=persisted.schedule_policy,
            delivery_methods=persisted.delivery_methods,
            is_edit_mode=True,
            signal_id=persisted.id,
            original_filters=filters.model_copy(deep=True),
        )
        draft.validation_errors = self._flag_conditions(draft)

        self._store.replace(draft)
        step = self._navigator.prime(start_step)

        if draft.validation_errors:
            flagged = ", ".join(f"{s.value}={k.value}" for s, k in draft.validation_errors.items())
            logger.warning(f"⚠️ Signal {persisted.id} reconstructed with issues: {flagged}")
        logger.info(f"Editing signal {persisted.id} from step {step.value}")

        return self._store.get()

    def _flag_conditions(self, draft: SignalDraft) -> Dict[StepId, ErrorKind]:
        errors = {}
        for step in reachable_steps(draft):
            if step is StepId.REVIEW:
                continue
            kind = self._navigator.controller(step).check(draft)
            if kind is not None:
                errors[step] = kind
        return errors

# signal_wizard/steps.py
"""
Wizard Steps

One controller per wizard step plus the navigator that moves between them.

Step order:
    QUERY -> ENTITIES -> FILTERS -> ANOMALY -> NOTIFICATION_POLICY -> ALERT_METHODS -> REVIEW

ANOMALY can only be entered when the selection policy needs volume data.
Moving forward requires the current step to validate; moving back never does.

Each controller exposes:
- ``check(draft)``: the step's current condition, warnings included
- ``validate()``: the blocking condition for the live draft, or None
- ``commit()``: finish the step and advance; a no-op returning the error when invalid
"""

import logging
from datetime import date, time
from typing import Callable, Dict, FrozenSet, Iterable, List, Optional, Tuple

from .errors import ErrorKind, InvalidTransitionError
from .filter_mapper import FilterMapper
from .grammar import BooleanQueryGrammar, GrammarResult
from .models import (
    AnomalyConfig,
    DateWindow,
    DeliveryMethod,
    DeliveryType,
    EntityRef,
    EntityType,
    FilterState,
    NewsletterFormat,
    NotificationPolicy,
    QueryNode,
    SchedulePolicy,
    SelectionConfig,
    SelectionPolicy,
    SignalDraft,
    StepId,
    Weekday,
    WorkflowScope,
)
from .store import SignalDraftStore
from .suggestions import SuggestionSearch

logger = logging.getLogger(__name__)


# =============================================================================
# TRANSITION TABLE
# =============================================================================

STEP_ORDER: Tuple[StepId, ...] = tuple(StepId)

# Forward successors in preference order; the first enterable one wins.
FORWARD_TRANSITIONS: Dict[StepId, Tuple[StepId, ...]] = {
    StepId.QUERY: (StepId.ENTITIES,),
    StepId.ENTITIES: (StepId.FILTERS,),
    StepId.FILTERS: (StepId.ANOMALY, StepId.NOTIFICATION_POLICY),
    StepId.ANOMALY: (StepId.NOTIFICATION_POLICY,),
    StepId.NOTIFICATION_POLICY: (StepId.ALERT_METHODS,),
    StepId.ALERT_METHODS: (StepId.REVIEW,),
    StepId.REVIEW: (),
}


def anomaly_enabled(draft: SignalDraft) -> bool:
    return draft.selection_policy is not None and draft.selection_policy.requires_volume_data


STEP_GUARDS: Dict[StepId, Callable[[SignalDraft], bool]] = {
    StepId.ANOMALY: anomaly_enabled,
}


def can_enter(step: StepId, draft: SignalDraft) -> bool:
    guard = STEP_GUARDS.get(step)
    return guard is None or guard(draft)


def next_step(step: StepId, draft: SignalDraft) -> Optional[StepId]:
    for candidate in FORWARD_TRANSITIONS[step]:
        if can_enter(candidate, draft):
            return candidate
    return None


def previous_step(step: StepId, draft: SignalDraft) -> Optional[StepId]:
    index = STEP_ORDER.index(step)
    for candidate in reversed(STEP_ORDER[:index]):
        if can_enter(candidate, draft):
            return candidate
    return None


def reachable_steps(draft: SignalDraft) -> List[StepId]:
    """Steps the wizard walks through for this draft, in order."""
    steps = [StepId.QUERY]
    while (following := next_step(steps[-1], draft)) is not None:
        steps.append(following)
    return steps


# =============================================================================
# NAVIGATOR
# =============================================================================

class WizardNavigator:
    """Tracks the current step and applies the transition table."""

    def __init__(self, store: SignalDraftStore, start: StepId = StepId.QUERY):
        self._store = store
        self._current = start
        self._controllers: Dict[StepId, "StepController"] = {}

    @property
    def current(self) -> StepId:
        return self._current

    @property
    def index(self) -> int:
        return STEP_ORDER.index(self._current)

    def register(self, controller: "StepController") -> None:
        self._controllers[controller.step] = controller

    def controller(self, step: StepId) -> "StepController":
        return self._controllers[step]

    @property
    def current_controller(self) -> "StepController":
        return self._controllers[self._current]

    def prime(self, step: StepId) -> StepId:
        """
        Start at ``step`` without validating earlier steps.

        A step that cannot be entered for this draft falls through to the
        next one that can.
        """
        draft = self._store.get()
        target = step
        while not can_enter(target, draft):
            target = STEP_ORDER[STEP_ORDER.index(target) + 1]
        self._current = target
        logger.debug(f"Wizard primed at {target.value}")
        return target

    def reset(self) -> None:
        self._current = StepId.QUERY

    def advance(self) -> Optional[ErrorKind]:
        """
        Commit the current step.

        On failure the error is attached to the step in the store and
        returned; the step does not change.
        """
        step = self._current
        error = self.current_controller.commit()
        if error is not None:
            self._store.set_error(step, error)
        return error

    def back(self) -> StepId:
        """Go to the previous enterable step; never validates."""
        previous = previous_step(self._current, self._store.get())
        if previous is not None:
            self._current = previous
        return self._current

    def go_to(self, target: StepId) -> Optional[ErrorKind]:
        """
        Jump to ``target``.

        Backward jumps always succeed. Forward jumps commit every step in
        between and stop at the first one that fails, attaching its error.
        """
        draft = self._store.get()
        if not can_enter(target, draft):
            raise InvalidTransitionError(f"Step {target.value} is not available for this signal")

        if STEP_ORDER.index(target) <= self.index:
            self._current = target
            return None

        while self._current != target:
            before = self._current
            error = self.advance()
            if error is not None:
                return error
            if self._current == before:
                raise InvalidTransitionError(f"Step {target.value} is not reachable from {before.value}")
        return None

    def _move_forward_from(self, step: StepId) -> None:
        following = next_step(step, self._store.get())
        if following is not None:
            self._current = following


# =============================================================================
# CONTROLLERS
# =============================================================================

class StepController:
    """Base class for step controllers."""

    step: StepId
    managed_errors: FrozenSet[ErrorKind] = frozenset()

    def __init__(self, store: SignalDraftStore, navigator: WizardNavigator):
        self._store = store
        self._navigator = navigator
        navigator.register(self)
        store.register_resolver(self.step, self.check, self.managed_errors)

    @property
    def draft(self) -> SignalDraft:
        return self._store.get()

    def check(self, draft: SignalDraft) -> Optional[ErrorKind]:
        return None

    def validate(self) -> Optional[ErrorKind]:
        kind = self.check(self._store.get())
        if kind is None or kind.is_warning:
            return None
        return kind

    def commit(self) -> Optional[ErrorKind]:
        if self._navigator.current is not self.step:
            raise InvalidTransitionError(
                f"Cannot commit {self.step.value} while on {self._navigator.current.value}"
            )

        error = self.validate()
        if error is not None:
            logger.info(f"Step {self.step.value} blocked: {error.value}")
            return error

        self.finalize()
        self._navigator._move_forward_from(self.step)
        return None

    def finalize(self) -> None:
        """Normalize the draft when leaving the step forward."""

    def _select(self, policy: SelectionPolicy) -> SignalDraft:
        changes = {"selection_policy": policy}
        if policy.requires_volume_data and self._store.get().anomaly_config is None:
            changes["anomaly_config"] = self._navigator.controller(StepId.ANOMALY).default_config()
        return self._store.patch(changes)


class QueryStepController(StepController):
    step = StepId.QUERY
    managed_errors = frozenset({
        ErrorKind.EMPTY_QUERY,
        ErrorKind.QUERY_REQUIRED,
        ErrorKind.QUERY_REQUIRED_FOR_WORKFLOW,
    })

    def __init__(self, store, navigator, grammar: Optional[BooleanQueryGrammar] = None):
        super().__init__(store, navigator)
        self._grammar = grammar or BooleanQueryGrammar()

    def check(self, draft: SignalDraft) -> Optional[ErrorKind]:
        if draft.raw_query.strip():
            return None
        if draft.workflow is WorkflowScope.SPECIFIC_TEMPLATE:
            return ErrorKind.QUERY_REQUIRED_FOR_WORKFLOW
        return ErrorKind.QUERY_REQUIRED

    def set_raw_query(self, text: str) -> SignalDraft:
        """Update the query text; a changed text invalidates the enhanced query."""
        draft = self._store.get()
        if text == draft.raw_query:
            return draft
        return self._store.patch(raw_query=text, enhanced_query=None)

    def set_name(self, name: str) -> SignalDraft:
        return self._store.patch(name=name)

    def set_workflow(self, workflow: WorkflowScope, template_id: Optional[str] = None) -> SignalDraft:
        if workflow is WorkflowScope.ALL:
            template_id = None
        return self._store.patch(workflow=workflow, template_id=template_id)

    def set_selection_policy(self, policy: SelectionPolicy) -> SignalDraft:
        return self._select(policy)

    def diagnostics(self) -> GrammarResult:
        """Boolean-syntax feedback for the current text; never blocks the step."""
        return self._grammar.validate(self._store.get().raw_query)


class EntitiesStepController(StepController):
    step = StepId.ENTITIES

    def __init__(self, store, navigator, suggestions: Optional[SuggestionSearch] = None):
        super().__init__(store, navigator)
        self._suggestions = suggestions

    def add_entity(self, entity: EntityRef) -> bool:
        """Append an entity; returns False if it is already referenced."""
        draft = self._store.get()
        if any(e.key == entity.key for e in draft.entities):
            return False
        self._store.patch(entities=draft.entities + [entity])
        return True

    def remove_entity(self, entity_id: str, entity_type: EntityType) -> bool:
        draft = self._store.get()
        remaining = [e for e in draft.entities if e.key != (entity_id, entity_type)]
        if len(remaining) == len(draft.entities):
            return False
        self._store.patch(entities=remaining)
        return True

    def search(self, text: str) -> None:
        """Feed a keystroke to the debounced suggestion lookup."""
        if self._suggestions is None:
            return
        self._suggestions.on_input(text, title=self._store.get().name or None)

    def accept_suggestion(self, entity: EntityRef) -> bool:
        added = self.add_entity(entity)
        draft = self._store.get()
        self._store.patch(suggestions=[s for s in draft.suggestions if s.key != entity.key])
        return added


class FiltersStepController(StepController):
    step = StepId.FILTERS
    managed_errors = frozenset({ErrorKind.PARTIAL_RECONSTRUCTION})

    def __init__(self, store, navigator, mapper: Optional[FilterMapper] = None):
        super().__init__(store, navigator)
        self._mapper = mapper or FilterMapper()

    def check(self, draft: SignalDraft) -> Optional[ErrorKind]:
        if draft.is_edit_mode and draft.filters.opaque_clauses:
            return ErrorKind.PARTIAL_RECONSTRUCTION
        return None

    def _update(self, **changes) -> SignalDraft:
        filters = FilterState.model_validate({**self._store.get().filters.model_dump(), **changes})
        return self._store.patch(filters=filters)

    def set_sources(self, included: Optional[Iterable[str]] = None,
                    excluded: Optional[Iterable[str]] = None) -> SignalDraft:
        changes = {}
        if included is not None:
            changes["sources_included"] = list(included)
        if excluded is not None:
            changes["sources_excluded"] = list(excluded)
        return self._update(**changes)

    def set_labels(self, included: Optional[Iterable[str]] = None,
                   excluded: Optional[Iterable[str]] = None) -> SignalDraft:
        changes = {}
        if included is not None:
            changes["labels_included"] = list(included)
        if excluded is not None:
            changes["labels_excluded"] = list(excluded)
        return self._update(**changes)

    def set_locations(self, included: Optional[Iterable[str]] = None,
                      excluded: Optional[Iterable[str]] = None) -> SignalDraft:
        changes = {}
        if included is not None:
            changes["locations_included"] = list(included)
        if excluded is not None:
            changes["locations_excluded"] = list(excluded)
        return self._update(**changes)

    def set_date_window(self, start: Optional[date], end: Optional[date]) -> SignalDraft:
        return self._update(date_window=DateWindow(start=start, end=end))

    def clear_date_window(self) -> SignalDraft:
        return self._update(date_window=None)

    def set_show_reprints(self, show: bool) -> SignalDraft:
        return self._update(show_reprints=show)

    def clear_opaque_clauses(self) -> SignalDraft:
        """Drop filters the editor cannot display."""
        return self._update(opaque_clauses=[])

    def preview_query(self) -> QueryNode:
        """The structured query the current filters will be saved as."""
        return self._mapper.to_structured_query(self._store.get().filters)


class AnomalyStepController(StepController):
    step = StepId.ANOMALY

    def __init__(self, store, navigator, default_volume_field: str = "article_count",
                 default_threshold: float = 2.0):
        super().__init__(store, navigator)
        self._default = AnomalyConfig(volume_field=default_volume_field, threshold=default_threshold)

    def set_anomaly_config(self, volume_field: str, threshold: float) -> SignalDraft:
        return self._store.patch(anomaly_config=AnomalyConfig(volume_field=volume_field, threshold=threshold))

    def clear_anomaly_config(self) -> SignalDraft:
        return self._store.patch(anomaly_config=None)

    def default_config(self) -> AnomalyConfig:
        return self._default.model_copy()

    def finalize(self) -> None:
        if self._store.get().anomaly_config is None:
            self._store.patch(anomaly_config=self.default_config())


class NotificationPolicyStepController(StepController):
    step = StepId.NOTIFICATION_POLICY
    managed_errors = frozenset({ErrorKind.SCHEDULE_INCOMPLETE})

    def check(self, draft: SignalDraft) -> Optional[ErrorKind]:
        if draft.notification_policy is NotificationPolicy.IMMEDIATE:
            return None
        if draft.schedule_policy is None or not draft.schedule_policy.is_complete:
            return ErrorKind.SCHEDULE_INCOMPLETE
        return None

    def set_notification_policy(self, policy: NotificationPolicy) -> SignalDraft:
        return self._store.patch(notification_policy=policy)

    def set_schedule(self, days: Iterable[Weekday], at: time, timezone: str = "UTC") -> SignalDraft:
        return self._store.patch(schedule_policy=SchedulePolicy(days=list(days), time=at, timezone=timezone))

    def clear_schedule(self) -> SignalDraft:
        return self._store.patch(schedule_policy=None)

    def set_selection_policy(self, policy: SelectionPolicy) -> SignalDraft:
        return self._select(policy)

    def set_selection_config(self, newsletter_format: Optional[NewsletterFormat] = None,
                             max_items: Optional[int] = None) -> SignalDraft:
        current = self._store.get().selection_config
        return self._store.patch(selection_config=SelectionConfig(
            newsletter_format=newsletter_format or current.newsletter_format,
            max_items=max_items if max_items is not None else current.max_items,
        ))

    def finalize(self) -> None:
        draft = self._store.get()
        changes = {}
        if draft.notification_policy is NotificationPolicy.IMMEDIATE and draft.schedule_policy is not None:
            changes["schedule_policy"] = None
        if draft.selection_policy is None:
            changes["selection_policy"] = SelectionPolicy.ALL_MATCHES
        elif anomaly_enabled(draft) and draft.anomaly_config is None:
            changes["anomaly_config"] = self._navigator.controller(StepId.ANOMALY).default_config()
        if changes:
            self._store.patch(changes)


class AlertMethodsStepController(StepController):
    step = StepId.ALERT_METHODS
    managed_errors = frozenset({ErrorKind.NO_DELIVERY_METHOD_SELECTED})

    # Scheduled and digest deliveries are sent out, so the dashboard alone is not enough.
    OUTBOUND_POLICIES = frozenset({NotificationPolicy.SCHEDULED, NotificationPolicy.DIGEST})

    def check(self, draft: SignalDraft) -> Optional[ErrorKind]:
        if draft.notification_policy not in self.OUTBOUND_POLICIES:
            return None
        if all(m.type is DeliveryType.DASHBOARD for m in draft.delivery_methods):
            return ErrorKind.NO_DELIVERY_METHOD_SELECTED
        return None

    def add_delivery_method(self, method_type: DeliveryType, config_id: Optional[str] = None) -> SignalDraft:
        draft = self._store.get()
        method = DeliveryMethod(type=method_type, config_id=config_id)
        return self._store.patch(delivery_methods=draft.delivery_methods + [method])

    def remove_delivery_method(self, method_type: DeliveryType, config_id: Optional[str] = None) -> bool:
        """Remove a method; the dashboard method cannot be removed."""
        if method_type is DeliveryType.DASHBOARD:
            logger.warning("⚠️ The dashboard delivery method cannot be removed")
            return False
        draft = self._store.get()
        remaining = [m for m in draft.delivery_methods if m.key != (method_type, config_id)]
        if len(remaining) == len(draft.delivery_methods):
            return False
        self._store.patch(delivery_methods=remaining)
        return True


class ReviewStepController(StepController):
    step = StepId.REVIEW

    def first_blocking_error(self, draft: SignalDraft) -> Optional[Tuple[StepId, ErrorKind]]:
        """The earliest reachable step whose condition blocks saving."""
        for step in reachable_steps(draft):
            if step is StepId.REVIEW:
                continue
            kind = self._navigator.controller(step).check(draft)
            if kind is not None and not kind.is_warning:
                return step, kind
        return None

    def check(self, draft: SignalDraft) -> Optional[ErrorKind]:
        blocking = self.first_blocking_error(draft)
        return blocking[1] if blocking else None


def build_controllers(
    store: SignalDraftStore,
    navigator: WizardNavigator,
    grammar: Optional[BooleanQueryGrammar] = None,
    mapper: Optional[FilterMapper] = None,
    suggestions: Optional[SuggestionSearch] = None,
    default_volume_field: str = "article_count",
    default_threshold: float = 2.0,
) -> Dict[StepId, StepController]:
    """Create and register one controller per step."""
    controllers = [
        QueryStepController(store, navigator, grammar=grammar),
        EntitiesStepController(store, navigator, suggestions=suggestions),
        FiltersStepController(store, navigator, mapper=mapper),
        AnomalyStepController(store, navigator, default_volume_field, default_threshold),
        NotificationPolicyStepController(store, navigator),
        AlertMethodsStepController(store, navigator),
        ReviewStepController(store, navigator),
    ]
    return {c.step: c for c in controllers}

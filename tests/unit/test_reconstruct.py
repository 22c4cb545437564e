# tests/unit/test_reconstruct.py
"""
Unit tests for edit-mode reconstruction.

Tests:
- Saved signals load into the draft with the edit snapshot
- Inconsistent saved data is flagged on its step, never rejected
- Editing can resume at any step
- Save after reload reproduces the persisted filters
"""

from datetime import date, time

import pytest

from signal_wizard.errors import ErrorKind
from signal_wizard.filter_mapper import FilterMapper
from signal_wizard.models import (
    NotificationPolicy,
    PersistedSignal,
    SelectionPolicy,
    StepId,
    Weekday,
)
from signal_wizard.reconstruct import EditModeReconstructor
from signal_wizard.submission import build_payload

from tests.fixtures.data import make_persisted_signal, nested_query


@pytest.fixture
def reconstructor(store, navigator, controllers):
    return EditModeReconstructor(store, navigator, FilterMapper(), max_depth=10)


def persisted(**overrides) -> PersistedSignal:
    return PersistedSignal.model_validate(make_persisted_signal(**overrides))


class TestReconstruct:
    """Tests for EditModeReconstructor.reconstruct."""

    def test_loads_signal_into_draft(self, reconstructor, store, persisted_signal):
        draft = reconstructor.reconstruct(persisted_signal)

        assert draft.is_edit_mode is True
        assert draft.signal_id == "sig_123"
        assert draft.raw_query == "mentions of Acme AND NOT spam"
        assert [e.id for e in draft.entities] == ["acme"]
        assert draft.filters.sources_included == ["reuters.com", "ft.com"]
        assert draft.filters.labels_excluded == ["opinion"]
        assert draft.filters.date_window.start == date(2024, 1, 1)
        assert draft.filters.show_reprints is False
        assert draft.validation_errors == {}
        assert store.get() == draft

    def test_snapshot_of_original_filters(self, reconstructor, controllers, store, persisted_signal):
        reconstructor.reconstruct(persisted_signal)
        assert store.get().has_filter_changes is False

        controllers[StepId.FILTERS].set_labels(included=["earnings"])

        assert store.get().has_filter_changes is True
        assert store.get().original_filters.labels_included == []

    def test_unrecognized_filters_flag_partial_reconstruction(self, reconstructor, navigator):
        data = make_persisted_signal()
        data["filters"]["children"].append({"field": "sentiment", "operator": "gt", "value": 0.5})

        draft = reconstructor.reconstruct(PersistedSignal.model_validate(data))

        assert draft.validation_errors == {StepId.FILTERS: ErrorKind.PARTIAL_RECONSTRUCTION}
        assert len(draft.filters.opaque_clauses) == 1

        # A warning: the user can still move past the filter step
        navigator.go_to(StepId.FILTERS)
        assert navigator.advance() is None

    def test_scheduled_signal_without_schedule(self, reconstructor, controllers, navigator, store):
        signal = persisted(
            notificationPolicy="scheduled",
            schedulePolicy=None,
            deliveryMethods=[
                {"type": "dashboard", "configId": None},
                {"type": "email", "configId": "team"},
            ],
        )

        draft = reconstructor.reconstruct(signal, StepId.NOTIFICATION_POLICY)

        assert draft.validation_errors == {StepId.NOTIFICATION_POLICY: ErrorKind.SCHEDULE_INCOMPLETE}
        assert navigator.current is StepId.NOTIFICATION_POLICY

        assert navigator.advance() is ErrorKind.SCHEDULE_INCOMPLETE
        assert navigator.current is StepId.NOTIFICATION_POLICY

        controllers[StepId.NOTIFICATION_POLICY].set_schedule([Weekday.MONDAY], time(9, 0))
        assert store.get().validation_errors == {}
        assert navigator.advance() is None
        assert navigator.current is StepId.ALERT_METHODS

    def test_every_reachable_step_is_flagged(self, reconstructor, navigator):
        signal = persisted(notificationPolicy="scheduled", schedulePolicy=None)

        draft = reconstructor.reconstruct(signal, StepId.FILTERS)

        assert draft.validation_errors == {
            StepId.NOTIFICATION_POLICY: ErrorKind.SCHEDULE_INCOMPLETE,
            StepId.ALERT_METHODS: ErrorKind.NO_DELIVERY_METHOD_SELECTED,
        }
        assert navigator.go_to(StepId.REVIEW) is ErrorKind.SCHEDULE_INCOMPLETE

    def test_corrupt_schedule_blocks_jump_to_review(self, reconstructor, navigator):
        signal = persisted(notificationPolicy="digest", schedulePolicy=None)
        reconstructor.reconstruct(signal)

        assert navigator.go_to(StepId.REVIEW) is ErrorKind.SCHEDULE_INCOMPLETE
        assert navigator.current is StepId.NOTIFICATION_POLICY

    def test_start_at_any_step(self, reconstructor, navigator, persisted_signal):
        reconstructor.reconstruct(persisted_signal, StepId.ALERT_METHODS)
        assert navigator.current is StepId.ALERT_METHODS

    def test_start_at_unavailable_anomaly_falls_through(self, reconstructor, navigator, persisted_signal):
        reconstructor.reconstruct(persisted_signal, StepId.ANOMALY)
        assert navigator.current is StepId.NOTIFICATION_POLICY

    def test_top_n_signal_keeps_anomaly_config(self, reconstructor, navigator):
        signal = persisted(
            selectionPolicy="top_n",
            anomalyConfig={"volumeField": "mention_count", "threshold": 3.0},
        )

        draft = reconstructor.reconstruct(signal, StepId.ANOMALY)

        assert navigator.current is StepId.ANOMALY
        assert draft.selection_policy is SelectionPolicy.TOP_N
        assert draft.anomaly_config.volume_field == "mention_count"

    def test_too_deep_enhanced_query_dropped(self, reconstructor):
        signal = persisted(enhancedQuery=nested_query(12).model_dump(mode="json", by_alias=True))

        draft = reconstructor.reconstruct(signal)

        assert draft.enhanced_query is None
        assert draft.raw_query == "mentions of Acme AND NOT spam"

    def test_dashboard_method_restored(self, reconstructor):
        signal = persisted(deliveryMethods=[{"type": "slack", "configId": "#alerts"}])

        draft = reconstructor.reconstruct(signal)

        assert [m.type.value for m in draft.delivery_methods] == ["dashboard", "slack"]

    def test_empty_query_flagged(self, reconstructor):
        draft = reconstructor.reconstruct(persisted(query=""))
        assert draft.validation_errors == {StepId.QUERY: ErrorKind.QUERY_REQUIRED}


class TestSaveReloadRoundTrip:
    """A reloaded signal saves back to the same filters and policies."""

    def test_recognized_filters_unchanged(self, reconstructor, persisted_signal):
        draft = reconstructor.reconstruct(persisted_signal)
        payload = build_payload(draft)

        assert payload.filters == persisted_signal.filters

    def test_opaque_filters_written_back(self, reconstructor):
        data = make_persisted_signal()
        unknown = {"op": "OR", "children": [
            {"field": "sentiment", "operator": "gt", "value": 0.5},
            {"field": "source", "operator": "in", "value": ["bloomberg.com"]},
        ]}
        data["filters"]["children"].append(unknown)
        signal = PersistedSignal.model_validate(data)

        payload = build_payload(reconstructor.reconstruct(signal))

        assert payload.filters.children[-1].model_dump(mode="json", by_alias=True) == unknown

    def test_policies_unchanged(self, reconstructor):
        signal = persisted(
            notificationPolicy="scheduled",
            schedulePolicy={"days": ["monday", "friday"], "time": "09:00:00", "timezone": "UTC"},
            deliveryMethods=[
                {"type": "dashboard", "configId": None},
                {"type": "email", "configId": "team"},
            ],
        )

        payload = build_payload(reconstructor.reconstruct(signal))

        assert payload.notification_policy is NotificationPolicy.SCHEDULED
        assert payload.schedule_policy == signal.schedule_policy
        assert payload.delivery_methods == signal.delivery_methods

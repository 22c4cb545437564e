# tests/unit/test_store.py
"""
Unit tests for SignalDraftStore.

Tests:
- Patch semantics and validation
- Read isolation
- Subscriptions, listener failures and re-entrant patches
- Automatic clearing of resolved step errors
"""

import pytest

from signal_wizard.errors import ErrorKind, StoreReentrancyError
from signal_wizard.models import SignalDraft, StepId

from tests.fixtures.data import make_entity


class TestPatch:
    """Tests for patch/reset/replace."""

    def test_patch_updates_fields(self, store):
        draft = store.patch({"raw_query": "acme"}, name="Acme watch")

        assert draft.raw_query == "acme"
        assert draft.name == "Acme watch"
        assert store.get().raw_query == "acme"

    def test_patches_apply_in_order(self, store):
        store.patch(raw_query="first")
        store.patch(raw_query="second")

        assert store.get().raw_query == "second"
        assert store.version == 2

    def test_unknown_field_rejected(self, store):
        with pytest.raises(ValueError, match="Unknown draft fields"):
            store.patch(colour="blue")

    def test_invalid_value_rejected_and_draft_unchanged(self, store):
        store.patch(raw_query="acme")

        with pytest.raises(ValueError):
            store.patch(notification_policy="hourly")

        assert store.get().raw_query == "acme"
        assert store.version == 1

    def test_patch_revalidates_invariants(self, store):
        entity = make_entity()
        store.patch(entities=[entity, entity])
        assert len(store.get().entities) == 1

    def test_reset(self, store):
        store.patch(raw_query="acme")
        draft = store.reset()

        assert draft == SignalDraft()

    def test_replace(self, store):
        store.replace(SignalDraft(raw_query="loaded", is_edit_mode=True, signal_id="sig_1"))

        assert store.get().signal_id == "sig_1"
        assert store.get().is_edit_mode


class TestReadIsolation:
    """get() hands out copies."""

    def test_mutating_a_read_does_not_touch_the_store(self, store):
        store.patch(entities=[make_entity()])

        draft = store.get()
        draft.entities.append(make_entity(id="globex"))
        draft.raw_query = "mutated"

        assert len(store.get().entities) == 1
        assert store.get().raw_query == ""

    def test_initial_draft_is_copied(self):
        from signal_wizard.store import SignalDraftStore

        initial = SignalDraft(raw_query="acme")
        store = SignalDraftStore(initial)
        initial.raw_query = "changed"

        assert store.get().raw_query == "acme"


class TestSubscriptions:
    """Tests for subscribe and listener handling."""

    def test_listener_receives_each_draft(self, store):
        seen = []
        store.subscribe(lambda d: seen.append(d.raw_query))

        store.patch(raw_query="a")
        store.patch(raw_query="b")

        assert seen == ["a", "b"]

    def test_unsubscribe(self, store):
        seen = []
        unsubscribe = store.subscribe(lambda d: seen.append(d.raw_query))

        store.patch(raw_query="a")
        unsubscribe()
        store.patch(raw_query="b")

        assert seen == ["a"]

    def test_unsubscribe_twice_is_harmless(self, store):
        unsubscribe = store.subscribe(lambda d: None)
        unsubscribe()
        unsubscribe()

    def test_failing_listener_does_not_block_others(self, store):
        seen = []

        def broken(draft):
            raise RuntimeError("render failed")

        store.subscribe(broken)
        store.subscribe(lambda d: seen.append(d.raw_query))

        store.patch(raw_query="acme")

        assert seen == ["acme"]
        assert store.get().raw_query == "acme"

    def test_patch_from_listener_is_rejected(self, store):
        rejected = []

        def nested(draft):
            try:
                store.patch(name="nested")
            except StoreReentrancyError as e:
                rejected.append(e)

        store.subscribe(nested)

        store.patch(raw_query="acme")

        assert len(rejected) == 1
        assert store.get().name == ""
        assert store.get().raw_query == "acme"

    def test_reentrant_listener_does_not_fail_outer_patch(self, store):
        seen = []
        store.subscribe(lambda d: store.patch(name="nested"))
        store.subscribe(lambda d: seen.append(d.raw_query))

        result = store.patch(raw_query="acme")

        assert result.raw_query == "acme"
        assert result.name == ""
        assert seen == ["acme"]

    def test_store_usable_after_reentrancy_error(self, store):
        unsubscribe = store.subscribe(lambda d: store.patch(name="nested"))
        store.patch(raw_query="acme")
        unsubscribe()

        store.patch(name="later")
        assert store.get().name == "later"


class TestStepErrors:
    """Tests for set_error/clear_error and automatic resolution."""

    def test_set_and_clear(self, store):
        store.set_error(StepId.QUERY, ErrorKind.ENHANCEMENT_FAILED)
        assert store.get().validation_errors == {StepId.QUERY: ErrorKind.ENHANCEMENT_FAILED}

        store.clear_error(StepId.QUERY)
        assert store.get().validation_errors == {}

    def test_clear_only_matching_kind(self, store):
        store.set_error(StepId.QUERY, ErrorKind.QUERY_REQUIRED)
        store.clear_error(StepId.QUERY, ErrorKind.ENHANCEMENT_FAILED)

        assert store.get().validation_errors[StepId.QUERY] is ErrorKind.QUERY_REQUIRED

    def test_clear_missing_error_does_not_write(self, store):
        store.clear_error(StepId.FILTERS)
        assert store.version == 0

    def test_resolved_error_clears_itself(self, store):
        store.register_resolver(
            StepId.QUERY,
            lambda d: None if d.raw_query else ErrorKind.QUERY_REQUIRED,
            frozenset({ErrorKind.QUERY_REQUIRED}),
        )
        store.set_error(StepId.QUERY, ErrorKind.QUERY_REQUIRED)
        assert StepId.QUERY in store.get().validation_errors

        store.patch(raw_query="acme")

        assert store.get().validation_errors == {}

    def test_unresolved_error_stays(self, store):
        store.register_resolver(
            StepId.QUERY,
            lambda d: None if d.raw_query else ErrorKind.QUERY_REQUIRED,
            frozenset({ErrorKind.QUERY_REQUIRED}),
        )
        store.set_error(StepId.QUERY, ErrorKind.QUERY_REQUIRED)
        store.patch(name="still no query")

        assert store.get().validation_errors[StepId.QUERY] is ErrorKind.QUERY_REQUIRED

    def test_unmanaged_kind_is_not_auto_cleared(self, store):
        store.register_resolver(StepId.QUERY, lambda d: None, frozenset({ErrorKind.QUERY_REQUIRED}))
        store.set_error(StepId.QUERY, ErrorKind.ENHANCEMENT_FAILED)
        store.patch(raw_query="acme")

        assert store.get().validation_errors[StepId.QUERY] is ErrorKind.ENHANCEMENT_FAILED

    def test_errors_on_other_steps_untouched(self, store):
        store.register_resolver(StepId.QUERY, lambda d: None, frozenset({ErrorKind.QUERY_REQUIRED}))
        store.set_error(StepId.NOTIFICATION_POLICY, ErrorKind.SCHEDULE_INCOMPLETE)
        store.patch(raw_query="acme")

        assert store.get().validation_errors == {StepId.NOTIFICATION_POLICY: ErrorKind.SCHEDULE_INCOMPLETE}

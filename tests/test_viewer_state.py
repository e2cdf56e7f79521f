"""
Tests for the state store: atomic mutations, selection invariants and
subscription delivery.
"""

import pytest

from conftest import make_record

from dicom_study_viewer.assembler import assemble_study
from dicom_study_viewer.viewer_state import (
    DEFAULT_VIEWPORT_SETTINGS,
    Pan,
    ViewerState,
    ViewerStateStore,
    ViewportSettings,
)


@pytest.fixture
def study(records):
    return assemble_study(records)


@pytest.fixture
def other_study():
    return assemble_study([
        make_record("Z1", "SZ", 1, study_instance_uid="OTHER"),
        make_record("Z2", "SZ", 2),
    ])


@pytest.fixture
def store():
    return ViewerStateStore()


def recorder(store):
    seen = []
    store.subscribe(seen.append)
    return seen


# ═══════════════════════════════════════════════════════════════════════════════
# DEFAULTS
# ═══════════════════════════════════════════════════════════════════════════════

class TestDefaults:

    def test_initial_state(self, store):
        state = store.state
        assert state == ViewerState()
        assert state.study is None
        assert state.current_series is None
        assert state.current_instance is None
        assert state.active_tool is None
        assert state.tool_active is False
        assert state.loading is False
        assert state.error is None

    def test_default_viewport_settings(self):
        assert DEFAULT_VIEWPORT_SETTINGS == ViewportSettings(
            window_width=400, window_level=50, zoom=1.0, pan=Pan(0, 0)
        )


# ═══════════════════════════════════════════════════════════════════════════════
# STUDY INSTALLATION
# ═══════════════════════════════════════════════════════════════════════════════

class TestSetStudy:

    def test_clears_previous_selection(self, store, study, other_study):
        store.set_study(study)
        store.select_instance(study.series[1].instances[0])
        store.set_study(other_study)
        assert store.state.study is other_study
        assert store.state.current_series is None
        assert store.state.current_instance is None

    def test_reselect_within_same_call(self, store, study):
        first = study.series[0].instances[0]
        store.set_study(study, instance=first)
        assert store.state.current_instance == first
        assert store.state.current_series == study.series[0].id

    def test_foreign_reselection_dropped(self, store, study, other_study):
        foreign = other_study.series[0].instances[0]
        store.set_study(study, series_id="SZ", instance=foreign)
        assert store.state.current_instance is None
        assert store.state.current_series is None

    def test_instance_outside_named_series_dropped(self, store, study):
        s1 = study.get_series("S1")
        store.set_study(study, series_id="S2", instance=s1.instances[0])
        assert store.state.current_series == "S2"
        assert store.state.current_instance is None

    def test_clear_with_none(self, store, study):
        store.set_study(study, instance=study.series[0].instances[0])
        store.set_study(None)
        assert store.state.study is None
        assert store.state.current_instance is None

    def test_single_notification(self, store, study):
        seen = recorder(store)
        store.set_study(study, instance=study.series[0].instances[0])
        assert len(seen) == 1
        assert seen[0].study is study
        assert seen[0].current_instance is not None


# ═══════════════════════════════════════════════════════════════════════════════
# SELECTION / SETTINGS / STATUS
# ═══════════════════════════════════════════════════════════════════════════════

class TestMutations:

    def test_selection_not_validated(self, store, other_study):
        store.set_current_series("does-not-exist")
        store.set_current_instance(other_study.series[0].instances[0])
        assert store.state.current_series == "does-not-exist"
        assert store.state.current_instance.id == "Z1"

    def test_select_instance_sets_series(self, store, study):
        store.set_study(study)
        store.select_instance(study.get_series("S1").instances[2])
        assert store.state.current_series == "S1"
        assert store.current_series_obj().id == "S1"

    def test_viewport_shallow_merge(self, store):
        store.set_viewport_settings(window_width=1500)
        store.set_viewport_settings(pan=(3, -4))
        vp = store.state.viewport
        assert vp.window_width == 1500
        assert vp.window_level == 50
        assert vp.zoom == 1.0
        assert vp.pan == Pan(3, -4)

    def test_viewport_no_clamping(self, store):
        store.set_viewport_settings(zoom=0.0, window_width=-10)
        assert store.state.viewport.zoom == 0.0
        assert store.state.viewport.window_width == -10

    def test_viewport_unknown_field_rejected(self, store):
        with pytest.raises(TypeError):
            store.set_viewport_settings(contrast=3)
        assert store.state.viewport == DEFAULT_VIEWPORT_SETTINGS

    def test_tool_state_independent(self, store):
        store.set_active_tool("Pan")
        assert store.state.active_tool == "Pan"
        assert store.state.tool_active is False
        store.set_tool_active(True)
        assert store.state.tool_active is True

    def test_loading_and_error_not_exclusive(self, store):
        store.set_loading(True)
        store.set_error("boom")
        assert store.state.loading is True
        assert store.state.error == "boom"

    def test_loading_scope_releases_on_error(self, store):
        with pytest.raises(RuntimeError):
            with store.loading_scope():
                assert store.state.loading is True
                raise RuntimeError("fail")
        assert store.state.loading is False

    def test_reset_restores_everything(self, store, study):
        store.set_study(study, instance=study.series[0].instances[0])
        store.set_viewport_settings(zoom=4)
        store.set_active_tool("Zoom")
        store.set_error("x")
        seen = recorder(store)
        store.reset()
        assert store.state == ViewerState()
        assert len(seen) == 1


# ═══════════════════════════════════════════════════════════════════════════════
# SUBSCRIPTION
# ═══════════════════════════════════════════════════════════════════════════════

class TestSubscription:

    def test_full_snapshot_delivered(self, store):
        seen = recorder(store)
        store.set_active_tool("Pan")
        store.set_viewport_settings(zoom=2)
        assert len(seen) == 2
        assert seen[1].active_tool == "Pan"
        assert seen[1].viewport.zoom == 2

    def test_no_notification_without_change(self, store):
        seen = recorder(store)
        store.set_loading(False)
        store.set_viewport_settings(zoom=1.0)
        assert seen == []

    def test_unsubscribe(self, store):
        seen = []
        unsubscribe = store.subscribe(seen.append)
        unsubscribe()
        store.set_loading(True)
        assert seen == []

    def test_raising_listener_does_not_block_others(self, store):
        def bad(state):
            raise ValueError("listener failure")

        store.subscribe(bad)
        seen = recorder(store)
        store.set_loading(True)
        assert len(seen) == 1

    def test_reentrant_mutation_delivered_in_order(self, store):
        order = []

        def first(state):
            order.append(("first", state.loading, state.error))
            if state.loading and state.error is None:
                store.set_error("nested")

        def second(state):
            order.append(("second", state.loading, state.error))

        store.subscribe(first)
        store.subscribe(second)
        store.set_loading(True)

        assert order == [
            ("first", True, None),
            ("second", True, None),
            ("first", True, "nested"),
            ("second", True, "nested"),
        ]

    def test_snapshots_immutable(self, store):
        with pytest.raises(AttributeError):
            store.state.loading = True

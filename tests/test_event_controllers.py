"""
Tests for the canvas input handlers.  Events are plain namespaces carrying
the attributes matplotlib would set.
"""

from types import SimpleNamespace

import pytest

from dicom_study_viewer.assembler import assemble_study
from dicom_study_viewer.event_controllers import TOOL_NAMES, ViewerEventHandler
from dicom_study_viewer.event_controllers.camera_handler import PanEventHandler, ZoomEventHandler
from dicom_study_viewer.event_controllers.stack_scroll_handler import StackScrollEventHandler
from dicom_study_viewer.event_controllers.window_level_handler import WindowLevelEventHandler
from dicom_study_viewer.viewer_state import Pan, ViewerStateStore


class FakeAxes:
    """Axes showing 100 x 100 data units on 200 x 200 display pixels."""

    bbox = SimpleNamespace(width=200.0, height=200.0)

    def get_xlim(self):
        return (0.0, 100.0)

    def get_ylim(self):
        return (100.0, 0.0)


def mouse(x=None, y=None, button=1, inaxes=None, step=0):
    return SimpleNamespace(x=x, y=y, button=button, inaxes=inaxes, step=step)


@pytest.fixture
def study(records):
    return assemble_study(records)


@pytest.fixture
def store(study):
    store = ViewerStateStore()
    store.set_study(study, series_id="S1", instance=study.find_instance("I1"))
    return store


@pytest.fixture
def adapter():
    return SimpleNamespace(ax=FakeAxes())


# ═══════════════════════════════════════════════════════════════════════════════
# WINDOW / LEVEL
# ═══════════════════════════════════════════════════════════════════════════════

class TestWindowLevel:

    def test_drag_changes_width_and_level(self, store, adapter):
        handler = WindowLevelEventHandler(store, adapter)
        assert handler.handle_press(mouse(0, 0))
        handler.handle_motion(mouse(100, 50))
        vp = store.state.viewport
        assert vp.window_width == 500
        assert vp.window_level == pytest.approx(40)

    def test_width_has_floor(self, store, adapter):
        handler = WindowLevelEventHandler(store, adapter)
        handler.handle_press(mouse(0, 0))
        handler.handle_motion(mouse(-1000, 0))
        assert store.state.viewport.window_width == 1.0

    def test_secondary_button_ignored(self, store, adapter):
        handler = WindowLevelEventHandler(store, adapter)
        assert not handler.handle_press(mouse(0, 0, button=3))
        assert not handler.handle_motion(mouse(10, 10))

    def test_release_ends_drag(self, store, adapter):
        handler = WindowLevelEventHandler(store, adapter)
        handler.handle_press(mouse(0, 0))
        handler.handle_release(mouse(0, 0))
        assert not handler.is_dragging()


# ═══════════════════════════════════════════════════════════════════════════════
# PAN / ZOOM
# ═══════════════════════════════════════════════════════════════════════════════

class TestCamera:

    def test_pan_follows_cursor(self, store, adapter):
        handler = PanEventHandler(store, adapter)
        handler.handle_press(mouse(100, 100))
        handler.handle_motion(mouse(120, 90))
        assert store.state.viewport.pan == Pan(-10.0, -5.0)

    def test_pan_starts_from_current_offset(self, store, adapter):
        store.set_viewport_settings(pan=(4, 4))
        handler = PanEventHandler(store, adapter)
        handler.handle_press(mouse(0, 0))
        handler.handle_motion(mouse(0, 0))
        assert store.state.viewport.pan == Pan(4, 4)

    def test_zoom_drag_up(self, store, adapter):
        handler = ZoomEventHandler(store, adapter)
        handler.handle_press(mouse(0, 0))
        handler.handle_motion(mouse(0, 100))
        assert store.state.viewport.zoom == pytest.approx(1.01 ** 100)

    def test_zoom_has_floor(self, store, adapter):
        handler = ZoomEventHandler(store, adapter)
        handler.handle_press(mouse(0, 0))
        handler.handle_motion(mouse(0, -10000))
        assert store.state.viewport.zoom == 0.05


# ═══════════════════════════════════════════════════════════════════════════════
# STACK SCROLL
# ═══════════════════════════════════════════════════════════════════════════════

class TestStackScroll:

    def test_step_forward_and_clamp(self, store, adapter):
        handler = StackScrollEventHandler(store, adapter)
        assert handler.step(1)
        assert store.state.current_instance_id == "I2"
        assert handler.step(5)
        assert store.state.current_instance_id == "I3"
        assert not handler.step(1)

    def test_step_without_instance(self, store, adapter):
        store.set_current_instance(None)
        handler = StackScrollEventHandler(store, adapter)
        handler.step(-1)
        assert store.state.current_instance_id == "I3"

    def test_step_without_series(self, adapter):
        handler = StackScrollEventHandler(ViewerStateStore(), adapter)
        assert not handler.step(1)

    def test_wheel_down_moves_forward(self, store, adapter):
        handler = StackScrollEventHandler(store, adapter)
        handler.handle_scroll(mouse(step=-1))
        assert store.state.current_instance_id == "I2"

    def test_drag_steps_every_ten_pixels(self, store, adapter):
        handler = StackScrollEventHandler(store, adapter)
        handler.handle_press(mouse(0, 100))
        handler.handle_motion(mouse(0, 95))
        assert store.state.current_instance_id == "I1"
        handler.handle_motion(mouse(0, 80))
        assert store.state.current_instance_id == "I3"


# ═══════════════════════════════════════════════════════════════════════════════
# DISPATCHER
# ═══════════════════════════════════════════════════════════════════════════════

class TestDispatcher:

    def test_every_tool_has_a_handler(self, store, adapter):
        events = ViewerEventHandler(store, adapter)
        assert set(events.handlers) == set(TOOL_NAMES)

    def test_no_tool_ignores_drag(self, store, adapter):
        events = ViewerEventHandler(store, adapter)
        events.on_press(mouse(0, 0, inaxes=adapter.ax))
        events.on_motion(mouse(100, 100, inaxes=adapter.ax))
        assert store.state.viewport.window_width == 400

    def test_bound_tool_receives_drag(self, store, adapter):
        events = ViewerEventHandler(store, adapter)
        events.set_tool("WindowLevel")
        events.on_press(mouse(0, 0, inaxes=adapter.ax))
        events.on_motion(mouse(100, 0, inaxes=adapter.ax))
        events.on_release(mouse(100, 0, inaxes=adapter.ax))
        assert store.state.viewport.window_width == 500

    def test_press_outside_surface_ignored(self, store, adapter):
        events = ViewerEventHandler(store, adapter)
        events.set_tool("Pan")
        events.on_press(mouse(0, 0, inaxes=None))
        assert not events.active_handler.is_dragging()

    def test_switching_tool_releases_drag(self, store, adapter):
        events = ViewerEventHandler(store, adapter)
        events.set_tool("Pan")
        events.on_press(mouse(0, 0, inaxes=adapter.ax))
        pan_handler = events.active_handler
        events.set_tool("Zoom")
        assert not pan_handler.is_dragging()

    def test_wheel_scrolls_regardless_of_tool(self, store, adapter):
        events = ViewerEventHandler(store, adapter)
        events.set_tool("Zoom")
        events.on_scroll(mouse(step=-1, inaxes=adapter.ax))
        assert store.state.current_instance_id == "I2"

    def test_wheel_outside_surface_ignored(self, store, adapter):
        events = ViewerEventHandler(store, adapter)
        events.on_scroll(mouse(step=-1, inaxes=None))
        assert store.state.current_instance_id == "I1"

    @pytest.mark.parametrize("key, expected", [
        ("down", "I2"), ("pagedown", "I2"), ("up", "I1"), ("left", "I1"),
    ])
    def test_keys(self, store, adapter, key, expected):
        events = ViewerEventHandler(store, adapter)
        events.on_key_press(SimpleNamespace(key=key))
        assert store.state.current_instance_id == expected

"""camera_handler.py — Pan and zoom drag tools.

Design:
    - Both tools write ``pan`` / ``zoom`` to the store; the surface is
      updated by the sync engine, never by these handlers.
    - Pan converts the mouse delta from display pixels to image pixels
      using the axis scale captured at press time, so the image follows the
      cursor regardless of the current zoom.
"""
from typing import TYPE_CHECKING

from ..viewer_state import Pan

if TYPE_CHECKING:
    from ..rendering import MatplotlibRenderingAdapter
    from ..viewer_state import ViewerStateStore

ZOOM_STEP_PER_PIXEL = 1.01
MIN_ZOOM = 0.05


class PanEventHandler:
    """Drag the image with the primary button."""

    def __init__(
        self, store: "ViewerStateStore", adapter: "MatplotlibRenderingAdapter"
    ) -> None:
        self.store = store
        self.adapter = adapter

        self._start_pos: tuple[float, float] | None = None
        self._initial: Pan | None = None
        self._units_per_px: tuple[float, float] = (1.0, 1.0)

    def is_dragging(self) -> bool:
        return self._start_pos is not None

    def _measure_scale(self) -> tuple[float, float]:
        ax = getattr(self.adapter, "ax", None)
        if ax is None:
            return (1.0, 1.0)
        x0, x1 = ax.get_xlim()
        y0, y1 = ax.get_ylim()
        width = ax.bbox.width or 1.0
        height = ax.bbox.height or 1.0
        return (abs(x1 - x0) / width, abs(y1 - y0) / height)

    def handle_press(self, event) -> bool:
        if event.button != 1 or event.x is None or event.y is None:
            return False
        self._start_pos = (event.x, event.y)
        self._initial = self.store.state.viewport.pan
        self._units_per_px = self._measure_scale()
        return True

    def handle_motion(self, event) -> bool:
        if not self.is_dragging():
            return False
        if event.x is None or event.y is None:
            return True
        dx = event.x - self._start_pos[0]
        dy = event.y - self._start_pos[1]
        sx, sy = self._units_per_px
        # Display y grows upwards, image rows grow downwards.
        self.store.set_viewport_settings(
            pan=Pan(self._initial.x - dx * sx, self._initial.y + dy * sy)
        )
        return True

    def handle_release(self, event) -> bool:
        if not self.is_dragging():
            return False
        self._start_pos = None
        self._initial = None
        return True


class ZoomEventHandler:
    """Vertical drag zooms in (up) or out (down)."""

    def __init__(
        self, store: "ViewerStateStore", adapter: "MatplotlibRenderingAdapter"
    ) -> None:
        self.store = store
        self.adapter = adapter

        self._start_y: float | None = None
        self._initial: float = 1.0

    def is_dragging(self) -> bool:
        return self._start_y is not None

    def handle_press(self, event) -> bool:
        if event.button != 1 or event.y is None:
            return False
        self._start_y = event.y
        self._initial = self.store.state.viewport.zoom
        return True

    def handle_motion(self, event) -> bool:
        if not self.is_dragging():
            return False
        if event.y is None:
            return True
        dy = event.y - self._start_y
        zoom = max(MIN_ZOOM, self._initial * ZOOM_STEP_PER_PIXEL ** dy)
        self.store.set_viewport_settings(zoom=zoom)
        return True

    def handle_release(self, event) -> bool:
        if not self.is_dragging():
            return False
        self._start_y = None
        return True

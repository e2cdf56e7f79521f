"""window_level_handler.py — Window / level drag tool.

Horizontal motion changes the window width, vertical motion the window
centre.  The handler only writes viewport settings to the store; the sync
engine forwards them to the surface.
"""

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ..rendering import MatplotlibRenderingAdapter
    from ..viewer_state import ViewerStateStore

WIDTH_PER_PIXEL = 1.0
LEVEL_PER_PIXEL = 0.2
MIN_WIDTH = 1.0


class WindowLevelEventHandler:
    """Translate a primary-button drag into window width / level changes."""

    def __init__(
        self, store: "ViewerStateStore", adapter: "MatplotlibRenderingAdapter"
    ) -> None:
        self.store = store
        self.adapter = adapter

        self._start_pos: tuple[float, float] | None = None
        self._initial: tuple[float, float] | None = None

    def is_dragging(self) -> bool:
        return self._start_pos is not None

    def handle_press(self, event) -> bool:
        if event.button != 1 or event.x is None or event.y is None:
            return False
        viewport = self.store.state.viewport
        self._start_pos = (event.x, event.y)
        self._initial = (viewport.window_width, viewport.window_level)
        return True

    def handle_motion(self, event) -> bool:
        if not self.is_dragging():
            return False
        if event.x is None or event.y is None:
            return True
        dx = event.x - self._start_pos[0]
        dy = event.y - self._start_pos[1]
        init_w, init_l = self._initial
        self.store.set_viewport_settings(
            window_width=max(MIN_WIDTH, init_w + dx * WIDTH_PER_PIXEL),
            window_level=init_l - dy * LEVEL_PER_PIXEL,
        )
        return True

    def handle_release(self, event) -> bool:
        if not self.is_dragging():
            return False
        self._start_pos = None
        self._initial = None
        return True

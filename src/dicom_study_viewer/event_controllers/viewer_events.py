"""viewer_events.py — Top-level UI event dispatcher for the rendering surface.

Responsibilities:
    - Route primary-button drags to the handler of the bound tool.
    - Mouse wheel and Up / Down / PageUp / PageDown keys always step through
      the current series, whichever tool is bound.

Every handler mutates the state store only; the surface follows through
the sync engine.
"""

from typing import TYPE_CHECKING, Dict

from .camera_handler import PanEventHandler, ZoomEventHandler
from .stack_scroll_handler import StackScrollEventHandler
from .window_level_handler import WindowLevelEventHandler

if TYPE_CHECKING:
    from ..rendering import MatplotlibRenderingAdapter
    from ..viewer_state import ViewerStateStore

TOOL_NAMES = ("Pan", "Zoom", "WindowLevel", "StackScroll")


class ViewerEventHandler:
    """Dispatch matplotlib canvas events to specialised tool handlers."""

    def __init__(
        self, store: "ViewerStateStore", adapter: "MatplotlibRenderingAdapter"
    ) -> None:
        self.store = store
        self.adapter = adapter

        self.stack_handler = StackScrollEventHandler(store, adapter)
        self.handlers: Dict[str, object] = {
            "Pan": PanEventHandler(store, adapter),
            "Zoom": ZoomEventHandler(store, adapter),
            "WindowLevel": WindowLevelEventHandler(store, adapter),
            "StackScroll": self.stack_handler,
        }
        self.active_tool: str | None = None

    # ------------------------------------------------------------------
    # Tool selection
    # ------------------------------------------------------------------
    def set_tool(self, name: str | None) -> None:
        """Make *name* the handler for primary-button drags."""
        handler = self.active_handler
        if handler is not None and handler.is_dragging():
            handler.handle_release(_ReleaseEvent())
        self.active_tool = name

    @property
    def active_handler(self):
        if self.active_tool is None:
            return None
        return self.handlers.get(self.active_tool)

    def _in_surface(self, event) -> bool:
        return event.inaxes is not None and event.inaxes is self.adapter.ax

    # ------------------------------------------------------------------
    # Mouse
    # ------------------------------------------------------------------
    def on_scroll(self, event) -> None:
        """Step one instance per wheel notch."""
        if not self._in_surface(event):
            return
        self.stack_handler.handle_scroll(event)

    def on_press(self, event) -> None:
        handler = self.active_handler
        if handler is None or not self._in_surface(event):
            return
        handler.handle_press(event)

    def on_motion(self, event) -> None:
        handler = self.active_handler
        if handler is None:
            return
        handler.handle_motion(event)

    def on_release(self, event) -> None:
        handler = self.active_handler
        if handler is None:
            return
        handler.handle_release(event)

    # ------------------------------------------------------------------
    # Keyboard
    # ------------------------------------------------------------------
    def on_key_press(self, event) -> None:
        """Navigate instances with Up / Down / PageUp / PageDown keys."""
        delta = 0
        if event.key in ("up", "pageup"):
            delta = -1
        elif event.key in ("down", "pagedown"):
            delta = 1
        if delta:
            self.stack_handler.step(delta)


class _ReleaseEvent:
    """Synthetic release used when switching tools mid-drag."""

    button = 1
    x = None
    y = None

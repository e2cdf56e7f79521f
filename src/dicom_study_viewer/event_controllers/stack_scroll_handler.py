"""stack_scroll_handler.py — Step through the instances of the current series.

The handler changes the store's current instance; loading and displaying
the new image is left to the sync engine.
"""

from typing import TYPE_CHECKING

import numpy as np

if TYPE_CHECKING:
    from ..rendering import MatplotlibRenderingAdapter
    from ..viewer_state import ViewerStateStore

PIXELS_PER_STEP = 10


class StackScrollEventHandler:
    """Mouse wheel, keyboard or vertical drag moves through the stack."""

    def __init__(
        self, store: "ViewerStateStore", adapter: "MatplotlibRenderingAdapter"
    ) -> None:
        self.store = store
        self.adapter = adapter

        self._last_y: float | None = None

    def is_dragging(self) -> bool:
        return self._last_y is not None

    # ------------------------------------------------------------------
    # Stepping
    # ------------------------------------------------------------------
    def step(self, delta: int) -> bool:
        """Move the selection by *delta* instances, clamped to the series.

        Returns:
            ``True`` if the selection changed.
        """
        series = self.store.current_series_obj()
        if series is None or delta == 0:
            return False

        current = self.store.state.current_instance
        idx = series.index_of(current.id) if current is not None else -1
        if idx < 0:
            new_idx = 0 if delta > 0 else len(series) - 1
        else:
            new_idx = max(0, min(idx + delta, len(series) - 1))
        if new_idx == idx:
            return False

        self.store.select_instance(series.instances[new_idx])
        return True

    # ------------------------------------------------------------------
    # Event handlers
    # ------------------------------------------------------------------
    def handle_scroll(self, event) -> bool:
        # Wheel up moves towards the first instance.
        return self.step(-int(np.sign(event.step)))

    def handle_press(self, event) -> bool:
        if event.button != 1 or event.y is None:
            return False
        self._last_y = event.y
        return True

    def handle_motion(self, event) -> bool:
        if not self.is_dragging():
            return False
        if event.y is None:
            return True
        steps = int((self._last_y - event.y) / PIXELS_PER_STEP)
        if steps:
            self._last_y -= steps * PIXELS_PER_STEP
            self.step(steps)
        return True

    def handle_release(self, event) -> bool:
        if not self.is_dragging():
            return False
        self._last_y = None
        return True

"""viewer_state.py — Centralised state management for the study viewer.

Design notes:
    - The state is an immutable :class:`ViewerState` snapshot.  Every
      mutation builds a new snapshot with :func:`dataclasses.replace` and
      swaps it in as a single assignment, so a reader never observes a
      half-applied update.
    - State changes are broadcast through the Observer pattern: register a
      callback with :meth:`ViewerStateStore.subscribe`.  Every listener
      receives the full snapshot on every change; finer-grained reactions
      ("instance changed") are derived by comparing against the previously
      observed snapshot.
    - Mutations made from inside a listener are applied immediately but
      their notifications are queued and delivered after the current round,
      in mutation order.
    - Selections are not validated against the hierarchy, except in
      :meth:`ViewerStateStore.set_study`, which never lets a selection from
      a previous hierarchy survive.
"""

import contextlib
import dataclasses
import logging
from collections import deque
from dataclasses import dataclass
from typing import Any, Callable, Deque, Iterator, List, NamedTuple

from .models import Instance, Series, Study

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Viewport settings
# ---------------------------------------------------------------------------
class Pan(NamedTuple):
    """Pan offset in the surface's coordinate space (image pixels)."""

    x: float = 0.0
    y: float = 0.0


@dataclass(frozen=True)
class ViewportSettings:
    """Display settings forwarded to the rendering surface.

    Attributes:
        window_width: Width of the intensity window (display contrast range).
            Default ``400``.
        window_level: Centre of the intensity window.  Default ``50``.
        zoom:         Magnification factor, ``>= 0``.  Default ``1.0``.
        pan:          Offset from the image centre.  Default ``Pan(0, 0)``.

    No clamping is applied here; the rendering adapter decides how to treat
    out-of-range values.
    """

    window_width: float = 400.0
    window_level: float = 50.0
    zoom: float = 1.0
    pan: Pan = Pan()

    def merged(self, **partial: Any) -> "ViewportSettings":
        """Return a copy with *partial* shallow-merged in.

        Raises:
            TypeError: If *partial* names a field that does not exist.
        """
        unknown = set(partial) - {f.name for f in dataclasses.fields(self)}
        if unknown:
            raise TypeError(f"Unknown viewport setting(s): {sorted(unknown)}")
        if "pan" in partial and not isinstance(partial["pan"], Pan):
            partial["pan"] = Pan(*partial["pan"])
        return dataclasses.replace(self, **partial)


DEFAULT_VIEWPORT_SETTINGS = ViewportSettings()


# ---------------------------------------------------------------------------
# Snapshot
# ---------------------------------------------------------------------------
@dataclass(frozen=True)
class ViewerState:
    """Immutable snapshot of everything the UI and the sync engine observe."""

    study: Study | None = None
    current_series: str | None = None
    current_instance: Instance | None = None
    viewport: ViewportSettings = DEFAULT_VIEWPORT_SETTINGS
    active_tool: str | None = None
    tool_active: bool = False
    loading: bool = False
    error: str | None = None

    @property
    def current_instance_id(self) -> str | None:
        if self.current_instance is None:
            return None
        return self.current_instance.id


Listener = Callable[[ViewerState], None]


# ---------------------------------------------------------------------------
# ViewerStateStore
# ---------------------------------------------------------------------------
class ViewerStateStore:
    """Single source of truth for UI-relevant state.

    Each public mutation is atomic and produces at most one notification
    (none when the resulting snapshot equals the current one).

    Example::

        store = ViewerStateStore()
        unsubscribe = store.subscribe(lambda s: print(s.current_instance_id))
        store.set_study(study)
        store.select_instance(study.series[0].instances[0])
        unsubscribe()
    """

    def __init__(self, initial: ViewerState | None = None) -> None:
        self._state: ViewerState = initial if initial is not None else ViewerState()
        self._listeners: List[Listener] = []
        self._pending: Deque[ViewerState] = deque()
        self._notifying: bool = False

    # =========================================================
    # Observer
    # =========================================================
    @property
    def state(self) -> ViewerState:
        """The current snapshot."""
        return self._state

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register *listener*; return a callable that unregisters it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            self.unsubscribe(listener)

        return unsubscribe

    def unsubscribe(self, listener: Listener) -> None:
        """Unregister *listener*. No-op if not registered."""
        with contextlib.suppress(ValueError):
            self._listeners.remove(listener)

    def _commit(self, new_state: ViewerState) -> None:
        """Swap in *new_state* and notify listeners (queued if re-entrant)."""
        if new_state == self._state:
            return
        self._state = new_state
        self._pending.append(new_state)
        if self._notifying:
            return

        self._notifying = True
        try:
            while self._pending:
                snapshot = self._pending.popleft()
                for listener in list(self._listeners):
                    try:
                        listener(snapshot)
                    except Exception as exc:
                        logger.error("Listener error: %s", exc, exc_info=True)
        finally:
            self._notifying = False

    def _update(self, **changes: Any) -> None:
        self._commit(dataclasses.replace(self._state, **changes))

    # =========================================================
    # Hierarchy
    # =========================================================
    def set_study(
        self,
        study: Study | None,
        *,
        series_id: str | None = None,
        instance: Instance | None = None,
    ) -> None:
        """Install a new hierarchy (``None`` clears it).

        The current selections are cleared unless re-selected through
        *series_id* / *instance* in the same call.  Re-selections that do
        not belong to *study* are dropped.  When only *instance* is given,
        its containing series becomes the current series.
        """
        if study is None:
            if series_id is not None or instance is not None:
                logger.warning("Ignoring selection passed with an empty study.")
            self._update(study=None, current_series=None, current_instance=None)
            return

        if instance is not None and not study.contains(instance):
            logger.warning(
                "Instance %s is not part of study %s; selection cleared.",
                instance.id, study.id,
            )
            instance = None
        if series_id is not None and study.get_series(series_id) is None:
            logger.warning(
                "Series %s is not part of study %s; selection cleared.",
                series_id, study.id,
            )
            series_id = None
        if instance is not None:
            owner = study.series_of(instance.id)
            if series_id is None:
                series_id = owner.id
            elif owner.id != series_id:
                logger.warning(
                    "Instance %s is not in series %s; instance selection cleared.",
                    instance.id, series_id,
                )
                instance = None

        logger.info("Installing study %s", study.id)
        self._update(study=study, current_series=series_id, current_instance=instance)

    def find_series(self, series_id: str | None) -> Series | None:
        """Look up a series of the installed study by identifier."""
        if self._state.study is None:
            return None
        return self._state.study.get_series(series_id)

    def current_series_obj(self) -> Series | None:
        """Return the :class:`Series` named by ``current_series``, or ``None``."""
        return self.find_series(self._state.current_series)

    # =========================================================
    # Selection
    # =========================================================
    def set_current_series(self, series_id: str | None) -> None:
        """Select a series by identifier (not validated)."""
        self._update(current_series=series_id)

    def set_current_instance(self, instance: Instance | None) -> None:
        """Select an instance (not validated)."""
        self._update(current_instance=instance)

    def select_instance(self, instance: Instance | None) -> None:
        """Select *instance* and its containing series in one mutation.

        The series is looked up in the installed study; if it cannot be
        found the current series is left as is.
        """
        series_id = self._state.current_series
        study = self._state.study
        if instance is not None and study is not None:
            owner = study.series_of(instance.id)
            if owner is not None:
                series_id = owner.id
        self._update(current_series=series_id, current_instance=instance)

    # =========================================================
    # Viewport / tools / status
    # =========================================================
    def set_viewport_settings(self, **partial: Any) -> None:
        """Shallow-merge *partial* into the viewport settings.

        Example::

            store.set_viewport_settings(window_width=1500, window_level=-600)
        """
        self._update(viewport=self._state.viewport.merged(**partial))

    def set_active_tool(self, name: str | None) -> None:
        self._update(active_tool=name)

    def set_tool_active(self, is_active: bool) -> None:
        self._update(tool_active=bool(is_active))

    def set_loading(self, loading: bool) -> None:
        self._update(loading=bool(loading))

    def set_error(self, message: str | None) -> None:
        if message:
            logger.error("Viewer error: %s", message)
        self._update(error=message)

    @contextlib.contextmanager
    def loading_scope(self) -> Iterator["ViewerStateStore"]:
        """Hold ``loading=True`` for the duration of the ``with`` block.

        The flag is cleared on every exit path, including exceptions.
        """
        self.set_loading(True)
        try:
            yield self
        finally:
            self.set_loading(False)

    def reset(self) -> None:
        """Restore every field to its default in a single mutation."""
        self._commit(ViewerState())

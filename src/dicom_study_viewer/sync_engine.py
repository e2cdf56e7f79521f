"""sync_engine.py — Keep a rendering surface in lockstep with the state store.

State machine (one per surface lifetime)::

    UNINITIALIZED --attach()--> ATTACHED --instance selected--> LOADING(id)
          ^                        ^                                |
          |                        +------ load finished -----------+
          +--------------------- detach() (from any state)

Supersession:
    A pixel load cannot be cancelled.  Each request is tagged with the
    instance id and the surface generation it was issued for.  When it
    completes, the tag is compared with the store's *current* selection; a
    mismatch (or a surface that has since been detached) discards the
    result, so the surface only ever shows the most recently selected
    instance even when loads complete out of order.
    Viewport changes made while LOADING are held back; they reach the
    surface with the new image, or when the newest request fails, turns out
    stale, or the selection is cleared.

Failure policy:
    Nothing raises out of the store callback.  Adapter failures are written
    to the store's ``error`` field and the engine stays ATTACHED so that the
    next selection can retry.
"""

import asyncio
import contextlib
import enum
import logging
from typing import Any, Iterator, Set

from .errors import ViewerError
from .models import Instance
from .rendering import RenderingAdapter
from .viewer_state import (
    DEFAULT_VIEWPORT_SETTINGS,
    ViewerState,
    ViewerStateStore,
    ViewportSettings,
)

logger = logging.getLogger(__name__)


class EngineState(enum.Enum):
    UNINITIALIZED = "uninitialized"
    ATTACHED = "attached"
    LOADING = "loading"


class ViewportSyncEngine:
    """Reactive bridge between a :class:`ViewerStateStore` and a
    :class:`~dicom_study_viewer.rendering.RenderingAdapter`.

    Args:
        store:   The state store to observe.
        adapter: The rendering collaborator; owned by this engine between
            :meth:`attach` and :meth:`detach`.
        loop:    Event loop that runs pixel loads.  Defaults to the loop
            running at the time a load is requested.

    Example::

        engine = ViewportSyncEngine(store, adapter)
        with engine.attached(host):
            store.select_instance(instance)
            await engine.wait_idle()
    """

    def __init__(
        self,
        store: ViewerStateStore,
        adapter: RenderingAdapter,
        loop: asyncio.AbstractEventLoop | None = None,
    ) -> None:
        self.store = store
        self.adapter = adapter
        self._loop = loop

        self._state = EngineState.UNINITIALIZED
        self._generation: int = 0
        self._request_seq: int = 0
        self._loading_instance_id: str | None = None
        self._tasks: Set[asyncio.Task] = set()
        self._reported_error: str | None = None
        self._applied_viewport: ViewportSettings | None = None

        self._last: ViewerState = store.state
        self._unsubscribe = store.subscribe(self._on_state_changed)

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------
    @property
    def state(self) -> EngineState:
        return self._state

    @property
    def is_attached(self) -> bool:
        return self._state is not EngineState.UNINITIALIZED

    @property
    def loading_instance_id(self) -> str | None:
        """Instance id of the newest outstanding load, or ``None``."""
        return self._loading_instance_id

    # ------------------------------------------------------------------
    # Surface lifecycle
    # ------------------------------------------------------------------
    def attach(self, host: Any) -> None:
        """Create the rendering surface on *host*.

        Re-entrant calls while a surface is attached are no-ops.  The
        current tool is bound and the current instance (if any) is loaded.
        """
        if self.is_attached:
            logger.debug("attach() ignored: surface already attached.")
            return

        try:
            self.adapter.create_surface(host)
        except Exception as exc:
            logger.error("Surface creation failed: %s", exc)
            with contextlib.suppress(Exception):
                self.adapter.destroy()
            self._report(f"Cannot create rendering surface: {exc}")
            return

        self._generation += 1
        self._state = EngineState.ATTACHED
        self._applied_viewport = None
        logger.info("Surface attached (generation %d).", self._generation)

        current = self.store.state
        self._last = current
        if current.active_tool is not None:
            self._bind_tool(current.active_tool)
        if current.current_instance is not None:
            self._request_load(current.current_instance)

    def detach(self) -> None:
        """Destroy the surface exactly once and return to UNINITIALIZED.

        Outstanding loads are left to finish; their results are discarded.
        """
        if not self.is_attached:
            return
        self._state = EngineState.UNINITIALIZED
        self._loading_instance_id = None
        self._generation += 1
        try:
            self.adapter.destroy()
        except Exception as exc:
            logger.error("Surface destroy failed: %s", exc)
        logger.info("Surface detached.")

    @contextlib.contextmanager
    def attached(self, host: Any) -> Iterator["ViewportSyncEngine"]:
        """Attach for the duration of a ``with`` block, detaching on exit."""
        self.attach(host)
        try:
            yield self
        finally:
            self.detach()

    def close(self) -> None:
        """Detach and stop observing the store."""
        self.detach()
        self._unsubscribe()

    async def wait_idle(self) -> None:
        """Wait until every outstanding pixel load has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # ------------------------------------------------------------------
    # Store listener
    # ------------------------------------------------------------------
    def _on_state_changed(self, state: ViewerState) -> None:
        previous, self._last = self._last, state
        if not self.is_attached:
            return
        try:
            if state.active_tool != previous.active_tool:
                self._bind_tool(state.active_tool)

            if state.current_instance != previous.current_instance:
                if state.current_instance is not None:
                    self._request_load(state.current_instance)
                elif self._state is EngineState.LOADING:
                    # Selection cleared: the outstanding load will be discarded.
                    self._state = EngineState.ATTACHED
                    self._loading_instance_id = None
                    self._flush_settings()

            if state.viewport != previous.viewport:
                self._flush_settings()
        except Exception as exc:
            logger.error("Viewport sync failed: %s", exc, exc_info=True)
            self._report(str(exc))

    # ------------------------------------------------------------------
    # Pixel loading
    # ------------------------------------------------------------------
    def _request_load(self, instance: Instance) -> None:
        loop = self._loop
        if loop is None:
            try:
                loop = asyncio.get_running_loop()
            except RuntimeError:
                self._report(f"No event loop to load instance {instance.id}")
                return
        self._request_seq += 1
        task = loop.create_task(
            self._load(instance, self._request_seq, self._generation)
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

        self._state = EngineState.LOADING
        self._loading_instance_id = instance.id
        logger.debug("Loading instance %s (request %d)", instance.id, self._request_seq)

    def _is_current(self, instance: Instance, generation: int) -> bool:
        return (
            self.is_attached
            and generation == self._generation
            and self.store.state.current_instance_id == instance.id
        )

    def _settle(self, seq: int, generation: int) -> bool:
        """Leave LOADING if request *seq* is the newest one; ``True`` if it was."""
        if (
            seq == self._request_seq
            and generation == self._generation
            and self._state is EngineState.LOADING
        ):
            self._state = EngineState.ATTACHED
            self._loading_instance_id = None
            return True
        return False

    async def _load(self, instance: Instance, seq: int, generation: int) -> None:
        try:
            pixels = await self.adapter.load_pixel_data(instance.pixel_ref)
        except asyncio.CancelledError:
            self._settle(seq, generation)
            raise
        except Exception as exc:
            settled = self._settle(seq, generation)
            if self._is_current(instance, generation):
                self._report(f"Failed to load instance {instance.id}: {exc}")
            else:
                logger.debug("Discarding failed stale load of %s: %s", instance.id, exc)
            if settled:
                self._flush_settings()
            return

        settled = self._settle(seq, generation)
        if not self._is_current(instance, generation):
            logger.debug("Discarding stale pixel data for %s", instance.id)
            if settled:
                self._flush_settings()
            return

        try:
            self.adapter.set_image(pixels)
            self._apply_settings(self.store.state.viewport)
        except Exception as exc:
            self._report(f"Failed to display instance {instance.id}: {exc}")
            return
        self._clear_reported_error()
        logger.debug("Displayed instance %s", instance.id)

    # ------------------------------------------------------------------
    # Settings / tools
    # ------------------------------------------------------------------
    def _apply_settings(self, viewport: ViewportSettings) -> None:
        self.adapter.set_window_level(viewport.window_width, viewport.window_level)
        self.adapter.set_zoom(viewport.zoom)
        self.adapter.set_pan(viewport.pan.x, viewport.pan.y)
        self.adapter.render()
        self._applied_viewport = viewport

    def _flush_settings(self) -> None:
        """Push the store's viewport if the surface has not received it yet."""
        viewport = self.store.state.viewport
        if self._state is not EngineState.ATTACHED or viewport == self._applied_viewport:
            return
        try:
            self._apply_settings(viewport)
        except Exception as exc:
            self._report(f"Cannot apply viewport settings: {exc}")

    def _bind_tool(self, name: str | None) -> None:
        try:
            self.adapter.bind_tool(name)
        except ViewerError as exc:
            self._report(str(exc))

    def reset_viewport(self) -> None:
        """Reset the surface camera and restore the default viewport settings."""
        if self.is_attached:
            # The camera no longer matches any settings pushed so far.
            self._applied_viewport = None
            try:
                self.adapter.reset_camera()
            except Exception as exc:
                self._report(f"Cannot reset viewport: {exc}")

        unchanged = self.store.state.viewport == DEFAULT_VIEWPORT_SETTINGS
        self.store.set_viewport_settings(
            window_width=DEFAULT_VIEWPORT_SETTINGS.window_width,
            window_level=DEFAULT_VIEWPORT_SETTINGS.window_level,
            zoom=DEFAULT_VIEWPORT_SETTINGS.zoom,
            pan=DEFAULT_VIEWPORT_SETTINGS.pan,
        )
        # No store change means no notification; push the defaults ourselves.
        if unchanged:
            self._flush_settings()

    # ------------------------------------------------------------------
    # Error reporting
    # ------------------------------------------------------------------
    def _report(self, message: str) -> None:
        self._reported_error = message
        self.store.set_error(message)

    def _clear_reported_error(self) -> None:
        if self._reported_error is not None and self.store.state.error == self._reported_error:
            self.store.set_error(None)
        self._reported_error = None

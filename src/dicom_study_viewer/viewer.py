"""viewer.py — DicomStudyViewer: Tkinter-embeddable study viewer widget.

Architecture:
    - :class:`ViewerStateStore` holds all state; this widget only reads it
      through a subscription and writes to it through its operations.
    - :class:`MatplotlibRenderingAdapter` owns the drawing surface and
      :class:`ViewportSyncEngine` keeps it in step with the store.
    - :class:`AsyncioPump` runs the asyncio loop (file reads, pixel loads)
      from Tk's timer, so both share the main thread.
    - Layout: series/instance tree (left), tool bar, image surface and a
      status line (right).

Interaction:
    - Click an instance in the tree to display it; clicking a series shows
      its first instance.
    - Tool buttons bind Pan / Zoom / WindowLevel / StackScroll to the
      primary mouse button; the wheel and Up / Down keys always scroll.
"""

import asyncio
import logging
import tkinter as tk
from tkinter import ttk
from typing import Any, Dict, Iterable

from .config import ViewerConfig
from .event_controllers import TOOL_NAMES
from .loader import StudyLoader
from .models import Instance, Series, Study
from .rendering import MatplotlibRenderingAdapter
from .sync_engine import ViewportSyncEngine
from .viewer_state import ViewerState, ViewerStateStore

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# AsyncioPump
# ---------------------------------------------------------------------------
class AsyncioPump:
    """Drive an asyncio loop from the Tk event loop.

    Every 16 ms (~60 Hz) the loop runs the callbacks that are ready and
    returns control to Tk.
    """

    def __init__(
        self, widget: tk.Misc, loop: asyncio.AbstractEventLoop, interval: int = 16
    ) -> None:
        self.widget = widget
        self.loop = loop
        self.interval = interval
        self._after_id: str | None = None
        self._schedule()

    def _schedule(self) -> None:
        self._after_id = self.widget.after(self.interval, self.tick)

    def tick(self) -> None:
        """Run one batch of ready asyncio callbacks."""
        self.loop.call_soon(self.loop.stop)
        self.loop.run_forever()
        self._schedule()

    def stop(self) -> None:
        if self._after_id is not None:
            self.widget.after_cancel(self._after_id)
            self._after_id = None


# ---------------------------------------------------------------------------
# DicomStudyViewer
# ---------------------------------------------------------------------------
class DicomStudyViewer(ttk.Frame):
    """Study browser plus single-image viewport for Tkinter.

    Example::

        root = tk.Tk()
        viewer = DicomStudyViewer(root)
        viewer.pack(fill="both", expand=True)
        viewer.load_files(["/path/to/a.dcm", "/path/to/b.dcm"])
        root.mainloop()
    """

    def __init__(
        self,
        parent: tk.Widget,
        store: ViewerStateStore | None = None,
        config: ViewerConfig | None = None,
        loop: asyncio.AbstractEventLoop | None = None,
        fig_kwargs: dict | None = None,
    ) -> None:
        super().__init__(parent)
        self.columnconfigure(1, weight=1)
        self.rowconfigure(0, weight=1)

        self.viewer_config = config if config is not None else ViewerConfig()
        self.store = store if store is not None else ViewerStateStore()
        self.loop = loop if loop is not None else asyncio.new_event_loop()
        self.pump = AsyncioPump(self, self.loop)

        # --- Study browser ---
        self.tree = ttk.Treeview(self, show="tree", selectmode="browse")
        self.tree.grid(row=0, column=0, sticky="ns")
        self.tree.bind("<<TreeviewSelect>>", self._on_tree_select)
        self._tree_items: Dict[str, Series | Instance] = {}
        self._shown_study: Study | None = None

        # --- Right pane: toolbar / surface / status ---
        right = ttk.Frame(self)
        right.grid(row=0, column=1, sticky="nsew")
        right.rowconfigure(1, weight=1)
        right.columnconfigure(0, weight=1)

        toolbar = ttk.Frame(right)
        toolbar.grid(row=0, column=0, sticky="ew")
        self.tool_var = tk.StringVar(value=self.viewer_config.default_tool or "")
        for name in TOOL_NAMES:
            ttk.Radiobutton(
                toolbar,
                text=name,
                value=name,
                variable=self.tool_var,
                command=self._on_tool_button,
            ).pack(side=tk.LEFT)
        ttk.Button(toolbar, text="Reset", command=self.reset_viewport).pack(side=tk.RIGHT)

        self.surface_frame = ttk.Frame(right)
        self.surface_frame.grid(row=1, column=0, sticky="nsew")

        self.status_var = tk.StringVar(value="")
        self.status = ttk.Label(right, textvariable=self.status_var, anchor="w")
        if self.viewer_config.show_loading_indicator:
            self.status.grid(row=2, column=0, sticky="ew")

        # --- Core wiring ---
        self.adapter = MatplotlibRenderingAdapter(
            store=self.store, config=self.viewer_config, fig_kwargs=fig_kwargs
        )
        self.engine = ViewportSyncEngine(self.store, self.adapter, loop=self.loop)
        self.loader = StudyLoader(self.store, config=self.viewer_config)
        self._unsubscribe = self.store.subscribe(self._on_state_changed)

        self.engine.attach(self.surface_frame)
        if self.viewer_config.default_tool:
            self.select_tool(self.viewer_config.default_tool)
        self._on_state_changed(self.store.state)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def load_files(self, paths: Iterable[Any]) -> asyncio.Task:
        """Start loading *paths* as one study; returns the loading task.

        Failures are reported in the status line (through the store).
        """
        task = self.loop.create_task(self.loader.load_files(list(paths)))
        task.add_done_callback(self._on_load_done)
        return task

    def select_tool(self, name: str | None) -> None:
        self.tool_var.set(name or "")
        self.store.set_active_tool(name)
        self.store.set_tool_active(name is not None)

    def reset_viewport(self) -> None:
        self.engine.reset_viewport()

    def clear(self) -> None:
        self.loader.clear_studies()

    def destroy(self) -> None:
        self._unsubscribe()
        self.engine.close()
        self.pump.stop()
        super().destroy()

    # ------------------------------------------------------------------
    # UI callbacks
    # ------------------------------------------------------------------
    def _on_load_done(self, task: asyncio.Task) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Loading failed: %s", exc)

    def _on_tool_button(self) -> None:
        self.select_tool(self.tool_var.get() or None)

    def _on_tree_select(self, event) -> None:
        selection = self.tree.selection()
        if not selection:
            return
        item = self._tree_items.get(selection[0])
        if isinstance(item, Series):
            self.store.select_instance(item.instances[0])
        elif isinstance(item, Instance):
            self.store.select_instance(item)

    # ------------------------------------------------------------------
    # State listener
    # ------------------------------------------------------------------
    def _on_state_changed(self, state: ViewerState) -> None:
        if state.study is not self._shown_study:
            self._populate_tree(state.study)
        self._update_status(state)

    def _populate_tree(self, study: Study | None) -> None:
        self.tree.delete(*self.tree.get_children())
        self._tree_items = {}
        self._shown_study = study
        if study is None:
            return

        root = self.tree.insert(
            "", tk.END, text=f"{study.patient_name or study.patient_id} {study.study_date}",
            open=True,
        )
        for series in study.series:
            series_iid = self.tree.insert(
                root, tk.END,
                text=f"{series.series_number}: {series.description} [{series.modality}]",
            )
            self._tree_items[series_iid] = series
            for instance in series.instances:
                iid = self.tree.insert(series_iid, tk.END, text=f"#{instance.instance_number}")
                self._tree_items[iid] = instance

    def _update_status(self, state: ViewerState) -> None:
        if state.loading:
            text = "Loading..."
        elif state.error:
            text = f"Error: {state.error}"
        elif state.current_instance is not None:
            vp = state.viewport
            text = (
                f"Instance #{state.current_instance.instance_number}  "
                f"W {vp.window_width:.0f} / L {vp.window_level:.0f}  "
                f"zoom {vp.zoom:.2f}"
            )
        else:
            text = ""
        self.status_var.set(text)

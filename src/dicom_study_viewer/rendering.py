"""rendering.py — Rendering adapter contract and its Matplotlib implementation.

Architecture:
    - :class:`RenderingAdapter` is the contract the sync engine talks to.
      Every call is fire-and-forget except :meth:`load_pixel_data`, the only
      awaited boundary.
    - :class:`MatplotlibRenderingAdapter` owns one Matplotlib ``Figure``.
      With a Tk host it is embedded through ``FigureCanvasTkAgg``; with
      ``host=None`` it draws off-screen through ``FigureCanvasAgg``.
    - Redraws go through :class:`DrawingManager`, which coalesces requests
      onto a ~60 FPS timer when a GUI event loop exists.
    - Input events are delegated to
      :class:`~dicom_study_viewer.event_controllers.viewer_events.ViewerEventHandler`,
      which writes to the state store and never draws.

Camera model:
    Pixel ``(col, row)`` coordinates are data coordinates.  The view is
    centred on the image centre plus the pan offset and shows
    ``columns / zoom`` by ``rows / zoom`` pixels.
"""

import asyncio
import logging
from typing import Any, Dict, Protocol, Tuple, runtime_checkable

import numpy as np
import SimpleITK as sitk
from matplotlib.backends.backend_agg import FigureCanvasAgg
from matplotlib.figure import Figure

from .config import ViewerConfig
from .errors import PixelLoadError, SurfaceNotReadyError, ToolBindError
from .event_controllers.viewer_events import TOOL_NAMES, ViewerEventHandler

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Contract
# ---------------------------------------------------------------------------
@runtime_checkable
class RenderingAdapter(Protocol):
    """Operations the sync engine needs from a drawable surface."""

    def create_surface(self, host: Any) -> None: ...

    async def load_pixel_data(self, ref: Any) -> Any: ...

    def set_image(self, pixels: Any) -> None: ...

    def set_window_level(self, width: float, center: float) -> None: ...

    def set_zoom(self, factor: float) -> None: ...

    def set_pan(self, x: float, y: float) -> None: ...

    def bind_tool(self, name: str | None) -> None: ...

    def reset_camera(self) -> None: ...

    def render(self) -> None: ...

    def destroy(self) -> None: ...


# ---------------------------------------------------------------------------
# DrawingManager
# ---------------------------------------------------------------------------
class DrawingManager:
    """Throttled redraw manager.

    With an interactive canvas, requests are flagged and a 16 ms timer
    (~60 FPS) performs at most one ``draw`` per tick.  Off-screen canvases
    have no running timer, so requests are drawn immediately.
    """

    def __init__(self, adapter: "MatplotlibRenderingAdapter", interactive: bool) -> None:
        self.adapter = adapter
        self.interactive = interactive
        self.pending: bool = False
        self.frames_drawn: int = 0
        self.timer = None
        if interactive:
            self.timer = adapter.canvas.new_timer(interval=16)
            self.timer.add_callback(self.process_queue)
            self.timer.start()

    def add_request(self) -> None:
        """Ask for a redraw of the surface."""
        self.pending = True
        if not self.interactive:
            self.process_queue()

    def process_queue(self) -> None:
        """Draw once if any request arrived since the last frame."""
        if not self.pending or self.adapter.canvas is None:
            return
        self.pending = False
        if self.interactive:
            self.adapter.canvas.draw_idle()
        else:
            self.adapter.canvas.draw()
        self.frames_drawn += 1

    def stop(self) -> None:
        if self.timer is not None:
            self.timer.stop()
            self.timer = None


# ---------------------------------------------------------------------------
# MatplotlibRenderingAdapter
# ---------------------------------------------------------------------------
class MatplotlibRenderingAdapter:
    """Single-image Matplotlib surface.

    Example::

        adapter = MatplotlibRenderingAdapter(store=store)
        adapter.create_surface(None)            # off-screen
        pixels = await adapter.load_pixel_data("/path/to/image.dcm")
        adapter.set_image(pixels)
        adapter.set_window_level(400, 50)
        adapter.render()
    """

    def __init__(
        self,
        store=None,
        config: ViewerConfig | None = None,
        fig_kwargs: dict | None = None,
    ) -> None:
        self.store = store
        self.config = config if config is not None else ViewerConfig()
        self._fig_kwargs = dict(fig_kwargs or {})

        self.fig: Figure | None = None
        self.canvas = None
        self.ax = None
        self.host = None
        self.img_display = None
        self.drawing_manager: DrawingManager | None = None
        self.event_handler: ViewerEventHandler | None = None
        self.active_tool: str | None = None

        self._cids: list = []
        self._image_shape: Tuple[int, int] | None = None
        self._window: Tuple[float, float] | None = None  # (width, center)
        self._zoom: float = 1.0
        self._pan: Tuple[float, float] = (0.0, 0.0)

    # ------------------------------------------------------------------
    # Surface lifecycle
    # ------------------------------------------------------------------
    @property
    def is_ready(self) -> bool:
        return self.fig is not None

    def _require_surface(self) -> None:
        if not self.is_ready:
            raise SurfaceNotReadyError("Rendering surface has not been created.")

    def create_surface(self, host: Any) -> None:
        """Create the figure and canvas, embedding into *host* when given.

        Args:
            host: A Tk widget to embed into, or ``None`` for an off-screen
                Agg canvas.
        """
        if self.is_ready:
            logger.debug("Surface already exists; recreating.")
            self.destroy()

        kw: dict = {
            "figsize": self.config.figure_size,
            "facecolor": self.config.background,
        }
        kw.update(self._fig_kwargs)
        self.fig = Figure(**kw)

        interactive = host is not None
        if interactive:
            import tkinter as tk

            from matplotlib.backends.backend_tkagg import FigureCanvasTkAgg

            self.canvas = FigureCanvasTkAgg(self.fig, master=host)
            self.canvas.get_tk_widget().pack(fill=tk.BOTH, expand=True)
        else:
            self.canvas = FigureCanvasAgg(self.fig)
        self.host = host

        self.ax = self.fig.add_subplot(1, 1, 1)
        self._style_axes()
        self.drawing_manager = DrawingManager(self, interactive=interactive)

        if self.store is not None:
            self.event_handler = ViewerEventHandler(self.store, self)
            self._bind_events()
        logger.info("Created %s rendering surface.", "Tk" if interactive else "off-screen")

    def _style_axes(self) -> None:
        self.ax.set_facecolor(self.config.background)
        self.ax.set_axis_off()

    def _bind_events(self) -> None:
        """Connect matplotlib canvas events to the event handler."""
        eh = self.event_handler
        self._cids = [
            self.canvas.mpl_connect("scroll_event", eh.on_scroll),
            self.canvas.mpl_connect("button_press_event", eh.on_press),
            self.canvas.mpl_connect("motion_notify_event", eh.on_motion),
            self.canvas.mpl_connect("button_release_event", eh.on_release),
            self.canvas.mpl_connect("key_press_event", eh.on_key_press),
        ]

    def destroy(self) -> None:
        """Release the figure, canvas and any Tk widget. Safe to repeat."""
        if not self.is_ready:
            return
        for cid in self._cids:
            self.canvas.mpl_disconnect(cid)
        self._cids = []
        if self.drawing_manager is not None:
            self.drawing_manager.stop()
        if self.host is not None:
            self.canvas.get_tk_widget().destroy()

        self.fig = None
        self.canvas = None
        self.ax = None
        self.host = None
        self.img_display = None
        self.drawing_manager = None
        self.event_handler = None
        self.active_tool = None
        self._image_shape = None
        logger.info("Rendering surface destroyed.")

    # ------------------------------------------------------------------
    # Pixel data
    # ------------------------------------------------------------------
    async def load_pixel_data(self, ref: Any) -> np.ndarray:
        """Read the pixels behind *ref* (a file path) in a worker thread.

        Raises:
            SurfaceNotReadyError: If no surface exists.
            PixelLoadError:       If SimpleITK cannot read *ref*.
        """
        self._require_surface()
        return await asyncio.to_thread(read_pixels, ref)

    def set_image(self, pixels: np.ndarray) -> None:
        """Show *pixels*, keeping the current window and camera."""
        self._require_surface()
        data = np.asarray(pixels)
        is_color = data.ndim == 3 and data.shape[-1] in (3, 4)
        if data.ndim == 3 and not is_color:
            data = data[0]

        shape = (int(data.shape[0]), int(data.shape[1]))
        if self.img_display is not None and shape == self._image_shape:
            self.img_display.set_data(data)
        else:
            self.ax.clear()
            self._style_axes()
            self.img_display = self.ax.imshow(
                data,
                cmap=None if is_color else self.config.colormap,
                origin="upper",
                interpolation=self.config.interpolation,
            )
            self._image_shape = shape

        self._apply_clim()
        self._apply_camera()

    # ------------------------------------------------------------------
    # Display properties
    # ------------------------------------------------------------------
    def set_window_level(self, width: float, center: float) -> None:
        """Set the intensity window as width / centre."""
        self._require_surface()
        self._window = (float(width), float(center))
        self._apply_clim()

    def set_zoom(self, factor: float) -> None:
        """Set the magnification factor; non-positive factors are ignored."""
        self._require_surface()
        if factor <= 0:
            logger.warning("Ignoring non-positive zoom factor %s", factor)
            return
        self._zoom = float(factor)
        self._apply_camera()

    def set_pan(self, x: float, y: float) -> None:
        """Offset the view centre by ``(x, y)`` image pixels."""
        self._require_surface()
        self._pan = (float(x), float(y))
        self._apply_camera()

    def reset_camera(self) -> None:
        """Restore zoom 1, no pan, and the image's own intensity range."""
        self._require_surface()
        self._zoom = 1.0
        self._pan = (0.0, 0.0)
        self._window = None
        if self.img_display is not None:
            self.img_display.autoscale()
        self._apply_camera()

    def _apply_clim(self) -> None:
        if self.img_display is None or self._window is None:
            return
        width, center = self._window
        self.img_display.set_clim(center - width / 2, center + width / 2)

    def _apply_camera(self) -> None:
        if self._image_shape is None:
            return
        rows, cols = self._image_shape
        cx = (cols - 1) / 2 + self._pan[0]
        cy = (rows - 1) / 2 + self._pan[1]
        half_w = cols / (2 * self._zoom)
        half_h = rows / (2 * self._zoom)
        self.ax.set_xlim(cx - half_w, cx + half_w)
        # Row 0 at the top
        self.ax.set_ylim(cy + half_h, cy - half_h)

    @property
    def view_limits(self) -> Tuple[Tuple[float, float], Tuple[float, float]]:
        """Current ``(xlim, ylim)`` of the surface."""
        self._require_surface()
        return tuple(self.ax.get_xlim()), tuple(self.ax.get_ylim())

    @property
    def clim(self) -> Tuple[float, float] | None:
        if self.img_display is None:
            return None
        return self.img_display.get_clim()

    # ------------------------------------------------------------------
    # Tools / drawing
    # ------------------------------------------------------------------
    def bind_tool(self, name: str | None) -> None:
        """Route primary-button interaction to tool *name* (``None`` unbinds).

        Raises:
            SurfaceNotReadyError: If no surface exists.
            ToolBindError:        If *name* is not a known tool.
        """
        self._require_surface()
        if name is not None and name not in TOOL_NAMES:
            raise ToolBindError(
                f"Unknown tool '{name}'; expected one of {', '.join(TOOL_NAMES)}"
            )
        self.active_tool = name
        if self.event_handler is not None:
            self.event_handler.set_tool(name)
        logger.debug("Bound tool %s", name)

    def render(self) -> None:
        """Request a redraw of the surface."""
        self._require_surface()
        self.drawing_manager.add_request()

    def state_summary(self) -> Dict[str, Any]:
        """Diagnostic snapshot of what the surface currently shows."""
        return {
            "ready": self.is_ready,
            "image_shape": self._image_shape,
            "window": self._window,
            "zoom": self._zoom,
            "pan": self._pan,
            "tool": self.active_tool,
        }


# ---------------------------------------------------------------------------
# Pixel reading
# ---------------------------------------------------------------------------
def read_pixels(ref: Any) -> np.ndarray:
    """Read *ref* with SimpleITK and return a 2-D (or RGB) NumPy array.

    Multi-frame images yield their first frame.

    Raises:
        PixelLoadError: If the file cannot be read.
    """
    try:
        image = sitk.ReadImage(str(ref))
    except RuntimeError as exc:
        raise PixelLoadError(f"Cannot read pixel data from {ref!r}: {exc}") from exc

    array = sitk.GetArrayFromImage(image)
    components = image.GetNumberOfComponentsPerPixel()
    frame_dims = 3 if components > 1 else 2
    while array.ndim > frame_dims:
        array = array[0]
    logger.debug("Read pixels %s from %r", array.shape, ref)
    return array

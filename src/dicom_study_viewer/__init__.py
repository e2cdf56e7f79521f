"""dicom_study_viewer — study browser and synchronised viewport for DICOM sets.

Public API:
    assemble_study     : Fold instance records into a Study / Series / Instance tree.
    ViewerStateStore   : Centralised state with immutable snapshots (Observer pattern).
    ViewportSyncEngine : Keeps a rendering surface in step with the store.
    StudyLoader        : Reads, extracts and installs a batch of files.
    MetadataExtractor  : pydicom-based header reader.
    MatplotlibRenderingAdapter : Matplotlib surface (Tk-embedded or off-screen).

The Tkinter widget lives in :mod:`dicom_study_viewer.viewer` and is not
imported here, so the core works without a display.

Quick start::

    import tkinter as tk
    from dicom_study_viewer.viewer import DicomStudyViewer

    root = tk.Tk()
    viewer = DicomStudyViewer(root)
    viewer.pack(fill="both", expand=True)
    viewer.load_files(["/path/to/a.dcm", "/path/to/b.dcm"])
    root.mainloop()
"""

from .assembler import assemble_study
from .config import ViewerConfig, load_config
from .errors import (
    EmptyInputError,
    FileReadError,
    MetadataParseError,
    ParseError,
    PixelLoadError,
    SurfaceNotReadyError,
    ToolBindError,
    ViewerError,
)
from .io import MetadataExtractor, collect_dicom_files, read_file_bytes
from .loader import StudyLoader
from .models import Instance, InstanceRecord, Series, Study
from .rendering import MatplotlibRenderingAdapter, RenderingAdapter
from .sync_engine import EngineState, ViewportSyncEngine
from .viewer_state import (
    DEFAULT_VIEWPORT_SETTINGS,
    Pan,
    ViewerState,
    ViewerStateStore,
    ViewportSettings,
)

__all__ = [
    "assemble_study",
    "ViewerConfig",
    "load_config",
    "EmptyInputError",
    "FileReadError",
    "MetadataParseError",
    "ParseError",
    "PixelLoadError",
    "SurfaceNotReadyError",
    "ToolBindError",
    "ViewerError",
    "MetadataExtractor",
    "collect_dicom_files",
    "read_file_bytes",
    "StudyLoader",
    "Instance",
    "InstanceRecord",
    "Series",
    "Study",
    "MatplotlibRenderingAdapter",
    "RenderingAdapter",
    "EngineState",
    "ViewportSyncEngine",
    "DEFAULT_VIEWPORT_SETTINGS",
    "Pan",
    "ViewerState",
    "ViewerStateStore",
    "ViewportSettings",
]

__version__ = "0.1.0"

"""cli.py — Command line entry point.

Usage::

    dicom-study-viewer FILE_OR_DIR [...] [--config viewer.json]
                       [--log-level DEBUG] [--tool WindowLevel] [--summary]

``--summary`` prints the assembled Study / Series / Instance hierarchy and
exits without opening a window.
"""

import argparse
import asyncio
import logging
import sys
from typing import List, Sequence

from .config import ViewerConfig, load_config
from .errors import ViewerError
from .event_controllers import TOOL_NAMES
from .io import collect_dicom_files
from .loader import StudyLoader
from .models import Study
from .viewer_state import ViewerStateStore

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="dicom-study-viewer",
        description="View a set of DICOM files as one study.",
    )
    parser.add_argument("paths", nargs="+", help="DICOM files or folders")
    parser.add_argument("--config", help="JSON configuration file")
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Override the configured log level",
    )
    parser.add_argument("--tool", choices=TOOL_NAMES, help="Tool bound at start-up")
    parser.add_argument(
        "--summary",
        action="store_true",
        help="Print the study hierarchy and exit (no GUI)",
    )
    return parser


def format_study(study: Study) -> List[str]:
    """Render *study* as indented text lines."""
    lines = [
        f"Study {study.id}",
        f"  Patient: {study.patient_name} ({study.patient_id})",
        f"  Date: {study.study_date}  Description: {study.description}",
    ]
    for series in study.series:
        lines.append(
            f"  Series {series.series_number} [{series.modality}] "
            f"{series.description}: {len(series)} instance(s)"
        )
        for instance in series.instances:
            lines.append(
                f"    #{instance.instance_number} {instance.id} "
                f"{instance.rows}x{instance.columns} {instance.photometric_interpretation}"
            )
    return lines


def run_summary(paths: Sequence, config: ViewerConfig) -> int:
    loader = StudyLoader(ViewerStateStore(), config=config)
    try:
        study = asyncio.run(loader.load_files(paths))
    except ViewerError as exc:
        logger.error("%s", exc)
        return 1
    print("\n".join(format_study(study)))
    return 0


def run_gui(paths: Sequence, config: ViewerConfig) -> int:
    import tkinter as tk

    from .viewer import DicomStudyViewer

    root = tk.Tk()
    root.title("DICOM Study Viewer")
    viewer = DicomStudyViewer(root, config=config)
    viewer.pack(fill="both", expand=True)
    viewer.load_files(paths)
    try:
        root.mainloop()
    finally:
        shutdown_loop(viewer.loop)
    return 0


def shutdown_loop(loop: asyncio.AbstractEventLoop) -> None:
    """Cancel and drain every task still pending on *loop*, then close it."""
    pending = asyncio.all_tasks(loop)
    for task in pending:
        task.cancel()
    if pending:
        logger.debug("Cancelling %d pending task(s)", len(pending))
        loop.run_until_complete(asyncio.gather(*pending, return_exceptions=True))
    loop.close()


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    config = load_config(args.config)
    if args.log_level:
        config = config.merged(log_level=args.log_level)
    if args.tool:
        config = config.merged(default_tool=args.tool)

    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    paths = collect_dicom_files(args.paths)
    if not paths:
        logger.error("No DICOM files found in %s", ", ".join(args.paths))
        return 1

    if args.summary:
        return run_summary(paths, config)
    return run_gui(paths, config)


if __name__ == "__main__":
    sys.exit(main())

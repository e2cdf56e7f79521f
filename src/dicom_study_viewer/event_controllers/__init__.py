"""Input handlers that turn canvas events into state-store mutations."""

from .viewer_events import TOOL_NAMES, ViewerEventHandler

__all__ = ["TOOL_NAMES", "ViewerEventHandler"]

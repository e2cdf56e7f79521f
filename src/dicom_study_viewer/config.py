"""config.py — Viewer configuration.

Settings are plain dataclass fields with documented defaults.  A JSON file
may override any subset of them::

    {"max_concurrent_reads": 8, "default_tool": "WindowLevel"}

Unknown keys are ignored (with a warning) so that older files keep loading.
Nothing is ever written back; the viewer holds no state across restarts.
"""

import dataclasses
import json
import logging
import pathlib
from dataclasses import dataclass
from typing import Any, Dict, Tuple

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ViewerConfig:
    """Application-level settings.

    Attributes:
        max_concurrent_reads:   Upper bound on files read/parsed at once
            during a batch load.
        default_tool:           Tool bound when the viewer starts, or
            ``None`` for no tool.
        show_loading_indicator: Whether the host widget shows the
            loading/status line.
        colormap:               Matplotlib colormap for monochrome images.
        interpolation:          Matplotlib ``imshow`` interpolation.
        figure_size:            Figure size in inches ``(width, height)``.
        background:             Surface background colour.
        log_level:              Root log level used by the CLI.
    """

    max_concurrent_reads: int = 3
    default_tool: str | None = None
    show_loading_indicator: bool = True
    colormap: str = "gray"
    interpolation: str = "bilinear"
    figure_size: Tuple[float, float] = (6.0, 6.0)
    background: str = "black"
    log_level: str = "INFO"

    def merged(self, **overrides: Any) -> "ViewerConfig":
        """Return a copy with *overrides* applied; unknown keys are skipped."""
        known = {f.name for f in dataclasses.fields(self)}
        accepted: Dict[str, Any] = {}
        for key, value in overrides.items():
            if key not in known:
                logger.warning("Ignoring unknown config key '%s'", key)
                continue
            if key == "figure_size" and value is not None:
                value = tuple(float(v) for v in value)
            accepted[key] = value
        return dataclasses.replace(self, **accepted)

    def get(self, key: str, default: Any = None) -> Any:
        """Dict-style lookup of a single setting."""
        return getattr(self, key, default)


def load_config(path: Any = None, base: ViewerConfig | None = None) -> ViewerConfig:
    """Load a :class:`ViewerConfig`, merging a JSON file over the defaults.

    Args:
        path: Path to a JSON file (``str`` or ``pathlib.Path``).  ``None`` or
            a missing file yields the defaults.
        base: Configuration to merge into; defaults to ``ViewerConfig()``.

    Returns:
        The merged configuration.  A malformed file is logged and ignored.
    """
    config = base if base is not None else ViewerConfig()
    if path is None:
        return config

    config_path = pathlib.Path(path)
    if not config_path.exists():
        logger.info("Config file %s not found; using defaults.", config_path)
        return config

    try:
        with open(config_path, "r", encoding="utf-8") as f:
            loaded = json.load(f)
    except (OSError, json.JSONDecodeError) as exc:
        logger.error("Could not read config %s: %s", config_path, exc)
        return config

    if not isinstance(loaded, dict):
        logger.error("Config %s must contain a JSON object.", config_path)
        return config

    logger.info("Loaded config from %s", config_path)
    return config.merged(**loaded)

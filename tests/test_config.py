"""
Tests for configuration defaults and JSON overrides.
"""

import dataclasses
import json

import pytest

from dicom_study_viewer.config import ViewerConfig, load_config


def test_defaults():
    config = ViewerConfig()
    assert config.max_concurrent_reads == 3
    assert config.default_tool is None
    assert config.show_loading_indicator is True
    assert config.colormap == "gray"
    assert config.figure_size == (6.0, 6.0)
    assert config.log_level == "INFO"


def test_frozen():
    with pytest.raises(dataclasses.FrozenInstanceError):
        ViewerConfig().colormap = "bone"


def test_merged_skips_unknown_keys():
    config = ViewerConfig().merged(colormap="bone", unknown_option=1)
    assert config.colormap == "bone"
    assert not hasattr(config, "unknown_option")


def test_figure_size_normalised():
    assert ViewerConfig().merged(figure_size=[8, 4]).figure_size == (8.0, 4.0)


def test_get():
    config = ViewerConfig()
    assert config.get("colormap") == "gray"
    assert config.get("missing", 42) == 42


def test_load_without_path():
    assert load_config(None) == ViewerConfig()


def test_load_missing_file(tmp_path):
    assert load_config(tmp_path / "absent.json") == ViewerConfig()


def test_load_overrides(tmp_path):
    path = tmp_path / "viewer.json"
    path.write_text(json.dumps({"max_concurrent_reads": 8, "default_tool": "WindowLevel"}))
    config = load_config(path)
    assert config.max_concurrent_reads == 8
    assert config.default_tool == "WindowLevel"
    assert config.colormap == "gray"


def test_load_merges_over_base(tmp_path):
    path = tmp_path / "viewer.json"
    path.write_text(json.dumps({"background": "white"}))
    config = load_config(path, base=ViewerConfig(colormap="bone"))
    assert config.background == "white"
    assert config.colormap == "bone"


@pytest.mark.parametrize("content", ["{not json", "[1, 2, 3]"])
def test_load_malformed_falls_back(tmp_path, content):
    path = tmp_path / "viewer.json"
    path.write_text(content)
    assert load_config(path) == ViewerConfig()

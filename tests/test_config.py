"""Tests for settings loading."""

from __future__ import annotations

import pytest

from sheetpilot.config import CONFIG_FILENAME, ConfigError, Settings
from sheetpilot.engine.window import VirtualBounds


def test_defaults_when_file_absent(tmp_path):
    settings = Settings.load_from_dir(tmp_path)
    assert settings == Settings()
    assert settings.scan_depth == 20
    assert settings.bounds == VirtualBounds(1000, 100)
    assert settings.snapshot_mode == "new-file"
    assert settings.lock_timeout is None


def test_partial_file_overrides(tmp_path):
    (tmp_path / CONFIG_FILENAME).write_text(
        "scan_depth: 5\nvirtual_rows: 200\nsnapshot_mode: in-place\nlock_timeout: 2.5\n"
    )
    settings = Settings.load_from_dir(tmp_path)
    assert settings.scan_depth == 5
    assert settings.bounds == VirtualBounds(200, 100)
    assert settings.snapshot_mode == "in-place"
    assert settings.lock_timeout == 2.5


def test_empty_file_gives_defaults(tmp_path):
    (tmp_path / CONFIG_FILENAME).write_text("")
    assert Settings.load_from_dir(tmp_path) == Settings()


@pytest.mark.parametrize(
    "text",
    [
        "scan_depth: 0\n",
        "snapshot_mode: sometimes\n",
        "colour: red\n",
        "- just\n- a list\n",
        "scan_depth: [1\n",
    ],
)
def test_invalid_files(tmp_path, text):
    path = tmp_path / CONFIG_FILENAME
    path.write_text(text)
    with pytest.raises(ConfigError) as exc:
        Settings.load(path)
    assert exc.value.code == "ERR_CONFIG_INVALID"

"""Settings loaded from ``sheetpilot.yaml``."""

from __future__ import annotations

from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from sheetpilot.contracts.common import SheetPilotError
from sheetpilot.engine.window import VirtualBounds
from sheetpilot.io.fileops import read_text_safe

CONFIG_FILENAME = "sheetpilot.yaml"


class ConfigError(SheetPilotError):
    code = "ERR_CONFIG_INVALID"


class Settings(BaseModel):
    """Engine settings.  Every key is optional in the YAML file."""

    model_config = ConfigDict(extra="forbid")

    scan_depth: int = Field(default=20, ge=1)
    virtual_rows: int = Field(default=1000, ge=1)
    virtual_columns: int = Field(default=100, ge=1)
    highlight_color: str = "FFFF00"
    snapshot_mode: Literal["new-file", "in-place"] = "new-file"
    storage_root: str = "."
    lock_timeout: float | None = None  # seconds; None disables locking
    events: bool = False

    @property
    def bounds(self) -> VirtualBounds:
        return VirtualBounds(rows=self.virtual_rows, columns=self.virtual_columns)

    @classmethod
    def load(cls, path: str | Path) -> "Settings":
        """Load settings from a YAML file."""
        try:
            data = yaml.safe_load(read_text_safe(path)) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"Cannot parse {path}: {e}") from e
        if not isinstance(data, dict):
            raise ConfigError(f"{path} must contain a mapping.")
        try:
            return cls(**data)
        except ValidationError as e:
            issues = [f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()]
            raise ConfigError(f"Invalid settings in {path}: {'; '.join(issues)}") from e

    @classmethod
    def load_from_dir(cls, directory: str | Path) -> "Settings":
        """Load ``sheetpilot.yaml`` from a directory, or defaults when absent."""
        path = Path(directory) / CONFIG_FILENAME
        if path.exists():
            return cls.load(path)
        return cls()

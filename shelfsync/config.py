"""
Interface to configuration as persisted in .yaml file.
"""
from __future__ import annotations

from datetime import timedelta
from pathlib import Path
from typing import Any, Self

from pydantic import Field, field_validator, model_validator

from .core import SyncSettings
from .yaml_model import BaseYamlModel

__all__ = [
    "Config",
    "STATE_DIRNAME",
]

STATE_DIRNAME = ".shelfsync"
"""
Folder under root folder containing persisted state by default.
"""


class Config(BaseYamlModel):
    """
    Encapsulates configuration for use in CLI.
    """

    root_dir: Path
    """
    Folder containing one subfolder per module.
    """

    catalog_url: str
    """
    URL of canonical catalog.
    """

    state_file: Path | None = None
    """
    File containing persisted state, defaulting to a file under root folder.
    """

    catalog_check_days: float = Field(default=7, gt=0)
    manifest_check_days: float = Field(default=7, gt=0)
    punt_hours: float = Field(default=24, gt=0)

    constrained: bool | None = None
    """
    Force mode of detecting local modification of large folders, or `None`
    to detect from platform.
    """

    heuristic_item_threshold: int = Field(default=2000, ge=0)
    mtime_slack_seconds: float = Field(default=5, ge=0)
    hash_concurrency: int = Field(default=8, gt=0)
    request_timeout: float = Field(default=30, gt=0)

    @field_validator("root_dir", mode="before")
    def validate_root_dir(cls, value: Any) -> Any:
        return _validate_dir(value)

    @model_validator(mode="after")
    def validate_state_file(self) -> Self:
        if self.state_file is None:
            self.state_file = self.root_dir / STATE_DIRNAME / "state.yaml"
        return self

    def to_settings(self) -> SyncSettings:
        """
        Get tunables for synchronization.
        """
        settings = SyncSettings(
            catalog_interval=timedelta(days=self.catalog_check_days),
            manifest_interval=timedelta(days=self.manifest_check_days),
            punt_window=timedelta(hours=self.punt_hours),
            heuristic_item_threshold=self.heuristic_item_threshold,
            mtime_slack=timedelta(seconds=self.mtime_slack_seconds),
            hash_concurrency=self.hash_concurrency,
        )

        if self.constrained is not None:
            settings.constrained = self.constrained

        return settings


def _validate_dir(value: Any) -> Any:
    """
    Coerce to path and ensure it exists.
    """
    if not isinstance(value, (str, Path)):
        # let pydantic handle type error
        return value

    path = Path(value) if isinstance(value, str) else value

    if not path.is_dir():
        raise ValueError(f"folder does not exist: '{path}'")

    return path

"""
Data model of the catalog aggregate and its persistence.
"""
from __future__ import annotations

import asyncio
import logging
import re
from logging import Logger
from pathlib import Path, PureWindowsPath
from typing import Any

import pydantic
from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
)

from ..yaml_model import BaseYamlModel
from .exceptions import FilesystemError, ValidationError

__all__ = [
    "check_module_name",
    "SubmoduleManifest",
    "ModuleManifest",
    "InstalledRecord",
    "CatalogState",
    "StateStore",
    "parse_catalog",
    "parse_manifest",
]

VERSION_PATTERN = re.compile(r"^\d+\.\d+\.\d+$")
"""
Module versions are of the form MAJOR.MINOR.PATCH.
"""


def check_module_name(name: str) -> str:
    """
    Ensure module name can be used as the name of a folder directly under
    the root folder, raising `ValueError` otherwise.
    """
    if name in ("", ".", ".."):
        raise ValueError(f"invalid module name '{name}'")

    if (
        any(c in name for c in ("/", "\\", "\0"))
        or PureWindowsPath(name).drive
    ):
        raise ValueError(
            f"module name must not contain a path, got '{name}'"
        )

    return name


class SubmoduleManifest(BaseModel):
    """
    Independently subscribable subset of a module's files.
    """

    name: str
    paths: list[str]
    """
    Paths owned by this submodule, relative to the module folder.
    """

    requires: dict[str, Any]


class ModuleManifest(BaseModel):
    """
    Metadata describing the latest release of a module, as published in
    its manifest JSON.
    """

    model_config = ConfigDict(populate_by_name=True)

    module_name: str = Field(
        validation_alias=AliasChoices("module_name", "folder"),
        serialization_alias="folder",
    )
    info_url: str = Field(
        validation_alias=AliasChoices("info_url", "more_info"),
        serialization_alias="more_info",
    )
    description: str
    version: str
    requires: dict[str, Any]
    """
    Mapping of required module names to a trie of required subpaths, where
    each level is a mapping of path segment to the next level. An empty
    mapping means the whole module is required.
    """

    archive_url: str = Field(
        validation_alias=AliasChoices("archive_url", "zip"),
        serialization_alias="zip",
    )
    submodules: list[SubmoduleManifest] | None = None

    @field_validator("module_name")
    @classmethod
    def validate_module_name(cls, value: str) -> str:
        return check_module_name(value)

    @field_validator("version")
    @classmethod
    def validate_version(cls, value: str) -> str:
        if not VERSION_PATTERN.match(value):
            raise ValueError(
                f"version must be in MAJOR.MINOR.PATCH format, got '{value}'"
            )
        return value

    def get_submodule(self, name: str) -> SubmoduleManifest | None:
        return next(
            (s for s in self.submodules or [] if s.name == name), None
        )


class InstalledRecord(BaseModel):
    """
    Record of a module's last successful install.
    """

    version: str
    content_hash: str
    """
    Digest returned by the install, used as baseline to detect local
    modification.
    """

    excluded: list[str] = Field(default_factory=list)
    """
    Sorted names of submodules which were opted out, and hence not
    written, at install time.
    """

    installed_at: int | None = None
    """
    Epoch milliseconds of install.
    """


class CatalogState(BaseYamlModel):
    """
    Aggregate of all persisted synchronization state. Components mutate it
    in place and checkpoint it via {obj}`StateStore.save`.
    """

    canonical: dict[str, str] = Field(default_factory=dict)
    """
    Centrally published mapping of module name to manifest URL.
    """

    user_added: dict[str, str] = Field(default_factory=dict)
    """
    Mapping of module name to manifest URL for modules registered by the
    user.
    """

    manifests: dict[str, ModuleManifest] = Field(default_factory=dict)
    installed: dict[str, InstalledRecord] = Field(default_factory=dict)

    timestamps: dict[str, int] = Field(default_factory=dict)
    """
    Mapping of update id to epoch milliseconds of last success.
    """

    punts: dict[str, int] = Field(default_factory=dict)
    """
    Mapping of punt id to epoch milliseconds of the user's last deferral.
    """

    opt_outs: list[str] = Field(default_factory=list)
    """
    Opted-out module names and `"Module/Submodule"` names.
    """

    def module_names(self) -> list[str]:
        """
        Get names of all registered modules, canonical first.
        """
        return list(self.canonical) + [
            n for n in self.user_added if n not in self.canonical
        ]

    def registered_url(self, name: str) -> str | None:
        return self.canonical.get(name) or self.user_added.get(name)

    def is_canonical(self, name: str) -> bool:
        return name in self.canonical


class StateStore:
    """
    Persists {obj}`CatalogState` to a .yaml file.
    """

    path: Path
    _logger: Logger

    def __init__(self, path: Path, *, logger: Logger | None = None):
        self.path = path
        self._logger = logger or logging.getLogger()

    def load(self) -> CatalogState:
        """
        Load state, or get empty state if it was never saved.
        """
        if not self.path.exists():
            self._logger.debug(f"No state at '{self.path}', starting fresh")
            return CatalogState()

        return CatalogState.load_yaml(self.path)

    async def save(self, state: CatalogState):
        """
        Checkpoint state.
        """
        try:
            await asyncio.to_thread(self._write, state)
        except OSError as e:
            raise FilesystemError(
                f"Failed to save state to '{self.path}': {e}"
            ) from e

    def _write(self, state: CatalogState):
        self.path.parent.mkdir(parents=True, exist_ok=True)
        state.dump_yaml(self.path)


def parse_manifest(data: Any) -> ModuleManifest:
    """
    Validate manifest as fetched.
    """
    if not isinstance(data, dict):
        raise ValidationError(
            [f"Manifest must be an object, got {type(data).__name__}"]
        )

    try:
        return ModuleManifest.model_validate(data)
    except pydantic.ValidationError as e:
        raise ValidationError(_format_errors(e)) from e


def parse_catalog(data: Any) -> dict[str, str]:
    """
    Validate canonical catalog as fetched.
    """
    if not isinstance(data, dict):
        raise ValidationError(
            [f"Catalog must be an object, got {type(data).__name__}"]
        )

    errors: list[str] = []

    for name, url in data.items():
        try:
            check_module_name(name)
        except ValueError as e:
            errors.append(f"Catalog entry '{name}': {e}")

        if not isinstance(url, str):
            errors.append(
                f"Catalog entry '{name}' must map to a URL string"
            )

    if len(errors):
        raise ValidationError(errors)

    return dict(data)


def _format_errors(error: pydantic.ValidationError) -> list[str]:
    return [
        f"{'.'.join(str(l) for l in e['loc'])}: {e['msg']}"
        for e in error.errors()
    ]

"""
Context shared by synchronization components.
"""
from __future__ import annotations

import sys
from dataclasses import dataclass, field
from datetime import timedelta
from logging import Logger
from pathlib import Path

from .exceptions import ConsistencyError
from .fetch import Fetcher
from .interaction import Prompter
from .staleness import Clock
from .state import CatalogState, StateStore, check_module_name
from .subscriptions import SubscriptionRegistry

__all__ = [
    "CONSTRAINED_PLATFORMS",
    "SyncContext",
    "SyncSettings",
    "manifest_update_id",
    "module_update_id",
]

CONSTRAINED_PLATFORMS = {"ios", "android"}
"""
Platforms on which hashing large folders is too costly.
"""


def manifest_update_id(module: str) -> str:
    return f"{module} Manifest"


def module_update_id(module: str) -> str:
    return f"{module} Folder"


@dataclass(kw_only=True)
class SyncSettings:
    """
    Tunables of synchronization.
    """

    catalog_interval: timedelta = timedelta(days=7)
    manifest_interval: timedelta = timedelta(days=7)

    punt_window: timedelta = timedelta(hours=24)
    """
    How long a declined overwrite suppresses asking again.
    """

    constrained: bool = field(
        default_factory=lambda: sys.platform in CONSTRAINED_PLATFORMS
    )
    """
    Whether to detect local modification of large folders by modification
    time rather than by fingerprint.
    """

    heuristic_item_threshold: int = 2000
    """
    Number of files above which a folder is considered large.
    """

    mtime_slack: timedelta = timedelta(seconds=5)
    hash_concurrency: int = 8


@dataclass(kw_only=True)
class SyncContext:
    """
    Handles to state and collaborators, passed to each component.
    """

    state: CatalogState
    store: StateStore
    fetcher: Fetcher
    prompter: Prompter
    root_dir: Path
    catalog_url: str
    clock: Clock
    logger: Logger
    settings: SyncSettings = field(default_factory=SyncSettings)

    @property
    def registry(self) -> SubscriptionRegistry:
        return SubscriptionRegistry(self.state)

    def module_dir(self, module: str) -> Path:
        """
        Get folder of module, which is always a direct child of the root
        folder.
        """
        try:
            check_module_name(module)
        except ValueError as e:
            raise ConsistencyError(str(e)) from e

        path = self.root_dir / module
        if path.resolve().parent != self.root_dir.resolve():
            raise ConsistencyError(
                f"Folder of module '{module}' is outside '{self.root_dir}'"
            )

        return path

    async def save(self):
        await self.store.save(self.state)

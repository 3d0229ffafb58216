"""
Top-level interface to synchronize a folder of modules.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from logging import Logger
from pathlib import Path

from .catalog import CATALOG_UPDATE_ID, ManifestListSync, ManifestSync
from .context import SyncContext, SyncSettings
from .exceptions import ConsistencyError
from .fetch import Fetcher
from .interaction import Prompter
from .module import ModuleInstaller
from .staleness import (
    Clock,
    Datum,
    StalenessPolicy,
    UpdateResult,
    system_clock,
)
from .state import CatalogState, ModuleManifest, StateStore, parse_manifest

__all__ = [
    "ModuleStatus",
    "Shelf",
]


@dataclass(frozen=True, kw_only=True)
class ModuleStatus:
    """
    Summary of a module's local and remote state.
    """

    name: str
    canonical: bool
    installed_version: str | None
    latest_version: str | None
    subscribed: bool
    current: bool


class Shelf:
    """
    Keeps the modules of a catalog synchronized into subfolders of a root
    folder.

    Example:

    ```
    async with HttpFetcher() as fetcher:
        shelf = Shelf(
            root_dir=Path("notes"),
            store=StateStore(Path("notes/.shelfsync/state.yaml")),
            fetcher=fetcher,
            prompter=prompter,
            catalog_url="https://example.com/catalog.json",
        )
        await shelf.update()
    ```
    """

    _ctx: SyncContext
    _inflight: dict[str, asyncio.Task[UpdateResult | None]]

    def __init__(
        self,
        *,
        root_dir: Path,
        store: StateStore,
        fetcher: Fetcher,
        prompter: Prompter,
        catalog_url: str,
        settings: SyncSettings | None = None,
        clock: Clock = system_clock,
        logger: Logger | None = None,
    ):
        """
        :param root_dir: Folder containing one subfolder per module
        :param store: Persistence of state; state is loaded upon construction
        :param fetcher: Retrieval of catalog, manifests and archives
        :param prompter: Interface to ask and notify the user
        :param catalog_url: URL of canonical catalog
        :param settings: Tunables, or `None` to use defaults
        :param clock: Source of current time in epoch milliseconds
        :param logger: Logger to use, or `None` to use default logger
        """
        self._ctx = SyncContext(
            state=store.load(),
            store=store,
            fetcher=fetcher,
            prompter=prompter,
            root_dir=root_dir,
            catalog_url=catalog_url,
            clock=clock,
            logger=logger or logging.getLogger(),
            settings=settings or SyncSettings(),
        )
        self._inflight = {}

    @property
    def state(self) -> CatalogState:
        return self._ctx.state

    @property
    def context(self) -> SyncContext:
        return self._ctx

    def policy(self, datum: Datum) -> StalenessPolicy:
        """
        Get driver for datum.
        """
        ctx = self._ctx
        return StalenessPolicy(
            datum,
            state=ctx.state,
            store=ctx.store,
            prompter=ctx.prompter,
            clock=ctx.clock,
            logger=ctx.logger,
        )

    def catalog_sync(self) -> ManifestListSync:
        return ManifestListSync(self._ctx)

    def manifest_sync(self, module: str) -> ManifestSync:
        return ManifestSync(self._ctx, module)

    def module_installer(
        self, module: str, *, warn_on_overwrite: bool = True
    ) -> ModuleInstaller:
        return ModuleInstaller(
            self._ctx, module, warn_on_overwrite=warn_on_overwrite
        )

    async def update(self, *, force: bool = False):
        """
        Run an update pass: refresh catalog, then manifests, then module
        folders, each only if due unless forced.
        """
        ctx = self._ctx
        ctx.logger.info(f"Checking for updates{' (forced)' if force else ''}")

        await self._run(self.catalog_sync(), force)

        await asyncio.gather(
            *[
                self._run(self.manifest_sync(name), force)
                for name in ctx.state.module_names()
            ]
        )

        # prompts are shown one at a time
        fresh: set[str] = set()
        for name in ctx.state.module_names():
            if await self._offer_new_module(name):
                fresh.add(name)

        await asyncio.gather(
            *[
                self.update_module(
                    name, force=force, warn_on_overwrite=name not in fresh
                )
                for name in ctx.state.module_names()
            ]
        )

    async def update_module(
        self, module: str, *, force: bool = False, warn_on_overwrite: bool = True
    ) -> UpdateResult | None:
        """
        Update a module's folder if needed, or if forced and not current. If
        an update of the same module is already in flight, wait for it
        instead of starting another.
        """
        task = self._inflight.get(module)

        if task is None:
            installer = self.module_installer(
                module, warn_on_overwrite=warn_on_overwrite
            )
            task = asyncio.create_task(self._update_module(installer, force))
            self._inflight[module] = task
            task.add_done_callback(lambda _: self._inflight.pop(module, None))
        else:
            self._ctx.logger.debug(f"Joining in-flight update of '{module}'")

        return await task

    async def _update_module(
        self, installer: ModuleInstaller, force: bool
    ) -> UpdateResult | None:
        policy = self.policy(installer)

        if installer.forget_missing_folder():
            await self._ctx.save()

        if force:
            if installer.is_enabled() and installer.is_incomplete():
                return await policy.update()
            return None

        return await policy.update_if_needed()

    async def add_module(self, url: str) -> ModuleManifest:
        """
        Register a module from an arbitrary manifest URL.
        """
        ctx = self._ctx
        manifest = parse_manifest(await ctx.fetcher.fetch_json(url))
        name = manifest.module_name

        if ctx.state.is_canonical(name):
            raise ConsistencyError(
                f"Module '{name}' is already published in the catalog"
            )

        ctx.state.user_added[name] = url
        ctx.state.manifests[name] = manifest
        await ctx.save()

        ctx.logger.info(f"Added module '{name}' from '{url}'")
        return manifest

    async def subscribe(self, module: str, submodule: str | None = None):
        self._check_registered(module)
        await self.module_installer(module).subscribe(submodule)

    async def unsubscribe(
        self,
        module: str,
        submodule: str | None = None,
        *,
        silent: bool = False,
    ) -> bool:
        self._check_registered(module)
        return await self.module_installer(module).unsubscribe(
            submodule, silent=silent
        )

    def last_checked(self) -> int | None:
        """
        Get epoch milliseconds of last successful catalog refresh.
        """
        return self._ctx.state.timestamps.get(CATALOG_UPDATE_ID)

    def status(self) -> list[ModuleStatus]:
        state = self._ctx.state
        statuses: list[ModuleStatus] = []

        for name in state.module_names():
            installer = self.module_installer(name)
            record, manifest = installer.record, installer.manifest

            statuses.append(
                ModuleStatus(
                    name=name,
                    canonical=state.is_canonical(name),
                    installed_version=record.version if record else None,
                    latest_version=manifest.version if manifest else None,
                    subscribed=installer.subscribed(),
                    current=installer.is_current(),
                )
            )

        return statuses

    async def _run(self, datum: Datum, force: bool) -> UpdateResult | None:
        policy = self.policy(datum)

        if force:
            if not datum.is_enabled():
                return None
            return await policy.update()

        return await policy.update_if_needed()

    async def _offer_new_module(self, module: str) -> bool:
        """
        Ask the user whether to install a module they've never installed,
        returning whether they accepted. Declining unsubscribes.
        """
        installer = self.module_installer(module)
        manifest = installer.manifest

        if (
            manifest is None
            or installer.is_installed()
            or not installer.subscribed()
            or installer.folder.exists()
        ):
            return False

        accept = await self._ctx.prompter.confirm(
            "A new module is available!",
            f"{module}: {manifest.description}\nMore info: {manifest.info_url}\n\nWould you like to install this module?",
            f'Download and install "{module}"',
            f'Don\'t subscribe to "{module}"',
        )

        if not accept:
            await installer.unsubscribe(silent=True)

        return accept

    def _check_registered(self, module: str):
        if self._ctx.state.registered_url(module) is None:
            raise ConsistencyError(f"Unknown module '{module}'")

"""
Refresh of the canonical catalog and of module manifests, reconciling
renames and removals with local state.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from typing import Any

from ._fs import remove_dir, rename_dir
from .context import SyncContext, manifest_update_id, module_update_id
from .exceptions import ConsistencyError
from .staleness import PUNT_SUFFIX, Outcome, UpdateResult
from .state import parse_catalog, parse_manifest

__all__ = [
    "CATALOG_UPDATE_ID",
    "ManifestListSync",
    "ManifestSync",
    "ModuleMigrator",
]

CATALOG_UPDATE_ID = "Catalog"


class ModuleMigrator:
    """
    Moves all local state of a module to a new name: on-disk folder,
    installed record, opt-outs, known manifest, user registration and
    timestamps.

    The folder is moved first; if that fails or the user declines to
    overwrite an existing destination, no state is changed.
    """

    _ctx: SyncContext

    def __init__(self, ctx: SyncContext):
        self._ctx = ctx

    async def migrate(self, old: str, new: str) -> bool:
        """
        Migrate module, returning `False` if the user aborted.
        """
        ctx = self._ctx
        old_dir, new_dir = ctx.module_dir(old), ctx.module_dir(new)

        if old_dir.exists():
            if new_dir.exists():
                overwrite = await ctx.prompter.confirm(
                    f'Folder "{new}" already exists',
                    f'Module "{old}" is now named "{new}", but a folder named "{new}" already exists. Replace it with the contents of "{old}"?',
                    "Replace",
                    "Abort",
                )
                if not overwrite:
                    ctx.logger.warning(
                        f"Rename of module '{old}' to '{new}' aborted by user"
                    )
                    return False

                await remove_dir(new_dir)

            await rename_dir(old_dir, new_dir)

        state = ctx.state

        if old in state.installed:
            state.installed[new] = state.installed.pop(old)
        if old in state.manifests:
            state.manifests[new] = state.manifests.pop(old)

        if old in state.user_added:
            state.user_added = {
                (new if k == old else k): v for k, v in state.user_added.items()
            }

        ctx.registry.rename(old, new)

        for update_id in (manifest_update_id, module_update_id):
            _move_key(state.timestamps, update_id(old), update_id(new))
            _move_key(
                state.punts,
                update_id(old) + PUNT_SUFFIX,
                update_id(new) + PUNT_SUFFIX,
            )

        ctx.logger.info(f"Migrated module '{old}' to '{new}'")
        await ctx.save()

        return True


@dataclass
class ManifestListSync:
    """
    Refreshes the canonical catalog of module name to manifest URL.
    """

    ctx: SyncContext

    @property
    def update_id(self) -> str:
        return CATALOG_UPDATE_ID

    @property
    def check_interval(self) -> timedelta:
        return self.ctx.settings.catalog_interval

    @property
    def punt_window(self) -> timedelta | None:
        return None

    def is_enabled(self) -> bool:
        return True

    def is_incomplete(self) -> bool:
        return not len(self.ctx.state.canonical)

    async def perform(self) -> UpdateResult:
        ctx = self.ctx
        catalog = parse_catalog(await ctx.fetcher.fetch_json(ctx.catalog_url))

        # reconcile against latest stored catalog, as of after the fetch
        previous = dict(ctx.state.canonical)
        migrator = ModuleMigrator(ctx)
        claimed: set[str] = set()

        for name, url in previous.items():
            if name in catalog:
                continue

            new_name = _find_rename(url, previous, catalog, claimed)

            if new_name is not None:
                claimed.add(new_name)
                if not await migrator.migrate(name, new_name):
                    ctx.logger.warning(
                        f"Keeping local state of '{name}' under its old name"
                    )
            else:
                await self._remove(name)

        ctx.state.canonical = catalog
        ctx.logger.info(f"Catalog refreshed: {len(catalog)} modules")

        return UpdateResult(Outcome.UPDATED)

    async def _remove(self, name: str):
        """
        Handle module no longer published in catalog.
        """
        ctx = self.ctx
        state = ctx.state

        if name in state.user_added:
            ctx.logger.info(
                f"Module '{name}' removed from catalog, still registered by user"
            )
            return

        ctx.logger.info(f"Module '{name}' removed from catalog")

        folder = ctx.module_dir(name)

        if folder.exists():
            delete = await ctx.prompter.confirm(
                f'Module "{name}" was removed',
                f'"{name}" is no longer published. Would you like to delete its folder? Any changes you made to it will be lost.',
                "Delete",
                "Keep",
            )
            if delete:
                await remove_dir(folder)
                ctx.prompter.notify(f'Deleted "{name}" folder')

        # a kept folder is no longer tracked
        state.manifests.pop(name, None)
        state.installed.pop(name, None)
        ctx.registry.forget(name)

        for update_id in (manifest_update_id, module_update_id):
            state.timestamps.pop(update_id(name), None)
            state.punts.pop(update_id(name) + PUNT_SUFFIX, None)

        await ctx.save()


@dataclass
class ManifestSync:
    """
    Refreshes a single module's manifest.
    """

    ctx: SyncContext
    module: str

    @property
    def update_id(self) -> str:
        return manifest_update_id(self.module)

    @property
    def check_interval(self) -> timedelta:
        return self.ctx.settings.manifest_interval

    @property
    def punt_window(self) -> timedelta | None:
        return None

    def is_enabled(self) -> bool:
        return self.ctx.state.registered_url(self.module) is not None

    def is_incomplete(self) -> bool:
        return self.module not in self.ctx.state.manifests

    async def perform(self) -> UpdateResult:
        ctx = self.ctx
        state = ctx.state

        url = state.registered_url(self.module)
        if url is None:
            raise ConsistencyError(f"Module '{self.module}' is not registered")

        manifest = parse_manifest(await ctx.fetcher.fetch_json(url))
        declared = manifest.module_name

        if declared != self.module:
            if state.is_canonical(self.module):
                raise ConsistencyError(
                    f"Manifest of canonical module '{self.module}' declares name '{declared}'"
                )
            if state.registered_url(declared) is not None:
                raise ConsistencyError(
                    f"Module '{self.module}' was renamed to '{declared}', which is already registered"
                )

            if not await ModuleMigrator(ctx).migrate(self.module, declared):
                return UpdateResult(
                    Outcome.FAILED,
                    f'Renaming "{self.module}" to "{declared}" was aborted',
                )

            self.module = declared

        state.manifests[self.module] = manifest
        return UpdateResult(Outcome.UPDATED)


def _find_rename(
    url: str,
    previous: dict[str, str],
    catalog: dict[str, str],
    claimed: set[str],
) -> str | None:
    """
    Find the new name of a module which disappeared from the catalog, if it
    was renamed. Only names new to the catalog and not already claimed by
    another rename qualify; if several do, the first in sorted order wins.
    """
    candidates = sorted(
        name
        for name, new_url in catalog.items()
        if new_url == url and name not in previous and name not in claimed
    )
    return candidates[0] if len(candidates) else None


def _move_key(mapping: dict[str, Any], old: str, new: str):
    if old in mapping:
        mapping[new] = mapping.pop(old)


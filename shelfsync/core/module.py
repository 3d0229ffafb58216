"""
Install and update decisions for a single module's folder.
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path

from ._fs import remove_dir
from .archive import ArchiveInstaller, InstallStats
from .context import SyncContext, module_update_id
from .exceptions import ConsistencyError
from .hashing import fingerprint_folder, scan_folder
from .staleness import Outcome, UpdateResult
from .state import InstalledRecord, ModuleManifest

__all__ = [
    "ModuleInstaller",
]


@dataclass
class ModuleInstaller:
    """
    Keeps a module's folder at the version named by its manifest, without
    overwriting local changes unless the user agrees.
    """

    ctx: SyncContext
    module: str

    warn_on_overwrite: bool = True
    """
    Whether to check for local modification before overwriting the folder;
    disabled only for first installs into a folder known to be fresh.
    """

    @property
    def update_id(self) -> str:
        return module_update_id(self.module)

    @property
    def check_interval(self) -> timedelta | None:
        return None

    @property
    def punt_window(self) -> timedelta | None:
        return self.ctx.settings.punt_window

    @property
    def folder(self) -> Path:
        return self.ctx.module_dir(self.module)

    @property
    def manifest(self) -> ModuleManifest | None:
        return self.ctx.state.manifests.get(self.module)

    @property
    def record(self) -> InstalledRecord | None:
        return self.ctx.state.installed.get(self.module)

    def subscribed(self) -> bool:
        return self.ctx.registry.is_subscribed(self.module)

    def is_enabled(self) -> bool:
        return self.manifest is not None and self.subscribed()

    def is_installed(self) -> bool:
        return self.record is not None

    def is_current(self) -> bool:
        """
        Check if installed version matches manifest and was installed with
        the submodule opt-outs currently in effect.
        """
        record, manifest = self.record, self.manifest
        if record is None or manifest is None:
            return False

        excluded = self.ctx.registry.excluded_submodules(self.module)
        return (
            record.version == manifest.version and record.excluded == excluded
        )

    def is_incomplete(self) -> bool:
        return not self.is_installed() or not self.is_current()

    async def is_modified(self) -> bool:
        """
        Check if folder contents differ from what was last installed.
        """
        record = self.record
        if record is None:
            # no baseline to compare against
            return True

        settings = self.ctx.settings

        if settings.constrained:
            scan = await asyncio.to_thread(scan_folder, self.folder)

            if scan.file_count > settings.heuristic_item_threshold:
                installed_at = record.installed_at or (
                    self.ctx.state.timestamps.get(self.update_id, 0)
                )
                if scan.latest_mtime is None:
                    return False

                slack = settings.mtime_slack.total_seconds() * 1000
                return scan.latest_mtime * 1000 > installed_at + slack

        fingerprint = await fingerprint_folder(
            self.folder, concurrency=settings.hash_concurrency
        )
        return fingerprint != record.content_hash

    def forget_missing_folder(self) -> bool:
        """
        Drop installed record if its folder was deleted, returning whether
        it was dropped.
        """
        if self.is_installed() and not self.folder.exists():
            self.ctx.logger.info(
                f"Folder of module '{self.module}' is missing, forgetting install"
            )
            del self.ctx.state.installed[self.module]
            return True
        return False

    async def perform(self) -> UpdateResult:
        ctx = self.ctx
        manifest = self.manifest

        if manifest is None:
            raise ConsistencyError(f"No manifest known for '{self.module}'")

        if self.forget_missing_folder():
            await ctx.save()

        if self.folder.exists() and self.warn_on_overwrite:
            if await self.is_modified():
                overwrite = await ctx.prompter.confirm(
                    f'Update "{self.module}"?',
                    f'Version {manifest.version} of "{self.module}" is available, but the "{self.module}" folder was changed since it was installed. Updating will overwrite your changes.',
                    "Overwrite",
                    "Not now",
                )
                if not overwrite:
                    punt_window = ctx.settings.punt_window
                    hours = round(punt_window.total_seconds() / 3600)
                    return UpdateResult(
                        Outcome.PUNTED,
                        f'Skipped updating "{self.module}", will ask again in {hours} hours',
                    )

        excluded = ctx.registry.excluded_submodules(self.module)
        stats = InstallStats()

        try:
            digest = await ArchiveInstaller(
                ctx.fetcher, logger=ctx.logger
            ).install(
                manifest.archive_url,
                self.folder,
                exclude_paths=ctx.registry.excluded_paths(self.module),
                stats=stats,
            )
        except Exception as e:
            ctx.logger.exception(f"Failed to install '{self.module}'")
            return UpdateResult(
                Outcome.FAILED, f'Failed to install "{self.module}": {e}'
            )

        ctx.state.installed[self.module] = InstalledRecord(
            version=manifest.version,
            content_hash=digest,
            excluded=excluded,
            installed_at=ctx.clock(),
        )
        await ctx.save()

        message = f'"{self.module}" v{manifest.version} installed!'
        if len(stats.failed_paths):
            message += f" ({len(stats.failed_paths)} files could not be written)"

        return UpdateResult(Outcome.UPDATED, message)

    async def subscribe(self, submodule: str | None = None):
        ctx = self.ctx

        if ctx.registry.opt_in(self.module, submodule):
            await ctx.save()

        ctx.prompter.notify(f'Subscribed to "{_label(self.module, submodule)}"')

    async def unsubscribe(
        self, submodule: str | None = None, *, silent: bool = False
    ) -> bool:
        """
        Opt out of module or submodule. Unless silent, offer to delete the
        module's folder, warning about installed modules which depend on it.
        Returns whether the opt-out was recorded.
        """
        ctx = self.ctx
        label = _label(self.module, submodule)
        dependents = ctx.registry.dependents(self.module, submodule)

        if submodule is not None and len(dependents) and not silent:
            proceed = await ctx.prompter.confirm(
                f'Unsubscribe from "{label}"?',
                f'Its files will be removed on the next update, but {_format_dependents(dependents)}.',
                "Unsubscribe",
                "Cancel",
            )
            if not proceed:
                return False

        if ctx.registry.opt_out(self.module, submodule):
            await ctx.save()

        if silent:
            return True

        ctx.prompter.notify(f'Unsubscribed from "{label}"')

        if submodule is not None or not self.folder.exists():
            return True

        body = f'Would you like to delete the "{self.module}" folder? Any changes you made to it will be lost.'
        if len(dependents):
            body += f" Warning: {_format_dependents(dependents)}."

        delete = await ctx.prompter.confirm(
            f'Delete "{self.module}"?', body, "Delete folder", "Keep folder"
        )

        if delete:
            await remove_dir(self.folder)
            ctx.state.installed.pop(self.module, None)
            await ctx.save()
            ctx.prompter.notify(f'Deleted "{self.module}" folder')

        return True


def _label(module: str, submodule: str | None) -> str:
    return f"{module}/{submodule}" if submodule else module


def _format_dependents(dependents: list[str]) -> str:
    names = ", ".join(f'"{d}"' for d in dependents)
    verb = "depends" if len(dependents) == 1 else "depend"
    plural = "s" if len(dependents) > 1 else ""
    return f"the installed module{plural} {names} {verb} on it"

"""
Installation of a module archive into a folder, pruning files which are no
longer part of the module.
"""
from __future__ import annotations

import asyncio
import io
import logging
import os
import zipfile
import zlib
from dataclasses import dataclass, field
from logging import Logger
from pathlib import Path, PurePosixPath
from typing import Callable, Iterable, Iterator

from .exceptions import ArchiveFormatError, ConsistencyError, FilesystemError
from .fetch import Fetcher
from .hashing import digest_entries, hash_bytes

__all__ = [
    "ArchiveEntry",
    "ArchiveInstaller",
    "InstallStats",
    "is_excluded",
    "prune_folder",
    "read_archive",
]


@dataclass(frozen=True, kw_only=True)
class ArchiveEntry:
    """
    Entry of an archive, with its path normalized relative to the archive
    root.
    """

    path: str
    is_directory: bool
    content: Callable[[], bytes]


@dataclass(kw_only=True)
class InstallStats:
    """
    Encapsulates statistics for install operation.
    """

    written_count: int = 0
    """
    Number of files written to the target folder.
    """

    excluded_count: int = 0
    """
    Number of files skipped as belonging to excluded paths.
    """

    failed_paths: list[str] = field(default_factory=list)
    """
    Relative paths of files which could not be written.
    """

    prune_count: int = 0
    """
    Number of stale files and folders removed.
    """


def read_archive(data: bytes) -> Iterator[ArchiveEntry]:
    """
    Iterate over entries of a zip archive. Every entry path is validated
    before the first entry is yielded, so a malicious archive is rejected
    before anything is written.
    """
    try:
        zf = zipfile.ZipFile(io.BytesIO(data))
    except (zipfile.BadZipFile, zipfile.LargeZipFile) as e:
        raise ArchiveFormatError(f"Not a readable zip archive: {e}") from e

    infos = [
        (info, _normalize_entry_path(info.filename)) for info in zf.infolist()
    ]

    def read(info: zipfile.ZipInfo) -> bytes:
        try:
            return zf.read(info)
        except (zipfile.BadZipFile, zlib.error, NotImplementedError) as e:
            raise ArchiveFormatError(
                f"Failed to read '{info.filename}' from archive: {e}"
            ) from e

    def iterate() -> Iterator[ArchiveEntry]:
        for info, path in infos:
            if not path:
                continue

            yield ArchiveEntry(
                path=path,
                is_directory=info.is_dir(),
                content=lambda info=info: read(info),
            )

    return iterate()


def is_excluded(path: str, exclude_paths: Iterable[str]) -> bool:
    """
    Check if relative path is, or is contained in, any of the excluded
    paths.
    """
    for exclude_path in exclude_paths:
        prefix = exclude_path.strip("/")
        if path == prefix or path.startswith(prefix + "/"):
            return True
    return False


class ArchiveInstaller:
    """
    Downloads module archives and writes them into module folders.
    """

    _fetcher: Fetcher
    _logger: Logger

    def __init__(self, fetcher: Fetcher, *, logger: Logger | None = None):
        self._fetcher = fetcher
        self._logger = logger or logging.getLogger()

    async def install(
        self,
        archive_url: str,
        target_dir: Path,
        *,
        exclude_paths: Iterable[str] = (),
        stats: InstallStats | None = None,
    ) -> str:
        """
        Replace contents of target folder with archive contents, returning
        the digest of the files written.

        Files which fail to write are logged and skipped. If the folder
        already existed, files not written by this install are pruned.
        """
        stats = stats if stats is not None else InstallStats()

        self._logger.info(f"Downloading '{archive_url}'")
        data = await self._fetcher.fetch_bytes(archive_url)

        self._logger.info(f"Installing into '{target_dir}'")
        return await asyncio.to_thread(
            self._install_sync, data, target_dir, list(exclude_paths), stats
        )

    def _install_sync(
        self,
        data: bytes,
        target_dir: Path,
        exclude_paths: list[str],
        stats: InstallStats,
    ) -> str:
        entries = read_archive(data)

        pre_existed = target_dir.is_dir()
        if not pre_existed:
            try:
                target_dir.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise FilesystemError(
                    f"Failed to create '{target_dir}': {e}"
                ) from e

        written: dict[str, str] = {}
        file_count = 0

        for entry in entries:
            if entry.is_directory:
                continue

            file_count += 1

            if is_excluded(entry.path, exclude_paths):
                stats.excluded_count += 1
                continue

            content = entry.content()
            path = target_dir / entry.path

            try:
                path.parent.mkdir(parents=True, exist_ok=True)
                path.write_bytes(content)
            except OSError as e:
                self._logger.error(f"Failed to write '{path}': {e}")
                stats.failed_paths.append(entry.path)
                continue

            written[entry.path] = hash_bytes(content)
            stats.written_count += 1

        if pre_existed:
            if file_count and not written:
                raise ConsistencyError(
                    f"Refusing to prune '{target_dir}': archive has {file_count} files but none would be kept"
                )

            prune_folder(
                target_dir, set(written), stats=stats, logger=self._logger
            )

        self._logger.info(
            f"Installed {stats.written_count} files into '{target_dir}' ({stats.prune_count} pruned, {len(stats.failed_paths)} failed)"
        )

        return digest_entries(written.items())


def prune_folder(
    root: Path,
    keep: set[str],
    *,
    stats: InstallStats | None = None,
    logger: Logger | None = None,
):
    """
    Delete files under root whose relative path is not in keep set, then
    remove folders which don't contain anything kept. Failures are logged
    and skipped.
    """
    logger = logger or logging.getLogger()

    # folders on the way to a kept file
    keep_dirs: set[str] = set()
    for path in keep:
        keep_dirs.update(p.as_posix() for p in PurePosixPath(path).parents)

    def remove(path: Path, remover: Callable[[Path], None]):
        try:
            remover(path)
        except OSError as e:
            logger.warning(f"Failed to prune '{path}': {e}")
            return
        logger.debug(f"Pruned '{path}'")
        if stats is not None:
            stats.prune_count += 1

    for dirpath, dirnames, filenames in os.walk(root, topdown=False):
        dir_path = Path(dirpath)

        # symlinks to folders are listed but not walked
        for name in dirnames:
            path = dir_path / name
            if path.is_symlink() and _relpath(root, path) not in keep:
                remove(path, Path.unlink)

        for name in filenames:
            path = dir_path / name
            if _relpath(root, path) not in keep:
                remove(path, Path.unlink)

        if dir_path != root and _relpath(root, dir_path) not in keep_dirs:
            remove(dir_path, Path.rmdir)


def _relpath(root: Path, path: Path) -> str:
    return path.relative_to(root).as_posix()


def _normalize_entry_path(name: str) -> str:
    """
    Get entry path relative to archive root, rejecting paths which would
    escape it.
    """
    path = PurePosixPath(name.replace("\\", "/"))

    if path.is_absolute() or (path.parts and ":" in path.parts[0]):
        raise ArchiveFormatError(f"Absolute path in archive: '{name}'")

    parts = [p for p in path.parts if p != "."]
    if ".." in parts:
        raise ArchiveFormatError(f"Path traversal in archive: '{name}'")

    return "/".join(parts)

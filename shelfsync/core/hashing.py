"""
Content fingerprinting of module folders.

A fingerprint is a digest over the set of `(relative path, content hash)`
pairs of a folder's files. It's independent of the order in which files
are enumerated, so it can be compared against the digest returned when the
folder was installed to detect local modification.
"""
from __future__ import annotations

import asyncio
import hashlib
import os
from dataclasses import dataclass
from itertools import islice
from pathlib import Path
from typing import Iterable, Iterator

from .exceptions import FilesystemError

__all__ = [
    "FolderScan",
    "digest_entries",
    "fingerprint_folder",
    "hash_bytes",
    "hash_file",
    "scan_folder",
    "walk_files",
]

CHUNK_SIZE = 1024 * 1024
"""
Number of bytes read at a time when hashing a file.
"""

DEFAULT_CONCURRENCY = 8
"""
Default number of files hashed concurrently.
"""


@dataclass(frozen=True, kw_only=True)
class FolderScan:
    """
    Cheap summary of a folder, used where hashing every file is too costly.
    """

    file_count: int
    """
    Number of regular files in the tree.
    """

    latest_mtime: float | None
    """
    Most recent modification time (epoch seconds) of any file in the tree,
    or `None` if there are no files.
    """


def hash_bytes(data: bytes) -> str:
    """
    Get hex SHA-256 digest of data.
    """
    return hashlib.sha256(data).hexdigest()


def hash_file(path: Path) -> str:
    """
    Get hex SHA-256 digest of a file's contents, reading it in chunks.
    """
    sha = hashlib.sha256()
    with path.open("rb") as fh:
        while chunk := fh.read(CHUNK_SIZE):
            sha.update(chunk)
    return sha.hexdigest()


def digest_entries(entries: Iterable[tuple[str, str]]) -> str:
    """
    Get digest over a set of `(path, hash)` pairs.

    Entries are sorted by hash, then by path for entries with identical
    content, before concatenating `path + hash` for each of them. An empty
    set yields the digest of the empty string.
    """
    ordered = sorted(entries, key=lambda e: (e[1], e[0]))
    combined = "".join(path + digest for path, digest in ordered)
    return hash_bytes(combined.encode("utf-8"))


def walk_files(root: Path) -> Iterator[Path]:
    """
    Recursively yield every regular file under root, including hidden
    files. Symlinked folders are not followed.
    """

    def on_error(e: OSError):
        raise FilesystemError(f"Failed to list folder: {e}") from e

    for dirpath, _, filenames in os.walk(root, onerror=on_error):
        for filename in filenames:
            path = Path(dirpath) / filename
            if path.is_file():
                yield path


async def fingerprint_folder(
    root: Path, *, concurrency: int = DEFAULT_CONCURRENCY
) -> str:
    """
    Get fingerprint of folder from its files' relative paths and contents.

    Files are hashed in batches of `concurrency` off the event loop. If any
    file can't be read, e.g. it was deleted mid-walk, the whole operation
    fails with {obj}`FilesystemError` rather than yielding a fingerprint of
    a partial tree.
    """
    assert concurrency > 0

    if not root.is_dir():
        raise FilesystemError(f"Not a folder: '{root}'")

    async def hash_entry(path: Path) -> tuple[str, str]:
        try:
            digest = await asyncio.to_thread(hash_file, path)
        except OSError as e:
            raise FilesystemError(f"Failed to read '{path}': {e}") from e
        return path.relative_to(root).as_posix(), digest

    entries: list[tuple[str, str]] = []
    paths = walk_files(root)

    while batch := list(islice(paths, concurrency)):
        entries += await asyncio.gather(*[hash_entry(p) for p in batch])

    return digest_entries(entries)


def scan_folder(root: Path) -> FolderScan:
    """
    Count files in folder and find the most recent modification time.
    """
    file_count = 0
    latest_mtime: float | None = None

    for path in walk_files(root):
        try:
            mtime = path.stat().st_mtime
        except OSError as e:
            raise FilesystemError(f"Failed to stat '{path}': {e}") from e

        file_count += 1
        if latest_mtime is None or mtime > latest_mtime:
            latest_mtime = mtime

    return FolderScan(file_count=file_count, latest_mtime=latest_mtime)

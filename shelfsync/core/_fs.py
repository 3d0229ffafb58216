"""
Async wrappers of folder operations on module folders.
"""
from __future__ import annotations

import asyncio
import shutil
from pathlib import Path

from .exceptions import FilesystemError

__all__ = [
    "remove_dir",
    "rename_dir",
]


async def remove_dir(path: Path):
    """
    Recursively delete folder.
    """
    try:
        await asyncio.to_thread(shutil.rmtree, path)
    except FileNotFoundError:
        pass
    except OSError as e:
        raise FilesystemError(f"Failed to delete '{path}': {e}") from e


async def rename_dir(src: Path, dest: Path):
    try:
        await asyncio.to_thread(src.rename, dest)
    except OSError as e:
        raise FilesystemError(
            f"Failed to rename '{src}' to '{dest}': {e}"
        ) from e

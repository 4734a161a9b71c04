"""Async local filesystem primitives used by the sync engine.

Blocking calls run in a worker thread so each one is a suspension point for
the event loop.
"""

import asyncio
import os
from pathlib import Path
from typing import Dict, List


async def ensure_dir(path: Path) -> None:
    await asyncio.to_thread(path.mkdir, parents=True, exist_ok=True)


async def dir_exists(path: Path) -> bool:
    return await asyncio.to_thread(path.is_dir)


def _scan(path: Path, suffix: str) -> List[os.DirEntry]:
    with os.scandir(path) as entries:
        return sorted(
            (e for e in entries if e.name.endswith(suffix) and e.is_file()),
            key=lambda e: e.name
        )


async def list_files(path: Path, suffix: str) -> List[str]:
    """Names of regular files in ``path`` ending with ``suffix``."""
    entries = await asyncio.to_thread(_scan, path, suffix)
    return [e.name for e in entries]


def _mtimes(path: Path, suffix: str) -> Dict[str, int]:
    mtimes = {}
    for entry in _scan(path, suffix):
        try:
            # Whole seconds only
            mtimes[entry.name] = int(entry.stat().st_mtime)
        except OSError:
            continue
    return mtimes


async def read_mtimes(path: Path, suffix: str) -> Dict[str, int]:
    """Map file name to modification time in whole seconds.

    Files whose metadata cannot be read are left out.
    """
    return await asyncio.to_thread(_mtimes, path, suffix)

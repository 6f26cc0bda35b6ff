"""Directory browsing for channel storage.

Example:
    browser = DirectoryBrowser(registry, sandbox, MediaProbe())
    listing = await browser.browse(1, PathObject(source="clips"))
    print(listing.folders, [entry.name for entry in listing.files])
"""

from __future__ import annotations

import logging
import os
import re
from pathlib import Path, PurePosixPath
from typing import Any, Iterable, List, Tuple

from fastapi.concurrency import run_in_threadpool

from playout_api.storage.channels import ChannelRegistry
from playout_api.storage.errors import BadRequest, StorageError
from playout_api.storage.models import MediaEntry, PathObject
from playout_api.storage.probe import MediaProbe, ProbeError, parse_duration
from playout_api.storage.sandbox import PathSandbox


logger = logging.getLogger("playout_api.browser")


def natural_key(name: str) -> Tuple[Any, ...]:
    """Key for deterministic natural sorting: ``file2`` sorts before ``file10``."""

    # re.split with a capture group alternates text and digit runs, so
    # positions line up between keys and int is never compared with str.
    parts: List[Any] = []
    for index, part in enumerate(re.split(r"(\d+)", name.casefold())):
        parts.append(int(part) if index % 2 else part)
    return (tuple(parts), name)


def natural_sorted(names: Iterable[str]) -> List[str]:
    return sorted(names, key=natural_key)


def file_extension(name: str) -> str | None:
    suffix = PurePosixPath(name).suffix
    return suffix[1:].lower() if len(suffix) > 1 else None


def _is_hidden(relative: str, name: str) -> bool:
    return any(part.startswith(".") for part in PurePosixPath(relative, name).parts)


def _scan(path: Path) -> List[Tuple[str, bool, bool]]:
    with os.scandir(path) as entries:
        return [(entry.name, entry.is_dir(), entry.is_file()) for entry in entries]


def _list_folders(path: Path) -> List[str]:
    return [name for name, is_dir, _ in _scan(path) if is_dir]


class DirectoryBrowser:
    """List folders and media files of a sandboxed directory."""

    def __init__(self, registry: ChannelRegistry, sandbox: PathSandbox, probe: MediaProbe):
        self.registry = registry
        self.sandbox = sandbox
        self.probe = probe

    async def browse(self, channel_id: int, request: PathObject) -> PathObject:
        channel = self.registry.resolve(channel_id)
        extensions = channel.all_extensions()
        descriptor = self.sandbox.normalize(channel.root, request.source)
        path = descriptor.absolute_path
        parent_path = path.parent if descriptor.relative_remainder else channel.root

        listing = PathObject(
            source=descriptor.relative_remainder,
            parent=descriptor.root_suffix,
            folders_only=request.folders_only,
        )

        if path != parent_path and not request.folders_only:
            listing.parent_folders = natural_sorted(await self._read(_list_folders, parent_path))

        folders: List[str] = []
        files: List[str] = []
        for name, is_dir, is_file in await self._read(_scan, path):
            if _is_hidden(descriptor.relative_remainder, name):
                continue
            if is_dir:
                folders.append(name)
            elif is_file and not request.folders_only:
                if file_extension(name) in extensions:
                    files.append(name)

        listing.folders = natural_sorted(folders)
        listing.files = await self._probe_files(path, natural_sorted(files))
        logger.info(
            "folder_browsed",
            extra={
                "channel": channel_id,
                "path": str(path),
                "folders": len(listing.folders),
                "files": len(listing.files),
            },
        )
        return listing

    async def _read(self, func, path: Path):
        try:
            return await run_in_threadpool(func, path)
        except (FileNotFoundError, NotADirectoryError) as exc:
            raise BadRequest("Folder does not exist!") from exc
        except OSError as exc:
            raise StorageError(str(exc)) from exc

    async def _probe_files(self, folder: Path, names: List[str]) -> List[MediaEntry]:
        media: List[MediaEntry] = []
        for name in names:
            try:
                result = await run_in_threadpool(self.probe.inspect, folder / name)
            except ProbeError as exc:
                logger.error("probe_failed", extra={"path": str(folder / name), "error": str(exc)})
                continue
            media.append(MediaEntry(name=name, duration=parse_duration(result)))
        return media

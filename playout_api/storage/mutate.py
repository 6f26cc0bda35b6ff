"""Folder creation, rename/move and delete for channel storage.

Example:
    mutator = FileMutator(registry, sandbox)
    await mutator.create_directory(1, PathObject(source="clips/2024"))
    moved = await mutator.rename_or_move(1, MoveObject(source="clips/a.mp4", target="archive"))
    await mutator.delete(1, "archive/a.mp4")
"""

from __future__ import annotations

import logging
import os
import shutil
from pathlib import Path

from fastapi.concurrency import run_in_threadpool

from playout_api.storage.channels import ChannelRegistry
from playout_api.storage.errors import BadRequest, InternalError
from playout_api.storage.models import MoveObject, PathKind, PathObject
from playout_api.storage.sandbox import PathSandbox


logger = logging.getLogger("playout_api.mutate")


def _moved(source: Path, target: Path) -> MoveObject:
    return MoveObject(source=source.name, target=target.name)


async def _rename(source: Path, target: Path) -> None:
    await run_in_threadpool(os.rename, source, target)


async def copy_and_delete(source: Path, target: Path) -> MoveObject:
    """Second phase of a move: copy the file, then remove the original.

    A failed removal is an error even though the copy exists, so duplicates
    never go unnoticed.
    """

    try:
        await run_in_threadpool(shutil.copy2, source, target)
    except OSError as exc:
        logger.error("file_copy_failed", extra={"source": str(source), "target": str(target), "error": str(exc)})
        await run_in_threadpool(_discard, target)
        raise BadRequest("Error in file copy!") from exc

    try:
        await run_in_threadpool(os.remove, source)
    except OSError as exc:
        logger.error("source_remove_failed", extra={"source": str(source), "target": str(target), "error": str(exc)})
        raise BadRequest("Removing File not possible!") from exc

    logger.info("file_copied", extra={"source": str(source), "target": str(target)})
    return _moved(source, target)


def _discard(path: Path) -> None:
    try:
        path.unlink(missing_ok=True)
    except OSError:
        logger.warning("partial_copy_left", extra={"path": str(path)})


async def move_file(source: Path, target: Path) -> MoveObject:
    try:
        await _rename(source, target)
    except OSError as exc:
        logger.warning(
            "rename_fallback_copy",
            extra={"source": str(source), "target": str(target), "error": str(exc)},
        )
        return await copy_and_delete(source, target)
    logger.info("file_moved", extra={"source": str(source), "target": str(target)})
    return _moved(source, target)


class FileMutator:
    """Mutating filesystem operations, all routed through the sandbox."""

    def __init__(self, registry: ChannelRegistry, sandbox: PathSandbox):
        self.registry = registry
        self.sandbox = sandbox

    def _sandboxed(self, channel_id: int, source: str) -> Path:
        channel = self.registry.resolve(channel_id)
        return self.sandbox.normalize(channel.root, source).absolute_path

    async def create_directory(self, channel_id: int, request: PathObject) -> Path:
        path = self._sandboxed(channel_id, request.source)
        try:
            await run_in_threadpool(path.mkdir, parents=True, exist_ok=True)
        except OSError as exc:
            raise BadRequest(str(exc)) from exc
        logger.info("folder_created", extra={"channel": channel_id, "path": str(path)})
        return path

    async def rename_or_move(self, channel_id: int, request: MoveObject) -> MoveObject:
        source = self._sandboxed(channel_id, request.source)
        target = self._sandboxed(channel_id, request.target)
        source_kind = PathKind.of(source)

        if source_kind is PathKind.MISSING:
            raise BadRequest("Source file not exist!")

        target_kind = PathKind.of(target)
        if source.parent == target.parent and (target == source or target_kind is not PathKind.DIRECTORY):
            if target != source and target_kind is PathKind.FILE:
                raise BadRequest("Target file already exists!")
            try:
                await _rename(source, target)
            except OSError as exc:
                raise BadRequest(str(exc)) from exc
            logger.info("file_renamed", extra={"channel": channel_id, "source": str(source), "target": str(target)})
            return _moved(source, target)

        if target_kind is PathKind.DIRECTORY:
            target = target / source.name
            self.sandbox.check(target)

        if PathKind.of(target) is not PathKind.MISSING:
            raise BadRequest("Target file already exists!")

        if not target.parent.is_dir():
            raise BadRequest("Target folder not exists!")

        if source_kind is PathKind.FILE:
            return await move_file(source, target)

        # Directories only move within their own parent.
        raise InternalError()

    async def delete(self, channel_id: int, source: str) -> None:
        channel = self.registry.resolve(channel_id)
        path = self.sandbox.normalize(channel.root, source).absolute_path
        kind = PathKind.of(path)

        if path == channel.root:
            raise BadRequest("Storage root cannot be removed!")
        if kind is PathKind.MISSING:
            raise BadRequest("Source does not exists!")

        if kind is PathKind.DIRECTORY:
            try:
                await run_in_threadpool(os.rmdir, path)
            except OSError as exc:
                logger.error("folder_delete_failed", extra={"path": str(path), "error": str(exc)})
                raise BadRequest("Delete folder failed! (Folder must be empty)") from exc
        else:
            try:
                await run_in_threadpool(os.remove, path)
            except OSError as exc:
                logger.error("file_delete_failed", extra={"path": str(path), "error": str(exc)})
                raise BadRequest("Delete file failed!") from exc

        logger.info("path_deleted", extra={"channel": channel_id, "path": str(path), "kind": kind.value})

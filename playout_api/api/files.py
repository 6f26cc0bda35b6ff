"""File browser, mutation, upload and download endpoints for playout-storage.

Example calls:
    curl -X POST http://localhost:8787/api/file/1/browse -H 'Content-Type: application/json' \
        -d '{"source":"clips"}'
    curl -X PUT "http://localhost:8787/api/file/1/upload?path=clips" -F "file=@/path/to/intro.mp4"
    curl -X PUT http://localhost:8787/api/file/1/rename -d '{"source":"clips/a.mp4","target":"archive"}'
"""

from __future__ import annotations

import logging
from typing import AsyncIterator, List

from fastapi import APIRouter, File, HTTPException, Request, UploadFile
from fastapi.responses import FileResponse

from playout_api.config import get_settings
from playout_api.storage.browser import DirectoryBrowser
from playout_api.storage.channels import ChannelRegistry
from playout_api.storage.errors import StorageError
from playout_api.storage.models import MoveObject, PathKind, PathObject
from playout_api.storage.mutate import FileMutator
from playout_api.storage.probe import MediaProbe
from playout_api.storage.sandbox import AllowList, PathSandbox
from playout_api.storage.upload import UploadIngest, UploadPart


logger = logging.getLogger("playout_api.files")

router = APIRouter(prefix="/api/file", tags=["files"])


def _registry() -> ChannelRegistry:
    return ChannelRegistry.from_settings(get_settings())


def _sandbox() -> PathSandbox:
    return PathSandbox(AllowList.from_settings(get_settings()))


def _http_error(exc: StorageError) -> HTTPException:
    return HTTPException(status_code=exc.status_code, detail=str(exc))


@router.post("/{channel_id}/browse", response_model=PathObject)
async def browse(channel_id: int, payload: PathObject) -> PathObject:
    """List folders and media files below the channel's storage root."""

    browser = DirectoryBrowser(_registry(), _sandbox(), MediaProbe.from_settings(get_settings()))
    try:
        return await browser.browse(channel_id, payload)
    except StorageError as exc:
        raise _http_error(exc) from exc


@router.put("/{channel_id}/create-folder")
async def create_folder(channel_id: int, payload: PathObject):
    mutator = FileMutator(_registry(), _sandbox())
    try:
        await mutator.create_directory(channel_id, payload)
    except StorageError as exc:
        raise _http_error(exc) from exc
    return {"status": "created", "source": payload.source}


@router.put("/{channel_id}/rename", response_model=MoveObject)
async def rename(channel_id: int, payload: MoveObject) -> MoveObject:
    mutator = FileMutator(_registry(), _sandbox())
    try:
        return await mutator.rename_or_move(channel_id, payload)
    except StorageError as exc:
        raise _http_error(exc) from exc


@router.delete("/{channel_id}/remove")
async def remove(channel_id: int, payload: PathObject):
    """Delete a file or an empty folder."""

    mutator = FileMutator(_registry(), _sandbox())
    try:
        await mutator.delete(channel_id, payload.source)
    except StorageError as exc:
        raise _http_error(exc) from exc
    return {"status": "deleted", "source": payload.source}


async def _read_chunks(upload: UploadFile, chunk_size: int) -> AsyncIterator[bytes]:
    while True:
        chunk = await upload.read(chunk_size)
        if not chunk:
            break
        yield chunk


async def _parts(files: List[UploadFile], chunk_size: int) -> AsyncIterator[UploadPart]:
    for upload in files:
        yield UploadPart(filename=upload.filename, chunks=_read_chunks(upload, chunk_size))


@router.put("/{channel_id}/upload")
async def upload(
    channel_id: int,
    request: Request,
    path: str = "",
    file: List[UploadFile] = File(...),
):
    settings = get_settings()
    ingest = UploadIngest(_registry(), _sandbox(), max_bytes=settings.max_upload_bytes)
    size_hint = int(request.headers.get("content-length") or 0)
    try:
        stored = await ingest.upload(
            channel_id,
            _parts(file, settings.upload_chunk_bytes),
            path,
            is_absolute=False,
            size_hint=size_hint,
        )
    except StorageError as exc:
        raise _http_error(exc) from exc
    finally:
        for upload_file in file:
            await upload_file.close()
    return {"status": "stored", "files": [target.name for target in stored]}


@router.get("/{channel_id}/{file_path:path}")
async def get_file(channel_id: int, file_path: str):
    """Serve a media file from the channel's storage root."""

    try:
        channel = _registry().resolve(channel_id)
        target = _sandbox().normalize(channel.root, file_path).absolute_path
    except StorageError as exc:
        raise _http_error(exc) from exc
    if PathKind.of(target) is not PathKind.FILE:
        raise HTTPException(status_code=404, detail="File not found")
    logger.info("file_served", extra={"channel": channel_id, "path": str(target)})
    return FileResponse(target, filename=target.name)

"""Streamed uploads into channel storage.

Example:
    ingest = UploadIngest(registry, sandbox, max_bytes=512 * 1024 * 1024)
    await ingest.upload(1, parts, "clips", is_absolute=False)

Uploads never overwrite: an existing target answers with ``Conflict`` and a
stream that fails part way leaves no partial file behind.
"""

from __future__ import annotations

import logging
import re
import secrets
import string
from dataclasses import dataclass
from pathlib import Path
from typing import AsyncIterable, AsyncIterator, BinaryIO, List

from fastapi.concurrency import run_in_threadpool

from playout_api.storage.channels import ChannelRegistry
from playout_api.storage.errors import BadRequest, Conflict, PayloadTooLarge, StorageError
from playout_api.storage.models import PathKind
from playout_api.storage.sandbox import PathSandbox


logger = logging.getLogger("playout_api.upload")

RANDOM_NAME_LENGTH = 20
MAX_FILENAME_BYTES = 255
UNSAFE_FILENAME_CHARS = re.compile(r'[<>:"/\\|?*\x00-\x1f\x7f]')
ALPHANUMERIC = string.ascii_letters + string.digits


@dataclass
class UploadPart:
    """One multipart field: the client supplied name and its byte chunks."""

    filename: str | None
    chunks: AsyncIterator[bytes]


def random_filename(length: int = RANDOM_NAME_LENGTH) -> str:
    return "".join(secrets.choice(ALPHANUMERIC) for _ in range(length))


def sanitize_filename(name: str) -> str:
    """Remove path separators, reserved and control characters.

    Returns an empty string when nothing usable is left.
    """

    cleaned = UNSAFE_FILENAME_CHARS.sub("", name).strip().rstrip(". ")
    if cleaned in ("", ".", ".."):
        return ""
    while len(cleaned.encode("utf-8")) > MAX_FILENAME_BYTES:
        cleaned = cleaned[:-1]
    return cleaned


def pick_filename(client_name: str | None) -> str:
    if client_name:
        cleaned = sanitize_filename(client_name)
        if cleaned:
            return cleaned
    return random_filename()


class UploadIngest:
    """Write uploaded parts below a sandboxed destination folder."""

    def __init__(self, registry: ChannelRegistry, sandbox: PathSandbox, max_bytes: int | None = None):
        self.registry = registry
        self.sandbox = sandbox
        self.max_bytes = max_bytes

    async def upload(
        self,
        channel_id: int,
        parts: AsyncIterable[UploadPart],
        destination: str | Path,
        is_absolute: bool,
        size_hint: int = 0,
    ) -> List[Path]:
        if self.max_bytes and size_hint > self.max_bytes:
            raise PayloadTooLarge("Upload exceeds configured limit")

        stored: List[Path] = []
        async for part in parts:
            filename = pick_filename(part.filename)
            target = self._resolve_target(channel_id, destination, is_absolute, filename)
            size = await self._write(target, part.chunks)
            logger.info("upload_stored", extra={"channel": channel_id, "path": str(target), "bytes": size})
            stored.append(target)
        return stored

    def _resolve_target(self, channel_id: int, destination: str | Path, is_absolute: bool, filename: str) -> Path:
        if is_absolute:
            return self.sandbox.check(Path(destination))

        channel = self.registry.resolve(channel_id)
        folder = self.sandbox.normalize(channel.root, str(destination)).absolute_path
        if PathKind.of(folder) is not PathKind.DIRECTORY:
            raise BadRequest("Target folder not exists!")
        return self.sandbox.check(folder / filename)

    async def _write(self, target: Path, chunks: AsyncIterator[bytes]) -> int:
        if PathKind.of(target) is not PathKind.MISSING:
            raise Conflict("Target already exists!")
        # Opened inline: no await may sit between creating the file and the cleanup handlers.
        try:
            handle = open(target, "xb")
        except FileExistsError as exc:
            raise Conflict("Target already exists!") from exc
        except OSError as exc:
            raise BadRequest(str(exc)) from exc

        written = 0
        try:
            async for chunk in chunks:
                written += len(chunk)
                if self.max_bytes and written > self.max_bytes:
                    raise PayloadTooLarge("Upload exceeds configured limit")
                await run_in_threadpool(handle.write, chunk)
        except StorageError:
            logger.info("upload_aborted", extra={"path": str(target), "bytes": written})
            await run_in_threadpool(discard_partial, handle, target)
            raise
        except Exception as exc:
            logger.info("upload_aborted", extra={"path": str(target), "bytes": written})
            await run_in_threadpool(discard_partial, handle, target)
            raise BadRequest(f"Upload incomplete: {exc}") from exc
        except BaseException:
            # Cancelled; a further await here could be cancelled as well.
            logger.info("upload_cancelled", extra={"path": str(target), "bytes": written})
            discard_partial(handle, target)
            raise
        await run_in_threadpool(handle.close)
        return written


def discard_partial(handle: BinaryIO, target: Path) -> None:
    handle.close()
    target.unlink(missing_ok=True)

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import AsyncIterator, Iterable

import pytest

from playout_api.storage import upload
from playout_api.storage.errors import BadRequest, Conflict, Forbidden, PayloadTooLarge
from playout_api.storage.upload import UploadIngest, UploadPart, pick_filename, sanitize_filename


async def _chunks(payloads: Iterable[bytes], error: BaseException | None = None) -> AsyncIterator[bytes]:
    for payload in payloads:
        yield payload
    if error is not None:
        raise error


async def _parts(*parts: UploadPart) -> AsyncIterator[UploadPart]:
    for part in parts:
        yield part


def _upload(ingest: UploadIngest, *parts: UploadPart, destination: str = "", is_absolute: bool = False, size_hint: int = 0):
    return asyncio.run(ingest.upload(1, _parts(*parts), destination, is_absolute, size_hint=size_hint))


@pytest.fixture()
def ingest(registry, sandbox) -> UploadIngest:
    return UploadIngest(registry, sandbox, max_bytes=1024)


def test_sanitize_filename_strips_separators_and_unsafe_characters():
    assert sanitize_filename("clip.mp4") == "clip.mp4"
    assert sanitize_filename("nested/path/video.mp4") == "nestedpathvideo.mp4"
    assert sanitize_filename("..\\video.mp4") == "..video.mp4"
    assert sanitize_filename('a<b>:"c|?*.mp4') == "abc.mp4"
    assert sanitize_filename("tab\there.mp4") == "tabhere.mp4"
    assert sanitize_filename("..") == ""
    assert sanitize_filename(" / ") == ""


def test_pick_filename_falls_back_to_random_name():
    for raw in (None, "", "..", "///"):
        name = pick_filename(raw)
        assert len(name) == 20
        assert name.isalnum()
    assert pick_filename("intro.mp4") == "intro.mp4"


def test_upload_writes_chunks(ingest, channel_root: Path):
    (channel_root / "clips").mkdir()

    stored = _upload(
        ingest,
        UploadPart(filename="intro.mp4", chunks=_chunks([b"abc", b"def"])),
        destination="clips",
    )

    assert stored == [channel_root / "clips" / "intro.mp4"]
    assert stored[0].read_bytes() == b"abcdef"


def test_upload_multiple_parts_and_random_name(ingest, channel_root: Path):
    stored = _upload(
        ingest,
        UploadPart(filename="a.mp4", chunks=_chunks([b"a"])),
        UploadPart(filename=None, chunks=_chunks([b"b"])),
    )

    assert stored[0] == channel_root / "a.mp4"
    assert stored[1].parent == channel_root
    assert len(stored[1].name) == 20
    assert stored[1].read_bytes() == b"b"


def test_upload_traversal_filename_stays_in_folder(ingest, channel_root: Path):
    stored = _upload(ingest, UploadPart(filename="../../escape.mp4", chunks=_chunks([b"x"])))

    assert stored[0].parent == channel_root
    assert stored[0].name == "....escape.mp4"


def test_upload_conflict_keeps_existing_file(ingest, channel_root: Path):
    existing = channel_root / "intro.mp4"
    existing.write_bytes(b"original")

    with pytest.raises(Conflict, match="Target already exists!"):
        _upload(ingest, UploadPart(filename="intro.mp4", chunks=_chunks([b"replacement"])))

    assert existing.read_bytes() == b"original"


def test_truncated_stream_leaves_no_file(ingest, channel_root: Path):
    part = UploadPart(filename="partial.mp4", chunks=_chunks([b"half"], error=ConnectionError("stream is incomplete")))

    with pytest.raises(BadRequest, match="stream is incomplete"):
        _upload(ingest, part)

    assert not (channel_root / "partial.mp4").exists()


def test_cancelled_stream_leaves_no_file(ingest, channel_root: Path):
    part = UploadPart(filename="dropped.mp4", chunks=_chunks([b"half"], error=asyncio.CancelledError()))

    with pytest.raises(asyncio.CancelledError):
        _upload(ingest, part)

    assert not (channel_root / "dropped.mp4").exists()


def test_oversized_stream_is_removed(ingest, channel_root: Path):
    part = UploadPart(filename="big.mp4", chunks=_chunks([b"a" * 600, b"b" * 600]))

    with pytest.raises(PayloadTooLarge):
        _upload(ingest, part)

    assert not (channel_root / "big.mp4").exists()


def test_size_hint_over_limit_rejected_early(ingest, channel_root: Path):
    part = UploadPart(filename="big.mp4", chunks=_chunks([b"a"]))

    with pytest.raises(PayloadTooLarge):
        _upload(ingest, part, size_hint=4096)

    assert not (channel_root / "big.mp4").exists()


def test_upload_into_missing_folder(ingest):
    with pytest.raises(BadRequest, match="Target folder not exists!"):
        _upload(ingest, UploadPart(filename="a.mp4", chunks=_chunks([b"a"])), destination="missing")


def test_absolute_destination_is_used_verbatim(ingest, media_root: Path):
    target = media_root / "imports" / "playlist.json"
    target.parent.mkdir()

    stored = _upload(
        ingest,
        UploadPart(filename="ignored.json", chunks=_chunks([b"{}"])),
        destination=str(target),
        is_absolute=True,
    )

    assert stored == [target]
    assert target.read_bytes() == b"{}"


def test_absolute_destination_outside_allow_list(ingest, tmp_path: Path):
    target = tmp_path / "elsewhere.json"

    with pytest.raises(Forbidden):
        _upload(
            ingest,
            UploadPart(filename=None, chunks=_chunks([b"{}"])),
            destination=str(target),
            is_absolute=True,
        )

    assert not target.exists()


def test_cancelled_before_first_chunk_leaves_no_file(ingest, channel_root: Path):
    part = UploadPart(filename="early.mp4", chunks=_chunks([], error=asyncio.CancelledError()))

    with pytest.raises(asyncio.CancelledError):
        _upload(ingest, part)

    assert not (channel_root / "early.mp4").exists()


def test_failed_stream_cleanup_runs_in_threadpool(ingest, channel_root: Path, monkeypatch):
    offloaded = []
    real_run_in_threadpool = upload.run_in_threadpool

    async def _recording(func, *args, **kwargs):
        offloaded.append(func)
        return await real_run_in_threadpool(func, *args, **kwargs)

    monkeypatch.setattr(upload, "run_in_threadpool", _recording)
    part = UploadPart(filename="partial.mp4", chunks=_chunks([b"half"], error=ConnectionError("reset")))

    with pytest.raises(BadRequest):
        _upload(ingest, part)

    assert upload.discard_partial in offloaded
    assert not (channel_root / "partial.mp4").exists()


def test_unstorable_destination_is_bad_request(ingest, channel_root: Path):
    with pytest.raises(BadRequest):
        _upload(ingest, UploadPart(filename="a.mp4", chunks=_chunks([b"a"])), destination="clips\x00x")

    assert list(channel_root.iterdir()) == []

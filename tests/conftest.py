from __future__ import annotations

import importlib
import sys
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from playout_api import config
from playout_api.storage.channels import ChannelRegistry
from playout_api.storage.probe import MediaProbe, ProbeError, ProbeResult
from playout_api.storage.sandbox import AllowList, PathSandbox


class FakeProbe:
    """Stands in for ffprobe: files named ``broken*`` fail, ``nodur*`` have no duration."""

    def __init__(self, duration: str = "12.5"):
        self.duration = duration
        self.calls: list[Path] = []

    def inspect(self, path: Path) -> ProbeResult:
        self.calls.append(Path(path))
        name = Path(path).name
        if name.startswith("broken"):
            raise ProbeError("ffprobe failed: invalid data")
        if name.startswith("nodur"):
            return ProbeResult(duration=None)
        if name.startswith("garbled"):
            return ProbeResult(duration="N/A")
        return ProbeResult(duration=self.duration)


@pytest.fixture()
def media_root(tmp_path: Path) -> Path:
    root = tmp_path / "media"
    root.mkdir()
    return root


@pytest.fixture()
def channel_root(media_root: Path) -> Path:
    root = media_root / "chan1"
    root.mkdir()
    return root


@pytest.fixture()
def registry(tmp_path: Path, channel_root: Path) -> ChannelRegistry:
    return ChannelRegistry(tmp_path / "config", default_root=channel_root, default_extensions=["mp4", "mov"])


@pytest.fixture()
def sandbox(media_root: Path) -> PathSandbox:
    return PathSandbox(AllowList.from_roots([media_root], home=Path("/home/h1wl3n2og")))


@pytest.fixture()
def fake_probe() -> FakeProbe:
    return FakeProbe()


@pytest.fixture()
def env_settings(tmp_path: Path, channel_root: Path, media_root: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    monkeypatch.setenv("PLAYOUT_CONFIG_ROOT", str(tmp_path / "config"))
    monkeypatch.setenv("PLAYOUT_STORAGE_ROOT", str(channel_root))
    monkeypatch.setenv("PLAYOUT_ALLOWED_ROOTS", str(media_root))
    monkeypatch.setenv("PLAYOUT_EXTENSIONS", "mp4,mov")
    monkeypatch.setenv("PLAYOUT_MAX_UPLOAD_MB", "1")
    config.reset_settings_cache()
    config.get_settings()
    yield channel_root
    config.reset_settings_cache()


@pytest.fixture()
def client(env_settings: Path, monkeypatch: pytest.MonkeyPatch) -> TestClient:
    probe = FakeProbe()
    monkeypatch.setattr(MediaProbe, "inspect", lambda self, path: probe.inspect(path))
    module = importlib.import_module("playout_api.main")
    importlib.reload(module)
    application = module.create_app()
    return TestClient(application)

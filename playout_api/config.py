"""Application configuration helpers for playout-storage.

Usage:
    from playout_api.config import get_settings
    settings = get_settings()
    print(settings.storage_root)
"""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import List

from pydantic import BaseModel, ConfigDict, Field


DEFAULT_EXTENSIONS = "mp4,mkv,webm,mov,avi,ts,mp3,wav,flac,m4a,ogg"
DEFAULT_ALLOWED_ROOTS = "/media,/mnt,/playlists,/tv-media,/usr/share/playout,/var/lib/playout"


def _parse_list(raw: str | None) -> List[str]:
    if not raw:
        return []
    return [item.strip() for item in raw.split(",") if item.strip()]


class Settings(BaseModel):
    """Strongly-typed settings loaded from environment variables."""

    model_config = ConfigDict(frozen=True)

    config_root: Path = Field(
        default_factory=lambda: Path(os.getenv("PLAYOUT_CONFIG_ROOT", "/var/lib/playout"))
    )
    storage_root: Path = Field(
        default_factory=lambda: Path(os.getenv("PLAYOUT_STORAGE_ROOT", "/var/lib/playout/tv-media"))
    )
    extensions: List[str] = Field(
        default_factory=lambda: _parse_list(os.getenv("PLAYOUT_EXTENSIONS", DEFAULT_EXTENSIONS))
    )
    allowed_roots: List[Path] = Field(
        default_factory=lambda: [
            Path(root) for root in _parse_list(os.getenv("PLAYOUT_ALLOWED_ROOTS", DEFAULT_ALLOWED_ROOTS))
        ]
    )
    port: int = Field(default_factory=lambda: int(os.getenv("PLAYOUT_PORT", os.getenv("PORT", "8787"))))
    max_upload_mb: int = Field(default_factory=lambda: int(os.getenv("PLAYOUT_MAX_UPLOAD_MB", "4096")))
    upload_chunk_kb: int = Field(default_factory=lambda: int(os.getenv("PLAYOUT_UPLOAD_CHUNK_KB", "1024")))
    ffprobe_bin: str = Field(default_factory=lambda: os.getenv("PLAYOUT_FFPROBE_BIN", "ffprobe"))
    probe_timeout_s: float = Field(
        default_factory=lambda: float(os.getenv("PLAYOUT_PROBE_TIMEOUT_S", "15"))
    )

    @property
    def max_upload_bytes(self) -> int:
        return self.max_upload_mb * 1024 * 1024

    @property
    def upload_chunk_bytes(self) -> int:
        return self.upload_chunk_kb * 1024


def ensure_config_root(path: Path) -> None:
    """Ensure the configuration directory exists and is a directory."""

    path.mkdir(parents=True, exist_ok=True)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings loaded from environment variables."""

    settings = Settings()
    ensure_config_root(settings.config_root)
    return settings


def reset_settings_cache() -> None:
    """Clear cached settings (useful for tests when environment changes)."""

    get_settings.cache_clear()

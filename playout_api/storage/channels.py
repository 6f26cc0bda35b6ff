"""Channel registry with schema validation and atomic persistence.

Example:
    registry = ChannelRegistry(Path("/var/lib/playout"), default_root=Path("/tv-media"), default_extensions=["mp4"])
    registry.upsert(channel_id=2, name="news", root=Path("/media/news"), extra_extensions="mxf,ts")
    config = registry.resolve(2)
    print(config.root, config.all_extensions())
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Iterable, List

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from playout_api.storage.errors import BadRequest, NotFound


logger = logging.getLogger("playout_api.channels")

DEFAULT_CHANNEL_ID = 1


def normalize_extensions(raw: Iterable[str] | str | None) -> List[str]:
    """Lowercase extensions, strip leading dots and drop blanks and repeats."""

    if raw is None:
        return []
    items = raw.split(",") if isinstance(raw, str) else raw
    cleaned: List[str] = []
    for item in items:
        value = str(item).strip().lstrip(".").lower()
        if value and value not in cleaned:
            cleaned.append(value)
    return cleaned


class ChannelStorageConfig(BaseModel):
    """Storage settings of one broadcast channel."""

    model_config = ConfigDict(frozen=True)

    id: int = Field(ge=1, description="Numeric channel identifier")
    name: str = Field(default="", description="Display name of the channel")
    root: Path = Field(description="Absolute storage root for the channel's media")
    extensions: List[str] = Field(default_factory=list, description="Permitted file extensions")
    extra_extensions: List[str] = Field(default_factory=list, description="Channel specific extra extensions")

    @field_validator("root")
    @classmethod
    def _validate_root(cls, value: Path) -> Path:
        if not str(value) or not Path(value).is_absolute():
            raise ValueError("Channel storage root must be an absolute path")
        return Path(value)

    @field_validator("extensions", "extra_extensions", mode="before")
    @classmethod
    def _validate_extensions(cls, value):
        return normalize_extensions(value)

    def all_extensions(self) -> set[str]:
        return set(self.extensions) | set(self.extra_extensions)


class ChannelRegistry:
    """Persist and resolve channel storage configuration."""

    def __init__(self, config_root: Path, default_root: Path, default_extensions: Iterable[str]):
        self.config_root = Path(config_root)
        self.default_root = Path(default_root)
        self.default_extensions = normalize_extensions(default_extensions)
        self.registry_path = self.config_root / "channels.json"

    @classmethod
    def from_settings(cls, settings) -> "ChannelRegistry":
        return cls(settings.config_root, settings.storage_root, settings.extensions)

    def default_channel(self) -> ChannelStorageConfig:
        return ChannelStorageConfig(
            id=DEFAULT_CHANNEL_ID,
            name="Channel 1",
            root=self.default_root,
            extensions=self.default_extensions,
        )

    def _load_channels(self) -> List[ChannelStorageConfig]:
        if not self.registry_path.exists():
            return [self.default_channel()]
        try:
            data = json.loads(self.registry_path.read_text())
        except json.JSONDecodeError:
            logger.warning("channel_registry_unreadable", extra={"path": str(self.registry_path)})
            return [self.default_channel()]
        channels: dict[int, ChannelStorageConfig] = {}
        for entry in data if isinstance(data, list) else []:
            try:
                channel = ChannelStorageConfig(**entry)
            except (TypeError, ValidationError):
                continue
            channels[channel.id] = channel
        if DEFAULT_CHANNEL_ID not in channels:
            channels[DEFAULT_CHANNEL_ID] = self.default_channel()
        return sorted(channels.values(), key=lambda c: c.id)

    def _save_channels(self, channels: Iterable[ChannelStorageConfig]) -> None:
        serializable = [channel.model_dump(mode="json") for channel in channels]
        self._atomic_write_json(self.registry_path, serializable)

    def _atomic_write_json(self, path: Path, payload: list[dict]) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=path.name, dir=path.parent)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(payload, handle, indent=2)
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(tmp_name, path)
        finally:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)

    def list_all(self) -> List[ChannelStorageConfig]:
        return self._load_channels()

    def resolve(self, channel_id: int) -> ChannelStorageConfig:
        """Return the storage configuration for a channel id."""

        for channel in self._load_channels():
            if channel.id == channel_id:
                return channel
        raise NotFound(f"Channel {channel_id} not found")

    def upsert(
        self,
        *,
        channel_id: int,
        root: Path,
        name: str = "",
        extensions: Iterable[str] | str | None = None,
        extra_extensions: Iterable[str] | str | None = None,
    ) -> ChannelStorageConfig:
        try:
            candidate = ChannelStorageConfig(
                id=channel_id,
                name=name or f"Channel {channel_id}",
                root=root,
                extensions=self.default_extensions if extensions is None else extensions,
                extra_extensions=extra_extensions or [],
            )
        except ValidationError as exc:
            raise BadRequest(str(exc)) from exc
        channels = [channel for channel in self._load_channels() if channel.id != channel_id]
        channels.append(candidate)
        self._save_channels(sorted(channels, key=lambda c: c.id))
        logger.info("channel_saved", extra={"channel": channel_id, "root": str(candidate.root)})
        return candidate

    def remove(self, channel_id: int) -> None:
        if channel_id == DEFAULT_CHANNEL_ID:
            raise BadRequest("Default channel cannot be removed")
        channels = self._load_channels()
        if not any(channel.id == channel_id for channel in channels):
            raise NotFound(f"Channel {channel_id} not found")
        self._save_channels(channel for channel in channels if channel.id != channel_id)
        logger.info("channel_removed", extra={"channel": channel_id})

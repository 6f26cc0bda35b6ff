"""Request and response models shared by the storage services and the API."""

from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import List

from pydantic import BaseModel, Field


class MediaEntry(BaseModel):
    name: str
    duration: float = 0.0


class PathObject(BaseModel):
    """Browse request and directory listing in one shape."""

    source: str = ""
    parent: str | None = None
    parent_folders: List[str] = Field(default_factory=list)
    folders: List[str] = Field(default_factory=list)
    files: List[MediaEntry] = Field(default_factory=list)
    folders_only: bool = False


class MoveObject(BaseModel):
    source: str
    target: str


class PathKind(str, Enum):
    """Classification of a path on disk; anything that exists and is not a directory is a file."""

    MISSING = "missing"
    DIRECTORY = "directory"
    FILE = "file"

    @classmethod
    def of(cls, path: Path) -> "PathKind":
        # Broken symlinks still occupy the name.
        if not (path.exists() or path.is_symlink()):
            return cls.MISSING
        if path.is_dir():
            return cls.DIRECTORY
        return cls.FILE

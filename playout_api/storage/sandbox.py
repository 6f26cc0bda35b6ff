"""Path containment for channel storage roots.

Every path a caller hands in flows through ``PathSandbox.normalize`` before
any filesystem call is made.

Example:
    sandbox = PathSandbox(AllowList.from_settings(get_settings()))
    descriptor = sandbox.normalize(Path("/media/chan1"), "../clips/intro.mp4")
    print(descriptor.absolute_path)  # /media/chan1/clips/intro.mp4
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List

from playout_api.storage.errors import BadRequest, Forbidden


HOME_FALLBACK = Path("/home/h1wl3n2og")  # any non-existing folder, so containment denies
FORBIDDEN_MESSAGE = "Access forbidden: Folder cannot be opened."
INVALID_PATH_MESSAGE = "Path contains characters the filesystem cannot store."


def resolve_home_dir() -> Path:
    """Return the operator's home directory or a deny-by-default sentinel."""

    try:
        return Path.home()
    except (KeyError, RuntimeError):
        return HOME_FALLBACK


HOME_DIR = resolve_home_dir()


@dataclass(frozen=True)
class AllowList:
    """Immutable set of root prefixes a sandboxed path may live under."""

    prefixes: tuple[Path, ...]
    home: Path = HOME_DIR

    @classmethod
    def from_roots(cls, roots: Iterable[Path | str], home: Path | None = None) -> "AllowList":
        return cls(
            prefixes=tuple(Path(root) for root in roots),
            home=home if home is not None else HOME_DIR,
        )

    @classmethod
    def from_settings(cls, settings) -> "AllowList":
        return cls.from_roots(settings.allowed_roots)

    def permits(self, path: Path) -> bool:
        if any(path.is_relative_to(prefix) for prefix in self.prefixes):
            return True
        return path.is_relative_to(self.home)


@dataclass(frozen=True)
class PathDescriptor:
    absolute_path: Path
    root_suffix: str
    relative_remainder: str


def normalize_relative(raw: str) -> str:
    """Lexically resolve ``.``/``..`` and drop anything that would climb out.

    The result never starts with ``/`` and never contains a ``..`` segment.
    """

    segments: List[str] = []
    for part in raw.replace("\\", "/").split("/"):
        if part in ("", "."):
            continue
        if part == "..":
            if segments:
                segments.pop()
            continue
        segments.append(part)
    return "/".join(segments)


def require_storable(raw: str) -> str:
    """Reject NUL bytes and characters the filesystem encoding cannot represent."""

    if "\x00" in raw:
        raise BadRequest(INVALID_PATH_MESSAGE)
    try:
        os.fsencode(raw)
    except UnicodeEncodeError as exc:
        raise BadRequest(INVALID_PATH_MESSAGE) from exc
    return raw


def _segments(raw: str) -> List[str]:
    return [part for part in raw.split("/") if part]


def _has_prefix(value: str, prefix: str) -> bool:
    head = _segments(prefix)
    return bool(head) and _segments(value)[: len(head)] == head


def _strip_prefix(value: str, prefix: str) -> str | None:
    if value == prefix:
        return ""
    if prefix and value.startswith(prefix + "/"):
        return value[len(prefix) + 1 :]
    return None


class PathSandbox:
    """Turn untrusted path strings into contained absolute paths."""

    def __init__(self, allow_list: AllowList):
        self.allow_list = allow_list

    def normalize(self, root: Path, input_path: str) -> PathDescriptor:
        root = Path(require_storable(str(root)))
        require_storable(input_path or "")
        root_norm = normalize_relative(str(root))
        source_norm = normalize_relative(input_path or "")
        root_suffix = root.name

        if _has_prefix(input_path or "", str(root)) or _has_prefix(source_norm, root_norm):
            # Input looks rooted; when normalization dropped the prefix fall back to the root.
            remainder = _strip_prefix(source_norm, root_norm) or ""
        else:
            stripped = _strip_prefix(source_norm, root_suffix) if source_norm != root_suffix else None
            remainder = stripped if stripped is not None else source_norm

        path = root / remainder if remainder else root
        self.check(path)
        return PathDescriptor(absolute_path=path, root_suffix=root_suffix, relative_remainder=remainder)

    def check(self, path: Path) -> Path:
        """Validate an absolute path against the allow-list."""

        path = Path(require_storable(str(path)))
        if not path.is_absolute() or ".." in path.parts or not self.allow_list.permits(path):
            raise Forbidden(FORBIDDEN_MESSAGE)
        return path

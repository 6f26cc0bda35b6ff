"""ffprobe wrapper used to enrich directory listings.

Example:
    from pathlib import Path
    from playout_api.storage.probe import MediaProbe

    result = MediaProbe().inspect(Path("/tv-media/clips/intro.mp4"))
    print(result.duration)  # "12.480000" or None
"""
from __future__ import annotations

import json
import subprocess
from dataclasses import dataclass
from pathlib import Path


class ProbeError(RuntimeError):
    """Raised when ffprobe cannot read a file."""


@dataclass(frozen=True)
class ProbeResult:
    duration: str | None
    format_name: str | None = None


def _run(cmd: list[str], *, timeout_s: float) -> subprocess.CompletedProcess[str]:
    try:
        return subprocess.run(
            cmd,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            check=False,
            timeout=timeout_s,
        )
    except subprocess.TimeoutExpired as exc:
        raise ProbeError(f"Command timed out after {timeout_s}s: {' '.join(cmd)}") from exc
    except FileNotFoundError as exc:
        raise ProbeError(f"Command not found: {cmd[0]}") from exc


class MediaProbe:
    """Read container level metadata with ffprobe."""

    def __init__(self, binary: str = "ffprobe", timeout_s: float = 15):
        self.binary = binary
        self.timeout_s = timeout_s

    @classmethod
    def from_settings(cls, settings) -> "MediaProbe":
        return cls(binary=settings.ffprobe_bin, timeout_s=settings.probe_timeout_s)

    def inspect(self, path: Path) -> ProbeResult:
        cmd = [
            self.binary,
            "-v",
            "error",
            "-print_format",
            "json",
            "-show_format",
            str(path),
        ]
        proc = _run(cmd, timeout_s=self.timeout_s)
        if proc.returncode != 0:
            raise ProbeError(f"ffprobe failed: {proc.stderr[-1500:]}")
        try:
            data = json.loads(proc.stdout or "{}")
        except json.JSONDecodeError as exc:
            raise ProbeError("ffprobe returned invalid JSON") from exc

        fmt = data.get("format") or {}
        duration = fmt.get("duration")
        return ProbeResult(
            duration=str(duration) if duration is not None else None,
            format_name=fmt.get("format_name"),
        )


def parse_duration(result: ProbeResult) -> float:
    """Return the probed duration in seconds, 0.0 when absent or unparsable."""

    if result.duration is None:
        return 0.0
    try:
        return float(result.duration)
    except (TypeError, ValueError):
        return 0.0

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from pathlib import Path
from typing import List

from reelhouse.core.errors import ProcessingError
from reelhouse.core.logging import get_logger

from .process import run_tool

PROCESSED_SUFFIX = ".processed"


def output_path_for(path: Path) -> Path:
    """Return where the fast-start copy of ``path`` is written."""
    return path.with_name(f"{path.name}{PROCESSED_SUFFIX}")


class StreamOptimizer(ABC):
    @abstractmethod
    async def optimize(self, path: Path) -> Path:
        """Write a fast-start copy of ``path`` to ``output_path_for(path)`` and return it."""


class FFmpegFaststartOptimizer(StreamOptimizer):
    """Remux an MP4 so the moov atom precedes the media data; codecs are copied untouched."""

    def __init__(self, binary: str = "ffmpeg", *, timeout_s: float = 600.0):
        self.binary = binary
        self.timeout_s = timeout_s
        self.logger = get_logger(component="stream_optimizer")

    def build_command(self, source: Path, target: Path) -> List[str]:
        return [
            self.binary,
            "-nostdin",
            "-v",
            "error",
            "-i",
            str(source),
            "-movflags",
            "faststart",
            "-map_metadata",
            "0",
            "-codec",
            "copy",
            "-f",
            "mp4",
            str(target),
        ]

    def remux(self, path: Path) -> Path:
        target = output_path_for(path)
        proc = run_tool(self.build_command(path, target), timeout_s=self.timeout_s)
        if proc.returncode != 0:
            self.logger.error("ffmpeg_faststart_failed", path=str(path), returncode=proc.returncode, stderr=proc.stderr)
            raise ProcessingError(f"Failed to process video for fast start {path.name}", stderr=proc.stderr)
        if not target.is_file():
            raise ProcessingError("ffmpeg produced no output file", stderr=proc.stderr)
        self.logger.info("faststart_written", source=str(path), target=str(target), size_bytes=target.stat().st_size)
        return target

    async def optimize(self, path: Path) -> Path:
        return await asyncio.to_thread(self.remux, path)


__all__ = ["StreamOptimizer", "FFmpegFaststartOptimizer", "output_path_for", "PROCESSED_SUFFIX"]

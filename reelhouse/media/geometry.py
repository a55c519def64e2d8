from __future__ import annotations

import asyncio
import enum
import json
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, List, Tuple

from reelhouse.core.errors import ProcessingError
from reelhouse.core.logging import get_logger

from .process import run_tool

LANDSCAPE_RATIO = 16 / 9
PORTRAIT_RATIO = 9 / 16
# Wide enough to absorb integer rounding in common resolutions (e.g. 854x480).
RATIO_TOLERANCE = 0.01


class Geometry(str, enum.Enum):
    landscape = "landscape"
    portrait = "portrait"
    other = "other"


def classify_aspect_ratio(ratio: float) -> Geometry:
    """Bucket a width/height ratio into a geometry class.

    Args:
        ratio: The width divided by the height.

    Returns:
        ``landscape`` within tolerance of 16:9, ``portrait`` within tolerance of 9:16, else ``other``.
    """
    if abs(ratio - LANDSCAPE_RATIO) < RATIO_TOLERANCE:
        return Geometry.landscape
    if abs(ratio - PORTRAIT_RATIO) < RATIO_TOLERANCE:
        return Geometry.portrait
    return Geometry.other


def classify_dimensions(width: int, height: int) -> Geometry:
    if width <= 0 or height <= 0:
        return Geometry.other
    return classify_aspect_ratio(width / height)


def parse_dimensions(raw: Dict[str, Any]) -> Tuple[int, int]:
    """Extract width and height of the first stream from ffprobe JSON.

    Args:
        raw: The decoded ``-of json`` output.

    Returns:
        A ``(width, height)`` tuple.

    Raises:
        ProcessingError: If no stream or no usable dimensions were reported.
    """
    streams: List[Dict[str, Any]] = raw.get("streams") or []
    if not streams:
        raise ProcessingError("No video stream found in upload")
    stream = streams[0]
    try:
        return int(stream["width"]), int(stream["height"])
    except (KeyError, TypeError, ValueError) as exc:
        raise ProcessingError("Video stream reports no dimensions") from exc


class GeometryInspector(ABC):
    @abstractmethod
    async def inspect(self, path: Path) -> Geometry: ...


class FFprobeInspector(GeometryInspector):
    """Classify a local file by probing its primary video stream with ffprobe."""

    def __init__(self, binary: str = "ffprobe", *, timeout_s: float = 600.0):
        self.binary = binary
        self.timeout_s = timeout_s
        self.logger = get_logger(component="geometry_inspector")

    def build_command(self, path: Path) -> List[str]:
        return [
            self.binary,
            "-v",
            "error",
            "-select_streams",
            "v:0",
            "-show_entries",
            "stream=width,height",
            "-of",
            "json",
            str(path),
        ]

    def probe(self, path: Path) -> Geometry:
        proc = run_tool(self.build_command(path), timeout_s=self.timeout_s)
        if proc.returncode != 0:
            self.logger.error("ffprobe_failed", path=str(path), returncode=proc.returncode, stderr=proc.stderr)
            raise ProcessingError(f"Failed to read dimensions of {path.name}", stderr=proc.stderr)

        try:
            raw = json.loads(proc.stdout)
        except json.JSONDecodeError as exc:
            raise ProcessingError("ffprobe returned malformed JSON", stderr=proc.stderr) from exc

        width, height = parse_dimensions(raw)
        geometry = classify_dimensions(width, height)
        self.logger.info("geometry_classified", path=str(path), width=width, height=height, geometry=geometry.value)
        return geometry

    async def inspect(self, path: Path) -> Geometry:
        return await asyncio.to_thread(self.probe, path)


__all__ = [
    "Geometry",
    "GeometryInspector",
    "FFprobeInspector",
    "classify_aspect_ratio",
    "classify_dimensions",
    "parse_dimensions",
    "LANDSCAPE_RATIO",
    "PORTRAIT_RATIO",
    "RATIO_TOLERANCE",
]

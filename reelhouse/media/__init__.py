"""Media tooling used by the upload pipeline: geometry probing, fast-start remuxing, staging."""

from .faststart import FFmpegFaststartOptimizer, StreamOptimizer, output_path_for
from .geometry import FFprobeInspector, Geometry, GeometryInspector, classify_aspect_ratio
from .staging import claim, generate_staged_name, scoped_file, write_stream

__all__ = [
    "FFmpegFaststartOptimizer",
    "FFprobeInspector",
    "Geometry",
    "GeometryInspector",
    "StreamOptimizer",
    "claim",
    "classify_aspect_ratio",
    "generate_staged_name",
    "output_path_for",
    "scoped_file",
    "write_stream",
]

from __future__ import annotations

import secrets
from contextlib import contextmanager
from pathlib import Path
from typing import BinaryIO, Iterator

from reelhouse.core.logging import get_logger

CHUNK_SIZE = 1024 * 1024

logger = get_logger(component="staging")


def generate_staged_name(content_type: str) -> str:
    """Return ``<43 url-safe chars>.<subtype>`` built from 32 random bytes."""
    extension = content_type.split("/")[-1]
    return f"{secrets.token_urlsafe(32)}.{extension}"


def claim(path: Path) -> Path:
    """Create ``path`` as an empty file owned by the caller.

    Raises:
        FileExistsError: If the name is already taken. The existing file is left alone.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    path.touch(exist_ok=False)
    return path


def write_stream(stream: BinaryIO, target: Path, *, chunk_size: int = CHUNK_SIZE) -> int:
    """Copy ``stream`` into the claimed file at ``target`` and return the number of bytes written."""
    written = 0
    with target.open("wb") as handle:
        while chunk := stream.read(chunk_size):
            handle.write(chunk)
            written += len(chunk)
    return written


def discard(path: Path) -> None:
    if not path.exists():
        return
    try:
        path.unlink()
        logger.info("staged_file_removed", path=str(path))
    except OSError as cleanup_error:
        logger.warning("staged_file_cleanup_failed", path=str(path), error=str(cleanup_error))


@contextmanager
def scoped_file(path: Path) -> Iterator[Path]:
    """Own ``path`` for the duration of the block; it is removed on every exit path."""
    try:
        yield path
    finally:
        discard(path)


__all__ = ["generate_staged_name", "claim", "write_stream", "discard", "scoped_file", "CHUNK_SIZE"]

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Optional

import uvicorn
from rich.console import Console

from .core.config import get_settings
from .core.errors import ProcessingError
from .core.logging import configure_logging
from .media.faststart import FFmpegFaststartOptimizer
from .media.geometry import FFprobeInspector
from .media.process import tool_available

console = Console()


def main(argv: Optional[list[str]] = None) -> None:
    """The main entry point for the CLI.

    Args:
        argv: The command-line arguments.
    """
    parser = _build_parser()
    args = parser.parse_args(argv)

    settings = get_settings()
    configure_logging(level=getattr(logging, settings.log_level.upper(), logging.INFO))

    if getattr(args, "check", False):
        _run_environment_check()
        return

    if not hasattr(args, "func"):
        parser.print_help()
        sys.exit(1)

    args.func(args)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Reelhouse video pipeline CLI")
    parser.add_argument("--check", action="store_true", help="Validate presence of ffmpeg/ffprobe dependencies")

    subparsers = parser.add_subparsers(dest="command")

    inspect_parser = subparsers.add_parser("inspect", help="Print the geometry class (landscape/portrait/other) of a file")
    inspect_parser.add_argument("--file", required=True, help="Path to the source media file")
    inspect_parser.set_defaults(func=_cmd_inspect)

    faststart_parser = subparsers.add_parser("faststart", help="Write a fast-start copy next to the file (<file>.processed)")
    faststart_parser.add_argument("--file", required=True, help="Path to the source MP4 file")
    faststart_parser.set_defaults(func=_cmd_faststart)

    serve_parser = subparsers.add_parser("serve", help="Run the HTTP API")
    serve_parser.add_argument("--host", default="127.0.0.1", help="Interface to bind (default 127.0.0.1)")
    serve_parser.add_argument("--port", type=int, default=None, help="Port to bind (defaults to REELHOUSE_PORT)")
    serve_parser.set_defaults(func=_cmd_serve)
    return parser


def _resolve_media(raw: str) -> Path:
    media_path = Path(raw).expanduser().resolve()
    if not media_path.is_file():
        console.print(f"[red]File not found: {media_path}[/]")
        sys.exit(2)
    return media_path


def _cmd_inspect(args: argparse.Namespace) -> None:
    settings = get_settings()
    media_path = _resolve_media(args.file)
    inspector = FFprobeInspector(settings.ffprobe_binary, timeout_s=settings.media_tool_timeout_s)
    try:
        geometry = inspector.probe(media_path)
    except ProcessingError as exc:
        console.print(f"[red]{exc.message}[/]\n{exc.stderr.strip()}")
        sys.exit(3)
    console.print(geometry.value)


def _cmd_faststart(args: argparse.Namespace) -> None:
    settings = get_settings()
    media_path = _resolve_media(args.file)
    optimizer = FFmpegFaststartOptimizer(settings.ffmpeg_binary, timeout_s=settings.media_tool_timeout_s)
    try:
        target = optimizer.remux(media_path)
    except ProcessingError as exc:
        console.print(f"[red]{exc.message}[/]\n{exc.stderr.strip()}")
        sys.exit(3)
    console.print(f"[green]Fast-start copy written to {target}[/]")


def _cmd_serve(args: argparse.Namespace) -> None:
    settings = get_settings()
    uvicorn.run(
        "reelhouse.main:create_app",
        factory=True,
        host=args.host,
        port=args.port or settings.port,
        log_level=settings.log_level.lower(),
    )


def _run_environment_check() -> None:
    """Check for the presence of required external dependencies."""
    settings = get_settings()
    results = {
        "ffmpeg": tool_available(settings.ffmpeg_binary),
        "ffprobe": tool_available(settings.ffprobe_binary),
    }

    console.rule("[bold]Environment Check")
    for label, ok in results.items():
        console.print(f"[bold]{label}[/]: {'✅' if ok else '❌'}")

    if not all(results.values()):
        console.print("[red]Missing dependencies detected. Install ffmpeg (it ships ffprobe).[/]")
        sys.exit(1)
    console.print("[green]Environment looks good![/]")


if __name__ == "__main__":
    main()

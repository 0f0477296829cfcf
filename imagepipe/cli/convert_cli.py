"""
CLI command for converting one image to one or more formats.

Usage:
    imagepipe convert photo.png --format webp --format jpeg --quality 80
    imagepipe convert dance.gif --format gif --size 100x100 -o out/
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

from ..decoder import read_upload
from ..exceptions import ImagePipeError
from ..naming import format_file_size, save_blob
from ..session import Session
from ..types import ORIGINAL_SIZE, TargetFormat
from .common import FORMAT_CHOICES, add_common_arguments, resolve_settings
from .progress import ProgressReporter


def cmd_convert(args: argparse.Namespace) -> int:
    """Main handler for ``imagepipe convert``."""
    image_file = Path(args.image_file)
    if not image_file.is_file():
        print(f"Error: file not found: {image_file}", file=sys.stderr)
        return 1

    settings = resolve_settings(args)
    if settings is None:
        return 1

    session = Session(settings)
    formats = [TargetFormat.parse(f) for f in (args.format or ["png"])]
    output_dir = Path(args.output) if args.output else image_file.parent

    try:
        source = session.load(read_upload(image_file, args.mime_type))
        if args.quality is not None:
            session.set_jpeg_quality(args.quality)
        for fmt in formats:
            session.select_size(fmt, args.size)
    except (ImagePipeError, ValueError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    print(f"Loaded {source.display_name}: {source.decoded_width}x"
          f"{source.decoded_height} ({source.mime_type}, "
          f"{format_file_size(len(source.raw_bytes))})")

    failures = 0
    for fmt in formats:
        progress = ProgressReporter(100, f"Converting to {fmt.label}", unit="%")
        try:
            result = session.convert(fmt, on_progress=progress.set_fraction)
        except ImagePipeError as exc:
            progress.close()
            print(f"Error: {exc}", file=sys.stderr)
            failures += 1
            continue
        progress.close()

        path = save_blob(result.blob, output_dir, session.download_name(result))
        size = "Original" if result.size_selector == ORIGINAL_SIZE else result.size_selector
        print(f"{fmt.label}: {path} | Size: {size} ({result.width}x{result.height}) "
              f"| File Size: {format_file_size(result.byte_length)}")
        for warning in result.warnings:
            print(f"  Warning: {warning}", file=sys.stderr)

    return 1 if failures else 0


def build_convert_parser(subparsers: argparse._SubParsersAction) -> None:
    """Register the ``convert`` subcommand and its arguments."""
    p = subparsers.add_parser(
        "convert",
        help="Convert one image to other formats",
        description="Convert a PNG, JPEG, WebP or (animated) GIF image to other formats.",
    )
    p.add_argument("image_file", help="Path to the source image")
    p.add_argument(
        "-f", "--format", action="append", choices=FORMAT_CHOICES,
        help="Target format; repeat for several (default: png)",
    )
    p.add_argument(
        "--size", default=ORIGINAL_SIZE,
        help="'original' or a WxH bounding box, e.g. 512x512 (default: original)",
    )
    p.add_argument(
        "--quality", type=int, default=None,
        help="JPEG quality 0 -- 100 (default: from settings)",
    )
    p.add_argument(
        "--mime-type", default=None,
        help="Declared MIME type of the input (default: guessed from the name)",
    )
    p.add_argument(
        "-o", "--output", default=None,
        help="Output directory (default: next to the input)",
    )
    add_common_arguments(p)
    p.set_defaults(func=cmd_convert)

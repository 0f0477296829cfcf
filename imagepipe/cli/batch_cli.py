"""
CLI command for converting many images in one sequential batch.

Usage:
    imagepipe batch shots/*.png --format webp --size 1024x1024 -o converted/
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

from ..batch import BatchScheduler, batch_download_name
from ..decoder import read_upload
from ..exceptions import ImagePipeError
from ..naming import format_file_size, save_blob
from ..session import Session
from ..types import ORIGINAL_SIZE, BatchItem, BatchStatus, TargetFormat
from .common import FORMAT_CHOICES, add_common_arguments, resolve_settings
from .progress import ProgressReporter


def cmd_batch(args: argparse.Namespace) -> int:
    """Main handler for ``imagepipe batch``."""
    paths = [Path(p) for p in args.image_files]
    missing = [p for p in paths if not p.is_file()]
    for p in missing:
        print(f"Warning: skipping missing file {p}", file=sys.stderr)

    settings = resolve_settings(args)
    if settings is None:
        return 1

    fmt = TargetFormat.parse(args.format)
    output_dir = Path(args.output)
    scheduler = BatchScheduler(Session(settings))

    try:
        items = scheduler.queue(read_upload(p) for p in paths if p.is_file())
    except ImagePipeError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    print(f"{len(items)} images ready for batch processing.")
    progress = ProgressReporter(len(items), f"Batch {fmt.label}")

    def on_status(index: int, item: BatchItem) -> None:
        if item.status.is_terminal:
            progress.update(suffix=f"{item.source_file.display_name}: {item.status.value}")

    try:
        report = scheduler.run(fmt, args.size, on_status=on_status)
    except ImagePipeError as exc:
        progress.close()
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    progress.close()

    for item in report.items:
        name = item.source_file.display_name
        if item.status is BatchStatus.COMPLETED and item.result_blob is not None:
            path = save_blob(item.result_blob, output_dir,
                             batch_download_name(item, fmt))
            print(f"  {name}: Completed -> {path} "
                  f"({format_file_size(len(item.result_blob))})")
        else:
            print(f"  {name}: {item.status.value} {item.error_message}".rstrip())

    print(f"Batch processing completed: {report.summary()}.")
    return 0 if report.failed == 0 else 1


def build_batch_parser(subparsers: argparse._SubParsersAction) -> None:
    """Register the ``batch`` subcommand and its arguments."""
    p = subparsers.add_parser(
        "batch",
        help="Convert many images sequentially",
        description="Convert a list of images to one format and size, one at a time.",
    )
    p.add_argument("image_files", nargs="+", help="Source images")
    p.add_argument(
        "-f", "--format", choices=FORMAT_CHOICES, default="png",
        help="Target format (default: png)",
    )
    p.add_argument(
        "--size", default=ORIGINAL_SIZE,
        help="'original' or a WxH bounding box (default: original)",
    )
    p.add_argument(
        "-o", "--output", default="converted",
        help="Output directory (default: ./converted)",
    )
    add_common_arguments(p)
    p.set_defaults(func=cmd_batch)

"""
CLI command for generating a PWA icon set from an image.

Usage:
    imagepipe icons logo.png -o icons/
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

from ..decoder import load_source, read_upload
from ..exceptions import ImagePipeError
from ..icons import ICON_BACKGROUND, generate_icon_set
from ..naming import save_blob


def cmd_icons(args: argparse.Namespace) -> int:
    """Main handler for ``imagepipe icons``."""
    image_file = Path(args.image_file)
    if not image_file.is_file():
        print(f"Error: file not found: {image_file}", file=sys.stderr)
        return 1

    try:
        source = load_source(read_upload(image_file))
        assets = generate_icon_set(source, background=args.background)
    except ImagePipeError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    output_dir = Path(args.output)
    for asset in assets:
        path = save_blob(asset.blob, output_dir, asset.name)
        tag = " (maskable)" if asset.spec.maskable else ""
        print(f"  {asset.spec.size}x{asset.spec.size}{tag} -> {path}")
    print(f"Generated {len(assets)} icons.")
    return 0


def build_icons_parser(subparsers: argparse._SubParsersAction) -> None:
    """Register the ``icons`` subcommand and its arguments."""
    p = subparsers.add_parser(
        "icons",
        help="Generate PWA icons from an image",
        description="Render 16, 32, 192 and 512 px icons plus maskable variants.",
    )
    p.add_argument("image_file", help="Source image for the icon artwork")
    p.add_argument(
        "--background", default=ICON_BACKGROUND,
        help=f"Icon background colour (default: {ICON_BACKGROUND})",
    )
    p.add_argument(
        "-o", "--output", default="icons",
        help="Output directory (default: ./icons)",
    )
    p.set_defaults(func=cmd_icons)

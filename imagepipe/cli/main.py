"""Main CLI entry point for imagepipe."""

from __future__ import annotations

import argparse
import logging
import sys

from .. import __version__
from .batch_cli import build_batch_parser
from .convert_cli import build_convert_parser
from .icons_cli import build_icons_parser


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="imagepipe",
        description="Convert still and animated images between formats",
    )
    parser.add_argument("--version", action="version", version=f"imagepipe {__version__}")
    parser.add_argument(
        "-v", "--verbose", action="count", default=0,
        help="Log more detail (-v info, -vv debug)",
    )
    subparsers = parser.add_subparsers(dest="command")
    build_convert_parser(subparsers)
    build_batch_parser(subparsers)
    build_icons_parser(subparsers)
    args = parser.parse_args(argv)

    level = {0: logging.WARNING, 1: logging.INFO}.get(args.verbose, logging.DEBUG)
    logging.basicConfig(level=level, format="[%(levelname)s] %(name)s: %(message)s")

    if args.command is None:
        parser.print_help()
        return 0
    return args.func(args)


def cli_entry() -> None:
    sys.exit(main())

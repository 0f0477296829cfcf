"""Helpers shared by the CLI subcommands."""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

from ..config import DEFAULT_SETTINGS, PipelineSettings, load_settings
from ..exceptions import ConfigError
from ..types import TargetFormat

FORMAT_CHOICES = [fmt.value for fmt in TargetFormat] + ["jpg"]


def add_common_arguments(p: argparse.ArgumentParser) -> None:
    p.add_argument(
        "--config", default=None,
        help="YAML settings file overriding the built-in defaults",
    )


def resolve_settings(args: argparse.Namespace) -> PipelineSettings | None:
    """Load settings named by ``--config``; prints and returns None on error."""
    if not getattr(args, "config", None):
        return DEFAULT_SETTINGS
    try:
        return load_settings(Path(args.config))
    except ConfigError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return None

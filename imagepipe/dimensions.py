"""
Output dimension policy.

Resolves a size selector ("original" or "WxH") against a source size,
fitting the source inside the requested box while keeping its aspect
ratio.  The box is a bound, not a canvas: the result touches the box on one
axis and is smaller or equal on the other.
"""

from __future__ import annotations

import math
import re

from imagepipe.exceptions import InvalidSizeSelector, InvalidSourceDimensions
from imagepipe.types import ORIGINAL_SIZE

_RE_SELECTOR = re.compile(r"^\s*(?P<w>\d+)\s*[xX×]\s*(?P<h>\d+)\s*$")


def round_half_away(value: float) -> int:
    """Round to the nearest integer, halves away from zero."""
    return int(math.copysign(math.floor(abs(value) + 0.5), value))


def parse_size_selector(selector: str) -> tuple[int, int] | None:
    """Return the (width, height) box of *selector*, or None for "original"."""
    if not isinstance(selector, str):
        raise InvalidSizeSelector(f"Size selector must be a string, got {selector!r}")
    if selector.strip().lower() == ORIGINAL_SIZE:
        return None
    m = _RE_SELECTOR.match(selector)
    if m is None:
        raise InvalidSizeSelector(
            f"Invalid size selector {selector!r}; expected 'original' or 'WxH'."
        )
    width, height = int(m.group("w")), int(m.group("h"))
    if width <= 0 or height <= 0:
        raise InvalidSizeSelector(
            f"Size selector {selector!r} must use positive dimensions."
        )
    return width, height


def format_size_selector(width: int, height: int) -> str:
    return f"{width}x{height}"


def resolve(size_selector: str, source_width: int, source_height: int) -> tuple[int, int]:
    """Compute output (width, height) for *size_selector*.

    Raises
    ------
    InvalidSizeSelector
        If the selector is neither "original" nor two positive integers.
    InvalidSourceDimensions
        If either source dimension is zero (or negative).
    """
    box = parse_size_selector(size_selector)
    if source_width <= 0 or source_height <= 0:
        raise InvalidSourceDimensions(
            f"Source dimensions must be positive, got {source_width}x{source_height}."
        )
    if box is None:
        return source_width, source_height

    target_width, target_height = box
    source_ratio = source_width / source_height
    box_ratio = target_width / target_height

    if source_ratio > box_ratio:
        width = target_width
        height = round_half_away(target_width / source_ratio)
    else:
        height = target_height
        width = round_half_away(target_height * source_ratio)

    # Extreme ratios would otherwise collapse an axis to zero pixels.
    return max(1, width), max(1, height)

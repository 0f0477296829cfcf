"""Output file naming, size formatting and saving of result blobs."""

from __future__ import annotations

import re
from pathlib import Path

from imagepipe.types import TargetFormat

_RE_EXTENSION = re.compile(r"\.[^/.]+$")

_SIZE_UNITS = ("Bytes", "KB", "MB", "GB")


def download_filename(original_name: str, fmt: TargetFormat) -> str:
    """Replace the last extension of *original_name* with *fmt*'s extension."""
    stem = _RE_EXTENSION.sub("", original_name)
    return f"{stem}.{fmt.extension}"


def format_file_size(n_bytes: int) -> str:
    """Human-readable size: ``0 Bytes``, ``512 Bytes``, ``1.5 KB``, ..."""
    if n_bytes <= 0:
        return "0 Bytes"
    i = 0
    while i < len(_SIZE_UNITS) - 1 and n_bytes >= 1024 ** (i + 1):
        i += 1
    value = f"{n_bytes / 1024 ** i:.2f}".rstrip("0").rstrip(".")
    return f"{value} {_SIZE_UNITS[i]}"


def save_blob(blob: bytes, directory: Path | str, filename: str) -> Path:
    """Write *blob* as *filename* inside *directory*, creating it if needed."""
    directory = Path(directory)
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / filename
    path.write_bytes(blob)
    return path

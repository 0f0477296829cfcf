"""
Shared fixtures for the imagepipe test suite.
"""

from __future__ import annotations

import io
import tempfile
from pathlib import Path

import pytest
from PIL import Image, ImageDraw

from imagepipe.config import DEFAULT_SETTINGS
from imagepipe.session import Session
from imagepipe.types import UploadedFile

# Palette of square colours for generated animations.
_SQUARE_COLORS = [
    (220, 30, 30), (30, 160, 40), (30, 60, 210), (230, 180, 20),
    (150, 40, 170), (20, 170, 170), (240, 110, 20), (90, 90, 90),
]


def pytest_configure(config):
    """Register custom markers used across sub-suites."""
    config.addinivalue_line("markers", "slow: test encodes large images")


def make_moving_square_frames(
    n: int = 5,
    size: tuple[int, int] = (120, 60),
) -> list[Image.Image]:
    """*n* RGB frames, each a coloured square at a different spot on white."""
    w, h = size
    side = max(4, min(w, h) // 3)
    frames = []
    for i in range(n):
        img = Image.new("RGB", size, "white")
        x = int((w - side) * i / max(n - 1, 1))
        draw = ImageDraw.Draw(img)
        draw.rectangle([x, (h - side) // 2, x + side - 1, (h + side) // 2],
                       fill=_SQUARE_COLORS[i % len(_SQUARE_COLORS)])
        frames.append(img)
    return frames


def encode_gif(frames: list[Image.Image], durations: list[int]) -> bytes:
    buf = io.BytesIO()
    frames[0].save(buf, format="GIF", save_all=True, append_images=frames[1:],
                   duration=durations, loop=0)
    return buf.getvalue()


def encode_still(img: Image.Image, fmt: str = "PNG") -> bytes:
    buf = io.BytesIO()
    img.save(buf, format=fmt)
    return buf.getvalue()


@pytest.fixture
def tmp_dir():
    """Provide a temporary directory that is cleaned up after the test."""
    with tempfile.TemporaryDirectory(prefix="imagepipe_test_") as d:
        yield Path(d)


@pytest.fixture
def gif_durations() -> list[int]:
    return [100, 30, 200, 60, 80]


@pytest.fixture
def animated_gif_bytes(gif_durations) -> bytes:
    """A 120x60 five-frame GIF with distinct frames."""
    return encode_gif(make_moving_square_frames(len(gif_durations)), gif_durations)


@pytest.fixture
def png_bytes() -> bytes:
    """A 400x300 RGBA PNG: red rectangle on a half-transparent backdrop."""
    img = Image.new("RGBA", (400, 300), (0, 0, 255, 128))
    ImageDraw.Draw(img).rectangle([100, 75, 299, 224], fill=(255, 0, 0, 255))
    return encode_still(img, "PNG")


@pytest.fixture
def jpeg_bytes() -> bytes:
    """A 300x400 JPEG."""
    return encode_still(Image.new("RGB", (300, 400), (40, 120, 200)), "JPEG")


@pytest.fixture
def gif_upload(animated_gif_bytes) -> UploadedFile:
    return UploadedFile(animated_gif_bytes, "dance.gif", "image/gif")


@pytest.fixture
def png_upload(png_bytes) -> UploadedFile:
    return UploadedFile(png_bytes, "photo.png", "image/png")


@pytest.fixture
def jpeg_upload(jpeg_bytes) -> UploadedFile:
    return UploadedFile(jpeg_bytes, "portrait.jpg", "image/jpeg")


@pytest.fixture
def malformed_upload() -> UploadedFile:
    """Declares an image MIME type but carries no image data."""
    return UploadedFile(b"this is not an image at all", "broken.png", "image/png")


@pytest.fixture
def session() -> Session:
    return Session(DEFAULT_SETTINGS)


@pytest.fixture
def gif_factory():
    """Return a builder ``(n, size, durations) -> GIF bytes``."""
    def build(n: int = 5, size: tuple[int, int] = (120, 60),
              durations: list[int] | None = None) -> bytes:
        return encode_gif(make_moving_square_frames(n, size), durations or [100] * n)
    return build


@pytest.fixture
def frame_factory():
    """Return ``make_moving_square_frames`` for tests that encode their own containers."""
    return make_moving_square_frames

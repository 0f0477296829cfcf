"""
Frame decoding and source loading.

    raw bytes  -->  [sniff container]  -->  Pillow  -->  DecodedFrame list

Animated GIF is the primary container; animated WebP and APNG are read the
same way since Pillow exposes all three through ``ImageSequence``.  Pillow
coalesces frames while seeking, so every decoded patch covers the full
logical screen and sits at offset (0, 0).  The compositor still honours
non-zero offsets for frames that come from elsewhere.

Delays are normalised here rather than in the encoders: a missing or zero
delay becomes ``default_frame_delay_ms`` and anything shorter than
``min_frame_delay_ms`` is raised to that floor, so a re-encoded animation
never contains frames browsers refuse to play at their stored speed.
"""

from __future__ import annotations

import io
import logging
import mimetypes
import struct
from pathlib import Path

from PIL import Image, ImageSequence, UnidentifiedImageError

from imagepipe.config import DEFAULT_SETTINGS, PipelineSettings
from imagepipe.exceptions import (
    CorruptStream,
    InvalidSourceDimensions,
    UnsupportedContainer,
)
from imagepipe.types import DecodedFrame, SourceImage, UploadedFile

logger = logging.getLogger(__name__)

# Errors Pillow raises for damaged streams, depending on the plugin.
_DECODE_ERRORS = (OSError, SyntaxError, ValueError, EOFError, struct.error)

_PNG_SIGNATURE = b"\x89PNG\r\n\x1a\n"
_GIF_TRAILER = b"\x3b"


# ---------------------------------------------------------------------------
# Container sniffing
# ---------------------------------------------------------------------------

def sniff_container(raw_bytes: bytes) -> str | None:
    """Return "gif", "webp" or "png" for a recognised signature, else None."""
    head = raw_bytes[:12]
    if head[:6] in (b"GIF87a", b"GIF89a"):
        return "gif"
    if head[:4] == b"RIFF" and head[8:12] == b"WEBP":
        return "webp"
    if head[:8] == _PNG_SIGNATURE:
        return "png"
    return None


def guess_mime_type(path: Path | str) -> str:
    """Guess a MIME type from a file name, defaulting to octet-stream."""
    mime, _ = mimetypes.guess_type(str(path))
    return mime or "application/octet-stream"


def _normalize_delay(duration, settings: PipelineSettings) -> int:
    delay = int(round(duration)) if duration else 0
    if delay <= 0:
        delay = settings.default_frame_delay_ms
    return max(delay, settings.min_frame_delay_ms)


# ---------------------------------------------------------------------------
# Animated decoding
# ---------------------------------------------------------------------------

def decode(raw_bytes: bytes, settings: PipelineSettings = DEFAULT_SETTINGS) -> list[DecodedFrame]:
    """Decode every frame of an animated image held in *raw_bytes*.

    The whole buffer is decoded in one call.  A partial sequence is never
    returned: any error part-way through fails the entire decode.

    Raises
    ------
    UnsupportedContainer
        If the bytes do not start with a GIF, WebP or PNG signature.
    CorruptStream
        If decoding fails mid-stream or yields no frames.
    """
    container = sniff_container(raw_bytes)
    if container is None:
        raise UnsupportedContainer("Input is not a GIF, WebP or PNG stream.")

    if container == "gif" and not raw_bytes.endswith(_GIF_TRAILER):
        raise CorruptStream("GIF stream has no trailer; the file is truncated.")

    frames: list[DecodedFrame] = []
    try:
        with Image.open(io.BytesIO(raw_bytes)) as im:
            canvas_w, canvas_h = im.size
            for index, frame in enumerate(ImageSequence.Iterator(im)):
                rgba = frame.convert("RGBA")
                if rgba.size != (canvas_w, canvas_h):
                    rgba = _pad_to_canvas(rgba, canvas_w, canvas_h)
                frames.append(DecodedFrame(
                    width=canvas_w,
                    height=canvas_h,
                    offset_x=0,
                    offset_y=0,
                    pixel_patch=rgba.tobytes(),
                    delay_ms=_normalize_delay(frame.info.get("duration"), settings),
                    canvas_width=canvas_w,
                    canvas_height=canvas_h,
                ))
    except UnidentifiedImageError as exc:
        raise CorruptStream(f"Could not read {container.upper()} header: {exc}") from exc
    except _DECODE_ERRORS as exc:
        raise CorruptStream(
            f"{container.upper()} decode failed after {len(frames)} frame(s): {exc}"
        ) from exc

    if not frames:
        raise CorruptStream(f"{container.upper()} stream contains no frames.")

    logger.debug("Decoded %d %s frame(s) at %dx%d.",
                  len(frames), container, frames[0].width, frames[0].height)
    return frames


def _pad_to_canvas(img: Image.Image, width: int, height: int) -> Image.Image:
    canvas = Image.new("RGBA", (width, height), (0, 0, 0, 0))
    canvas.paste(img, (0, 0))
    return canvas


def decode_still(raw_bytes: bytes, settings: PipelineSettings = DEFAULT_SETTINGS) -> DecodedFrame:
    """Treat *raw_bytes* as a single implicit frame (first frame only)."""
    try:
        with Image.open(io.BytesIO(raw_bytes)) as im:
            rgba = im.convert("RGBA")
    except UnidentifiedImageError as exc:
        raise UnsupportedContainer(f"Not a recognised image: {exc}") from exc
    except _DECODE_ERRORS as exc:
        raise CorruptStream(f"Image decode failed: {exc}") from exc
    return DecodedFrame(
        width=rgba.width,
        height=rgba.height,
        offset_x=0,
        offset_y=0,
        pixel_patch=rgba.tobytes(),
        delay_ms=settings.default_frame_delay_ms,
        canvas_width=rgba.width,
        canvas_height=rgba.height,
    )


# ---------------------------------------------------------------------------
# Source loading
# ---------------------------------------------------------------------------

def load_source(upload: UploadedFile) -> SourceImage:
    """Decode an upload far enough to know it is a usable image.

    Uploads whose declared MIME type is not ``image/*`` are rejected before
    any bytes are inspected.
    """
    if not upload.mime_type.lower().startswith("image/"):
        raise UnsupportedContainer(
            f"{upload.display_name}: {upload.mime_type!r} is not an image type."
        )
    try:
        with Image.open(io.BytesIO(upload.raw_bytes)) as im:
            im.load()
            width, height = im.size
    except UnidentifiedImageError as exc:
        raise UnsupportedContainer(f"{upload.display_name}: not a valid image file.") from exc
    except _DECODE_ERRORS as exc:
        raise CorruptStream(f"{upload.display_name}: {exc}") from exc

    if width <= 0 or height <= 0:
        raise InvalidSourceDimensions(f"{upload.display_name}: {width}x{height}")

    logger.info("Loaded %s (%dx%d, %s, %d bytes).",
                upload.display_name, width, height, upload.mime_type, upload.size)
    return SourceImage(
        raw_bytes=upload.raw_bytes,
        decoded_width=width,
        decoded_height=height,
        mime_type=upload.mime_type,
        display_name=upload.display_name,
    )


def read_upload(path: Path | str, mime_type: str | None = None) -> UploadedFile:
    """Read a file from disk as an upload."""
    path = Path(path)
    return UploadedFile(
        raw_bytes=path.read_bytes(),
        display_name=path.name,
        mime_type=mime_type or guess_mime_type(path),
    )

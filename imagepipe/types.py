"""
Core data structures shared by the decoder, encoders, pipeline and batch.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field

import numpy as np
from PIL import Image


class TargetFormat(enum.Enum):
    """Output formats a conversion can target."""
    PNG = "png"
    JPEG = "jpeg"
    WEBP = "webp"
    GIF = "gif"

    @property
    def mime_type(self) -> str:
        return f"image/{self.value}"

    @property
    def extension(self) -> str:
        return self.value

    @property
    def label(self) -> str:
        return self.value.upper()

    @classmethod
    def parse(cls, text: str) -> TargetFormat:
        """Look a format up by name, accepting "jpg" for JPEG."""
        key = text.strip().lower()
        if key == "jpg":
            key = "jpeg"
        try:
            return cls(key)
        except ValueError:
            raise ValueError(f"Unknown target format: {text!r}") from None


class BatchStatus(enum.Enum):
    """Lifecycle of one queued batch item; transitions only move forward."""
    READY = "Ready"
    PROCESSING = "Processing"
    COMPLETED = "Completed"
    ERROR = "Error"

    @property
    def is_terminal(self) -> bool:
        return self in (BatchStatus.COMPLETED, BatchStatus.ERROR)


ORIGINAL_SIZE = "original"

# MIME types whose containers may hold more than one frame.
ANIMATED_MIME_TYPES = frozenset({"image/gif", "image/webp", "image/apng"})


def is_animated_mime(mime_type: str) -> bool:
    return mime_type.strip().lower() in ANIMATED_MIME_TYPES


@dataclass(frozen=True)
class UploadedFile:
    """Raw bytes as handed over by an upload, before any decoding."""
    raw_bytes: bytes
    display_name: str
    mime_type: str

    @property
    def size(self) -> int:
        return len(self.raw_bytes)


@dataclass(frozen=True)
class SourceImage:
    """A loaded source image; immutable once created."""
    raw_bytes: bytes
    decoded_width: int
    decoded_height: int
    mime_type: str
    display_name: str

    @property
    def aspect_ratio(self) -> float:
        return self.decoded_width / self.decoded_height

    @property
    def is_animated_container(self) -> bool:
        return is_animated_mime(self.mime_type)


@dataclass(frozen=True)
class TargetSpec:
    """The (format, size selector) pair requested for a conversion."""
    format: TargetFormat
    size_selector: str = ORIGINAL_SIZE


@dataclass(frozen=True)
class DecodedFrame:
    """One decoded frame: an RGBA patch placed at an offset on a canvas."""
    width: int
    height: int
    offset_x: int
    offset_y: int
    pixel_patch: bytes          # RGBA, row-major, width * height * 4 bytes
    delay_ms: int
    canvas_width: int = 0       # 0 = same as the patch
    canvas_height: int = 0

    @property
    def native_size(self) -> tuple[int, int]:
        """Size of the canvas this frame is drawn on."""
        return (self.canvas_width or self.offset_x + self.width,
                self.canvas_height or self.offset_y + self.height)

    def patch_image(self) -> Image.Image:
        arr = np.frombuffer(self.pixel_patch, dtype=np.uint8)
        return Image.fromarray(arr.reshape(self.height, self.width, 4))


@dataclass
class CompositedFrame:
    """A frame resampled to the pipeline's output dimensions."""
    width: int
    height: int
    pixel_buffer: bytes         # RGBA

    @classmethod
    def from_image(cls, img: Image.Image) -> CompositedFrame:
        rgba = img.convert("RGBA")
        return cls(width=rgba.width, height=rgba.height,
                   pixel_buffer=rgba.tobytes())

    def to_image(self) -> Image.Image:
        return Image.frombytes("RGBA", (self.width, self.height),
                               self.pixel_buffer)

    def as_array(self) -> np.ndarray:
        """Read-only (height, width, 4) uint8 view of the pixel buffer."""
        arr = np.frombuffer(self.pixel_buffer, dtype=np.uint8)
        return arr.reshape(self.height, self.width, 4)


@dataclass(frozen=True)
class FrameOptions:
    """Per-frame options passed to ``Encoder.feed``."""
    delay_ms: int = 100


@dataclass(frozen=True)
class EncoderConfig:
    """Configuration for ``Encoder.begin``.

    ``quality`` is a fraction in [0, 1] for lossy single-frame formats and is
    ignored for PNG.  ``quantization_quality`` only affects animated GIF
    output: lower values sample more pixels when building the palette.
    """
    output_width: int
    output_height: int
    format: TargetFormat = TargetFormat.PNG
    quality: float | None = None
    quantization_quality: int = 10
    background_color: str = "white"
    loop_count: int = 0


@dataclass(frozen=True)
class ConversionResult:
    """A finished conversion; entries of the session's result log."""
    format: TargetFormat
    size_selector: str
    blob: bytes
    width: int = 0
    height: int = 0
    frame_count: int = 1
    warnings: tuple[str, ...] = ()
    source_name: str = ""

    @property
    def byte_length(self) -> int:
        return len(self.blob)


@dataclass
class BatchItem:
    """One queued file in a batch run.  Only the scheduler writes ``status``."""
    source_file: UploadedFile
    status: BatchStatus = BatchStatus.READY
    result_blob: bytes | None = None
    error_message: str = ""
    result: ConversionResult | None = field(default=None, repr=False)

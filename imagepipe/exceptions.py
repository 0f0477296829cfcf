"""
Custom exception hierarchy for imagepipe.

All imagepipe exceptions inherit from ImagePipeError so callers can catch
the entire family with a single except clause.
"""

from __future__ import annotations


class ImagePipeError(Exception):
    """Base exception for all imagepipe errors."""


class InvalidSizeSelector(ImagePipeError):
    """Raised when a size selector is not "original" or "WxH" with positive ints."""


class InvalidSourceDimensions(ImagePipeError):
    """Raised when a source image reports a zero width or height."""


class UnsupportedContainer(ImagePipeError):
    """Raised when the input bytes do not carry a recognised image signature."""


class CorruptStream(ImagePipeError):
    """Raised when decoding fails part-way through an image stream."""


class EncoderInitFailed(ImagePipeError):
    """Raised when an encoder cannot be configured for the requested output."""


class FrameEncodeFailed(ImagePipeError):
    """Raised when a single frame's pixel data cannot be encoded."""

    def __init__(self, message: str, frame_index: int | None = None) -> None:
        super().__init__(message)
        self.frame_index = frame_index


class SingleFrameEncoderMisuse(ImagePipeError):
    """Raised when a static encoder is fed anything but exactly one frame."""


class Aborted(ImagePipeError):
    """Raised by a pending ``finish`` once its encode has been aborted."""


class NoCurrentImage(ImagePipeError):
    """Raised when a conversion is requested with nothing loaded."""


class NoValidFilesInBatch(ImagePipeError):
    """Raised when a batch queue contains no image files."""


class EncoderStateError(ImagePipeError):
    """Raised when an encode handle is fed after ``finish`` or ``abort``."""


class PipelineStateError(ImagePipeError):
    """Raised when a pipeline instance is run a second time."""


class ConfigError(ImagePipeError):
    """Raised when a settings file is missing or malformed."""


class ConversionFailed(ImagePipeError):
    """Terminal pipeline failure, annotated with the attempted target format."""

    def __init__(self, target_format, cause: BaseException) -> None:
        label = getattr(target_format, "label", str(target_format))
        super().__init__(f"Conversion to {label} failed: {cause}")
        self.target_format = target_format
        self.cause = cause

"""
imagepipe -- Still and animated image conversion pipeline.

Decodes animated images into frames, resizes them under an aspect-ratio
preserving policy, re-encodes them as PNG, JPEG, WebP or GIF, and drives
sequential batch runs that isolate per-item failures.
"""

__version__ = "0.1.0"

from imagepipe.batch import BatchReport, BatchScheduler
from imagepipe.encoders import AnimatedEncoder, CancelToken, StaticEncoder
from imagepipe.pipeline import ConversionPipeline, PipelineState, convert
from imagepipe.session import Session
from imagepipe.types import (
    BatchItem,
    BatchStatus,
    ConversionResult,
    SourceImage,
    TargetFormat,
    TargetSpec,
    UploadedFile,
)

__all__ = [
    "AnimatedEncoder",
    "BatchItem",
    "BatchReport",
    "BatchScheduler",
    "BatchStatus",
    "CancelToken",
    "ConversionPipeline",
    "ConversionResult",
    "PipelineState",
    "Session",
    "SourceImage",
    "StaticEncoder",
    "TargetFormat",
    "TargetSpec",
    "UploadedFile",
    "convert",
]

"""
Conversion session.

A ``Session`` is the explicit home of what would otherwise be global UI
state: the current source image, the size selected per target format, the
JPEG quality knob and the append-only log of conversion results.  Batch
runs borrow the current-image slot through ``activate``, which always
restores the previous subject on exit.
"""

from __future__ import annotations

import contextlib
import logging
from typing import Iterator

from imagepipe.config import DEFAULT_SETTINGS, PipelineSettings
from imagepipe.decoder import load_source
from imagepipe.dimensions import parse_size_selector
from imagepipe.encoders import CancelToken, ProgressCallback
from imagepipe.exceptions import NoCurrentImage
from imagepipe.naming import download_filename
from imagepipe.pipeline import ConversionPipeline, PreviewCallback
from imagepipe.types import (
    ORIGINAL_SIZE,
    ConversionResult,
    SourceImage,
    TargetFormat,
    TargetSpec,
    UploadedFile,
)

logger = logging.getLogger(__name__)


class Session:
    """Single-user, in-memory conversion session."""

    def __init__(self, settings: PipelineSettings = DEFAULT_SETTINGS) -> None:
        self.settings = settings
        self.current: SourceImage | None = None
        self.jpeg_quality = settings.jpeg_quality
        self.size_selections: dict[TargetFormat, str] = {}
        self._results: list[ConversionResult] = []
        self.reset_sizes()

    # -- current image -----------------------------------------------------

    def load(self, upload: UploadedFile) -> SourceImage:
        """Load *upload* as the current image and reset size selections."""
        source = load_source(upload)
        self.current = source
        self.reset_sizes()
        return source

    @contextlib.contextmanager
    def activate(self, source: SourceImage) -> Iterator[SourceImage]:
        """Temporarily install *source* as the current image."""
        previous = self.current
        self.current = source
        try:
            yield source
        finally:
            self.current = previous

    # -- target specs ------------------------------------------------------

    def reset_sizes(self) -> None:
        self.size_selections = {fmt: ORIGINAL_SIZE for fmt in TargetFormat}

    def select_size(self, fmt: TargetFormat, size_selector: str) -> None:
        """Choose the size for *fmt*; raises InvalidSizeSelector if malformed."""
        parse_size_selector(size_selector)
        self.size_selections[fmt] = size_selector

    def target_spec(self, fmt: TargetFormat) -> TargetSpec:
        return TargetSpec(format=fmt, size_selector=self.size_selections[fmt])

    def set_jpeg_quality(self, value: int) -> None:
        if not 0 <= value <= 100:
            raise ValueError(f"JPEG quality must be within 0 -- 100, got {value}")
        self.jpeg_quality = value

    # -- conversion --------------------------------------------------------

    def convert(
        self,
        fmt: TargetFormat,
        *,
        on_progress: ProgressCallback | None = None,
        on_preview: PreviewCallback | None = None,
        cancel_token: CancelToken | None = None,
    ) -> ConversionResult:
        """Convert the current image to *fmt* and append the result to the log."""
        if self.current is None:
            raise NoCurrentImage("Please upload an image first.")
        pipeline = ConversionPipeline(
            self.current,
            self.target_spec(fmt),
            settings=self.settings,
            jpeg_quality=self.jpeg_quality,
            cancel_token=cancel_token,
            on_progress=on_progress,
            on_preview=on_preview,
        )
        result = pipeline.run()
        self._results.append(result)
        return result

    @property
    def results(self) -> tuple[ConversionResult, ...]:
        """The result log, oldest first."""
        return tuple(self._results)

    @staticmethod
    def download_name(result: ConversionResult) -> str:
        return download_filename(result.source_name or "image", result.format)

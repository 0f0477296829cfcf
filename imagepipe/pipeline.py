r"""
Single-image conversion pipeline.

    Idle --> Decoding --> Compositing --> Encoding --> Succeeded
                 \______________\______________\-----> Failed

A pipeline instance converts one source image to one target spec and is
then spent: its terminal state is final and ``run`` may only be called once.
Create a new instance for every conversion request.

Only GIF targets fed from an animated container go through the frame
decoder; every other combination treats the source as one implicit frame.
"""

from __future__ import annotations

import enum
import logging
from typing import Callable

from imagepipe import compositor, decoder
from imagepipe.config import DEFAULT_SETTINGS, PipelineSettings
from imagepipe.dimensions import resolve
from imagepipe.encoders import (
    AnimatedEncoder,
    CancelToken,
    EncodeHandle,
    Encoder,
    ProgressCallback,
    StaticEncoder,
)
from imagepipe.exceptions import (
    ConversionFailed,
    FrameEncodeFailed,
    ImagePipeError,
    PipelineStateError,
)
from imagepipe.types import (
    CompositedFrame,
    ConversionResult,
    DecodedFrame,
    EncoderConfig,
    FrameOptions,
    SourceImage,
    TargetFormat,
    TargetSpec,
)

logger = logging.getLogger(__name__)

PreviewCallback = Callable[[CompositedFrame], None]


class PipelineState(enum.Enum):
    IDLE = "idle"
    DECODING = "decoding"
    COMPOSITING = "compositing"
    ENCODING = "encoding"
    SUCCEEDED = "succeeded"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (PipelineState.SUCCEEDED, PipelineState.FAILED)


class ConversionPipeline:
    """Decode, composite and encode one source image for one target spec.

    Parameters
    ----------
    source : SourceImage
        The loaded image to convert.
    target : TargetSpec
        Output format and size selector.
    jpeg_quality : int, optional
        User-facing 0 -- 100 JPEG quality; defaults to ``settings.jpeg_quality``.
    gif_workers : int, optional
        Helper threads for animated GIF quantization.
    cancel_token : CancelToken, optional
        Cancelling it aborts an in-flight encode.
    on_progress : callable, optional
        Receives encoder progress fractions in [0, 1].
    on_preview : callable, optional
        Receives the first composited frame as soon as it exists, before
        encoding finishes.  It is a placeholder, not the result.
    """

    def __init__(
        self,
        source: SourceImage,
        target: TargetSpec,
        *,
        settings: PipelineSettings = DEFAULT_SETTINGS,
        jpeg_quality: int | None = None,
        gif_workers: int | None = None,
        cancel_token: CancelToken | None = None,
        on_progress: ProgressCallback | None = None,
        on_preview: PreviewCallback | None = None,
    ) -> None:
        self.source = source
        self.target = target
        self.settings = settings
        self.jpeg_quality = settings.jpeg_quality if jpeg_quality is None else jpeg_quality
        self.gif_workers = gif_workers or settings.gif_workers
        self.cancel_token = cancel_token or CancelToken()
        self._cancel_requested = CancelToken()
        self.on_progress = on_progress
        self.on_preview = on_preview

        self.result: ConversionResult | None = None
        self.error: BaseException | None = None
        self.skipped_frames: list[tuple[int, FrameEncodeFailed]] = []
        self._state = PipelineState.IDLE
        self._encoder: Encoder | None = None
        self._handle: EncodeHandle | None = None

    @property
    def state(self) -> PipelineState:
        return self._state

    def _enter(self, state: PipelineState) -> None:
        logger.debug("%s -> %s: %s", self.source.display_name,
                     self.target.format.label, state.value)
        self._state = state

    # -- public API --------------------------------------------------------

    def run(self) -> ConversionResult:
        """Run the pipeline to a terminal state.

        Raises
        ------
        ConversionFailed
            Wrapping the originating ``ImagePipeError``; the pipeline is then
            in the FAILED state.
        PipelineStateError
            If this instance has already been run.
        """
        if self._state is not PipelineState.IDLE:
            raise PipelineStateError(
                f"Pipeline already {self._state.value}; create a new instance."
            )
        fmt = self.target.format
        try:
            frames = self._decode()
            composited = self._composite(frames)
            self.result = self._encode(composited, frames)
        except ImagePipeError as exc:
            self._enter(PipelineState.FAILED)
            self.error = exc
            logger.warning("Conversion of %s to %s failed: %s",
                           self.source.display_name, fmt.label, exc)
            raise ConversionFailed(fmt, exc) from exc
        except Exception as exc:
            self._enter(PipelineState.FAILED)
            self.error = exc
            raise

        self._enter(PipelineState.SUCCEEDED)
        logger.info("Converted %s to %s (%s, %d bytes).",
                    self.source.display_name, fmt.label,
                    self.target.size_selector, self.result.byte_length)
        return self.result

    def cancel(self) -> None:
        """Abort this conversion; a no-op once the pipeline has finished.

        The caller's ``cancel_token`` is left untouched, so other work
        sharing it carries on.
        """
        self._cancel_requested.cancel()
        if self._encoder is not None and self._handle is not None:
            self._encoder.abort(self._handle)

    def _raise_if_cancelled(self) -> None:
        self.cancel_token.raise_if_cancelled()
        self._cancel_requested.raise_if_cancelled()

    # -- stages ------------------------------------------------------------

    def _decode(self) -> list[DecodedFrame]:
        self._enter(PipelineState.DECODING)
        if self.target.format is TargetFormat.GIF and self.source.is_animated_container:
            return decoder.decode(self.source.raw_bytes, self.settings)
        return [decoder.decode_still(self.source.raw_bytes, self.settings)]

    def _composite(self, frames: list[DecodedFrame]) -> list[CompositedFrame]:
        self._enter(PipelineState.COMPOSITING)
        native_w, native_h = frames[0].native_size
        out_w, out_h = resolve(self.target.size_selector, native_w, native_h)

        composited: list[CompositedFrame] = []
        for frame in frames:
            self._raise_if_cancelled()
            composited.append(compositor.composite(frame, out_w, out_h))
            if len(composited) == 1 and self.on_preview is not None:
                self.on_preview(composited[0])
        return composited

    def _encoder_config(self, width: int, height: int) -> EncoderConfig:
        fmt = self.target.format
        quality = None
        if fmt is TargetFormat.JPEG:
            quality = self.jpeg_quality / 100
        elif fmt is TargetFormat.WEBP:
            quality = self.settings.webp_quality
        return EncoderConfig(
            output_width=width,
            output_height=height,
            format=fmt,
            quality=quality,
            quantization_quality=self.settings.gif_quantization_quality,
            background_color=self.settings.background_color,
            loop_count=self.settings.loop_count,
        )

    def _encode(self, composited: list[CompositedFrame],
                frames: list[DecodedFrame]) -> ConversionResult:
        self._enter(PipelineState.ENCODING)
        fmt = self.target.format
        first = composited[0]

        if len(composited) == 1 and fmt is not TargetFormat.GIF:
            encoder: Encoder = StaticEncoder()
        else:
            encoder = AnimatedEncoder(workers=self.gif_workers)

        handle = encoder.begin(self._encoder_config(first.width, first.height),
                               self.cancel_token)
        self._encoder, self._handle = encoder, handle
        if self._cancel_requested.cancelled:
            encoder.abort(handle)
        for comp, frame in zip(composited, frames):
            encoder.feed(handle, comp, FrameOptions(delay_ms=frame.delay_ms))

        future = encoder.finish(handle, self.on_progress)
        try:
            blob = future.result()
        finally:
            self.skipped_frames = list(handle.skipped_frames)

        return ConversionResult(
            format=fmt,
            size_selector=self.target.size_selector,
            blob=blob,
            width=first.width,
            height=first.height,
            frame_count=len(handle.frames),
            warnings=tuple(str(err) for _, err in handle.skipped_frames),
            source_name=self.source.display_name,
        )


def convert(source: SourceImage, target: TargetSpec, **kwargs) -> ConversionResult:
    """Run a fresh ``ConversionPipeline``; see its parameters."""
    return ConversionPipeline(source, target, **kwargs).run()

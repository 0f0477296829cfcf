"""
Frame encoders.

Both encoders share one lifecycle::

    handle = encoder.begin(config, cancel_token)
    encoder.feed(handle, frame, FrameOptions(delay_ms=80))   # 1 or N times
    future = encoder.finish(handle, on_progress=print)
    blob = future.result()                                    # bytes
    encoder.abort(handle)                                     # any time

``finish`` returns immediately with a ``concurrent.futures.Future``; the
encode runs on a background thread and reports progress fractions in
[0, 1] through ``on_progress``.  ``abort`` (or cancelling the token passed
to ``begin``) makes a pending future fail with ``Aborted``; once the
future has resolved, ``abort`` does nothing.  ``abort`` only touches its
own handle: the token belongs to the caller and may be shared by several
encodes.

StaticEncoder
    PNG / JPEG / WebP, exactly one frame.  A malformed frame fails the
    whole encode.

AnimatedEncoder
    GIF (default) or animated WebP, any number of frames.  A malformed
    frame is logged and skipped; encoding continues with the rest.  GIF
    frames are quantized against one global palette on K helper threads.
"""

from __future__ import annotations

import abc
import enum
import io
import logging
import math
import threading
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Callable

from PIL import Image

from imagepipe.compositor import flatten
from imagepipe.config import codec_available
from imagepipe.exceptions import (
    Aborted,
    EncoderInitFailed,
    EncoderStateError,
    FrameEncodeFailed,
    ImagePipeError,
    SingleFrameEncoderMisuse,
)
from imagepipe.types import CompositedFrame, EncoderConfig, FrameOptions, TargetFormat

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[float], None]

DEFAULT_WEBP_QUALITY = 0.85
GIF_MAX_COLORS = 256


# ---------------------------------------------------------------------------
# Cancellation and handle state
# ---------------------------------------------------------------------------

class CancelToken:
    """Thread-safe cancellation flag shared between a caller and an encode."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise Aborted("Encoding was aborted.")


class HandleState(enum.Enum):
    OPEN = "open"
    FINISHING = "finishing"
    DONE = "done"
    FAILED = "failed"
    ABORTED = "aborted"


@dataclass
class EncodeHandle:
    """Per-encode state returned by ``Encoder.begin``."""
    config: EncoderConfig
    token: CancelToken
    frames: list[tuple[CompositedFrame, FrameOptions]] = field(default_factory=list)
    skipped_frames: list[tuple[int, FrameEncodeFailed]] = field(default_factory=list)
    frames_offered: int = 0
    state: HandleState = HandleState.OPEN
    future: Future | None = None
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    @property
    def aborted(self) -> bool:
        return self.state is HandleState.ABORTED

    @property
    def cancelled(self) -> bool:
        """True once this handle was aborted or the caller's token cancelled."""
        return self.state is HandleState.ABORTED or self.token.cancelled

    def raise_if_cancelled(self) -> None:
        if self.cancelled:
            raise Aborted("Encoding was aborted.")


def _check_frame(frame: CompositedFrame, config: EncoderConfig, index: int) -> None:
    """Raise FrameEncodeFailed if *frame* does not match *config*."""
    if (frame.width, frame.height) != (config.output_width, config.output_height):
        raise FrameEncodeFailed(
            f"Frame {index}: size {frame.width}x{frame.height} does not match "
            f"encoder size {config.output_width}x{config.output_height}.",
            frame_index=index,
        )
    expected = frame.width * frame.height * 4
    if len(frame.pixel_buffer) != expected:
        raise FrameEncodeFailed(
            f"Frame {index}: pixel buffer holds {len(frame.pixel_buffer)} bytes, "
            f"expected {expected}.",
            frame_index=index,
        )


def _quality_percent(quality: float) -> int:
    return int(round(quality * 100))


# ---------------------------------------------------------------------------
# Abstract base
# ---------------------------------------------------------------------------

class Encoder(abc.ABC):
    """Shared begin / feed / finish / abort lifecycle."""

    name: str = "abstract"
    formats: frozenset[TargetFormat] = frozenset()

    # -- begin -------------------------------------------------------------

    def begin(self, config: EncoderConfig,
              cancel_token: CancelToken | None = None) -> EncodeHandle:
        """Validate *config* and open a new encode handle."""
        if config.output_width <= 0 or config.output_height <= 0:
            raise EncoderInitFailed(
                f"Output size must be positive, got "
                f"{config.output_width}x{config.output_height}."
            )
        if config.format not in self.formats:
            raise EncoderInitFailed(
                f"{self.name} encoder cannot write {config.format.label}."
            )
        if not codec_available(config.format):
            raise EncoderInitFailed(
                f"{config.format.label} support is missing from this Pillow build."
            )
        self._validate_config(config)
        logger.debug("%s encoder begin: %s %dx%d", self.name, config.format.label,
                     config.output_width, config.output_height)
        return EncodeHandle(config=config, token=cancel_token or CancelToken())

    def _validate_config(self, config: EncoderConfig) -> None:
        """Format-specific checks; raise EncoderInitFailed."""

    # -- feed --------------------------------------------------------------

    def feed(self, handle: EncodeHandle, frame: CompositedFrame,
             options: FrameOptions = FrameOptions()) -> None:
        with handle.lock:
            if handle.cancelled:
                raise Aborted("Cannot feed an aborted encode.")
            if handle.state is not HandleState.OPEN:
                raise EncoderStateError("Cannot feed frames after finish().")
            index = handle.frames_offered
            handle.frames_offered += 1
        self._accept(handle, frame, options, index)

    @abc.abstractmethod
    def _accept(self, handle: EncodeHandle, frame: CompositedFrame,
                options: FrameOptions, index: int) -> None:
        """Store or reject one fed frame."""

    # -- finish ------------------------------------------------------------

    def finish(self, handle: EncodeHandle,
               on_progress: ProgressCallback | None = None) -> Future:
        """Start encoding on a background thread and return its future.

        Calling ``finish`` again on the same handle returns the same future.
        """
        with handle.lock:
            if handle.future is not None:
                return handle.future
            future: Future = Future()
            future.set_running_or_notify_cancel()
            handle.future = future
            if handle.cancelled:
                handle.state = HandleState.ABORTED
                future.set_exception(Aborted("Encoding was aborted."))
                return future
            handle.state = HandleState.FINISHING

        worker = threading.Thread(
            target=self._run,
            args=(handle, on_progress),
            name=f"imagepipe-{self.name}-encode",
            daemon=True,
        )
        worker.start()
        return future

    def _run(self, handle: EncodeHandle, on_progress: ProgressCallback | None) -> None:
        last = [0.0]

        def report(fraction: float) -> None:
            # Never report after an abort, never go backwards.
            fraction = min(1.0, max(last[0], fraction))
            if on_progress is None or handle.cancelled:
                return
            last[0] = fraction
            on_progress(fraction)

        try:
            blob = self._encode(handle, report)
            handle.raise_if_cancelled()
        except ImagePipeError as exc:
            self._settle(handle, error=exc)
        except Exception as exc:
            logger.exception("%s encoder crashed", self.name)
            self._settle(handle, error=exc)
        else:
            self._settle(handle, blob=blob)

    def _settle(self, handle: EncodeHandle, blob: bytes | None = None,
                error: BaseException | None = None) -> None:
        with handle.lock:
            future = handle.future
            if future is None or future.done():
                return
            if handle.cancelled:
                handle.state = HandleState.ABORTED
                future.set_exception(Aborted("Encoding was aborted."))
            elif error is not None:
                handle.state = HandleState.FAILED
                future.set_exception(error)
            else:
                handle.state = HandleState.DONE
                future.set_result(blob)

    @abc.abstractmethod
    def _encode(self, handle: EncodeHandle, report: ProgressCallback) -> bytes:
        """Produce the encoded blob (runs on the background thread)."""

    # -- abort -------------------------------------------------------------

    def abort(self, handle: EncodeHandle) -> None:
        """Cancel the encode.  A no-op once the encode has resolved."""
        with handle.lock:
            if handle.state in (HandleState.DONE, HandleState.FAILED,
                                HandleState.ABORTED):
                return
            handle.state = HandleState.ABORTED
            if handle.future is not None and not handle.future.done():
                handle.future.set_exception(Aborted("Encoding was aborted."))
        logger.debug("%s encode aborted.", self.name)


# ===================================================================
#  STATIC ENCODER
# ===================================================================

class StaticEncoder(Encoder):
    """Single-frame PNG / JPEG / WebP encoder."""

    name = "static"
    formats = frozenset({TargetFormat.PNG, TargetFormat.JPEG, TargetFormat.WEBP})

    def _validate_config(self, config: EncoderConfig) -> None:
        if config.format is TargetFormat.PNG:
            return  # lossless; quality is ignored
        if config.format is TargetFormat.JPEG and config.quality is None:
            raise EncoderInitFailed("JPEG output needs a quality fraction.")
        if config.quality is not None and not 0.0 <= config.quality <= 1.0:
            raise EncoderInitFailed(
                f"Quality must be a fraction within 0 -- 1, got {config.quality}."
            )

    def _accept(self, handle: EncodeHandle, frame: CompositedFrame,
                options: FrameOptions, index: int) -> None:
        if index > 0:
            raise SingleFrameEncoderMisuse(
                f"{handle.config.format.label} is a single-frame format; "
                f"got a second frame."
            )
        try:
            _check_frame(frame, handle.config, index)
        except FrameEncodeFailed:
            self.abort(handle)
            raise
        handle.frames.append((frame, options))

    def _encode(self, handle: EncodeHandle, report: ProgressCallback) -> bytes:
        if len(handle.frames) != 1:
            raise SingleFrameEncoderMisuse(
                f"Static encoder needs exactly one frame, got {len(handle.frames)}."
            )
        cfg = handle.config
        report(0.0)
        img = handle.frames[0][0].to_image()
        buf = io.BytesIO()

        if cfg.format is TargetFormat.PNG:
            img.save(buf, format="PNG", optimize=True)
        elif cfg.format is TargetFormat.JPEG:
            flatten(img, cfg.background_color).save(
                buf, format="JPEG", quality=_quality_percent(cfg.quality),
            )
        else:
            quality = DEFAULT_WEBP_QUALITY if cfg.quality is None else cfg.quality
            img.save(buf, format="WEBP", quality=_quality_percent(quality))

        handle.raise_if_cancelled()
        report(1.0)
        return buf.getvalue()


# ===================================================================
#  ANIMATED ENCODER
# ===================================================================

def _sample_factor(quantization_quality: int) -> int:
    """Pixel-sampling stride for palette building (1 = every pixel)."""
    return max(1, int(math.sqrt(quantization_quality)))


def build_global_palette(
    images: list[Image.Image],
    quantization_quality: int = 10,
    max_colors: int = GIF_MAX_COLORS,
) -> Image.Image:
    """Build one palette shared by every frame of an animation.

    Frames are tiled into a mosaic (at most 64 evenly spaced frames) and the
    mosaic is quantized with median cut.  Higher ``quantization_quality``
    values downsample the mosaic first, trading palette fidelity for speed.
    Returns a P-mode image whose palette is the global palette.
    """
    frame_w, frame_h = images[0].size
    sample_indices = list(range(len(images)))
    if len(images) > 64:
        step = len(images) / 64
        sample_indices = [int(i * step) for i in range(64)]

    cols = min(len(sample_indices), 8)
    rows = math.ceil(len(sample_indices) / cols)
    mosaic = Image.new("RGB", (frame_w * cols, frame_h * rows))
    for idx, frame_idx in enumerate(sample_indices):
        r, c = divmod(idx, cols)
        mosaic.paste(images[frame_idx].convert("RGB"), (c * frame_w, r * frame_h))

    factor = _sample_factor(quantization_quality)
    if factor > 1 and min(mosaic.size) > factor:
        mosaic = mosaic.reduce(factor)

    return mosaic.quantize(
        colors=max_colors,
        method=Image.Quantize.MEDIANCUT,
        dither=Image.Dither.NONE,
    )


class AnimatedEncoder(Encoder):
    """Multi-frame GIF / WebP encoder with best-effort per-frame handling."""

    name = "animated"
    formats = frozenset({TargetFormat.GIF, TargetFormat.WEBP})

    def __init__(self, workers: int = 2) -> None:
        self.workers = max(1, workers)

    def _validate_config(self, config: EncoderConfig) -> None:
        if config.quantization_quality < 1:
            raise EncoderInitFailed(
                f"Quantization quality must be >= 1, got {config.quantization_quality}."
            )
        if config.format is TargetFormat.WEBP and config.quality is not None:
            if not 0.0 <= config.quality <= 1.0:
                raise EncoderInitFailed(
                    f"Quality must be a fraction within 0 -- 1, got {config.quality}."
                )

    def _accept(self, handle: EncodeHandle, frame: CompositedFrame,
                options: FrameOptions, index: int) -> None:
        try:
            _check_frame(frame, handle.config, index)
        except FrameEncodeFailed as exc:
            handle.skipped_frames.append((index, exc))
            logger.warning("Skipping frame %d: %s", index, exc)
            return
        handle.frames.append((frame, options))

    def _encode(self, handle: EncodeHandle, report: ProgressCallback) -> bytes:
        if not handle.frames:
            raise FrameEncodeFailed(
                f"No encodable frames ({len(handle.skipped_frames)} skipped)."
            )
        cfg = handle.config
        delays = [opts.delay_ms for _, opts in handle.frames]
        report(0.0)

        if cfg.format is TargetFormat.GIF:
            images = [flatten(f.to_image(), cfg.background_color)
                      for f, _ in handle.frames]
            frames = self._quantize_parallel(images, cfg, handle, report)
        else:
            frames = [f.to_image() for f, _ in handle.frames]
            report(len(frames) / (len(frames) + 1))

        handle.raise_if_cancelled()
        buf = io.BytesIO()
        first, rest = frames[0], frames[1:]
        if cfg.format is TargetFormat.GIF:
            first.save(
                buf,
                format="GIF",
                save_all=True,
                append_images=rest,
                duration=delays,            # per-frame, ms
                loop=cfg.loop_count,        # 0 = infinite
                disposal=2,                 # restore to background
                optimize=False,
            )
        else:
            quality = DEFAULT_WEBP_QUALITY if cfg.quality is None else cfg.quality
            first.save(
                buf,
                format="WEBP",
                save_all=True,
                append_images=rest,
                duration=delays,
                loop=cfg.loop_count,
                quality=_quality_percent(quality),
            )
        report(1.0)
        logger.debug("Animated %s: %d frame(s), %d skipped, %d bytes.",
                     cfg.format.label, len(frames), len(handle.skipped_frames),
                     buf.tell())
        return buf.getvalue()

    def _quantize_parallel(
        self,
        images: list[Image.Image],
        cfg: EncoderConfig,
        handle: EncodeHandle,
        report: ProgressCallback,
    ) -> list[Image.Image]:
        """Remap every frame to the global palette on ``self.workers`` threads."""
        palette = build_global_palette(images, cfg.quantization_quality)
        palette.load()  # shared read-only by the workers
        total = len(images) + 1
        quantized: dict[int, Image.Image] = {}

        with ThreadPoolExecutor(max_workers=self.workers,
                                thread_name_prefix="imagepipe-quantize") as pool:
            future_to_index = {
                pool.submit(img.quantize, palette=palette, dither=Image.Dither.NONE): i
                for i, img in enumerate(images)
            }
            for fut in as_completed(future_to_index):
                if handle.cancelled:
                    for pending in future_to_index:
                        pending.cancel()
                    raise Aborted("Encoding was aborted.")
                quantized[future_to_index[fut]] = fut.result()
                report(len(quantized) / total)

        return [quantized[i] for i in range(len(images))]

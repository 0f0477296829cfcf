"""
Frame compositing.

Places a decoded frame's pixel patch on a transparent canvas of the
frame's declared size, then stretches the canvas to the output size:

    patch  -->  canvas @ (offset_x, offset_y)  -->  resize(out_w, out_h)

There is no cropping and no letterboxing; aspect handling is the job of
``imagepipe.dimensions``.  The input frame is never modified.
"""

from __future__ import annotations

from PIL import Image

from imagepipe.exceptions import CorruptStream, InvalidSourceDimensions
from imagepipe.types import CompositedFrame, DecodedFrame

RESAMPLE = Image.Resampling.LANCZOS


def render_canvas(frame: DecodedFrame) -> Image.Image:
    """Draw *frame* onto a new RGBA canvas of its native size."""
    expected = frame.width * frame.height * 4
    if len(frame.pixel_patch) != expected:
        raise CorruptStream(
            f"Pixel patch holds {len(frame.pixel_patch)} bytes, "
            f"expected {expected} for {frame.width}x{frame.height} RGBA."
        )
    patch = frame.patch_image()
    canvas_w, canvas_h = frame.native_size
    if (canvas_w, canvas_h) == patch.size and frame.offset_x == 0 and frame.offset_y == 0:
        return patch.copy()
    canvas = Image.new("RGBA", (canvas_w, canvas_h), (0, 0, 0, 0))
    canvas.paste(patch, (frame.offset_x, frame.offset_y))
    return canvas


def composite(frame: DecodedFrame, output_width: int, output_height: int) -> CompositedFrame:
    """Render *frame* and stretch it to exactly (output_width, output_height)."""
    if output_width <= 0 or output_height <= 0:
        raise InvalidSourceDimensions(
            f"Output dimensions must be positive, got {output_width}x{output_height}."
        )
    canvas = render_canvas(frame)
    if canvas.size != (output_width, output_height):
        canvas = canvas.resize((output_width, output_height), RESAMPLE)
    return CompositedFrame.from_image(canvas)


def composite_all(frames: list[DecodedFrame], output_width: int,
                  output_height: int) -> list[CompositedFrame]:
    return [composite(f, output_width, output_height) for f in frames]


def flatten(img: Image.Image, background: str = "white") -> Image.Image:
    """Composite an RGBA image over an opaque *background*, returning RGB."""
    rgba = img.convert("RGBA")
    bg = Image.new("RGBA", rgba.size, background)
    bg.alpha_composite(rgba)
    return bg.convert("RGB")

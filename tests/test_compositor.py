"""
Tests for frame compositing.
"""

from __future__ import annotations

import pytest
from PIL import Image

from imagepipe.compositor import composite, composite_all, flatten, render_canvas
from imagepipe.exceptions import CorruptStream, InvalidSourceDimensions
from imagepipe.types import DecodedFrame


def _make_decoded(
    width: int = 40,
    height: int = 20,
    color: tuple[int, int, int, int] = (255, 0, 0, 255),
    offset: tuple[int, int] = (0, 0),
    canvas: tuple[int, int] = (0, 0),
) -> DecodedFrame:
    patch = Image.new("RGBA", (width, height), color).tobytes()
    return DecodedFrame(
        width=width, height=height,
        offset_x=offset[0], offset_y=offset[1],
        pixel_patch=patch, delay_ms=100,
        canvas_width=canvas[0], canvas_height=canvas[1],
    )


# ---------------------------------------------------------------------------
# render_canvas
# ---------------------------------------------------------------------------

class TestRenderCanvas:
    def test_full_canvas_patch(self):
        img = render_canvas(_make_decoded())
        assert img.size == (40, 20)
        assert img.getpixel((10, 10)) == (255, 0, 0, 255)

    def test_offset_patch_is_placed(self):
        frame = _make_decoded(10, 10, offset=(5, 3), canvas=(30, 20))
        img = render_canvas(frame)
        assert img.size == (30, 20)
        assert img.getpixel((0, 0)) == (0, 0, 0, 0)
        assert img.getpixel((5, 3)) == (255, 0, 0, 255)
        assert img.getpixel((14, 12)) == (255, 0, 0, 255)
        assert img.getpixel((15, 13)) == (0, 0, 0, 0)

    def test_native_size_from_offset(self):
        frame = _make_decoded(10, 10, offset=(4, 6))
        assert frame.native_size == (14, 16)
        assert render_canvas(frame).size == (14, 16)

    def test_short_patch(self):
        frame = _make_decoded()
        broken = DecodedFrame(
            width=frame.width, height=frame.height, offset_x=0, offset_y=0,
            pixel_patch=frame.pixel_patch[:-4], delay_ms=100,
        )
        with pytest.raises(CorruptStream):
            render_canvas(broken)


# ---------------------------------------------------------------------------
# composite
# ---------------------------------------------------------------------------

class TestComposite:
    def test_same_size_is_lossless(self):
        frame = _make_decoded()
        out = composite(frame, 40, 20)
        assert (out.width, out.height) == (40, 20)
        assert out.pixel_buffer == frame.pixel_patch

    def test_resizes_to_exact_output(self):
        out = composite(_make_decoded(), 100, 50)
        assert (out.width, out.height) == (100, 50)
        assert len(out.pixel_buffer) == 100 * 50 * 4

    def test_stretch_without_letterbox(self):
        # Aspect handling is upstream; the compositor simply stretches.
        out = composite(_make_decoded(), 20, 20)
        arr = out.as_array()
        assert arr.shape == (20, 20, 4)
        assert (arr[:, :, 3] == 255).all()

    def test_input_frame_untouched(self):
        frame = _make_decoded()
        before = frame.pixel_patch
        composite(frame, 8, 4)
        assert frame.pixel_patch is before

    @pytest.mark.parametrize("w,h", [(0, 10), (10, 0), (-1, 5)])
    def test_non_positive_output(self, w, h):
        with pytest.raises(InvalidSourceDimensions):
            composite(_make_decoded(), w, h)

    def test_composite_all(self):
        frames = [_make_decoded(color=(i * 40, 0, 0, 255)) for i in range(3)]
        out = composite_all(frames, 10, 5)
        assert [(f.width, f.height) for f in out] == [(10, 5)] * 3


class TestFlatten:
    def test_transparent_becomes_background(self):
        img = Image.new("RGBA", (4, 4), (0, 0, 0, 0))
        assert flatten(img, "white").getpixel((0, 0)) == (255, 255, 255)

    def test_opaque_pixels_kept(self):
        img = Image.new("RGBA", (4, 4), (10, 20, 30, 255))
        out = flatten(img, "black")
        assert out.mode == "RGB"
        assert out.getpixel((1, 1)) == (10, 20, 30)

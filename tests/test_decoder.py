"""
Tests for frame decoding and source loading.
"""

from __future__ import annotations

import io

import pytest
from PIL import Image

from imagepipe.config import DEFAULT_SETTINGS, codec_available
from imagepipe.decoder import (
    decode,
    decode_still,
    guess_mime_type,
    load_source,
    read_upload,
    sniff_container,
)
from imagepipe.exceptions import (
    CorruptStream,
    UnsupportedContainer,
)
from imagepipe.types import TargetFormat, UploadedFile


# ---------------------------------------------------------------------------
# Container sniffing
# ---------------------------------------------------------------------------

class TestSniffContainer:
    def test_gif(self, animated_gif_bytes):
        assert sniff_container(animated_gif_bytes) == "gif"

    def test_png(self, png_bytes):
        assert sniff_container(png_bytes) == "png"

    def test_webp(self):
        assert sniff_container(b"RIFF\x00\x00\x00\x00WEBPVP8 ") == "webp"

    def test_unknown(self, jpeg_bytes):
        assert sniff_container(jpeg_bytes) is None
        assert sniff_container(b"") is None

    def test_guess_mime_type(self):
        assert guess_mime_type("a/b/photo.png") == "image/png"
        assert guess_mime_type("clip.gif") == "image/gif"
        assert guess_mime_type("notes") == "application/octet-stream"


# ---------------------------------------------------------------------------
# Animated decoding
# ---------------------------------------------------------------------------

class TestDecode:
    def test_frame_count_and_order(self, animated_gif_bytes):
        frames = decode(animated_gif_bytes)
        assert len(frames) == 5
        # The square moves left to right: find its leftmost column per frame.
        lefts = []
        for f in frames:
            img = f.patch_image().convert("RGB")
            cols = [x for x in range(img.width)
                    if img.getpixel((x, img.height // 2)) != (255, 255, 255)]
            lefts.append(cols[0])
        assert lefts == sorted(lefts)
        assert lefts[0] < lefts[-1]

    def test_frames_cover_full_canvas(self, animated_gif_bytes):
        for f in decode(animated_gif_bytes):
            assert (f.width, f.height) == (120, 60)
            assert (f.offset_x, f.offset_y) == (0, 0)
            assert f.native_size == (120, 60)
            assert len(f.pixel_patch) == 120 * 60 * 4

    def test_delays_are_floored(self, animated_gif_bytes):
        delays = [f.delay_ms for f in decode(animated_gif_bytes)]
        assert delays == [100, 50, 200, 60, 80]
        assert all(d >= DEFAULT_SETTINGS.min_frame_delay_ms for d in delays)

    def test_custom_delay_floor(self, animated_gif_bytes):
        settings = DEFAULT_SETTINGS.replace(min_frame_delay_ms=90)
        delays = [f.delay_ms for f in decode(animated_gif_bytes, settings)]
        assert delays == [100, 90, 200, 90, 90]

    def test_truncated_gif(self, animated_gif_bytes):
        with pytest.raises(CorruptStream):
            decode(animated_gif_bytes[: len(animated_gif_bytes) // 2])

    def test_trailer_must_be_last_byte(self, animated_gif_bytes):
        with pytest.raises(CorruptStream):
            decode(animated_gif_bytes + b"\x00\x00")

    def test_header_only_gif(self):
        with pytest.raises(CorruptStream):
            decode(b"GIF89a\x01\x00\x01\x00;")

    def test_bad_signature(self):
        with pytest.raises(UnsupportedContainer):
            decode(b"\x00\x01\x02\x03 definitely not an image")

    def test_jpeg_is_not_a_frame_container(self, jpeg_bytes):
        with pytest.raises(UnsupportedContainer):
            decode(jpeg_bytes)

    def test_still_png_is_one_frame(self, png_bytes):
        frames = decode(png_bytes)
        assert len(frames) == 1
        assert frames[0].native_size == (400, 300)


class TestDecodeStill:
    def test_single_frame(self, png_bytes):
        frame = decode_still(png_bytes)
        assert (frame.width, frame.height) == (400, 300)
        assert frame.delay_ms == DEFAULT_SETTINGS.default_frame_delay_ms

    def test_first_frame_of_animation(self, animated_gif_bytes):
        first = decode(animated_gif_bytes)[0]
        still = decode_still(animated_gif_bytes)
        assert still.pixel_patch == first.pixel_patch

    def test_preserves_alpha(self, png_bytes):
        img = decode_still(png_bytes).patch_image()
        assert img.mode == "RGBA"
        assert img.getpixel((0, 0))[3] == 128

    def test_garbage(self):
        with pytest.raises(UnsupportedContainer):
            decode_still(b"garbage")


# ---------------------------------------------------------------------------
# Source loading
# ---------------------------------------------------------------------------

class TestLoadSource:
    def test_loads_dimensions(self, png_upload):
        source = load_source(png_upload)
        assert (source.decoded_width, source.decoded_height) == (400, 300)
        assert source.display_name == "photo.png"
        assert source.raw_bytes == png_upload.raw_bytes
        assert not source.is_animated_container

    def test_gif_is_animated_container(self, gif_upload):
        source = load_source(gif_upload)
        assert source.is_animated_container
        assert source.aspect_ratio == pytest.approx(2.0)

    def test_non_image_mime_type(self, png_bytes):
        with pytest.raises(UnsupportedContainer):
            load_source(UploadedFile(png_bytes, "photo.txt", "text/plain"))

    def test_malformed_bytes(self, malformed_upload):
        with pytest.raises(UnsupportedContainer):
            load_source(malformed_upload)

    def test_truncated_png(self, png_bytes):
        upload = UploadedFile(png_bytes[: len(png_bytes) // 2], "cut.png", "image/png")
        with pytest.raises((CorruptStream, UnsupportedContainer)):
            load_source(upload)

    def test_read_upload(self, tmp_dir, jpeg_bytes):
        path = tmp_dir / "portrait.jpg"
        path.write_bytes(jpeg_bytes)
        upload = read_upload(path)
        assert upload.display_name == "portrait.jpg"
        assert upload.mime_type == "image/jpeg"
        assert upload.size == len(jpeg_bytes)

    def test_read_upload_explicit_mime(self, tmp_dir, png_bytes):
        path = tmp_dir / "blob.bin"
        path.write_bytes(png_bytes)
        assert read_upload(path, "image/png").mime_type == "image/png"

    def test_one_pixel_image(self):
        buf = io.BytesIO()
        Image.new("RGB", (1, 1)).save(buf, format="PNG")
        source = load_source(UploadedFile(buf.getvalue(), "dot.png", "image/png"))
        assert (source.decoded_width, source.decoded_height) == (1, 1)


# ---------------------------------------------------------------------------
# Other animated containers
# ---------------------------------------------------------------------------

class TestOtherContainers:
    def test_apng(self, frame_factory):
        buf = io.BytesIO()
        frames = frame_factory(3)
        frames[0].save(buf, format="PNG", save_all=True, append_images=frames[1:],
                       duration=[120, 40, 90], loop=0)
        decoded = decode(buf.getvalue())
        assert len(decoded) == 3
        assert [f.delay_ms for f in decoded] == [120, 50, 90]

    @pytest.mark.skipif(not codec_available(TargetFormat.WEBP),
                        reason="Pillow built without WebP")
    def test_animated_webp(self, frame_factory):
        buf = io.BytesIO()
        frames = frame_factory(4)
        frames[0].save(buf, format="WEBP", save_all=True, append_images=frames[1:],
                       duration=100, loop=0, lossless=True)
        decoded = decode(buf.getvalue())
        assert len(decoded) == 4
        assert all(f.native_size == (120, 60) for f in decoded)

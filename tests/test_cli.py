"""
Tests for the imagepipe command-line interface.
"""

from __future__ import annotations

import pytest
from PIL import Image

from imagepipe import __version__
from imagepipe.cli.main import main


class TestMain:
    def test_no_command_prints_help(self, capsys):
        assert main([]) == 0
        assert "imagepipe" in capsys.readouterr().out

    def test_version(self, capsys):
        with pytest.raises(SystemExit):
            main(["--version"])
        assert __version__ in capsys.readouterr().out


class TestConvertCommand:
    def test_convert_gif(self, tmp_dir, animated_gif_bytes, capsys):
        src = tmp_dir / "dance.gif"
        src.write_bytes(animated_gif_bytes)
        out_dir = tmp_dir / "out"
        code = main(["convert", str(src), "-f", "gif", "--size", "60x60",
                     "-o", str(out_dir)])
        assert code == 0
        with Image.open(out_dir / "dance.gif") as im:
            assert im.size == (60, 30)
            assert im.n_frames == 5
        assert "File Size" in capsys.readouterr().out

    def test_convert_several_formats(self, tmp_dir, png_bytes):
        src = tmp_dir / "photo.png"
        src.write_bytes(png_bytes)
        code = main(["convert", str(src), "-f", "jpg", "-f", "gif",
                     "--quality", "60", "-o", str(tmp_dir)])
        assert code == 0
        assert (tmp_dir / "photo.jpeg").is_file()
        assert (tmp_dir / "photo.gif").is_file()

    def test_missing_file(self, tmp_dir, capsys):
        assert main(["convert", str(tmp_dir / "nope.png")]) == 1
        assert "Error" in capsys.readouterr().err

    def test_bad_size(self, tmp_dir, png_bytes, capsys):
        src = tmp_dir / "photo.png"
        src.write_bytes(png_bytes)
        assert main(["convert", str(src), "--size", "huge"]) == 1
        assert "Invalid size selector" in capsys.readouterr().err

    def test_bad_config(self, tmp_dir, png_bytes):
        src = tmp_dir / "photo.png"
        src.write_bytes(png_bytes)
        assert main(["convert", str(src), "--config", str(tmp_dir / "none.yaml")]) == 1


class TestBatchCommand:
    def test_batch_with_one_bad_file(self, tmp_dir, png_bytes, capsys):
        good = tmp_dir / "good.png"
        good.write_bytes(png_bytes)
        bad = tmp_dir / "bad.png"
        bad.write_bytes(b"not a png")
        out_dir = tmp_dir / "converted"
        code = main(["batch", str(good), str(bad), "-f", "png", "--size", "40x40",
                     "-o", str(out_dir)])
        assert code == 1
        with Image.open(out_dir / "good.png") as im:
            assert im.size == (40, 30)
        assert not (out_dir / "bad.png").exists()
        assert "1 completed, 1 failed of 2" in capsys.readouterr().out

    def test_batch_without_images(self, tmp_dir, capsys):
        notes = tmp_dir / "notes.txt"
        notes.write_text("hello", encoding="utf-8")
        assert main(["batch", str(notes)]) == 1
        assert "No valid image files found." in capsys.readouterr().err


class TestIconsCommand:
    def test_icons(self, tmp_dir, png_bytes):
        src = tmp_dir / "logo.png"
        src.write_bytes(png_bytes)
        out_dir = tmp_dir / "icons"
        assert main(["icons", str(src), "-o", str(out_dir)]) == 0
        assert sorted(p.name for p in out_dir.iterdir()) == sorted([
            "custom-icon-16.png", "custom-icon-32.png", "custom-icon-192.png",
            "custom-icon-512.png", "custom-icon-maskable-192.png",
            "custom-icon-maskable-512.png",
        ])

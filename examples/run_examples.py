"""
Generate a small sample animation and run it through imagepipe.

Usage:
    python examples/run_examples.py
"""

from __future__ import annotations

import subprocess
import sys
from pathlib import Path

from PIL import Image, ImageDraw

EXAMPLES_DIR = Path(__file__).parent
OUTPUT_DIR = EXAMPLES_DIR / "output"


def make_bouncing_ball(path: Path, steps: int = 24, size: int = 160) -> None:
    frames = []
    for i in range(steps):
        img = Image.new("RGB", (size * 2, size), "white")
        x = int((size * 2 - 40) * i / (steps - 1))
        y = int(abs((i % 12) - 6) / 6 * (size - 40))
        ImageDraw.Draw(img).ellipse([x, y, x + 40, y + 40], fill=(16, 185, 129))
        frames.append(img)
    frames[0].save(path, save_all=True, append_images=frames[1:],
                   duration=60, loop=0)


def main() -> None:
    OUTPUT_DIR.mkdir(exist_ok=True)
    source = OUTPUT_DIR / "bouncing_ball.gif"
    make_bouncing_ball(source)
    print(f"Wrote sample animation {source.name}")

    runs = [
        ["convert", str(source), "-f", "gif", "--size", "160x160"],
        ["convert", str(source), "-f", "png", "-f", "jpeg", "-f", "webp"],
        ["icons", str(source), "-o", str(OUTPUT_DIR / "icons")],
    ]
    for args in runs:
        print(f"imagepipe {' '.join(args[:1])} ...")
        cmd = [sys.executable, "-m", "imagepipe", *args]
        if args[0] == "convert":
            cmd += ["-o", str(OUTPUT_DIR / "converted")]
        subprocess.run(cmd, check=True)


if __name__ == "__main__":
    main()

"""
Fixed-size icon sets derived from a source image.

Each icon is a square PNG: a solid brand-colour background with the source
stretched into a centred square inset.  Maskable icons use a wider inset
so the artwork survives the circular/rounded masks launchers apply.

    ============================  ====  ========  =====
    Name                          Size  Maskable  Inset
    ============================  ====  ========  =====
    custom-icon-16.png            16    no        5 %
    custom-icon-32.png            32    no        5 %
    custom-icon-192.png           192   no        5 %
    custom-icon-512.png           512   no        5 %
    custom-icon-maskable-192.png  192   yes       10 %
    custom-icon-maskable-512.png  512   yes       10 %
    ============================  ====  ========  =====
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from PIL import Image

from imagepipe import decoder
from imagepipe.compositor import RESAMPLE
from imagepipe.encoders import StaticEncoder
from imagepipe.exceptions import NoCurrentImage
from imagepipe.types import CompositedFrame, EncoderConfig, SourceImage, TargetFormat

logger = logging.getLogger(__name__)

ICON_BACKGROUND = "#10b981"
INSET_FRACTION = 0.05
MASKABLE_INSET_FRACTION = 0.10


@dataclass(frozen=True)
class IconSpec:
    size: int
    name: str
    maskable: bool = False

    @property
    def inset(self) -> int:
        fraction = MASKABLE_INSET_FRACTION if self.maskable else INSET_FRACTION
        return int(round(self.size * fraction))


CUSTOM_ICON_SPECS: tuple[IconSpec, ...] = (
    IconSpec(16, "custom-icon-16.png"),
    IconSpec(32, "custom-icon-32.png"),
    IconSpec(192, "custom-icon-192.png"),
    IconSpec(512, "custom-icon-512.png"),
    IconSpec(192, "custom-icon-maskable-192.png", maskable=True),
    IconSpec(512, "custom-icon-maskable-512.png", maskable=True),
)


@dataclass(frozen=True)
class IconAsset:
    spec: IconSpec
    blob: bytes

    @property
    def name(self) -> str:
        return self.spec.name


def render_icon(image: Image.Image, spec: IconSpec,
                background: str = ICON_BACKGROUND) -> Image.Image:
    """Draw *image* onto a square icon canvas described by *spec*."""
    canvas = Image.new("RGBA", (spec.size, spec.size), background)
    inner = max(1, spec.size - 2 * spec.inset)
    artwork = image.convert("RGBA").resize((inner, inner), RESAMPLE)
    canvas.alpha_composite(artwork, (spec.inset, spec.inset))
    return canvas


def generate_icon_set(
    source: SourceImage | None,
    specs: tuple[IconSpec, ...] = CUSTOM_ICON_SPECS,
    background: str = ICON_BACKGROUND,
) -> list[IconAsset]:
    """Render every icon in *specs* from *source* and encode each as PNG."""
    if source is None:
        raise NoCurrentImage("Please upload a custom image first.")

    image = decoder.decode_still(source.raw_bytes).patch_image()
    encoder = StaticEncoder()
    assets: list[IconAsset] = []
    for spec in specs:
        icon = render_icon(image, spec, background)
        handle = encoder.begin(EncoderConfig(
            output_width=spec.size,
            output_height=spec.size,
            format=TargetFormat.PNG,
        ))
        encoder.feed(handle, CompositedFrame.from_image(icon))
        assets.append(IconAsset(spec=spec, blob=encoder.finish(handle).result()))

    logger.info("Generated %d icons from %s.", len(assets), source.display_name)
    return assets

"""
Runtime configuration and codec discovery.

Policy values (quality levels, frame-delay floor, worker counts) live in a
single frozen ``PipelineSettings``.  Settings can be overridden from a YAML
mapping whose keys are the dataclass field names::

    jpeg_quality: 80
    gif_workers: 4
    min_frame_delay_ms: 40

Codec availability is probed through Pillow's ``features`` module so that
encoders can fail early with a clear message when a format is missing from
the local Pillow build.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml
from PIL import features

from imagepipe.exceptions import ConfigError
from imagepipe.types import TargetFormat


@dataclass(frozen=True)
class PipelineSettings:
    """Policy values used by the pipeline, batch scheduler and encoders."""
    jpeg_quality: int = 92              # user-facing 0 -- 100
    batch_jpeg_quality: int = 85
    webp_quality: float = 0.85          # fixed, no user control
    gif_quantization_quality: int = 10  # lower = better palette, slower
    gif_workers: int = 2
    batch_gif_workers: int = 1
    min_frame_delay_ms: int = 50
    default_frame_delay_ms: int = 100
    background_color: str = "white"
    loop_count: int = 0                 # 0 = infinite

    def __post_init__(self) -> None:
        for name in ("jpeg_quality", "batch_jpeg_quality"):
            value = getattr(self, name)
            if not 0 <= value <= 100:
                raise ConfigError(f"{name} must be within 0 -- 100, got {value}")
        if not 0.0 <= self.webp_quality <= 1.0:
            raise ConfigError(f"webp_quality must be within 0 -- 1, got {self.webp_quality}")
        if self.gif_quantization_quality < 1:
            raise ConfigError("gif_quantization_quality must be >= 1")
        if self.gif_workers < 1 or self.batch_gif_workers < 1:
            raise ConfigError("worker counts must be >= 1")
        if self.min_frame_delay_ms < 0:
            raise ConfigError("min_frame_delay_ms must be >= 0")

    def replace(self, **changes: Any) -> PipelineSettings:
        return dataclasses.replace(self, **changes)


DEFAULT_SETTINGS = PipelineSettings()


def settings_from_mapping(data: dict[str, Any] | None) -> PipelineSettings:
    """Build settings from a plain mapping, rejecting unknown keys."""
    if not data:
        return PipelineSettings()
    if not isinstance(data, dict):
        raise ConfigError(f"Settings must be a mapping, got {type(data).__name__}")
    known = {f.name for f in dataclasses.fields(PipelineSettings)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ConfigError(f"Unknown setting(s): {', '.join(unknown)}")
    try:
        return PipelineSettings(**data)
    except TypeError as exc:
        raise ConfigError(f"Invalid settings: {exc}") from exc


def load_settings(path: Path | str) -> PipelineSettings:
    """Read settings from a YAML file."""
    path = Path(path)
    if not path.is_file():
        raise ConfigError(f"Settings file not found: {path}")
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as exc:
        raise ConfigError(f"Could not parse {path}: {exc}") from exc
    return settings_from_mapping(data)


# ---------------------------------------------------------------------------
# Codec discovery
# ---------------------------------------------------------------------------

# Pillow feature names each format depends on (None = always built in).
_CODEC_FEATURES: dict[TargetFormat, str | None] = {
    TargetFormat.PNG: "zlib",
    TargetFormat.JPEG: "jpg",
    TargetFormat.WEBP: "webp",
    TargetFormat.GIF: None,
}


def codec_available(fmt: TargetFormat) -> bool:
    """Return True if the local Pillow build can write *fmt*."""
    feature = _CODEC_FEATURES[fmt]
    if feature is None:
        return True
    return bool(features.check(feature))


def resolve_codecs() -> dict[TargetFormat, bool]:
    """Probe every target format at once."""
    return {fmt: codec_available(fmt) for fmt in TargetFormat}

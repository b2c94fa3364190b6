from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import Mapping, Tuple

from .errors import InvalidConfiguration
from .settings import CompressionSettings


@dataclass(frozen=True)
class CompressionPreset:
    key: str
    name: str
    description: str
    settings: CompressionSettings


# Least -> most aggressive.
PRESET_ORDER: Tuple[str, ...] = ("high_quality", "balanced", "web_optimized", "aggressive")

PRESETS: Mapping[str, CompressionPreset] = MappingProxyType({
    "high_quality": CompressionPreset(
        key="high_quality",
        name="High Quality",
        description="Minimal compression, best for professional photos",
        settings=CompressionSettings(max_size_mb=2, max_width_or_height=4096, quality=0.9),
    ),
    "balanced": CompressionPreset(
        key="balanced",
        name="Balanced",
        description="Good balance between quality and file size",
        settings=CompressionSettings(max_size_mb=1, max_width_or_height=2048, quality=0.8),
    ),
    "web_optimized": CompressionPreset(
        key="web_optimized",
        name="Web Optimized",
        description="Optimized for web display, smaller file size",
        settings=CompressionSettings(max_size_mb=0.5, max_width_or_height=1920, quality=0.7),
    ),
    "aggressive": CompressionPreset(
        key="aggressive",
        name="Aggressive",
        description="Maximum compression, smallest file size",
        settings=CompressionSettings(max_size_mb=0.2, max_width_or_height=1280, quality=0.6),
    ),
})


def get_preset(name: str) -> CompressionPreset:
    key = str(name).strip().lower().replace("-", "_")

    preset = PRESETS.get(key)
    if preset is None:
        raise InvalidConfiguration(
            f"Unknown preset: {name} (expected one of: {', '.join(PRESET_ORDER)})"
        )
    return preset


def preset_settings(name: str) -> CompressionSettings:
    return get_preset(name).settings

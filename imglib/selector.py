"""
Pick encode parameters for one image.

Two heuristics are layered in progressive mode: the file-size tier picks a
base preset, then (when the pixel size is known) the long edge overrides
max_width_or_height and quality. max_size_mb always comes from the tier.
With progressive mode off the named preset is returned untouched.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from .presets import preset_settings
from .results import Dimensions
from .settings import CompressionSettings


log = logging.getLogger(__name__)


def progressive_settings(file_size_mb: float) -> CompressionSettings:
    if file_size_mb < 1:
        return preset_settings("high_quality")
    if file_size_mb < 3:
        return preset_settings("balanced")
    if file_size_mb < 5:
        return preset_settings("web_optimized")
    return preset_settings("aggressive")


def dimension_overrides(dimensions: Dimensions) -> Dict[str, Any]:
    longest = dimensions.longest_edge

    if longest > 4000:
        return {"max_width_or_height": 2048, "quality": 0.75}
    if longest > 2000:
        return {"max_width_or_height": 1920, "quality": 0.8}
    return {"max_width_or_height": 1920, "quality": 0.85}


def select_settings(
    file_size_mb: float,
    *,
    progressive: bool,
    preset: str = "balanced",
    dimensions: Optional[Dimensions] = None,
) -> CompressionSettings:
    if not progressive:
        return preset_settings(preset)

    settings = progressive_settings(file_size_mb)

    # A 0x0 probe result is as good as no result.
    if dimensions is not None and dimensions.is_known:
        settings = settings.merged(**dimension_overrides(dimensions))
    else:
        log.debug("No dimensions, using size tier only (%.2f MB)", file_size_mb)

    return settings

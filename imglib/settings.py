from __future__ import annotations

from dataclasses import dataclass, replace

from .errors import InvalidConfiguration


BYTES_PER_MB = 1024 * 1024


@dataclass(frozen=True)
class CompressionSettings:
    """
    Concrete encode parameters for a single image.

    - max_size_mb: best-effort target for the encoded size
    - max_width_or_height: hard cap on the long edge, in pixels
    - quality: lossy quality factor in (0, 1]
    """

    max_size_mb: float
    max_width_or_height: int
    quality: float

    def __post_init__(self) -> None:
        if not (0 < self.quality <= 1):
            raise InvalidConfiguration(f"quality must be in (0, 1], got {self.quality!r}")
        if isinstance(self.max_width_or_height, bool) or not isinstance(self.max_width_or_height, int):
            raise InvalidConfiguration(
                f"max_width_or_height must be a whole number of pixels, got {self.max_width_or_height!r}"
            )
        if self.max_width_or_height <= 0:
            raise InvalidConfiguration(
                f"max_width_or_height must be positive, got {self.max_width_or_height!r}"
            )
        if self.max_size_mb <= 0:
            raise InvalidConfiguration(f"max_size_mb must be positive, got {self.max_size_mb!r}")

    @property
    def max_output_size_bytes(self) -> int:
        return int(self.max_size_mb * BYTES_PER_MB)

    @property
    def quality_percent(self) -> int:
        # Pillow quality scale (1-100)
        return max(1, min(100, int(round(self.quality * 100))))

    def merged(self, **overrides) -> "CompressionSettings":
        return replace(self, **overrides)


@dataclass(frozen=True)
class UploadOptions:
    """
    What the user picks in the settings dialog (or on the command line).

    progressive=True selects parameters from file size and dimensions;
    otherwise the named preset is used as-is.
    """

    preset: str = "balanced"
    progressive: bool = True

    def __post_init__(self) -> None:
        # Local import: presets imports this module.
        from .presets import get_preset

        preset = get_preset(self.preset)
        object.__setattr__(self, "preset", preset.key)
        object.__setattr__(self, "progressive", bool(self.progressive))

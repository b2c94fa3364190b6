from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

from .settings import BYTES_PER_MB, CompressionSettings


@dataclass(frozen=True)
class Dimensions:
    width: int
    height: int

    @property
    def longest_edge(self) -> int:
        return max(self.width, self.height)

    @property
    def is_known(self) -> bool:
        return self.width > 0 and self.height > 0

    def __str__(self) -> str:
        return f"{self.width}x{self.height}"


@dataclass(frozen=True)
class CompressionResult:
    """
    Output of compressing a single image.

    Immutable; the caller uploads `compressed` and shows the numbers.
    `dimensions` is None when the source size could not be probed.
    """
    compressed: bytes
    source: Union[Path, str, None]
    file_name: str
    original_size: int
    compressed_size: int
    compression_ratio: float
    dimensions: Optional[Dimensions]
    settings: CompressionSettings
    format: str
    output_dimensions: Optional[Dimensions] = None

    @property
    def saved_bytes(self) -> int:
        return max(0, self.original_size - self.compressed_size)


def compression_ratio(original_size: int, compressed_size: int) -> float:
    """Percent saved; negative when the output grew."""
    if original_size <= 0:
        return 0.0
    return (1 - compressed_size / original_size) * 100.0


def format_file_size(size: int) -> str:
    if size < 1024:
        return f"{size} B"
    if size < BYTES_PER_MB:
        return f"{size / 1024:.1f} KB"
    return f"{size / BYTES_PER_MB:.2f} MB"

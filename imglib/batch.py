from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Iterator, List, Optional, Sequence, Tuple
import logging

from .engine import compress_file
from .errors import CodecError
from .results import CompressionResult
from .settings import UploadOptions


log = logging.getLogger(__name__)

SUPPORTED_EXTS = {".jpg", ".jpeg", ".png", ".webp", ".gif", ".bmp", ".tif", ".tiff"}


@dataclass(frozen=True)
class BatchItem:
    """One file's outcome. Exactly one of result/error is set."""
    index: int  # 1-based
    total: int
    source: Path
    result: Optional[CompressionResult] = None
    error: Optional[CodecError] = None

    @property
    def ok(self) -> bool:
        return self.result is not None


@dataclass(frozen=True)
class BatchSummary:
    total_files: int
    compressed: int
    failed: int
    total_original_bytes: int
    total_compressed_bytes: int

    @property
    def saved_bytes(self) -> int:
        return max(0, self.total_original_bytes - self.total_compressed_bytes)

    @property
    def saved_percent(self) -> float:
        if self.total_original_bytes <= 0:
            return 0.0
        return (self.saved_bytes / self.total_original_bytes) * 100.0


def iter_images(
    paths: Sequence[Path],
    recursive: bool = True,
    exclude_dir: Optional[Path] = None,
) -> Iterable[Path]:
    """
    Yield supported image paths from a mixture of files and directories.

    Folders are walked in sorted order so repeated runs see the same order.
    exclude_dir keeps output files from being picked up again when the
    output folder sits inside an input folder.
    """
    exclude_resolved = exclude_dir.resolve() if exclude_dir else None

    for p in paths:
        p = Path(p)

        if p.is_file():
            if p.suffix.lower() in SUPPORTED_EXTS:
                if exclude_resolved and p.resolve().is_relative_to(exclude_resolved):
                    continue
                yield p
            continue

        if p.is_dir():
            pattern = "**/*" if recursive else "*"
            for f in sorted(p.glob(pattern)):
                if not f.is_file():
                    continue
                if f.suffix.lower() not in SUPPORTED_EXTS:
                    continue

                if exclude_resolved and f.resolve().is_relative_to(exclude_resolved):
                    continue

                yield f


def iter_compress(sources: Sequence[Path], options: Optional[UploadOptions] = None) -> Iterator[BatchItem]:
    """
    Compress files one at a time, in order, yielding as each one finishes.

    A file that fails to decode/encode yields an item with `error` set and
    the batch moves on. Stop iterating to stop the batch; the file being
    encoded at that moment still runs to completion.
    """
    options = options or UploadOptions()
    sources = [Path(s) for s in sources]
    total = len(sources)

    for idx, src in enumerate(sources, start=1):
        try:
            result = compress_file(src, options)
        except CodecError as ex:
            log.error("Failed to compress %s: %s", src.name, ex)
            yield BatchItem(index=idx, total=total, source=src, error=ex)
            continue

        yield BatchItem(index=idx, total=total, source=src, result=result)


def summarize(items: Iterable[BatchItem]) -> BatchSummary:
    total_files = 0
    compressed = 0
    failed = 0
    total_original = 0
    total_compressed = 0

    for item in items:
        total_files += 1
        if item.result is None:
            failed += 1
            continue

        compressed += 1
        total_original += item.result.original_size
        total_compressed += item.result.compressed_size

    return BatchSummary(
        total_files=total_files,
        compressed=compressed,
        failed=failed,
        total_original_bytes=total_original,
        total_compressed_bytes=total_compressed,
    )


def compress_batch(
    sources: Sequence[Path],
    options: Optional[UploadOptions] = None,
) -> Tuple[List[BatchItem], BatchSummary]:
    items = list(iter_compress(sources, options))
    return items, summarize(items)

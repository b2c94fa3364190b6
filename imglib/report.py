from __future__ import annotations

import csv
import json
from dataclasses import asdict, dataclass, fields
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional, Sequence

from .batch import BatchItem, BatchSummary


@dataclass(frozen=True)
class FileReport:
    source: str
    output: Optional[str]
    format: Optional[str]
    width: Optional[int]
    height: Optional[int]
    original_bytes: int
    compressed_bytes: int
    saved_bytes: int
    saved_percent: float
    error: Optional[str]


@dataclass(frozen=True)
class BatchReport:
    created_utc: str
    summary: dict
    files: List[FileReport]


def build_report(
    items: Sequence[BatchItem],
    summary: BatchSummary,
    outputs: Optional[dict] = None,
) -> BatchReport:
    """outputs maps item.source -> written path, when the caller wrote files."""
    created_utc = datetime.now(timezone.utc).isoformat(timespec="seconds").replace("+00:00", "Z")
    outputs = outputs or {}

    files: List[FileReport] = []
    for item in items:
        r = item.result
        out_path = outputs.get(item.source)

        if r is None:
            files.append(
                FileReport(
                    source=str(item.source),
                    output=None,
                    format=None,
                    width=None,
                    height=None,
                    original_bytes=0,
                    compressed_bytes=0,
                    saved_bytes=0,
                    saved_percent=0.0,
                    error=str(item.error),
                )
            )
            continue

        files.append(
            FileReport(
                source=str(item.source),
                output=str(out_path) if out_path else None,
                format=r.format,
                width=r.dimensions.width if r.dimensions else None,
                height=r.dimensions.height if r.dimensions else None,
                original_bytes=r.original_size,
                compressed_bytes=r.compressed_size,
                saved_bytes=r.saved_bytes,
                saved_percent=round(r.compression_ratio, 2),
                error=None,
            )
        )

    summary_dict = {
        "total_files": summary.total_files,
        "compressed": summary.compressed,
        "failed": summary.failed,
        "total_original_bytes": summary.total_original_bytes,
        "total_compressed_bytes": summary.total_compressed_bytes,
        "saved_bytes": summary.saved_bytes,
        "saved_percent": round(summary.saved_percent, 2),
    }

    return BatchReport(created_utc=created_utc, summary=summary_dict, files=files)


def save_report_json(report: BatchReport, path: Path) -> None:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    with path.open("w", encoding="utf-8") as f:
        json.dump(asdict(report), f, indent=2, ensure_ascii=False)


def save_report_csv(report: BatchReport, path: Path) -> None:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    columns = [f.name for f in fields(FileReport)]

    with path.open("w", encoding="utf-8", newline="") as f:
        writer = csv.DictWriter(f, fieldnames=columns)
        writer.writeheader()
        for row in report.files:
            writer.writerow(asdict(row))

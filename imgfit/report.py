from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional, Sequence

from .batch import BatchSummary
from .providers import KB, MB
from .results import CompressionResult


@dataclass(frozen=True)
class ImageReport:
    name: Optional[str]
    mime: Optional[str]
    original_bytes: int
    compressed_bytes: int
    saved_bytes: int
    saved_percent: float
    was_compressed: bool
    failed: bool


@dataclass(frozen=True)
class BatchReport:
    created_utc: str
    destination: str
    model: Optional[str]
    summary: dict
    images: List[ImageReport]


def format_bytes(n: int) -> str:
    if n < KB:
        return f"{n} B"
    if n < MB:
        return f"{n / KB:.1f} KB"
    return f"{n / MB:.2f} MB"


def build_report(
    results: Sequence[CompressionResult],
    summary: BatchSummary,
    destination: str,
    model: Optional[str] = None,
    names: Optional[Sequence[str]] = None,
) -> BatchReport:
    created_utc = datetime.now(timezone.utc).isoformat(timespec="seconds").replace("+00:00", "Z")

    images: List[ImageReport] = []
    for i, r in enumerate(results):
        images.append(
            ImageReport(
                name=names[i] if names is not None else None,
                mime=r.mime,
                original_bytes=r.original_size,
                compressed_bytes=r.compressed_size,
                saved_bytes=r.saved_bytes,
                saved_percent=round(r.saved_percent, 2),
                was_compressed=r.was_compressed,
                failed=r.failed,
            )
        )

    summary_dict = {
        "total": summary.total,
        "compressed": summary.compressed,
        "skipped": summary.skipped,
        "failed": summary.failed,
        "total_original_bytes": summary.total_original_bytes,
        "total_compressed_bytes": summary.total_compressed_bytes,
        "saved_bytes": summary.saved_bytes,
        "saved_percent": round(summary.saved_percent, 2),
    }

    return BatchReport(
        created_utc=created_utc,
        destination=destination,
        model=model,
        summary=summary_dict,
        images=images,
    )


def save_report_json(report: BatchReport, path: Path) -> None:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    with path.open("w", encoding="utf-8") as f:
        json.dump(asdict(report), f, indent=2, ensure_ascii=False)

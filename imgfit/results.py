from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Optional


@dataclass(frozen=True)
class EncodedImage:
    """Raw image bytes plus the mime type they are encoded as."""
    data: bytes
    mime: str

    @property
    def size(self) -> int:
        return len(self.data)


@dataclass(frozen=True)
class AttemptStats:
    """One encode attempt of the progressive search."""
    attempt: int  # 1-based
    quality: int
    scale: float
    width: int
    height: int
    size: int
    target_size: float

    @property
    def fits(self) -> bool:
        return self.size <= self.target_size


@dataclass(frozen=True)
class CompressionResult:
    """
    Output of processing a single attachment.

    `part` is the original object itself when nothing changed (no-op,
    malformed payload, under target, failure), so callers can compare by
    identity. On success it is a shallow copy with new `mime`/`url`.
    """
    part: Any
    original_size: int
    compressed_size: int
    was_compressed: bool
    failed: bool = False

    @property
    def mime(self) -> Optional[str]:
        if isinstance(self.part, Mapping):
            return self.part.get("mime")
        return None

    @property
    def url(self) -> Optional[str]:
        if isinstance(self.part, Mapping):
            return self.part.get("url")
        return None

    @property
    def saved_bytes(self) -> int:
        return max(0, self.original_size - self.compressed_size)

    @property
    def saved_percent(self) -> float:
        if self.original_size <= 0:
            return 0.0
        return (self.saved_bytes / self.original_size) * 100.0

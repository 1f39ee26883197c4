from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping, Optional

from .providers import PROVIDER_IMAGE_LIMITS


@dataclass(frozen=True)
class CompressSettings:
    """
    All host-overridable knobs for fitting images under provider limits.

    We keep this as a pure data object (no logic beyond small helpers) so:
    - it's easy to test
    - it can be shared between threads of a batch
    - the CLI can build one from flags
    """

    # ----- Target -----
    # Aim below the ceiling: base64 adds ~33% once the payload is text-encoded.
    target_multiplier: float = 0.7

    # ----- Progressive search -----
    max_dimension: int = 2048  # longest side before the first attempt
    max_attempts: int = 10
    scale_step: float = 0.8  # compounding shrink once quality bottoms out

    # ----- Fallback encode -----
    fallback_dimension: int = 1024  # fit inside fallback_dimension x fallback_dimension
    fallback_quality: int = 70  # JPEG quality
    fallback_compress_level: int = 9  # PNG zlib level

    # ----- Cache -----
    use_cache: bool = True
    cache_capacity: int = 100

    # ----- Limits -----
    # None means the built-in table in providers.py.
    provider_limits: Optional[Mapping[str, int]] = None

    @property
    def limits(self) -> Mapping[str, int]:
        if self.provider_limits is None:
            return PROVIDER_IMAGE_LIMITS
        return self.provider_limits

    def target_size(self, max_size: int) -> float:
        return max_size * self.target_multiplier


DEFAULT_SETTINGS = CompressSettings()

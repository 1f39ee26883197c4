from __future__ import annotations

import logging
from typing import Any, Optional, Tuple

from .cache import ImageCache
from .datauri import (
    approximate_decoded_size,
    build_data_uri,
    cache_key,
    is_image_part,
    parse_data_uri,
)
from .engine import CompressionObserver, compress_image
from .providers import resolve_limit
from .results import CompressionResult
from .settings import DEFAULT_SETTINGS, CompressSettings


logger = logging.getLogger(__name__)

# Everything that shapes the compressed output: ceiling first, then the search knobs.
CacheStamp = Tuple[int, float, int, int, float, int, int, int]

# Cached value: (stamp the URI was produced under, compressed data URI)
CachedImage = Tuple[CacheStamp, str]


def process_image_part(
    part: Any,
    destination_id: str,
    model_id: Optional[str] = None,
    settings: CompressSettings = DEFAULT_SETTINGS,
    cache: Optional[ImageCache] = None,
    observer: Optional[CompressionObserver] = None,
) -> CompressionResult:
    """
    Fit one message attachment under the destination's image ceiling.

    `part` is any mapping with `type`, `mime` and `url`. Whenever nothing is
    changed the very same object comes back in the result. Never raises.
    """
    if not is_image_part(part):
        return CompressionResult(part=part, original_size=0, compressed_size=0, was_compressed=False)

    max_size = resolve_limit(destination_id, model_id, settings.limits)
    target_size = settings.target_size(max_size)

    parsed = parse_data_uri(part["url"])
    if parsed is None:
        logger.warning("could not parse inline image data for %s", destination_id)
        return CompressionResult(
            part=part, original_size=0, compressed_size=0, was_compressed=False, failed=True
        )

    original_size = parsed.size

    stamp = _cache_stamp(max_size, settings)
    key = None
    if cache is not None and settings.use_cache:
        key = cache_key(destination_id, part["url"])
        cached: Optional[CachedImage] = cache.get(key)
        # An entry made for another ceiling (other model, changed table) or
        # other search settings is a miss.
        if cached is not None and cached[0] == stamp:
            cached_uri = cached[1]
            logger.debug("cache hit for %s image (%d bytes)", destination_id, original_size)
            return CompressionResult(
                part=_with_image(part, _mime_of(cached_uri, part["mime"]), cached_uri),
                original_size=original_size,
                compressed_size=approximate_decoded_size(cached_uri),
                was_compressed=True,
            )

    if original_size <= target_size:
        logger.debug(
            "image already under target (%d <= %d bytes)", original_size, int(target_size)
        )
        return CompressionResult(
            part=part, original_size=original_size, compressed_size=original_size, was_compressed=False
        )

    try:
        compressed = compress_image(parsed.data, parsed.mime, max_size, settings, observer)
    except Exception as e:
        logger.warning("failed to compress %s image for %s: %s", parsed.mime, destination_id, e)
        return CompressionResult(
            part=part,
            original_size=original_size,
            compressed_size=original_size,
            was_compressed=False,
            failed=True,
        )

    new_uri = build_data_uri(compressed)
    if key is not None:
        cache.set(key, (stamp, new_uri))

    logger.info(
        "compressed image for %s: %d -> %d bytes (%s)",
        destination_id,
        original_size,
        compressed.size,
        compressed.mime,
    )
    return CompressionResult(
        part=_with_image(part, compressed.mime, new_uri),
        original_size=original_size,
        compressed_size=compressed.size,
        was_compressed=True,
    )


def _with_image(part: Any, mime: str, url: str) -> dict:
    # Shallow copy: every other field of the host's part is kept as-is.
    return {**part, "mime": mime, "url": url}


def _mime_of(uri: str, default: str) -> str:
    head, sep, _ = uri.partition(";")
    if not sep or not head.startswith("data:"):
        return default
    return head[len("data:"):]


def _cache_stamp(max_size: int, settings: CompressSettings) -> CacheStamp:
    return (
        max_size,
        settings.target_multiplier,
        settings.max_dimension,
        settings.max_attempts,
        settings.scale_step,
        settings.fallback_dimension,
        settings.fallback_quality,
        settings.fallback_compress_level,
    )

from __future__ import annotations

from io import BytesIO
import logging
from typing import Optional, Tuple

from PIL import Image, ImageOps

from .formats import ImageFormat
from .results import AttemptStats, EncodedImage
from .settings import DEFAULT_SETTINGS, CompressSettings


logger = logging.getLogger(__name__)

# Modes the PNG encoder writes as-is.
PNG_MODES = {"1", "L", "LA", "I", "I;16", "P", "RGB", "RGBA"}

JPEG_BACKGROUND = (255, 255, 255)


class CompressionObserver:
    """Receives progress from compress_image. Default methods do nothing."""

    def on_attempt(self, stats: AttemptStats) -> None:
        pass

    def on_fallback(self, reason: str) -> None:
        pass


class LoggingObserver(CompressionObserver):
    def __init__(self, log: Optional[logging.Logger] = None) -> None:
        self.log = log or logger

    def on_attempt(self, stats: AttemptStats) -> None:
        self.log.debug(
            "attempt %d: quality=%d scale=%.3f %dx%d -> %d bytes (target %d)",
            stats.attempt,
            stats.quality,
            stats.scale,
            stats.width,
            stats.height,
            stats.size,
            stats.target_size,
        )

    def on_fallback(self, reason: str) -> None:
        self.log.info("falling back to fixed encode: %s", reason)


DEFAULT_OBSERVER = LoggingObserver()


def compress_image(
    data: bytes,
    mime: str,
    max_size: int,
    settings: CompressSettings = DEFAULT_SETTINGS,
    observer: Optional[CompressionObserver] = None,
) -> EncodedImage:
    """
    Re-encode an image until it fits in max_size * target_multiplier bytes.

    Images already under target are returned untouched. Otherwise up to
    settings.max_attempts encodes are tried, trading quality first and
    dimensions second. If none fits, a fixed low-resolution encode is
    returned whether it fits or not.

    Pillow errors (corrupt or unsupported data) propagate to the caller.
    """
    observer = observer or DEFAULT_OBSERVER
    target_size = settings.target_size(max_size)

    if len(data) <= target_size:
        return EncodedImage(data=data, mime=mime)

    fmt = ImageFormat.from_mime(mime)
    im = _open_image(data)

    width, height = im.size
    scale = min(1.0, settings.max_dimension / max(width, height))
    quality = fmt.initial_quality

    for attempt in range(1, settings.max_attempts + 1):
        candidate = _apply_scale(im, scale)
        encoded = _encode(candidate, fmt, quality)

        stats = AttemptStats(
            attempt=attempt,
            quality=quality,
            scale=scale,
            width=candidate.width,
            height=candidate.height,
            size=len(encoded),
            target_size=target_size,
        )
        observer.on_attempt(stats)

        if stats.fits:
            return EncodedImage(data=encoded, mime=fmt.output_mime(mime))

        quality, scale = calculate_adjustment(fmt, quality, scale, settings.scale_step)

    observer.on_fallback(
        f"{settings.max_attempts} attempts did not reach {int(target_size)} bytes"
    )
    return _fallback_encode(im, fmt, settings)


def calculate_adjustment(
    fmt: ImageFormat,
    quality: int,
    scale: float,
    scale_step: float = 0.8,
) -> Tuple[int, float]:
    """
    Next (quality, scale) after a failed attempt.

    PNG/GIF: raise the compression level by 2 up to 9, then shrink.
    Others: drop quality by 15 while it stays above 30, then reset to 85 and shrink.
    Shrinking compounds on the current scale.
    """
    if fmt.lossless:
        if quality < 9:
            return min(9, quality + 2), scale
        return 9, scale * scale_step

    lowered = quality - 15
    if lowered > 30:
        return lowered, scale
    return 85, scale * scale_step


def _open_image(data: bytes) -> Image.Image:
    with Image.open(BytesIO(data)) as im:
        im.load()
        # First frame only for animations; encoded output is a still image.
        # Orientation is baked in because metadata is not carried over.
        return ImageOps.exif_transpose(im)


def _apply_scale(im: Image.Image, scale: float) -> Image.Image:
    """Resize by scale, keeping aspect ratio. Never upscales."""
    if scale >= 1.0:
        return im

    w, h = im.size
    new_w = min(w, max(1, round(w * scale)))
    new_h = min(h, max(1, round(h * scale)))

    if (new_w, new_h) == (w, h):
        return im

    return im.resize((new_w, new_h), Image.Resampling.LANCZOS)


def _fallback_encode(im: Image.Image, fmt: ImageFormat, settings: CompressSettings) -> EncodedImage:
    box = settings.fallback_dimension
    small = im.copy()
    small.thumbnail((box, box), Image.Resampling.LANCZOS)

    if fmt is ImageFormat.PNG:
        data = _encode(small, ImageFormat.PNG, settings.fallback_compress_level)
        return EncodedImage(data=data, mime="image/png")

    data = _encode(small, ImageFormat.JPEG, settings.fallback_quality)
    return EncodedImage(data=data, mime="image/jpeg")


def _encode(im: Image.Image, fmt: ImageFormat, quality: int) -> bytes:
    im = _prepare_mode(im, fmt)
    buf = BytesIO()
    # Pillow picks the encoder from format=..., there is no filename here
    im.save(buf, format=fmt.pil_format, **_build_save_kwargs(fmt, quality))
    return buf.getvalue()


def _build_save_kwargs(fmt: ImageFormat, quality: int) -> dict:
    kwargs: dict = {}

    if fmt in (ImageFormat.JPEG, ImageFormat.OTHER_AS_JPEG):
        kwargs["quality"] = int(quality)
        kwargs["progressive"] = True
        kwargs["optimize"] = True

    elif fmt.lossless:
        # Pillow's "compress_level" is zlib's 0-9; leave optimize off, it forces 9.
        kwargs["compress_level"] = int(quality)

    elif fmt in (ImageFormat.WEBP, ImageFormat.AVIF):
        kwargs["quality"] = int(quality)

    return kwargs


def _prepare_mode(im: Image.Image, fmt: ImageFormat) -> Image.Image:
    if fmt.pil_format == "JPEG":
        if _has_alpha(im):
            return _flatten_alpha(im, JPEG_BACKGROUND)
        if im.mode not in ("RGB", "L", "CMYK"):
            return im.convert("RGB")
        return im

    if fmt.pil_format == "PNG":
        if im.mode not in PNG_MODES:
            return im.convert("RGBA" if _has_alpha(im) else "RGB")
        return im

    # WebP / AVIF
    if im.mode not in ("RGB", "RGBA"):
        return im.convert("RGBA" if _has_alpha(im) else "RGB")
    return im


def _flatten_alpha(im: Image.Image, background_rgb: tuple[int, int, int]) -> Image.Image:
    rgba = im.convert("RGBA")
    bg = Image.new("RGBA", rgba.size, background_rgb + (255,))
    comp = Image.alpha_composite(bg, rgba)
    return comp.convert("RGB")


def _has_alpha(im: Image.Image) -> bool:
    if im.mode in ("RGBA", "LA", "PA"):
        return True
    if im.mode == "P" and "transparency" in im.info:
        return True
    return False

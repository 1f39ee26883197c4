from __future__ import annotations

from enum import Enum


class ImageFormat(Enum):
    """
    How a source mime type gets encoded during compression.

    Resolved once per image so the attempt loop never re-inspects strings.
    """

    JPEG = "jpeg"
    PNG = "png"
    WEBP = "webp"
    AVIF = "avif"
    GIF_AS_PNG = "gif_as_png"  # GIF is always re-encoded as PNG
    OTHER_AS_JPEG = "other_as_jpeg"  # unknown formats are coerced to JPEG

    @classmethod
    def from_mime(cls, mime: str) -> "ImageFormat":
        return MIME_TO_FORMAT.get(mime.lower(), cls.OTHER_AS_JPEG)

    @property
    def lossless(self) -> bool:
        # "quality" is a zlib compression level (1-9) for these
        return self in (ImageFormat.PNG, ImageFormat.GIF_AS_PNG)

    @property
    def pil_format(self) -> str:
        return FORMAT_TO_PIL[self]

    @property
    def initial_quality(self) -> int:
        return 9 if self.lossless else 90

    def output_mime(self, source_mime: str) -> str:
        """Mime reported for a successful progressive encode."""
        if self is ImageFormat.GIF_AS_PNG:
            return "image/png"
        if self is ImageFormat.OTHER_AS_JPEG:
            return "image/jpeg"
        return source_mime


MIME_TO_FORMAT = {
    "image/jpeg": ImageFormat.JPEG,
    "image/jpg": ImageFormat.JPEG,
    "image/png": ImageFormat.PNG,
    "image/webp": ImageFormat.WEBP,
    "image/avif": ImageFormat.AVIF,
    "image/gif": ImageFormat.GIF_AS_PNG,
}

FORMAT_TO_PIL = {
    ImageFormat.JPEG: "JPEG",
    ImageFormat.PNG: "PNG",
    ImageFormat.WEBP: "WEBP",
    ImageFormat.AVIF: "AVIF",
    ImageFormat.GIF_AS_PNG: "PNG",
    ImageFormat.OTHER_AS_JPEG: "JPEG",
}

from __future__ import annotations

from io import BytesIO
import os

import pytest
from PIL import Image

from imgfit.datauri import build_data_uri
from imgfit.results import EncodedImage


def noisy_image(width: int, height: int, noise: float = 0.5) -> Image.Image:
    """Gradient blended with random pixels: big when encoded, shrinks when resized."""
    gradient = Image.linear_gradient("L").resize((width, height)).convert("RGB")
    noise_layer = Image.frombytes("RGB", (width, height), os.urandom(width * height * 3))
    return Image.blend(gradient, noise_layer, noise)


def encode(im: Image.Image, fmt: str, **kwargs) -> bytes:
    buf = BytesIO()
    im.save(buf, format=fmt, **kwargs)
    return buf.getvalue()


def image_part(data: bytes, mime: str, **extra) -> dict:
    return {
        "type": "file",
        "mime": mime,
        "url": build_data_uri(EncodedImage(data=data, mime=mime)),
        **extra,
    }


def size_of(data: bytes) -> tuple[int, int]:
    with Image.open(BytesIO(data)) as im:
        return im.size


@pytest.fixture(scope="session")
def large_jpeg() -> bytes:
    # 4096x3072 at quality 95, well over 5 MB
    return encode(noisy_image(4096, 3072), "JPEG", quality=95)


@pytest.fixture(scope="session")
def wide_jpeg() -> bytes:
    # 2:1 aspect ratio
    return encode(noisy_image(4000, 2000), "JPEG", quality=90)


@pytest.fixture(scope="session")
def small_jpeg() -> bytes:
    return encode(noisy_image(100, 100), "JPEG", quality=80)


@pytest.fixture(scope="session")
def noisy_png() -> bytes:
    return encode(noisy_image(2048, 1536), "PNG", compress_level=6)

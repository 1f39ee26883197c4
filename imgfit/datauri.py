from __future__ import annotations

import base64
import binascii
import hashlib
import math
import re
from typing import Any, Mapping, Optional, Tuple

from .results import EncodedImage


# data:<mime>;base64,<payload>  (payload must be non-empty)
DATA_URI_RE = re.compile(r"^data:([^;,]+);base64,(.+)$", re.DOTALL)

# Line-wrapped (MIME style) payloads are accepted
WHITESPACE_RE = re.compile(r"[ \t\r\n\f\v]+")


def parse_data_uri(uri: str) -> Optional[EncodedImage]:
    """
    Decode a base64 data URI.

    Returns None for anything that isn't a non-empty base64 data URI,
    including payloads that aren't valid base64. Never raises.
    """
    if not isinstance(uri, str):
        return None

    match = DATA_URI_RE.match(uri)
    if not match:
        return None

    mime = match.group(1)
    payload = WHITESPACE_RE.sub("", match.group(2))
    try:
        data = base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError):
        return None

    if not data:
        return None
    return EncodedImage(data=data, mime=mime)


def build_data_uri(image: EncodedImage) -> str:
    encoded = base64.b64encode(image.data).decode("ascii")
    return f"data:{image.mime};base64,{encoded}"


def approximate_decoded_size(uri: str) -> int:
    """Decoded byte length of a data URI's payload, without decoding it."""
    _, sep, payload = uri.partition(",")
    if not sep:
        return 0
    return math.ceil(len(payload) * 0.75)


def is_image_mime(mime: Any) -> bool:
    return isinstance(mime, str) and mime.startswith("image/")


def is_image_part(part: Any) -> bool:
    """True for a file part carrying an inline (data:) image."""
    if not isinstance(part, Mapping):
        return False
    url = part.get("url")
    return (
        part.get("type") == "file"
        and is_image_mime(part.get("mime"))
        and isinstance(url, str)
        and url.startswith("data:")
    )


def content_hash(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def cache_key(destination_id: str, url: str) -> Tuple[str, str]:
    return (destination_id, content_hash(url))

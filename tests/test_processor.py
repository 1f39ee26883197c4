import base64

import pytest

from conftest import encode, image_part, noisy_image
from imgfit.cache import ImageCache
from imgfit.datauri import cache_key, parse_data_uri
from imgfit.processor import process_image_part
from imgfit.providers import KB
from imgfit.settings import CompressSettings


SETTINGS = CompressSettings(provider_limits={"tiny": 100 * KB, "anthropic": 150 * KB, "default": 5000 * KB})


@pytest.fixture(scope="module")
def medium_jpeg():
    return encode(noisy_image(800, 600), "JPEG", quality=90)


def test_non_image_part_is_a_no_op():
    part = {"type": "text", "text": "hello"}
    result = process_image_part(part, "anthropic", settings=SETTINGS)

    assert result.part is part
    assert not result.was_compressed
    assert not result.failed
    assert result.original_size == 0
    assert result.compressed_size == 0


def test_remote_image_url_is_a_no_op():
    part = {"type": "file", "mime": "image/jpeg", "url": "https://example.com/image.jpg"}
    result = process_image_part(part, "anthropic", settings=SETTINGS)

    assert result.part is part
    assert not result.failed


def test_malformed_payload_is_reported_as_failed():
    part = {"type": "file", "mime": "image/png", "url": "data:image/png;base64,!!!!"}
    result = process_image_part(part, "tiny", settings=SETTINGS)

    assert result.part is part
    assert result.failed
    assert result.original_size == 0


def test_small_image_is_left_alone(medium_jpeg):
    part = image_part(medium_jpeg, "image/jpeg")
    result = process_image_part(part, "default", settings=SETTINGS)

    assert result.part is part
    assert not result.was_compressed
    assert result.original_size == len(medium_jpeg)
    assert result.compressed_size == len(medium_jpeg)


def test_large_image_is_compressed(medium_jpeg):
    part = image_part(medium_jpeg, "image/jpeg", id="prt_1", filename="photo.jpg")
    result = process_image_part(part, "tiny", settings=SETTINGS)

    assert result.was_compressed
    assert not result.failed
    assert result.original_size == len(medium_jpeg)
    assert result.compressed_size <= 100 * KB * 0.7
    assert result.saved_bytes > 0

    # shallow copy with the other fields intact, original untouched
    assert result.part is not part
    assert result.part["id"] == "prt_1"
    assert result.part["filename"] == "photo.jpg"
    assert result.mime == "image/jpeg"
    assert parse_data_uri(result.url).size == result.compressed_size
    assert part["url"] == image_part(medium_jpeg, "image/jpeg")["url"]


def test_gif_part_comes_back_as_png():
    im = noisy_image(600, 400).quantize(256)
    part = image_part(encode(im, "GIF"), "image/gif")
    result = process_image_part(part, "tiny", settings=SETTINGS)

    assert result.was_compressed
    assert result.part["mime"] == "image/png"
    assert result.url.startswith("data:image/png;base64,")


def test_proxy_destination_uses_model_limit(medium_jpeg):
    part = image_part(medium_jpeg, "image/jpeg")
    # github-copilot is unknown to SETTINGS, so without a model it gets the roomy default
    untouched = process_image_part(part, "github-copilot", settings=SETTINGS)
    squeezed = process_image_part(part, "github-copilot", "claude-sonnet-4-5", settings=SETTINGS)

    assert not untouched.was_compressed
    assert squeezed.was_compressed
    assert squeezed.compressed_size <= 150 * KB * 0.7


def test_engine_failure_returns_original():
    junk = b"\x00" * (200 * KB)
    part = {
        "type": "file",
        "mime": "image/png",
        "url": "data:image/png;base64," + base64.b64encode(junk).decode(),
    }
    result = process_image_part(part, "tiny", settings=SETTINGS)

    assert result.part is part
    assert result.failed
    assert not result.was_compressed
    assert result.original_size == len(junk)
    assert result.compressed_size == len(junk)


def test_cache_hit_skips_the_engine(medium_jpeg, monkeypatch):
    cache = ImageCache()
    part = image_part(medium_jpeg, "image/jpeg")
    first = process_image_part(part, "tiny", settings=SETTINGS, cache=cache)
    assert len(cache) == 1

    def boom(*args, **kwargs):
        raise AssertionError("engine should not run on a cache hit")

    monkeypatch.setattr("imgfit.processor.compress_image", boom)
    second = process_image_part(dict(part), "tiny", settings=SETTINGS, cache=cache)

    assert second.was_compressed
    assert second.url == first.url
    assert second.mime == "image/jpeg"
    assert second.original_size == len(medium_jpeg)
    # derived from the base64 length, may round up by a couple of bytes
    assert abs(second.compressed_size - first.compressed_size) <= 2


def test_cache_entry_for_another_ceiling_is_ignored(medium_jpeg):
    cache = ImageCache()
    part = image_part(medium_jpeg, "image/jpeg")
    process_image_part(part, "tiny", settings=SETTINGS, cache=cache)

    stricter = CompressSettings(provider_limits={"tiny": 50 * KB, "default": 50 * KB})
    result = process_image_part(part, "tiny", settings=stricter, cache=cache)

    assert result.was_compressed
    stamp, uri = cache.get(cache_key("tiny", part["url"]))
    assert stamp[0] == 50 * KB
    assert uri == result.url


def test_cache_can_be_disabled(medium_jpeg):
    cache = ImageCache()
    settings = CompressSettings(provider_limits={"default": 100 * KB}, use_cache=False)
    process_image_part(image_part(medium_jpeg, "image/jpeg"), "tiny", settings=settings, cache=cache)

    assert len(cache) == 0


def test_cache_entry_for_other_search_settings_is_ignored(medium_jpeg, monkeypatch):
    cache = ImageCache()
    part = image_part(medium_jpeg, "image/jpeg")
    process_image_part(part, "tiny", settings=SETTINGS, cache=cache)

    calls = []

    def fake_compress(data, mime, max_size, settings, observer):
        calls.append(settings.target_multiplier)
        return parse_data_uri(image_part(b"tiny", "image/jpeg")["url"])

    monkeypatch.setattr("imgfit.processor.compress_image", fake_compress)
    roomier = CompressSettings(provider_limits=SETTINGS.provider_limits, target_multiplier=0.5)
    result = process_image_part(part, "tiny", settings=roomier, cache=cache)

    assert calls == [0.5]
    assert result.compressed_size == len(b"tiny")


def test_line_wrapped_payload_is_compressed(medium_jpeg):
    wrapped = "data:image/jpeg;base64," + base64.encodebytes(medium_jpeg).decode()
    part = {"type": "file", "mime": "image/jpeg", "url": wrapped}
    result = process_image_part(part, "tiny", settings=SETTINGS)

    assert not result.failed
    assert result.was_compressed
    assert result.original_size == len(medium_jpeg)

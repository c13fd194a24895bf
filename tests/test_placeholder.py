"""Tests for the placeholder hash codec."""

from __future__ import annotations

import base64
import io
import re

import numpy as np
import pytest
from PIL import Image

from cocktail_cellar.errors import ImageEncodingError
from cocktail_cellar.placeholder import (
    PlaceholderCodec,
    derive_placeholder,
    encode_hash_token,
    rgba_to_placeholder_hash,
)


def _hash_bytes(token: str) -> bytes:
    return base64.urlsafe_b64decode(token + "=" * (-len(token) % 4))


def test_placeholder_is_deterministic_for_identical_pixels(make_noise_image, make_image_bytes) -> None:
    data = make_image_bytes(make_noise_image(80, 60, seed=3))
    first = Image.open(io.BytesIO(data))
    second = Image.open(io.BytesIO(data))

    assert derive_placeholder(first) == derive_placeholder(second)
    assert derive_placeholder(first) == derive_placeholder(first)


def test_placeholder_leaves_source_image_untouched(make_noise_image) -> None:
    image = make_noise_image(300, 200, seed=1)
    before_size = image.size
    before_mode = image.mode
    before_pixels = image.tobytes()

    derive_placeholder(image)

    assert image.size == before_size
    assert image.mode == before_mode
    assert image.tobytes() == before_pixels


def test_consume_placeholder_closes_source(make_noise_image) -> None:
    codec = PlaceholderCodec()
    image = make_noise_image(50, 50, seed=2)
    expected = codec.derive_placeholder(image.copy())

    token = codec.consume_placeholder(image)

    assert token == expected
    with pytest.raises(ValueError):
        image.getpixel((0, 0))


def test_token_is_url_safe_and_sized_for_opaque_square() -> None:
    image = Image.new("RGB", (64, 64), color=(200, 30, 30))

    token = derive_placeholder(image)

    assert re.fullmatch(r"[A-Za-z0-9_-]+", token)
    # 5 header bytes + 37 packed 4-bit AC terms (27 luminance, 5 + 5 chroma).
    assert len(_hash_bytes(token)) == 24


def test_distinct_colors_produce_distinct_tokens() -> None:
    red = Image.new("RGB", (40, 40), color=(220, 20, 20))
    blue = Image.new("RGB", (40, 40), color=(20, 20, 220))

    assert derive_placeholder(red) != derive_placeholder(blue)


def test_landscape_flag_set_for_wide_images(make_noise_image) -> None:
    token = derive_placeholder(make_noise_image(400, 100, seed=4))

    header = _hash_bytes(token)
    assert header[4] >> 7 == 1


def test_transparent_pixels_set_alpha_flag() -> None:
    rgba = np.zeros((10, 10, 4), dtype=np.uint8)
    rgba[..., 0] = 255
    rgba[:5, :, 3] = 255

    hashed = rgba_to_placeholder_hash(10, 10, rgba)

    assert hashed[2] >> 7 == 1


def test_transparent_png_keeps_alpha_in_placeholder(make_image_bytes) -> None:
    rgba = np.zeros((40, 40, 4), dtype=np.uint8)
    rgba[..., 2] = 200
    rgba[:20, :, 3] = 255
    png = Image.open(io.BytesIO(make_image_bytes(Image.fromarray(rgba, "RGBA"), fmt="PNG")))

    token = derive_placeholder(png)

    assert _hash_bytes(token)[2] >> 7 == 1


def test_opaque_image_has_no_alpha_flag(make_noise_image) -> None:
    token = derive_placeholder(make_noise_image(40, 40, seed=6))

    assert _hash_bytes(token)[2] >> 7 == 0


def test_raw_transform_rejects_oversized_buffers() -> None:
    with pytest.raises(ValueError):
        rgba_to_placeholder_hash(101, 10, np.zeros((10, 101, 4), dtype=np.uint8))


def test_token_encoding_drops_padding() -> None:
    payload = bytes(range(7))

    token = encode_hash_token(payload)

    assert "=" not in token
    assert _hash_bytes(token) == payload


def test_truncated_image_raises_encoding_error(make_truncated_jpeg) -> None:
    with pytest.raises(ImageEncodingError):
        derive_placeholder(make_truncated_jpeg())

"""Placeholder hashing: a compact, deterministic low-resolution preview token.

The transform follows the ThumbHash layout (https://evanw.github.io/thumbhash/):

- Down-sample the source to at most 100 px on the longest edge and normalize
  it through a low-quality JPEG round trip.
- Convert RGBA to LPQA (luminance, yellow/blue, red/green, alpha), compositing
  transparent pixels over the average color.
- Keep the low-frequency DCT-II coefficients of each channel: DC terms and
  scales go into a 5-byte header (6 with alpha), AC terms are quantized to
  4 bits and packed two per byte.
- Render the bytes as unpadded URL-safe base64.
"""

from __future__ import annotations

import base64
import math
from typing import Final

import numpy as np
from PIL import Image

from cocktail_cellar.errors import ImageEncodingError
from cocktail_cellar.thumbnailing import build_thumbnail_image, resample_low_quality
from utils.logging import get_logger

LOGGER = get_logger(__name__, extra={"component": "placeholder"})

MAX_SAMPLE_SIDE: Final[int] = 100


def _round(value: float) -> int:
    """Round half up, matching the reference encoder bit-for-bit."""

    return int(math.floor(value + 0.5))


def _encode_channel(channel: np.ndarray, nx: int, ny: int) -> tuple[float, list[float], float]:
    """Return (dc, normalized ac terms, scale) for the low-frequency DCT block."""

    height, width = channel.shape
    xs = np.arange(width, dtype=np.float64) + 0.5
    ys = np.arange(height, dtype=np.float64) + 0.5

    dc = 0.0
    ac: list[float] = []
    scale = 0.0
    for cy in range(ny):
        fy = np.cos(math.pi / height * cy * ys)
        cx = 0
        # Triangular selection: fewer horizontal terms on higher rows.
        while cx * ny < nx * (ny - cy):
            fx = np.cos(math.pi / width * cx * xs)
            coefficient = float(fy @ channel @ fx) / (width * height)
            if cx or cy:
                ac.append(coefficient)
                scale = max(scale, abs(coefficient))
            else:
                dc = coefficient
            cx += 1

    if scale:
        ac = [0.5 + 0.5 / scale * value for value in ac]
    return dc, ac, scale


def rgba_to_placeholder_hash(width: int, height: int, rgba: np.ndarray) -> bytes:
    """Encode an RGBA pixel buffer (``height x width x 4``, 0-255) into hash bytes."""

    if width > MAX_SAMPLE_SIDE or height > MAX_SAMPLE_SIDE:
        raise ValueError(f"{width}x{height} doesn't fit in {MAX_SAMPLE_SIDE}x{MAX_SAMPLE_SIDE}")
    if width < 1 or height < 1:
        raise ValueError("cannot hash an empty image")

    pixels = np.asarray(rgba, dtype=np.float64).reshape(height, width, 4)
    alpha = pixels[..., 3] / 255.0
    red = pixels[..., 0] / 255.0
    green = pixels[..., 1] / 255.0
    blue = pixels[..., 2] / 255.0

    avg_a = float(alpha.sum())
    avg_r = float((alpha * red).sum())
    avg_g = float((alpha * green).sum())
    avg_b = float((alpha * blue).sum())
    if avg_a:
        avg_r /= avg_a
        avg_g /= avg_a
        avg_b /= avg_a

    has_alpha = avg_a < width * height
    l_limit = 5 if has_alpha else 7
    longest = max(width, height)
    lx = max(1, _round(l_limit * width / longest))
    ly = max(1, _round(l_limit * height / longest))

    r = avg_r * (1.0 - alpha) + alpha * red
    g = avg_g * (1.0 - alpha) + alpha * green
    b = avg_b * (1.0 - alpha) + alpha * blue
    lum = (r + g + b) / 3.0
    p_chan = (r + g) / 2.0 - b
    q_chan = r - g

    l_dc, l_ac, l_scale = _encode_channel(lum, max(3, lx), max(3, ly))
    p_dc, p_ac, p_scale = _encode_channel(p_chan, 3, 3)
    q_dc, q_ac, q_scale = _encode_channel(q_chan, 3, 3)
    channels = [l_ac, p_ac, q_ac]

    is_landscape = width > height
    header24 = (
        _round(63 * l_dc)
        | (_round(31.5 + 31.5 * p_dc) << 6)
        | (_round(31.5 + 31.5 * q_dc) << 12)
        | (_round(31 * l_scale) << 18)
        | (int(has_alpha) << 23)
    )
    header16 = (
        (ly if is_landscape else lx)
        | (_round(63 * p_scale) << 3)
        | (_round(63 * q_scale) << 9)
        | (int(is_landscape) << 15)
    )
    packed = [header24 & 255, (header24 >> 8) & 255, header24 >> 16, header16 & 255, header16 >> 8]

    if has_alpha:
        a_dc, a_ac, a_scale = _encode_channel(alpha, 5, 5)
        packed.append(_round(15 * a_dc) | (_round(15 * a_scale) << 4))
        channels.append(a_ac)

    ac_start = len(packed)
    ac_index = 0
    for ac in channels:
        for value in ac:
            slot = ac_start + (ac_index >> 1)
            if slot >= len(packed):
                packed.append(0)
            packed[slot] |= _round(15 * value) << ((ac_index & 1) << 2)
            ac_index += 1

    return bytes(byte & 255 for byte in packed)


def encode_hash_token(hash_bytes: bytes) -> str:
    """Render hash bytes as an unpadded URL-safe base64 token."""

    return base64.urlsafe_b64encode(hash_bytes).rstrip(b"=").decode("ascii")


class PlaceholderCodec:
    """Derive placeholder tokens from Pillow images.

    :meth:`derive_placeholder` never touches the caller's image.
    :meth:`consume_placeholder` closes the source image afterwards, for call
    sites that no longer need the full-resolution buffer.
    """

    def __init__(self, sample_side: int = MAX_SAMPLE_SIDE, sample_quality: int = 20) -> None:
        self._sample_side = max(1, min(int(sample_side), MAX_SAMPLE_SIDE))
        self._sample_quality = int(sample_quality)

    def _sample(self, image: Image.Image) -> np.ndarray:
        reduced = build_thumbnail_image(image, self._sample_side)
        normalized = resample_low_quality(reduced, self._sample_quality)
        return np.asarray(normalized, dtype=np.uint8)

    def _token_from(self, image: Image.Image) -> str:
        try:
            pixels = self._sample(image)
            height, width = pixels.shape[:2]
            token = encode_hash_token(rgba_to_placeholder_hash(width, height, pixels))
        except Exception as exc:  # Pillow surfaces decoder failures as OSError, ValueError and friends.
            LOGGER.debug("placeholder_sample_error", extra={"error": str(exc)})
            raise ImageEncodingError(f"Unable to derive placeholder hash: {exc}") from exc
        return token

    def derive_placeholder(self, image: Image.Image) -> str:
        """Return the placeholder token for ``image`` without modifying it."""

        return self._token_from(image)

    def consume_placeholder(self, image: Image.Image) -> str:
        """Return the placeholder token for ``image`` and close the source image."""

        try:
            return self._token_from(image)
        finally:
            image.close()


_DEFAULT_CODEC = PlaceholderCodec()


def derive_placeholder(image: Image.Image) -> str:
    """Module-level shortcut using the default sampling parameters."""

    return _DEFAULT_CODEC.derive_placeholder(image)


def consume_placeholder(image: Image.Image) -> str:
    """Module-level shortcut for the destructive variant."""

    return _DEFAULT_CODEC.consume_placeholder(image)


__all__ = [
    "PlaceholderCodec",
    "consume_placeholder",
    "derive_placeholder",
    "encode_hash_token",
    "rgba_to_placeholder_hash",
]

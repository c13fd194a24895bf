"""Down-sampling and encoding helpers shared by the image pipeline."""

from __future__ import annotations

import io

from PIL import Image
from PIL.Image import Resampling

from utils.logging import get_logger

LOGGER = get_logger(__name__, extra={"component": "thumbnailing"})

# File extension -> Pillow encoder name.
EXTENSION_FORMATS: dict[str, str] = {
    "jpg": "JPEG",
    "jpeg": "JPEG",
    "png": "PNG",
    "webp": "WEBP",
    "gif": "GIF",
}

# Pillow format -> canonical stored extension.
FORMAT_EXTENSIONS: dict[str, str] = {
    "JPEG": "jpg",
    "MPO": "jpg",
    "PNG": "png",
    "WEBP": "webp",
    "GIF": "gif",
}


def build_thumbnail_image(image: Image.Image, max_side: int) -> Image.Image:
    """Produce a resized copy of an image constrained to ``max_side`` pixels.

    The source image is never modified; images already within bounds are
    copied unchanged.
    """

    safe_side = max(1, int(max_side))
    resized = image.copy()
    resized.thumbnail((safe_side, safe_side), resample=Resampling.LANCZOS)
    return resized


def _flatten_for_jpeg(image: Image.Image) -> Image.Image:
    if image.mode in {"RGB", "L"}:
        return image
    if image.mode in {"RGBA", "LA", "P", "PA"}:
        rgba = image.convert("RGBA")
        background = Image.new("RGB", rgba.size, (255, 255, 255))
        background.paste(rgba, mask=rgba.getchannel("A"))
        return background
    return image.convert("RGB")


def encode_image_bytes(image: Image.Image, extension: str, quality: int = 90) -> bytes:
    """Encode ``image`` in the format implied by ``extension``."""

    fmt = EXTENSION_FORMATS.get(extension.lower().lstrip("."), "JPEG")
    buffer = io.BytesIO()
    if fmt == "JPEG":
        _flatten_for_jpeg(image).save(buffer, format=fmt, quality=quality)
    else:
        image.save(buffer, format=fmt)
    return buffer.getvalue()


def has_transparency(image: Image.Image) -> bool:
    if image.mode in {"RGBA", "LA", "PA"}:
        return True
    return image.mode == "P" and "transparency" in image.info


def resample_low_quality(image: Image.Image, quality: int) -> Image.Image:
    """Round-trip ``image`` through a low-quality encode and return the decoded RGBA copy.

    Opaque images go through JPEG at ``quality`` so placeholder hashes stay
    comparable across source formats. Images with transparency go through
    PNG instead, which keeps their alpha channel.
    """

    if has_transparency(image):
        encoded = encode_image_bytes(image.convert("RGBA"), "png")
    else:
        encoded = encode_image_bytes(image, "jpg", quality=quality)
    with Image.open(io.BytesIO(encoded)) as decoded:
        return decoded.convert("RGBA")


def extension_for(image: Image.Image, hint: str | None = None) -> str:
    """Return the stored file extension for an image, honoring an explicit hint."""

    if hint:
        cleaned = hint.lower().lstrip(".")
        if cleaned in EXTENSION_FORMATS:
            return "jpg" if cleaned == "jpeg" else cleaned
        LOGGER.warning("unsupported_extension_hint", extra={"hint": hint})
    return FORMAT_EXTENSIONS.get((image.format or "").upper(), "jpg")


__all__ = [
    "EXTENSION_FORMATS",
    "FORMAT_EXTENSIONS",
    "build_thumbnail_image",
    "encode_image_bytes",
    "extension_for",
    "has_transparency",
    "resample_low_quality",
]

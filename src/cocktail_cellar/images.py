"""Image ingestion: placeholder hashing, durable storage and metadata records."""

from __future__ import annotations

import secrets
import time
from dataclasses import dataclass, field
from typing import Iterable

from PIL import Image as PILImage

from cocktail_cellar.db import Image
from cocktail_cellar.errors import ImageEncodingError, ImageWriteError
from cocktail_cellar.placeholder import PlaceholderCodec
from cocktail_cellar.repository import BarRepository
from cocktail_cellar.storage import Disk
from cocktail_cellar.thumbnailing import encode_image_bytes, extension_for
from utils.logging import get_logger

LOGGER = get_logger(__name__, extra={"component": "image_ingestor"})

TEMP_NAMESPACE = "temp"
_FILENAME_BYTES = 30  # 40 URL-safe characters


@dataclass
class ImageUpload:
    """An image handed to the ingestor.

    ``file`` is ``None`` for metadata-only updates, which the ingestor skips.
    """

    file: PILImage.Image | None
    copyright: str | None = None
    sort: int = 1
    extension: str | None = None


@dataclass(frozen=True)
class ImageFailure:
    """One image that could not be stored."""

    index: int
    stage: str
    reason: str


@dataclass
class IngestResult:
    images: list[Image] = field(default_factory=list)
    failures: list[ImageFailure] = field(default_factory=list)

    @property
    def image_ids(self) -> list[int]:
        return [image.id for image in self.images]


class ImageIngestor:
    """Turn decoded uploads into stored files plus :class:`~cocktail_cellar.db.Image` rows."""

    def __init__(self, repository: BarRepository, disk: Disk, codec: PlaceholderCodec | None = None) -> None:
        self._repository = repository
        self._disk = disk
        self._codec = codec or PlaceholderCodec()

    def _write(self, image: PILImage.Image, relative_path: str, extension: str) -> None:
        try:
            payload = encode_image_bytes(image, extension)
            self._disk.put(relative_path, payload)
        except Exception as exc:  # encoder errors vary by format plugin; disk errors are OSError.
            raise ImageWriteError(f"Unable to write image to {relative_path!r}: {exc}") from exc

    def _discard(self, relative_path: str) -> None:
        try:
            self._disk.path(relative_path).unlink(missing_ok=True)
        except OSError as exc:
            LOGGER.error("image_discard_error", extra={"file_path": relative_path, "error": str(exc)})

    def ingest(self, uploads: Iterable[ImageUpload], owner_id: int) -> IngestResult:
        """Store every upload carrying a file; failed images are recorded and skipped."""

        result = IngestResult()
        for index, upload in enumerate(uploads):
            if upload.file is None:
                continue

            filename = secrets.token_urlsafe(_FILENAME_BYTES)
            extension = extension_for(upload.file, upload.extension)
            relative_path = f"{TEMP_NAMESPACE}/{filename}.{extension}"

            try:
                placeholder = self._codec.derive_placeholder(upload.file)
            except ImageEncodingError as exc:
                LOGGER.warning("image_placeholder_error", extra={"index": index, "error": str(exc)})
                result.failures.append(ImageFailure(index=index, stage="placeholder", reason=str(exc)))
                continue

            try:
                self._write(upload.file, relative_path, extension)
            except ImageWriteError as exc:
                LOGGER.warning(
                    "image_write_error", extra={"index": index, "file_path": relative_path, "error": str(exc)}
                )
                result.failures.append(ImageFailure(index=index, stage="write", reason=str(exc)))
                continue

            record = Image(
                user_id=owner_id,
                file_path=relative_path,
                file_extension=extension,
                sort=upload.sort,
                copyright=upload.copyright,
                placeholder_hash=placeholder,
                created_at=time.time(),
            )
            try:
                self._repository.add_image(record)
            except Exception as exc:  # driver and constraint errors vary by backend
                LOGGER.warning(
                    "image_record_error", extra={"index": index, "file_path": relative_path, "error": str(exc)}
                )
                self._discard(relative_path)
                result.failures.append(ImageFailure(index=index, stage="record", reason=str(exc)))
                continue
            LOGGER.info("image_created", extra={"image_id": record.id, "file_path": relative_path})
            result.images.append(record)

        return result

    def update_metadata(self, image_id: int, *, copyright: str | None = None, sort: int | None = None) -> Image:
        """Update copyright and/or sort of an existing image.

        Empty values leave the stored field unchanged; the file and
        placeholder hash are never touched. Raises
        :class:`~cocktail_cellar.errors.NotFoundError` for unknown ids.
        """

        image = self._repository.get_image(image_id)
        if copyright:
            image.copyright = copyright
        if sort:
            image.sort = sort
        self._repository.save(image)

        LOGGER.info("image_updated", extra={"image_id": image.id})
        return image


__all__ = ["ImageFailure", "ImageIngestor", "ImageUpload", "IngestResult"]

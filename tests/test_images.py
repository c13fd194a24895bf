from __future__ import annotations

import io
import logging
from pathlib import Path

import pytest
from PIL import Image as PILImage

from cocktail_cellar.errors import NotFoundError
from cocktail_cellar.images import ImageIngestor, ImageUpload
from cocktail_cellar.placeholder import derive_placeholder


def test_ingest_skips_image_that_fails_to_encode(repository, uploads, make_noise_image, make_truncated_jpeg, caplog) -> None:
    caplog.set_level(logging.WARNING)
    ingestor = ImageIngestor(repository, uploads)
    uploads_in = [
        ImageUpload(file=make_noise_image(64, 48, seed=1), copyright="Bar Team", sort=1),
        ImageUpload(file=make_truncated_jpeg(), sort=2),
    ]

    result = ingestor.ingest(uploads_in, owner_id=7)

    assert len(result.images) == 1
    assert len(result.failures) == 1
    assert result.failures[0].index == 1
    assert result.failures[0].stage == "placeholder"
    assert [r.getMessage() for r in caplog.records].count("image_placeholder_error") == 1
    assert repository.count("images") == 1


def test_ingest_persists_file_and_record(repository, uploads, make_noise_image) -> None:
    source = make_noise_image(120, 90, seed=5)
    ingestor = ImageIngestor(repository, uploads)

    result = ingestor.ingest([ImageUpload(file=source, copyright="(c) Cellar", sort=3)], owner_id=2)

    (record,) = result.images
    stored = uploads.path(record.file_path)
    assert record.file_path.startswith("temp/")
    assert len(Path(record.file_path).stem) == 40
    assert record.file_extension == "jpg"
    assert stored.is_file()
    assert record.user_id == 2
    assert record.sort == 3
    assert record.copyright == "(c) Cellar"
    assert record.placeholder_hash == derive_placeholder(source)
    assert result.image_ids == [record.id]


def test_ingest_keeps_decoded_format_extension(repository, uploads, make_noise_image, make_image_bytes) -> None:
    png = PILImage.open(io.BytesIO(make_image_bytes(make_noise_image(30, 30), fmt="PNG")))

    result = ingestor_for(repository, uploads).ingest([ImageUpload(file=png)], owner_id=1)

    assert result.images[0].file_extension == "png"
    assert result.images[0].file_path.endswith(".png")


def ingestor_for(repository, uploads) -> ImageIngestor:
    return ImageIngestor(repository, uploads)


def test_ingest_skips_metadata_only_uploads_silently(repository, uploads) -> None:
    result = ingestor_for(repository, uploads).ingest([ImageUpload(file=None, copyright="x")], owner_id=1)

    assert result.images == []
    assert result.failures == []


def test_ingest_skips_image_when_storage_write_fails(repository, uploads, make_noise_image, monkeypatch) -> None:
    def _fail_put(relative, data):
        raise OSError("disk full")

    monkeypatch.setattr(uploads, "put", _fail_put)

    result = ingestor_for(repository, uploads).ingest(
        [ImageUpload(file=make_noise_image(20, 20, seed=9))], owner_id=1
    )

    assert result.images == []
    assert [failure.stage for failure in result.failures] == ["write"]
    assert repository.count("images") == 0


def test_update_metadata_changes_only_copyright_and_sort(repository, uploads, make_noise_image) -> None:
    ingestor = ingestor_for(repository, uploads)
    (record,) = ingestor.ingest([ImageUpload(file=make_noise_image(20, 20), copyright="old", sort=1)], 1).images
    original_path = record.file_path
    original_hash = record.placeholder_hash

    updated = ingestor.update_metadata(record.id, copyright="new", sort=4)

    assert updated.copyright == "new"
    assert updated.sort == 4
    assert updated.file_path == original_path
    assert updated.placeholder_hash == original_hash


def test_update_metadata_ignores_empty_values(repository, uploads, make_noise_image) -> None:
    ingestor = ingestor_for(repository, uploads)
    (record,) = ingestor.ingest([ImageUpload(file=make_noise_image(20, 20), copyright="keep", sort=2)], 1).images

    updated = ingestor.update_metadata(record.id, copyright=None, sort=0)

    assert updated.copyright == "keep"
    assert updated.sort == 2


def test_update_metadata_raises_for_unknown_image(repository, uploads) -> None:
    with pytest.raises(NotFoundError):
        ingestor_for(repository, uploads).update_metadata(999, copyright="nobody")


def test_ingest_skips_image_whose_record_fails(repository, uploads, make_noise_image, monkeypatch) -> None:
    original_add = repository.add_image
    calls: list[int] = []

    def _flaky_add(image):
        calls.append(1)
        if len(calls) == 1:
            raise RuntimeError("db down")
        return original_add(image)

    monkeypatch.setattr(repository, "add_image", _flaky_add)

    result = ingestor_for(repository, uploads).ingest(
        [ImageUpload(file=make_noise_image(20, 20, seed=1)), ImageUpload(file=make_noise_image(20, 20, seed=2))],
        owner_id=1,
    )

    assert len(result.images) == 1
    assert [(failure.index, failure.stage) for failure in result.failures] == [(0, "record")]
    assert uploads.files("temp") == [uploads.path(result.images[0].file_path)]

from __future__ import annotations

import io
import json
import zipfile
from pathlib import Path
from typing import Any, Callable, Iterator

import numpy as np
import pytest
from PIL import Image
from sqlalchemy.orm import Session

from cocktail_cellar.db import dispose_engines, open_session
from cocktail_cellar.repository import BarRepository
from cocktail_cellar.storage import Disk


@pytest.fixture
def session(tmp_path: Path) -> Iterator[Session]:
    db_session = open_session(tmp_path / "cellar.db")
    try:
        yield db_session
    finally:
        db_session.close()
        dispose_engines()


@pytest.fixture
def repository(session: Session) -> BarRepository:
    return BarRepository(session)


@pytest.fixture
def uploads(tmp_path: Path) -> Disk:
    return Disk(tmp_path / "uploads")


def noise_image(width: int = 64, height: int = 64, seed: int = 0) -> Image.Image:
    rng = np.random.default_rng(seed)
    pixels = rng.integers(0, 256, size=(height, width, 3), dtype=np.uint8)
    return Image.fromarray(pixels, "RGB")


def image_bytes(image: Image.Image, fmt: str = "PNG") -> bytes:
    buffer = io.BytesIO()
    image.save(buffer, format=fmt)
    return buffer.getvalue()


def truncated_jpeg() -> Image.Image:
    """A JPEG whose header parses but whose pixel data is cut short."""

    data = image_bytes(noise_image(128, 128, seed=7), fmt="JPEG")
    return Image.open(io.BytesIO(data[: len(data) // 2]))


@pytest.fixture
def make_noise_image() -> Callable[..., Image.Image]:
    return noise_image


@pytest.fixture
def make_image_bytes() -> Callable[..., bytes]:
    return image_bytes


@pytest.fixture
def make_truncated_jpeg() -> Callable[[], Image.Image]:
    return truncated_jpeg


def archive_tables() -> dict[str, Any]:
    """A small, referentially consistent dataset keyed by table name."""

    return {
        "ingredient_categories": [
            {"id": 1, "user_id": 1, "name": "Spirits", "description": None, "created_at": 0.0},
        ],
        "glasses": [
            {"id": 1, "user_id": 1, "name": "Coupe", "name_key": "coupe", "description": None, "created_at": 0.0},
        ],
        "tags": [
            {"id": 1, "user_id": 1, "name": "Classic"},
        ],
        "ingredients": [
            {
                "id": 1,
                "user_id": 1,
                "category_id": 1,
                "name": "Gin",
                "name_key": "gin",
                "description": None,
                "strength": 40.0,
                "color": None,
                "created_at": 0.0,
            },
            {
                "id": 2,
                "user_id": 1,
                "category_id": 1,
                "name": "Dry Vermouth",
                "name_key": "dry vermouth",
                "description": None,
                "strength": 18.0,
                "color": None,
                "created_at": 0.0,
            },
        ],
        "cocktails": [
            {
                "id": 1,
                "user_id": 1,
                "name": "Martini",
                "instructions": "Stir with ice and strain.",
                "description": None,
                "garnish": "Olive",
                "source": None,
                "glass_id": 1,
                "created_at": 0.0,
                "updated_at": 0.0,
            },
        ],
        "cocktail_ingredients": [
            {"id": 1, "cocktail_id": 1, "ingredient_id": 1, "amount": 60, "units": "ml", "sort": 1, "optional": False},
            {"id": 2, "cocktail_id": 1, "ingredient_id": 2, "amount": 10, "units": "ml", "sort": 2, "optional": False},
        ],
        "cocktail_ingredient_substitutes": [
            {"id": 1, "cocktail_ingredient_id": 2, "ingredient_id": 1},
        ],
        "cocktail_tag": [
            {"cocktail_id": 1, "tag_id": 1},
        ],
        "images": [
            {
                "id": 1,
                "user_id": 1,
                "cocktail_id": 1,
                "ingredient_id": None,
                "file_path": "cocktails/martini.jpg",
                "file_extension": "jpg",
                "sort": 1,
                "copyright": None,
                "placeholder_hash": "AAAA",
                "created_at": 0.0,
            },
        ],
    }


def archive_files() -> dict[str, bytes]:
    return {
        "uploads/cocktails/martini.jpg": b"martini-bytes",
        "uploads/ingredients/gin.png": b"gin-bytes",
    }


def write_archive(path: Path, tables: dict[str, Any], files: dict[str, bytes] | None = None) -> Path:
    """Write ``<table>.json`` for every entry of ``tables`` plus the given asset files."""

    with zipfile.ZipFile(path, "w") as bundle:
        for table, rows in tables.items():
            bundle.writestr(f"{table}.json", rows if isinstance(rows, str) else json.dumps(rows))
        for name, data in (files or {}).items():
            bundle.writestr(name, data)
    return path


@pytest.fixture
def dataset() -> dict[str, Any]:
    return archive_tables()


@pytest.fixture
def asset_files() -> dict[str, bytes]:
    return archive_files()


@pytest.fixture
def make_archive(tmp_path: Path) -> Callable[..., Path]:
    def _make(tables: dict[str, Any], files: dict[str, bytes] | None = None, name: str = "export.zip") -> Path:
        return write_archive(tmp_path / name, tables, files)

    return _make

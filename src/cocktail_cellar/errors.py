"""Exception taxonomy for imports, migrations and image ingestion."""

from __future__ import annotations

from pathlib import Path
from typing import Any


class CocktailCellarError(Exception):
    """Base class for all application errors."""


class ArchiveOpenError(CocktailCellarError):
    """The migration archive could not be opened or extracted."""

    def __init__(self, archive_path: Path | str, reason: str) -> None:
        super().__init__(f"Unable to open archive {str(archive_path)!r}: {reason}")
        self.archive_path = str(archive_path)
        self.reason = reason


class RowInsertError(CocktailCellarError):
    """A single archive row could not be inserted."""

    def __init__(self, table: str, row_id: Any, reason: str) -> None:
        super().__init__(f"Unable to import row with id {row_id!r} to table {table!r}: {reason}")
        self.table = table
        self.row_id = row_id
        self.reason = reason


class TableTruncateError(CocktailCellarError):
    """A destination table could not be cleared before loading."""

    def __init__(self, table: str, reason: str) -> None:
        super().__init__(f"Unable to truncate table {table!r}: {reason}")
        self.table = table
        self.reason = reason


class TableDumpError(CocktailCellarError):
    """A ``<table>.json`` row dump is missing or not a list of row objects."""

    def __init__(self, table: str, reason: str) -> None:
        super().__init__(f"Unable to read row dump for table {table!r}: {reason}")
        self.table = table
        self.reason = reason


class FileCopyError(CocktailCellarError):
    """An archive asset could not be copied into durable storage."""

    def __init__(self, source: Path | str, reason: str) -> None:
        super().__init__(f"Unable to copy file from {str(source)!r}: {reason}")
        self.source = str(source)
        self.reason = reason


class ImageEncodingError(CocktailCellarError):
    """An image could not be down-sampled, encoded or hashed."""


class ImageWriteError(CocktailCellarError):
    """An encoded image could not be written to storage."""


class NotFoundError(CocktailCellarError):
    """An operation addressed an entity id that does not exist."""

    def __init__(self, entity: str, entity_id: Any) -> None:
        super().__init__(f"{entity} with id {entity_id!r} not found")
        self.entity = entity
        self.entity_id = entity_id


class ScrapePayloadError(CocktailCellarError):
    """A scrape payload lacks the fields needed to create a cocktail."""


__all__ = [
    "ArchiveOpenError",
    "CocktailCellarError",
    "FileCopyError",
    "ImageEncodingError",
    "ImageWriteError",
    "NotFoundError",
    "RowInsertError",
    "ScrapePayloadError",
    "TableDumpError",
    "TableTruncateError",
]

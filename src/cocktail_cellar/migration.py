"""Import a complete dataset (rows + image files) from another instance's zip archive.

Archive layout::

    <table>.json                one list of row objects per table
    uploads/cocktails/*         cocktail image files, named by stored filename
    uploads/ingredients/*       ingredient image files

A run extracts the archive to a private scratch directory, clears every
destination table children-first, reloads rows parents-first one row at a
time, copies the asset files and finally removes the scratch directory.
Row, table and file failures are collected into the :class:`MigrationReport`;
only an archive that cannot be opened aborts the run, before anything is
modified.
"""

from __future__ import annotations

import json
import threading
import time
import zipfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Final, Sequence

from cocktail_cellar.errors import (
    ArchiveOpenError,
    CocktailCellarError,
    FileCopyError,
    RowInsertError,
    TableDumpError,
    TableTruncateError,
)
from cocktail_cellar.repository import BarRepository
from cocktail_cellar.storage import Disk
from utils.logging import get_logger

LOGGER = get_logger(__name__, extra={"component": "archive_migrator"})

# Parents before children.
DEPENDENCY_ORDER: Final[tuple[str, ...]] = (
    "ingredient_categories",
    "glasses",
    "tags",
    "ingredients",
    "cocktails",
    "cocktail_ingredients",
    "cocktail_ingredient_substitutes",
    "cocktail_tag",
    "images",
)

# (directory inside the archive, directory on the uploads disk)
ASSET_DIRECTORIES: Final[tuple[tuple[str, str], ...]] = (
    ("uploads/cocktails", "cocktails"),
    ("uploads/ingredients", "ingredients"),
)


@dataclass(frozen=True)
class StepResult:
    """Outcome of one truncate, row insert or file copy."""

    target: str
    error: CocktailCellarError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class MigrationReport:
    """Operator-facing summary of one archive import."""

    archive_path: str
    started_at: float
    elapsed_seconds: float = 0.0
    truncated: list[str] = field(default_factory=list)
    inserted: dict[str, int] = field(default_factory=dict)
    skipped: dict[str, int] = field(default_factory=dict)
    unreadable_tables: list[str] = field(default_factory=list)
    files_copied: int = 0
    files_failed: int = 0
    cancelled: bool = False
    failures: list[CocktailCellarError] = field(default_factory=list)

    @property
    def tables_truncated(self) -> int:
        return len(self.truncated)

    @property
    def rows_inserted(self) -> int:
        return sum(self.inserted.values())

    @property
    def rows_skipped(self) -> int:
        return sum(self.skipped.values())

    def record(self, result: StepResult) -> None:
        if result.error is not None:
            self.failures.append(result.error)

    def summary(self) -> dict[str, Any]:
        return {
            "archive_path": self.archive_path,
            "elapsed_seconds": round(self.elapsed_seconds, 3),
            "tables_truncated": self.tables_truncated,
            "inserted": dict(self.inserted),
            "skipped": dict(self.skipped),
            "unreadable_tables": list(self.unreadable_tables),
            "files_copied": self.files_copied,
            "files_failed": self.files_failed,
            "cancelled": self.cancelled,
            "failures": [str(failure) for failure in self.failures],
        }


class _Cancelled(Exception):
    """Raised internally when the caller's cancel event is set."""


class ArchiveMigrator:
    """Replace the catalog with the contents of a migration archive."""

    def __init__(
        self,
        repository: BarRepository,
        uploads: Disk,
        scratch_root: Path | str,
        *,
        table_order: Sequence[str] = DEPENDENCY_ORDER,
        asset_directories: Sequence[tuple[str, str]] = ASSET_DIRECTORIES,
    ) -> None:
        self._repository = repository
        self._uploads = uploads
        self._scratch_root = Path(scratch_root)
        self._table_order = tuple(table_order)
        self._asset_directories = tuple(asset_directories)

    def import_archive(
        self, archive_path: Path | str, *, cancel_event: threading.Event | None = None
    ) -> MigrationReport:
        """Run a full migration and return its report.

        Raises :class:`ArchiveOpenError` if the archive cannot be opened or
        extracted; nothing has been modified at that point. ``cancel_event``
        is checked between tables, rows and files; work already committed is
        kept and the report is marked ``cancelled``.
        """

        archive = Path(archive_path)
        report = MigrationReport(
            archive_path=str(archive),
            started_at=time.time(),
            inserted={table: 0 for table in self._table_order},
            skipped={table: 0 for table in self._table_order},
        )
        timer_start = time.perf_counter()
        LOGGER.info("archive_import_start", extra={"archive": str(archive)})

        scratch = Disk.scratch(self._scratch_root)
        try:
            self._extract(archive, scratch)
            try:
                self._truncate_tables(report, cancel_event)
                self._load_tables(scratch, report, cancel_event)
                self._copy_assets(scratch, report, cancel_event)
            except _Cancelled:
                report.cancelled = True
                LOGGER.warning("archive_import_cancelled", extra={"archive": str(archive)})
            finally:
                self._sync_sequences()
        finally:
            scratch.delete_directory()
            report.elapsed_seconds = time.perf_counter() - timer_start

        LOGGER.info(
            "archive_import_complete",
            extra={
                "archive": str(archive),
                "elapsed_seconds": report.elapsed_seconds,
                "rows_inserted": report.rows_inserted,
                "rows_skipped": report.rows_skipped,
                "files_copied": report.files_copied,
                "files_failed": report.files_failed,
            },
        )
        return report

    def _sync_sequences(self) -> None:
        try:
            self._repository.sync_sequences(self._table_order)
        except Exception as exc:  # stale sequences only affect later inserts, not the imported data
            LOGGER.error("sequence_sync_error", extra={"error": str(exc)})

    @staticmethod
    def _check_cancel(cancel_event: threading.Event | None) -> None:
        if cancel_event is not None and cancel_event.is_set():
            raise _Cancelled()

    def _extract(self, archive: Path, scratch: Disk) -> None:
        try:
            with zipfile.ZipFile(archive) as bundle:
                bundle.extractall(scratch.root)
        except (OSError, zipfile.BadZipFile, zipfile.LargeZipFile, RuntimeError) as exc:
            LOGGER.error("archive_open_error", extra={"archive": str(archive), "error": str(exc)})
            raise ArchiveOpenError(archive, str(exc)) from exc

    # --- destructive phase --------------------------------------------------

    def _truncate(self, table: str) -> StepResult:
        try:
            self._repository.truncate(table)
        except Exception as exc:  # any driver error leaves the table as-is
            error = TableTruncateError(table, str(exc))
            LOGGER.error("table_truncate_error", extra={"table": table, "error": str(exc)})
            return StepResult(target=table, error=error)
        return StepResult(target=table)

    def _truncate_tables(self, report: MigrationReport, cancel_event: threading.Event | None) -> None:
        # Unconditional per table, even when its dump later turns out to be missing.
        for table in reversed(self._table_order):
            self._check_cancel(cancel_event)
            result = self._truncate(table)
            report.record(result)
            if result.ok:
                report.truncated.append(table)

    # --- load phase ---------------------------------------------------------

    def _read_rows(self, scratch: Disk, table: str) -> list[dict[str, Any]]:
        dump = scratch.path(f"{table}.json")
        try:
            with dump.open("r", encoding="utf-8") as fp:
                rows = json.load(fp)
        except (OSError, ValueError) as exc:
            raise TableDumpError(table, str(exc)) from exc

        if not isinstance(rows, list):
            raise TableDumpError(table, f"expected a list of rows, found {type(rows).__name__}")
        return rows

    def _insert(self, table: str, row: Any) -> StepResult:
        row_id = row.get("id") if isinstance(row, dict) else None
        try:
            if not isinstance(row, dict):
                raise TypeError(f"row must be an object, found {type(row).__name__}")
            self._repository.insert_row(table, row)
        except Exception as exc:  # constraint, type and unknown-column errors all skip the row
            error = RowInsertError(table, row_id, str(exc))
            LOGGER.error("row_insert_error", extra={"table": table, "row_id": row_id, "error": str(exc)})
            return StepResult(target=table, error=error)
        return StepResult(target=table)

    def _load_tables(self, scratch: Disk, report: MigrationReport, cancel_event: threading.Event | None) -> None:
        for table in self._table_order:
            self._check_cancel(cancel_event)
            try:
                rows = self._read_rows(scratch, table)
            except TableDumpError as exc:
                LOGGER.error("table_dump_error", extra={"table": table, "error": exc.reason})
                report.unreadable_tables.append(table)
                report.failures.append(exc)
                continue

            for row in rows:
                self._check_cancel(cancel_event)
                result = self._insert(table, row)
                report.record(result)
                if result.ok:
                    report.inserted[table] += 1
                else:
                    report.skipped[table] += 1

            LOGGER.info(
                "table_loaded",
                extra={"table": table, "inserted": report.inserted[table], "skipped": report.skipped[table]},
            )

    # --- asset phase --------------------------------------------------------

    def _copy(self, source: Path, destination: str) -> StepResult:
        try:
            self._uploads.copy(source, destination)
        except (OSError, ValueError) as exc:
            error = FileCopyError(source, str(exc))
            LOGGER.error("file_copy_error", extra={"source": str(source), "error": str(exc)})
            return StepResult(target=str(source), error=error)
        return StepResult(target=str(source))

    def _copy_assets(self, scratch: Disk, report: MigrationReport, cancel_event: threading.Event | None) -> None:
        for archive_dir, uploads_dir in self._asset_directories:
            for source in scratch.files(archive_dir):
                self._check_cancel(cancel_event)
                result = self._copy(source, f"{uploads_dir}/{source.name}")
                report.record(result)
                if result.ok:
                    report.files_copied += 1
                else:
                    report.files_failed += 1


__all__ = ["ASSET_DIRECTORIES", "DEPENDENCY_ORDER", "ArchiveMigrator", "MigrationReport", "StepResult"]

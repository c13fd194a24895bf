"""CLI entrypoint to replace the catalog with a migration archive from another instance."""

from __future__ import annotations

import json
from pathlib import Path

import typer

from cocktail_cellar.config import Settings, load_settings
from cocktail_cellar.db import open_session
from cocktail_cellar.errors import ArchiveOpenError
from cocktail_cellar.migration import ArchiveMigrator
from cocktail_cellar.repository import BarRepository
from cocktail_cellar.storage import Disk
from utils.logging import get_logger

LOGGER = get_logger(__name__)


def main(
    archive: Path = typer.Option(
        ...,
        "--archive",
        file_okay=True,
        dir_okay=False,
        help="Zip archive exported by another instance.",
    ),
    db: str | None = typer.Option(
        None,
        "--db",
        help="Primary database URL or path. Defaults to databases.primary_url in settings.yaml.",
    ),
    uploads: Path | None = typer.Option(
        None,
        "--uploads",
        help="Durable uploads directory. Defaults to storage.uploads_root in settings.yaml.",
    ),
) -> None:
    """Truncate every catalog table and reload it from ARCHIVE, then print the report."""

    settings: Settings = load_settings()
    target = db or settings.databases.primary_url
    uploads_disk = Disk(uploads or settings.storage.uploads_root)

    with open_session(target) as session:
        migrator = ArchiveMigrator(
            BarRepository(session),
            uploads_disk,
            scratch_root=Path(settings.storage.scratch_root) / "export",
        )
        try:
            report = migrator.import_archive(archive)
        except ArchiveOpenError as exc:
            LOGGER.error("import_archive_failed", extra={"archive": str(archive), "error": exc.reason})
            raise typer.Exit(code=1) from exc

    typer.echo(json.dumps(report.summary(), indent=2, sort_keys=True))
    if report.failures:
        LOGGER.warning("import_archive_partial", extra={"failures": len(report.failures)})


def cli() -> None:
    typer.run(main)


if __name__ == "__main__":
    cli()


__all__ = ["cli", "main"]

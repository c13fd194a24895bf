"""CLI entrypoint to import scraped recipe payloads (one object or a list) from a JSON file."""

from __future__ import annotations

import json
from pathlib import Path

import typer

from cocktail_cellar.catalog import CatalogResolver
from cocktail_cellar.config import Settings, load_settings
from cocktail_cellar.db import open_session
from cocktail_cellar.images import ImageIngestor
from cocktail_cellar.placeholder import PlaceholderCodec
from cocktail_cellar.repository import BarRepository
from cocktail_cellar.scraper_import import ScrapedRecipeImporter
from cocktail_cellar.storage import Disk
from utils.logging import get_logger

LOGGER = get_logger(__name__)


def build_importer(settings: Settings, repository: BarRepository, uploads: Disk) -> ScrapedRecipeImporter:
    """Wire the importer with the configured codec, storage and catalog defaults."""

    codec = PlaceholderCodec(
        sample_side=settings.placeholder.sample_side,
        sample_quality=settings.placeholder.sample_quality,
    )
    return ScrapedRecipeImporter(
        repository,
        ImageIngestor(repository, uploads, codec),
        CatalogResolver(repository, default_category_id=settings.imports.default_category_id),
        owner_id=settings.imports.owner_id,
        http_timeout=settings.imports.http_timeout,
    )


def main(
    payload: Path = typer.Option(
        ...,
        "--payload",
        exists=True,
        file_okay=True,
        dir_okay=False,
        readable=True,
        help="JSON file holding one scrape payload or a list of payloads.",
    ),
    db: str | None = typer.Option(
        None,
        "--db",
        help="Primary database URL or path. Defaults to databases.primary_url in settings.yaml.",
    ),
) -> None:
    """Create cocktails from scraped payloads and print their ids."""

    settings: Settings = load_settings()
    target = db or settings.databases.primary_url
    documents = json.loads(payload.read_text(encoding="utf-8"))
    batch = documents if isinstance(documents, list) else [documents]

    with open_session(target) as session:
        importer = build_importer(settings, BarRepository(session), Disk(settings.storage.uploads_root))
        cocktail_ids = importer.import_batch(batch)

    LOGGER.info(
        "import_scraped_complete",
        extra={
            "payloads": len(batch),
            "cocktails_created": sum(1 for cocktail_id in cocktail_ids if cocktail_id is not None),
        },
    )
    typer.echo(json.dumps(cocktail_ids))
    if any(cocktail_id is None for cocktail_id in cocktail_ids):
        raise typer.Exit(code=1)


def cli() -> None:
    typer.run(main)


if __name__ == "__main__":
    cli()


__all__ = ["build_importer", "cli", "main"]

from __future__ import annotations

import json
from pathlib import Path

import pytest
import typer
from typer.testing import CliRunner

from cocktail_cellar.db import dispose_engines, open_session
from cocktail_cellar.dev import import_archive, import_scraped
from cocktail_cellar.repository import BarRepository

runner = CliRunner()


def _app(command) -> typer.Typer:
    app = typer.Typer()
    app.command()(command)
    return app


@pytest.fixture
def settings_file(tmp_path: Path, monkeypatch) -> Path:
    path = tmp_path / "settings.yaml"
    path.write_text(
        f"databases:\n  primary_url: {tmp_path / 'cli.db'}\n"
        f"storage:\n  uploads_root: {tmp_path / 'uploads'}\n  scratch_root: {tmp_path / 'scratch'}\n",
        encoding="utf-8",
    )
    monkeypatch.setenv("COCKTAIL_CELLAR_SETTINGS", str(path))
    yield path
    dispose_engines()


def test_import_archive_prints_report(settings_file, tmp_path, make_archive, dataset, asset_files) -> None:
    archive = make_archive(dataset, asset_files)

    result = runner.invoke(_app(import_archive.main), ["--archive", str(archive)])

    assert result.exit_code == 0, result.output
    summary = json.loads(result.stdout)
    assert summary["inserted"]["cocktails"] == 1
    assert summary["files_copied"] == 2
    assert (tmp_path / "uploads" / "cocktails" / "martini.jpg").is_file()


def test_import_archive_exits_non_zero_for_bad_archive(settings_file, tmp_path) -> None:
    archive = tmp_path / "bad.zip"
    archive.write_bytes(b"nope")

    result = runner.invoke(_app(import_archive.main), ["--archive", str(archive)])

    assert result.exit_code == 1


def test_import_scraped_reports_ids_and_failures(settings_file, tmp_path) -> None:
    payload = tmp_path / "payload.json"
    payload.write_text(
        json.dumps(
            [
                {"name": "Negroni", "instructions": "Stir.", "ingredients": [{"name": "Campari", "amount": 30}]},
                {"name": "No instructions"},
            ]
        ),
        encoding="utf-8",
    )

    result = runner.invoke(_app(import_scraped.main), ["--payload", str(payload)])

    assert result.exit_code == 1
    cocktail_ids = json.loads(result.stdout)
    assert cocktail_ids[1] is None
    with open_session(tmp_path / "cli.db") as session:
        assert BarRepository(session).count("cocktails") == 1


def test_import_scraped_single_payload_succeeds(settings_file, tmp_path) -> None:
    payload = tmp_path / "payload.json"
    payload.write_text(
        json.dumps({"name": "Americano", "instructions": "Build over ice.", "glass": "Highball"}),
        encoding="utf-8",
    )

    result = runner.invoke(_app(import_scraped.main), ["--payload", str(payload)])

    assert result.exit_code == 0, result.output
    (cocktail_id,) = json.loads(result.stdout)
    assert isinstance(cocktail_id, int)

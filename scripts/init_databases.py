"""Initialize the primary database schema and ensure storage roots exist."""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

# Ensure src/ is on sys.path so we can import shared logging and DB helpers.
PROJECT_ROOT = Path(__file__).resolve().parents[1]
SRC_ROOT = PROJECT_ROOT / "src"
if str(SRC_ROOT) not in sys.path:
    sys.path.append(str(SRC_ROOT))

from cocktail_cellar.config import load_settings  # noqa: E402
from cocktail_cellar.db import open_session  # noqa: E402
from cocktail_cellar.storage import Disk  # noqa: E402
from utils.logging import get_logger  # noqa: E402

LOGGER = get_logger(__name__)

UPLOAD_SUBDIRECTORIES = ("cocktails", "ingredients", "temp")


def _init_primary_db(target: str | Path) -> None:
    session = open_session(target)
    session.close()
    LOGGER.info("init_primary_db_ok", extra={"target": str(target)})


def _init_storage(uploads_root: Path, scratch_root: Path) -> None:
    uploads = Disk(uploads_root)
    for subdirectory in UPLOAD_SUBDIRECTORIES:
        uploads.path(subdirectory).mkdir(parents=True, exist_ok=True)
    scratch_root.mkdir(parents=True, exist_ok=True)
    LOGGER.info("init_storage_ok", extra={"uploads_root": str(uploads.root), "scratch_root": str(scratch_root)})


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Initialize the primary database schema and storage roots.")
    parser.add_argument(
        "--data-db",
        type=str,
        default=None,
        help="Primary database URL or path. Defaults to databases.primary_url in settings.yaml.",
    )
    parser.add_argument(
        "--uploads-root",
        type=str,
        default=None,
        help="Durable uploads directory. Defaults to storage.uploads_root in settings.yaml.",
    )
    return parser.parse_args()


def main() -> None:
    args = parse_args()
    settings = load_settings()
    primary_target = args.data_db or settings.databases.primary_url
    uploads_root = Path(args.uploads_root or settings.storage.uploads_root)
    _init_primary_db(primary_target)
    _init_storage(uploads_root, Path(settings.storage.scratch_root))
    LOGGER.info("init_databases_complete", extra={"primary": str(primary_target), "uploads_root": str(uploads_root)})


if __name__ == "__main__":
    main()

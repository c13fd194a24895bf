"""Configuration loader and typed settings for the Cocktail Cellar backend."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml


@dataclass
class DatabaseConfig:
    """Database targets (SQLite path or SQLAlchemy URL)."""

    primary_url: str = "data/cocktail_cellar.db"


@dataclass
class StorageConfig:
    """Filesystem roots for durable uploads and scratch space."""

    uploads_root: str = "data/uploads"
    scratch_root: str = "tmp"


@dataclass
class PlaceholderConfig:
    """Sampling parameters for the placeholder hash."""

    sample_side: int = 100
    sample_quality: int = 20


@dataclass
class ImportConfig:
    """Defaults applied to scraper imports."""

    owner_id: int = 1
    default_category_id: int | None = None
    http_timeout: float = 20.0


@dataclass
class Settings:
    """Top-level application settings."""

    databases: DatabaseConfig = field(default_factory=DatabaseConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    placeholder: PlaceholderConfig = field(default_factory=PlaceholderConfig)
    imports: ImportConfig = field(default_factory=ImportConfig)


def _project_root() -> Path:
    """Best-effort detection of the repository root for config discovery."""

    module_path = Path(__file__).resolve()
    try:
        return module_path.parents[2]
    except IndexError:  # pragma: no cover - installed without a checkout
        return module_path.parent


def _build_default_settings_paths() -> list[Path]:
    """Return candidate settings paths ordered by preference."""

    cwd_candidate = (Path.cwd() / "config" / "settings.yaml").resolve()
    repo_candidate = (_project_root() / "config" / "settings.yaml").resolve()

    candidates: list[Path] = [cwd_candidate]
    if repo_candidate != cwd_candidate:
        candidates.append(repo_candidate)
    return candidates


def _resolve_settings_path(settings_path: Path | str | None) -> Path:
    """Determine which settings file to load, honoring overrides."""

    if settings_path:
        return Path(settings_path).expanduser().resolve()

    env_override = os.getenv("COCKTAIL_CELLAR_SETTINGS")
    if env_override:
        return Path(env_override).expanduser().resolve()

    candidates = _build_default_settings_paths()
    for candidate in candidates:
        if candidate.exists():
            return candidate
    return candidates[0]


def _as_dict(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def load_settings(settings_path: Path | str | None = None) -> Settings:
    """Load application settings from a YAML file, falling back to defaults.

    Missing files, non-mapping documents and values of the wrong type are
    ignored; the corresponding defaults stay in place.
    """

    path = _resolve_settings_path(settings_path)
    settings = Settings()

    if not path.exists() or not path.is_file():
        return settings

    with path.open("r", encoding="utf-8") as fp:
        raw = yaml.safe_load(fp) or {}

    if not isinstance(raw, dict):
        return settings

    databases_raw = _as_dict(raw.get("databases"))
    if isinstance(databases_raw.get("primary_url"), str):
        settings.databases.primary_url = databases_raw["primary_url"]

    storage_raw = _as_dict(raw.get("storage"))
    storage_cfg = settings.storage
    if isinstance(storage_raw.get("uploads_root"), str):
        storage_cfg.uploads_root = storage_raw["uploads_root"]
    if isinstance(storage_raw.get("scratch_root"), str):
        storage_cfg.scratch_root = storage_raw["scratch_root"]

    placeholder_raw = _as_dict(raw.get("placeholder"))
    placeholder_cfg = settings.placeholder
    if isinstance(placeholder_raw.get("sample_side"), int) and placeholder_raw["sample_side"] > 0:
        # The placeholder transform only accepts samples up to 100x100.
        placeholder_cfg.sample_side = min(int(placeholder_raw["sample_side"]), 100)
    if isinstance(placeholder_raw.get("sample_quality"), int):
        placeholder_cfg.sample_quality = max(1, min(int(placeholder_raw["sample_quality"]), 95))

    imports_raw = _as_dict(raw.get("imports"))
    imports_cfg = settings.imports
    if isinstance(imports_raw.get("owner_id"), int):
        imports_cfg.owner_id = imports_raw["owner_id"]
    if isinstance(imports_raw.get("default_category_id"), int):
        imports_cfg.default_category_id = imports_raw["default_category_id"]
    if _is_number(imports_raw.get("http_timeout")):
        imports_cfg.http_timeout = float(imports_raw["http_timeout"])

    return settings


__all__ = [
    "DatabaseConfig",
    "ImportConfig",
    "PlaceholderConfig",
    "Settings",
    "StorageConfig",
    "load_settings",
]

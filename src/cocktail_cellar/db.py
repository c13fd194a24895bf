"""SQLAlchemy schema definitions and session management."""

from __future__ import annotations

from pathlib import Path
from threading import Lock
from typing import Any

from sqlalchemy import (
    Boolean,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    create_engine,
    event,
)
from sqlalchemy.engine import Engine
from sqlalchemy.engine.url import make_url
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column

from cocktail_cellar.db_helpers import normalize_database_url
from utils.logging import get_logger

LOGGER = get_logger(__name__)


class Base(DeclarativeBase):
    """Declarative base for all ORM models."""


def name_key(name: str) -> str:
    """Return the case-insensitive matching key for a catalog or tag name.

    Surrounding whitespace is stripped and inner runs collapse to one space.
    """

    return " ".join(name.split()).lower()


def _name_key_default(context: Any) -> str:
    # Archive rows may omit the key; derive it from the inserted name.
    return name_key(context.get_current_parameters().get("name") or "")


class IngredientCategory(Base):
    """Grouping for ingredients (spirits, juices, syrups...)."""

    __tablename__ = "ingredient_categories"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False)
    name: Mapped[str] = mapped_column(String, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)


class Glass(Base):
    """Catalog entry describing a serving glass."""

    __tablename__ = "glasses"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False)
    name: Mapped[str] = mapped_column(String, nullable=False)
    name_key: Mapped[str] = mapped_column(String, nullable=False, default=_name_key_default)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)

    __table_args__ = (UniqueConstraint("user_id", "name_key", name="uq_glasses_scope_name"),)


class Tag(Base):
    """Free-text tag attached to cocktails."""

    __tablename__ = "tags"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False)
    name: Mapped[str] = mapped_column(String, nullable=False)
    name_key: Mapped[str] = mapped_column(String, nullable=False, default=_name_key_default)

    __table_args__ = (Index("idx_tags_user_name_key", "user_id", "name_key"),)


class Ingredient(Base):
    """Catalog entry describing an ingredient."""

    __tablename__ = "ingredients"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False)
    category_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("ingredient_categories.id"), nullable=True
    )
    name: Mapped[str] = mapped_column(String, nullable=False)
    name_key: Mapped[str] = mapped_column(String, nullable=False, default=_name_key_default)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    strength: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    color: Mapped[str | None] = mapped_column(String, nullable=True)
    created_at: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)

    __table_args__ = (UniqueConstraint("user_id", "name_key", name="uq_ingredients_scope_name"),)


class Cocktail(Base):
    """Recipe aggregate root."""

    __tablename__ = "cocktails"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False)
    name: Mapped[str] = mapped_column(String, nullable=False)
    instructions: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    garnish: Mapped[str | None] = mapped_column(Text, nullable=True)
    source: Mapped[str | None] = mapped_column(String, nullable=True)
    glass_id: Mapped[int | None] = mapped_column(Integer, ForeignKey("glasses.id"), nullable=True)
    created_at: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    updated_at: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)

    __table_args__ = (Index("idx_cocktails_user", "user_id"),)


class CocktailIngredient(Base):
    """Ordered ingredient line of a cocktail."""

    __tablename__ = "cocktail_ingredients"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    cocktail_id: Mapped[int] = mapped_column(Integer, ForeignKey("cocktails.id"), nullable=False)
    ingredient_id: Mapped[int] = mapped_column(Integer, ForeignKey("ingredients.id"), nullable=False)
    amount: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    units: Mapped[str | None] = mapped_column(String, nullable=True)
    sort: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    optional: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    __table_args__ = (Index("idx_cocktail_ingredients_cocktail", "cocktail_id", "sort"),)


class CocktailIngredientSubstitute(Base):
    """Alternative ingredient accepted for a cocktail ingredient line."""

    __tablename__ = "cocktail_ingredient_substitutes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    cocktail_ingredient_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("cocktail_ingredients.id"), nullable=False
    )
    ingredient_id: Mapped[int] = mapped_column(Integer, ForeignKey("ingredients.id"), nullable=False)


class CocktailTag(Base):
    """Association between cocktails and tags."""

    __tablename__ = "cocktail_tag"

    cocktail_id: Mapped[int] = mapped_column(Integer, ForeignKey("cocktails.id"), primary_key=True)
    tag_id: Mapped[int] = mapped_column(Integer, ForeignKey("tags.id"), primary_key=True)


class Image(Base):
    """Stored image file plus its placeholder hash."""

    __tablename__ = "images"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False)
    cocktail_id: Mapped[int | None] = mapped_column(Integer, ForeignKey("cocktails.id"), nullable=True)
    ingredient_id: Mapped[int | None] = mapped_column(Integer, ForeignKey("ingredients.id"), nullable=True)
    file_path: Mapped[str] = mapped_column(String, nullable=False, unique=True)
    file_extension: Mapped[str] = mapped_column(String, nullable=False)
    sort: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    copyright: Mapped[str | None] = mapped_column(String, nullable=True)
    placeholder_hash: Mapped[str | None] = mapped_column(String, nullable=True)
    created_at: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)

    __table_args__ = (
        Index("idx_images_cocktail", "cocktail_id"),
        Index("idx_images_ingredient", "ingredient_id"),
    )


_ENGINE_CACHE: dict[str, Engine] = {}
_ENGINE_LOCK = Lock()


def _ensure_parent_directory(path: Path) -> None:
    """Ensure the parent directory for a database file exists."""

    try:
        path.parent.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        LOGGER.error("db_parent_directory_error", extra={"path": str(path), "error": str(exc)})
        raise


def get_engine(target: str | Path) -> Engine:
    """Return a cached SQLAlchemy engine for the provided target, creating schema if needed."""

    normalized = normalize_database_url(target)
    engine = _ENGINE_CACHE.get(normalized)
    if engine is not None:
        return engine

    with _ENGINE_LOCK:
        engine = _ENGINE_CACHE.get(normalized)
        if engine is not None:
            return engine

        sa_url = make_url(normalized)
        is_sqlite = sa_url.drivername.startswith("sqlite")

        engine_kwargs: dict[str, object] = {}
        if is_sqlite:
            if sa_url.database and sa_url.database not in {":memory:"}:
                _ensure_parent_directory(Path(sa_url.database))
            engine_kwargs["connect_args"] = {"timeout": 30.0}
        else:
            engine_kwargs["pool_pre_ping"] = True

        engine = create_engine(normalized, **engine_kwargs)

        if is_sqlite:

            @event.listens_for(engine, "connect")
            def _set_sqlite_pragma(dbapi_connection: Any, connection_record: Any) -> None:
                """Enforce foreign keys so dependency-order violations fail loudly."""

                cursor = dbapi_connection.cursor()
                try:
                    cursor.execute("PRAGMA foreign_keys=ON")
                    cursor.execute("PRAGMA busy_timeout = 30000")
                finally:
                    cursor.close()

        try:
            Base.metadata.create_all(engine)
        except OperationalError as exc:
            # Concurrent first use from several processes may race on CREATE TABLE.
            message = str(exc).lower()
            if "already exists" in message:
                LOGGER.info("db_create_all_table_exists_race", extra={"target": normalized, "error": str(exc)})
            else:
                raise

        _ENGINE_CACHE[normalized] = engine
        return engine


def open_session(target: str | Path) -> Session:
    """Open a SQLAlchemy session for the primary database."""

    return Session(get_engine(target))


def dispose_engines() -> None:
    """Dispose and forget every cached engine."""

    with _ENGINE_LOCK:
        for engine in _ENGINE_CACHE.values():
            engine.dispose()
        _ENGINE_CACHE.clear()


__all__ = [
    "Base",
    "Cocktail",
    "CocktailIngredient",
    "CocktailIngredientSubstitute",
    "CocktailTag",
    "Glass",
    "Image",
    "Ingredient",
    "IngredientCategory",
    "Tag",
    "dispose_engines",
    "get_engine",
    "name_key",
    "open_session",
]

"""Row-level and aggregate persistence for the bar catalog."""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Sequence

from sqlalchemy import Table, delete, func, insert, select, text
from sqlalchemy.orm import Session

from cocktail_cellar.db import (
    Base,
    Cocktail,
    CocktailIngredient,
    CocktailIngredientSubstitute,
    CocktailTag,
    Glass,
    Image,
    Ingredient,
    Tag,
    name_key,
)
from cocktail_cellar.db_helpers import dialect_name
from cocktail_cellar.errors import NotFoundError
from utils.logging import get_logger

LOGGER = get_logger(__name__, extra={"component": "bar_repository"})


@dataclass(frozen=True)
class IngredientLine:
    """Resolved ingredient line handed to :meth:`BarRepository.create_cocktail`."""

    ingredient_id: int
    name: str
    amount: float
    units: str | None
    sort: int
    optional: bool = False
    substitute_ids: tuple[int, ...] = ()


@dataclass
class CocktailDraft:
    """Everything needed to persist one cocktail aggregate."""

    name: str
    instructions: str
    user_id: int
    ingredients: Sequence[IngredientLine] = ()
    description: str | None = None
    garnish: str | None = None
    source: str | None = None
    image_ids: Sequence[int] = ()
    tags: Sequence[str] = ()
    glass_id: int | None = None


_CATALOG_MODELS: dict[str, type[Glass] | type[Ingredient]] = {
    "glass": Glass,
    "ingredient": Ingredient,
}


class BarRepository:
    """Persist catalog rows, cocktails and images via SQLAlchemy.

    Every mutating method commits on success and rolls back on failure so a
    failed write never leaves the session unusable for the next row.
    """

    def __init__(self, session: Session) -> None:
        self._session = session

    @property
    def session(self) -> Session:
        return self._session

    # --- raw table access used by archive migrations ------------------------

    def table(self, table_name: str) -> Table:
        try:
            return Base.metadata.tables[table_name]
        except KeyError as exc:
            raise ValueError(f"Unknown table {table_name!r}") from exc

    def truncate(self, table_name: str) -> None:
        """Delete every row of ``table_name``."""

        table = self.table(table_name)
        try:
            self._session.execute(delete(table))
            self._session.commit()
        except Exception:
            self._session.rollback()
            raise

    def insert_row(self, table_name: str, row: Mapping[str, Any]) -> None:
        """Insert a single raw row (column name -> value)."""

        table = self.table(table_name)
        try:
            self._session.execute(insert(table).values(**dict(row)))
            self._session.commit()
        except Exception:
            self._session.rollback()
            raise

    def count(self, table_name: str) -> int:
        table = self.table(table_name)
        return int(self._session.execute(select(func.count()).select_from(table)).scalar_one())

    def sync_sequences(self, table_names: Iterable[str]) -> None:
        """Advance PostgreSQL identity sequences past explicitly inserted ids."""

        if not dialect_name(self._session).startswith("postgresql"):
            return

        names = list(table_names)
        for table_name in names:
            table = self.table(table_name)
            if "id" not in table.c:
                continue
            self._session.execute(
                text(
                    "SELECT setval(pg_get_serial_sequence(:table, 'id'), "
                    f"COALESCE((SELECT MAX(id) FROM {table.name}), 0) + 1, false)"
                ),
                {"table": table.name},
            )
        self._session.commit()
        LOGGER.info("sequences_synced", extra={"tables": names})

    # --- catalog ------------------------------------------------------------

    def catalog_snapshot(self, kind: str, user_id: int) -> dict[str, int]:
        """Return ``{name_key: id}`` for every catalog entry of ``kind`` in scope."""

        model = _CATALOG_MODELS[kind]
        rows = self._session.execute(select(model.name_key, model.id).where(model.user_id == user_id)).all()
        return {key: entry_id for key, entry_id in rows}

    def create_catalog_entry(
        self,
        kind: str,
        *,
        name: str,
        user_id: int,
        description: str | None = None,
        category_id: int | None = None,
        key: str | None = None,
    ) -> int:
        """Insert a glass or ingredient and return its id.

        ``key`` overrides the matching key derived from ``name``.
        """

        model = _CATALOG_MODELS[kind]
        values: dict[str, Any] = {
            "name": name,
            "name_key": key or name_key(name),
            "user_id": user_id,
            "description": description,
            "created_at": time.time(),
        }
        if model is Ingredient:
            values["category_id"] = category_id

        entry = model(**values)
        try:
            self._session.add(entry)
            self._session.flush()
            entry_id = entry.id
            self._session.commit()
        except Exception:
            self._session.rollback()
            raise

        LOGGER.info("catalog_entry_created", extra={"kind": kind, "entry_id": entry_id, "user_id": user_id})
        return entry_id

    def get_or_create_tag(self, name: str, user_id: int) -> int:
        existing = self._session.execute(
            select(Tag.id).where(Tag.user_id == user_id, Tag.name_key == name_key(name))
        ).scalar_one_or_none()
        if existing is not None:
            return existing

        tag = Tag(name=" ".join(name.split()), name_key=name_key(name), user_id=user_id)
        self._session.add(tag)
        self._session.flush()
        return tag.id

    # --- cocktails ----------------------------------------------------------

    def create_cocktail(self, draft: CocktailDraft) -> Cocktail:
        """Persist a cocktail with its lines, substitutes, tags and image links in one commit."""

        now = time.time()
        try:
            cocktail = Cocktail(
                user_id=draft.user_id,
                name=draft.name,
                instructions=draft.instructions,
                description=draft.description,
                garnish=draft.garnish,
                source=draft.source,
                glass_id=draft.glass_id,
                created_at=now,
                updated_at=now,
            )
            self._session.add(cocktail)
            self._session.flush()

            for line in draft.ingredients:
                row = CocktailIngredient(
                    cocktail_id=cocktail.id,
                    ingredient_id=line.ingredient_id,
                    amount=line.amount,
                    units=line.units,
                    sort=line.sort,
                    optional=line.optional,
                )
                self._session.add(row)
                self._session.flush()
                for substitute_id in line.substitute_ids:
                    self._session.add(
                        CocktailIngredientSubstitute(cocktail_ingredient_id=row.id, ingredient_id=substitute_id)
                    )

            for tag_name in draft.tags:
                tag_id = self.get_or_create_tag(tag_name, draft.user_id)
                self._session.add(CocktailTag(cocktail_id=cocktail.id, tag_id=tag_id))

            for image_id in draft.image_ids:
                image = self._session.get(Image, image_id)
                if image is None:
                    raise NotFoundError("Image", image_id)
                image.cocktail_id = cocktail.id

            self._session.commit()
        except Exception:
            self._session.rollback()
            raise

        LOGGER.info(
            "cocktail_created",
            extra={
                "cocktail_id": cocktail.id,
                "ingredient_lines": len(draft.ingredients),
                "images": len(draft.image_ids),
                "tags": len(draft.tags),
            },
        )
        return cocktail

    def cocktail_lines(self, cocktail_id: int) -> list[CocktailIngredient]:
        return list(
            self._session.execute(
                select(CocktailIngredient)
                .where(CocktailIngredient.cocktail_id == cocktail_id)
                .order_by(CocktailIngredient.sort)
            ).scalars()
        )

    # --- images -------------------------------------------------------------

    def add_image(self, image: Image) -> Image:
        try:
            self._session.add(image)
            self._session.commit()
        except Exception:
            self._session.rollback()
            raise
        return image

    def get_image(self, image_id: int) -> Image:
        image = self._session.get(Image, image_id)
        if image is None:
            raise NotFoundError("Image", image_id)
        return image

    def save(self, entity: Any) -> None:
        try:
            self._session.add(entity)
            self._session.commit()
        except Exception:
            self._session.rollback()
            raise


__all__ = ["BarRepository", "CocktailDraft", "IngredientLine"]

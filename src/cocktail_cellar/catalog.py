"""Resolve free-text ingredient and glass names against the catalog."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from cocktail_cellar.db import name_key
from cocktail_cellar.repository import BarRepository
from utils.logging import get_logger

LOGGER = get_logger(__name__, extra={"component": "catalog_resolver"})


class CatalogKind(str, Enum):
    INGREDIENT = "ingredient"
    GLASS = "glass"


def display_name(raw: str) -> str:
    """Title-case each word's first letter, leaving the rest of the word as typed."""

    return " ".join(word[:1].upper() + word[1:] for word in raw.strip().split())


@dataclass
class ResolutionCache:
    """Name-key -> id mapping for one kind and scope during one import session."""

    kind: CatalogKind
    scope: int
    ids_by_key: dict[str, int] = field(default_factory=dict)
    created_ids: list[int] = field(default_factory=list)


class CatalogResolver:
    """Get-or-create catalog entries by case-insensitive name.

    Callers open one :class:`ResolutionCache` per kind at the start of a batch
    and pass it to every :meth:`resolve` call of that batch; the cache is never
    shared between batches.
    """

    def __init__(self, repository: BarRepository, *, default_category_id: int | None = None) -> None:
        self._repository = repository
        self._default_category_id = default_category_id

    def open_cache(self, kind: CatalogKind, scope: int) -> ResolutionCache:
        """Return a cache seeded from the current catalog snapshot."""

        snapshot = self._repository.catalog_snapshot(kind.value, scope)
        return ResolutionCache(kind=kind, scope=scope, ids_by_key=snapshot)

    def resolve(self, cache: ResolutionCache, name: str, provenance_note: str | None = None) -> int:
        """Return the id for ``name``, creating a catalog entry on a miss."""

        key = name_key(name)
        if not key:
            raise ValueError(f"Cannot resolve empty {cache.kind.value} name")

        existing = cache.ids_by_key.get(key)
        if existing is not None:
            return existing

        entry_id = self._repository.create_catalog_entry(
            cache.kind.value,
            name=display_name(name),
            key=key,
            user_id=cache.scope,
            description=provenance_note,
            category_id=self._default_category_id if cache.kind is CatalogKind.INGREDIENT else None,
        )
        cache.ids_by_key[key] = entry_id
        cache.created_ids.append(entry_id)
        LOGGER.info("catalog_miss_created", extra={"kind": cache.kind.value, "entry_id": entry_id, "key": key})
        return entry_id


__all__ = ["CatalogKind", "CatalogResolver", "ResolutionCache", "display_name"]

"""Turn scraped recipe payloads into persisted cocktails."""

from __future__ import annotations

import base64
import binascii
import io
from dataclasses import dataclass
from fractions import Fraction
from typing import Any, Callable, Mapping, Sequence

import requests
from PIL import Image

from cocktail_cellar.catalog import CatalogKind, CatalogResolver, ResolutionCache
from cocktail_cellar.errors import ScrapePayloadError
from cocktail_cellar.images import ImageIngestor, ImageUpload
from cocktail_cellar.repository import BarRepository, CocktailDraft, IngredientLine
from utils.logging import get_logger

LOGGER = get_logger(__name__, extra={"component": "scraper_import"})

ImageFetcher = Callable[[str], bytes]


def _text(value: Any) -> str | None:
    if value is None:
        return None
    cleaned = str(value).strip()
    return cleaned or None


def _amount(value: Any) -> float:
    """Parse numeric amounts, including simple fractions such as ``"1/2"``."""

    if isinstance(value, bool) or value is None:
        return 0.0
    if isinstance(value, (int, float)):
        return float(value)
    raw = str(value).strip()
    if not raw:
        return 0.0
    try:
        return float(raw)
    except ValueError:
        pass
    try:
        return float(sum(Fraction(part) for part in raw.split()))
    except (ValueError, ZeroDivisionError):
        LOGGER.warning("scrape_amount_unparsed", extra={"amount": raw})
        return 0.0


def _names(values: Any) -> tuple[str, ...]:
    """Accept a list of strings or of ``{"name": ...}`` objects."""

    if not isinstance(values, Sequence) or isinstance(values, (str, bytes)):
        return ()
    names: list[str] = []
    for value in values:
        raw = value.get("name") if isinstance(value, Mapping) else value
        cleaned = _text(raw)
        if cleaned:
            names.append(cleaned)
    return tuple(names)


def _unique_tags(values: Any) -> tuple[str, ...]:
    seen: set[str] = set()
    tags: list[str] = []
    for tag in _names(values):
        key = tag.lower()
        if key in seen:
            continue
        seen.add(key)
        tags.append(tag)
    return tuple(tags)


@dataclass(frozen=True)
class ScrapedIngredient:
    name: str
    amount: float
    units: str | None
    optional: bool = False
    substitutes: tuple[str, ...] = ()

    @classmethod
    def from_payload(cls, raw: Mapping[str, Any]) -> "ScrapedIngredient":
        name = _text(raw.get("name"))
        if not name:
            raise ScrapePayloadError("ingredient mention without a name")
        units = raw.get("units") if raw.get("units") is not None else raw.get("unit")
        return cls(
            name=name,
            amount=_amount(raw.get("amount")),
            units=_text(units),
            optional=bool(raw.get("optional") or False),
            substitutes=_names(raw.get("substitutes")),
        )


@dataclass(frozen=True)
class ScrapedImage:
    url: str | None = None
    data: bytes | None = None
    copyright: str | None = None

    @classmethod
    def from_payload(cls, raw: Any) -> "ScrapedImage | None":
        if isinstance(raw, str):
            return cls(url=_text(raw)) if _text(raw) else None
        if not isinstance(raw, Mapping):
            return None

        data: bytes | None = None
        encoded = raw.get("data")
        if isinstance(encoded, (bytes, bytearray)):
            data = bytes(encoded)
        elif isinstance(encoded, str) and encoded.strip():
            try:
                data = base64.b64decode(encoded, validate=True)
            except (binascii.Error, ValueError):
                LOGGER.warning("scrape_image_data_invalid")

        url = _text(raw.get("url"))
        if url is None and data is None:
            return None
        return cls(url=url, data=data, copyright=_text(raw.get("copyright")))


@dataclass(frozen=True)
class ScrapedRecipe:
    """Normalized view of a scrape payload."""

    name: str
    instructions: str
    description: str | None = None
    garnish: str | None = None
    source: str | None = None
    image: ScrapedImage | None = None
    glass: str | None = None
    ingredients: tuple[ScrapedIngredient, ...] = ()
    tags: tuple[str, ...] = ()

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "ScrapedRecipe":
        """Validate and normalize a payload.

        Raises :class:`ScrapePayloadError` when the payload is not a mapping or
        lacks a name or instructions. Malformed ingredient mentions are dropped.
        """

        if not isinstance(payload, Mapping):
            raise ScrapePayloadError("scrape payload must be an object")

        name = _text(payload.get("name"))
        instructions = _text(payload.get("instructions"))
        if not name:
            raise ScrapePayloadError("scrape payload is missing a name")
        if not instructions:
            raise ScrapePayloadError("scrape payload is missing instructions")

        ingredients: list[ScrapedIngredient] = []
        raw_ingredients = payload.get("ingredients") or []
        for position, raw in enumerate(raw_ingredients if isinstance(raw_ingredients, Sequence) else []):
            if not isinstance(raw, Mapping):
                LOGGER.warning("scrape_ingredient_invalid", extra={"position": position})
                continue
            try:
                ingredients.append(ScrapedIngredient.from_payload(raw))
            except ScrapePayloadError as exc:
                LOGGER.warning("scrape_ingredient_invalid", extra={"position": position, "error": str(exc)})

        return cls(
            name=name,
            instructions=instructions,
            description=_text(payload.get("description")),
            garnish=_text(payload.get("garnish")),
            source=_text(payload.get("source")),
            image=ScrapedImage.from_payload(payload.get("image")),
            glass=_text(payload.get("glass")),
            ingredients=tuple(ingredients),
            tags=_unique_tags(payload.get("tags")),
        )


@dataclass
class ScrapeSession:
    """Catalog caches shared by every import of one batch."""

    glasses: ResolutionCache
    ingredients: ResolutionCache


def fetch_image_bytes(url: str, timeout: float = 20.0) -> bytes:
    """Download a remote image."""

    response = requests.get(url, timeout=timeout)
    response.raise_for_status()
    return response.content


class ScrapedRecipeImporter:
    """Compose catalog resolution and image ingestion into cocktail creation."""

    def __init__(
        self,
        repository: BarRepository,
        ingestor: ImageIngestor,
        resolver: CatalogResolver,
        *,
        owner_id: int = 1,
        fetch_image: ImageFetcher | None = None,
        http_timeout: float = 20.0,
    ) -> None:
        self._repository = repository
        self._ingestor = ingestor
        self._resolver = resolver
        self._owner_id = owner_id
        self._http_timeout = http_timeout
        self._fetch_image = fetch_image or (lambda url: fetch_image_bytes(url, timeout=self._http_timeout))

    def begin_session(self) -> ScrapeSession:
        """Seed fresh catalog caches for a batch of imports."""

        return ScrapeSession(
            glasses=self._resolver.open_cache(CatalogKind.GLASS, self._owner_id),
            ingredients=self._resolver.open_cache(CatalogKind.INGREDIENT, self._owner_id),
        )

    def import_scraped(self, payload: Mapping[str, Any], session: ScrapeSession | None = None) -> int:
        """Create a cocktail from a scrape payload and return its id.

        Image, glass and ingredient failures are logged and skipped; only an
        invalid payload or a failure persisting the cocktail itself raises.
        """

        recipe = ScrapedRecipe.from_payload(payload)
        session = session or self.begin_session()
        provenance = f"Created by scraper from {recipe.source or 'unknown source'}"

        image_ids = self._import_images(recipe)
        glass_id = self._resolve_glass(recipe, session.glasses, provenance)
        lines = self._resolve_lines(recipe, session.ingredients, provenance)

        cocktail = self._repository.create_cocktail(
            CocktailDraft(
                name=recipe.name,
                instructions=recipe.instructions,
                user_id=self._owner_id,
                ingredients=lines,
                description=recipe.description,
                garnish=recipe.garnish,
                source=recipe.source,
                image_ids=image_ids,
                tags=recipe.tags,
                glass_id=glass_id,
            )
        )
        LOGGER.info(
            "scrape_import_complete",
            extra={"cocktail_id": cocktail.id, "source": recipe.source, "ingredient_lines": len(lines)},
        )
        return cocktail.id

    def import_batch(self, payloads: Sequence[Mapping[str, Any]]) -> list[int | None]:
        """Import several payloads with one shared catalog session.

        Returns the created cocktail id per payload, or ``None`` where the
        payload could not be imported.
        """

        session = self.begin_session()
        results: list[int | None] = []
        for position, payload in enumerate(payloads):
            try:
                results.append(self.import_scraped(payload, session=session))
            except Exception as exc:  # one bad recipe must not stop the batch
                LOGGER.error("scrape_batch_item_error", extra={"position": position, "error": str(exc)})
                results.append(None)
        return results

    def _decode_image(self, image: ScrapedImage) -> Image.Image:
        data = image.data if image.data is not None else self._fetch_image(image.url or "")
        return Image.open(io.BytesIO(data))

    def _import_images(self, recipe: ScrapedRecipe) -> list[int]:
        if recipe.image is None:
            return []
        try:
            decoded = self._decode_image(recipe.image)
            try:
                result = self._ingestor.ingest(
                    [ImageUpload(file=decoded, copyright=recipe.image.copyright, sort=1)], self._owner_id
                )
            finally:
                decoded.close()
        except Exception as exc:  # network, decoder and storage errors all leave the recipe imageless
            LOGGER.warning("scrape_image_error", extra={"url": recipe.image.url, "error": str(exc)})
            return []
        if result.failures:
            LOGGER.warning("scrape_image_skipped", extra={"url": recipe.image.url, "failures": len(result.failures)})
        return result.image_ids

    def _resolve_glass(self, recipe: ScrapedRecipe, cache: ResolutionCache, provenance: str) -> int | None:
        if not recipe.glass:
            return None
        try:
            return self._resolver.resolve(cache, recipe.glass, provenance)
        except Exception as exc:
            LOGGER.warning("scrape_glass_unresolved", extra={"glass": recipe.glass, "error": str(exc)})
            return None

    def _resolve_lines(
        self, recipe: ScrapedRecipe, cache: ResolutionCache, provenance: str
    ) -> list[IngredientLine]:
        lines: list[IngredientLine] = []
        for mention in recipe.ingredients:
            try:
                ingredient_id = self._resolver.resolve(cache, mention.name, provenance)
            except Exception as exc:
                LOGGER.warning("scrape_ingredient_unresolved", extra={"ingredient": mention.name, "error": str(exc)})
                continue

            substitute_ids: list[int] = []
            for substitute in mention.substitutes:
                try:
                    substitute_id = self._resolver.resolve(cache, substitute, provenance)
                except Exception as exc:
                    LOGGER.warning("scrape_substitute_unresolved", extra={"ingredient": substitute, "error": str(exc)})
                    continue
                if substitute_id != ingredient_id and substitute_id not in substitute_ids:
                    substitute_ids.append(substitute_id)

            lines.append(
                IngredientLine(
                    ingredient_id=ingredient_id,
                    name=mention.name,
                    amount=mention.amount,
                    units=mention.units,
                    sort=len(lines) + 1,
                    optional=mention.optional,
                    substitute_ids=tuple(substitute_ids),
                )
            )
        return lines


__all__ = [
    "ScrapeSession",
    "ScrapedImage",
    "ScrapedIngredient",
    "ScrapedRecipe",
    "ScrapedRecipeImporter",
    "fetch_image_bytes",
]

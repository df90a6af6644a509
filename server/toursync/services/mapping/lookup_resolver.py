"""Resolve wholesaler names and codes to ids in our reference tables."""

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Optional

from sqlalchemy import String, cast, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from ...models.location import City, Country, Transport
from .transforms import infer_lookup_table

logger = logging.getLogger(__name__)

LOOKUP_MODELS = {
    "countries": Country,
    "cities": City,
    "transports": Transport,
}

DEFAULT_MATCH_FIELDS = {
    "countries": ["name_en", "name_th", "iso2", "iso3"],
    "cities": ["name_en", "name_th"],
    "transports": ["code", "code1", "name"],
}

FUZZY_FIELDS = {
    "countries": ["name_en", "name_th"],
    "cities": ["name_en", "name_th"],
    "transports": ["name"],
}

_CARRIER_CODE = re.compile(r"\(([A-Z0-9]{2,3})\)")
_PARENTHESIZED = re.compile(r"\s*\([^)]*\)")


@dataclass
class LookupResult:
    found: bool
    id: Optional[int] = None
    original_value: Any = None
    error: Optional[str] = None
    created: bool = False
    ids: list[int] = field(default_factory=list)
    not_found_values: list[str] = field(default_factory=list)

    @property
    def value(self) -> Any:
        return self.ids if self.ids else self.id

    @classmethod
    def success(cls, record_id: int, original: Any, created: bool = False) -> "LookupResult":
        return cls(found=True, id=record_id, original_value=original, created=created)

    @classmethod
    def not_found(cls, original: Any, error: Optional[str] = None) -> "LookupResult":
        return cls(found=False, original_value=original, error=error or f"No match for '{original}'")

    @classmethod
    def partial_match(cls, ids: list[int], missing: list[str], original: Any) -> "LookupResult":
        return cls(
            found=bool(ids),
            ids=ids,
            original_value=original,
            not_found_values=missing,
            error=f"Not found: {', '.join(missing)}" if missing else None,
        )


class LookupResolver:
    """
    Match free-text values against countries, cities and transports.

    Results are cached per table for the life of the resolver, so one
    resolver should serve one sync run.
    """

    def __init__(self, db: AsyncSession):
        self.db = db
        self._cache: dict[str, dict[str, Optional[int]]] = {}

    def _cached(self, table: str, value: str) -> tuple[bool, Optional[int]]:
        bucket = self._cache.get(table, {})
        key = value.strip().lower()
        return (key in bucket, bucket.get(key))

    def _remember(self, table: str, value: str, record_id: Optional[int]) -> None:
        self._cache.setdefault(table, {})[value.strip().lower()] = record_id

    async def preload_countries(self) -> int:
        """Warm the country cache with every name and ISO code."""
        rows = (await self.db.execute(select(Country))).scalars().all()
        for country in rows:
            for alias in (country.name_en, country.name_th, country.iso2, country.iso3):
                if alias:
                    self._remember("countries", alias, country.id)
        return len(rows)

    async def resolve(self, value: Any, definition: Any) -> LookupResult:
        """Resolve a scalar or list value using a section definition's lookup settings."""
        table = definition.lookup_table
        model = LOOKUP_MODELS.get(table)
        if model is None:
            return LookupResult.not_found(value, f"Unknown lookup table: {table}")

        match_fields = definition.lookup_match_fields or DEFAULT_MATCH_FIELDS[table]
        create = bool(getattr(definition, "lookup_create_if_not_found", False))

        if isinstance(value, list):
            ids: list[int] = []
            missing: list[str] = []
            for item in value:
                record_id, _ = await self._find(table, str(item), match_fields, create)
                if record_id is None:
                    missing.append(str(item))
                else:
                    ids.append(record_id)
            return LookupResult.partial_match(ids, missing, value)

        text = str(value)
        record_id, created = await self._find(table, text, match_fields, create)
        if record_id is None:
            return LookupResult.not_found(value, f"No {table} match for '{text}'")
        return LookupResult.success(record_id, value, created=created)

    async def resolve_for_field(self, value: Any, our_field: str, config: Optional[dict]) -> Optional[int]:
        """
        Resolve a value mapped with ``transform_type = lookup``.

        ``config`` may name ``lookup_table`` and ``lookup_by``; both are inferred
        from the field name otherwise (``transport_id`` looks up ``transports.id``).
        """
        if value is None or value == "":
            return None
        config = config or {}
        table = config.get("lookup_table") or infer_lookup_table(our_field)
        if table not in LOOKUP_MODELS:
            logger.warning(
                "Lookup skipped for unknown table",
                extra={"field": our_field, "lookup_table": table}
            )
            return None

        lookup_by = config.get("lookup_by") or "id"
        model = LOOKUP_MODELS[table]
        column = getattr(model, lookup_by, None)
        text = str(value).strip()

        if column is not None:
            stmt = select(model.id).where(func.lower(cast(column, String)) == text.lower()).limit(1)
            record_id = (await self.db.execute(stmt)).scalar_one_or_none()
            if record_id is not None:
                return record_id

        record_id, _ = await self._find(table, text, DEFAULT_MATCH_FIELDS[table], create=False)
        return record_id

    async def _find(
        self, table: str, text: str, match_fields: list[str], create: bool
    ) -> tuple[Optional[int], bool]:
        """Return (id, created) for ``text``; misses are cached too."""
        text = text.strip()
        if not text:
            return None, False

        hit, cached_id = self._cached(table, text)
        if hit and (cached_id is not None or not create):
            return cached_id, False

        created = False

        model = LOOKUP_MODELS[table]
        record_id = await self._exact(model, text, match_fields)

        if record_id is None and table == "transports":
            code = _CARRIER_CODE.search(text)
            if code:
                record_id = await self._exact(model, code.group(1), ["code", "code1"])

        if record_id is None:
            cleaned = _PARENTHESIZED.sub("", text).strip() or text
            record_id = await self._fuzzy(model, cleaned, FUZZY_FIELDS[table])

        if record_id is None and table == "countries" and len(text) in (2, 3):
            record_id = await self._exact(model, text.upper(), ["iso2", "iso3"])

        if record_id is None and create and table == "cities":
            city = City(name_en=text, name_th=text)
            self.db.add(city)
            await self.db.flush()
            record_id = city.id
            created = True
            logger.info("Created city from lookup", extra={"city_id": city.id, "city_name": text})

        self._remember(table, text, record_id)
        return record_id, created

    async def _exact(self, model: Any, text: str, fields: list[str]) -> Optional[int]:
        conditions = [
            func.lower(getattr(model, name)) == text.lower()
            for name in fields
            if hasattr(model, name)
        ]
        if not conditions:
            return None
        stmt = select(model.id).where(or_(*conditions)).order_by(model.id).limit(1)
        return (await self.db.execute(stmt)).scalar_one_or_none()

    async def _fuzzy(self, model: Any, text: str, fields: list[str]) -> Optional[int]:
        pattern = f"%{text.lower()}%"
        conditions = [func.lower(getattr(model, name)).like(pattern) for name in fields]
        stmt = select(model.id).where(or_(*conditions)).order_by(model.id).limit(1)
        return (await self.db.execute(stmt)).scalar_one_or_none()

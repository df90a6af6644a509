"""Definition-driven mapping of a raw wholesaler record into typed sections.

Section definitions declare which of our fields exist per section and their
type; field mappings say where each field lives in a given wholesaler's
payload. Every defined field goes through extract, transform, type check and,
when the definition names a lookup table, id resolution. Failures are
collected rather than raised so a preview can show all of them at once.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ...models.mapping import SectionDefinition, WholesalerFieldMapping
from .lookup_resolver import LookupResolver
from .paths import extract_value
from .transforms import apply_transform
from .type_validator import TypeValidator

logger = logging.getLogger(__name__)

MAPPED_SECTIONS = ("tour", "period", "pricing", "content", "media", "seo")

# Media and SEO fields that land on differently named tour columns
_MEDIA_COLUMNS = {"cover_image": "cover_image_url", "cover_alt": "cover_image_alt", "pdf_url": "pdf_url"}
_SEO_COLUMNS = {"slug": "slug", "meta_title": "meta_title", "meta_description": "meta_description"}


@dataclass
class MappingResult:
    success: bool
    data: dict[str, dict[str, Any]] = field(default_factory=dict)
    errors: list[dict[str, Any]] = field(default_factory=list)

    def section(self, name: str) -> dict[str, Any]:
        return self.data.get(name, {})

    def to_tour_data(self) -> dict[str, Any]:
        """Flatten the sections that describe the tour row itself."""
        flat: dict[str, Any] = {}
        for name in ("tour", "pricing", "content"):
            flat.update(self.section(name))
        for source, column in _MEDIA_COLUMNS.items():
            if self.section("media").get(source):
                flat[column] = self.section("media")[source]
        for source, column in _SEO_COLUMNS.items():
            if self.section("seo").get(source):
                flat[column] = self.section("seo")[source]
        return flat

    def to_period_data(self) -> dict[str, Any]:
        return dict(self.section("period"))

    @property
    def field_count(self) -> int:
        return sum(
            1
            for values in self.data.values()
            for value in values.values()
            if value is not None and value != ""
        )


class SectionMapper:
    """Maps raw records for one wholesaler after :meth:`load_mappings`."""

    def __init__(
        self,
        db: AsyncSession,
        type_validator: Optional[TypeValidator] = None,
        lookup_resolver: Optional[LookupResolver] = None,
    ):
        self.db = db
        self.type_validator = type_validator or TypeValidator()
        self.lookup_resolver = lookup_resolver or LookupResolver(db)
        self.definitions: dict[str, dict[str, SectionDefinition]] = {}
        self.mappings: dict[str, dict[str, WholesalerFieldMapping]] = {}

    async def load_mappings(self, wholesaler_id: int) -> "SectionMapper":
        definitions = (
            await self.db.execute(
                select(SectionDefinition).order_by(SectionDefinition.section_name, SectionDefinition.sort_order)
            )
        ).scalars().all()
        self.definitions = {}
        for definition in definitions:
            self.definitions.setdefault(definition.section_name, {})[definition.field_name] = definition

        mappings = (
            await self.db.execute(
                select(WholesalerFieldMapping).where(
                    WholesalerFieldMapping.wholesaler_id == wholesaler_id,
                    WholesalerFieldMapping.is_active.is_(True),
                )
            )
        ).scalars().all()
        self.mappings = {}
        for mapping in mappings:
            self.mappings.setdefault(mapping.section_name, {})[mapping.our_field] = mapping

        await self.lookup_resolver.preload_countries()
        return self

    async def map_tour(self, raw: dict[str, Any]) -> MappingResult:
        errors: list[dict[str, Any]] = []
        data = {}
        for section_name in MAPPED_SECTIONS:
            data[section_name] = await self.map_section(section_name, raw, errors)
        return MappingResult(success=not errors, data=data, errors=errors)

    async def map_section(
        self,
        section_name: str,
        raw: dict[str, Any],
        errors: list[dict[str, Any]],
    ) -> dict[str, Any]:
        mapped: dict[str, Any] = {}
        section_mappings = self.mappings.get(section_name, {})

        for field_name, definition in self.definitions.get(section_name, {}).items():
            mapping = section_mappings.get(field_name)
            value = self._extract(raw, mapping, definition)

            if mapping is not None and value:
                value = apply_transform(value, mapping.transform_type, mapping.transform_config, raw)

            result = self.type_validator.validate(value, definition)
            if not result.success:
                errors.append({
                    "section": section_name,
                    "field": field_name,
                    "error": result.error,
                    "received_value": result.original_value,
                    "expected_type": result.expected_type,
                })
                mapped[field_name] = definition.default_value
                continue

            if definition.has_lookup and result.value not in (None, ""):
                lookup = await self.lookup_resolver.resolve(result.value, definition)
                if not lookup.found and lookup.error:
                    errors.append({
                        "section": section_name,
                        "field": field_name,
                        "error": lookup.error,
                        "received_value": lookup.original_value,
                        "error_type": "lookup",
                    })
                mapped[field_name] = lookup.value
            else:
                mapped[field_name] = result.value

        return mapped

    @staticmethod
    def _extract(
        raw: dict[str, Any],
        mapping: Optional[WholesalerFieldMapping],
        definition: SectionDefinition,
    ) -> Any:
        if mapping is None:
            value = raw.get(definition.field_name)
            return definition.default_value if value is None else value

        path = mapping.source_path
        if mapping.their_field and mapping.their_field in raw and not mapping.their_field_path:
            value = raw[mapping.their_field]
        else:
            value = extract_value(raw, path)

        if value is None:
            return mapping.default_value if mapping.default_value is not None else definition.default_value
        return value

    async def preview(self, sample: dict[str, Any], wholesaler_id: int) -> dict[str, Any]:
        """Map one sample record and report the outcome for the mapping editor."""
        await self.load_mappings(wholesaler_id)
        result = await self.map_tour(sample)
        logger.info(
            "Mapping preview generated",
            extra={
                "wholesaler_id": wholesaler_id,
                "success": result.success,
                "error_count": len(result.errors),
            }
        )
        return {
            "input": sample,
            "output": result.data,
            "success": result.success,
            "errors": result.errors,
            "field_count": result.field_count,
        }

"""Mapping-driven transformation of raw wholesaler tours into section dicts."""

import logging
from typing import Any, Iterable, Optional

from ...models.mapping import WholesalerFieldMapping
from .lookup_resolver import LookupResolver
from .paths import (
    clean_nested_path,
    default_departure_items,
    default_itinerary_items,
    extract_value,
    flatten_nested_path,
)
from .transforms import apply_transform

logger = logging.getLogger(__name__)

SINGLE_SECTIONS = ("tour", "content", "media", "seo")
LIST_SECTIONS = ("departure", "itinerary")


class TourTransformer:
    """
    Turn one raw tour into ``{"tour", "content", "media", "seo", "departure", "itinerary"}``.

    Departure and itinerary lists come from the array paths configured under
    ``aggregation_config.data_structure`` and fall back to the conventional keys
    (``periods``, ``itinerary``, ...) when nothing is configured.
    """

    def __init__(
        self,
        mappings: Iterable[WholesalerFieldMapping],
        aggregation_config: Optional[dict[str, Any]] = None,
        resolver: Optional[LookupResolver] = None,
    ):
        self.by_section: dict[str, list[WholesalerFieldMapping]] = {}
        for mapping in mappings:
            if mapping.is_active:
                self.by_section.setdefault(mapping.section_name, []).append(mapping)
        for items in self.by_section.values():
            items.sort(key=lambda m: (m.sort_order, m.id or 0))

        data_structure = (aggregation_config or {}).get("data_structure") or {}
        self.departures_path: Optional[str] = (data_structure.get("departures") or {}).get("path")
        self.itineraries_path: Optional[str] = (data_structure.get("itineraries") or {}).get("path")
        self.resolver = resolver

    async def _value(self, item: dict[str, Any], mapping: WholesalerFieldMapping, path: str) -> Any:
        value = extract_value(item, path)
        if mapping.transform_type == "lookup":
            if self.resolver is None:
                return value
            value = await self.resolver.resolve_for_field(value, mapping.our_field, mapping.transform_config)
        else:
            value = apply_transform(value, mapping.transform_type, mapping.transform_config, item)

        if value is None and mapping.default_value:
            value = mapping.default_value
        return value

    async def transform(self, raw: dict[str, Any]) -> dict[str, Any]:
        result: dict[str, Any] = {section: {} for section in SINGLE_SECTIONS}

        for section in SINGLE_SECTIONS:
            for mapping in self.by_section.get(section, []):
                path = mapping.source_path
                if not path:
                    continue
                result[section][mapping.our_field] = await self._value(raw, mapping, path)

        if self.departures_path:
            departure_items = flatten_nested_path(raw, self.departures_path)
        else:
            departure_items = default_departure_items(raw)
        result["departure"] = await self.transform_items(departure_items, "departure", self.departures_path)

        if self.itineraries_path:
            itinerary_items = flatten_nested_path(raw, self.itineraries_path)
        else:
            itinerary_items = default_itinerary_items(raw)
        result["itinerary"] = await self.transform_items(itinerary_items, "itinerary", self.itineraries_path)

        return result

    async def transform_items(
        self,
        items: list[dict[str, Any]],
        section: str,
        base_path: Optional[str] = None,
    ) -> list[dict[str, Any]]:
        """Map each item of a departure or itinerary list; itinerary days are numbered from 1."""
        mappings = self.by_section.get(section, [])
        if not mappings or not items:
            return []

        mapped_items = []
        for index, item in enumerate(items, start=1):
            mapped: dict[str, Any] = {}
            for mapping in mappings:
                path = mapping.source_path
                if not path:
                    continue
                mapped[mapping.our_field] = await self._value(item, mapping, clean_nested_path(path, base_path))
            if section == "itinerary" and not mapped.get("day_number"):
                mapped["day_number"] = index
            mapped_items.append(mapped)
        return mapped_items

    @staticmethod
    def is_mappable(transformed: dict[str, Any]) -> bool:
        """A tour needs at least a title or one of its codes to be synced."""
        tour = transformed.get("tour") or {}
        return bool(tour.get("title") or tour.get("tour_code") or tour.get("wholesaler_tour_code"))

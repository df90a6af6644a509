"""Field mapping: path extraction, transforms, typing, lookups."""

from .lookup_resolver import LookupResolver, LookupResult
from .section_mapper import MappingResult, SectionMapper
from .text_cleaner import clean_record, clean_text
from .tour_transformer import TourTransformer
from .type_validator import TypeValidator, ValidationResult

__all__ = [
    "LookupResolver",
    "LookupResult",
    "MappingResult",
    "SectionMapper",
    "TourTransformer",
    "TypeValidator",
    "ValidationResult",
    "clean_record",
    "clean_text",
]

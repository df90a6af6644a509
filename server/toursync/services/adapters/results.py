"""Result objects returned by wholesaler adapters."""

from dataclasses import dataclass, field
from typing import Any, Optional


@dataclass
class SyncResult:
    success: bool
    tours: list[dict[str, Any]] = field(default_factory=list)
    next_cursor: Optional[str] = None
    has_more: bool = False
    error_message: Optional[str] = None
    error_code: Optional[str] = None

    @classmethod
    def ok(cls, tours: list[dict[str, Any]], next_cursor: Optional[str] = None, has_more: bool = False) -> "SyncResult":
        return cls(success=True, tours=tours, next_cursor=next_cursor, has_more=has_more)

    @classmethod
    def failed(cls, message: str, code: Optional[str] = None) -> "SyncResult":
        return cls(success=False, error_message=message, error_code=code)


@dataclass
class PeriodsResult:
    success: bool
    periods: list[dict[str, Any]] = field(default_factory=list)
    raw_data: dict[str, Any] = field(default_factory=dict)
    error_message: Optional[str] = None
    error_code: Optional[str] = None

    @classmethod
    def ok(cls, periods: list[dict[str, Any]], raw_data: Optional[dict[str, Any]] = None) -> "PeriodsResult":
        return cls(success=True, periods=periods, raw_data=raw_data or {})

    @classmethod
    def failed(cls, message: str, code: Optional[str] = None) -> "PeriodsResult":
        return cls(success=False, error_message=message, error_code=code)


@dataclass
class ItinerariesResult:
    success: bool
    itineraries: list[dict[str, Any]] = field(default_factory=list)
    error_message: Optional[str] = None
    error_code: Optional[str] = None

    @classmethod
    def ok(cls, itineraries: list[dict[str, Any]]) -> "ItinerariesResult":
        return cls(success=True, itineraries=itineraries)

    @classmethod
    def failed(cls, message: str, code: Optional[str] = None) -> "ItinerariesResult":
        return cls(success=False, error_message=message, error_code=code)

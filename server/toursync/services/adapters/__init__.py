"""Wholesaler API adapters."""

from .base import BaseAdapter, clear_oauth_token_cache
from .factory import AdapterFactory, build_endpoint
from .generic_rest import GenericRestAdapter
from .results import ItinerariesResult, PeriodsResult, SyncResult

__all__ = [
    "AdapterFactory",
    "BaseAdapter",
    "GenericRestAdapter",
    "ItinerariesResult",
    "PeriodsResult",
    "SyncResult",
    "build_endpoint",
    "clear_oauth_token_cache",
]

"""Models module exporting all database models."""

from .cache_lock import CacheLock
from .location import City, Country, Transport
from .mapping import SectionDefinition, WholesalerFieldMapping
from .period import Offer, Period
from .promotion import OfferPromotion, Promotion
from .setting import Setting
from .sync import SyncCursor, SyncErrorLog, SyncJob, SyncLog
from .tour import Tour, TourCity, TourItinerary, TourTransport
from .wholesaler import Wholesaler, WholesalerApiConfig

__all__ = [
    # Catalogue entities
    "Tour",
    "TourItinerary",
    "TourCity",
    "TourTransport",
    "Period",
    "Offer",
    "Promotion",
    "OfferPromotion",

    # Reference data
    "Country",
    "City",
    "Transport",
    "Setting",

    # Wholesaler integration
    "Wholesaler",
    "WholesalerApiConfig",
    "WholesalerFieldMapping",
    "SectionDefinition",

    # Sync bookkeeping
    "SyncLog",
    "SyncErrorLog",
    "SyncCursor",
    "SyncJob",
    "CacheLock",
]

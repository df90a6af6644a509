"""Service layer package."""

from .auto_close_service import AutoCloseService
from .country_service import CountryService
from .integration_service import IntegrationService
from .period_service import PeriodService
from .tour_service import TourService

__all__ = [
    "AutoCloseService",
    "CountryService",
    "IntegrationService",
    "PeriodService",
    "TourService",
]

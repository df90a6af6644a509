"""Second phase of a two-phase sync: periods, itineraries, cities and airline fetched per tour."""

import logging
import re
from typing import Any, Optional

from fastapi.encoders import jsonable_encoder
from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError

from ...models.location import City, Transport
from ...models.period import Offer, Period
from ...models.tour import Tour, TourCity, TourItinerary, TourTransport
from ..adapters.base import BaseAdapter
from ..adapters.factory import build_endpoint
from ..aggregates import recalculate_tour_aggregates
from ..mapping.paths import flatten_nested_path
from ..mapping.tour_transformer import TourTransformer
from .tour_sync_service import TourSyncService

logger = logging.getLogger(__name__)

# Per-tour responses are already at the periods level
_PERIODS_PREFIX = re.compile(r"^[Pp]eriods\[\]\.")


def flatten_period_items(periods: list[dict[str, Any]], path: Optional[str]) -> list[dict[str, Any]]:
    """
    Expand nested departures inside each fetched period.

    With ``path="periods[].tour_period[]"`` every item's ``tour_period`` list
    is expanded; items without that key are kept as they are.
    """
    if not path:
        return periods
    relative = _PERIODS_PREFIX.sub("", path)
    if relative.rstrip("[]").lower() == "periods":
        return periods

    flattened: list[dict[str, Any]] = []
    for item in periods:
        nested = flatten_nested_path(item, relative)
        if nested:
            flattened.extend(nested)
        else:
            flattened.append(item)
    return flattened


class PeriodsSyncService:
    """Fetch, map and store one tour's periods and itineraries."""

    def __init__(
        self,
        adapter: BaseAdapter,
        tour_sync: TourSyncService,
        transformer: TourTransformer,
    ):
        self.adapter = adapter
        self.tour_sync = tour_sync
        self.transformer = transformer
        self.db = tour_sync.db
        self.config = tour_sync.config

    async def sync_tour_periods(self, tour: Tour) -> dict[str, Any]:
        stats = {
            "periods_received": 0,
            "periods_created": 0,
            "periods_updated": 0,
            "periods_skipped": 0,
            "itineraries": 0,
            "cities": 0,
            "transport": None,
            "error": None,
        }

        template = self.config.endpoints.get("periods")
        if not template:
            logger.warning(
                "No periods endpoint configured for two-phase sync",
                extra={"wholesaler_id": self.config.wholesaler_id, "tour_id": tour.id}
            )
            stats["error"] = "No periods endpoint configured"
            return stats

        result = await self.adapter.fetch_periods(build_endpoint(template, tour))
        if not result.success:
            logger.error(
                "Failed to fetch periods",
                extra={"tour_id": tour.id, "error": result.error_message}
            )
            stats["error"] = result.error_message
            return stats

        departures_path = self.config.data_structure_path("departures")
        items = flatten_period_items(result.periods, departures_path)
        stats["periods_received"] = len(items)

        for item in await self.transformer.transform_items(items, "departure", departures_path):
            action = await self._sync_period(tour, item)
            stats[f"periods_{action}"] += 1

        stats["itineraries"] = await self._sync_itineraries(tour, result.raw_data)
        stats["cities"] = await self._sync_cities(tour, result.raw_data)
        stats["transport"] = await self._sync_transport(tour, result.raw_data, result.periods)

        await recalculate_tour_aggregates(self.db, tour, self.tour_sync.today)
        logger.info(
            "Tour periods synced",
            extra={"tour_id": tour.id, **{k: v for k, v in stats.items() if k != "error"}}
        )
        return stats

    async def _sync_period(self, tour: Tour, item: dict[str, Any]) -> str:
        """Store one departure; a departure that cannot be stored is skipped, not fatal to the tour."""
        known = set(self.db.identity_map.keys())
        try:
            return await self.tour_sync.process_period(tour, item)
        except SQLAlchemyError:
            raise
        except Exception as e:
            await self._discard_period_changes(known)
            code = item.get("external_id") or item.get("period_code") or item.get("start_date")
            logger.warning(
                "Skipped period that could not be stored",
                extra={"tour_id": tour.id, "period": str(code), "error": str(e)}
            )
            if self.tour_sync.error_handler is not None:
                await self.tour_sync.error_handler.handle(
                    e, "period", str(code) if code else None, raw_data=jsonable_encoder(item)
                )
            return "skipped"

    async def _discard_period_changes(self, known: set) -> None:
        for obj in list(self.db.new):
            if isinstance(obj, (Period, Offer)):
                self.db.expunge(obj)
        for key, obj in list(self.db.identity_map.items()):
            if key not in known and isinstance(obj, (Period, Offer)):
                await self.db.delete(obj)
        for obj in list(self.db.dirty):
            if isinstance(obj, (Period, Offer)):
                await self.db.refresh(obj)
        await self.db.flush()

    async def _sync_itineraries(self, tour: Tour, raw_data: dict[str, Any]) -> int:
        itineraries_path = self.config.data_structure_path("itineraries")

        if itineraries_path and raw_data:
            items = flatten_nested_path(raw_data, _PERIODS_PREFIX.sub("", itineraries_path))
            base_path = itineraries_path
        elif self.config.endpoints.get("itineraries"):
            fetched = await self.adapter.fetch_itineraries(
                build_endpoint(self.config.endpoints["itineraries"], tour)
            )
            if not fetched.success:
                logger.warning(
                    "Failed to fetch itineraries",
                    extra={"tour_id": tour.id, "error": fetched.error_message}
                )
                return 0
            items = fetched.itineraries
            base_path = None
        else:
            return 0

        mapped = await self.transformer.transform_items(items, "itinerary", base_path)
        if not mapped:
            return 0

        # Replace the wholesaler's programme so removed days disappear
        await self.db.execute(
            delete(TourItinerary).where(
                TourItinerary.tour_id == tour.id,
                TourItinerary.data_source == "api",
            )
        )
        count = 0
        for item in mapped:
            if await self.tour_sync.process_itinerary(tour, item) is not None:
                count += 1
        return count

    async def _sync_cities(self, tour: Tour, raw_data: dict[str, Any]) -> int:
        """Replace the tour's cities with the ones listed under the ``cities`` path, in order."""
        cities_path = self.config.data_structure_path("cities")
        if not cities_path or not raw_data:
            return 0

        items = flatten_nested_path(raw_data, _PERIODS_PREFIX.sub("", cities_path))
        mapped = await self.transformer.transform_items(items, "city", cities_path)
        if not mapped:
            return 0

        await self.db.execute(delete(TourCity).where(TourCity.tour_id == tour.id))
        count = 0
        seen: set[int] = set()
        for item in mapped:
            city = await self._find_city(item)
            if city is None or city.id in seen:
                logger.debug("City not matched", extra={"tour_id": tour.id, "city": item})
                continue
            seen.add(city.id)
            count += 1
            self.db.add(TourCity(
                tour_id=tour.id,
                city_id=city.id,
                country_id=city.country_id or tour.primary_country_id,
                sort_order=count,
                days_in_city=1,
            ))
        await self.db.flush()
        return count

    async def _find_city(self, item: dict[str, Any]) -> Optional[City]:
        name_th = str(item.get("name_th") or "").strip()
        name_en = str(item.get("name_en") or item.get("city") or "").strip()
        if name_th:
            condition = City.name_th.ilike(f"%{name_th}%")
        elif name_en:
            condition = City.name_en.ilike(f"%{name_en}%")
        else:
            return None
        return (
            await self.db.execute(select(City).where(condition).order_by(City.id).limit(1))
        ).scalar_one_or_none()

    async def _sync_transport(
        self,
        tour: Tour,
        raw_data: dict[str, Any],
        periods: list[dict[str, Any]],
    ) -> Optional[str]:
        """Point the tour at the airline named in the response; returns the airline matched."""
        airline = _airline_data(raw_data) or (_airline_data(periods[0]) if periods else None)
        if not airline:
            return None

        code = str(airline.get("airline_iata") or "").strip()
        name = str(airline.get("airline_name") or "").strip()
        transport = None
        if code:
            transport = (
                await self.db.execute(select(Transport).where(Transport.code == code).limit(1))
            ).scalar_one_or_none()
        if transport is None and name:
            transport = (
                await self.db.execute(
                    select(Transport).where(Transport.name.ilike(f"%{name}%")).order_by(Transport.id).limit(1)
                )
            ).scalar_one_or_none()
        if transport is None:
            logger.debug("Airline not matched", extra={"tour_id": tour.id, "airline": code or name})
            return None

        tour.transport_id = transport.id
        existing = (
            await self.db.execute(
                select(TourTransport.id).where(
                    TourTransport.tour_id == tour.id,
                    TourTransport.transport_id == transport.id,
                )
            )
        ).first()
        if existing is None:
            self.db.add(TourTransport(
                tour_id=tour.id,
                transport_id=transport.id,
                transport_code=transport.code,
                transport_name=transport.name,
                transport_type="outbound",
            ))
        await self.db.flush()
        logger.info(
            "Tour transport synced",
            extra={"tour_id": tour.id, "transport_id": transport.id, "airline": code or name}
        )
        return code or name


def _airline_data(item: dict[str, Any]) -> Optional[dict[str, Any]]:
    """``tour_airline`` of a response item, else the first nested departure's ``period_airline``."""
    airline = item.get("tour_airline")
    if not airline:
        departures = item.get("tour_period")
        if isinstance(departures, list) and departures and isinstance(departures[0], dict):
            airline = departures[0].get("period_airline")
    return airline if isinstance(airline, dict) else None

"""Upsert of transformed wholesaler tours into tours, periods, offers and itineraries."""

import logging
import math
import re
from datetime import date, datetime, timedelta
from typing import Any, Optional

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from ...core.config import settings
from ...models.period import Offer, Period
from ...models.tour import Tour, TourItinerary
from ...models.wholesaler import WholesalerApiConfig
from ..aggregates import recalculate_tour_aggregates
from ..mapping.dates import parse_date
from ..mapping.text_cleaner import clean_record
from ..mapping.type_validator import TRUTHY
from .error_handler import SyncErrorHandler

logger = logging.getLogger(__name__)

TOUR_CODE_PREFIX = "NT"
_TOUR_CODE_SEQUENCE = re.compile(r"^NT\d{6}(\d{3})$")

PERIOD_STATUS_MAP = {
    "open": "open",
    "available": "open",
    "active": "open",
    "closed": "closed",
    "inactive": "closed",
    "sold_out": "sold_out",
    "full": "sold_out",
    "cancelled": "cancelled",
    "canceled": "cancelled",
}

TOUR_FIELDS = frozenset({
    "wholesaler_tour_code", "external_id", "title", "slug", "description",
    "short_description", "highlights", "shopping_highlights", "food_highlights", "themes",
    "suitable_for", "primary_country_id", "transport_id", "duration_days", "duration_nights",
    "cover_image_url", "cover_image_alt", "pdf_url", "gallery", "meta_title",
    "meta_description", "keywords", "hashtags",
})
NUMERIC_TOUR_FIELDS = frozenset({"duration_days", "duration_nights", "primary_country_id", "transport_id"})

OFFER_PRICE_FIELDS = (
    "price_adult", "discount_adult", "price_child", "discount_child_bed", "price_child_nobed",
    "discount_child_nobed", "price_infant", "price_joinland", "price_single", "discount_single",
    "deposit",
)

MEAL_KEYWORDS = {
    "breakfast": ("breakfast", "\u0e40\u0e0a\u0e49\u0e32"),
    "lunch": ("lunch", "\u0e01\u0e25\u0e32\u0e07\u0e27\u0e31\u0e19"),
    "dinner": ("dinner", "\u0e40\u0e22\u0e47\u0e19"),
}
MEAL_LETTERS = {"breakfast": "B", "lunch": "L", "dinner": "D"}


def map_period_status(value: Any) -> str:
    """Normalise a wholesaler's period status; unknown and empty values mean open."""
    if not value:
        return "open"
    return PERIOD_STATUS_MAP.get(str(value).strip().lower(), "open")


def parse_meal_flag(value: Any, meal: str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return bool(value)
    if isinstance(value, str):
        text = value.strip()
        if text.isdecimal():
            return bool(int(text))
        lowered = text.lower()
        if any(keyword in lowered for keyword in MEAL_KEYWORDS.get(meal, ())):
            return True
        letter = MEAL_LETTERS.get(meal)
        return bool(letter) and letter in re.split(r"[\s,/|-]+", text)
    return False


def _as_int(value: Any) -> Optional[int]:
    if value is None or value == "" or isinstance(value, bool):
        return None
    try:
        return int(float(str(value).replace(",", "").strip()))
    except (ValueError, OverflowError):
        return None


def _as_float(value: Any) -> Optional[float]:
    if value is None or value == "" or isinstance(value, bool):
        return None
    try:
        number = float(str(value).replace(",", "").strip())
    except ValueError:
        return None
    return number if math.isfinite(number) else None


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in TRUTHY
    return bool(value)


def _as_text(value: Any, limit: int) -> Optional[str]:
    if value is None:
        return None
    text = str(value)
    return text[:limit] if len(text) > limit else text


async def generate_tour_code(db: AsyncSession, now: Optional[datetime] = None) -> str:
    """Next ``NT{YYYYmm}{seq:03}`` code for the month of ``now``."""
    now = now or datetime.utcnow()
    prefix = f"{TOUR_CODE_PREFIX}{now.strftime('%Y%m')}"
    last_code = (
        await db.execute(
            select(Tour.tour_code)
            .where(Tour.tour_code.like(f"{prefix}%"))
            .order_by(Tour.tour_code.desc())
            .limit(1)
        )
    ).scalar_one_or_none()

    match = _TOUR_CODE_SEQUENCE.match(last_code or "")
    sequence = int(match.group(1)) + 1 if match else 1
    return f"{prefix}{sequence:03d}"


class TourSyncService:
    """
    Writes one transformed tour at a time.

    ``tour_data`` is the output of ``TourTransformer.transform``: single
    sections ``tour``, ``content``, ``media`` and ``seo`` plus ``departure``
    and ``itinerary`` lists. Callers own the transaction; every method only
    flushes.
    """

    def __init__(
        self,
        db: AsyncSession,
        config: WholesalerApiConfig,
        error_handler: Optional[SyncErrorHandler] = None,
        today: Optional[date] = None,
    ):
        self.db = db
        self.config = config
        self.error_handler = error_handler
        self.today = today or date.today()

    async def find_tour(self, tour_section: dict[str, Any]) -> Optional[Tour]:
        tour_code = (
            tour_section.get("tour_code")
            or tour_section.get("wholesaler_tour_code")
            or tour_section.get("external_id")
        )
        external_id = tour_section.get("external_id")

        conditions = []
        if tour_code:
            conditions.append(Tour.wholesaler_tour_code == str(tour_code))
        if external_id:
            conditions.append(Tour.external_id == str(external_id))
        if not conditions:
            return None

        result = await self.db.execute(
            select(Tour)
            .where(Tour.wholesaler_id == self.config.wholesaler_id, or_(*conditions))
            .order_by(Tour.id)
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def process_tour(self, tour_data: dict[str, Any], process_departures: bool = True) -> dict[str, Any]:
        """
        Create or update one tour with its periods and itineraries.

        Returns:
            ``{"action", "tour", "periods_received", "periods_created", "periods_updated"}``
            where action is created, updated or skipped
        """
        result: dict[str, Any] = {
            "action": "skipped",
            "tour": None,
            "periods_received": 0,
            "periods_created": 0,
            "periods_updated": 0,
        }
        tour_data = clean_record(tour_data)

        tour_section: dict[str, Any] = {}
        for section in ("tour", "content", "media", "seo"):
            tour_section.update(tour_data.get(section) or {})

        if not tour_section.get("tour_code") and not tour_section.get("title") \
                and not tour_section.get("wholesaler_tour_code"):
            return result

        tour = await self.find_tour(tour_section)
        is_new = tour is None

        if is_new:
            tour = Tour(
                wholesaler_id=self.config.wholesaler_id,
                wholesaler_tour_code=_as_text(
                    tour_section.get("tour_code")
                    or tour_section.get("wholesaler_tour_code")
                    or tour_section.get("external_id"),
                    100,
                ),
                data_source="api",
                status="draft",
                tour_code=await generate_tour_code(self.db),
            )
            result["action"] = "created"
        elif tour.is_sync_protected:
            logger.info(
                "Skipped protected tour",
                extra={
                    "tour_id": tour.id,
                    "tour_code": tour.tour_code,
                    "data_source": tour.data_source,
                    "sync_locked": tour.sync_locked,
                }
            )
            return result
        else:
            result["action"] = "updated"

        self._fill_tour(tour, tour_section, is_new)
        if is_new:
            self.db.add(tour)
        await self.db.flush()
        result["tour"] = tour

        if process_departures and self.config.sync_mode != "two_phase":
            departures = tour_data.get("departure") or []
            result["periods_received"] = len(departures)
            for departure in departures:
                action = await self.process_period(tour, departure)
                if action == "created":
                    result["periods_created"] += 1
                elif action == "updated":
                    result["periods_updated"] += 1

            for itinerary in tour_data.get("itinerary") or []:
                await self.process_itinerary(tour, itinerary)

        await recalculate_tour_aggregates(self.db, tour, self.today)
        return result

    def _fill_tour(self, tour: Tour, tour_section: dict[str, Any], is_new: bool) -> None:
        fields: dict[str, Any] = {}
        for field, value in tour_section.items():
            if field not in TOUR_FIELDS or value is None:
                continue
            if field in NUMERIC_TOUR_FIELDS:
                value = _as_int(value)
                if value is None:
                    continue
            fields[field] = value

        if fields.get("wholesaler_tour_code") is not None:
            fields["wholesaler_tour_code"] = _as_text(fields["wholesaler_tour_code"], 100)
        if fields.get("external_id") is not None:
            fields["external_id"] = _as_text(fields["external_id"], 100)
        if fields.get("title") and len(str(fields["title"])) > 250:
            fields["title"] = str(fields["title"])[:247] + "..."

        if not fields.get("duration_nights") and fields.get("duration_days"):
            fields["duration_nights"] = max(0, fields["duration_days"] - 1)
        if is_new:
            if not fields.get("duration_days"):
                fields["duration_days"] = fields["duration_nights"] + 1 if fields.get("duration_nights") else 0
            fields.setdefault("duration_nights", 0)
            fields.setdefault("title", tour.wholesaler_tour_code or tour.tour_code)

        for field, value in fields.items():
            setattr(tour, field, value)
        tour.sync_status = "active"
        tour.last_synced_at = datetime.utcnow()

    async def process_period(self, tour: Tour, departure: dict[str, Any]) -> str:
        """
        Create or update one period of ``tour``.

        Returns:
            created, updated or skipped
        """
        data = dict(departure)
        if data.get("departure_date") and not data.get("start_date"):
            data["start_date"] = data["departure_date"]
        if data.get("return_date") and not data.get("end_date"):
            data["end_date"] = data["return_date"]

        start_date = parse_date(data.get("start_date"))
        if start_date is None:
            if data.get("start_date") and self.error_handler is not None:
                await self.error_handler.log_error(
                    f"Unparseable start_date '{data['start_date']}'",
                    error_type="validation",
                    entity_type="period",
                    entity_code=_as_text(data.get("external_id") or data.get("period_code"), 100),
                    raw_data=departure,
                    field_name="start_date",
                )
            return "skipped"

        handling = self.config.past_period_handling or "skip"
        threshold_days = max(0, min(365, self.config.past_period_threshold_days or 0))
        is_past = start_date < self.today - timedelta(days=threshold_days)
        if is_past and handling == "skip":
            logger.debug(
                "Skipped past period",
                extra={"tour_id": tour.id, "start_date": start_date.isoformat()}
            )
            return "skipped"

        external_id = _as_text(data.get("external_id"), 100)
        if external_id:
            condition = Period.external_id == external_id
        else:
            condition = Period.start_date == start_date
        period = (
            await self.db.execute(
                select(Period).where(Period.tour_id == tour.id, condition).order_by(Period.id).limit(1)
            )
        ).scalar_one_or_none()

        is_new = period is None
        if is_new:
            period = Period(tour_id=tour.id, start_date=start_date, end_date=start_date)
            self.db.add(period)

        period.start_date = start_date
        end_date = parse_date(data.get("end_date"))
        period.end_date = end_date if end_date and end_date >= start_date else start_date

        if external_id:
            period.external_id = external_id
        if data.get("period_code"):
            period.period_code = _as_text(data["period_code"], 100)
        elif not period.period_code:
            period.period_code = f"P{start_date.strftime('%y%m%d')}"

        capacity = _as_int(data.get("capacity"))
        booked = _as_int(data.get("booked"))
        available = _as_int(data.get("available"))
        if capacity is not None:
            period.capacity = max(0, capacity)
        if booked is not None:
            period.booked = max(0, booked)
        if available is not None:
            period.available = max(0, available)
        elif capacity is not None or booked is not None:
            period.available = max(0, (period.capacity or 0) - (period.booked or 0))

        if "status" in data:
            period.status = map_period_status(data["status"])
        elif is_new:
            period.status = "open"
        if data.get("is_visible") is not None:
            period.is_visible = _as_bool(data["is_visible"])
        if data.get("sale_status"):
            period.sale_status = str(data["sale_status"])

        if is_past and handling == "close":
            period.status = "closed"
            period.sale_status = "closed"

        await self.db.flush()

        if data.get("price_adult") not in (None, "") or data.get("price") not in (None, ""):
            await self.process_offer(period, data)

        return "created" if is_new else "updated"

    async def process_offer(self, period: Period, data: dict[str, Any]) -> Offer:
        offer = (
            await self.db.execute(select(Offer).where(Offer.period_id == period.id))
        ).scalar_one_or_none()
        if offer is None:
            offer = Offer(period_id=period.id)
            self.db.add(offer)

        if data.get("price_adult") in (None, "") and data.get("price") not in (None, ""):
            data = {**data, "price_adult": data["price"]}

        for field in OFFER_PRICE_FIELDS:
            value = _as_float(data.get(field))
            if value is not None:
                setattr(offer, field, value)

        currency = data.get("currency")
        if currency:
            offer.currency = str(currency).upper()[:3]
        elif not offer.currency:
            offer.currency = settings.default_currency

        await self.db.flush()
        return offer

    async def process_itinerary(self, tour: Tour, data: dict[str, Any]) -> Optional[TourItinerary]:
        day_number = _as_int(data.get("day_number"))
        external_id = _as_text(data.get("external_id"), 100)
        if not day_number and not external_id:
            return None

        if external_id:
            condition = TourItinerary.external_id == external_id
        else:
            condition = TourItinerary.day_number == day_number
        itinerary = (
            await self.db.execute(
                select(TourItinerary)
                .where(TourItinerary.tour_id == tour.id, condition)
                .order_by(TourItinerary.id)
                .limit(1)
            )
        ).scalar_one_or_none()

        if itinerary is None:
            itinerary = TourItinerary(tour_id=tour.id, day_number=day_number or 1)
            self.db.add(itinerary)

        if day_number:
            itinerary.day_number = day_number
        if external_id:
            itinerary.external_id = external_id
        if data.get("title") is not None:
            itinerary.title = _as_text(data["title"], 500)
        if data.get("description") is not None:
            itinerary.description = str(data["description"])
        if data.get("places") is not None:
            places = data["places"]
            itinerary.places = places if isinstance(places, list) else [places]
        if data.get("hotel_name") is not None:
            itinerary.hotel_name = _as_text(data["hotel_name"], 255)
        hotel_star = _as_int(data.get("hotel_star"))
        if hotel_star is not None:
            itinerary.hotel_star = hotel_star
        for meal in ("breakfast", "lunch", "dinner"):
            key = f"has_{meal}"
            if data.get(key) is not None:
                setattr(itinerary, key, parse_meal_flag(data[key], meal))

        itinerary.data_source = "api"
        itinerary.sort_order = _as_int(data.get("sort_order")) or itinerary.day_number
        if not itinerary.description:
            itinerary.description = itinerary.title or f"Day {itinerary.day_number}"

        await self.db.flush()
        return itinerary

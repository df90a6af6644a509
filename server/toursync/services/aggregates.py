"""Tour-level aggregates computed from upcoming open periods and itineraries."""

import logging
from collections import Counter
from datetime import date, datetime
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from ..models.period import Offer, Period
from ..models.promotion import promotion_discount
from ..models.tour import Tour, TourItinerary
from ..models.wholesaler import WholesalerApiConfig
from .settings_service import PROMOTION_THRESHOLDS, TOUR_AGGREGATIONS, get_setting

logger = logging.getLogger(__name__)

DEFAULT_AGGREGATION = {
    "price_adult": "min",
    "discount_adult": "max",
    "min_price": "min",
    "max_price": "max",
    "display_price": "min",
    "discount_amount": "max",
}
DEFAULT_PROMOTION_THRESHOLDS = {
    "fire_sale_min_percent": 30,
    "normal_promo_min_percent": 1,
}


def aggregate_value(values: list[float], method: str) -> Optional[float]:
    """Reduce ``values`` with min, max, avg, first or last; unknown methods use min."""
    if not values:
        return None
    if method == "max":
        return max(values)
    if method == "avg":
        return round(sum(values) / len(values), 2)
    if method == "first":
        return values[0]
    if method == "last":
        return values[-1]
    return min(values)


def hotel_star_mode(stars: list[int]) -> Optional[int]:
    """Most common star rating; ties go to the higher rating."""
    if not stars:
        return None
    counts = Counter(stars)
    top = max(counts.values())
    return max(star for star, count in counts.items() if count == top)


def promotion_type(max_discount_percent: float, thresholds: dict[str, Any]) -> str:
    if max_discount_percent >= thresholds.get("fire_sale_min_percent", 30):
        return "fire_sale"
    if max_discount_percent >= thresholds.get("normal_promo_min_percent", 1):
        return "normal"
    return "none"


def best_promotion(offers: list[Offer], today: date) -> tuple[float, Optional[str]]:
    """Largest baht discount any valid promotion gives one adult seat, with that promotion's name."""
    now = datetime.combine(today, datetime.min.time())
    best, label = 0.0, None
    for offer in offers:
        candidates = [
            (promotion_discount(p.type, p.value, offer.price_adult), p.name)
            for p in offer.promotions
            if p.is_valid(now)
        ]
        if offer.promotion is not None and offer.promotion.is_valid(today):
            candidates.append((
                promotion_discount(
                    offer.promotion.type, offer.promotion.discount_value, offer.price_adult
                ),
                offer.promotion.badge_text or offer.promotion.name,
            ))
        for amount, name in candidates:
            if amount > best:
                best, label = amount, name
    return best, label


async def aggregation_config(
    db: AsyncSession,
    tour: Tour,
    config_override: Optional[dict[str, Any]] = None,
) -> dict[str, Any]:
    """Merge defaults, the global setting, the wholesaler's config and an override, in that order."""
    merged = dict(DEFAULT_AGGREGATION)
    merged.update(await get_setting(db, TOUR_AGGREGATIONS, {}) or {})

    if tour.wholesaler_id:
        result = await db.execute(
            select(WholesalerApiConfig.aggregation_config).where(
                WholesalerApiConfig.wholesaler_id == tour.wholesaler_id
            )
        )
        merged.update(result.scalar_one_or_none() or {})

    merged.update(config_override or {})
    return merged


async def recalculate_tour_aggregates(
    db: AsyncSession,
    tour: Tour,
    today: Optional[date] = None,
    config_override: Optional[dict[str, Any]] = None,
) -> Tour:
    """Recompute price, departure, promotion and hotel-star aggregates on ``tour`` and flush."""
    today = today or date.today()
    await db.flush()
    config = await aggregation_config(db, tour, config_override)

    periods = (
        await db.execute(
            select(Period)
            .options(
                selectinload(Period.offer).selectinload(Offer.promotions),
                selectinload(Period.offer).selectinload(Offer.promotion),
            )
            .where(
                Period.tour_id == tour.id,
                Period.status == "open",
                Period.start_date >= today,
            )
            .order_by(Period.start_date, Period.id)
            .execution_options(populate_existing=True)
        )
    ).scalars().all()

    offers = [p.offer for p in periods if p.offer is not None]
    prices = [o.price_adult for o in offers if o.price_adult]
    discounts = [o.discount_adult for o in offers if o.discount_adult]

    tour.price_adult = aggregate_value(prices, config["price_adult"])
    tour.discount_adult = aggregate_value(discounts, config["discount_adult"])
    tour.min_price = aggregate_value(prices, config["min_price"])
    tour.max_price = aggregate_value(prices, config["max_price"])
    tour.display_price = aggregate_value(prices, config["display_price"])

    promo_discount, promo_label = best_promotion(offers, today)
    total_discount = max(tour.discount_adult or 0, promo_discount)
    tour.discount_amount = total_discount if total_discount > 0 else None
    tour.has_promotion = total_discount > 0
    promo_wins = promo_discount > 0 and promo_discount >= (tour.discount_adult or 0)
    tour.discount_label = promo_label if promo_wins else None

    tour.next_departure_date = periods[0].start_date if periods else None
    tour.total_departures = len(periods)
    tour.available_seats = sum(p.available or 0 for p in periods)

    max_percent = 0.0
    for offer in offers:
        if offer.price_adult and offer.price_adult > 0:
            max_percent = max(max_percent, (offer.discount_adult or 0) / offer.price_adult * 100)
    thresholds = await get_setting(db, PROMOTION_THRESHOLDS, DEFAULT_PROMOTION_THRESHOLDS)
    tour.max_discount_percent = round(max_percent, 2)
    tour.promotion_type = promotion_type(max_percent, thresholds)

    stars = list(
        (
            await db.execute(
                select(TourItinerary.hotel_star).where(
                    TourItinerary.tour_id == tour.id,
                    TourItinerary.hotel_star.is_not(None),
                )
            )
        ).scalars()
    )
    tour.hotel_star = hotel_star_mode(stars)
    tour.hotel_star_min = min(stars) if stars else None
    tour.hotel_star_max = max(stars) if stars else None

    await db.flush()
    logger.debug(
        "Tour aggregates recalculated",
        extra={
            "tour_id": tour.id,
            "total_departures": tour.total_departures,
            "display_price": tour.display_price,
            "promotion_type": tour.promotion_type,
        }
    )
    return tour

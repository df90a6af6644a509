"""Unit tests for storing transformed tours, periods and itineraries."""

from datetime import date, datetime

import pytest
from sqlalchemy import select

from toursync.models.period import Offer, Period
from toursync.models.sync import SyncErrorLog
from toursync.models.tour import Tour, TourItinerary
from toursync.services.sync.error_handler import SyncErrorHandler
from toursync.services.sync.tour_sync_service import (
    TourSyncService,
    generate_tour_code,
    map_period_status,
    parse_meal_flag,
)

TODAY = date(2099, 1, 1)


@pytest.fixture
def service(test_session, api_config):
    return TourSyncService(test_session, api_config, today=TODAY)


async def periods_of(session, tour):
    rows = await session.execute(
        select(Period).where(Period.tour_id == tour.id).order_by(Period.start_date)
    )
    return list(rows.scalars().all())


@pytest.mark.parametrize(
    "value,expected",
    [("Available", "open"), ("FULL", "sold_out"), ("canceled", "cancelled"), ("", "open"), ("weird", "open")],
)
def test_map_period_status(value, expected):
    assert map_period_status(value) == expected


@pytest.mark.parametrize(
    "value,meal,expected",
    [
        ("B", "breakfast", True),
        ("B,L", "lunch", True),
        ("L", "dinner", False),
        ("1", "dinner", True),
        ("0", "breakfast", False),
        (True, "lunch", True),
        ("Hotel breakfast", "breakfast", True),
        ("\u0e2d\u0e32\u0e2b\u0e32\u0e23\u0e40\u0e22\u0e47\u0e19", "dinner", True),
        (None, "lunch", False),
    ],
)
def test_parse_meal_flag(value, meal, expected):
    assert parse_meal_flag(value, meal) is expected


@pytest.mark.asyncio
async def test_generate_tour_code_sequences_within_month(test_session):
    now = datetime(2099, 3, 15)
    assert await generate_tour_code(test_session, now) == "NT209903001"

    test_session.add(Tour(tour_code="NT209903007", title="x"))
    test_session.add(Tour(tour_code="NT209902099", title="y"))
    await test_session.flush()
    assert await generate_tour_code(test_session, now) == "NT209903008"


@pytest.mark.asyncio
async def test_process_tour_creates_everything(test_session, service, sample_transformed_tour):
    """Test a new tour is created with periods, offers, itineraries and aggregates."""
    result = await service.process_tour(sample_transformed_tour)
    await test_session.commit()

    tour = result["tour"]
    assert result["action"] == "created"
    assert result["periods_received"] == 2
    assert result["periods_created"] == 2
    assert tour.tour_code.startswith("NT")
    assert tour.wholesaler_tour_code == "ZG-JP-001"
    assert tour.data_source == "api"
    assert tour.status == "draft"
    assert tour.duration_nights == 4
    assert tour.cover_image_url == "https://cdn.zego.test/jp001.jpg"

    periods = await periods_of(test_session, tour)
    assert [(p.external_id, p.available, p.period_code) for p in periods] == [
        ("D1", 20, "P990301"),
        ("D2", 0, "P990401"),
    ]
    offer = (await test_session.execute(select(Offer).where(Offer.period_id == periods[0].id))).scalar_one()
    assert offer.price_adult == 29900
    assert offer.currency == "THB"

    days = (
        await test_session.execute(
            select(TourItinerary).where(TourItinerary.tour_id == tour.id).order_by(TourItinerary.day_number)
        )
    ).scalars().all()
    assert [(d.day_number, d.has_breakfast, d.has_lunch) for d in days] == [(1, True, False), (2, False, True)]
    assert days[0].description == "Bangkok - Tokyo"

    assert tour.price_adult == 29900
    assert tour.max_price == 32900
    assert tour.discount_adult == 3000
    assert tour.total_departures == 2
    assert tour.available_seats == 20
    assert tour.next_departure_date == date(2099, 3, 1)
    assert tour.has_promotion is True
    assert tour.promotion_type == "normal"
    assert tour.max_discount_percent == pytest.approx(10.03)
    assert tour.hotel_star == 4


@pytest.mark.asyncio
async def test_process_tour_updates_existing(test_session, service, sample_transformed_tour):
    """Test a second sync updates the same tour and periods."""
    first = await service.process_tour(sample_transformed_tour)
    await test_session.commit()

    sample_transformed_tour["tour"]["title"] = "Tokyo Fuji Hakone 5 Days"
    sample_transformed_tour["departure"][0]["booked"] = 25
    sample_transformed_tour["departure"][0]["status"] = "Full"
    second = await service.process_tour(sample_transformed_tour)
    await test_session.commit()

    assert second["action"] == "updated"
    assert second["tour"].id == first["tour"].id
    assert second["periods_updated"] == 2
    assert second["periods_created"] == 0
    assert second["tour"].title == "Tokyo Fuji Hakone 5 Days"

    periods = await periods_of(test_session, second["tour"])
    assert len(periods) == 2
    assert (periods[0].available, periods[0].status) == (5, "sold_out")
    assert second["tour"].total_departures == 1


@pytest.mark.asyncio
async def test_protected_tours_are_skipped(test_session, service, api_config, sample_transformed_tour):
    """Test manual and sync-locked tours are never overwritten."""
    locked = Tour(
        tour_code="NT209901001",
        title="Edited by hand",
        wholesaler_id=api_config.wholesaler_id,
        wholesaler_tour_code="ZG-JP-001",
        data_source="api",
        sync_locked=True,
    )
    test_session.add(locked)
    await test_session.commit()

    result = await service.process_tour(sample_transformed_tour)

    assert result["action"] == "skipped"
    assert locked.title == "Edited by hand"
    assert await periods_of(test_session, locked) == []


@pytest.mark.asyncio
async def test_untitled_record_is_skipped(service):
    result = await service.process_tour({"tour": {"duration_days": 3}})
    assert result["action"] == "skipped"
    assert result["tour"] is None


@pytest.mark.asyncio
async def test_long_titles_are_truncated(service):
    result = await service.process_tour({"tour": {"wholesaler_tour_code": "ZG-LONG", "title": "T" * 300}})
    assert len(result["tour"].title) == 250
    assert result["tour"].title.endswith("...")


@pytest.mark.asyncio
async def test_overflowing_numbers_are_dropped(test_session, service):
    """Test out-of-range numbers leave their field unset instead of failing the tour."""
    result = await service.process_tour({
        "tour": {"wholesaler_tour_code": "ZG-INF", "title": "Endless", "duration_days": "1e400"},
        "departure": [{
            "external_id": "D1",
            "start_date": "2099-03-01",
            "capacity": "1e400",
            "price_adult": float("inf"),
            "discount_adult": 500,
        }],
        "itinerary": [{"day_number": 1, "title": "Arrival", "hotel_star": "1e400"}],
    })

    assert result["action"] == "created"
    period = (await periods_of(test_session, result["tour"]))[0]
    offer = (await test_session.execute(select(Offer).where(Offer.period_id == period.id))).scalar_one()
    assert offer.price_adult is None
    assert offer.discount_adult == 500
    itinerary = (await test_session.execute(select(TourItinerary))).scalar_one()
    assert itinerary.hotel_star is None


@pytest.mark.asyncio
async def test_past_period_handling(test_session, api_config):
    """Test past departures are skipped, closed or kept according to the config."""
    tour = Tour(tour_code="NT209901001", title="x", wholesaler_id=api_config.wholesaler_id, data_source="api")
    test_session.add(tour)
    await test_session.flush()
    past = {"external_id": "OLD", "start_date": "2098-12-01", "capacity": 10}

    skip = TourSyncService(test_session, api_config, today=TODAY)
    assert await skip.process_period(tour, past) == "skipped"

    api_config.past_period_handling = "close"
    closer = TourSyncService(test_session, api_config, today=TODAY)
    assert await closer.process_period(tour, past) == "created"
    period = (await periods_of(test_session, tour))[0]
    assert (period.status, period.sale_status) == ("closed", "closed")

    api_config.past_period_handling = "keep"
    keeper = TourSyncService(test_session, api_config, today=TODAY)
    assert await keeper.process_period(tour, {**past, "status": "open"}) == "updated"
    assert period.status == "open"


@pytest.mark.asyncio
async def test_period_aliases_and_bad_dates(test_session, api_config, sync_log):
    """Test departure_date aliases work and unparseable dates are logged."""
    tour = Tour(tour_code="NT209901001", title="x", wholesaler_id=api_config.wholesaler_id, data_source="api")
    test_session.add(tour)
    await test_session.flush()
    service = TourSyncService(test_session, api_config, SyncErrorHandler(test_session, sync_log), today=TODAY)

    assert await service.process_period(
        tour, {"departure_date": "15/02/2099", "return_date": "19/02/2099", "price": "25,900"}
    ) == "created"
    period = (await periods_of(test_session, tour))[0]
    assert (period.start_date, period.end_date) == (date(2099, 2, 15), date(2099, 2, 19))
    offer = (await test_session.execute(select(Offer).where(Offer.period_id == period.id))).scalar_one()
    assert offer.price_adult == 25900

    assert await service.process_period(tour, {"start_date": "sometime", "external_id": "BAD"}) == "skipped"
    error = (await test_session.execute(select(SyncErrorLog))).scalar_one()
    assert error.error_type == "validation"
    assert error.entity_code == "BAD"
    assert error.field_name == "start_date"

"""Unit tests for manual period maintenance."""

from datetime import date

import pytest
import pytest_asyncio

from toursync.core.exceptions import NotFoundError, ValidationError
from toursync.models.tour import Tour
from toursync.schemas.period import CreatePeriodRequest, OfferData, UpdatePeriodRequest
from toursync.services.period_service import PeriodService


@pytest_asyncio.fixture
async def tour(test_session):
    record = Tour(tour_code="NT209901001", title="Chiang Mai", data_source="manual")
    test_session.add(record)
    await test_session.commit()
    return record


@pytest.mark.asyncio
async def test_create_period_derives_seats_and_aggregates(test_session, tour):
    """Test a new period gets its code, free seats and updates the tour."""
    service = PeriodService(test_session)

    period = await service.create_period(tour.id, CreatePeriodRequest(
        start_date=date(2099, 5, 1),
        end_date=date(2099, 5, 4),
        capacity=25,
        booked=5,
        offer=OfferData(price_adult=9900, discount_adult=1000),
    ))

    assert period.available == 20
    assert period.period_code == "P990501"
    assert period.offer.currency == "THB"
    assert period.offer.net_price_adult == 8900
    assert tour.price_adult == 9900
    assert tour.total_departures == 1
    assert tour.available_seats == 20


@pytest.mark.asyncio
async def test_create_period_full_is_sold_out(test_session, tour):
    service = PeriodService(test_session)

    period = await service.create_period(tour.id, CreatePeriodRequest(
        start_date=date(2099, 5, 1), end_date=date(2099, 5, 4), capacity=10, booked=10,
    ))

    assert period.available == 0
    assert period.status == "sold_out"


@pytest.mark.asyncio
async def test_create_period_unknown_tour(test_session):
    with pytest.raises(NotFoundError):
        await PeriodService(test_session).create_period(
            404, CreatePeriodRequest(start_date=date(2099, 5, 1), end_date=date(2099, 5, 1))
        )


@pytest.mark.asyncio
async def test_update_period(test_session, tour):
    """Test booking changes recompute seats and offers are patched in place."""
    service = PeriodService(test_session)
    period = await service.create_period(tour.id, CreatePeriodRequest(
        start_date=date(2099, 5, 1), end_date=date(2099, 5, 4), capacity=20,
        offer=OfferData(price_adult=9900),
    ))

    updated = await service.update_period(period.id, UpdatePeriodRequest(
        booked=8, offer=OfferData(discount_adult=500),
    ))

    assert updated.available == 12
    assert updated.offer.price_adult == 9900
    assert updated.offer.discount_adult == 500
    assert tour.discount_adult == 500

    with pytest.raises(ValidationError):
        await service.update_period(period.id, UpdatePeriodRequest(end_date=date(2099, 4, 1)))


@pytest.mark.asyncio
async def test_list_and_delete_periods(test_session, tour):
    service = PeriodService(test_session)
    for month in (7, 5, 6):
        await service.create_period(tour.id, CreatePeriodRequest(
            start_date=date(2099, month, 1), end_date=date(2099, month, 3), capacity=10,
        ))

    periods, total = await service.list_periods(tour_id=tour.id, date_from=date(2099, 6, 1))
    assert total == 2
    assert [p.start_date.month for p in periods] == [6, 7]

    await service.delete_period(periods[0].id)

    _, total = await service.list_periods(tour_id=tour.id)
    assert total == 2
    assert tour.total_departures == 2
    with pytest.raises(NotFoundError):
        await service.get_period_or_raise(periods[0].id)

"""Unit tests for tour service."""

from datetime import date

import pytest
from sqlalchemy import select

from toursync.core.exceptions import ConflictError, NotFoundError
from toursync.models.period import Offer, Period
from toursync.models.tour import Tour
from toursync.schemas.tour import CreateTourRequest, TourFilters, UpdateTourRequest
from toursync.services.tour_service import TourService


@pytest.mark.asyncio
async def test_create_tour(test_session):
    """Test creating a manual tour generates its code and nights."""
    service = TourService(test_session)

    tour = await service.create_tour(CreateTourRequest(title="Hokkaido Snow", duration_days=6))

    assert tour.id is not None
    assert tour.tour_code.startswith("NT")
    assert tour.data_source == "manual"
    assert tour.status == "draft"
    assert tour.duration_nights == 5
    assert tour.is_sync_protected is True


@pytest.mark.asyncio
async def test_create_tour_duplicate_code(test_session):
    """Test creating a tour with a taken code raises error."""
    service = TourService(test_session)
    await service.create_tour(CreateTourRequest(title="First", tour_code="NT209901001"))

    with pytest.raises(ConflictError):
        await service.create_tour(CreateTourRequest(title="Second", tour_code="NT209901001"))


@pytest.mark.asyncio
async def test_get_tour_by_id_not_found(test_session):
    service = TourService(test_session)

    assert await service.get_tour_by_id(99999) is None
    with pytest.raises(NotFoundError):
        await service.get_tour_by_id_or_raise(99999)


@pytest.mark.asyncio
async def test_list_tours_filters_and_pages(test_session, wholesaler):
    """Test search, filters and paging."""
    service = TourService(test_session)
    for index in range(3):
        await service.create_tour(CreateTourRequest(title=f"Osaka Trip {index}", status="active"))
    await service.create_tour(CreateTourRequest(title="Seoul Autumn", wholesaler_id=wholesaler.id))

    tours, total = await service.list_tours(TourFilters(search="osaka", per_page=2))
    assert total == 3
    assert len(tours) == 2

    tours, total = await service.list_tours(TourFilters(search="osaka", per_page=2, page=2))
    assert total == 3
    assert len(tours) == 1

    tours, total = await service.list_tours(TourFilters(wholesaler_id=wholesaler.id))
    assert [t.title for t in tours] == ["Seoul Autumn"]

    _, total = await service.list_tours(TourFilters(status="active", data_source="manual"))
    assert total == 3


@pytest.mark.asyncio
async def test_update_tour_applies_only_sent_fields(test_session):
    service = TourService(test_session)
    tour = await service.create_tour(CreateTourRequest(title="Taipei", duration_days=4))

    updated = await service.update_tour(tour.id, UpdateTourRequest(status="active"))

    assert updated.status == "active"
    assert updated.title == "Taipei"
    assert updated.duration_days == 4


@pytest.mark.asyncio
async def test_delete_tour_removes_periods(test_session):
    """Test deleting a tour deletes its periods and offers."""
    service = TourService(test_session)
    tour = await service.create_tour(CreateTourRequest(title="Hanoi"))
    period = Period(tour_id=tour.id, start_date=date(2099, 5, 1), end_date=date(2099, 5, 4))
    period.offer = Offer(price_adult=15900, currency="THB")
    test_session.add(period)
    await test_session.commit()

    await service.delete_tour(tour.id)

    assert await service.get_tour_by_id(tour.id) is None
    assert (await test_session.execute(select(Period))).first() is None
    assert (await test_session.execute(select(Offer))).first() is None


@pytest.mark.asyncio
async def test_recalculate_and_sync_lock(test_session):
    service = TourService(test_session)
    tour = Tour(tour_code="NT209901001", title="Bali", data_source="api")
    test_session.add(tour)
    await test_session.flush()
    period = Period(tour_id=tour.id, start_date=date(2099, 5, 1), end_date=date(2099, 5, 4), capacity=10)
    period.offer = Offer(price_adult=12900, currency="THB")
    test_session.add(period)
    await test_session.commit()

    recalculated = await service.recalculate(tour.id, today=date(2099, 1, 1))
    assert recalculated.price_adult == 12900
    assert recalculated.total_departures == 1

    locked = await service.set_sync_lock(tour.id, True)
    assert locked.sync_locked is True
    assert locked.is_sync_protected is True

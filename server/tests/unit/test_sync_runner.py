"""Unit tests for a complete wholesaler tour sync."""

from datetime import date, datetime, timedelta

import httpx
import pytest
from sqlalchemy import select

from toursync.core.config import settings
from toursync.core.exceptions import SyncError, SyncInProgressError, SyncLockLostError
from toursync.core.locks import CacheLockService, sync_lock_key
from toursync.models.mapping import WholesalerFieldMapping
from toursync.models.period import Period
from toursync.models.sync import SyncCursor, SyncErrorLog
from toursync.models.tour import Tour
from toursync.models.wholesaler import Wholesaler
from toursync.services.adapters import GenericRestAdapter
from toursync.services.sync.progress_tracker import SyncProgressTracker
from toursync.services.sync.sync_runner import SyncToursRunner

TODAY = date(2099, 1, 1)


async def no_sleep(seconds):
    pass


def mock_adapter(config, handler):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return GenericRestAdapter(config, client=client, sleep=no_sleep)


async def add_mappings(session, wholesaler_id, *rows):
    for sort_order, (section, our_field, path) in enumerate(rows):
        session.add(WholesalerFieldMapping(
            wholesaler_id=wholesaler_id,
            section_name=section,
            our_field=our_field,
            their_field_path=path,
            sort_order=sort_order,
        ))
    await session.commit()


@pytest.mark.asyncio
async def test_manual_sync_with_transformed_data(test_session, wholesaler, api_config, sample_transformed_tour):
    """Test pre-transformed records are stored and the run is logged."""
    runner = SyncToursRunner(
        test_session, wholesaler.id, transformed_data=[sample_transformed_tour], today=TODAY
    )
    sync_log = await runner.run()

    assert sync_log.status == "completed"
    assert sync_log.sync_type == "manual"
    assert (sync_log.tours_received, sync_log.tours_created, sync_log.periods_created) == (1, 1, 2)
    assert sync_log.progress_percent == 100
    assert sync_log.completed_at is not None
    assert runner.synced_codes == ["ZG-JP-001"]
    assert api_config.last_sync_at == sync_log.completed_at
    assert not await CacheLockService(test_session).is_locked(sync_lock_key(wholesaler.id))

    tour = (await test_session.execute(select(Tour))).scalar_one()
    assert tour.total_departures == 2


@pytest.mark.asyncio
async def test_single_dict_and_limit(test_session, wholesaler, api_config, sample_transformed_tour):
    """Test a lone record is accepted and limits cut the batch."""
    single = await SyncToursRunner(test_session, wholesaler.id, transformed_data=sample_transformed_tour).run()
    assert single.tours_received == 1

    batch = {
        "a": {"tour": {"wholesaler_tour_code": "ZG-A", "title": "A"}},
        "b": {"tour": {"wholesaler_tour_code": "ZG-B", "title": "B"}},
        "c": {"tour": {"wholesaler_tour_code": "ZG-C", "title": "C"}},
    }
    limited = await SyncToursRunner(test_session, wholesaler.id, limit=2, transformed_data=batch).run()
    assert limited.tours_received == 2
    assert limited.tours_created == 2


@pytest.mark.asyncio
async def test_explicit_zero_limit_overrides_config(test_session, wholesaler, api_config):
    """Test limit=0 syncs everything even when the integration has a default limit."""
    api_config.sync_limit = 1
    await test_session.commit()
    batch = [{"tour": {"wholesaler_tour_code": f"ZG-{i}", "title": f"Tour {i}"}} for i in range(3)]

    defaulted = await SyncToursRunner(test_session, wholesaler.id, transformed_data=batch).run()
    assert defaulted.tours_received == 1

    unlimited = await SyncToursRunner(test_session, wholesaler.id, limit=0, transformed_data=batch).run()
    assert unlimited.tours_received == 3


@pytest.mark.asyncio
async def test_bad_record_makes_sync_partial(test_session, wholesaler, api_config, sample_transformed_tour):
    """Test one failing record is logged while the rest are stored."""
    broken = {
        "tour": {"wholesaler_tour_code": "ZG-BAD", "title": "Broken"},
        "itinerary": [{"day_number": -1, "title": "Before the trip"}],
    }
    runner = SyncToursRunner(
        test_session, wholesaler.id, transformed_data=[broken, sample_transformed_tour], today=TODAY
    )
    sync_log = await runner.run()

    assert sync_log.status == "partial"
    assert (sync_log.tours_received, sync_log.tours_created, sync_log.tours_failed) == (2, 1, 1)
    assert sync_log.error_summary["total"] == 1
    assert runner.synced_codes == ["ZG-JP-001"]

    error = (await test_session.execute(select(SyncErrorLog))).scalar_one()
    assert error.entity_code == "ZG-BAD"
    assert error.error_type == "database"
    assert error.raw_data["tour"]["title"] == "Broken"

    codes = (await test_session.execute(select(Tour.wholesaler_tour_code))).scalars().all()
    assert codes == ["ZG-JP-001"]


@pytest.mark.asyncio
async def test_locked_wholesaler_raises(test_session, wholesaler, api_config):
    await CacheLockService(test_session).acquire(sync_lock_key(wholesaler.id), 600)

    with pytest.raises(SyncInProgressError):
        await SyncToursRunner(test_session, wholesaler.id, transformed_data=[]).run()


@pytest.mark.asyncio
async def test_long_run_keeps_renewing_its_lock(test_session, wholesaler, api_config, monkeypatch):
    """Test a run lasting several lock lifetimes still shuts out a second sync."""
    key = sync_lock_key(wholesaler.id)
    clock = {"now": datetime(2099, 1, 1, 8, 0, 0)}
    step = timedelta(seconds=settings.sync_lock_ttl_seconds - 1)
    rivals = []
    original = SyncProgressTracker.increment_progress

    async def slow_progress(self, current_item_code=None):
        await original(self, current_item_code)
        clock["now"] += step
        rivals.append(await CacheLockService(self.db).acquire(key, 600, now=clock["now"]))

    monkeypatch.setattr(SyncProgressTracker, "increment_progress", slow_progress)
    batch = [{"tour": {"wholesaler_tour_code": f"ZG-{i}", "title": f"Tour {i}"}} for i in range(3)]
    sync_log = await SyncToursRunner(
        test_session, wholesaler.id, transformed_data=batch, clock=lambda: clock["now"]
    ).run()

    assert sync_log.status == "completed"
    assert sync_log.tours_created == 3
    assert rivals == [None, None, None]


@pytest.mark.asyncio
async def test_run_stops_when_lock_is_taken_over(test_session, wholesaler, api_config, monkeypatch):
    """Test a run whose expired lock went to another owner fails instead of writing on."""
    key = sync_lock_key(wholesaler.id)
    start = datetime(2099, 1, 1, 8, 0, 0)
    expired = start + timedelta(seconds=settings.sync_lock_ttl_seconds + 1)
    rival = {}
    original = SyncProgressTracker.increment_progress

    async def stalled_progress(self, current_item_code=None):
        await original(self, current_item_code)
        if "owner" not in rival:
            rival["owner"] = await CacheLockService(self.db).acquire(key, 600, now=expired)

    monkeypatch.setattr(SyncProgressTracker, "increment_progress", stalled_progress)
    batch = [{"tour": {"wholesaler_tour_code": f"ZG-{i}", "title": f"Tour {i}"}} for i in range(3)]
    runner = SyncToursRunner(test_session, wholesaler.id, transformed_data=batch, clock=lambda: start)

    with pytest.raises(SyncLockLostError):
        await runner.run()

    assert rival["owner"] is not None
    assert runner.sync_log.status == "failed"
    assert runner.sync_log.tours_received == 1
    codes = (await test_session.execute(select(Tour.wholesaler_tour_code))).scalars().all()
    assert codes == ["ZG-0"]
    assert await CacheLockService(test_session).release(key, rival["owner"]) is True


@pytest.mark.asyncio
async def test_wholesaler_without_config(test_session):
    bare = Wholesaler(code="BARE", name="No API")
    test_session.add(bare)
    await test_session.commit()

    assert await SyncToursRunner(test_session, bare.id, transformed_data=[]).run() is None


@pytest.mark.asyncio
async def test_cancelled_sync_stops(test_session, wholesaler, api_config, sample_transformed_tour, monkeypatch):
    """Test a cancel request stops the run before the next record."""

    async def cancelled(self):
        return True

    monkeypatch.setattr(SyncProgressTracker, "is_cancelled", cancelled)
    sync_log = await SyncToursRunner(
        test_session, wholesaler.id, transformed_data=[sample_transformed_tour]
    ).run()

    assert sync_log.status == "cancelled"
    assert sync_log.cancel_reason == "User requested"
    assert sync_log.tours_received == 0
    assert (await test_session.execute(select(Tour))).first() is None


@pytest.mark.asyncio
async def test_fetch_map_and_store(test_session, wholesaler, api_config):
    """Test an incremental sync fetches, maps, stores and saves the cursor."""
    await add_mappings(
        test_session, wholesaler.id,
        ("tour", "wholesaler_tour_code", "code"),
        ("tour", "title", "name"),
        ("tour", "duration_days", "days"),
        ("departure", "external_id", "periods[].id"),
        ("departure", "start_date", "periods[].date"),
        ("departure", "price_adult", "periods[].price"),
    )
    requests = []

    def handler(request):
        requests.append(request)
        return httpx.Response(200, json={
            "data": [
                {"code": "ZG1", "name": "Busan 4 Days", "days": 4,
                 "periods": [{"id": "A", "date": "2099-05-01", "price": 19900}]},
                {"code": "ZG2", "days": 3},
                {"days": 2},
            ],
            "next_cursor": "page-2",
        })

    sync_log = await SyncToursRunner(
        test_session, wholesaler.id, sync_type="incremental",
        adapter=mock_adapter(api_config, handler), today=TODAY,
    ).run()

    assert sync_log.status == "completed"
    assert sync_log.tours_received == 2
    assert sync_log.api_calls_count == 1
    assert requests[0].headers["X-API-Key"] == "secret-key"

    tours = (await test_session.execute(select(Tour).order_by(Tour.wholesaler_tour_code))).scalars().all()
    assert [(t.wholesaler_tour_code, t.title) for t in tours] == [("ZG1", "Busan 4 Days"), ("ZG2", "ZG2")]
    period = (await test_session.execute(select(Period))).scalar_one()
    assert period.external_id == "A"

    cursor = (await test_session.execute(select(SyncCursor))).scalar_one()
    assert cursor.cursor_value == "page-2"
    assert cursor.total_received == 3

    await SyncToursRunner(
        test_session, wholesaler.id, sync_type="incremental",
        adapter=mock_adapter(api_config, handler), today=TODAY,
    ).run()
    assert requests[-1].url.params.get("cursor") == "page-2"


@pytest.mark.asyncio
async def test_fetch_failure_fails_sync(test_session, wholesaler, api_config):
    """Test an unreachable API fails the run and releases the lock."""
    adapter = mock_adapter(api_config, lambda request: httpx.Response(403))

    with pytest.raises(SyncError):
        await SyncToursRunner(test_session, wholesaler.id, sync_type="incremental", adapter=adapter).run()

    assert not await CacheLockService(test_session).is_locked(sync_lock_key(wholesaler.id))


@pytest.mark.asyncio
async def test_two_phase_sync_fetches_periods_per_tour(test_session, wholesaler, api_config):
    """Test two-phase syncs fetch departures from the per-tour endpoint."""
    api_config.sync_mode = "two_phase"
    api_config.sync_method = "ack_callback"
    api_config.auth_credentials = {
        **api_config.auth_credentials,
        "endpoints": {"periods": "/{external_id}/periods"},
    }
    await test_session.commit()
    await add_mappings(
        test_session, wholesaler.id,
        ("tour", "wholesaler_tour_code", "code"),
        ("tour", "external_id", "id"),
        ("tour", "title", "name"),
        ("departure", "external_id", "periods[].PeriodID"),
        ("departure", "start_date", "periods[].Start"),
        ("departure", "price_adult", "periods[].Price"),
    )
    acknowledged = []

    def handler(request):
        path = request.url.path
        if path.endswith("/77/periods"):
            return httpx.Response(200, json={"data": [
                {"PeriodID": "P1", "Start": "2099-05-01", "Price": 19900},
                {"PeriodID": "P2", "Start": "2099-06-01", "Price": 21900},
            ]})
        if path.endswith("/sync/acknowledge"):
            acknowledged.append(request)
            return httpx.Response(200, json={"accepted": True})
        return httpx.Response(200, json={"data": [{"code": "ZG1", "id": "77", "name": "Busan"}]})

    sync_log = await SyncToursRunner(
        test_session, wholesaler.id, sync_type="incremental",
        adapter=mock_adapter(api_config, handler), today=TODAY,
    ).run()

    assert sync_log.status == "completed"
    assert sync_log.periods_received == 2
    assert sync_log.periods_created == 2
    assert sync_log.api_calls_count == 2
    tour = (await test_session.execute(select(Tour))).scalar_one()
    assert tour.total_departures == 2
    assert tour.price_adult == 19900
    assert len(acknowledged) == 1

"""API tests for countries and the popular-countries ranking."""

from datetime import date, timedelta

import pytest

from toursync.models.location import Country
from toursync.models.period import Period
from toursync.models.tour import Tour


async def add_sellable_tour(session, code, country, status="active", seats=10, days_ahead=30, period_status="open"):
    tour = Tour(
        tour_code=code,
        title=code,
        status=status,
        primary_country_id=country.id,
        available_seats=seats,
        data_source="api",
    )
    session.add(tour)
    await session.flush()
    start = date.today() + timedelta(days=days_ahead)
    session.add(Period(tour_id=tour.id, start_date=start, end_date=start, status=period_status))
    await session.commit()
    return tour


@pytest.mark.asyncio
async def test_list_countries(test_client, test_session, reference_data):
    test_session.add(Country(iso2="XX", name_en="Atlantis", slug="atlantis", is_active=False))
    await test_session.commit()

    response = await test_client.get("/api/countries")
    assert response.status_code == 200
    names = [country["name_en"] for country in response.json()["data"]]
    assert names == ["Japan", "South Korea", "Atlantis"]

    response = await test_client.get("/api/countries", params={"search": "jpn"})
    assert [country["iso2"] for country in response.json()["data"]] == ["JP"]

    response = await test_client.get("/api/countries", params={"is_active": "false"})
    assert response.json()["meta"]["total"] == 1


@pytest.mark.asyncio
async def test_popular_countries_rank_sellable_tours(test_client, test_session, reference_data):
    """Test only active tours with seats and an upcoming open period count."""
    japan, korea = reference_data["japan"], reference_data["korea"]
    await add_sellable_tour(test_session, "NT1", japan)
    await add_sellable_tour(test_session, "NT2", japan)
    await add_sellable_tour(test_session, "NT3", korea)
    await add_sellable_tour(test_session, "NT4", korea, status="draft")
    await add_sellable_tour(test_session, "NT5", korea, seats=0)
    await add_sellable_tour(test_session, "NT6", korea, days_ahead=-3)
    await add_sellable_tour(test_session, "NT7", korea, period_status="closed")

    response = await test_client.get("/api/popular-countries")

    assert response.status_code == 200
    ranking = [(country["iso2"], country["tour_count"]) for country in response.json()["data"]]
    assert ranking == [("JP", 2), ("KR", 1)]


@pytest.mark.asyncio
async def test_popular_countries_empty(test_client, reference_data):
    response = await test_client.get("/api/popular-countries")

    assert response.status_code == 200
    assert response.json()["data"] == []

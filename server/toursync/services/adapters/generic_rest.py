"""Adapter for wholesalers exposing a conventional JSON REST API."""

import logging
from datetime import datetime
from typing import Any, Optional

from ...core.exceptions import WholesalerRequestError
from ..mapping.paths import extract_value
from .base import BaseAdapter
from .results import ItinerariesResult, PeriodsResult, SyncResult

logger = logging.getLogger(__name__)

DEFAULT_ENDPOINTS = {
    "tours": "",
    "tour_detail": "/{code}",
    "ack": "/sync/acknowledge",
    "health": "/health",
}


def _first_list(data: Any, keys: tuple[str, ...]) -> list[Any]:
    if isinstance(data, list):
        return data
    if isinstance(data, dict):
        for key in keys:
            value = data.get(key)
            if isinstance(value, list):
                return value
    return []


class GenericRestAdapter(BaseAdapter):

    def __init__(self, config, **kwargs):
        super().__init__(config, **kwargs)
        self.endpoints = {**DEFAULT_ENDPOINTS, **config.endpoints}

    @property
    def health_endpoint(self) -> str:
        return self.endpoints["health"]

    async def fetch_tours(self, cursor: Optional[str] = None) -> SyncResult:
        params = {"cursor": cursor} if cursor else None
        try:
            response = await self.request("GET", self.endpoints["tours"], params, action="fetch_tours")
        except WholesalerRequestError as e:
            logger.error(
                "Failed to fetch tours",
                extra={"wholesaler_id": self.wholesaler_id, "error": str(e)}
            )
            return SyncResult.failed(str(e), str(e.status_code) if e.status_code else "FETCH_ERROR")

        tours = [t for t in _first_list(response, ("data", "tours", "items")) if isinstance(t, dict)]

        next_cursor = None
        has_more = False
        if isinstance(response, dict):
            next_cursor = (
                response.get("next_cursor")
                or response.get("cursor")
                or extract_value(response, "pagination.next")
            )
            if "has_more" in response:
                has_more = bool(response["has_more"])
            elif "hasMore" in response:
                has_more = bool(response["hasMore"])
            else:
                has_more = next_cursor is not None

        logger.info(
            "Fetched tours page",
            extra={
                "wholesaler_id": self.wholesaler_id,
                "tour_count": len(tours),
                "has_more": has_more,
            }
        )
        return SyncResult.ok(tours, str(next_cursor) if next_cursor is not None else None, has_more)

    async def fetch_tour_detail(self, code: str) -> Optional[dict[str, Any]]:
        template = self.endpoints.get("tour_detail") or self.endpoints.get("periods") or "/{code}"
        endpoint = template.replace("{code}", code).replace("{tour_id}", code).replace("{id}", code)
        try:
            response = await self.request("GET", endpoint, action="fetch_tour_detail")
        except WholesalerRequestError as e:
            logger.warning(
                "Failed to fetch tour detail",
                extra={"wholesaler_id": self.wholesaler_id, "tour_code": code, "error": str(e)}
            )
            return None

        if isinstance(response, dict):
            for key in ("data", "tour", "response"):
                if isinstance(response.get(key), dict):
                    return response[key]
            return response
        return None

    async def fetch_periods(self, endpoint: str) -> PeriodsResult:
        try:
            response = await self.request("GET", endpoint, action="fetch_periods")
        except WholesalerRequestError as e:
            return PeriodsResult.failed(str(e), str(e.status_code) if e.status_code else "FETCH_ERROR")

        raw_data = response.get("data", response) if isinstance(response, dict) else response
        if isinstance(raw_data, list) and len(raw_data) == 1:
            raw_data = raw_data[0]
        if not isinstance(raw_data, dict):
            raw_data = {}

        periods = _first_list(response, ("data", "schedules", "periods", "departures"))
        return PeriodsResult.ok([p for p in periods if isinstance(p, dict)], raw_data)

    async def fetch_itineraries(self, endpoint: str) -> ItinerariesResult:
        try:
            response = await self.request("GET", endpoint, action="fetch_itineraries")
        except WholesalerRequestError as e:
            return ItinerariesResult.failed(str(e), str(e.status_code) if e.status_code else "FETCH_ERROR")

        items = _first_list(response, ("data", "itineraries", "days", "programs"))
        return ItinerariesResult.ok([i for i in items if isinstance(i, dict)])

    async def acknowledge_synced(self, tour_codes: list[str], sync_id: str) -> bool:
        if self.config.sync_method != "ack_callback":
            return True

        payload = {
            "sync_id": sync_id,
            "tour_codes": tour_codes,
            "status": "success",
            "received_at": datetime.utcnow().isoformat(),
        }
        try:
            response = await self.request("POST", self.endpoints["ack"], payload, action="acknowledge")
        except WholesalerRequestError as e:
            logger.error(
                "Failed to acknowledge synced tours",
                extra={"wholesaler_id": self.wholesaler_id, "sync_id": sync_id, "error": str(e)}
            )
            return False

        if isinstance(response, dict):
            return bool(response.get("accepted", response.get("success", True)))
        return True

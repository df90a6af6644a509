"""HTTP plumbing shared by wholesaler adapters: headers, auth, retries, health."""

import asyncio
import base64
import hashlib
import json
import logging
import time
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Awaitable, Callable, Optional

import httpx

from ...core.config import settings
from ...core.exceptions import WholesalerRequestError
from ...core.observability import metrics_collector
from ...models.wholesaler import WholesalerApiConfig
from ..mapping.paths import extract_value
from .results import ItinerariesResult, PeriodsResult, SyncResult

logger = logging.getLogger(__name__)

NO_RETRY_STATUSES = (400, 401, 403, 404, 422)

# (wholesaler_id, credentials digest) -> (token, monotonic expiry)
_oauth_tokens: dict[tuple[int, str], tuple[str, float]] = {}


def clear_oauth_token_cache() -> None:
    _oauth_tokens.clear()


def _credentials_digest(creds: dict[str, Any]) -> str:
    encoded = json.dumps(creds, sort_keys=True, default=str).encode()
    return hashlib.sha256(encoded).hexdigest()


def _header_pairs(data: Any) -> dict[str, str]:
    """Accept ``[{"key", "value"}]`` lists and plain dicts alike."""
    headers: dict[str, str] = {}
    if isinstance(data, list):
        for item in data:
            if isinstance(item, dict) and item.get("key"):
                headers[str(item["key"])] = str(item.get("value") or "")
    elif isinstance(data, dict):
        for key, value in data.items():
            if key and isinstance(value, str):
                headers[key] = value
    return headers


class BaseAdapter(ABC):
    """
    Talks to one wholesaler's API as described by its ``WholesalerApiConfig``.

    Subclasses implement the fetch methods; this class builds URLs and
    headers, applies authentication, retries transient failures with
    exponential backoff and counts calls for the running sync.
    """

    def __init__(
        self,
        config: WholesalerApiConfig,
        client: Optional[httpx.AsyncClient] = None,
        rate_limiter: Any = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.config = config
        self.wholesaler_id = config.wholesaler_id
        self.base_url = (config.api_base_url or "").rstrip("/")
        self.credentials: dict[str, Any] = dict(config.auth_credentials or {})
        self.rate_limiter = rate_limiter
        self._sleep = sleep
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(
                config.request_timeout_seconds or 30,
                connect=config.connect_timeout_seconds or 10,
            )
        )
        self.request_count = 0

    async def close(self) -> None:
        if self._owns_client:
            await self.client.aclose()

    async def __aenter__(self) -> "BaseAdapter":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    # URLs and headers

    def build_url(self, endpoint: Optional[str]) -> str:
        if endpoint and endpoint.startswith(("http://", "https://")):
            return endpoint
        if not endpoint:
            return self.base_url
        return f"{self.base_url}/{endpoint.lstrip('/')}"

    def default_headers(self) -> dict[str, str]:
        return {
            "Accept": "application/json",
            "Content-Type": "application/json",
            "User-Agent": settings.user_agent,
        }

    async def auth_headers(self) -> dict[str, str]:
        auth_type = self.config.auth_type or "none"
        creds = self.credentials

        if auth_type == "api_key":
            header_name = self.config.auth_header_name or "X-API-Key"
            return {header_name: str(creds.get("api_key") or "")}
        if auth_type == "bearer":
            return {"Authorization": f"Bearer {creds.get('token') or ''}"}
        if auth_type == "basic":
            pair = f"{creds.get('username') or ''}:{creds.get('password') or ''}"
            return {"Authorization": "Basic " + base64.b64encode(pair.encode()).decode()}
        if auth_type == "oauth2":
            return await self._oauth2_headers()
        if auth_type == "custom":
            return _header_pairs(creds.get("headers"))
        return {}

    async def _oauth2_headers(self) -> dict[str, str]:
        creds = self.credentials
        token = creds.get("access_token")

        if not token and creds.get("token_url") and (
            creds.get("oauth_fields") or (creds.get("client_id") and creds.get("client_secret"))
        ):
            token = await self._oauth2_token()

        if not token:
            logger.warning(
                "OAuth2 credentials incomplete, sending request unauthenticated",
                extra={"wholesaler_id": self.wholesaler_id}
            )
            return {}

        headers = {"Authorization": f"Bearer {token}"}
        headers.update(_header_pairs(creds.get("api_headers")))
        return headers

    async def _oauth2_token(self) -> Optional[str]:
        cache_key = (self.wholesaler_id, _credentials_digest(self.credentials))
        cached = _oauth_tokens.get(cache_key)
        if cached and cached[1] > time.monotonic():
            return cached[0]

        creds = self.credentials
        fields = creds.get("oauth_fields") or creds.get("oauth_body")
        if isinstance(fields, list) and fields:
            body = {str(f["key"]): f.get("value") or "" for f in fields if isinstance(f, dict) and f.get("key")}
        else:
            body = {
                "grant_type": creds.get("grant_type") or "client_credentials",
                "client_id": creds.get("client_id") or "",
                "client_secret": creds.get("client_secret") or "",
            }
        headers = _header_pairs(creds.get("token_headers") or creds.get("oauth_headers"))

        logger.info(
            "Requesting OAuth2 access token",
            extra={"wholesaler_id": self.wholesaler_id, "body_fields": sorted(body)}
        )
        try:
            response = await self.client.post(creds["token_url"], json=body, headers=headers)
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error(
                "OAuth2 token request failed",
                extra={"wholesaler_id": self.wholesaler_id, "error": str(e)}
            )
            return None

        token = extract_value(data, creds.get("response_token_field") or "access_token")
        if not token:
            logger.error("OAuth2 token missing from response", extra={"wholesaler_id": self.wholesaler_id})
            return None

        expires_in = int(data.get("expires_in") or data.get("expiresIn") or 3600)
        _oauth_tokens[cache_key] = (str(token), time.monotonic() + max(60, expires_in - 300))
        return str(token)

    # Requests

    async def request(
        self,
        method: str,
        endpoint: Optional[str],
        params: Optional[dict[str, Any]] = None,
        action: str = "request",
    ) -> Any:
        """
        Send a request and return the decoded JSON body.

        GET sends ``params`` as the query string, other methods as a JSON body.
        Client errors that cannot succeed on retry (400, 401, 403, 404, 422)
        fail immediately; anything else is retried ``retry_attempts`` times.

        Raises:
            WholesalerRequestError: When every attempt failed
        """
        url = self.build_url(endpoint)
        attempts = max(1, self.config.retry_attempts or 1)
        headers = self.default_headers()
        headers.update(await self.auth_headers())
        last_error: Optional[WholesalerRequestError] = None

        for attempt in range(1, attempts + 1):
            if self.rate_limiter is not None:
                await self.rate_limiter.throttle()

            self.request_count += 1
            started = time.monotonic()
            try:
                if method.upper() == "GET":
                    response = await self.client.request(method, url, params=params or None, headers=headers)
                else:
                    response = await self.client.request(method, url, json=params or {}, headers=headers)
            except httpx.HTTPError as e:
                last_error = WholesalerRequestError(f"{action} failed: {e}", url=url)
                self._record_failure(action, None)
            else:
                if response.is_success:
                    self._record_success(action, response.status_code, started)
                    try:
                        return response.json()
                    except ValueError:
                        raise WholesalerRequestError(
                            f"{action} returned invalid JSON", status_code=response.status_code, url=url
                        )

                last_error = WholesalerRequestError(
                    f"{action} failed with HTTP {response.status_code}: {response.text[:200]}",
                    status_code=response.status_code,
                    url=url,
                )
                self._record_failure(action, response.status_code)
                if response.status_code in NO_RETRY_STATUSES:
                    raise last_error

            if attempt < attempts:
                delay = min(60, 2 ** attempt)
                logger.warning(
                    "Wholesaler request failed, retrying",
                    extra={
                        "wholesaler_id": self.wholesaler_id,
                        "action": action,
                        "attempt": attempt,
                        "delay_seconds": delay,
                        "error": str(last_error),
                    }
                )
                await self._sleep(delay)

        raise last_error

    def _record_success(self, action: str, status_code: int, started: float) -> None:
        if self.rate_limiter is not None:
            self.rate_limiter.record_success()
        metrics_collector.record_api_request(self.wholesaler_id, action, "success")
        logger.debug(
            "Wholesaler request succeeded",
            extra={
                "wholesaler_id": self.wholesaler_id,
                "action": action,
                "status_code": status_code,
                "duration_ms": round((time.monotonic() - started) * 1000, 2),
            }
        )

    def _record_failure(self, action: str, status_code: Optional[int]) -> None:
        if self.rate_limiter is not None:
            if status_code == 429:
                self.rate_limiter.record_rate_limit_hit()
            else:
                self.rate_limiter.record_error()
        metrics_collector.record_api_request(self.wholesaler_id, action, "error")

    async def health_check(self) -> dict[str, Any]:
        """Call the health endpoint and store the outcome on the config row."""
        started = time.monotonic()
        try:
            await self.request("GET", self.health_endpoint, action="health_check")
            healthy, error = True, None
        except WholesalerRequestError as e:
            healthy, error = False, str(e)

        self.config.last_health_check_at = datetime.utcnow()
        self.config.last_health_check_status = healthy
        return {
            "healthy": healthy,
            "error": error,
            "response_time_ms": round((time.monotonic() - started) * 1000, 2),
        }

    @property
    def health_endpoint(self) -> str:
        return "/health"

    # Operations every adapter provides

    @abstractmethod
    async def fetch_tours(self, cursor: Optional[str] = None) -> SyncResult:
        """Fetch one page of tours."""

    @abstractmethod
    async def fetch_tour_detail(self, code: str) -> Optional[dict[str, Any]]:
        """Fetch a single tour by code."""

    @abstractmethod
    async def fetch_periods(self, endpoint: str) -> PeriodsResult:
        """Fetch the departures of one tour (two-phase sync)."""

    @abstractmethod
    async def fetch_itineraries(self, endpoint: str) -> ItinerariesResult:
        """Fetch the day-by-day programme of one tour (two-phase sync)."""

    @abstractmethod
    async def acknowledge_synced(self, tour_codes: list[str], sync_id: str) -> bool:
        """Tell the wholesaler which tours were received."""

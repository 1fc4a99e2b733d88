"""
Remote data gateway for the UPS monitoring backend.

``UPSApiClient.call`` is the single place where HTTP requests are issued:
it always sends ``Content-Type: application/json``, decodes the JSON body
and raises ``RequestFailure`` for any non-2xx response. It never retries.

The typed endpoint methods validate each response envelope against the
models in ``upswatch.models`` and raise ``PayloadError`` when the backend
sends something that does not match.
"""
import logging
import time
from typing import Any, Dict, Iterable, List, Mapping, Optional, Type, TypeVar
from urllib.parse import quote

import httpx
from pydantic import BaseModel, ValidationError

from ..config import Settings
from ..models import (
    AlertCountList,
    AlertList,
    DashboardStats,
    DevicePage,
    EventList,
    HealthStatus,
    LocationList,
    PredictionList,
    ReportRows,
    StatusList,
    StatusSnapshot,
    UPSDevice,
)

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

JSON_HEADERS = {"Content-Type": "application/json"}


class GatewayError(Exception):
    """Base exception for gateway errors."""
    pass


class RequestFailure(GatewayError):
    """The backend answered with a non-2xx status."""

    def __init__(self, status: int, status_text: str, detail: Optional[str] = None, endpoint: str = ""):
        self.status = status
        self.status_text = status_text
        self.detail = detail
        self.endpoint = endpoint
        message = f"API call failed: {status} {status_text}"
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message)


class TransportFailure(GatewayError):
    """The request never produced an HTTP response (connect error, reset, timeout)."""
    pass


class PayloadError(GatewayError):
    """A 2xx response whose body does not match the expected schema."""

    def __init__(self, endpoint: str, message: str):
        self.endpoint = endpoint
        super().__init__(f"Malformed payload from {endpoint}: {message}")


def build_params(params: Optional[Mapping[str, Any]]) -> Dict[str, str]:
    """
    Normalize query parameters.

    ``None``, empty strings, empty lists and zero paging values are dropped;
    lists are joined with commas.
    """
    if not params:
        return {}
    cleaned: Dict[str, str] = {}
    for key, value in params.items():
        if value is None or value == "" or value == []:
            continue
        if key in ("limit", "offset") and not value:
            continue
        if isinstance(value, (list, tuple)):
            cleaned[key] = ",".join(str(v) for v in value)
        else:
            cleaned[key] = str(value)
    return cleaned


class UPSApiClient:
    """
    An asynchronous client for the UPS monitoring REST API.
    """

    def __init__(
        self,
        base_url: str,
        *,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize the API client.

        Args:
            base_url: The backend base URL, e.g. ``http://localhost:10000/api``.
            timeout: Per-request timeout in seconds. ``None`` disables it.
            transport: Optional httpx transport, used by tests.
        """
        self.base_url = base_url.rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers=JSON_HEADERS,
            timeout=timeout,
            transport=transport,
        )
        logger.info("Initialized UPS API client base_url=%s timeout=%s", self.base_url, timeout)

    @classmethod
    def from_settings(cls, settings: Settings) -> "UPSApiClient":
        return cls(settings.API_BASE_URL, timeout=settings.HTTP_TIMEOUT)

    async def __aenter__(self) -> "UPSApiClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def close(self) -> None:
        """Closes the underlying httpx client."""
        if not self._client.is_closed:
            logger.debug("Closing UPS API client")
            await self._client.aclose()

    async def call(
        self,
        endpoint: str,
        *,
        method: str = "GET",
        params: Optional[Mapping[str, Any]] = None,
        json: Any = None,
        headers: Optional[Mapping[str, str]] = None,
    ) -> Any:
        """
        Issue a request and return the decoded JSON body.

        Args:
            endpoint: Path relative to the base URL, e.g. ``/ups/U1``.
            method: HTTP method.
            params: Query parameters, normalized by ``build_params``.
            json: JSON body.
            headers: Extra headers merged over the JSON content type.

        Raises:
            RequestFailure: The response status was not 2xx.
            TransportFailure: No response was received.
            PayloadError: The body was not valid JSON.
        """
        query = build_params(params)
        start_time = time.monotonic()
        try:
            response = await self._client.request(
                method,
                endpoint,
                params=query or None,
                json=json,
                headers=headers,
            )
        except httpx.RequestError as e:
            latency_ms = int((time.monotonic() - start_time) * 1000)
            logger.warning("HTTP %s %s failed in %dms: %s", method, endpoint, latency_ms, e)
            raise TransportFailure(f"HTTP request failed: {e.__class__.__name__}: {e}") from e

        latency_ms = int((time.monotonic() - start_time) * 1000)
        if not response.is_success:
            logger.warning(
                "HTTP %s %s -> %s in %dms (HTTP error)",
                method,
                endpoint,
                response.status_code,
                latency_ms,
            )
            raise RequestFailure(
                response.status_code,
                response.reason_phrase,
                detail=_error_detail(response),
                endpoint=endpoint,
            )

        logger.debug("HTTP %s %s -> %s in %dms", method, endpoint, response.status_code, latency_ms)
        try:
            return response.json()
        except ValueError as e:
            raise PayloadError(endpoint, "response body is not JSON") from e

    async def _get_model(
        self,
        model: Type[ModelT],
        endpoint: str,
        *,
        method: str = "GET",
        params: Optional[Mapping[str, Any]] = None,
        json: Any = None,
    ) -> ModelT:
        data = await self.call(endpoint, method=method, params=params, json=json)
        try:
            return model.model_validate(data)
        except ValidationError as e:
            logger.warning("Rejected payload from %s: %d validation errors", endpoint, e.error_count())
            raise PayloadError(endpoint, str(e)) from e

    # Health / dashboard

    async def health(self) -> HealthStatus:
        return await self._get_model(HealthStatus, "/health")

    async def dashboard_stats(self) -> DashboardStats:
        return await self._get_model(DashboardStats, "/dashboard/stats")

    # Devices

    async def list_ups(
        self,
        *,
        status: Optional[str] = None,
        location: Optional[str] = None,
        search: Optional[str] = None,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
    ) -> DevicePage:
        params = {"status": status, "location": location, "search": search, "limit": limit, "offset": offset}
        return await self._get_model(DevicePage, "/ups", params=params)

    async def get_ups(self, ups_id: str) -> UPSDevice:
        return await self._get_model(UPSDevice, f"/ups/{quote(ups_id, safe='')}")

    async def get_ups_status(self, ups_id: str) -> StatusSnapshot:
        return await self._get_model(StatusSnapshot, f"/ups/{quote(ups_id, safe='')}/status")

    async def get_ups_events(
        self,
        ups_id: str,
        *,
        event_type: Optional[str] = None,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
    ) -> EventList:
        params = {
            "event_type": event_type,
            "start_date": start_date,
            "end_date": end_date,
            "limit": limit,
            "offset": offset,
        }
        return await self._get_model(EventList, f"/ups/{quote(ups_id, safe='')}/events", params=params)

    async def get_bulk_status(self, ups_ids: Iterable[str]) -> StatusList:
        return await self._get_model(StatusList, "/ups/status/bulk", params={"ids": list(ups_ids)})

    async def create_ups(self, payload: Dict[str, Any]) -> UPSDevice:
        """
        Create a device.

        A ``{detail}`` body on 4xx/5xx is carried on ``RequestFailure.detail``.
        """
        return await self._get_model(UPSDevice, "/ups", method="POST", json=payload)

    # Predictions / alerts

    async def list_predictions(
        self,
        *,
        ups_id: Optional[str] = None,
        risk_level: Optional[str] = None,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
    ) -> PredictionList:
        params = {"ups_id": ups_id, "risk_level": risk_level, "limit": limit, "offset": offset}
        return await self._get_model(PredictionList, "/predictions", params=params)

    async def list_alerts(
        self,
        *,
        severity: Optional[str] = None,
        status: Optional[str] = None,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
    ) -> AlertList:
        params = {"severity": severity, "status": status, "limit": limit, "offset": offset}
        return await self._get_model(AlertList, "/alerts", params=params)

    async def alert_counts(self) -> AlertCountList:
        return await self._get_model(AlertCountList, "/alerts/count")

    # Reports / reference data

    async def performance_report(
        self,
        *,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
        ups_ids: Optional[List[str]] = None,
    ) -> ReportRows:
        params = {"start_date": start_date, "end_date": end_date, "ups_ids": ups_ids}
        return await self._get_model(ReportRows, "/reports/ups-performance", params=params)

    async def locations(self) -> LocationList:
        return await self._get_model(LocationList, "/locations")


def _error_detail(response: httpx.Response) -> Optional[str]:
    try:
        body = response.json()
    except ValueError:
        return None
    if isinstance(body, dict) and body.get("detail"):
        detail = body["detail"]
        return detail if isinstance(detail, str) else str(detail)
    return None

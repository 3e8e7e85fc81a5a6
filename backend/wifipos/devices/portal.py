# Overview: HTTP client for the ESP32 captive-portal controller's token API.

"""
ESP32 Portal Client

The portal runs on a microcontroller with a few kilobytes of free heap:
- Token listings are paged and the page size must never exceed 20.
- Bulk disables take at most 50 token codes per request.
- Busy controllers answer 503 with Retry-After. Requests are retried a
  bounded number of times, waiting Retry-After x attempt between tries.

Every reply is converted to typed values here; a reply that does not have
the expected shape raises PortalError like any other portal failure.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Optional

import httpx

from wifipos.config import PORTAL_MAX_DISABLE_BATCH, PORTAL_MAX_PAGE_SIZE
from wifipos.time_utils import from_unix_seconds

logger = logging.getLogger(__name__)

MALFORMED_RESPONSE = "Malformed portal response"
DEFAULT_RETRY_AFTER_SECONDS = 5


class PortalError(Exception):
    """Raised when the portal cannot be reached, refuses a request, or replies with garbage."""
    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class PortalValidationError(PortalError):
    """Raised before any request when parameters would overload the device."""
    pass


@dataclass(frozen=True)
class PortalClientDevice:
    mac: str
    online: bool
    current_ip: Optional[str] = None
    hostname: Optional[str] = None
    device_type: Optional[str] = None


@dataclass(frozen=True)
class PortalToken:
    token: str
    status: str
    business_id: Optional[str] = None
    bandwidth_used_down_mb: float = 0.0
    bandwidth_used_up_mb: float = 0.0
    usage_count: int = 0
    first_used_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    devices: list[PortalClientDevice] = field(default_factory=list)


@dataclass(frozen=True)
class TokenListPage:
    tokens: list[PortalToken]
    has_more: bool
    offset: int
    limit: int
    total_count: Optional[int] = None


def parse_online_flag(value) -> bool:
    """Only True, 1 and "true" mean online; "false", "0" and anything else do not."""
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return value == 1
    if isinstance(value, str):
        return value.strip().lower() == "true"
    return False


def _device_from_payload(raw: dict) -> PortalClientDevice:
    return PortalClientDevice(
        mac=str(raw.get("mac") or ""),
        online=parse_online_flag(raw.get("online")),
        current_ip=raw.get("current_ip") or raw.get("currentIp") or raw.get("ip"),
        hostname=raw.get("hostname") or None,
        device_type=raw.get("device_type") or raw.get("deviceType") or None,
    )


def _token_from_payload(raw: dict) -> PortalToken:
    return PortalToken(
        token=str(raw.get("token") or ""),
        status=str(raw.get("status") or ""),
        business_id=raw.get("businessId") or raw.get("business_id"),
        bandwidth_used_down_mb=float(raw.get("bandwidth_used_down") or 0),
        bandwidth_used_up_mb=float(raw.get("bandwidth_used_up") or 0),
        usage_count=int(raw.get("usage_count") or 0),
        first_used_at=from_unix_seconds(raw.get("first_use")),
        expires_at=from_unix_seconds(raw.get("expires_at")),
        devices=[_device_from_payload(d) for d in raw.get("devices") or []],
    )


def _retry_after_seconds(response: httpx.Response) -> int:
    try:
        return max(int(response.headers.get("Retry-After", DEFAULT_RETRY_AFTER_SECONDS)), 0)
    except ValueError:
        return DEFAULT_RETRY_AFTER_SECONDS


class PortalClient:
    def __init__(
        self,
        base_url: str,
        api_key: str,
        *,
        timeout: float = 10.0,
        transport: httpx.BaseTransport | None = None,
        max_attempts: int = 3,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if not base_url:
            raise PortalValidationError("base_url is required")
        if not api_key:
            raise PortalValidationError("api_key is required")
        if not base_url.startswith(("http://", "https://")):
            base_url = f"http://{base_url}"

        self.base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._max_attempts = max(1, max_attempts)
        self._sleep = sleep
        self._client = httpx.Client(base_url=self.base_url, timeout=timeout, transport=transport)

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "PortalClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def list_tokens(
        self,
        *,
        status: str = "active",
        business_id: str | None = None,
        offset: int = 0,
        limit: int = PORTAL_MAX_PAGE_SIZE,
    ) -> TokenListPage:
        """Fetch one page of the portal's token listing."""
        if limit < 1 or limit > PORTAL_MAX_PAGE_SIZE:
            raise PortalValidationError(
                f"limit must be between 1 and {PORTAL_MAX_PAGE_SIZE}, got {limit}"
            )
        if offset < 0:
            raise PortalValidationError("offset must not be negative")

        params = {
            "api_key": self._api_key,
            "status": status,
            "offset": str(offset),
            "limit": str(limit),
        }
        if business_id:
            params["business_id"] = business_id

        data = self._request("GET", "/api/tokens/list", params=params)
        if not data.get("success"):
            raise PortalError(data.get("error") or data.get("message") or "Portal rejected token listing")

        try:
            return TokenListPage(
                tokens=[_token_from_payload(t) for t in data.get("tokens") or []],
                has_more=bool(data.get("has_more")),
                offset=int(data.get("offset", offset)),
                limit=int(data.get("limit", limit)),
                total_count=data.get("total_count") or data.get("count"),
            )
        except (ValueError, TypeError, AttributeError) as exc:
            logger.warning("Portal %s sent an unparseable token listing: %s", self.base_url, exc)
            raise PortalError(MALFORMED_RESPONSE) from exc

    def disable_tokens(self, tokens: list[str]) -> int:
        """
        Disable up to 50 token codes in one request.

        Returns the portal's disabled count. Callers batch larger sets and
        pace the batches themselves.
        """
        codes = [t for t in tokens if t]
        if not codes:
            return 0
        if len(codes) > PORTAL_MAX_DISABLE_BATCH:
            raise PortalValidationError(
                f"at most {PORTAL_MAX_DISABLE_BATCH} tokens per disable request, got {len(codes)}"
            )

        data = self._request(
            "POST",
            "/api/token/disable",
            data={"api_key": self._api_key, "tokens": ",".join(codes)},
        )
        if data.get("success") is False:
            raise PortalError(data.get("error") or data.get("message") or "Portal rejected token disable")
        try:
            return int(data.get("disabled_count", len(codes)))
        except (ValueError, TypeError) as exc:
            raise PortalError(MALFORMED_RESPONSE) from exc

    def check_health(self) -> dict:
        data = self._request("GET", "/api/health", params={"api_key": self._api_key})
        return {
            "online": True,
            "version": data.get("version"),
            "uptime": data.get("uptime"),
        }

    def _request(self, method: str, path: str, *, params: dict | None = None, data: dict | None = None) -> dict:
        for attempt in range(1, self._max_attempts + 1):
            try:
                response = self._client.request(method, path, params=params, data=data)
            except httpx.TransportError as exc:
                logger.warning("Portal %s unreachable: %s", self.base_url, exc)
                raise PortalError("Portal unreachable") from exc

            if response.status_code != 503:
                return self._decode(response)

            wait = _retry_after_seconds(response) * attempt
            if attempt >= self._max_attempts:
                raise PortalError(
                    f"Portal busy after {self._max_attempts} attempts, retry after {wait}s",
                    503,
                )
            logger.info(
                "Portal %s busy, retrying %s %s in %ss (attempt %d/%d)",
                self.base_url, method, path, wait, attempt, self._max_attempts,
            )
            self._sleep(wait)

    def _decode(self, response: httpx.Response) -> dict:
        try:
            data = response.json()
        except ValueError as exc:
            raise PortalError(
                f"Invalid JSON response from portal (HTTP {response.status_code})",
                response.status_code,
            ) from exc

        if not isinstance(data, dict):
            raise PortalError(MALFORMED_RESPONSE, response.status_code)

        if response.status_code >= 400:
            raise PortalError(
                data.get("error") or data.get("message") or f"HTTP {response.status_code}",
                response.status_code,
            )
        return data

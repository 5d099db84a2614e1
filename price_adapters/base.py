"""
Base Price Adapter - Abstract interface for all price providers.

All adapters MUST:
- Answer with a positive price or None, never raise
- Skip the network for unsupported assets, chains or missing keys
- Never retry inside a single call
- Leave ordering and caching of results to the resolver
"""

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from datetime import date, datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Optional

import aiohttp

from core.clock import ClockFactory, ClockProtocol, ensure_utc, start_of_day
from core.config import TtlPolicy
from price_adapters.exceptions import (
    FetchError,
    NormalizationError,
    PriceAdapterError,
    RateLimitError,
)
from price_adapters.models import (
    AdapterHealth,
    AdapterIncident,
    AdapterMetadata,
    AdapterStatus,
    AssetReference,
    PriceOperation,
    PricePoint,
    coerce_price,
)


logger = logging.getLogger(__name__)


class BasePriceAdapter(ABC):
    """
    Abstract base class for all price adapters.

    Each adapter must:
    1. Implement name / metadata()
    2. Implement the _fetch_* hooks it supports, returning a raw
       float or None

    The public current_price / price_at_date / price_at_instant
    wrap those hooks with support checks, error capture, health
    tracking and positive-value filtering.
    """

    # Configuration defaults
    DEFAULT_TIMEOUT = 10.0
    DEGRADED_THRESHOLD = 3
    UNAVAILABLE_THRESHOLD = 5
    MAX_INCIDENTS = 100

    def __init__(
        self,
        api_key: Optional[str] = None,
        timeout: float = DEFAULT_TIMEOUT,
        session: Optional[aiohttp.ClientSession] = None,
        cache: Optional[Any] = None,
        ttl: Optional[TtlPolicy] = None,
        clock: Optional[ClockProtocol] = None,
    ) -> None:
        self._api_key = api_key or None
        self._timeout = timeout
        self._session = session
        self._owns_session = session is None
        self._cache = cache
        self._ttl = ttl or TtlPolicy()
        self._clock = clock

        # Health tracking
        self._health = AdapterHealth(
            status=AdapterStatus.UNKNOWN,
            last_check=self._now(),
        )
        self._last_successful_request: Optional[datetime] = None

        # Incident log
        self._incidents: list[AdapterIncident] = []

    @property
    @abstractmethod
    def name(self) -> str:
        """Unique identifier for this adapter."""
        pass

    @abstractmethod
    def metadata(self) -> AdapterMetadata:
        """
        Return adapter metadata.

        Returns:
            AdapterMetadata with provider capabilities
        """
        pass

    @property
    def has_api_key(self) -> bool:
        return bool(self._api_key)

    def _now(self) -> datetime:
        return (self._clock or ClockFactory.get_clock()).now()

    # ─────────────────────────────────────────────────────────────
    # Provider hooks
    # ─────────────────────────────────────────────────────────────

    async def _fetch_current(self, asset: AssetReference) -> Optional[float]:
        """Latest price, or None."""
        return None

    async def _fetch_at_date(self, asset: AssetReference, day: date) -> Optional[float]:
        """Price for a UTC calendar day, or None."""
        return None

    async def _fetch_at_instant(self, asset: AssetReference, instant: datetime) -> Optional[float]:
        """Price nearest to an instant, or None."""
        return None

    # ─────────────────────────────────────────────────────────────
    # Capability checks
    # ─────────────────────────────────────────────────────────────

    def supports(self, asset: AssetReference, operation: PriceOperation) -> bool:
        """True when this adapter can try to answer without a wasted request."""
        meta = self.metadata()
        if not meta.supports_kind(asset.kind):
            return False
        if not meta.supports_operation(operation):
            return False
        chain = getattr(asset, "chain", None)
        if chain is not None and not meta.supports_chain(chain):
            return False
        if meta.requires_api_key and not self.has_api_key:
            return False
        return True

    # ─────────────────────────────────────────────────────────────
    # Public fail-soft operations
    # ─────────────────────────────────────────────────────────────

    async def current_price(self, asset: AssetReference) -> Optional[PricePoint]:
        """
        Latest price for asset.

        Returns:
            PricePoint or None if unsupported / unavailable
        """
        if not self.supports(asset, PriceOperation.CURRENT):
            return None
        return await self._run(
            PriceOperation.CURRENT,
            asset,
            lambda: self._fetch_current(asset),
            as_of=self._now(),
        )

    async def price_at_date(self, asset: AssetReference, day: date) -> Optional[PricePoint]:
        """
        Price for a UTC calendar day.

        Returns:
            PricePoint or None if unsupported / unavailable
        """
        if isinstance(day, datetime):
            day = ensure_utc(day).date()
        if not self.supports(asset, PriceOperation.AT_DATE):
            return None
        return await self._run(
            PriceOperation.AT_DATE,
            asset,
            lambda: self._fetch_at_date(asset, day),
            as_of=start_of_day(day),
        )

    async def price_at_instant(self, asset: AssetReference, instant: datetime) -> Optional[PricePoint]:
        """
        Price nearest to an instant.

        Returns:
            PricePoint or None if unsupported / unavailable
        """
        instant = ensure_utc(instant)
        if not self.supports(asset, PriceOperation.AT_INSTANT):
            return None
        return await self._run(
            PriceOperation.AT_INSTANT,
            asset,
            lambda: self._fetch_at_instant(asset, instant),
            as_of=instant,
        )

    async def _run(
        self,
        operation: PriceOperation,
        asset: AssetReference,
        fetch: Callable[[], Awaitable[Optional[float]]],
        as_of: datetime,
    ) -> Optional[PricePoint]:
        """Run a provider hook; every failure becomes None."""
        try:
            raw = await fetch()
        except PriceAdapterError as e:
            self._on_error(e, asset, operation)
            return None
        except asyncio.TimeoutError as e:
            self._on_error(
                FetchError("Timeout", adapter_name=self.name, original_error=e),
                asset,
                operation,
            )
            return None
        except Exception as e:
            error = PriceAdapterError(
                message=f"Unexpected error: {e}",
                adapter_name=self.name,
                original_error=e,
            )
            self._on_error(error, asset, operation)
            return None

        self._on_success()

        if raw is None:
            logger.debug(f"[{self.name}] No {operation.value} price for {asset.key}")
            return None

        point = PricePoint.create(raw, as_of=as_of, source=self.name)
        if point is None:
            logger.warning(
                f"[{self.name}] Dropped invalid {operation.value} price {raw!r} for {asset.key}"
            )
        return point

    # ─────────────────────────────────────────────────────────────
    # Auxiliary memoization (slugs, series)
    # ─────────────────────────────────────────────────────────────

    async def _memo_get(self, key: Any) -> Optional[Any]:
        if self._cache is None:
            return None
        return await self._cache.get(key)

    async def _memo_set(self, key: Any, value: Any, ttl_seconds: float) -> None:
        if self._cache is None:
            return
        await self._cache.set(key, value, ttl_seconds)

    # ─────────────────────────────────────────────────────────────
    # HTTP Helpers
    # ─────────────────────────────────────────────────────────────

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create HTTP session."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self._timeout),
                headers=self._get_default_headers(),
            )
            self._owns_session = True
        return self._session

    def _get_default_headers(self) -> dict[str, str]:
        """Get default HTTP headers."""
        return {
            "Accept": "application/json",
            "User-Agent": "SignalPriceEngine/1.0",
        }

    async def _get_json(
        self,
        url: str,
        params: Optional[dict[str, Any]] = None,
        headers: Optional[dict[str, str]] = None,
    ) -> Any:
        """GET a JSON document, mapping failures to adapter exceptions."""
        session = await self._get_session()

        start_time = time.time()
        self._health.requests_made += 1
        try:
            async with session.get(
                url,
                params=params,
                headers=headers,
                timeout=aiohttp.ClientTimeout(total=self._timeout),
            ) as response:
                self._health.latency_ms = (time.time() - start_time) * 1000

                self._parse_rate_limit_headers(response.headers)

                if response.status == 429:
                    retry_after = response.headers.get("Retry-After")
                    raise RateLimitError(
                        message="Rate limit exceeded",
                        adapter_name=self.name,
                        retry_after_seconds=_parse_retry_after(retry_after),
                    )

                if response.status >= 400:
                    body = await response.text()
                    raise FetchError(
                        message=f"HTTP {response.status}",
                        adapter_name=self.name,
                        status_code=response.status,
                        response_body=body[:500],
                        request_url=url,
                    )

                try:
                    return await response.json(content_type=None)
                except ValueError as e:
                    raise NormalizationError(
                        message="Invalid JSON response",
                        adapter_name=self.name,
                        original_error=e,
                    )

        except aiohttp.ClientError as e:
            raise FetchError(
                message=f"Connection error: {e}",
                adapter_name=self.name,
                request_url=url,
                original_error=e,
            )

    def _parse_rate_limit_headers(self, headers: Any) -> None:
        """Parse rate limit info from response headers."""
        remaining = headers.get("X-RateLimit-Remaining") or headers.get("X-Rate-Limit-Remaining")
        if remaining:
            try:
                self._health.rate_limit_remaining = int(remaining)
            except ValueError:
                pass

    @staticmethod
    def _price(raw: Any) -> Optional[float]:
        """Positive float from provider number or string."""
        return coerce_price(raw)

    # ─────────────────────────────────────────────────────────────
    # Health & Error Tracking
    # ─────────────────────────────────────────────────────────────

    def _on_success(self) -> None:
        """Handle successful request."""
        self._last_successful_request = self._now()
        self._health.last_check = self._last_successful_request
        self._health.consecutive_failures = 0

        if self._health.status != AdapterStatus.HEALTHY:
            if self._health.status != AdapterStatus.UNKNOWN:
                logger.info(f"[{self.name}] Recovered to HEALTHY status")
            self._health.status = AdapterStatus.HEALTHY

    def _on_error(
        self,
        error: PriceAdapterError,
        asset: Optional[AssetReference] = None,
        operation: Optional[PriceOperation] = None,
    ) -> None:
        """Handle request error."""
        now = self._now()
        self._health.error_count += 1
        self._health.consecutive_failures += 1
        self._health.last_error = str(error)
        self._health.last_error_time = now
        self._health.last_check = now

        if isinstance(error, RateLimitError):
            self._health.status = AdapterStatus.RATE_LIMITED
            self._health.rate_limit_remaining = 0
            if error.retry_after_seconds:
                self._health.rate_limit_reset = now + timedelta(
                    seconds=error.retry_after_seconds
                )
        elif self._health.consecutive_failures >= self.UNAVAILABLE_THRESHOLD:
            if self._health.status != AdapterStatus.UNAVAILABLE:
                self._health.status = AdapterStatus.UNAVAILABLE
                logger.error(f"[{self.name}] Marked UNAVAILABLE")
        elif self._health.consecutive_failures >= self.DEGRADED_THRESHOLD:
            if self._health.status != AdapterStatus.DEGRADED:
                self._health.status = AdapterStatus.DEGRADED
                logger.warning(f"[{self.name}] Marked DEGRADED")

        self._log_incident(error, asset, operation)

    def _log_incident(
        self,
        error: PriceAdapterError,
        asset: Optional[AssetReference] = None,
        operation: Optional[PriceOperation] = None,
    ) -> None:
        """Log an incident."""
        incident = AdapterIncident(
            adapter_name=self.name,
            incident_type=error.__class__.__name__,
            timestamp=self._now(),
            error_message=str(error),
            asset_key=asset.key if asset is not None else None,
            operation=operation.value if operation is not None else None,
        )

        self._incidents.append(incident)

        if len(self._incidents) > self.MAX_INCIDENTS:
            self._incidents = self._incidents[-self.MAX_INCIDENTS:]

        logger.warning(f"[{self.name}] Incident: {error}")

    def get_health(self) -> AdapterHealth:
        """Get current health status."""
        return self._health

    def get_incidents(self, limit: int = 10) -> list[AdapterIncident]:
        """Get recent incidents."""
        return self._incidents[-limit:]

    def is_healthy(self) -> bool:
        """Check if adapter is healthy."""
        return self._health.status == AdapterStatus.HEALTHY

    def is_usable(self) -> bool:
        """Check if adapter can be used."""
        return self._health.is_usable()

    # ─────────────────────────────────────────────────────────────
    # Lifecycle
    # ─────────────────────────────────────────────────────────────

    async def close(self) -> None:
        """Close resources."""
        if self._owns_session and self._session and not self._session.closed:
            await self._session.close()

    async def __aenter__(self) -> "BasePriceAdapter":
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Async context manager exit."""
        await self.close()

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}(name={self.name}, status={self._health.status.value})>"


def _parse_retry_after(value: Optional[str]) -> int:
    if not value:
        return 60
    try:
        return int(value)
    except ValueError:
        return 60


def from_unix_seconds(seconds: float) -> datetime:
    return datetime.fromtimestamp(seconds, tz=timezone.utc)

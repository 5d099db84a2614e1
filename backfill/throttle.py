"""
Backfill - Provider throttling.

============================================================
RESPONSIBILITY
============================================================
Keeps bulk workflows inside provider rate limits.

- At most max_concurrency requests in flight per provider
- At least min_interval_seconds between request starts
- Applied by wrapping adapters; adapter and resolver contracts
  are untouched

============================================================
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

from core.config import EngineConfig
from price_adapters.models import AdapterMetadata, AssetReference, PriceOperation, PricePoint


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ThrottlePolicy:
    """In-flight bound and start spacing for one provider."""
    max_concurrency: int = 2
    min_interval_seconds: float = 0.5

    def __post_init__(self) -> None:
        if self.max_concurrency < 1:
            raise ValueError("max_concurrency must be >= 1")
        if self.min_interval_seconds < 0:
            raise ValueError("min_interval_seconds must be >= 0")

    def to_dict(self) -> dict[str, Any]:
        return {
            "max_concurrency": self.max_concurrency,
            "min_interval_seconds": self.min_interval_seconds,
        }


DEFAULT_POLICY = ThrottlePolicy(max_concurrency=2, min_interval_seconds=0.5)
COINGECKO_FREE_POLICY = ThrottlePolicy(max_concurrency=1, min_interval_seconds=2.0)
COINGECKO_KEYED_POLICY = ThrottlePolicy(max_concurrency=1, min_interval_seconds=0.2)


def default_policies(config: Optional[EngineConfig] = None) -> dict[str, ThrottlePolicy]:
    """Per-provider policies; unlisted providers use DEFAULT_POLICY."""
    config = config or EngineConfig()
    coingecko = COINGECKO_KEYED_POLICY if config.providers.coingecko_api_key else COINGECKO_FREE_POLICY
    return {"coingecko": coingecko}


class ProviderThrottle:
    """
    Async context manager gating requests to one provider.

    Usage:
        throttle = ProviderThrottle("coingecko", COINGECKO_FREE_POLICY)
        async with throttle:
            await adapter.price_at_instant(asset, instant)
    """

    def __init__(
        self,
        name: str,
        policy: ThrottlePolicy,
        monotonic: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.name = name
        self.policy = policy
        self._monotonic = monotonic
        self._sleep = sleep
        self._semaphore = asyncio.Semaphore(policy.max_concurrency)
        self._lock = asyncio.Lock()
        self._next_slot = 0.0
        self._in_flight = 0
        self._acquired = 0

    @property
    def in_flight(self) -> int:
        return self._in_flight

    @property
    def acquired(self) -> int:
        return self._acquired

    async def acquire(self) -> None:
        """Wait for a free slot and for the spacing window."""
        await self._semaphore.acquire()
        try:
            async with self._lock:
                now = self._monotonic()
                wait = self._next_slot - now
                if wait > 0:
                    logger.debug(f"[{self.name}] Throttle waiting {wait:.2f}s")
                    await self._sleep(wait)
                    now = self._monotonic()
                self._next_slot = max(now, self._next_slot) + self.policy.min_interval_seconds
        except BaseException:
            self._semaphore.release()
            raise
        self._in_flight += 1
        self._acquired += 1

    def release(self) -> None:
        self._in_flight -= 1
        self._semaphore.release()

    async def __aenter__(self) -> "ProviderThrottle":
        await self.acquire()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        self.release()

    def __repr__(self) -> str:
        return f"<ProviderThrottle(name={self.name}, {self.policy.to_dict()})>"


class ThrottledAdapter:
    """
    Adapter wrapper routing every price call through a ProviderThrottle.

    Exposes the adapter interface; everything else is delegated to the
    wrapped adapter.
    """

    def __init__(self, adapter: Any, throttle: ProviderThrottle) -> None:
        self._adapter = adapter
        self._throttle = throttle

    @property
    def name(self) -> str:
        return self._adapter.name

    @property
    def wrapped(self) -> Any:
        return self._adapter

    @property
    def throttle(self) -> ProviderThrottle:
        return self._throttle

    def metadata(self) -> AdapterMetadata:
        return self._adapter.metadata()

    def supports(self, asset: AssetReference, operation: PriceOperation) -> bool:
        return self._adapter.supports(asset, operation)

    async def current_price(self, asset: AssetReference) -> Optional[PricePoint]:
        async with self._throttle:
            return await self._adapter.current_price(asset)

    async def price_at_date(self, asset: AssetReference, day: Any) -> Optional[PricePoint]:
        async with self._throttle:
            return await self._adapter.price_at_date(asset, day)

    async def price_at_instant(self, asset: AssetReference, instant: Any) -> Optional[PricePoint]:
        async with self._throttle:
            return await self._adapter.price_at_instant(asset, instant)

    async def price_series(self, *args: Any, **kwargs: Any) -> Any:
        async with self._throttle:
            return await self._adapter.price_series(*args, **kwargs)

    async def floor_series(self, *args: Any, **kwargs: Any) -> Any:
        async with self._throttle:
            return await self._adapter.floor_series(*args, **kwargs)

    def __getattr__(self, item: str) -> Any:
        return getattr(self._adapter, item)

    def __repr__(self) -> str:
        return f"<ThrottledAdapter({self._adapter!r})>"

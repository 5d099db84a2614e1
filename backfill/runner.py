"""
Backfill - Cache warming runner.

Resolves many (asset, instant / date) queries through a PriceEngine
whose adapters are throttled per provider, so the shared cache is
warm before reports run.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field, replace
from datetime import date, datetime
from typing import Any, Callable, Iterable, Optional

from backfill.throttle import (
    DEFAULT_POLICY,
    ProviderThrottle,
    ThrottledAdapter,
    ThrottlePolicy,
    default_policies,
)
from core.clock import ensure_utc
from price_adapters.models import AssetReference, PricePoint
from price_resolver.engine import PriceEngine


logger = logging.getLogger(__name__)


# Extra time a throttled call may spend queued before it counts as a timeout
DEFAULT_QUEUE_TIMEOUT_SECONDS = 300.0


@dataclass
class BackfillTask:
    """Queries to warm for one asset."""
    asset: AssetReference
    instants: list[datetime] = field(default_factory=list)
    dates: list[date] = field(default_factory=list)
    include_current: bool = False

    @property
    def query_count(self) -> int:
        return len(self.instants) + len(self.dates) + (1 if self.include_current else 0)


@dataclass
class BackfillReport:
    """Outcome of a backfill run."""
    requested: int = 0
    resolved: int = 0
    from_cache: int = 0
    fallbacks: int = 0
    missing: list[str] = field(default_factory=list)
    duration_seconds: float = 0.0

    @property
    def success_rate(self) -> float:
        if self.requested == 0:
            return 0.0
        return self.resolved / self.requested * 100

    def to_dict(self) -> dict[str, Any]:
        return {
            "requested": self.requested,
            "resolved": self.resolved,
            "from_cache": self.from_cache,
            "fallbacks": self.fallbacks,
            "missing": list(self.missing),
            "success_rate": round(self.success_rate, 1),
            "duration_seconds": round(self.duration_seconds, 2),
        }


class BackfillRunner:
    """
    Throttled cache warming.

    Usage:
        runner = BackfillRunner(lambda: PriceEngine.from_config(config))
        report = await runner.run(tasks)
    """

    def __init__(
        self,
        engine_factory: Callable[[], PriceEngine],
        policies: Optional[dict[str, ThrottlePolicy]] = None,
        max_concurrency: Optional[int] = None,
        queue_timeout_seconds: float = DEFAULT_QUEUE_TIMEOUT_SECONDS,
    ) -> None:
        self._engine_factory = engine_factory
        self._policies = policies
        self._max_concurrency = max_concurrency
        self._queue_timeout = queue_timeout_seconds
        self._throttles: dict[str, ProviderThrottle] = {}

    @property
    def throttles(self) -> dict[str, ProviderThrottle]:
        return dict(self._throttles)

    def _throttle_for(self, name: str, policies: dict[str, ThrottlePolicy]) -> ProviderThrottle:
        if name not in self._throttles:
            policy = policies.get(name, DEFAULT_POLICY)
            self._throttles[name] = ProviderThrottle(name, policy)
            logger.info(f"[{name}] Throttle {policy.to_dict()}")
        return self._throttles[name]

    def build_engine(self, base: PriceEngine) -> PriceEngine:
        """Engine sharing base's cache with every adapter throttled."""
        policies = self._policies if self._policies is not None else default_policies(base.config)

        def wrap(adapter: Any) -> ThrottledAdapter:
            return ThrottledAdapter(adapter, self._throttle_for(adapter.name, policies))

        providers = replace(
            base.config.providers,
            adapter_timeout_seconds=base.config.providers.adapter_timeout_seconds + self._queue_timeout,
        )
        config = replace(base.config, providers=providers)
        return PriceEngine(
            base.registry.wrap_all(wrap),
            base.cache,
            config=config,
            clock=base.clock,
        )

    async def run(self, tasks: Iterable[BackfillTask]) -> BackfillReport:
        """Resolve every query of every task; the base engine is closed afterwards."""
        tasks = list(tasks)
        report = BackfillReport(requested=sum(t.query_count for t in tasks))
        started = time.monotonic()

        base = self._engine_factory()
        try:
            engine = self.build_engine(base)
            limit = self._max_concurrency or base.config.max_concurrent_resolutions
            semaphore = asyncio.Semaphore(max(1, limit))

            async def resolve(label: str, query: Callable[[], Any]) -> None:
                async with semaphore:
                    point = await query()
                self._record(report, label, point)

            jobs = []
            for task in tasks:
                asset = task.asset
                for instant in task.instants:
                    instant = ensure_utc(instant)
                    jobs.append(resolve(
                        f"{asset.key}@{instant.isoformat()}",
                        lambda a=asset, i=instant: engine.price_at_instant(a, i),
                    ))
                for day in task.dates:
                    jobs.append(resolve(
                        f"{asset.key}@{day.isoformat()}",
                        lambda a=asset, d=day: engine.price_at_date(a, d),
                    ))
                if task.include_current:
                    jobs.append(resolve(
                        f"{asset.key}@current",
                        lambda a=asset: engine.current_price(a),
                    ))

            logger.info(f"Backfill started: {report.requested} queries over {len(tasks)} assets")
            await asyncio.gather(*jobs)
        finally:
            await base.close()

        report.duration_seconds = time.monotonic() - started
        logger.info(
            f"Backfill finished: {report.resolved}/{report.requested} resolved "
            f"({report.from_cache} cached, {len(report.missing)} missing) "
            f"in {report.duration_seconds:.1f}s"
        )
        return report

    @staticmethod
    def _record(report: BackfillReport, label: str, point: Optional[PricePoint]) -> None:
        if point is None:
            report.missing.append(label)
            logger.debug(f"Backfill miss {label}")
            return
        report.resolved += 1
        if point.cached:
            report.from_cache += 1
        if point.is_fallback:
            report.fallbacks += 1

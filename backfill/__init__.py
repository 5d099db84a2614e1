"""
Backfill Package - Throttled bulk price resolution.

Throttling lives here, outside the adapter and resolver contracts:
adapters are wrapped per provider and the engine runs unchanged.

Modules:
- throttle: ThrottlePolicy, ProviderThrottle, ThrottledAdapter
- runner: BackfillRunner, BackfillTask, BackfillReport
"""

from backfill.runner import BackfillReport, BackfillRunner, BackfillTask
from backfill.throttle import (
    COINGECKO_FREE_POLICY,
    COINGECKO_KEYED_POLICY,
    DEFAULT_POLICY,
    ProviderThrottle,
    ThrottledAdapter,
    ThrottlePolicy,
    default_policies,
)


__all__ = [
    "BackfillReport",
    "BackfillRunner",
    "BackfillTask",
    "COINGECKO_FREE_POLICY",
    "COINGECKO_KEYED_POLICY",
    "DEFAULT_POLICY",
    "ProviderThrottle",
    "ThrottledAdapter",
    "ThrottlePolicy",
    "default_policies",
]

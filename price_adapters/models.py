"""
Price Adapter Models - Asset references, price points and adapter metadata.

An asset is exactly one of three kinds:
- ContractAsset: fungible token by chain + contract address
- CoinAsset: Layer-1 coin by provider id (e.g. "bitcoin")
- NftCollectionAsset: NFT collection by chain + contract address
"""

import math
from dataclasses import dataclass, field, replace
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Optional, Union


class AdapterStatus(Enum):
    """Health status of a price adapter."""
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    RATE_LIMITED = "rate_limited"
    UNAVAILABLE = "unavailable"
    UNKNOWN = "unknown"


class Chain(Enum):
    """Supported blockchain networks."""
    ETHEREUM = "ethereum"
    BASE = "base"
    SOLANA = "solana"
    BSC = "bsc"
    PLASMA = "plasma"
    HYPERLIQUID = "hyperliquid"
    POLYGON = "polygon"
    ARBITRUM = "arbitrum"
    OPTIMISM = "optimism"
    AVALANCHE = "avalanche"

    @classmethod
    def parse(cls, value: Union[str, "Chain"]) -> "Chain":
        """Case-insensitive lookup; raises ValueError for unknown chains."""
        if isinstance(value, cls):
            return value
        normalized = str(value).strip().lower()
        for chain in cls:
            if chain.value == normalized:
                return chain
        raise ValueError(f"Unknown chain: {value!r}")


class AssetKind(Enum):
    """What kind of asset a reference points to."""
    CONTRACT = "contract"
    COIN = "coin"
    NFT = "nft"


class PriceOperation(Enum):
    """Price questions an adapter may answer."""
    CURRENT = "current"
    AT_DATE = "at_date"
    AT_INSTANT = "at_instant"


class HistoricalPrecision(Enum):
    """Finest historical granularity a provider offers."""
    NONE = "none"
    DAY = "day"
    INSTANT = "instant"


# ─────────────────────────────────────────────────────────────
# Asset references
# ─────────────────────────────────────────────────────────────


def _require(value: str, what: str) -> str:
    if value is None or not str(value).strip():
        raise ValueError(f"{what} must not be empty")
    return str(value).strip()


class _KeyedAsset:
    """
    Equality and hashing go through the lowercase key, so
    0xABC and 0xabc are the same asset. The original casing is
    kept on the instance for provider requests.
    """

    kind: AssetKind

    @property
    def key(self) -> str:
        raise NotImplementedError

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, _KeyedAsset):
            return NotImplemented
        return self.kind == other.kind and self.key == other.key

    def __hash__(self) -> int:
        return hash((self.kind, self.key))


@dataclass(frozen=True, eq=False)
class ContractAsset(_KeyedAsset):
    """Fungible token identified by chain + contract address."""
    chain: Chain
    address: str

    kind = AssetKind.CONTRACT

    def __post_init__(self) -> None:
        object.__setattr__(self, "chain", Chain.parse(self.chain))
        object.__setattr__(self, "address", _require(self.address, "address"))

    @property
    def key(self) -> str:
        return f"{self.chain.value}:{self.address.lower()}"

    def __str__(self) -> str:
        return f"token:{self.chain.value}:{self.address}"


@dataclass(frozen=True, eq=False)
class CoinAsset(_KeyedAsset):
    """Layer-1 coin identified by its coin-metadata provider id."""
    provider_id: str

    kind = AssetKind.COIN

    def __post_init__(self) -> None:
        object.__setattr__(self, "provider_id", _require(self.provider_id, "provider_id"))

    @property
    def key(self) -> str:
        return f"coingecko:{self.provider_id.lower()}"

    def __str__(self) -> str:
        return f"coin:{self.provider_id}"


@dataclass(frozen=True, eq=False)
class NftCollectionAsset(_KeyedAsset):
    """NFT collection identified by chain + contract address."""
    chain: Chain
    address: str

    kind = AssetKind.NFT

    def __post_init__(self) -> None:
        object.__setattr__(self, "chain", Chain.parse(self.chain))
        object.__setattr__(self, "address", _require(self.address, "address"))

    @property
    def key(self) -> str:
        return f"nft:{self.chain.value}:{self.address.lower()}"

    def __str__(self) -> str:
        return f"nft:{self.chain.value}:{self.address}"


AssetReference = Union[ContractAsset, CoinAsset, NftCollectionAsset]


def parse_asset_reference(text: str) -> AssetReference:
    """
    Parse the textual forms used by scripts and fixtures.

    Accepted:
        coin:<provider_id>
        token:<chain>:<address>
        nft:<chain>:<address>
    """
    parts = [p.strip() for p in str(text).split(":")]
    kind = parts[0].lower() if parts else ""

    if kind == "coin" and len(parts) == 2:
        return CoinAsset(parts[1])
    if kind in ("token", "contract") and len(parts) == 3:
        return ContractAsset(Chain.parse(parts[1]), parts[2])
    if kind == "nft" and len(parts) == 3:
        return NftCollectionAsset(Chain.parse(parts[1]), parts[2])

    raise ValueError(
        f"Cannot parse asset {text!r} "
        "(expected coin:<id>, token:<chain>:<address> or nft:<chain>:<address>)"
    )


# ─────────────────────────────────────────────────────────────
# Price point
# ─────────────────────────────────────────────────────────────


def coerce_price(raw: Any) -> Optional[float]:
    """
    Positive finite float from a number or numeric string, else None.

    Booleans are rejected even though they are ints.
    """
    if raw is None or isinstance(raw, bool):
        return None
    if not isinstance(raw, (int, float, Decimal, str)):
        return None
    try:
        value = float(raw.strip() if isinstance(raw, str) else raw)
    except (ValueError, OverflowError):
        return None
    if not math.isfinite(value) or value <= 0:
        return None
    return value


@dataclass(frozen=True)
class PricePoint:
    """
    A resolved, strictly positive price.

    Build through PricePoint.create(); invalid values yield None
    instead of a PricePoint.
    """
    value: float
    as_of: datetime
    source: str
    cached: bool = False
    is_fallback: bool = False

    @classmethod
    def create(
        cls,
        value: Any,
        as_of: datetime,
        source: str,
        cached: bool = False,
        is_fallback: bool = False,
    ) -> Optional["PricePoint"]:
        if isinstance(value, str):
            return None
        price = coerce_price(value)
        if price is None:
            return None
        return cls(
            value=price,
            as_of=as_of,
            source=source,
            cached=cached,
            is_fallback=is_fallback,
        )

    def as_cached(self) -> "PricePoint":
        return replace(self, cached=True)

    def as_fallback(self) -> "PricePoint":
        return replace(self, is_fallback=True)

    def to_dict(self) -> dict[str, Any]:
        return {
            "value": self.value,
            "as_of": self.as_of.isoformat(),
            "source": self.source,
            "cached": self.cached,
            "is_fallback": self.is_fallback,
        }


# ─────────────────────────────────────────────────────────────
# Adapter health & metadata
# ─────────────────────────────────────────────────────────────


@dataclass
class AdapterHealth:
    """Health status of a price adapter."""
    status: AdapterStatus
    last_check: datetime
    latency_ms: Optional[float] = None
    rate_limit_remaining: Optional[int] = None
    rate_limit_reset: Optional[datetime] = None
    error_count: int = 0
    last_error: Optional[str] = None
    last_error_time: Optional[datetime] = None
    consecutive_failures: int = 0
    requests_made: int = 0

    def is_healthy(self) -> bool:
        """Check if adapter is operational."""
        return self.status == AdapterStatus.HEALTHY

    def is_usable(self) -> bool:
        """Check if adapter can still be used."""
        return self.status in (
            AdapterStatus.HEALTHY,
            AdapterStatus.DEGRADED,
            AdapterStatus.UNKNOWN,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "status": self.status.value,
            "last_check": self.last_check.isoformat(),
            "latency_ms": self.latency_ms,
            "rate_limit_remaining": self.rate_limit_remaining,
            "rate_limit_reset": self.rate_limit_reset.isoformat() if self.rate_limit_reset else None,
            "error_count": self.error_count,
            "last_error": self.last_error,
            "last_error_time": self.last_error_time.isoformat() if self.last_error_time else None,
            "consecutive_failures": self.consecutive_failures,
            "requests_made": self.requests_made,
        }


@dataclass
class AdapterMetadata:
    """Static description of a price provider."""
    name: str
    display_name: str
    asset_kinds: list[AssetKind]
    supported_chains: list[Chain] = field(default_factory=list)
    supports_current: bool = True
    historical_precision: HistoricalPrecision = HistoricalPrecision.NONE
    history_depth_days: Optional[int] = None
    requires_api_key: bool = False
    rate_limit_per_second: Optional[float] = None
    base_url: str = ""
    current_ttl_seconds: int = 300
    historical_ttl_seconds: int = 86_400

    def supports_chain(self, chain: Chain) -> bool:
        """Empty supported_chains means chain-agnostic."""
        return not self.supported_chains or chain in self.supported_chains

    def supports_kind(self, kind: AssetKind) -> bool:
        return kind in self.asset_kinds

    def supports_operation(self, operation: PriceOperation) -> bool:
        if operation == PriceOperation.CURRENT:
            return self.supports_current
        if operation == PriceOperation.AT_DATE:
            return self.historical_precision != HistoricalPrecision.NONE
        return self.historical_precision == HistoricalPrecision.INSTANT

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "name": self.name,
            "display_name": self.display_name,
            "asset_kinds": [k.value for k in self.asset_kinds],
            "supported_chains": [c.value for c in self.supported_chains],
            "supports_current": self.supports_current,
            "historical_precision": self.historical_precision.value,
            "history_depth_days": self.history_depth_days,
            "requires_api_key": self.requires_api_key,
            "rate_limit_per_second": self.rate_limit_per_second,
            "base_url": self.base_url,
            "current_ttl_seconds": self.current_ttl_seconds,
            "historical_ttl_seconds": self.historical_ttl_seconds,
        }


@dataclass
class AdapterIncident:
    """Record of an adapter incident."""
    adapter_name: str
    incident_type: str
    timestamp: datetime
    error_message: str
    asset_key: Optional[str] = None
    operation: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "adapter_name": self.adapter_name,
            "incident_type": self.incident_type,
            "timestamp": self.timestamp.isoformat(),
            "error_message": self.error_message,
            "asset_key": self.asset_key,
            "operation": self.operation,
        }

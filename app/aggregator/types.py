"""Core types and DTOs for the quote aggregation engine."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class BridgeProvider(str, Enum):
    """Supported bridge providers."""

    ACROSS = "across"
    HOP = "hop"
    STARGATE = "stargate"
    CBRIDGE = "cbridge"
    SYNAPSE = "synapse"
    AXELAR = "axelar"
    EVERCLEAR = "everclear"
    LAYERZERO = "layerzero"
    ORBITER = "orbiter"
    WORMHOLE = "wormhole"

    @property
    def display_name(self) -> str:
        """Bridge name as it appears in quotes and in the security history tables."""
        return _DISPLAY_NAMES[self]


_DISPLAY_NAMES = {
    BridgeProvider.ACROSS: "Across",
    BridgeProvider.HOP: "Hop",
    BridgeProvider.STARGATE: "Stargate",
    BridgeProvider.CBRIDGE: "cBridge",
    BridgeProvider.SYNAPSE: "Synapse",
    BridgeProvider.AXELAR: "Axelar",
    BridgeProvider.EVERCLEAR: "Everclear",
    BridgeProvider.LAYERZERO: "LayerZero",
    BridgeProvider.ORBITER: "Orbiter",
    BridgeProvider.WORMHOLE: "Wormhole",
}


class QuoteStatus(str, Enum):
    OPERATIONAL = "operational"
    DEGRADED = "degraded"
    UNAVAILABLE = "unavailable"


class TimingCategory(str, Enum):
    FAST = "fast"
    MEDIUM = "medium"
    SLOW = "slow"


class SecurityLevel(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class ProviderErrorKind(str, Enum):
    """Why a provider contributed an error instead of a quote."""

    TIMEOUT = "timeout"
    CANCELLED = "cancelled"  # Still pending at the global deadline
    RATE_LIMITED = "rate_limited"
    HTTP_ERROR = "http_error"
    MALFORMED = "malformed"
    UNSUPPORTED_ROUTE = "unsupported_route"
    INTERNAL = "internal"


class QuoteWarning(str, Enum):
    SLOW_ROUTE = "slow_route"
    LOW_SECURITY = "low_security"
    LOW_LIQUIDITY = "low_liquidity"


# ---------------------------------------------------------------------------
# Request
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RankingWeights:
    """Relative importance of cost, speed and security in the final score."""

    cost_weight: float = 0.4
    speed_weight: float = 0.4
    security_weight: float = 0.2

    def normalized(self) -> RankingWeights:
        """Return weights re-scaled to sum to 1 (defaults if they sum to 0)."""
        total = self.cost_weight + self.speed_weight + self.security_weight
        if total <= 0:
            return RankingWeights()
        return RankingWeights(
            cost_weight=self.cost_weight / total,
            speed_weight=self.speed_weight / total,
            security_weight=self.security_weight / total,
        )


@dataclass(frozen=True)
class RouteRequest:
    """A canonical route query. Created per inbound call, never persisted."""

    from_chain: str
    to_chain: str
    token: str
    amount: float
    slippage: float = 0.5  # percent
    weights: RankingWeights | None = None

    def echo(self) -> dict[str, Any]:
        """Request metadata echoed back in the response."""
        return {
            "from": self.from_chain,
            "to": self.to_chain,
            "token": self.token,
            "amount": self.amount,
            "slippage": self.slippage,
        }


# ---------------------------------------------------------------------------
# Adapter output: canonical raw result
# ---------------------------------------------------------------------------


@dataclass
class GasDetails:
    """Per-chain gas cost breakdown."""

    source_chain: str = ""
    destination_chain: str = ""
    source_gas_price_gwei: float = 0.0
    destination_gas_price_gwei: float = 0.0
    source_gas_limit: int = 0
    destination_gas_limit: int = 0
    source_gas_usd: float = 0.0
    destination_gas_usd: float = 0.0

    @property
    def total_usd(self) -> float:
        return self.source_gas_usd + self.destination_gas_usd


@dataclass
class RawQuote:
    """Canonical form every adapter translates its provider payload into."""

    provider: BridgeProvider
    bridge_fee_usd: float = 0.0
    gas: GasDetails = field(default_factory=GasDetails)
    amount_in: float = 0.0
    expected_output: float = 0.0
    minimum_output: float | None = None
    est_time_seconds: int = 0
    liquidity_available: bool = True
    status: QuoteStatus = QuoteStatus.OPERATIONAL
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class ProviderError:
    """A provider that failed to contribute a quote to the batch."""

    provider: BridgeProvider
    reason: str
    kind: ProviderErrorKind = ProviderErrorKind.INTERNAL

    def to_dict(self) -> dict:
        return {"bridge": self.provider.display_name, "error": self.reason}


# ---------------------------------------------------------------------------
# Normalized quote
# ---------------------------------------------------------------------------


@dataclass
class CostDetails:
    bridge_fee_usd: float = 0.0
    gas_estimate_usd: float = 0.0
    total_fee_usd: float = 0.0
    gas_details: GasDetails | None = None


@dataclass
class OutputDetails:
    input: float = 0.0
    expected: float = 0.0
    minimum: float = 0.0


@dataclass
class TimingDetails:
    seconds: int = 0
    display: str = ""
    category: TimingCategory = TimingCategory.MEDIUM


@dataclass
class SecurityScore:
    """Derived security value for one bridge; recomputed on demand."""

    score: float = 0.5
    level: SecurityLevel = SecurityLevel.MEDIUM
    has_audit: bool = False
    has_exploit: bool = False


@dataclass
class Quote:
    """Unified, comparable quote for one route from one provider."""

    provider: BridgeProvider
    bridge: str
    cost: CostDetails = field(default_factory=CostDetails)
    output: OutputDetails = field(default_factory=OutputDetails)
    timing: TimingDetails = field(default_factory=TimingDetails)
    security: SecurityScore = field(default_factory=SecurityScore)
    score: float = 0.0
    rank: int = 0
    available: bool = True
    status: QuoteStatus = QuoteStatus.OPERATIONAL
    warnings: list[QuoteWarning] = field(default_factory=list)

    def to_dict(self) -> dict:
        """Serialize to the JSON response shape."""
        data = asdict(self)
        data["provider"] = self.provider.value
        data["status"] = self.status.value
        data["timing"]["category"] = self.timing.category.value
        data["security"]["level"] = self.security.level.value
        data["warnings"] = [w.value for w in self.warnings]
        return data


# ---------------------------------------------------------------------------
# Security history
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AuditEvent:
    firm: str
    date: date
    result: str

    @property
    def passed(self) -> bool:
        return "passed" in self.result.lower()


@dataclass(frozen=True)
class ExploitEvent:
    date: date
    loss_amount: float | None = None
    description: str = ""


@dataclass
class SecurityRecord:
    """Audit and exploit history for one bridge. Read-only to this engine."""

    bridge: str
    audits: list[AuditEvent] = field(default_factory=list)
    exploits: list[ExploitEvent] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Aggregated result
# ---------------------------------------------------------------------------


@dataclass
class AggregatedResult:
    """Ranked routes plus per-provider errors for one RouteRequest."""

    routes: list[Quote] = field(default_factory=list)
    errors: list[ProviderError] = field(default_factory=list)
    request: dict[str, Any] = field(default_factory=dict)
    weights: RankingWeights = field(default_factory=RankingWeights)
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    from_cache: bool = False

    @property
    def total_routes(self) -> int:
        """Every provider queried: returned quotes plus failed providers."""
        return len(self.routes) + len(self.errors)

    @property
    def available_routes(self) -> int:
        return sum(1 for q in self.routes if q.available)

    def to_dict(self) -> dict:
        """Serialize to the public response shape."""
        return {
            "routes": [q.to_dict() for q in self.routes],
            "errors": [e.to_dict() for e in self.errors],
            "metadata": {
                "total_routes": self.total_routes,
                "available_routes": self.available_routes,
                "request": self.request,
            },
        }

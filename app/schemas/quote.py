"""Quote query and response schemas."""

from pydantic import BaseModel, Field

from app.aggregator.types import RankingWeights, RouteRequest


class QuoteQuery(BaseModel):
    from_chain: str = Field(..., min_length=1, max_length=50)
    to_chain: str = Field(..., min_length=1, max_length=50)
    token: str = Field(..., min_length=1, max_length=20)
    amount: float = Field(..., gt=0)
    slippage: float = Field(0.5, ge=0, le=50)
    cost_weight: float | None = Field(None, ge=0)
    speed_weight: float | None = Field(None, ge=0)
    security_weight: float | None = Field(None, ge=0)

    def to_route_request(self) -> RouteRequest:
        weights = None
        if any(w is not None for w in (self.cost_weight, self.speed_weight, self.security_weight)):
            weights = RankingWeights(
                cost_weight=self.cost_weight or 0.0,
                speed_weight=self.speed_weight or 0.0,
                security_weight=self.security_weight or 0.0,
            )
        return RouteRequest(
            from_chain=self.from_chain,
            to_chain=self.to_chain,
            token=self.token,
            amount=self.amount,
            slippage=self.slippage,
            weights=weights,
        )


class GasDetailsOut(BaseModel):
    source_chain: str
    destination_chain: str
    source_gas_price_gwei: float
    destination_gas_price_gwei: float
    source_gas_limit: int
    destination_gas_limit: int
    source_gas_usd: float
    destination_gas_usd: float


class CostOut(BaseModel):
    bridge_fee_usd: float
    gas_estimate_usd: float
    total_fee_usd: float
    gas_details: GasDetailsOut | None = None


class OutputOut(BaseModel):
    input: float
    expected: float
    minimum: float


class TimingOut(BaseModel):
    seconds: int
    display: str
    category: str


class SecurityOut(BaseModel):
    score: float
    level: str
    has_audit: bool
    has_exploit: bool


class QuoteOut(BaseModel):
    provider: str
    bridge: str
    cost: CostOut
    output: OutputOut
    timing: TimingOut
    security: SecurityOut
    score: float
    rank: int
    available: bool
    status: str
    warnings: list[str]


class ProviderErrorOut(BaseModel):
    bridge: str
    error: str


class QuoteMetadata(BaseModel):
    total_routes: int
    available_routes: int
    request: dict


class QuoteResponse(BaseModel):
    routes: list[QuoteOut]
    errors: list[ProviderErrorOut]
    metadata: QuoteMetadata

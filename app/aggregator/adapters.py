"""Provider Adapters — protocol-level handling for each bridge API.

Each adapter translates a RouteRequest into the provider's HTTP protocol,
validates the provider-specific payload and returns the canonical RawQuote
(or a ProviderError). Nothing downstream ever sees a provider payload.

Provider-specific behaviors:
  - Across: suggested-fees endpoint, token addressed by contract, isAmountTooLow → unavailable
  - Hop: AMM quote in base units, bonder fee covers destination gas, typo'd "estimatedRecieved"
  - Stargate: several route variants per call, fastest error-free one wins
  - cBridge: estimateAmt in base units, in-payload "err" → unavailable
  - Synapse: REST bridge endpoint in human units, empty list → no liquidity
  - Axelar: GMP gas-fee estimate, fee paid in the source chain's native token
  - Everclear: intent quote, amount above the current clearing limit → no liquidity
  - Orbiter: maker quote over POST, status other than "success" → unavailable
  - LayerZero, Wormhole: no public quote API; static relayer-fee estimates,
    reported as degraded and flagged "estimated"
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any

import httpx
from pydantic import BaseModel, ConfigDict, Field

from app.aggregator.pricing import (
    canonical_chain,
    estimate_gas,
    from_smallest_unit,
    native_token,
    to_smallest_unit,
    token_usd_price,
)
from app.aggregator.types import (
    BridgeProvider,
    ProviderError,
    ProviderErrorKind,
    QuoteStatus,
    RawQuote,
    RouteRequest,
)

logger = logging.getLogger(__name__)


class UnsupportedRouteError(Exception):
    """Raised when a provider cannot serve the chain pair or token."""


# EVM chain ids shared by the providers that address chains numerically
CHAIN_IDS: dict[str, int] = {
    "ethereum": 1,
    "optimism": 10,
    "bsc": 56,
    "gnosis": 100,
    "polygon": 137,
    "zksync": 324,
    "base": 8453,
    "arbitrum": 42161,
    "avalanche": 43114,
    "linea": 59144,
    "scroll": 534352,
    "fantom": 250,
    "metis": 1088,
    "mantle": 5000,
    "celo": 42220,
    "moonbeam": 1284,
    "mode": 34443,
    "blast": 81457,
    "zora": 7777777,
}

# Token contract addresses for providers that take addresses instead of symbols
TOKEN_ADDRESSES: dict[tuple[str, str], str] = {
    ("USDC", "ethereum"): "0xA0b86991c6218b36c1d19D4a2e9Eb0cE3606eB48",
    ("USDC", "arbitrum"): "0xaf88d065e77c8cC2239327C5EDb3A432268e5831",
    ("USDC", "optimism"): "0x0b2C639c533813f4Aa9D7837CAf62653d097Ff85",
    ("USDC", "polygon"): "0x3c499c542cEF5E3811e1192ce70d8cC03d5c3359",
    ("USDC", "base"): "0x833589fCD6eDb6E08f4c7C32D4f71b54bdA02913",
    ("WETH", "ethereum"): "0xC02aaA39b223FE8D0A0e5C4F27eAD9083C756Cc2",
    ("WETH", "arbitrum"): "0x82aF49447D8a07e3bd95BD0d56f35241523fBab1",
    ("WETH", "optimism"): "0x4200000000000000000000000000000000000006",
    ("WETH", "polygon"): "0x7ceB23fD6bC0adD59E62ac25578270cFf1b9f619",
    ("WETH", "base"): "0x4200000000000000000000000000000000000006",
    ("DAI", "ethereum"): "0x6B175474E89094C44Da98b954EedeAC495271d0F",
    ("DAI", "arbitrum"): "0xDA10009cBd5D07dd0CeCc66161FC93D7c9000da1",
    ("DAI", "optimism"): "0xDA10009cBd5D07dd0CeCc66161FC93D7c9000da1",
    ("DAI", "polygon"): "0x8f3Cf7ad23Cd3CaDbD9735AFf958023239c6A063",
}


def _chain_id(chain: str, supported: set[str]) -> int:
    name = canonical_chain(chain)
    if name not in supported or name not in CHAIN_IDS:
        raise UnsupportedRouteError(f"Unsupported chain: {chain}")
    return CHAIN_IDS[name]


def _token_address(token: str, chain: str) -> str:
    symbol = "WETH" if token.upper() == "ETH" else token.upper()
    address = TOKEN_ADDRESSES.get((symbol, canonical_chain(chain)))
    if address is None:
        raise UnsupportedRouteError(f"Unsupported token {token} on {chain}")
    return address


class BaseBridgeAdapter(ABC):
    """Base class for all provider adapters."""

    provider: BridgeProvider
    api_url: str = ""

    def __init__(self, client: httpx.AsyncClient | None = None, timeout: float = 5.0, **kwargs):
        self._client = client
        self.timeout = timeout

    async def quote(self, request: RouteRequest) -> RawQuote | ProviderError:
        """Fetch a quote and translate it, mapping every failure to a ProviderError."""
        try:
            return await self._fetch_quote(request)
        except UnsupportedRouteError as e:
            return self._error(str(e), ProviderErrorKind.UNSUPPORTED_ROUTE)
        except httpx.TimeoutException:
            return self._error(f"Timeout after {self.timeout}s", ProviderErrorKind.TIMEOUT)
        except httpx.HTTPStatusError as e:
            if e.response.status_code == 429:
                return self._error("Rate limited by provider", ProviderErrorKind.RATE_LIMITED)
            return self._error(f"HTTP {e.response.status_code} from provider", ProviderErrorKind.HTTP_ERROR)
        except httpx.TransportError as e:
            return self._error(f"Network error: {e}", ProviderErrorKind.HTTP_ERROR)
        except ValueError as e:
            # pydantic.ValidationError and JSON decode errors are both ValueErrors
            logger.debug("Malformed %s payload: %s", self.provider.value, e)
            return self._error("Malformed provider response", ProviderErrorKind.MALFORMED)

    @abstractmethod
    async def _fetch_quote(self, request: RouteRequest) -> RawQuote:
        """Call the provider and return the canonical RawQuote."""
        ...

    async def _get_json(self, url: str, params: dict[str, Any]) -> Any:
        if self._client is not None:
            resp = await self._client.get(url, params=params, timeout=self.timeout)
        else:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                resp = await client.get(url, params=params)
        resp.raise_for_status()
        return resp.json()

    async def _post_json(self, url: str, body: dict[str, Any]) -> Any:
        if self._client is not None:
            resp = await self._client.post(url, json=body, timeout=self.timeout)
        else:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                resp = await client.post(url, json=body)
        resp.raise_for_status()
        return resp.json()

    def _error(self, reason: str, kind: ProviderErrorKind) -> ProviderError:
        logger.info(
            "%s quote failed (%s): %s",
            self.provider.display_name,
            kind.value,
            reason,
            extra={"bridge": self.provider.value},
        )
        return ProviderError(provider=self.provider, reason=reason, kind=kind)

    def _unavailable(self, request: RouteRequest, reason: str, liquidity: bool = True) -> RawQuote:
        """A provider that answered but cannot serve the transfer."""
        return RawQuote(
            provider=self.provider,
            amount_in=request.amount,
            liquidity_available=liquidity,
            status=QuoteStatus.UNAVAILABLE,
            gas=estimate_gas(request.from_chain, request.to_chain),
            metadata={"reason": reason},
        )


# ---------------------------------------------------------------------------
# Across
# ---------------------------------------------------------------------------


class _AcrossFee(BaseModel):
    total: str = "0"
    pct: str = "0"


class AcrossFeesPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    total_relay_fee: _AcrossFee = Field(alias="totalRelayFee")
    relayer_gas_fee: _AcrossFee | None = Field(default=None, alias="relayerGasFee")
    is_amount_too_low: bool = Field(default=False, alias="isAmountTooLow")
    estimated_fill_time_sec: int | None = Field(default=None, alias="estimatedFillTimeSec")


_ACROSS_CHAINS = {"ethereum", "optimism", "polygon", "arbitrum", "base", "linea", "zksync", "scroll"}


class AcrossAdapter(BaseBridgeAdapter):
    """Across Protocol suggested-fees adapter."""

    provider = BridgeProvider.ACROSS
    api_url = "https://app.across.to/api/suggested-fees"
    default_fill_time = 120

    async def _fetch_quote(self, request: RouteRequest) -> RawQuote:
        params = {
            "originChainId": _chain_id(request.from_chain, _ACROSS_CHAINS),
            "destinationChainId": _chain_id(request.to_chain, _ACROSS_CHAINS),
            "token": _token_address(request.token, request.from_chain),
            "amount": to_smallest_unit(request.amount, request.token),
        }
        payload = AcrossFeesPayload.model_validate(await self._get_json(self.api_url, params))

        if payload.is_amount_too_low:
            return self._unavailable(request, "Amount too low for Across relayers")

        fee_tokens = from_smallest_unit(payload.total_relay_fee.total, request.token)
        return RawQuote(
            provider=self.provider,
            bridge_fee_usd=fee_tokens * token_usd_price(request.token),
            gas=estimate_gas(request.from_chain, request.to_chain, source_gas_limit=120_000),
            amount_in=request.amount,
            expected_output=request.amount - fee_tokens,
            est_time_seconds=payload.estimated_fill_time_sec or self.default_fill_time,
            metadata={"relay_fee_pct": payload.total_relay_fee.pct},
        )


# ---------------------------------------------------------------------------
# Hop
# ---------------------------------------------------------------------------


class HopQuotePayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    amount_in: str = Field(alias="amountIn")
    slippage: float = 0.0
    amount_out_min: str = Field(alias="amountOutMin")
    destination_amount_out_min: str = Field(alias="destinationAmountOutMin")
    bonder_fee: str = Field(alias="bonderFee")
    # Hop's API spells it this way
    estimated_received: str = Field(alias="estimatedRecieved")


_HOP_CHAINS = {"ethereum", "optimism", "arbitrum", "polygon", "gnosis", "nova", "base", "linea"}
_HOP_TOKENS = {"USDC", "USDT", "DAI", "ETH", "MATIC"}


class HopAdapter(BaseBridgeAdapter):
    """Hop Protocol /v1/quote adapter."""

    provider = BridgeProvider.HOP
    api_url = "https://api.hop.exchange/v1/quote"

    async def _fetch_quote(self, request: RouteRequest) -> RawQuote:
        from_chain = canonical_chain(request.from_chain)
        to_chain = canonical_chain(request.to_chain)
        token = "ETH" if request.token.upper() == "WETH" else request.token.upper()
        if from_chain not in _HOP_CHAINS or to_chain not in _HOP_CHAINS:
            raise UnsupportedRouteError(f"Unsupported route: {request.from_chain} -> {request.to_chain}")
        if token not in _HOP_TOKENS:
            raise UnsupportedRouteError(f"Unsupported token: {request.token}")

        params = {
            "amount": to_smallest_unit(request.amount, token),
            "token": token,
            "fromChain": from_chain,
            "toChain": to_chain,
            "slippage": request.slippage,
        }
        payload = HopQuotePayload.model_validate(await self._get_json(self.api_url, params))

        received = from_smallest_unit(payload.estimated_received, token)
        if received <= 0:
            return self._unavailable(request, "No AMM liquidity for this route", liquidity=False)

        amount_in = from_smallest_unit(payload.amount_in, token)
        fee_tokens = amount_in - received
        return RawQuote(
            provider=self.provider,
            bridge_fee_usd=fee_tokens * token_usd_price(token),
            gas=estimate_gas(request.from_chain, request.to_chain),
            amount_in=amount_in,
            expected_output=received,
            minimum_output=from_smallest_unit(payload.destination_amount_out_min, token),
            est_time_seconds=self._estimate_time(from_chain, to_chain),
            metadata={"bonder_fee": from_smallest_unit(payload.bonder_fee, token)},
        )

    @staticmethod
    def _estimate_time(from_chain: str, to_chain: str) -> int:
        # L1 legs wait for finality; L2 → L2 is bonded
        if from_chain == "ethereum":
            return 1200
        if to_chain == "ethereum":
            return 900
        return 180


# ---------------------------------------------------------------------------
# Stargate
# ---------------------------------------------------------------------------


class _StargateDuration(BaseModel):
    estimated: float | None = None


class _StargateFee(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    amount: str = "0"
    type: str = ""
    chain_key: str = Field(default="", alias="chainKey")


class _StargateRoute(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    route: str | None = None
    error: Any = None
    src_amount: str | None = Field(default=None, alias="srcAmount")
    dst_amount: str | None = Field(default=None, alias="dstAmount")
    duration: _StargateDuration | None = None
    fees: list[_StargateFee] = Field(default_factory=list)


class StargateQuotesPayload(BaseModel):
    quotes: list[_StargateRoute] = Field(default_factory=list)


_STARGATE_CHAIN_KEYS = {
    "ethereum": "ethereum",
    "arbitrum": "arbitrum",
    "optimism": "optimism",
    "polygon": "polygon",
    "base": "base",
    "bsc": "bsc",
    "avalanche": "avalanche",
    "linea": "linea",
    "scroll": "scroll",
}
# Placeholder wallets; the quotes endpoint requires addresses but does not use them for pricing
_STARGATE_SRC_ADDRESS = "0x1234567890abcdef1234567890abcdef12345678"
_STARGATE_DST_ADDRESS = "0xabcdef1234567890abcdef1234567890abcdef12"


class StargateAdapter(BaseBridgeAdapter):
    """Stargate (LayerZero) quotes adapter."""

    provider = BridgeProvider.STARGATE
    api_url = "https://stargate.finance/api/v1/quotes"
    default_duration = 300

    async def _fetch_quote(self, request: RouteRequest) -> RawQuote:
        src_key = _STARGATE_CHAIN_KEYS.get(canonical_chain(request.from_chain))
        dst_key = _STARGATE_CHAIN_KEYS.get(canonical_chain(request.to_chain))
        if src_key is None or dst_key is None:
            raise UnsupportedRouteError(f"Unsupported route: {request.from_chain} -> {request.to_chain}")

        src_amount = to_smallest_unit(request.amount, request.token)
        params = {
            "srcToken": _token_address(request.token, request.from_chain),
            "srcChainKey": src_key,
            "dstToken": _token_address(request.token, request.to_chain),
            "dstChainKey": dst_key,
            "srcAddress": _STARGATE_SRC_ADDRESS,
            "dstAddress": _STARGATE_DST_ADDRESS,
            "srcAmount": src_amount,
            "dstAmountMin": int(src_amount * (1 - request.slippage / 100)),
        }
        payload = StargateQuotesPayload.model_validate(await self._get_json(self.api_url, params))

        valid = [q for q in payload.quotes if q.error is None and q.dst_amount is not None]
        if not valid:
            return self._unavailable(request, "No executable Stargate route", liquidity=False)
        best = min(valid, key=lambda q: (q.duration.estimated if q.duration and q.duration.estimated else float("inf")))

        received = from_smallest_unit(best.dst_amount, request.token)
        fee_tokens = request.amount - received
        est = best.duration.estimated if best.duration and best.duration.estimated else self.default_duration
        return RawQuote(
            provider=self.provider,
            bridge_fee_usd=fee_tokens * token_usd_price(request.token),
            gas=estimate_gas(request.from_chain, request.to_chain, source_gas_limit=200_000),
            amount_in=request.amount,
            expected_output=received,
            est_time_seconds=int(est),
            metadata={"route": best.route or "", "message_fees": [f.amount for f in best.fees if f.type == "message"]},
        )


# ---------------------------------------------------------------------------
# Celer cBridge
# ---------------------------------------------------------------------------


class _CbridgeErr(BaseModel):
    code: int = 0
    msg: str = ""


class CbridgeEstimatePayload(BaseModel):
    err: _CbridgeErr | None = None
    eq_value_token_amt: str = "0"
    bridge_rate: float = 1.0
    perc_fee: str = "0"
    base_fee: str = "0"
    estimated_receive_amt: str = "0"
    max_slippage: int = 0


_CBRIDGE_CHAINS = {"ethereum", "optimism", "bsc", "polygon", "arbitrum", "avalanche", "base", "linea", "zksync"}


class CbridgeAdapter(BaseBridgeAdapter):
    """Celer cBridge estimateAmt adapter."""

    provider = BridgeProvider.CBRIDGE
    api_url = "https://cbridge-prod2.celer.app/v2/estimateAmt"

    async def _fetch_quote(self, request: RouteRequest) -> RawQuote:
        params = {
            "src_chain_id": _chain_id(request.from_chain, _CBRIDGE_CHAINS),
            "dst_chain_id": _chain_id(request.to_chain, _CBRIDGE_CHAINS),
            "token_symbol": request.token.upper(),
            "amt": to_smallest_unit(request.amount, request.token),
            # cBridge expresses slippage in millionths
            "slippage_tolerance": int(request.slippage * 10_000),
        }
        payload = CbridgeEstimatePayload.model_validate(await self._get_json(self.api_url, params))

        if payload.err is not None and payload.err.code:
            liquidity = "liquidity" not in payload.err.msg.lower()
            return self._unavailable(request, payload.err.msg or f"cBridge error {payload.err.code}", liquidity)

        fee_tokens = from_smallest_unit(int(payload.perc_fee) + int(payload.base_fee), request.token)
        received = from_smallest_unit(payload.estimated_receive_amt, request.token)
        if received <= 0:
            return self._unavailable(request, "Insufficient liquidity", liquidity=False)

        return RawQuote(
            provider=self.provider,
            bridge_fee_usd=fee_tokens * token_usd_price(request.token),
            gas=estimate_gas(request.from_chain, request.to_chain),
            amount_in=request.amount,
            expected_output=received,
            est_time_seconds=self._estimate_time(request.from_chain, request.to_chain),
            metadata={"bridge_rate": payload.bridge_rate, "max_slippage": payload.max_slippage},
        )

    @staticmethod
    def _estimate_time(from_chain: str, to_chain: str) -> int:
        # Ethereum and BSC need many confirmations
        slow = {"ethereum", "bsc"}
        if canonical_chain(from_chain) in slow or canonical_chain(to_chain) in slow:
            return 1200
        return 360


# ---------------------------------------------------------------------------
# Synapse
# ---------------------------------------------------------------------------


class _SynapseRoute(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    max_amount_out_str: str = Field(alias="maxAmountOutStr")
    estimated_time: int | None = Field(default=None, alias="estimatedTime")
    bridge_module_name: str = Field(default="", alias="bridgeModuleName")


_SYNAPSE_CHAINS = {"ethereum", "arbitrum", "optimism", "polygon", "avalanche", "bsc", "base", "scroll"}
_SYNAPSE_TOKENS = {"USDC", "USDT", "DAI", "ETH", "WETH", "WBTC"}


class SynapseAdapter(BaseBridgeAdapter):
    """Synapse REST bridge-quote adapter."""

    provider = BridgeProvider.SYNAPSE
    api_url = "https://api.synapseprotocol.com/bridge"
    default_time = 600

    async def _fetch_quote(self, request: RouteRequest) -> RawQuote:
        token = request.token.upper()
        if token not in _SYNAPSE_TOKENS:
            raise UnsupportedRouteError(f"Unsupported token: {request.token}")
        params = {
            "fromChain": _chain_id(request.from_chain, _SYNAPSE_CHAINS),
            "toChain": _chain_id(request.to_chain, _SYNAPSE_CHAINS),
            "fromToken": token,
            "toToken": token,
            "amount": request.amount,
        }
        data = await self._get_json(self.api_url, params)
        if not isinstance(data, list):
            raise ValueError("Synapse response is not a list of routes")
        routes = [_SynapseRoute.model_validate(item) for item in data]
        if not routes:
            return self._unavailable(request, "No Synapse route with liquidity", liquidity=False)

        best = max(routes, key=lambda r: float(r.max_amount_out_str))
        received = float(best.max_amount_out_str)
        fee_tokens = request.amount - received
        return RawQuote(
            provider=self.provider,
            bridge_fee_usd=fee_tokens * token_usd_price(token),
            gas=estimate_gas(request.from_chain, request.to_chain),
            amount_in=request.amount,
            expected_output=received,
            est_time_seconds=best.estimated_time or self.default_time,
            metadata={"module": best.bridge_module_name},
        )


# ---------------------------------------------------------------------------
# Axelar
# ---------------------------------------------------------------------------


class AxelarGasFeePayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    total_fee: str = Field(alias="totalFee")
    base_fee: str = Field(default="0", alias="baseFee")
    execution_fee: str = Field(default="0", alias="executionFee")
    is_express_supported: bool = Field(default=False, alias="isExpressSupported")


# Axelar addresses chains by name; BSC is "binance"
_AXELAR_CHAINS = {
    "ethereum": "ethereum",
    "polygon": "polygon",
    "arbitrum": "arbitrum",
    "optimism": "optimism",
    "avalanche": "avalanche",
    "fantom": "fantom",
    "moonbeam": "moonbeam",
    "bsc": "binance",
    "base": "base",
    "linea": "linea",
    "mantle": "mantle",
    "celo": "celo",
    "blast": "blast",
    "scroll": "scroll",
}
_AXELAR_TOKENS = {"USDC", "USDT", "ETH", "WETH", "DAI", "WBTC"}
_ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"


class AxelarAdapter(BaseBridgeAdapter):
    """Axelar GMP gas-fee estimate.

    The fee is prepaid gas on the source chain, so the transferred amount
    arrives in full.
    """

    provider = BridgeProvider.AXELAR
    api_url = "https://api.axelarscan.io/gmp/estimateGasFee"
    transfer_time = 900

    async def _fetch_quote(self, request: RouteRequest) -> RawQuote:
        src = _AXELAR_CHAINS.get(canonical_chain(request.from_chain))
        dst = _AXELAR_CHAINS.get(canonical_chain(request.to_chain))
        if src is None or dst is None:
            raise UnsupportedRouteError(f"Unsupported route: {request.from_chain} -> {request.to_chain}")
        if request.token.upper() not in _AXELAR_TOKENS:
            raise UnsupportedRouteError(f"Unsupported token: {request.token}")

        body = {
            "sourceChain": src,
            "destinationChain": dst,
            "sourceTokenAddress": _ZERO_ADDRESS,
            "gasMultiplier": "auto",
        }
        payload = AxelarGasFeePayload.model_validate(await self._post_json(self.api_url, body))

        native = native_token(request.from_chain)
        fee_native = from_smallest_unit(payload.total_fee, native)
        return RawQuote(
            provider=self.provider,
            bridge_fee_usd=fee_native * token_usd_price(native),
            gas=estimate_gas(request.from_chain, request.to_chain),
            amount_in=request.amount,
            expected_output=request.amount,
            est_time_seconds=self.transfer_time,
            metadata={
                "base_fee": from_smallest_unit(payload.base_fee, native),
                "execution_fee": from_smallest_unit(payload.execution_fee, native),
                "fee_token": native,
                "express_supported": payload.is_express_supported,
            },
        )


# ---------------------------------------------------------------------------
# Everclear
# ---------------------------------------------------------------------------


class EverclearQuotePayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    fixed_fee_units: str = Field(default="0", alias="fixedFeeUnits")
    variable_fee_bps: int = Field(default=0, alias="variableFeeBps")
    total_fee_bps: int = Field(default=0, alias="totalFeeBps")
    expected_amount: str = Field(alias="expectedAmount")
    current_limit: str | None = Field(default=None, alias="currentLimit")


_EVERCLEAR_CHAINS = {
    "ethereum", "polygon", "arbitrum", "optimism", "bsc", "gnosis", "base", "linea", "mantle", "scroll",
}
# Everclear tickers; native ETH clears as WETH
_EVERCLEAR_TICKERS = {"USDC": "USDC", "USDT": "USDT", "ETH": "WETH", "WETH": "WETH", "DAI": "DAI", "WBTC": "WBTC"}


class EverclearAdapter(BaseBridgeAdapter):
    """Everclear intent-clearing quotes."""

    provider = BridgeProvider.EVERCLEAR
    api_url = "https://api.everclear.org/routes/quotes"

    async def _fetch_quote(self, request: RouteRequest) -> RawQuote:
        ticker = _EVERCLEAR_TICKERS.get(request.token.upper())
        if ticker is None:
            raise UnsupportedRouteError(f"Unsupported token: {request.token}")
        amount = to_smallest_unit(request.amount, ticker)
        body = {
            "origin": str(_chain_id(request.from_chain, _EVERCLEAR_CHAINS)),
            "destinations": [str(_chain_id(request.to_chain, _EVERCLEAR_CHAINS))],
            "inputAsset": ticker,
            "amount": str(amount),
        }
        payload = EverclearQuotePayload.model_validate(await self._post_json(self.api_url, body))

        if payload.current_limit is not None and amount > int(payload.current_limit):
            return self._unavailable(request, "Amount exceeds Everclear clearing limit", liquidity=False)

        received = from_smallest_unit(payload.expected_amount, ticker)
        fee_tokens = request.amount - received
        return RawQuote(
            provider=self.provider,
            bridge_fee_usd=fee_tokens * token_usd_price(ticker),
            gas=estimate_gas(request.from_chain, request.to_chain),
            amount_in=request.amount,
            expected_output=received,
            est_time_seconds=self._estimate_time(request.from_chain, request.to_chain),
            metadata={
                "fixed_fee": from_smallest_unit(payload.fixed_fee_units, ticker),
                "variable_fee_bps": payload.variable_fee_bps,
                "total_fee_bps": payload.total_fee_bps,
            },
        )

    @staticmethod
    def _estimate_time(from_chain: str, to_chain: str) -> int:
        pair = {canonical_chain(from_chain), canonical_chain(to_chain)}
        if pair == {"arbitrum", "optimism"}:
            return 45
        if pair in ({"polygon", "arbitrum"}, {"polygon", "optimism"}):
            return 90
        if "ethereum" in pair:
            return 240
        return 120


# ---------------------------------------------------------------------------
# Orbiter
# ---------------------------------------------------------------------------


class _OrbiterFees(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    withholding_fee: str | None = Field(default=None, alias="withholdingFee")
    withholding_fee_usd: str | None = Field(default=None, alias="withholdingFeeUsd")
    trade_fee_usd: str | None = Field(default=None, alias="tradeFeeUsd")
    fee_symbol: str | None = Field(default=None, alias="feeSymbol")


class _OrbiterDetails(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    dest_token_amount: str | None = Field(default=None, alias="destTokenAmount")
    min_dest_token_amount: str | None = Field(default=None, alias="minDestTokenAmount")


class _OrbiterResult(BaseModel):
    fees: _OrbiterFees
    details: _OrbiterDetails | None = None


class OrbiterQuotePayload(BaseModel):
    status: str = ""
    message: str = ""
    result: _OrbiterResult | None = None


_ORBITER_CHAINS = {
    "ethereum", "arbitrum", "optimism", "polygon", "zksync", "linea", "base", "scroll", "zora", "mantle", "mode",
    "blast", "metis",
}
_ORBITER_TOKENS = {"ETH", "USDC", "USDT", "DAI"}
# The quote endpoint wants a wallet but prices independently of it
_ORBITER_QUOTE_ADDRESS = "0xefc6089224068b20197156a91d50132b2a47b908"


class OrbiterAdapter(BaseBridgeAdapter):
    """Orbiter Finance maker quotes (rollup-focused)."""

    provider = BridgeProvider.ORBITER
    api_url = "https://api.orbiter.finance/quote"

    async def _fetch_quote(self, request: RouteRequest) -> RawQuote:
        token = "ETH" if request.token.upper() == "WETH" else request.token.upper()
        if token not in _ORBITER_TOKENS:
            raise UnsupportedRouteError(f"Unsupported token: {request.token}")
        token_ref = _ZERO_ADDRESS if token == "ETH" else token
        body = {
            "sourceChainId": str(_chain_id(request.from_chain, _ORBITER_CHAINS)),
            "destChainId": str(_chain_id(request.to_chain, _ORBITER_CHAINS)),
            "sourceToken": token_ref,
            "destToken": token_ref,
            "amount": str(to_smallest_unit(request.amount, token)),
            "userAddress": _ORBITER_QUOTE_ADDRESS,
            "targetRecipient": _ORBITER_QUOTE_ADDRESS,
            "slippage": request.slippage / 100,
        }
        payload = OrbiterQuotePayload.model_validate(await self._post_json(self.api_url, body))

        if payload.status != "success":
            return self._unavailable(request, payload.message or f"Orbiter status {payload.status!r}")
        if payload.result is None:
            raise ValueError("Orbiter success response without a result")

        fees = payload.result.fees
        details = payload.result.details or _OrbiterDetails()
        minimum = None
        if details.dest_token_amount is not None:
            received = from_smallest_unit(details.dest_token_amount, token)
            fee_tokens = request.amount - received
        else:
            fee_tokens = from_smallest_unit(fees.withholding_fee or 0, token)
            received = request.amount - fee_tokens
        if details.min_dest_token_amount is not None:
            minimum = from_smallest_unit(details.min_dest_token_amount, token)

        return RawQuote(
            provider=self.provider,
            bridge_fee_usd=fee_tokens * token_usd_price(token),
            gas=estimate_gas(request.from_chain, request.to_chain),
            amount_in=request.amount,
            expected_output=received,
            minimum_output=minimum,
            est_time_seconds=self._estimate_time(request.from_chain, request.to_chain),
            metadata={"fee_symbol": fees.fee_symbol or token, "withholding_fee_usd": fees.withholding_fee_usd},
        )

    @staticmethod
    def _estimate_time(from_chain: str, to_chain: str) -> int:
        # Makers wait for L1 confirmations; rollup to rollup settles in a couple of minutes
        if "ethereum" in (canonical_chain(from_chain), canonical_chain(to_chain)):
            return 900
        return 120


# ---------------------------------------------------------------------------
# Estimated providers (no public quote endpoint)
# ---------------------------------------------------------------------------


class EstimatedQuoteAdapter(BaseBridgeAdapter):
    """Quotes from a static relayer-fee table instead of a provider call.

    Subclasses declare the chains and tokens they route and a flat fee per
    token (in token units); unlisted tokens pay `fallback_fee_rate` of the
    amount. Quotes are marked degraded and carry `estimated: true`.
    """

    chains: frozenset[str] = frozenset()
    token_aliases: dict[str, str] = {}
    flat_fees: dict[str, float] = {}
    fallback_fee_rate: float = 0.0015
    l1_time = 900
    l2_time = 600

    async def _fetch_quote(self, request: RouteRequest) -> RawQuote:
        from_chain = canonical_chain(request.from_chain)
        to_chain = canonical_chain(request.to_chain)
        if from_chain not in self.chains or to_chain not in self.chains:
            raise UnsupportedRouteError(f"Unsupported route: {request.from_chain} -> {request.to_chain}")
        token = self.token_aliases.get(request.token.upper())
        if token is None:
            raise UnsupportedRouteError(f"Unsupported token: {request.token}")

        fee_tokens = self.flat_fees.get(token, request.amount * self.fallback_fee_rate)
        if fee_tokens >= request.amount:
            return self._unavailable(request, "Amount does not cover the relayer fee")

        est_time = self.l1_time if "ethereum" in (from_chain, to_chain) else self.l2_time
        return RawQuote(
            provider=self.provider,
            bridge_fee_usd=fee_tokens * token_usd_price(token),
            gas=estimate_gas(request.from_chain, request.to_chain),
            amount_in=request.amount,
            expected_output=request.amount - fee_tokens,
            est_time_seconds=est_time,
            status=QuoteStatus.DEGRADED,
            metadata={"estimated": True, "fee_token": token},
        )


class LayerZeroAdapter(EstimatedQuoteAdapter):
    """LayerZero OFT transfers (via Superbridge)."""

    provider = BridgeProvider.LAYERZERO
    chains = frozenset({
        "ethereum", "optimism", "bsc", "polygon", "fantom", "zksync", "metis", "mantle", "base",
        "mode", "avalanche", "arbitrum", "linea", "blast", "scroll", "zora",
    })
    token_aliases = {"ETH": "ETH", "WETH": "ETH", "USDC": "USDC", "USDT": "USDT", "DAI": "DAI", "WBTC": "WBTC"}
    flat_fees = {"USDC": 0.12, "USDT": 0.12, "ETH": 0.0002, "DAI": 0.15, "WBTC": 0.000008}
    l1_time = 600
    l2_time = 240


class WormholeAdapter(EstimatedQuoteAdapter):
    """Wormhole token bridge, guardian-attested."""

    provider = BridgeProvider.WORMHOLE
    chains = frozenset({
        "ethereum", "bsc", "polygon", "avalanche", "fantom", "celo", "moonbeam", "arbitrum", "optimism", "base",
        "scroll",
    })
    token_aliases = {
        "USDC": "USDC", "USDT": "USDT", "ETH": "WETH", "WETH": "WETH", "MATIC": "WMATIC", "WMATIC": "WMATIC",
        "DAI": "DAI", "WBTC": "WBTC", "AVAX": "WAVAX", "WAVAX": "WAVAX", "BNB": "WBNB", "WBNB": "WBNB",
    }
    flat_fees = {"USDC": 0.25, "USDT": 0.25, "WETH": 0.0005, "WBTC": 0.00002, "WMATIC": 5.0}


# ---------------------------------------------------------------------------
# Adapter registry
# ---------------------------------------------------------------------------

ADAPTER_REGISTRY: dict[BridgeProvider, type[BaseBridgeAdapter]] = {
    BridgeProvider.ACROSS: AcrossAdapter,
    BridgeProvider.HOP: HopAdapter,
    BridgeProvider.STARGATE: StargateAdapter,
    BridgeProvider.CBRIDGE: CbridgeAdapter,
    BridgeProvider.SYNAPSE: SynapseAdapter,
    BridgeProvider.AXELAR: AxelarAdapter,
    BridgeProvider.EVERCLEAR: EverclearAdapter,
    BridgeProvider.LAYERZERO: LayerZeroAdapter,
    BridgeProvider.ORBITER: OrbiterAdapter,
    BridgeProvider.WORMHOLE: WormholeAdapter,
}


def get_adapter(provider: BridgeProvider, **kwargs) -> BaseBridgeAdapter:
    """Factory: get the appropriate adapter for a provider."""
    cls = ADAPTER_REGISTRY.get(provider)
    if cls is None:
        raise ValueError(f"No adapter registered for provider: {provider}")
    return cls(**kwargs)


def build_adapters(enabled: str = "", **kwargs) -> list[BaseBridgeAdapter]:
    """Instantiate adapters for a comma-separated provider list (empty = all)."""
    names = [n.strip().lower() for n in enabled.split(",") if n.strip()]
    providers = [BridgeProvider(n) for n in names] if names else list(ADAPTER_REGISTRY)
    if len(set(providers)) != len(providers):
        raise ValueError(f"Provider listed more than once: {enabled}")
    return [get_adapter(p, **kwargs) for p in providers]

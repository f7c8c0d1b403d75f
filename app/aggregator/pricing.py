"""Static pricing tables used to express provider costs in USD.

Live token/gas oracles are outside this service; these fallback figures
keep fee and gas estimates comparable across providers.
"""

from __future__ import annotations

from app.aggregator.types import GasDetails

# Fallback USD prices per token symbol
TOKEN_USD_PRICES: dict[str, float] = {
    "ETH": 3000.0,
    "WETH": 3000.0,
    "USDC": 1.0,
    "USDT": 1.0,
    "DAI": 1.0,
    "WBTC": 60000.0,
    "MATIC": 0.8,
    "POL": 0.8,
    "ARB": 1.2,
    "OP": 2.5,
    "AVAX": 35.0,
    "BNB": 500.0,
    "WBNB": 500.0,
    "WAVAX": 35.0,
    "WMATIC": 0.8,
}

TOKEN_DECIMALS: dict[str, int] = {
    "USDC": 6,
    "USDT": 6,
    "WBTC": 8,
}

# Native gas token and typical gas price (gwei) per chain
_CHAIN_GAS: dict[str, tuple[str, float]] = {
    "ethereum": ("ETH", 20.0),
    "arbitrum": ("ETH", 0.1),
    "optimism": ("ETH", 0.05),
    "base": ("ETH", 0.05),
    "linea": ("ETH", 0.1),
    "scroll": ("ETH", 0.1),
    "blast": ("ETH", 0.001),
    "zksync": ("ETH", 0.25),
    "polygon": ("MATIC", 50.0),
    "bsc": ("BNB", 3.0),
    "avalanche": ("AVAX", 25.0),
    "gnosis": ("DAI", 2.0),
}

CHAIN_ALIASES: dict[str, str] = {
    "eth": "ethereum",
    "mainnet": "ethereum",
    "arb": "arbitrum",
    "arbitrum-one": "arbitrum",
    "opt": "optimism",
    "op": "optimism",
    "matic": "polygon",
    "bnb": "bsc",
    "binance": "bsc",
    "avax": "avalanche",
    "xdai": "gnosis",
    "zksync-era": "zksync",
    "ftm": "fantom",
    "glmr": "moonbeam",
}

DEFAULT_SOURCE_GAS_LIMIT = 150_000
DEFAULT_DESTINATION_GAS_LIMIT = 0  # Relayer-paid on most bridges


def canonical_chain(chain: str) -> str:
    """Lower-case a chain name and resolve common aliases."""
    name = chain.strip().lower()
    return CHAIN_ALIASES.get(name, name)


def token_usd_price(token: str) -> float:
    return TOKEN_USD_PRICES.get(token.upper(), 1.0)


def token_decimals(token: str) -> int:
    return TOKEN_DECIMALS.get(token.upper(), 18)


def native_token(chain: str) -> str:
    """Symbol of the token a chain charges gas in."""
    return _CHAIN_GAS.get(canonical_chain(chain), ("ETH", 1.0))[0]


def to_smallest_unit(amount: float, token: str) -> int:
    """Convert a human amount (1.5 USDC) into integer base units."""
    return int(round(amount * 10 ** token_decimals(token)))


def from_smallest_unit(raw: str | int | float, token: str) -> float:
    return float(raw) / 10 ** token_decimals(token)


def gas_cost_usd(chain: str, gas_limit: int) -> tuple[float, float]:
    """Return (gas_price_gwei, cost_usd) for spending gas_limit on chain."""
    native, gwei = _CHAIN_GAS.get(canonical_chain(chain), ("ETH", 1.0))
    cost = gas_limit * gwei * 1e-9 * token_usd_price(native)
    return gwei, cost


def estimate_gas(
    from_chain: str,
    to_chain: str,
    source_gas_limit: int = DEFAULT_SOURCE_GAS_LIMIT,
    destination_gas_limit: int = DEFAULT_DESTINATION_GAS_LIMIT,
) -> GasDetails:
    """Build a GasDetails breakdown for a transfer between two chains."""
    src_gwei, src_usd = gas_cost_usd(from_chain, source_gas_limit)
    dst_gwei, dst_usd = gas_cost_usd(to_chain, destination_gas_limit)
    return GasDetails(
        source_chain=canonical_chain(from_chain),
        destination_chain=canonical_chain(to_chain),
        source_gas_price_gwei=src_gwei,
        destination_gas_price_gwei=dst_gwei,
        source_gas_limit=source_gas_limit,
        destination_gas_limit=destination_gas_limit,
        source_gas_usd=round(src_usd, 6),
        destination_gas_usd=round(dst_usd, 6),
    )

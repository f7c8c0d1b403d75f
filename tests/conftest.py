import asyncio
import uuid
from collections.abc import AsyncGenerator
from datetime import date

import pytest
from httpx import ASGITransport, AsyncClient

from app.core.config import settings

# Override settings for tests: in-process cache and limiter, fast deadlines
settings.redis_url = ""
settings.app_env = "development"
settings.provider_timeout_seconds = 0.2
settings.global_timeout_seconds = 0.5
settings.anonymous_rate_limit_per_minute = 5
settings.anonymous_rate_limit_per_hour = 50

from app.aggregator.adapters import BaseBridgeAdapter  # noqa: E402
from app.aggregator.service import ServiceContainer, build_memory_container  # noqa: E402
from app.aggregator.stores import ApiKeyRecord, MemoryApiKeyStore, MemorySecurityStore  # noqa: E402
from app.aggregator.types import (  # noqa: E402
    AuditEvent,
    BridgeProvider,
    ExploitEvent,
    GasDetails,
    RawQuote,
    RouteRequest,
)
from app.core.security import generate_api_key  # noqa: E402
from app.main import app  # noqa: E402

TODAY = date(2026, 1, 1)


def make_raw(
    provider: BridgeProvider,
    fee: float = 1.0,
    gas: float = 0.5,
    expected: float = 998.5,
    seconds: int = 120,
    **kwargs,
) -> RawQuote:
    return RawQuote(
        provider=provider,
        bridge_fee_usd=fee,
        gas=GasDetails(source_chain="ethereum", destination_chain="polygon", source_gas_usd=gas),
        amount_in=1000.0,
        expected_output=expected,
        est_time_seconds=seconds,
        **kwargs,
    )


class StubAdapter(BaseBridgeAdapter):
    """Adapter returning a canned RawQuote after an optional delay; counts calls."""

    def __init__(
        self,
        provider: BridgeProvider,
        result: RawQuote | None = None,
        delay: float = 0.0,
        exc: Exception | None = None,
    ):
        super().__init__()
        self.provider = provider
        self._result = result
        self.delay = delay
        self.exc = exc
        self.calls = 0

    async def _fetch_quote(self, request: RouteRequest) -> RawQuote:
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.exc is not None:
            raise self.exc
        return self._result or make_raw(self.provider)


@pytest.fixture
def route_request() -> RouteRequest:
    return RouteRequest(from_chain="ethereum", to_chain="polygon", token="USDC", amount=1000, slippage=0.5)


@pytest.fixture
def security_store() -> MemorySecurityStore:
    store = MemorySecurityStore()
    store.add_audit("Hop", AuditEvent(firm="Solidified", date=date(2021, 5, 5), result="passed"))
    store.add_audit("Across", AuditEvent(firm="OpenZeppelin", date=date(2022, 3, 1), result="passed"))
    store.add_exploit("Synapse", ExploitEvent(date=date(2021, 11, 6), loss_amount=8_000_000, description="Pool drain"))
    return store


@pytest.fixture
def key_store() -> MemoryApiKeyStore:
    return MemoryApiKeyStore()


@pytest.fixture
def adapters() -> list[StubAdapter]:
    return [
        StubAdapter(BridgeProvider.ACROSS, make_raw(BridgeProvider.ACROSS, fee=1.0, seconds=60)),
        StubAdapter(BridgeProvider.HOP, make_raw(BridgeProvider.HOP, fee=2.5, seconds=900)),
        StubAdapter(BridgeProvider.STARGATE, make_raw(BridgeProvider.STARGATE, fee=0.8, seconds=180)),
    ]


@pytest.fixture
def container(adapters, security_store, key_store) -> ServiceContainer:
    return build_memory_container(settings, adapters, security_store=security_store, key_store=key_store)


@pytest.fixture
async def client(container: ServiceContainer) -> AsyncGenerator[AsyncClient, None]:
    app.state.container = container
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
    app.state.container = None


async def _issue_key(key_store: MemoryApiKeyStore, permissions: list[str], **kwargs) -> str:
    raw_key, key_hash = generate_api_key()
    await key_store.create(
        ApiKeyRecord(id=uuid.uuid4(), key_hash=key_hash, name="test key", permissions=permissions, **kwargs)
    )
    return raw_key


@pytest.fixture
async def admin_headers(key_store: MemoryApiKeyStore) -> dict[str, str]:
    raw_key = await _issue_key(key_store, ["admin:manage", "security:read"])
    return {"X-API-Key": raw_key}


@pytest.fixture
async def reader_headers(key_store: MemoryApiKeyStore) -> dict[str, str]:
    raw_key = await _issue_key(key_store, ["security:read"])
    return {"Authorization": f"Bearer {raw_key}"}


@pytest.fixture
async def plain_headers(key_store: MemoryApiKeyStore) -> dict[str, str]:
    raw_key = await _issue_key(key_store, [])
    return {"X-API-Key": raw_key}

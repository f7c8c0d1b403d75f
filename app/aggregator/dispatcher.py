"""Fan-Out Dispatcher — concurrent adapter calls under two deadlines.

Every adapter gets its own task. A call that exceeds the per-provider
timeout, raises, or returns something that is not a RawQuote becomes a
ProviderError for that provider only. At the global deadline the tasks
still pending are cancelled and reported as errors; results that already
arrived are kept.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Sequence
from dataclasses import dataclass, field

from app.aggregator.adapters import BaseBridgeAdapter
from app.aggregator.types import (
    BridgeProvider,
    ProviderError,
    ProviderErrorKind,
    RawQuote,
    RouteRequest,
)

logger = logging.getLogger(__name__)


@dataclass
class DispatchOutcome:
    """Per-provider results of one fan-out, keyed by provider id."""

    results: dict[BridgeProvider, RawQuote | ProviderError] = field(default_factory=dict)
    elapsed_seconds: float = 0.0

    @property
    def quotes(self) -> list[RawQuote]:
        return [r for r in self.results.values() if isinstance(r, RawQuote)]

    @property
    def errors(self) -> list[ProviderError]:
        return [r for r in self.results.values() if isinstance(r, ProviderError)]


def _drain(task: asyncio.Task) -> None:
    """Retrieve the outcome of an abandoned task so it is never reported as unhandled."""
    if not task.cancelled():
        task.exception()


def _require_unique(adapters: Sequence[BaseBridgeAdapter]) -> None:
    seen: set[BridgeProvider] = set()
    for adapter in adapters:
        if adapter.provider in seen:
            raise ValueError(f"Duplicate adapter for provider: {adapter.provider.value}")
        seen.add(adapter.provider)


class FanOutDispatcher:
    """Issues one quote call per adapter and reconciles them as they arrive.

    Usage:
        dispatcher = FanOutDispatcher(provider_timeout=5.0, global_timeout=8.0)
        outcome = await dispatcher.dispatch(request, adapters)
        outcome.quotes, outcome.errors
    """

    def __init__(self, provider_timeout: float = 5.0, global_timeout: float = 8.0):
        if global_timeout <= provider_timeout:
            raise ValueError("global_timeout must be greater than provider_timeout")
        self.provider_timeout = provider_timeout
        self.global_timeout = global_timeout

    async def dispatch(
        self,
        request: RouteRequest,
        adapters: Sequence[BaseBridgeAdapter],
    ) -> DispatchOutcome:
        started = time.monotonic()
        outcome = DispatchOutcome()
        if not adapters:
            return outcome
        _require_unique(adapters)

        tasks: dict[asyncio.Task, BridgeProvider] = {
            asyncio.create_task(self._call(adapter, request), name=f"quote:{adapter.provider.value}"): adapter.provider
            for adapter in adapters
        }
        done, pending = await asyncio.wait(tasks, timeout=self.global_timeout)

        for task in done:
            provider = tasks[task]
            if task.cancelled():
                outcome.results[provider] = ProviderError(provider, "Quote call was cancelled", ProviderErrorKind.CANCELLED)
            else:
                outcome.results[provider] = task.result()

        # Not awaited: waiting on cancellation would push latency past the deadline
        for task in pending:
            provider = tasks[task]
            task.cancel()
            task.add_done_callback(_drain)
            outcome.results[provider] = ProviderError(
                provider,
                f"No response within {self.global_timeout}s",
                ProviderErrorKind.CANCELLED,
            )

        outcome.elapsed_seconds = time.monotonic() - started
        if pending:
            logger.warning(
                "Global deadline hit: %d/%d providers still pending",
                len(pending),
                len(tasks),
            )
        logger.debug(
            "Fan-out finished in %.3fs: %d quotes, %d errors",
            outcome.elapsed_seconds,
            len(outcome.quotes),
            len(outcome.errors),
        )
        return outcome

    async def _call(self, adapter: BaseBridgeAdapter, request: RouteRequest) -> RawQuote | ProviderError:
        provider = adapter.provider
        try:
            result = await asyncio.wait_for(adapter.quote(request), timeout=self.provider_timeout)
        except asyncio.TimeoutError:
            logger.info("%s timed out after %.1fs", provider.display_name, self.provider_timeout)
            return ProviderError(provider, f"Timeout after {self.provider_timeout}s", ProviderErrorKind.TIMEOUT)
        except Exception:
            logger.exception("Adapter %s raised", provider.value)
            return ProviderError(provider, "Provider adapter failed", ProviderErrorKind.INTERNAL)

        if not isinstance(result, (RawQuote, ProviderError)):
            logger.warning("Adapter %s returned %s", provider.value, type(result).__name__)
            return ProviderError(provider, "Malformed provider response", ProviderErrorKind.MALFORMED)
        return result

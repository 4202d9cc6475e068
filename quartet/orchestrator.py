from __future__ import annotations
import asyncio
import logging
import time
from dataclasses import replace
from typing import Any, Optional

import httpx

from .aggregator import ResultAggregator
from .errors import ErrorKind, UnknownModel
from .providers.types import AggregateResponse, PromptRequest, ProviderOutcome

logger = logging.getLogger(__name__)

# failures that DEV_MOCK may paper over; config and adapter bugs stay visible
MOCKABLE = (ErrorKind.UPSTREAM_ERROR, ErrorKind.TIMEOUT, ErrorKind.TRANSPORT_ERROR)


class QueryOrchestrator:
    """Fan one prompt out to every requested model and join on all of them.

    Each slot is isolated: whatever one adapter does (raise, hang, return an
    error body) ends up as that slot's ``ProviderOutcome`` and nothing else.
    The join only completes once every slot has settled.
    """

    def __init__(
        self,
        registry: Any,
        *,
        aggregator: Optional[ResultAggregator] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        dev_mock: bool = False,
    ) -> None:
        self.registry = registry
        self.aggregator = aggregator or ResultAggregator()
        self._transport = transport
        self.dev_mock = dev_mock

    async def run(self, request: PromptRequest) -> AggregateResponse:
        request.validate()
        t0 = time.perf_counter()
        async with httpx.AsyncClient(transport=self._transport) as client:
            outcomes = await asyncio.gather(
                *(self._run_slot(name, request.prompt, client) for name in request.models)
            )
        result = self.aggregator.merge(zip(request.models, outcomes))
        ok = sum(1 for o in outcomes if o.ok)
        logger.info(
            "fan-out to %d model(s) finished in %d ms: %d ok, %d failed",
            len(outcomes),
            int((time.perf_counter() - t0) * 1000),
            ok,
            len(outcomes) - ok,
        )
        return result

    async def _run_slot(self, name: str, prompt: str, client: httpx.AsyncClient) -> ProviderOutcome:
        try:
            adapter = self.registry.resolve(name)
        except UnknownModel as e:
            logger.warning("%s", e)
            return ProviderOutcome.failure(name, str(e), ErrorKind.UNKNOWN_MODEL)

        label = getattr(getattr(adapter, "spec", None), "label", name)
        timeout_s = adapter.timeout_s
        t0 = time.perf_counter()
        try:
            outcome = await asyncio.wait_for(adapter.invoke(prompt, client), timeout=timeout_s)
        except asyncio.TimeoutError:
            outcome = ProviderOutcome.failure(
                name,
                f"{label} timed out after {timeout_s:g}s",
                ErrorKind.TIMEOUT,
                latency_ms=int((time.perf_counter() - t0) * 1000),
            )
        except Exception as e:
            logger.exception("adapter for %s raised", name)
            outcome = ProviderOutcome.failure(
                name,
                f"{label} adapter failed: {type(e).__name__}: {e}",
                ErrorKind.INTERNAL_ERROR,
                latency_ms=int((time.perf_counter() - t0) * 1000),
            )

        if outcome.name != name:
            outcome = replace(outcome, name=name)
        if not outcome.ok:
            kind = getattr(outcome.error_kind, "value", outcome.error_kind)
            logger.warning("%s failed (%s): %s", name, kind, outcome.error)
            if self.dev_mock and outcome.error_kind in MOCKABLE:
                return self._mock(name, label, outcome)
        return outcome

    @staticmethod
    def _mock(name: str, label: str, failed: ProviderOutcome) -> ProviderOutcome:
        text = f"Mock response for {name}: {label} unavailable ({failed.error}). This is a simulated reply."
        return ProviderOutcome(
            name=name,
            ok=True,
            text=text,
            latency_ms=failed.latency_ms,
            raw=failed.raw,
            mocked=True,
        )

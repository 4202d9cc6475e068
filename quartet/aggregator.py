from __future__ import annotations
from datetime import datetime, timezone
from typing import Callable, Dict, Iterable, Tuple

from .providers.types import AggregateResponse, ProviderOutcome


def utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class ResultAggregator:
    """Folds per-provider outcomes into one envelope stamped at merge time."""

    def __init__(self, clock: Callable[[], str] = utcnow_iso) -> None:
        self._clock = clock

    def merge(self, outcomes: Iterable[Tuple[str, ProviderOutcome]]) -> AggregateResponse:
        per_model: Dict[str, ProviderOutcome] = {}
        for name, outcome in outcomes:
            if name in per_model:
                raise ValueError(f"duplicate outcome for model '{name}'")
            per_model[name] = outcome
        return AggregateResponse(success=True, per_model=per_model, timestamp=self._clock())

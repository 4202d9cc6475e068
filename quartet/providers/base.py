from __future__ import annotations
import json
import logging
import time
from typing import Any, Dict, Optional

import httpx

from ..errors import ErrorKind
from .types import ProviderOutcome, ProviderSpec

logger = logging.getLogger(__name__)

_NOT_JSON = object()


def _dig(data: Any, *path: Any) -> Any:
    """Walk nested dicts/lists; None as soon as a step is missing."""
    cur = data
    for key in path:
        if isinstance(key, int):
            if not isinstance(cur, list) or len(cur) <= key:
                return None
            cur = cur[key]
        else:
            if not isinstance(cur, dict):
                return None
            cur = cur.get(key)
        if cur is None:
            return None
    return cur


def error_message_from_body(data: Any) -> Optional[str]:
    """Describe the `error` member of a provider body; None only when there is none.

    Prefers `error.message`, then `status` or `code`; any other non-empty error
    value is rendered as compact JSON.
    """
    err = _dig(data, "error")
    if isinstance(err, dict):
        for key in ("message", "status", "code"):
            if err.get(key) not in (None, ""):
                return str(err[key])
    if isinstance(err, str):
        return err or None
    if err in (None, "", {}, []):
        return None
    return json.dumps(err, sort_keys=True)


class BaseProvider:
    """Generic executor for one provider; families override the request/response hooks."""

    family = ""

    def __init__(self, spec: ProviderSpec, api_key: str | None) -> None:
        self.spec = spec
        self.api_key = api_key

    @property
    def name(self) -> str:
        return self.spec.name

    @property
    def timeout_s(self) -> float:
        return self.spec.timeout_s

    @property
    def enabled(self) -> bool:
        return bool(self.api_key)

    # ---- family hooks ----
    def build_url(self) -> str:
        return self.spec.endpoint

    def build_params(self) -> Dict[str, str]:
        return {}

    def build_headers(self) -> Dict[str, str]:
        return {"Content-Type": "application/json"}

    def build_payload(self, prompt: str) -> Dict[str, Any]:
        raise NotImplementedError

    def extract_text(self, data: Any) -> Optional[str]:
        raise NotImplementedError

    # ---- executor ----
    def _fail(self, message: str, kind: ErrorKind, t0: float, raw: Any = None) -> ProviderOutcome:
        latency_ms = int((time.perf_counter() - t0) * 1000)
        return ProviderOutcome.failure(self.name, message, kind, latency_ms=latency_ms, raw=raw)

    async def invoke(self, prompt: str, client: httpx.AsyncClient) -> ProviderOutcome:
        if not self.enabled:
            return ProviderOutcome.failure(
                self.name,
                f"{self.spec.credential_label} credential missing ({self.spec.credential} not set)",
                ErrorKind.MISSING_CREDENTIAL,
            )
        label = self.spec.label
        t0 = time.perf_counter()
        try:
            request = client.build_request(
                "POST",
                self.build_url(),
                params=self.build_params() or None,
                json=self.build_payload(prompt),
                headers=self.build_headers(),
                timeout=self.spec.timeout_s,
            )
        except Exception as e:
            # a broken endpoint template or hook, never an upstream problem
            logger.error("%s: could not build request: %s: %s", self.name, type(e).__name__, e)
            return self._fail(
                f"{label} misconfigured: could not build request ({type(e).__name__}: {e})", ErrorKind.CONFIG_ERROR, t0
            )
        try:
            r = await client.send(request)
        except httpx.TimeoutException as e:
            return self._fail(f"{label} timed out after {self.spec.timeout_s:g}s ({type(e).__name__})", ErrorKind.TIMEOUT, t0)
        except httpx.HTTPError as e:
            return self._fail(f"{label} error: {type(e).__name__}: {e}", ErrorKind.TRANSPORT_ERROR, t0)
        latency_ms = int((time.perf_counter() - t0) * 1000)

        try:
            data = r.json()
        except ValueError:
            data = _NOT_JSON
        raw = None if data is _NOT_JSON else data

        if not r.is_success:
            cause = error_message_from_body(raw) or (r.text or "").strip()[:300] or r.reason_phrase
            return ProviderOutcome.failure(
                self.name,
                f"{label} error: HTTP {r.status_code}: {cause}",
                ErrorKind.UPSTREAM_ERROR,
                latency_ms=latency_ms,
                raw=raw,
            )
        if data is _NOT_JSON:
            return ProviderOutcome.failure(
                self.name,
                f"{label} error: response body is not valid JSON",
                ErrorKind.UPSTREAM_ERROR,
                latency_ms=latency_ms,
            )

        text = self.extract_text(data)
        if text:
            return ProviderOutcome.success(self.name, text, latency_ms=latency_ms, raw=data)
        upstream_err = error_message_from_body(data)
        if upstream_err:
            return ProviderOutcome.failure(
                self.name, f"{label} error: {upstream_err}", ErrorKind.UPSTREAM_ERROR, latency_ms=latency_ms, raw=data
            )
        # empty or filtered output is an answer, not a failure
        logger.debug("%s returned no text; using fallback", self.name)
        return ProviderOutcome.success(self.name, self.spec.fallback_text, latency_ms=latency_ms, raw=data)

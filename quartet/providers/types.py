from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Optional, Tuple

from ..errors import ErrorKind, InvalidRequest

DEFAULT_TIMEOUT_S = 30.0
DEFAULT_FALLBACK_TEXT = "No response"


@dataclass(frozen=True)
class ProviderSpec:
    name: str  # logical identifier, e.g. "gemini"
    label: str  # human readable, used in error messages
    family: str  # "chat_completions" | "generate_content"
    endpoint: str
    upstream_model: str
    credential: str  # env var holding the API key
    timeout_s: float = DEFAULT_TIMEOUT_S
    fallback_text: str = DEFAULT_FALLBACK_TEXT

    @property
    def credential_label(self) -> str:
        # GEMINI_API_KEY -> GEMINI
        cred = self.credential
        for suffix in ("_API_KEY", "_KEY"):
            if cred.endswith(suffix):
                return cred[: -len(suffix)]
        return cred


@dataclass(frozen=True)
class PromptRequest:
    prompt: str
    models: Tuple[str, ...]
    include_raw: bool = False

    @classmethod
    def create(cls, prompt: Optional[str], models: Iterable[str] | None, include_raw: bool = False) -> "PromptRequest":
        """Normalize caller input: trim names, drop blanks and repeated models (first wins)."""
        seen: Dict[str, None] = {}
        for m in models or ():
            name = str(m).strip()
            if name and name not in seen:
                seen[name] = None
        return cls(prompt=prompt or "", models=tuple(seen), include_raw=include_raw)

    def validate(self) -> None:
        if not isinstance(self.prompt, str) or not self.prompt.strip():
            raise InvalidRequest("prompt must be a non-empty string")
        if not self.models:
            raise InvalidRequest("at least one model is required")
        if len(set(self.models)) != len(self.models):
            raise InvalidRequest("models must not repeat")


@dataclass(frozen=True)
class ProviderOutcome:
    name: str
    ok: bool
    text: str = ""
    error: Optional[str] = None
    error_kind: Optional[ErrorKind] = None
    latency_ms: int = 0
    raw: Any = None
    mocked: bool = False

    @classmethod
    def success(cls, name: str, text: str, *, latency_ms: int = 0, raw: Any = None) -> "ProviderOutcome":
        return cls(name=name, ok=True, text=text, latency_ms=latency_ms, raw=raw)

    @classmethod
    def failure(
        cls,
        name: str,
        error: str,
        kind: ErrorKind,
        *,
        latency_ms: int = 0,
        raw: Any = None,
    ) -> "ProviderOutcome":
        return cls(name=name, ok=False, text="", error=error, error_kind=kind, latency_ms=latency_ms, raw=raw)

    def to_dict(self, include_raw: bool = False) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "ok": self.ok,
            "text": self.text,
            "errorMessage": self.error,
            "errorKind": self.error_kind.value if self.error_kind else None,
            "latencyMs": self.latency_ms,
            "mocked": self.mocked,
        }
        if include_raw:
            out["raw"] = self.raw
        return out


@dataclass(frozen=True)
class AggregateResponse:
    success: bool
    per_model: Dict[str, ProviderOutcome] = field(default_factory=dict)
    timestamp: str = ""

    def to_dict(self, include_raw: bool = False) -> Dict[str, Any]:
        return {
            "success": self.success,
            "perModel": {name: o.to_dict(include_raw) for name, o in self.per_model.items()},
            "timestamp": self.timestamp,
        }

    def single_model_view(self, name: str) -> Dict[str, Any]:
        """Flat shape used when the caller asked for exactly one model."""
        o = self.per_model[name]
        return {
            "success": o.ok,
            "model": name,
            "output": o.text,
            "error": o.error,
            "timestamp": self.timestamp,
        }

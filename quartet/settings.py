from __future__ import annotations
import json
import os
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Tuple

from dotenv import dotenv_values, find_dotenv
from jsonschema import Draft202012Validator

from .errors import ConfigError
from .providers.types import DEFAULT_FALLBACK_TEXT, DEFAULT_TIMEOUT_S, ProviderSpec

DEFAULT_PROVIDERS_FILE = Path(__file__).resolve().parent / "configs" / "providers.json"
PROVIDERS_SCHEMA_FILE = Path(__file__).resolve().parent / "configs" / "schemas" / "providers.schema.json"
TRUTHY = ("1", "true", "yes", "on")


@dataclass(frozen=True)
class Settings:
    providers: Tuple[ProviderSpec, ...]
    # env var -> key; only presence is ever reported
    credentials: Mapping[str, Optional[str]] = field(default_factory=dict, repr=False)
    dev_mock: bool = False
    log_level: str = "INFO"
    host: str = "0.0.0.0"
    port: int = 5000
    providers_file: Optional[Path] = None

    def credential_status(self) -> Dict[str, bool]:
        return {name: bool(value) for name, value in self.credentials.items()}

    def upstream_models(self) -> Dict[str, str]:
        return {p.name: p.upstream_model for p in self.providers}


@lru_cache(maxsize=None)
def _table_validator() -> Draft202012Validator:
    return Draft202012Validator(json.loads(PROVIDERS_SCHEMA_FILE.read_text(encoding="utf-8")))


def provider_table_errors(data: Any) -> list[str]:
    """Schema violations of a provider table as `path: message` lines (empty when valid)."""
    errors = sorted(_table_validator().iter_errors(data), key=lambda e: [str(p) for p in e.path])
    return [f"{'/'.join(map(str, e.path)) or '<root>'}: {e.message}" for e in errors]


def load_provider_table(path: Path) -> Dict[str, Any]:
    try:
        data = json.loads(Path(path).read_text(encoding="utf-8"))
    except FileNotFoundError:
        raise ConfigError(f"provider table not found: {path}") from None
    except json.JSONDecodeError as e:
        raise ConfigError(f"provider table is not valid JSON: {path}", [str(e)]) from None
    errors = provider_table_errors(data)
    if errors:
        raise ConfigError(f"invalid provider table {path}", errors)
    return data


def _env_float(env: Mapping[str, str], key: str, default: float) -> float:
    raw = env.get(key)
    if raw is None or raw == "":
        return default
    try:
        value = float(raw)
    except ValueError:
        raise ConfigError(f"{key} must be a number, got {raw!r}") from None
    if value <= 0:
        raise ConfigError(f"{key} must be positive, got {raw!r}")
    return value


def _env_int(env: Mapping[str, str], key: str, default: int) -> int:
    raw = env.get(key)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigError(f"{key} must be an integer, got {raw!r}") from None


def read_dotenv() -> Dict[str, str]:
    """Variables from the nearest `.env` above the working directory; os.environ is left untouched."""
    path = find_dotenv(usecwd=True)
    if not path:
        return {}
    return {k: v for k, v in dotenv_values(path).items() if v is not None}


def load_settings(env: Mapping[str, str] | None = None, providers_file: Path | None = None) -> Settings:
    """Build the immutable settings once at startup.

    With no explicit ``env`` the process environment is used, after merging a
    ``.env`` file from the working directory (existing variables win).
    Per-model overrides: ``<NAME>_MODEL`` and ``<NAME>_URL``.
    """
    if env is None:
        env = {**read_dotenv(), **os.environ}
    path = Path(providers_file or env.get("QUARTET_PROVIDERS_FILE") or DEFAULT_PROVIDERS_FILE)
    table = load_provider_table(path)
    default_timeout = _env_float(env, "PROVIDER_TIMEOUT_S", DEFAULT_TIMEOUT_S)

    specs = []
    for entry in table["models"]:
        name = entry["name"]
        key = name.upper().replace("-", "_")
        specs.append(
            ProviderSpec(
                name=name,
                label=entry.get("label") or name,
                family=entry["family"],
                endpoint=env.get(f"{key}_URL") or entry["endpoint"],
                upstream_model=env.get(f"{key}_MODEL") or entry["upstream_model"],
                credential=entry["credential"],
                timeout_s=float(entry.get("timeout_s", default_timeout)),
                fallback_text=entry.get("fallback_text", DEFAULT_FALLBACK_TEXT),
            )
        )
    credentials = {s.credential: (env.get(s.credential) or None) for s in specs}
    return Settings(
        providers=tuple(specs),
        credentials=MappingProxyType(credentials),
        dev_mock=str(env.get("DEV_MOCK", "")).strip().lower() in TRUTHY,
        log_level=(env.get("LOG_LEVEL") or "INFO").upper(),
        host=env.get("HOST") or "0.0.0.0",
        port=_env_int(env, "PORT", 5000),
        providers_file=path,
    )

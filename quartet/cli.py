from __future__ import annotations
import argparse
import asyncio
import json
import sys
from typing import List, Optional

import httpx

from .errors import ConfigError, InvalidRequest
from .log import configure_logging
from .orchestrator import QueryOrchestrator
from .providers.registry import ProviderRegistry
from .providers.types import PromptRequest
from .settings import Settings, load_settings

DEFAULT_URL = "http://localhost:5000"
TEST_PROMPT = "What is 2+2?"


def cmd_query(settings: Settings, prompt: str, models: Optional[List[str]], raw: bool) -> int:
    registry = ProviderRegistry(settings)
    orch = QueryOrchestrator(registry, dev_mock=settings.dev_mock)
    req = PromptRequest.create(prompt, models or registry.names(), include_raw=raw)
    try:
        result = asyncio.run(orch.run(req))
    except InvalidRequest as e:
        print(f"Invalid request: {e}", file=sys.stderr)
        return 2
    print(json.dumps(result.to_dict(include_raw=raw), indent=2))
    return 0


def cmd_models(settings: Settings) -> int:
    creds = settings.credential_status()
    rows = [(p.name, p.family, p.upstream_model, "yes" if creds.get(p.credential) else "no") for p in settings.providers]
    w = max([len("MODEL")] + [len(r[0]) for r in rows])
    f = max([len("FAMILY")] + [len(r[1]) for r in rows])
    u = max([len("UPSTREAM")] + [len(r[2]) for r in rows])
    header = f"{'MODEL'.ljust(w)}  {'FAMILY'.ljust(f)}  {'UPSTREAM'.ljust(u)}  KEY"
    print(header)
    print("-" * len(header))
    for name, family, upstream, key in rows:
        print(f"{name.ljust(w)}  {family.ljust(f)}  {upstream.ljust(u)}  {key}")
    return 0


def cmd_health(settings: Settings) -> int:
    registry = ProviderRegistry(settings)
    print(json.dumps({
        "apiKeysConfigured": registry.credential_status(),
        "credentials": settings.credential_status(),
        "devMock": settings.dev_mock,
    }, indent=2))
    return 0


def cmd_check(settings: Settings, url: str, prompt: str, client: Optional[httpx.Client] = None) -> int:
    """Smoke-test a running server: health first, then one query per model."""
    base = url.rstrip("/")
    own_client = client is None
    client = client or httpx.Client(timeout=40.0)
    try:
        print("Checking API keys...")
        creds = settings.credential_status()
        for p in settings.providers:
            state = "configured" if creds.get(p.credential) else f"missing {p.credential}"
            print(f"   {p.name.upper()}: {state}")

        print("Checking backend health...")
        try:
            h = client.get(f"{base}/health", timeout=5.0)
            h.raise_for_status()
        except httpx.HTTPError as e:
            print(f"   Backend not responding at {base}: {e}", file=sys.stderr)
            return 1
        print(f"   Status: {h.json().get('status')}")

        print("Testing models...")
        failed = 0
        for p in settings.providers:
            try:
                r = client.post(f"{base}/api/query", json={"model": p.name, "prompt": prompt})
                data = r.json()
            except (httpx.HTTPError, ValueError) as e:
                failed += 1
                print(f"   {p.name.upper()}: request failed: {e}")
                continue
            if data.get("success"):
                print(f"   {p.name.upper()}: {str(data.get('output', ''))[:50]}")
            else:
                failed += 1
                print(f"   {p.name.upper()}: {data.get('error')}")
        print(f"Done: {len(settings.providers) - failed} ok, {failed} failed")
        return 0
    finally:
        if own_client:
            client.close()


def cmd_serve(settings: Settings, host: Optional[str], port: Optional[int]) -> int:
    import uvicorn

    from .app import create_app

    uvicorn.run(create_app(settings), host=host or settings.host, port=port or settings.port)
    return 0


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="quartet-cli", description="Ask several LLM providers at once")
    p.add_argument("command", choices=["query", "models", "health", "check", "serve"], help="CLI command")
    p.add_argument("--providers-file", dest="providers_file", default=None, help="Provider table JSON (default: bundled)")
    # query
    p.add_argument("--prompt", dest="prompt", default=None, help="Prompt text (query, check)")
    p.add_argument("--models", dest="models", nargs="*", default=None, help="Logical model names (default: all)")
    p.add_argument("--raw", dest="raw", action="store_true", help="Include raw provider bodies in the output")
    # check / serve
    p.add_argument("--url", dest="url", default=DEFAULT_URL, help=f"Server URL for check (default: {DEFAULT_URL})")
    p.add_argument("--host", dest="host", default=None, help="Bind host for serve")
    p.add_argument("--port", dest="port", type=int, default=None, help="Bind port for serve")
    return p


def main(argv: List[str] | None = None) -> int:
    argv = list(sys.argv[1:] if argv is None else argv)
    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        settings = load_settings(providers_file=args.providers_file)
    except ConfigError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 3
    configure_logging(settings.log_level)
    if args.command == "query":
        if not args.prompt:
            print("--prompt is required for query", file=sys.stderr)
            return 2
        return cmd_query(settings, args.prompt, args.models, args.raw)
    if args.command == "models":
        return cmd_models(settings)
    if args.command == "health":
        return cmd_health(settings)
    if args.command == "check":
        return cmd_check(settings, args.url, args.prompt or TEST_PROMPT)
    if args.command == "serve":
        return cmd_serve(settings, args.host, args.port)
    parser.print_help()
    return 2


if __name__ == "__main__":
    raise SystemExit(main())

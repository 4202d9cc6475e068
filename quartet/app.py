from __future__ import annotations
import logging
from typing import Any, Dict, List, Optional

import httpx
from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field
from starlette.exceptions import HTTPException as StarletteHTTPException

from .aggregator import utcnow_iso
from .errors import InvalidRequest
from .log import configure_logging
from .orchestrator import QueryOrchestrator
from .providers.registry import ProviderRegistry
from .providers.types import PromptRequest
from .settings import Settings, load_settings

APP_VERSION = "0.2.0"

logger = logging.getLogger(__name__)


class QueryBody(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    prompt: Optional[str] = None
    model: Optional[str] = None
    models: Optional[List[str]] = None
    include_raw: bool = Field(default=False, alias="includeRaw")


class AskBody(BaseModel):
    prompt: Optional[str] = None
    models: Optional[List[str]] = None


class Health(BaseModel):
    status: str
    timestamp: str
    apiKeysConfigured: Dict[str, bool]
    credentials: Dict[str, bool]
    devMock: bool


class VersionInfo(BaseModel):
    version: str
    models: Dict[str, str]


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": message})


def create_app(settings: Settings | None = None, transport: httpx.AsyncBaseTransport | None = None) -> FastAPI:
    settings = settings or load_settings()
    configure_logging(settings.log_level)

    app = FastAPI(title="LLM Quartet", version=APP_VERSION)
    # CORS for local dev (frontend on Vite)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.settings = settings
    app.state.providers = ProviderRegistry(settings)
    app.state.orchestrator = QueryOrchestrator(
        app.state.providers, transport=transport, dev_mock=settings.dev_mock
    )

    @app.exception_handler(StarletteHTTPException)
    async def http_error(request: Request, exc: StarletteHTTPException):
        return _error(exc.status_code, str(exc.detail))

    @app.exception_handler(RequestValidationError)
    async def body_error(request: Request, exc: RequestValidationError):
        return _error(400, "Invalid request body")

    @app.exception_handler(Exception)
    async def server_error(request: Request, exc: Exception):
        logger.exception("unhandled error on %s %s", request.method, request.url.path)
        return _error(500, f"Server error: {exc}")

    @app.get("/health", response_model=Health)
    async def health():
        s: Settings = app.state.settings
        return Health(
            status="ok",
            timestamp=utcnow_iso(),
            apiKeysConfigured=app.state.providers.credential_status(),
            credentials=s.credential_status(),
            devMock=s.dev_mock,
        )

    @app.get("/version", response_model=VersionInfo)
    async def version():
        return VersionInfo(version=APP_VERSION, models=app.state.settings.upstream_models())

    @app.post("/api/query")
    async def query(body: QueryBody):
        single = body.models is None
        models = [body.model] if single and body.model else (body.models or [])
        if not models or not (body.prompt or "").strip():
            raise HTTPException(status_code=400, detail="Missing model or prompt")
        req = PromptRequest.create(body.prompt, models, include_raw=body.include_raw)
        try:
            result = await app.state.orchestrator.run(req)
        except InvalidRequest as e:
            raise HTTPException(status_code=400, detail=str(e))
        if single:
            return result.single_model_view(req.models[0])
        return result.to_dict(include_raw=req.include_raw)

    @app.post("/api/ask")
    async def ask(body: AskBody):
        if not (body.prompt or "").strip():
            raise HTTPException(status_code=400, detail="prompt is required")
        models = body.models if body.models is not None else app.state.providers.names()
        req = PromptRequest.create(body.prompt, models, include_raw=True)
        try:
            result = await app.state.orchestrator.run(req)
        except InvalidRequest as e:
            raise HTTPException(status_code=400, detail=str(e))
        results: Dict[str, Any] = {}
        for name, o in result.per_model.items():
            results[name] = {
                "ok": o.ok,
                "text": o.text if o.ok else f"Error: {o.error}",
                "raw": o.raw,
            }
        return {"results": results, "timestamp": result.timestamp}

    return app


app = create_app()

"""FastAPI application exposing the browser UI, schedules, resources, logs and uptime."""

from __future__ import annotations

import time
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncIterator

from fastapi import Body, Depends, FastAPI, Header, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import HTMLResponse, JSONResponse, PlainTextResponse
from fastapi.staticfiles import StaticFiles
from loguru import logger
from pydantic import BaseModel

from scalecron import __version__
from scalecron.config.settings import Settings, get_settings
from scalecron.control.client import ControlPlaneClient
from scalecron.control.dispatcher import ActionDispatcher
from scalecron.cron.service import SchedulingEngine
from scalecron.cron.timer import CronTimer
from scalecron.errors import (
    ControlPlaneError,
    EngineNotReady,
    InvalidCronExpression,
    PersistenceError,
    ScheduleNotFound,
    SchedulingError,
    ValidationError,
)
from scalecron.logs.capture import TokenLogStore, token_logger
from scalecron.store.base import open_store

STATIC_DIR = Path(__file__).parent / "static"

_STATUS_BY_ERROR: dict[type[SchedulingError], int] = {
    ValidationError: 400,
    InvalidCronExpression: 400,
    ScheduleNotFound: 404,
    PersistenceError: 500,
    EngineNotReady: 503,
}


class LoginRequest(BaseModel):
    token: str


def build_engine(settings: Settings, client: ControlPlaneClient) -> SchedulingEngine:
    """Wire an engine from process configuration."""
    return SchedulingEngine(
        dispatcher=ActionDispatcher(client),
        timer=CronTimer(tz=settings.zone()),
        store=open_store(settings.store_path),
        fallback_token=settings.api_token,
    )


def bearer_token(authorization: str | None = Header(default=None)) -> str:
    if not authorization:
        raise HTTPException(status_code=401, detail="Authorization header required")
    parts = authorization.split(" ")
    if len(parts) != 2 or parts[0] != "Bearer" or not parts[1]:
        raise HTTPException(status_code=401, detail="Invalid Authorization header format")
    return parts[1]


def _format_uptime(seconds: float) -> str:
    total = int(seconds)
    hours, rem = divmod(total, 3600)
    minutes, secs = divmod(rem, 60)
    return f"{hours}h{minutes}m{secs}s"


def _parse_handle(raw: str) -> int:
    try:
        handle = int(raw)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid job handle format: '{raw}'") from None
    if handle <= 0:
        raise HTTPException(status_code=400, detail=f"Invalid job handle format: '{raw}'")
    return handle


def create_app(
    settings: Settings | None = None,
    *,
    engine: SchedulingEngine | None = None,
    client: ControlPlaneClient | None = None,
    log_store: TokenLogStore | None = None,
) -> FastAPI:
    """Build the HTTP app. The engine is started and stopped by the app lifespan."""
    if settings is None:
        settings = get_settings()
    if client is None:
        client = ControlPlaneClient(settings.api_base, timeout=settings.request_timeout)
    if engine is None:
        engine = build_engine(settings, client)
    if log_store is None:
        log_store = TokenLogStore(max_lines=settings.log_buffer_lines)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        log_store.install()
        app.state.started_at = time.monotonic()
        await engine.start()
        try:
            yield
        finally:
            engine.stop()
            log_store.uninstall()

    app = FastAPI(title="scalecron", version=__version__, lifespan=lifespan)
    app.state.engine = engine
    app.state.client = client
    app.state.log_store = log_store
    app.state.started_at = time.monotonic()
    app.mount("/static", StaticFiles(directory=str(STATIC_DIR)), name="static")

    @app.exception_handler(SchedulingError)
    async def _scheduling_error(_request: Request, exc: SchedulingError) -> JSONResponse:
        status = _STATUS_BY_ERROR.get(type(exc), 500)
        body: dict[str, Any] = {"error": str(exc), "code": exc.code}
        if isinstance(exc, ValidationError):
            body["fields"] = exc.fields
        return JSONResponse(status_code=status, content=body)

    @app.exception_handler(HTTPException)
    async def _http_error(_request: Request, exc: HTTPException) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})

    @app.exception_handler(RequestValidationError)
    async def _bad_body(_request: Request, _exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(status_code=400, content={"error": "Invalid request body"})

    # ------------------------------------------------------------------
    # Session
    # ------------------------------------------------------------------

    @app.get("/", response_class=HTMLResponse)
    async def home() -> HTMLResponse:
        index = STATIC_DIR / "index.html"
        if not index.exists():
            raise HTTPException(status_code=500, detail="UI not found")
        return HTMLResponse(index.read_text(encoding="utf-8"))

    @app.post("/login")
    async def login(body: LoginRequest) -> dict[str, str]:
        try:
            await client.list_projects(body.token)
        except ControlPlaneError as e:
            logger.warning("Login failed: {}", e)
            raise HTTPException(status_code=401, detail="Invalid API token or API error") from e
        log_store.reset(body.token)
        token_logger(body.token).info("Login successful")
        return {"message": "Login successful"}

    @app.get("/uptime")
    async def uptime(_token: str = Depends(bearer_token)) -> dict[str, str]:
        return {"uptime": _format_uptime(time.monotonic() - app.state.started_at)}

    @app.get("/logs", response_class=PlainTextResponse)
    async def logs(token: str = Depends(bearer_token)) -> str:
        text = log_store.read(token)
        return text or "No logs available for this token."

    @app.get("/health")
    async def health() -> dict[str, Any]:
        return engine.status()

    # ------------------------------------------------------------------
    # Resources
    # ------------------------------------------------------------------

    @app.get("/projects")
    async def projects(token: str = Depends(bearer_token)) -> list[dict[str, Any]]:
        try:
            items = await client.list_projects(token)
        except ControlPlaneError as e:
            raise HTTPException(status_code=500, detail=f"Failed to fetch projects: {e}") from e
        return [p.model_dump(by_alias=True) for p in items]

    @app.get("/databases")
    async def databases(token: str = Depends(bearer_token)) -> list[dict[str, Any]]:
        try:
            items = await client.list_databases(token)
        except ControlPlaneError as e:
            raise HTTPException(status_code=500, detail=f"Failed to fetch databases: {e}") from e
        return [d.model_dump(by_alias=True) for d in items]

    # ------------------------------------------------------------------
    # Schedules
    # ------------------------------------------------------------------

    @app.post("/schedule")
    async def create_schedule(
        payload: dict[str, Any] = Body(...),
        token: str = Depends(bearer_token),
    ) -> dict[str, Any]:
        handle = engine.create_schedule(payload, token)
        return {"message": "Schedule added successfully", "jobHandle": handle}

    @app.get("/schedules")
    async def list_schedules(_token: str = Depends(bearer_token)) -> dict[str, Any]:
        return engine.list_schedules().to_dict()

    @app.get("/schedules/{job_handle}")
    async def get_schedule(job_handle: str, _token: str = Depends(bearer_token)) -> dict[str, Any]:
        return engine.get_schedule(_parse_handle(job_handle)).to_dict()

    @app.delete("/schedule/delete/{job_handle}")
    async def delete_schedule(job_handle: str, _token: str = Depends(bearer_token)) -> dict[str, str]:
        engine.delete_schedule(_parse_handle(job_handle))
        return {"message": "Schedule deleted successfully"}

    return app

import logging
import os
from collections import deque
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

from fastapi import FastAPI
from fastapi.responses import JSONResponse
from nicegui import ui

from app.core.config import get_settings
from app.services.gateway import HttpBotGateway, create_http_client
from app.services.identity_service import LoginBroker
from app.ui.pages import register_pages

logger = logging.getLogger(__name__)


class BackendEventHandler(logging.Handler):
    """Mirror application logs into the dashboard activity feed."""

    def __init__(self, sink):
        super().__init__()
        self._sink = sink

    def emit(self, record: logging.LogRecord) -> None:
        try:
            message = self.format(record)
        except Exception:  # pragma: no cover - formatting errors
            message = record.getMessage()
        now_utc = datetime.now(timezone.utc).replace(microsecond=0)
        entry = {
            "timestamp": now_utc.isoformat().replace("+00:00", "Z"),
            "message": message,
            "level": (record.levelname or "INFO").lower(),
            "source": record.name,
        }
        self._sink(entry)


def _create_lifespan(enable_background_services: bool):
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        settings = get_settings()
        app.state.gateway = None
        app.state.login_broker = LoginBroker.from_settings(settings)
        app.state.backend_events = deque(maxlen=500)
        backend_handler = BackendEventHandler(app.state.backend_events.append)
        backend_handler.setLevel(logging.INFO)
        backend_handler.setFormatter(logging.Formatter("%(message)s"))
        app_logger = logging.getLogger("app")
        app_logger.setLevel(logging.INFO)
        app_logger.addHandler(backend_handler)

        if enable_background_services:
            app.state.gateway = HttpBotGateway(create_http_client(settings))
            logger.info("Bot service client opened for %s", settings.bot_service_url)
        else:
            logger.info("Background services disabled; bot service client not opened")

        try:
            yield
        finally:
            app_logger.removeHandler(backend_handler)
            backend_handler.close()
            gateway: Optional[HttpBotGateway] = app.state.gateway
            if gateway is not None:
                await gateway.aclose()
                app.state.gateway = None

    return lifespan


def create_app(enable_background_services: bool | None = None) -> FastAPI:
    settings = get_settings()
    if enable_background_services is None:
        enable_background_services = os.environ.get("PYTEST_CURRENT_TEST") is None
    app = FastAPI(
        title="quanturnic-console",
        version="0.1.0",
        lifespan=_create_lifespan(enable_background_services),
    )

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok", "bot_service": settings.bot_service_url}

    @app.get("/auth/callback")
    async def auth_callback(
        state: str,
        principal: str | None = None,
        error: str | None = None,
    ) -> JSONResponse:
        broker: LoginBroker | None = getattr(app.state, "login_broker", None)
        if broker is None:
            return JSONResponse({"detail": "login unavailable"}, status_code=503)
        principal = (principal or "").strip()
        if error or not principal:
            handled = broker.abandon(state, error or "identity provider returned no principal")
            status = "anonymous"
        else:
            handled = broker.complete(state, principal)
            status = "authenticated"
        if not handled:
            logger.warning("Ignoring login callback with unknown state")
            return JSONResponse({"detail": "unknown login state"}, status_code=404)
        return JSONResponse({"status": status}, status_code=200)

    register_pages(app)
    ui.run_with(app, storage_secret=settings.storage_secret)
    return app


app = create_app()

"""FastAPI application factory for the gateway."""

from __future__ import annotations

import uuid
from collections.abc import Awaitable, Callable, Mapping

from fastapi import FastAPI, Request, Response

from .api.routes import router
from .logging import bind_trace, configure_logging
from .providers import ProviderRegistry
from .services.gateway import GatewayService
from .settings import Settings, get_settings


def create_app(
    settings: Settings | None = None, environ: Mapping[str, str] | None = None
) -> FastAPI:
    settings = settings or get_settings()
    configure_logging(settings.log_level)
    gateway = GatewayService(settings=settings)

    app = FastAPI(title="Forge Provider Gateway", version="0.1.0")
    app.state.settings = settings
    app.state.gateway = gateway
    app.state.registry = ProviderRegistry(settings, environ=environ)

    @app.on_event("shutdown")
    async def _shutdown() -> None:  # pragma: no cover - framework hook
        await gateway.shutdown()

    @app.middleware("http")
    async def inject_request_context(  # pragma: no cover
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        request_id = request.headers.get("x-request-id", uuid.uuid4().hex)
        request.state.request_id = request_id
        bind_trace(request_id=request_id)
        response = await call_next(request)
        response.headers.setdefault("x-request-id", request_id)
        return response

    app.include_router(router)
    return app

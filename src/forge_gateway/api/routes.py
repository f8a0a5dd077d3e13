"""HTTP routes for the gateway."""

from __future__ import annotations

import time
import uuid
from collections.abc import AsyncIterator

import structlog
from fastapi import APIRouter, Depends, Request
from starlette.responses import StreamingResponse

from ..errors import GatewayError
from ..logging import bind_trace
from ..provider import Provider
from ..providers import ProviderRegistry
from ..services.gateway import GatewayService
from ..settings import Settings
from .errors import map_exception
from .schemas import ChatBody, ProviderSwitch
from .sse import format_event, item_event, sse_response

logger = structlog.get_logger(__name__)
router = APIRouter()


def get_gateway(request: Request) -> GatewayService:
    gateway: GatewayService = request.app.state.gateway
    return gateway


def get_registry(request: Request) -> ProviderRegistry:
    registry: ProviderRegistry = request.app.state.registry
    return registry


@router.get("/healthz")
async def health_check(request: Request) -> dict[str, object]:
    settings: Settings = request.app.state.settings
    return {
        "status": "ok",
        "environment": settings.environment,
        "providers": get_registry(request).available_providers(),
    }


async def _resolve(registry: ProviderRegistry, provider_id: str | None) -> Provider:
    if provider_id:
        return registry.find(provider_id)
    return await registry.get_provider()


@router.get("/v1/models")
async def list_models(
    provider_id: str | None = None,
    gateway: GatewayService = Depends(get_gateway),
    registry: ProviderRegistry = Depends(get_registry),
) -> dict[str, object]:
    try:
        provider = await _resolve(registry, provider_id)
        models = await gateway.models(provider)
    except GatewayError as exc:
        logger.warning("models.failed", provider=provider_id, error=str(exc))
        raise map_exception(exc, provider_id) from exc
    return {"provider": provider.id, "models": [model.model_dump() for model in models]}


@router.post("/v1/chat")
async def chat(
    body: ChatBody,
    gateway: GatewayService = Depends(get_gateway),
    registry: ProviderRegistry = Depends(get_registry),
) -> StreamingResponse:
    trace_id = uuid.uuid4().hex
    bind_trace(trace_id=trace_id, model=body.model)
    start = time.perf_counter()

    try:
        provider = await _resolve(registry, body.provider_id)
        stream = await gateway.chat(body.model, body.context, provider)
    except GatewayError as exc:
        logger.warning("chat.failed", trace_id=trace_id, model=body.model, error=str(exc))
        raise map_exception(exc, body.provider_id) from exc

    async def event_generator() -> AsyncIterator[str]:
        messages = errors = 0
        first_item_at: float | None = None
        async for item in stream:
            if first_item_at is None:
                first_item_at = time.perf_counter()
            if isinstance(item, Exception):
                errors += 1
            else:
                messages += 1
            yield item_event(item, trace_id, provider.id)
        yield format_event("done", {"trace_id": trace_id, "messages": messages, "errors": errors})

        duration = time.perf_counter() - start
        ttft = (first_item_at - start) if first_item_at else duration
        logger.info(
            "stream.completed",
            trace_id=trace_id,
            provider=provider.id,
            model=body.model,
            ttft_ms=round(ttft * 1000, 2),
            duration_ms=round(duration * 1000, 2),
            messages=messages,
            errors=errors,
        )

    return sse_response(event_generator(), trace_id)


@router.put("/v1/provider")
async def switch_provider(
    payload: ProviderSwitch,
    gateway: GatewayService = Depends(get_gateway),
    registry: ProviderRegistry = Depends(get_registry),
) -> dict[str, str]:
    try:
        provider = registry.find(payload.provider_id)
    except GatewayError as exc:
        raise map_exception(exc, payload.provider_id) from exc

    await registry.update_provider(provider)
    await gateway.update_provider(provider)
    return {"status": "ok", "provider": provider.id}

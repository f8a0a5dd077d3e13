"""Backend client: one adapter, one connection pool, one model catalog."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator

import httpx
import structlog

from .errors import GatewayError
from .models import ChatStream, ChatStreamItem, Context, Model, ModelId
from .provider import Provider, ProviderKind
from .providers import AnthropicAdapter, BaseAdapter, OpenAICompatAdapter, build_http_client
from .retry import classify
from .settings import HttpConfig, RetryConfig

logger = structlog.get_logger(__name__)

ADAPTERS: dict[ProviderKind, type[BaseAdapter]] = {
    ProviderKind.OPENAI: OpenAICompatAdapter,
    ProviderKind.ANTHROPIC: AnthropicAdapter,
}


class Client:
    """Dispatches canonical calls to the adapter for the active provider.

    Every error leaving the client has been through the retry classifier.
    """

    def __init__(
        self,
        provider: Provider,
        retry_config: RetryConfig,
        http_config: HttpConfig | None = None,
        version: str = "dev",
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._retry_config = retry_config
        self._version = version
        self._http = http_client or build_http_client(http_config or HttpConfig())
        self._inner = self._adapter_for(provider)
        self._models: dict[ModelId, Model] | None = None
        self._models_lock = asyncio.Lock()

    @property
    def provider(self) -> Provider:
        return self._inner.provider

    def _adapter_for(self, provider: Provider) -> BaseAdapter:
        adapter_cls = ADAPTERS[provider.kind]
        return adapter_cls(self._http, provider, self._version)

    def update_provider(self, provider: Provider) -> None:
        """Point the client at ``provider`` without rebuilding the pool."""

        if provider.kind is self._inner.kind:
            self._inner.update_provider(provider)
        else:
            self._inner = self._adapter_for(provider)
        self._models = None
        logger.info("provider.updated", provider=provider.id, kind=provider.kind.value)

    def _classify(self, error: GatewayError) -> Exception:
        return classify(error, self._retry_config)

    async def chat(self, model: ModelId, context: Context) -> ChatStream:
        try:
            stream = await self._inner.chat(model, context)
        except GatewayError as exc:
            classified = self._classify(exc)
            if classified is exc:
                raise
            raise classified from exc
        return self._classified(stream)

    async def _classified(self, stream: ChatStream) -> AsyncIterator[ChatStreamItem]:
        async for item in stream:
            if isinstance(item, GatewayError):
                yield self._classify(item)
            else:
                yield item

    async def refresh_models(self) -> list[Model]:
        adapter = self._inner
        provider = adapter.provider
        try:
            models = await adapter.models()
        except GatewayError as exc:
            classified = self._classify(exc)
            if classified is exc:
                raise
            raise classified from exc

        catalog = {model.id: model for model in models}
        async with self._models_lock:
            # a provider switch during the fetch makes this catalog stale
            if self._inner is adapter and adapter.provider == provider:
                self._models = catalog
        logger.info("models.refreshed", provider=self.provider.id, count=len(models))
        return models

    async def models(self) -> list[Model]:
        cached = self._models
        if cached is not None:
            return list(cached.values())
        return await self.refresh_models()

    async def model(self, model_id: ModelId) -> Model | None:
        cached = self._models
        if cached is not None and model_id in cached:
            return cached[model_id]
        models = await self.refresh_models()
        return next((model for model in models if model.id == model_id), None)

    async def aclose(self) -> None:
        await self._http.aclose()

"""Gateway service owning the cached backend client."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from datetime import datetime, timezone
from pathlib import Path

import structlog

from ..client import Client
from ..dump import DUMP_DIR, ChatRequestDump, summarize, write_dump
from ..errors import GatewayError
from ..logging import bind_trace
from ..models import ChatStream, ChatStreamItem, Context, Model, ModelId
from ..provider import Provider
from ..settings import Settings

logger = structlog.get_logger(__name__)


class GatewayService:
    """Main entry point for chat and model calls from the agent orchestrator.

    Holds a single client slot: at most one warm client per service, switched
    in place when the provider changes.
    """

    def __init__(self, settings: Settings, dump_dir: Path = DUMP_DIR) -> None:
        self._settings = settings
        self._retry_config = settings.retry_config()
        self._http_config = settings.http_config()
        self._dump_dir = dump_dir
        self._client: Client | None = None
        self._lock = asyncio.Lock()

    async def _get_client(self, provider: Provider) -> Client:
        client = self._client
        if client is not None and client.provider == provider:
            return client

        async with self._lock:
            if self._client is None:
                self._client = Client(
                    provider,
                    self._retry_config,
                    self._http_config,
                    version=self._settings.version,
                )
                logger.info("client.created", provider=provider.id, kind=provider.kind.value)
            elif self._client.provider != provider:
                self._client.update_provider(provider)
            return self._client

    async def chat(self, model: ModelId, context: Context, provider: Provider) -> ChatStream:
        bind_trace(provider=provider.id, model=model)
        client = await self._get_client(provider)
        logger.info("chat.started", provider=provider.id, model=model, messages=len(context.messages))

        dump_name = self._settings.context_dump
        if not dump_name:
            return await client.chat(model, context)

        timestamp = datetime.now(timezone.utc)
        dump = ChatRequestDump(timestamp=timestamp, provider=provider.id, model=model, request=context)
        try:
            stream = await client.chat(model, context)
        except GatewayError as exc:
            dump.error = str(exc)
            write_dump(dump_name, dump, self._dump_dir)
            raise

        items = [item async for item in stream]
        dump.response, dump.error = summarize(items)
        write_dump(dump_name, dump, self._dump_dir)
        return _replay(items)

    async def models(self, provider: Provider) -> list[Model]:
        client = await self._get_client(provider)
        return await client.models()

    async def model(self, provider: Provider, model_id: ModelId) -> Model | None:
        client = await self._get_client(provider)
        return await client.model(model_id)

    async def update_provider(self, provider: Provider) -> None:
        async with self._lock:
            if self._client is not None:
                self._client.update_provider(provider)
            else:
                logger.info("client.deferred", provider=provider.id)

    async def shutdown(self) -> None:
        async with self._lock:
            client, self._client = self._client, None
        if client is not None:
            await client.aclose()


async def _replay(items: list[ChatStreamItem]) -> AsyncIterator[ChatStreamItem]:
    for item in items:
        yield item

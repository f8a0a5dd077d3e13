"""Shared plumbing for backend adapters."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

import httpx
from pydantic import ValidationError

from ..errors import (
    InvalidStatusCodeError,
    ResponseContentError,
    TransportError,
    truncate,
    with_request_context,
)
from ..models import ChatCompletionMessage, ChatStream, Context, Model, ModelId
from ..provider import Provider, ProviderKind
from ..settings import HttpConfig
from .event import EventSource, into_chat_completion_messages


def build_http_client(config: HttpConfig) -> httpx.AsyncClient:
    """Pooled transport shared by every adapter of one client."""

    return httpx.AsyncClient(
        timeout=httpx.Timeout(config.read_timeout, connect=config.connect_timeout),
        limits=httpx.Limits(
            max_keepalive_connections=config.pool_max_idle_per_host,
            keepalive_expiry=config.pool_idle_timeout,
        ),
        follow_redirects=True,
        max_redirects=config.max_redirects,
    )


class BaseAdapter(ABC):
    """Translates canonical requests into one wire family and back."""

    kind: ProviderKind

    def __init__(self, client: httpx.AsyncClient, provider: Provider, version: str = "dev") -> None:
        self._client = client
        self._version = version
        self._provider = provider
        self._check_kind(provider)

    @property
    def provider(self) -> Provider:
        return self._provider

    def update_provider(self, provider: Provider) -> None:
        """Swap credential and endpoint; the connection pool is kept."""

        self._check_kind(provider)
        self._provider = provider

    def _check_kind(self, provider: Provider) -> None:
        if provider.kind is not self.kind:
            raise ValueError(f"{type(self).__name__} cannot serve {provider.kind.value} providers")

    def url(self, path: str) -> str:
        return f"{self._provider.base_url}{path}"

    @abstractmethod
    def headers(self) -> dict[str, str]:
        """Authentication and protocol headers for every request."""

    @abstractmethod
    def build_request(self, model: ModelId, context: Context) -> httpx.Request:
        """Build the streaming chat request for ``context``."""

    @abstractmethod
    def parse(self, payload: str) -> Any:
        """Validate one payload as the backend's native response shape."""

    @abstractmethod
    def convert(self, response: Any) -> ChatCompletionMessage | None:
        """Convert a parsed response into the canonical message."""

    @abstractmethod
    def parse_models(self, data: Any) -> list[Model]:
        """Extract model descriptors from the models endpoint body."""

    async def chat(self, model: ModelId, context: Context) -> ChatStream:
        request = self.build_request(model, context)
        source = EventSource(self._client, request)
        return into_chat_completion_messages(request.method, str(request.url), source, self)

    async def models(self) -> list[Model]:
        url = self.url("models")
        try:
            response = await self._client.get(url, headers=self.headers())
        except httpx.HTTPError as exc:
            error = TransportError(f"Failed to fetch models: {exc}")
            raise with_request_context(error, "GET", url) from exc

        if not response.is_success:
            body = response.text
            error = InvalidStatusCodeError(
                f"Invalid status code {response.status_code} Reason: {truncate(body)}",
                status_code=response.status_code,
                body=body,
                provider_request_id=response.headers.get("x-request-id"),
            )
            raise with_request_context(error, "GET", url)

        try:
            return self.parse_models(response.json())
        except (ValueError, ValidationError) as exc:
            error = ResponseContentError(
                f"Failed to parse models response: {truncate(response.text)}",
                payload=response.text,
            )
            raise with_request_context(error, "GET", url) from exc

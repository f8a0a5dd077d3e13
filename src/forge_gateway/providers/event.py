"""Server-sent-event source and the normalizer into canonical messages."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import aclosing
from dataclasses import dataclass
from typing import Any, Protocol

import httpx
import structlog
from pydantic import ValidationError

from ..errors import (
    GatewayError,
    InvalidContentTypeError,
    InvalidStatusCodeError,
    ResponseContentError,
    TransportError,
    UpstreamError,
    truncate,
    with_request_context,
)
from ..models import ChatCompletionMessage, ChatStream

logger = structlog.get_logger(__name__)

EVENT_STREAM_CONTENT_TYPE = "text/event-stream"
COMPLETION_SENTINELS = frozenset({"[DONE]", ""})


@dataclass(frozen=True)
class OpenEvent:
    """The backend accepted the request and started streaming."""


@dataclass(frozen=True)
class MessageEvent:
    data: str
    event: str = "message"
    id: str | None = None


class EventSourceError(Exception):
    """Raised by ``EventSource`` with the response still open for reading."""

    def __init__(self, response: httpx.Response) -> None:
        super().__init__(f"Http Status: {response.status_code}")
        self.response = response


class InvalidStatusCode(EventSourceError):
    pass


class InvalidContentType(EventSourceError):
    @property
    def content_type(self) -> str:
        return self.response.headers.get("content-type", "")


class ResponseDecoder(Protocol):
    """Backend-specific decoding of one SSE payload."""

    def parse(self, payload: str) -> Any:
        """Validate ``payload`` as the backend's native JSON shape."""

    def convert(self, response: Any) -> ChatCompletionMessage | None:
        """Convert a parsed response; ``None`` means nothing worth emitting."""


class EventSource:
    """Opens a streaming request and yields SSE frames as they arrive."""

    def __init__(self, client: httpx.AsyncClient, request: httpx.Request) -> None:
        self._client = client
        self._request = request

    async def events(self) -> AsyncIterator[OpenEvent | MessageEvent]:
        try:
            response = await self._client.send(self._request, stream=True)
        except httpx.HTTPError as exc:
            raise TransportError(f"Failed to connect: {exc}") from exc

        if not _is_event_stream(response):
            raise InvalidContentType(response)
        if not response.is_success:
            raise InvalidStatusCode(response)

        try:
            yield OpenEvent()
            async for event in _parse_frames(response.aiter_lines()):
                yield event
        except httpx.HTTPError as exc:
            raise TransportError(
                f"Stream interrupted: {exc}", status_code=response.status_code
            ) from exc
        finally:
            await response.aclose()


async def _parse_frames(lines: AsyncIterator[str]) -> AsyncIterator[MessageEvent]:
    data: list[str] = []
    event_name = "message"
    event_id: str | None = None
    seen_data = False

    async for line in lines:
        if not line:
            if seen_data:
                yield MessageEvent(data="\n".join(data), event=event_name, id=event_id)
            data, event_name, seen_data = [], "message", False
            continue
        if line.startswith(":"):
            continue
        field, _, value = line.partition(":")
        if value.startswith(" "):
            value = value[1:]
        if field == "data":
            data.append(value)
            seen_data = True
        elif field == "event":
            event_name = value or "message"
        elif field == "id":
            event_id = value

    if seen_data:
        yield MessageEvent(data="\n".join(data), event=event_name, id=event_id)


def _is_event_stream(response: httpx.Response) -> bool:
    content_type = response.headers.get("content-type", "")
    return content_type.split(";", 1)[0].strip().lower() == EVENT_STREAM_CONTENT_TYPE


async def into_chat_completion_messages(
    method: str,
    url: str,
    source: EventSource,
    decoder: ResponseDecoder,
) -> ChatStream:
    """Normalize an event source into canonical messages and error items.

    Content errors are yielded and the stream carries on; transport errors are
    yielded once and end the stream. Every error carries ``method`` and ``url``.
    """

    async with aclosing(source.events()) as events:
        try:
            async for event in events:
                if isinstance(event, OpenEvent):
                    continue
                if event.data in COMPLETION_SENTINELS:
                    logger.debug("stream.completed", url=url)
                    return
                item = _decode(event.data, decoder)
                if item is None:
                    continue
                if isinstance(item, GatewayError):
                    logger.warning("stream.item_failed", url=url, error=str(item))
                    item = with_request_context(item, method, url)
                yield item
        except InvalidStatusCode as exc:
            yield with_request_context(await _invalid_status(exc.response), method, url)
        except InvalidContentType as exc:
            recovered = await _recover_content_type(exc, decoder)
            if isinstance(recovered, GatewayError):
                recovered = with_request_context(recovered, method, url)
            yield recovered
        except TransportError as exc:
            logger.error("stream.transport_failed", url=url, error=str(exc))
            yield with_request_context(exc, method, url)


def _decode(payload: str, decoder: ResponseDecoder) -> ChatCompletionMessage | GatewayError | None:
    try:
        response = decoder.parse(payload)
    except ValidationError as exc:
        error = ResponseContentError(f"Failed to parse provider response: {payload}", payload=payload)
        error.__cause__ = exc
        return error
    try:
        return decoder.convert(response)
    except ResponseContentError as exc:
        if exc.payload is None:
            exc.payload = payload
        return exc


async def _read_body(response: httpx.Response) -> str | None:
    try:
        return (await response.aread()).decode(errors="replace")
    except httpx.HTTPError:
        return None
    finally:
        await response.aclose()


async def _invalid_status(response: httpx.Response) -> InvalidStatusCodeError:
    body = await _read_body(response)
    status = response.status_code
    reason = truncate(body) if body is not None else "[Unknown]"
    return InvalidStatusCodeError(
        f"Invalid status code {status} Reason: {reason}",
        status_code=status,
        body=body,
        provider_request_id=_provider_request_id(response),
    )


async def _recover_content_type(
    exc: InvalidContentType, decoder: ResponseDecoder
) -> ChatCompletionMessage | GatewayError:
    response = exc.response
    content_type = exc.content_type
    body = await _read_body(response)
    status = response.status_code
    logger.debug("stream.invalid_content_type", status=status, content_type=content_type)

    if body:
        try:
            parsed = decoder.parse(body)
        except ValidationError:
            parsed = None
        if parsed is not None:
            try:
                message = decoder.convert(parsed)
            except UpstreamError as error:
                error.status_code = status
                if error.payload is None:
                    error.payload = body
                return error
            except ResponseContentError:
                message = None
            if message is not None:
                return message

    return InvalidContentTypeError(
        f"Invalid content type '{content_type}', Http Status: {status} Reason: "
        f"{truncate(body) if body is not None else '[Unknown]'}",
        status_code=status,
        body=body,
        provider_request_id=_provider_request_id(response),
    )


def _provider_request_id(response: httpx.Response) -> str | None:
    return response.headers.get("x-request-id") or response.headers.get("request-id")

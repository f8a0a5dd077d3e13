import asyncio
import json

import httpx

from forge_gateway.errors import (
    InvalidContentTypeError,
    InvalidStatusCodeError,
    ResponseContentError,
    TransportError,
    UpstreamError,
)
from forge_gateway.models import ChatCompletionMessage, Context, ContextMessage, FinishReason
from forge_gateway.provider import Provider, ProviderDetails
from forge_gateway.providers.event import MessageEvent, _parse_frames
from forge_gateway.providers.openai import OpenAICompatAdapter

SSE = {"content-type": "text/event-stream"}


def _provider() -> Provider:
    return Provider.from_details(
        ProviderDetails(
            id="openai",
            name="OpenAI",
            api_key="sk-test",
            provider_type="openai",
            base_url="https://api.example.com/v1",
        )
    )


def _chunk(content: str, finish_reason: str | None = None) -> str:
    return json.dumps(
        {"choices": [{"index": 0, "delta": {"content": content}, "finish_reason": finish_reason}]}
    )


def _sse(*payloads: str) -> bytes:
    return "".join(f"data: {payload}\n\n" for payload in payloads).encode()


def _collect(handler) -> list:  # noqa: ANN001
    async def _run():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            adapter = OpenAICompatAdapter(client, _provider())
            stream = await adapter.chat("gpt-test", Context(messages=[ContextMessage.user("hi")]))
            return [item async for item in stream]

    return asyncio.run(_run())


def test_done_sentinel_terminates_stream():
    body = _sse(_chunk("Hel"), _chunk("lo", "stop"), "[DONE]", _chunk("ignored"))

    items = _collect(lambda request: httpx.Response(200, headers=SSE, content=body))

    assert [item.content for item in items] == ["Hel", "lo"]
    assert items[-1].finish_reason == FinishReason.STOP


def test_empty_payload_is_a_completion_sentinel():
    body = _sse(_chunk("only"), "", _chunk("after"))

    items = _collect(lambda request: httpx.Response(200, headers=SSE, content=body))

    assert [item.content for item in items] == ["only"]


def test_malformed_frame_is_an_item_error_and_stream_continues():
    body = _sse(_chunk("a"), "not-json", _chunk("b"), "[DONE]")

    items = _collect(lambda request: httpx.Response(200, headers=SSE, content=body))

    assert len(items) == 3
    assert items[0].content == "a"
    error = items[1]
    assert isinstance(error, ResponseContentError)
    assert error.payload == "not-json"
    assert error.method == "POST"
    assert error.url == "https://api.example.com/v1/chat/completions"
    assert "POST https://api.example.com/v1/chat/completions" in str(error)
    assert items[2].content == "b"


def test_invalid_status_reads_body():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(503, headers=SSE, content=b"service unavailable")

    items = _collect(handler)

    assert len(items) == 1
    error = items[0]
    assert isinstance(error, InvalidStatusCodeError)
    assert error.status_code == 503
    assert error.body == "service unavailable"
    assert error.url.endswith("/chat/completions")


def test_content_type_fallback_decodes_plain_json_body():
    completion = {
        "id": "cmpl-1",
        "choices": [{"index": 0, "message": {"content": "plain"}, "finish_reason": "stop"}],
        "usage": {"prompt_tokens": 3, "completion_tokens": 1, "total_tokens": 4},
    }

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(400, json=completion)

    items = _collect(handler)

    assert len(items) == 1
    message = items[0]
    assert isinstance(message, ChatCompletionMessage)
    assert message.content == "plain"
    assert message.usage.total_tokens == 4


def test_content_type_fallback_surfaces_backend_error_with_status():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            401, json={"error": {"message": "Incorrect API key", "type": "invalid_request_error"}}
        )

    items = _collect(handler)

    assert len(items) == 1
    error = items[0]
    assert isinstance(error, UpstreamError)
    assert error.status_code == 401
    assert "Incorrect API key" in str(error)


def test_json_body_without_known_fields_is_an_invalid_content_type_error():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(401, json={"message": "Invalid API key"})

    items = _collect(handler)

    assert len(items) == 1
    error = items[0]
    assert isinstance(error, InvalidContentTypeError)
    assert error.status_code == 401
    assert "Invalid API key" in error.body


def test_unparsable_body_yields_single_invalid_content_type_error():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            502, headers={"content-type": "text/html"}, content=b"<html>bad gateway</html>"
        )

    items = _collect(handler)

    assert len(items) == 1
    error = items[0]
    assert isinstance(error, InvalidContentTypeError)
    assert error.status_code == 502
    assert error.body == "<html>bad gateway</html>"
    assert error.method == "POST"


def test_connection_failure_is_a_transport_error_item():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    items = _collect(handler)

    assert len(items) == 1
    assert isinstance(items[0], TransportError)
    assert items[0].url.endswith("/chat/completions")


class _TrackingStream(httpx.AsyncByteStream):
    def __init__(self, chunks: list[bytes]) -> None:
        self.chunks = chunks
        self.closed = False

    async def __aiter__(self):
        for chunk in self.chunks:
            yield chunk

    async def aclose(self) -> None:
        self.closed = True


def test_dropping_the_stream_closes_the_response():
    tracking = _TrackingStream([_sse(_chunk("one")), _sse(_chunk("two"))])

    async def _run():
        transport = httpx.MockTransport(
            lambda request: httpx.Response(200, headers=SSE, stream=tracking)
        )
        async with httpx.AsyncClient(transport=transport) as client:
            adapter = OpenAICompatAdapter(client, _provider())
            stream = await adapter.chat("gpt-test", Context(messages=[ContextMessage.user("hi")]))
            first = await stream.__anext__()
            await stream.aclose()
            return first

    first = asyncio.run(_run())

    assert first.content == "one"
    assert tracking.closed


def test_frame_parser_handles_multiline_data_and_comments():
    lines = [": keep-alive", "event: delta", "id: 7", "data: line one", "data: line two", "", "data: tail"]

    async def _lines():
        for line in lines:
            yield line

    async def _run():
        return [event async for event in _parse_frames(_lines())]

    events = asyncio.run(_run())

    assert events == [
        MessageEvent(data="line one\nline two", event="delta", id="7"),
        MessageEvent(data="tail", id="7"),
    ]

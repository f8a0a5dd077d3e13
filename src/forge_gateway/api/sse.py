"""Server-Sent Events framing for normalized chat streams."""

from __future__ import annotations

import json
from collections.abc import AsyncIterator
from typing import Any

from starlette.responses import StreamingResponse

from ..models import ChatStreamItem
from .errors import error_payload

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


def format_event(event: str, data: dict[str, Any]) -> str:
    payload = json.dumps(data, separators=(",", ":"))
    return f"event: {event}\ndata: {payload}\n\n"


def item_event(item: ChatStreamItem, trace_id: str, provider_id: str) -> str:
    """Frame one stream item as a ``message`` or ``error`` event."""

    if isinstance(item, Exception):
        return format_event("error", {"trace_id": trace_id, "error": error_payload(item, provider_id)})
    return format_event("message", item.model_dump(mode="json", exclude_none=True))


def sse_response(events: AsyncIterator[str], trace_id: str) -> StreamingResponse:
    return StreamingResponse(
        events,
        media_type="text/event-stream",
        headers={**SSE_HEADERS, "x-request-id": trace_id},
    )

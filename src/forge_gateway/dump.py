"""Opt-in JSON dumps of chat requests and their responses."""

from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import Any

import structlog
from pydantic import BaseModel

from .models import ChatStreamItem, Context

logger = structlog.get_logger(__name__)

DUMP_DIR = Path("chat_request_dump")


class ChatRequestDump(BaseModel):
    timestamp: datetime
    provider: str
    model: str
    request: Context
    response: dict[str, Any] | None = None
    error: str | None = None


def summarize(items: list[ChatStreamItem]) -> tuple[dict[str, Any], str | None]:
    messages = [item for item in items if not isinstance(item, Exception)]
    errors = [str(item) for item in items if isinstance(item, Exception)]
    response = {
        "messages_count": len(messages),
        "messages": [message.model_dump(exclude_none=True) for message in messages],
    }
    return response, errors[0] if errors else None


def dump_path(name: str, timestamp: datetime, directory: Path = DUMP_DIR) -> Path:
    return directory / f"{name}_{timestamp.strftime('%Y-%m-%d_%H-%M-%S')}.json"


def write_dump(name: str, dump: ChatRequestDump, directory: Path = DUMP_DIR) -> Path | None:
    """Persist ``dump``; failures are logged and never raised."""

    path = dump_path(name, dump.timestamp, directory)
    try:
        directory.mkdir(parents=True, exist_ok=True)
        path.write_text(dump.model_dump_json(indent=2), encoding="utf-8")
    except OSError as exc:
        logger.warning("dump.failed", path=str(path), error=str(exc))
        return None
    logger.info("dump.written", path=str(path))
    return path

"""Canonical, backend-agnostic conversation and completion models."""

from __future__ import annotations

from enum import Enum
from typing import Any, AsyncIterator, TypeAlias, Union

from pydantic import BaseModel, Field

from .errors import GatewayError

ModelId: TypeAlias = str


class Role(str, Enum):
    """Chat roles understood by both wire families."""

    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


class ToolCallFull(BaseModel):
    """A complete tool call recorded in the conversation history."""

    call_id: str
    name: str
    arguments: dict[str, Any] = Field(default_factory=dict)


class ToolDefinition(BaseModel):
    name: str
    description: str = ""
    input_schema: dict[str, Any] = Field(default_factory=lambda: {"type": "object"})


class ContextMessage(BaseModel):
    """One entry of the conversation passed to a backend."""

    role: Role
    content: str = ""
    tool_calls: list[ToolCallFull] = Field(default_factory=list)
    tool_call_id: str | None = None

    @classmethod
    def system(cls, content: str) -> "ContextMessage":
        return cls(role=Role.SYSTEM, content=content)

    @classmethod
    def user(cls, content: str) -> "ContextMessage":
        return cls(role=Role.USER, content=content)

    @classmethod
    def assistant(cls, content: str, tool_calls: list[ToolCallFull] | None = None) -> "ContextMessage":
        return cls(role=Role.ASSISTANT, content=content, tool_calls=tool_calls or [])

    @classmethod
    def tool_result(cls, call_id: str, content: str) -> "ContextMessage":
        return cls(role=Role.TOOL, content=content, tool_call_id=call_id)


class Context(BaseModel):
    """Conversation state plus generation parameters. Owned by the caller."""

    messages: list[ContextMessage] = Field(default_factory=list)
    tools: list[ToolDefinition] = Field(default_factory=list)
    temperature: float | None = Field(default=None, ge=0.0, le=2.0)
    top_p: float | None = Field(default=None, ge=0.0, le=1.0)
    max_tokens: int | None = Field(default=None, gt=0)


class FinishReason(str, Enum):
    STOP = "stop"
    LENGTH = "length"
    TOOL_CALLS = "tool_calls"
    CONTENT_FILTER = "content_filter"


class Usage(BaseModel):
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


class ToolCallPart(BaseModel):
    """A fragment of a streamed tool call; arguments arrive in pieces."""

    call_id: str | None = None
    name: str | None = None
    arguments_part: str = ""


class ChatCompletionMessage(BaseModel):
    """Canonical unit of a streamed completion."""

    content: str | None = None
    reasoning: str | None = None
    tool_calls: list[ToolCallPart] = Field(default_factory=list)
    finish_reason: FinishReason | None = None
    usage: Usage | None = None


class Model(BaseModel):
    """Backend-supplied model descriptor."""

    id: ModelId
    name: str | None = None
    description: str | None = None
    context_length: int | None = None
    tools_supported: bool | None = None


ChatStreamItem: TypeAlias = Union[ChatCompletionMessage, GatewayError]
ChatStream: TypeAlias = AsyncIterator[ChatStreamItem]


async def unwrap_items(stream: ChatStream) -> AsyncIterator[ChatCompletionMessage]:
    """Yield messages from ``stream``, raising the first error item."""

    async for item in stream:
        if isinstance(item, Exception):
            raise item
        yield item

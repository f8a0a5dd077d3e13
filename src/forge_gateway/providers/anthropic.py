"""Anthropic (Messages API) adapter."""

from __future__ import annotations

import json
from contextlib import aclosing
from typing import Annotated, Any, Literal, Union

import httpx
from pydantic import BaseModel, Field, TypeAdapter

from ..errors import UpstreamError
from ..models import (
    ChatCompletionMessage,
    ChatStream,
    Context,
    ContextMessage,
    FinishReason,
    Model,
    ModelId,
    Role,
    ToolCallPart,
    Usage,
)
from ..provider import ProviderKind
from .base import BaseAdapter

ANTHROPIC_VERSION = "2023-06-01"
DEFAULT_MAX_TOKENS = 4096

STOP_REASONS = {
    "end_turn": FinishReason.STOP,
    "stop_sequence": FinishReason.STOP,
    "max_tokens": FinishReason.LENGTH,
    "tool_use": FinishReason.TOOL_CALLS,
    "refusal": FinishReason.CONTENT_FILTER,
}


class AnthropicUsage(BaseModel):
    input_tokens: int = 0
    output_tokens: int = 0


class ContentBlock(BaseModel):
    type: str
    text: str | None = None
    thinking: str | None = None
    id: str | None = None
    name: str | None = None
    input: dict[str, Any] | None = None


class BlockDelta(BaseModel):
    type: str
    text: str | None = None
    partial_json: str | None = None
    thinking: str | None = None


class MessageDeltaBody(BaseModel):
    stop_reason: str | None = None
    stop_sequence: str | None = None


class AnthropicErrorBody(BaseModel):
    type: str | None = None
    message: str = ""


class MessageBody(BaseModel):
    """A complete message, either non-streamed or inside ``message_start``."""

    type: Literal["message"]
    id: str | None = None
    model: str | None = None
    content: list[ContentBlock] = Field(default_factory=list)
    stop_reason: str | None = None
    usage: AnthropicUsage | None = None


class MessageStart(BaseModel):
    type: Literal["message_start"]
    message: MessageBody


class ContentBlockStart(BaseModel):
    type: Literal["content_block_start"]
    index: int = 0
    content_block: ContentBlock


class ContentBlockDelta(BaseModel):
    type: Literal["content_block_delta"]
    index: int = 0
    delta: BlockDelta


class ContentBlockStop(BaseModel):
    type: Literal["content_block_stop"]
    index: int = 0


class MessageDelta(BaseModel):
    type: Literal["message_delta"]
    delta: MessageDeltaBody
    usage: AnthropicUsage | None = None


class MessageStop(BaseModel):
    type: Literal["message_stop"]


class Ping(BaseModel):
    type: Literal["ping"]


class ErrorEvent(BaseModel):
    type: Literal["error"]
    error: AnthropicErrorBody


AnthropicEvent = Annotated[
    Union[
        MessageBody,
        MessageStart,
        ContentBlockStart,
        ContentBlockDelta,
        ContentBlockStop,
        MessageDelta,
        MessageStop,
        Ping,
        ErrorEvent,
    ],
    Field(discriminator="type"),
]

_EVENT_ADAPTER: TypeAdapter[AnthropicEvent] = TypeAdapter(AnthropicEvent)


class AnthropicModel(BaseModel):
    id: str
    display_name: str | None = None


class AnthropicModelList(BaseModel):
    data: list[AnthropicModel] = Field(default_factory=list)


class AnthropicAdapter(BaseAdapter):
    kind = ProviderKind.ANTHROPIC

    def headers(self) -> dict[str, str]:
        return {
            "x-api-key": self._provider.api_key,
            "anthropic-version": ANTHROPIC_VERSION,
            "Content-Type": "application/json",
            "x-app-version": self._version,
        }

    async def chat(self, model: ModelId, context: Context) -> ChatStream:
        return _with_prompt_usage(await super().chat(model, context))

    def build_request(self, model: ModelId, context: Context) -> httpx.Request:
        system = "\n\n".join(
            message.content for message in context.messages if message.role == Role.SYSTEM
        )
        payload: dict[str, Any] = {
            "model": model,
            "messages": _to_anthropic_messages(context.messages),
            "max_tokens": context.max_tokens or DEFAULT_MAX_TOKENS,
            "stream": True,
        }
        if system:
            payload["system"] = system
        if context.temperature is not None:
            payload["temperature"] = context.temperature
        if context.top_p is not None:
            payload["top_p"] = context.top_p
        if context.tools:
            payload["tools"] = [
                {
                    "name": tool.name,
                    "description": tool.description,
                    "input_schema": tool.input_schema,
                }
                for tool in context.tools
            ]

        return self._client.build_request(
            "POST", self.url("messages"), json=payload, headers=self.headers()
        )

    def parse(self, payload: str) -> AnthropicEvent:
        return _EVENT_ADAPTER.validate_json(payload)

    def convert(self, response: AnthropicEvent) -> ChatCompletionMessage | None:
        if isinstance(response, ErrorEvent):
            raise UpstreamError(
                f"Upstream error: {response.error.message}",
                error_type=response.error.type,
            )
        if isinstance(response, MessageBody):
            return _convert_message_body(response)
        if isinstance(response, MessageStart):
            usage = response.message.usage
            return ChatCompletionMessage(usage=_usage(usage)) if usage else None
        if isinstance(response, ContentBlockStart):
            return _convert_block_start(response.content_block)
        if isinstance(response, ContentBlockDelta):
            return _convert_delta(response.delta)
        if isinstance(response, MessageDelta):
            return ChatCompletionMessage(
                finish_reason=STOP_REASONS.get(response.delta.stop_reason or ""),
                usage=_usage(response.usage) if response.usage else None,
            )
        # ping, content_block_stop and message_stop carry nothing
        return None

    def parse_models(self, data: Any) -> list[Model]:
        listing = AnthropicModelList.model_validate(data)
        return [Model(id=entry.id, name=entry.display_name, tools_supported=True) for entry in listing.data]


def _to_anthropic_messages(messages: list[ContextMessage]) -> list[dict[str, Any]]:
    converted: list[dict[str, Any]] = []
    for message in messages:
        if message.role == Role.SYSTEM:
            continue
        role = "assistant" if message.role == Role.ASSISTANT else "user"
        blocks = _content_blocks(message)
        if not blocks:
            continue
        # consecutive same-role entries must be merged to keep roles alternating
        if converted and converted[-1]["role"] == role:
            converted[-1]["content"].extend(blocks)
        else:
            converted.append({"role": role, "content": blocks})
    return converted


def _content_blocks(message: ContextMessage) -> list[dict[str, Any]]:
    if message.role == Role.TOOL:
        return [
            {
                "type": "tool_result",
                "tool_use_id": message.tool_call_id,
                "content": message.content,
            }
        ]
    blocks: list[dict[str, Any]] = []
    if message.content:
        blocks.append({"type": "text", "text": message.content})
    for call in message.tool_calls:
        blocks.append(
            {"type": "tool_use", "id": call.call_id, "name": call.name, "input": call.arguments}
        )
    return blocks


def _convert_message_body(body: MessageBody) -> ChatCompletionMessage:
    text = "".join(block.text or "" for block in body.content if block.type == "text")
    tool_calls = [
        ToolCallPart(
            call_id=block.id,
            name=block.name,
            arguments_part=json.dumps(block.input or {}),
        )
        for block in body.content
        if block.type == "tool_use"
    ]
    return ChatCompletionMessage(
        content=text or None,
        tool_calls=tool_calls,
        finish_reason=STOP_REASONS.get(body.stop_reason or ""),
        usage=_usage(body.usage) if body.usage else None,
    )


def _convert_block_start(block: ContentBlock) -> ChatCompletionMessage | None:
    if block.type == "text" and block.text:
        return ChatCompletionMessage(content=block.text)
    if block.type == "tool_use":
        return ChatCompletionMessage(
            tool_calls=[ToolCallPart(call_id=block.id, name=block.name)]
        )
    if block.type == "thinking" and block.thinking:
        return ChatCompletionMessage(reasoning=block.thinking)
    return None


def _convert_delta(delta: BlockDelta) -> ChatCompletionMessage | None:
    if delta.type == "text_delta":
        return ChatCompletionMessage(content=delta.text or "")
    if delta.type == "input_json_delta":
        return ChatCompletionMessage(
            tool_calls=[ToolCallPart(arguments_part=delta.partial_json or "")]
        )
    if delta.type == "thinking_delta":
        return ChatCompletionMessage(reasoning=delta.thinking or "")
    return None


def _usage(usage: AnthropicUsage) -> Usage:
    return Usage(
        prompt_tokens=usage.input_tokens,
        completion_tokens=usage.output_tokens,
        total_tokens=usage.input_tokens + usage.output_tokens,
    )


async def _with_prompt_usage(stream: ChatStream) -> ChatStream:
    """Carry ``message_start`` input tokens into later output-only usage items."""

    prompt_tokens = 0
    async with aclosing(stream) as items:
        async for item in items:
            if isinstance(item, ChatCompletionMessage) and item.usage is not None:
                usage = item.usage
                if usage.prompt_tokens:
                    prompt_tokens = usage.prompt_tokens
                elif prompt_tokens:
                    item = item.model_copy(
                        update={
                            "usage": Usage(
                                prompt_tokens=prompt_tokens,
                                completion_tokens=usage.completion_tokens,
                                total_tokens=prompt_tokens + usage.completion_tokens,
                            )
                        }
                    )
            yield item

"""OpenAI-compatible (Chat Completions) adapter."""

from __future__ import annotations

import json
from typing import Any

import httpx
from pydantic import BaseModel, Field

from ..errors import ResponseContentError, UpstreamError
from ..models import (
    ChatCompletionMessage,
    Context,
    ContextMessage,
    FinishReason,
    Model,
    ModelId,
    Role,
    ToolCallPart,
    ToolDefinition,
    Usage,
)
from ..provider import ProviderKind
from .base import BaseAdapter

FINISH_REASONS = {
    "stop": FinishReason.STOP,
    "length": FinishReason.LENGTH,
    "tool_calls": FinishReason.TOOL_CALLS,
    "function_call": FinishReason.TOOL_CALLS,
    "content_filter": FinishReason.CONTENT_FILTER,
}


class OpenAIFunctionCall(BaseModel):
    name: str | None = None
    arguments: str | None = None


class OpenAIToolCall(BaseModel):
    index: int | None = None
    id: str | None = None
    type: str | None = None
    function: OpenAIFunctionCall = Field(default_factory=OpenAIFunctionCall)


class OpenAIDelta(BaseModel):
    role: str | None = None
    content: str | None = None
    reasoning: str | None = None
    reasoning_content: str | None = None
    tool_calls: list[OpenAIToolCall] | None = None


class OpenAIChoice(BaseModel):
    index: int = 0
    delta: OpenAIDelta | None = None
    message: OpenAIDelta | None = None
    finish_reason: str | None = None


class OpenAIUsage(BaseModel):
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


class OpenAIErrorBody(BaseModel):
    message: str = ""
    type: str | None = None
    code: int | str | None = None


class OpenAIResponse(BaseModel):
    """A streamed chunk, a full completion, or an error body."""

    id: str | None = None
    model: str | None = None
    choices: list[OpenAIChoice] = Field(default_factory=list)
    usage: OpenAIUsage | None = None
    error: OpenAIErrorBody | None = None


class OpenAIModel(BaseModel):
    id: str
    name: str | None = None
    description: str | None = None
    context_length: int | None = None
    supported_parameters: list[str] | None = None


class OpenAIModelList(BaseModel):
    data: list[OpenAIModel] = Field(default_factory=list)


class OpenAICompatAdapter(BaseAdapter):
    """Serves any host that speaks the OpenAI Chat Completions protocol."""

    kind = ProviderKind.OPENAI

    def headers(self) -> dict[str, str]:
        headers = {
            "Authorization": f"Bearer {self._provider.api_key}",
            "Content-Type": "application/json",
            "x-app-version": self._version,
        }
        if "openrouter" in self._provider.base_url:
            headers["HTTP-Referer"] = "https://antinomy.ai"
            headers["X-Title"] = "forge"
        return headers

    def build_request(self, model: ModelId, context: Context) -> httpx.Request:
        payload: dict[str, Any] = {
            "model": model,
            "messages": [_message_to_openai(message) for message in context.messages],
            "stream": True,
            "stream_options": {"include_usage": True},
        }
        if context.temperature is not None:
            payload["temperature"] = context.temperature
        if context.top_p is not None:
            payload["top_p"] = context.top_p
        if context.max_tokens is not None:
            payload["max_tokens"] = context.max_tokens
        if context.tools:
            payload["tools"] = [_tool_to_openai(tool) for tool in context.tools]

        return self._client.build_request(
            "POST", self.url("chat/completions"), json=payload, headers=self.headers()
        )

    def parse(self, payload: str) -> OpenAIResponse:
        return OpenAIResponse.model_validate_json(payload)

    def convert(self, response: OpenAIResponse) -> ChatCompletionMessage | None:
        if response.error is not None:
            raise UpstreamError(
                f"Upstream error: {response.error.message}",
                error_type=response.error.type,
                code=response.error.code,
            )
        if not response.choices and response.usage is None:
            raise ResponseContentError("Response contains neither choices nor usage")

        message = ChatCompletionMessage(usage=_usage(response.usage))
        if not response.choices:
            return message

        choice = response.choices[0]
        body = choice.delta or choice.message
        if body is not None:
            message.content = body.content
            message.reasoning = body.reasoning or body.reasoning_content
            message.tool_calls = [
                ToolCallPart(
                    call_id=call.id,
                    name=call.function.name,
                    arguments_part=call.function.arguments or "",
                )
                for call in body.tool_calls or []
            ]
        if choice.finish_reason:
            message.finish_reason = FINISH_REASONS.get(choice.finish_reason)
        return message

    def parse_models(self, data: Any) -> list[Model]:
        listing = OpenAIModelList.model_validate(data)
        return [
            Model(
                id=entry.id,
                name=entry.name,
                description=entry.description,
                context_length=entry.context_length,
                tools_supported=(
                    "tools" in entry.supported_parameters
                    if entry.supported_parameters is not None
                    else None
                ),
            )
            for entry in listing.data
        ]


def _message_to_openai(message: ContextMessage) -> dict[str, Any]:
    if message.role == Role.TOOL:
        return {"role": "tool", "tool_call_id": message.tool_call_id, "content": message.content}

    entry: dict[str, Any] = {"role": message.role.value, "content": message.content}
    if message.tool_calls:
        entry["content"] = message.content or None
        entry["tool_calls"] = [
            {
                "id": call.call_id,
                "type": "function",
                "function": {"name": call.name, "arguments": json.dumps(call.arguments)},
            }
            for call in message.tool_calls
        ]
    return entry


def _tool_to_openai(tool: ToolDefinition) -> dict[str, Any]:
    return {
        "type": "function",
        "function": {
            "name": tool.name,
            "description": tool.description,
            "parameters": tool.input_schema,
        },
    }


def _usage(usage: OpenAIUsage | None) -> Usage | None:
    if usage is None:
        return None
    return Usage(
        prompt_tokens=usage.prompt_tokens,
        completion_tokens=usage.completion_tokens,
        total_tokens=usage.total_tokens or usage.prompt_tokens + usage.completion_tokens,
    )

"""Provider exports."""

from .anthropic import ANTHROPIC_VERSION, AnthropicAdapter
from .base import BaseAdapter, build_http_client
from .event import EventSource, into_chat_completion_messages
from .openai import OpenAICompatAdapter
from .registry import ProviderRegistry

__all__ = [
    "ProviderRegistry",
    "ANTHROPIC_VERSION",
    "AnthropicAdapter",
    "BaseAdapter",
    "EventSource",
    "OpenAICompatAdapter",
    "build_http_client",
    "into_chat_completion_messages",
]

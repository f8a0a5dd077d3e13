"""API request schemas."""

from __future__ import annotations

from pydantic import BaseModel, Field, field_validator

from ..models import Context


class ChatBody(BaseModel):
    model: str
    context: Context
    provider_id: str | None = Field(
        default=None, description="Catalog id to use instead of the active provider."
    )

    @field_validator("context")
    @classmethod
    def _messages_not_empty(cls, value: Context) -> Context:
        if not value.messages:
            raise ValueError("context.messages cannot be empty")
        return value


class ProviderSwitch(BaseModel):
    provider_id: str

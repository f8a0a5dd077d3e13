"""Provider descriptors and the active-provider configuration."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .errors import NoProviderSelectedError, UnknownProviderError, UnknownProviderTypeError


class ProviderKind(str, Enum):
    """Wire families the gateway can speak."""

    OPENAI = "openai"
    ANTHROPIC = "anthropic"


class ProviderDetails(BaseModel):
    """Identity, credential and endpoint of one configured backend."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    description: str = ""
    api_key: str
    provider_type: str
    base_url: str

    @field_validator("base_url")
    @classmethod
    def _normalize_base_url(cls, value: str) -> str:
        return normalize_base_url(value)

    def __str__(self) -> str:
        return f"{self.name} ({self.id})"


class Provider(BaseModel):
    """A provider tagged with the wire family that serves it."""

    model_config = ConfigDict(frozen=True)

    kind: ProviderKind
    details: ProviderDetails

    @model_validator(mode="after")
    def _kind_matches_details(self) -> "Provider":
        if self.details.provider_type != self.kind.value:
            raise ValueError(
                f"provider_type '{self.details.provider_type}' does not match kind '{self.kind.value}'"
            )
        return self

    @classmethod
    def from_details(cls, details: ProviderDetails) -> "Provider":
        try:
            kind = ProviderKind(details.provider_type)
        except ValueError as exc:
            raise UnknownProviderTypeError(
                f"Unknown provider type: {details.provider_type}"
            ) from exc
        return cls(kind=kind, details=details)

    @property
    def id(self) -> str:
        return self.details.id

    @property
    def name(self) -> str:
        return self.details.name

    @property
    def api_key(self) -> str:
        return self.details.api_key

    @property
    def base_url(self) -> str:
        return self.details.base_url


class ProviderConfig(BaseModel):
    """Resolved catalog plus the id of the active entry."""

    active_provider_id: str | None = None
    providers: list[ProviderDetails] = Field(default_factory=list)

    @field_validator("providers")
    @classmethod
    def _unique_ids(cls, value: list[ProviderDetails]) -> list[ProviderDetails]:
        ids = [entry.id for entry in value]
        if len(ids) != len(set(ids)):
            raise ValueError("provider ids must be unique")
        return value

    def set_active_provider(self, provider_id: str) -> None:
        self.active_provider_id = provider_id

    def find(self, provider_id: str) -> ProviderDetails | None:
        return next((entry for entry in self.providers if entry.id == provider_id), None)

    def get_provider(self) -> Provider:
        if self.active_provider_id is None:
            raise NoProviderSelectedError("No active provider ID set")
        details = self.find(self.active_provider_id)
        if details is None:
            raise UnknownProviderError(
                f"Provider ID '{self.active_provider_id}' not found in providers list"
            )
        return Provider.from_details(details)


def normalize_base_url(url: str) -> str:
    url = url.strip()
    return url if url.endswith("/") else f"{url}/"

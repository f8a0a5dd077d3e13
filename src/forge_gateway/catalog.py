"""Builds the resolved provider catalog from defaults, overrides and credentials."""

from __future__ import annotations

import json
import os
from collections.abc import Iterable, Mapping
from pathlib import Path

import structlog
import yaml
from pydantic import BaseModel, Field, ValidationError

from .errors import NoProviderSelectedError
from .provider import Provider, ProviderConfig, ProviderDetails

logger = structlog.get_logger(__name__)

BRAND_TOKEN = "forge"
BRAND_BASE_URL = "https://antinomy.ai/api/v1/"


class LoginInfo(BaseModel):
    api_key: str


class AppConfig(BaseModel):
    """Credentials persisted by the login flow."""

    key_info: LoginInfo | None = None


class Workflow(BaseModel):
    """Provider section of a project workflow file."""

    provider: str | None = None
    provider_config: list[ProviderDetails] = Field(default_factory=list)


def default_providers() -> list[ProviderDetails]:
    return [
        ProviderDetails(
            id="openai",
            name="OpenAI",
            description="OpenAI API provider",
            api_key="OPENAI_API_KEY",
            provider_type="openai",
            base_url="https://api.openai.com/v1",
        ),
        ProviderDetails(
            id="anthropic",
            name="Anthropic",
            description="Anthropic API provider",
            api_key="ANTHROPIC_API_KEY",
            provider_type="anthropic",
            base_url="https://api.anthropic.com/v1",
        ),
        ProviderDetails(
            id="forge",
            name="Forge",
            description="Forge API provider",
            api_key="FORGE_KEY",
            provider_type="openai",
            base_url="https://antinomy.ai/api/v1",
        ),
        ProviderDetails(
            id="openrouter",
            name="OpenRouter",
            description="OpenRouter API provider",
            api_key="OPENROUTER_API_KEY",
            provider_type="openai",
            base_url="https://openrouter.ai/api/v1",
        ),
        ProviderDetails(
            id="requesty",
            name="Requesty",
            description="Requesty API provider",
            api_key="REQUESTY_API_KEY",
            provider_type="openai",
            base_url="https://requesty.ai/api/v1",
        ),
    ]


def merge_providers(
    defaults: Iterable[ProviderDetails], overrides: Iterable[ProviderDetails]
) -> list[ProviderDetails]:
    """Replace defaults by id, append the rest, keep default order."""

    merged = list(defaults)
    for override in overrides:
        index = next((i for i, entry in enumerate(merged) if entry.id == override.id), None)
        if index is None:
            merged.append(override)
        else:
            merged[index] = override
    return merged


def resolve_env_providers(
    providers: Iterable[ProviderDetails], environ: Mapping[str, str] | None = None
) -> list[ProviderDetails]:
    """Substitute each ``api_key`` variable name with its value.

    Entries whose variable is unset are unusable and are dropped.
    """

    environ = os.environ if environ is None else environ
    resolved: list[ProviderDetails] = []
    for entry in providers:
        api_key = environ.get(entry.api_key)
        if not api_key:
            logger.debug("provider.dropped", provider=entry.id, variable=entry.api_key)
            continue
        resolved.append(entry.model_copy(update={"api_key": api_key}))
    return resolved


def append_login_provider(
    providers: list[ProviderDetails], app_config: AppConfig | None
) -> list[ProviderDetails]:
    has_brand = any(BRAND_TOKEN in entry.id.lower() for entry in providers)
    if has_brand or app_config is None or app_config.key_info is None:
        return providers
    login_provider = ProviderDetails(
        id=BRAND_TOKEN,
        name="Forge",
        description="Forge AI Provider",
        api_key=app_config.key_info.api_key,
        provider_type="openai",
        base_url=BRAND_BASE_URL,
    )
    return [*providers, login_provider]


def load_workflow(path: Path) -> Workflow:
    """Read the provider section of a workflow file, if there is one."""

    if not path.exists():
        return Workflow()
    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
        return Workflow.model_validate(raw)
    except (OSError, yaml.YAMLError, ValidationError) as exc:
        logger.warning("workflow.invalid", path=str(path), error=str(exc))
        return Workflow()


def load_app_config(path: Path) -> AppConfig:
    path = path.expanduser()
    if not path.exists():
        return AppConfig()
    try:
        return AppConfig.model_validate(json.loads(path.read_text(encoding="utf-8")))
    except (OSError, ValueError) as exc:
        logger.warning("app_config.invalid", path=str(path), error=str(exc))
        return AppConfig()


def build_provider_config(
    *,
    overrides: Iterable[ProviderDetails] = (),
    environ: Mapping[str, str] | None = None,
    app_config: AppConfig | None = None,
    active_provider_id: str | None = None,
) -> ProviderConfig:
    merged = merge_providers(default_providers(), overrides)
    resolved = append_login_provider(resolve_env_providers(merged, environ), app_config)
    if active_provider_id is None and resolved:
        active_provider_id = resolved[0].id
    return ProviderConfig(active_provider_id=active_provider_id, providers=resolved)


def select_provider(config: ProviderConfig) -> Provider:
    if not config.providers:
        raise NoProviderSelectedError("No provider selected: the provider catalog is empty")
    provider = config.get_provider()
    logger.info("provider.resolved", provider=provider.id, kind=provider.kind.value)
    return provider

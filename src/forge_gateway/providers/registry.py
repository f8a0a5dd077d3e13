"""Registry holding the resolved catalog and the active provider."""

from __future__ import annotations

import asyncio
from collections.abc import Mapping

import structlog

from ..catalog import (
    AppConfig,
    build_provider_config,
    load_app_config,
    load_workflow,
    select_provider,
)
from ..errors import UnknownProviderError
from ..provider import Provider, ProviderConfig
from ..settings import Settings

logger = structlog.get_logger(__name__)


class ProviderRegistry:
    """Resolves the active provider once and keeps it until told otherwise.

    The cached provider outlives credential changes made by other sessions,
    so logging out elsewhere does not log this session out.
    """

    def __init__(self, settings: Settings, environ: Mapping[str, str] | None = None) -> None:
        self._settings = settings
        self._environ = environ
        self._config: ProviderConfig | None = None
        self._active: Provider | None = None
        self._lock = asyncio.Lock()

    def catalog(self, app_config: AppConfig | None = None) -> ProviderConfig:
        if self._config is None:
            workflow = load_workflow(self._settings.workflow_path)
            if app_config is None:
                app_config = load_app_config(self._settings.app_config_path)
            self._config = build_provider_config(
                overrides=workflow.provider_config,
                environ=self._environ,
                app_config=app_config,
                active_provider_id=self._settings.active_provider or workflow.provider,
            )
        return self._config

    async def get_provider(self, app_config: AppConfig | None = None) -> Provider:
        active = self._active
        if active is not None:
            return active
        async with self._lock:
            if self._active is None:
                self._active = select_provider(self.catalog(app_config))
            return self._active

    async def update_provider(self, provider: Provider) -> None:
        async with self._lock:
            self._active = provider
        logger.info("provider.updated", provider=provider.id, kind=provider.kind.value)

    def available_providers(self) -> list[str]:
        return [entry.id for entry in self.catalog().providers]

    def find(self, provider_id: str) -> Provider:
        details = self.catalog().find(provider_id)
        if details is None:
            raise UnknownProviderError(f"Provider ID '{provider_id}' not found in providers list")
        return Provider.from_details(details)

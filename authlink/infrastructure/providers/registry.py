from __future__ import annotations

import logging
from typing import Mapping

from authlink.application.ports.provider_registry_port import ProviderRegistryPort
from authlink.domain.entities.provider import Provider
from authlink.domain.exceptions import AuthFlowError
from authlink.shared.config import ProviderSettings

from .catalog import PROVIDER_CATALOG, ProviderDefinition


logger = logging.getLogger(__name__)


class ProviderRegistry(ProviderRegistryPort):
    def __init__(
        self,
        *,
        provider_settings: Mapping[str, ProviderSettings],
        catalog: Mapping[str, ProviderDefinition] = PROVIDER_CATALOG,
    ):
        providers: dict[str, Provider] = {}
        for provider_id, settings in provider_settings.items():
            if not settings.enabled:
                continue
            definition = catalog.get(provider_id)
            if definition is None:
                logger.warning("provider_registry: unknown_provider provider=%s", provider_id)
                continue
            provider = definition.build(settings)
            if not provider.is_configured:
                logger.warning("provider_registry: incomplete_credentials provider=%s", provider_id)
            providers[provider_id] = provider
        self._providers = providers

    def enabled_providers(self) -> Mapping[str, Provider]:
        return dict(self._providers)

    def resolve(self, provider_id: str) -> Provider:
        provider = self._providers.get(provider_id)
        if provider is None:
            raise AuthFlowError("disabled-endpoint", f"Provider {provider_id} is not enabled")
        return provider

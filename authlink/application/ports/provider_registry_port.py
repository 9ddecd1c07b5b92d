from __future__ import annotations

from typing import Mapping, Protocol

from authlink.domain.entities.provider import Provider


class ProviderRegistryPort(Protocol):
    def enabled_providers(self) -> Mapping[str, Provider]:
        ...

    def resolve(self, provider_id: str) -> Provider:
        ...

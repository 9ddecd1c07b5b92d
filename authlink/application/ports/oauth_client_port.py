from __future__ import annotations

from typing import Any, Mapping, Protocol

from authlink.domain.entities.identity import ProviderResponse
from authlink.domain.entities.provider import Provider


class OAuthClientPort(Protocol):
    def authorization_url(
        self,
        provider: Provider,
        *,
        state: str,
        redirect_uri: str,
        extra_params: Mapping[str, str] | None = None,
    ) -> str:
        ...

    def exchange_code(self, provider: Provider, *, code: str, redirect_uri: str) -> ProviderResponse:
        ...

    def fetch_userinfo(self, provider: Provider, *, access_token: str) -> Any:
        ...

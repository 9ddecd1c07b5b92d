from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping


@dataclass(frozen=True)
class StartOAuthInput:
    provider: str
    query: Mapping[str, str]


@dataclass(frozen=True)
class CompleteOAuthInput:
    provider: str
    session_id: str | None
    query: Mapping[str, str]


@dataclass(frozen=True)
class OAuthRedirectOutput:
    location: str
    session_id: str | None = None
    cross_site_callback: bool = False


@dataclass(frozen=True)
class NativeTokenInput:
    provider: str
    access_token: str


@dataclass(frozen=True)
class NativeTokenOutput:
    refresh_token: str | None = None
    error: dict | None = None
    status_code: int = 200


@dataclass(frozen=True)
class OAuthUrls:
    server_url: str
    client_url: str
    allowed_redirect_urls: tuple[str, ...] = ()

    def callback_url(self, provider_id: str) -> str:
        return f"{self.server_url.rstrip('/')}/signin/provider/{provider_id}/callback"

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Literal, Mapping

from authlink.domain.entities.identity import CanonicalProfile
from authlink.domain.exceptions import AuthFlowError


ProfileNormalizer = Callable[[Mapping[str, Any]], CanonicalProfile]
PreRequestHook = Callable[[Mapping[str, str]], dict[str, str]]
ProfileSource = Literal["userinfo", "token", "id_token"]
SecretFactory = Callable[[], str]


@dataclass(frozen=True)
class ProviderCredentials:
    client_id: str | None
    client_secret: str | None
    secret_factory: SecretFactory | None = None

    @property
    def is_complete(self) -> bool:
        return bool(self.client_id and (self.client_secret or self.secret_factory))

    def secret(self) -> str:
        """Return the static secret, or a freshly signed one for providers that need it."""
        if self.client_secret:
            return self.client_secret
        if self.secret_factory is not None:
            return self.secret_factory()
        return ""


@dataclass(frozen=True)
class ProviderEndpoints:
    authorize_url: str
    token_url: str
    userinfo_url: str | None


@dataclass(frozen=True)
class Provider:
    id: str
    credentials: ProviderCredentials
    scopes: tuple[str, ...]
    endpoints: ProviderEndpoints
    normalizer: ProfileNormalizer
    pre_request_hook: PreRequestHook | None = None
    authorize_params: Mapping[str, str] = field(default_factory=dict)
    profile_source: ProfileSource = "userinfo"
    response_mode: str | None = None
    send_client_id_header: bool = False
    scope_separator: str = " "

    @property
    def is_configured(self) -> bool:
        return self.credentials.is_complete

    def ensure_configured(self) -> None:
        if not self.is_configured:
            raise AuthFlowError(
                "invalid-oauth-configuration",
                f"Missing client id or secret for provider {self.id}",
            )

    def normalize(self, raw_profile: Mapping[str, Any]) -> CanonicalProfile:
        return self.normalizer(raw_profile)

    def pre_request(self, query: Mapping[str, str]) -> dict[str, str]:
        if self.pre_request_hook is None:
            return {}
        return self.pre_request_hook(query)

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Callable, Mapping

import jwt

from authlink.domain.entities.provider import (
    PreRequestHook,
    ProfileNormalizer,
    ProfileSource,
    Provider,
    ProviderCredentials,
    ProviderEndpoints,
    SecretFactory,
)
from authlink.domain.exceptions import AuthFlowError, ProviderExchangeError
from authlink.domain.services import profile_normalizers
from authlink.shared.config import ProviderSettings


def workos_pre_request(query: Mapping[str, str]) -> dict[str, str]:
    """Forward the WorkOS selector the client asked for to the authorize URL."""
    params = {
        key: str(query[key]).strip()
        for key in ("organization", "connection", "domain")
        if query.get(key) and str(query[key]).strip()
    }
    if not params:
        raise AuthFlowError(
            "invalid-request",
            "WorkOS sign in needs an organization, connection or domain parameter",
        )
    return params


APPLE_AUDIENCE = "https://appleid.apple.com"
APPLE_SECRET_TTL = timedelta(minutes=5)


def apple_client_secret(settings: ProviderSettings) -> SecretFactory | None:
    """Sign in with Apple takes an ES256 JWT, signed with the team key, as client secret."""
    client_id = settings.client_id
    team_id = settings.team_id
    key_id = settings.key_id
    private_key = settings.private_key
    if not (client_id and team_id and key_id and private_key):
        return None

    def sign() -> str:
        now = datetime.now(timezone.utc)
        claims = {
            "iss": team_id,
            "sub": client_id,
            "aud": APPLE_AUDIENCE,
            "iat": int(now.timestamp()),
            "exp": int((now + APPLE_SECRET_TTL).timestamp()),
        }
        try:
            return jwt.encode(claims, private_key, algorithm="ES256", headers={"kid": key_id})
        except (ValueError, jwt.PyJWTError) as exc:
            raise ProviderExchangeError("Could not sign the apple client secret") from exc

    return sign


@dataclass(frozen=True)
class ProviderDefinition:
    id: str
    authorize_url: str
    token_url: str
    userinfo_url: str | None
    default_scopes: tuple[str, ...]
    normalizer: ProfileNormalizer
    pre_request_hook: PreRequestHook | None = None
    authorize_params: Mapping[str, str] = field(default_factory=dict)
    profile_source: ProfileSource = "userinfo"
    response_mode: str | None = None
    send_client_id_header: bool = False
    scope_separator: str = " "
    default_tenant: str | None = None
    secret_factory: Callable[[ProviderSettings], SecretFactory | None] | None = None

    def build(self, settings: ProviderSettings) -> Provider:
        tenant = settings.tenant or self.default_tenant or ""
        scopes = tuple(dict.fromkeys((*self.default_scopes, *settings.scope)))
        return Provider(
            id=self.id,
            credentials=ProviderCredentials(
                client_id=settings.client_id,
                client_secret=settings.client_secret,
                secret_factory=self.secret_factory(settings) if self.secret_factory else None,
            ),
            scopes=scopes,
            endpoints=ProviderEndpoints(
                authorize_url=self.authorize_url.format(tenant=tenant),
                token_url=self.token_url.format(tenant=tenant),
                userinfo_url=self.userinfo_url.format(tenant=tenant) if self.userinfo_url else None,
            ),
            normalizer=self.normalizer,
            pre_request_hook=self.pre_request_hook,
            authorize_params=dict(self.authorize_params),
            profile_source=self.profile_source,
            response_mode=self.response_mode,
            send_client_id_header=self.send_client_id_header,
            scope_separator=self.scope_separator,
        )


PROVIDER_CATALOG: dict[str, ProviderDefinition] = {
    definition.id: definition
    for definition in (
        ProviderDefinition(
            id="github",
            authorize_url="https://github.com/login/oauth/authorize",
            token_url="https://github.com/login/oauth/access_token",
            userinfo_url="https://api.github.com/user",
            default_scopes=("user:email",),
            normalizer=profile_normalizers.normalize_github,
        ),
        ProviderDefinition(
            id="google",
            authorize_url="https://accounts.google.com/o/oauth2/v2/auth",
            token_url="https://oauth2.googleapis.com/token",
            userinfo_url="https://openidconnect.googleapis.com/v1/userinfo",
            default_scopes=("openid", "email", "profile"),
            normalizer=profile_normalizers.normalize_google,
            # Google only returns a refresh token with offline access and forced consent.
            authorize_params={"access_type": "offline", "prompt": "consent"},
        ),
        ProviderDefinition(
            id="facebook",
            authorize_url="https://www.facebook.com/v18.0/dialog/oauth",
            token_url="https://graph.facebook.com/v18.0/oauth/access_token",
            userinfo_url="https://graph.facebook.com/me?fields=id,name,email,picture",
            default_scopes=("email",),
            normalizer=profile_normalizers.normalize_facebook,
        ),
        ProviderDefinition(
            id="discord",
            authorize_url="https://discord.com/oauth2/authorize",
            token_url="https://discord.com/api/oauth2/token",
            userinfo_url="https://discord.com/api/users/@me",
            default_scopes=("identify", "email"),
            normalizer=profile_normalizers.normalize_discord,
        ),
        ProviderDefinition(
            id="gitlab",
            authorize_url="https://gitlab.com/oauth/authorize",
            token_url="https://gitlab.com/oauth/token",
            userinfo_url="https://gitlab.com/api/v4/user",
            default_scopes=("read_user",),
            normalizer=profile_normalizers.normalize_gitlab,
        ),
        ProviderDefinition(
            id="bitbucket",
            authorize_url="https://bitbucket.org/site/oauth2/authorize",
            token_url="https://bitbucket.org/site/oauth2/access_token",
            userinfo_url="https://api.bitbucket.org/2.0/user",
            default_scopes=("account", "email"),
            normalizer=profile_normalizers.normalize_bitbucket,
        ),
        ProviderDefinition(
            id="linkedin",
            authorize_url="https://www.linkedin.com/oauth/v2/authorization",
            token_url="https://www.linkedin.com/oauth/v2/accessToken",
            userinfo_url="https://api.linkedin.com/v2/userinfo",
            default_scopes=("openid", "profile", "email"),
            normalizer=profile_normalizers.normalize_linkedin,
        ),
        ProviderDefinition(
            id="spotify",
            authorize_url="https://accounts.spotify.com/authorize",
            token_url="https://accounts.spotify.com/api/token",
            userinfo_url="https://api.spotify.com/v1/me",
            default_scopes=("user-read-email",),
            normalizer=profile_normalizers.normalize_spotify,
        ),
        ProviderDefinition(
            id="twitch",
            authorize_url="https://id.twitch.tv/oauth2/authorize",
            token_url="https://id.twitch.tv/oauth2/token",
            userinfo_url="https://api.twitch.tv/helix/users",
            default_scopes=("user:read:email",),
            normalizer=profile_normalizers.normalize_twitch,
            send_client_id_header=True,
        ),
        ProviderDefinition(
            id="strava",
            authorize_url="https://www.strava.com/oauth/authorize",
            token_url="https://www.strava.com/oauth/token",
            userinfo_url="https://www.strava.com/api/v3/athlete",
            default_scopes=("profile:read_all",),
            normalizer=profile_normalizers.normalize_strava,
            scope_separator=",",
        ),
        ProviderDefinition(
            id="azuread",
            authorize_url="https://login.microsoftonline.com/{tenant}/oauth2/v2.0/authorize",
            token_url="https://login.microsoftonline.com/{tenant}/oauth2/v2.0/token",
            userinfo_url="https://graph.microsoft.com/oidc/userinfo",
            default_scopes=("openid", "email", "profile"),
            normalizer=profile_normalizers.normalize_azuread,
            authorize_params={"response_mode": "form_post"},
            response_mode="form_post",
            default_tenant="common",
        ),
        ProviderDefinition(
            id="workos",
            authorize_url="https://api.workos.com/sso/authorize",
            token_url="https://api.workos.com/sso/token",
            userinfo_url=None,
            default_scopes=(),
            normalizer=profile_normalizers.normalize_workos,
            pre_request_hook=workos_pre_request,
            profile_source="token",
        ),
        ProviderDefinition(
            id="apple",
            authorize_url="https://appleid.apple.com/auth/authorize",
            token_url="https://appleid.apple.com/auth/token",
            userinfo_url=None,
            default_scopes=("name", "email"),
            normalizer=profile_normalizers.normalize_apple,
            # Apple requires form_post whenever name or email is requested.
            authorize_params={"response_mode": "form_post"},
            profile_source="id_token",
            response_mode="form_post",
            secret_factory=apple_client_secret,
        ),
        ProviderDefinition(
            id="windowslive",
            authorize_url="https://login.live.com/oauth20_authorize.srf",
            token_url="https://login.live.com/oauth20_token.srf",
            userinfo_url="https://apis.live.net/v5.0/me",
            default_scopes=("wl.basic", "wl.emails"),
            normalizer=profile_normalizers.normalize_windowslive,
        ),
    )
}

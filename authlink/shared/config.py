from __future__ import annotations

import os
from dataclasses import dataclass

from dotenv import load_dotenv


load_dotenv()


def _env(name: str, default: str | None = None) -> str | None:
    return os.getenv(name, default)


def _bool(name: str, default: bool = False) -> bool:
    value = _env(name)
    if value is None or value.strip() == "":
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _list(name: str, default: str = "") -> tuple[str, ...]:
    value = _env(name, default) or ""
    return tuple(item.strip() for item in value.split(",") if item.strip())


# Env variable infix per provider id, e.g. AUTH_PROVIDER_GITHUB_ENABLED.
PROVIDER_ENV_NAMES = {
    "github": "GITHUB",
    "google": "GOOGLE",
    "facebook": "FACEBOOK",
    "discord": "DISCORD",
    "gitlab": "GITLAB",
    "bitbucket": "BITBUCKET",
    "linkedin": "LINKEDIN",
    "spotify": "SPOTIFY",
    "twitch": "TWITCH",
    "strava": "STRAVA",
    "azuread": "AZUREAD",
    "workos": "WORKOS",
    "apple": "APPLE",
    "windowslive": "WINDOWS_LIVE",
}


@dataclass(frozen=True)
class ProviderSettings:
    enabled: bool
    client_id: str | None
    client_secret: str | None
    scope: tuple[str, ...]
    tenant: str | None = None
    team_id: str | None = None
    key_id: str | None = None
    private_key: str | None = None


@dataclass(frozen=True)
class Settings:
    server_url: str
    client_url: str
    allowed_redirect_urls: tuple[str, ...]
    locale_default: str
    allowed_locales: tuple[str, ...]
    user_default_role: str
    user_default_allowed_roles: tuple[str, ...]
    gravatar_enabled: bool
    gravatar_default: str
    gravatar_rating: str
    link_require_verified_email: bool
    oauth_flow_ttl_seconds: int
    oauth_flow_store: str
    provider_timeout_seconds: float
    webauthn_enabled: bool
    webauthn_rp_name: str
    webauthn_rp_origins: tuple[str, ...]
    jwt_secret: str
    access_token_ttl_minutes: int
    refresh_token_ttl_days: int
    postgres_dsn: str
    log_level: str
    version: str
    providers: dict[str, ProviderSettings]


def _provider_settings(env_name: str) -> ProviderSettings:
    prefix = f"AUTH_PROVIDER_{env_name}"
    return ProviderSettings(
        enabled=_bool(f"{prefix}_ENABLED"),
        client_id=_env(f"{prefix}_CLIENT_ID") or None,
        client_secret=_env(f"{prefix}_CLIENT_SECRET") or None,
        scope=_list(f"{prefix}_SCOPE"),
        tenant=_env(f"{prefix}_TENANT") or None,
        team_id=_env(f"{prefix}_TEAM_ID") or None,
        key_id=_env(f"{prefix}_KEY_ID") or None,
        private_key=(_env(f"{prefix}_PRIVATE_KEY") or "").replace("\\n", "\n") or None,
    )


def get_settings() -> Settings:
    server_url = (_env("AUTH_SERVER_URL", "http://localhost:4000") or "").rstrip("/")
    default_role = _env("AUTH_USER_DEFAULT_ROLE", "user") or "user"
    allowed_roles = _list("AUTH_USER_DEFAULT_ALLOWED_ROLES", f"{default_role},me")
    if default_role not in allowed_roles:
        allowed_roles = (default_role, *allowed_roles)
    return Settings(
        server_url=server_url,
        client_url=_env("AUTH_CLIENT_URL", "http://localhost:3000") or "",
        allowed_redirect_urls=_list("AUTH_ACCESS_CONTROL_ALLOWED_REDIRECT_URLS"),
        locale_default=_env("AUTH_LOCALE_DEFAULT", "en") or "en",
        allowed_locales=_list("AUTH_LOCALE_ALLOWED_LOCALES", "en"),
        user_default_role=default_role,
        user_default_allowed_roles=allowed_roles,
        gravatar_enabled=_bool("AUTH_GRAVATAR_ENABLED", True),
        gravatar_default=_env("AUTH_GRAVATAR_DEFAULT", "blank") or "blank",
        gravatar_rating=_env("AUTH_GRAVATAR_RATING", "g") or "g",
        link_require_verified_email=_bool("AUTH_LINK_REQUIRE_VERIFIED_EMAIL"),
        oauth_flow_ttl_seconds=int(_env("AUTH_OAUTH_FLOW_TTL_SECONDS", "600")),
        oauth_flow_store=(_env("AUTH_OAUTH_FLOW_STORE", "memory") or "memory").lower(),
        provider_timeout_seconds=float(_env("AUTH_PROVIDER_TIMEOUT_SECONDS", "10")),
        webauthn_enabled=_bool("AUTH_WEBAUTHN_ENABLED"),
        webauthn_rp_name=_env("AUTH_WEBAUTHN_RP_NAME", "authlink") or "authlink",
        webauthn_rp_origins=_list("AUTH_WEBAUTHN_RP_ORIGINS") or (_env("AUTH_CLIENT_URL", "http://localhost:3000") or "",),
        jwt_secret=_env("JWT_SECRET", "") or "",
        access_token_ttl_minutes=int(_env("AUTH_ACCESS_TOKEN_EXPIRES_IN_MINUTES", "15")),
        refresh_token_ttl_days=int(_env("AUTH_REFRESH_TOKEN_EXPIRES_IN_DAYS", "30")),
        postgres_dsn=_env("POSTGRES_DSN", "") or "",
        log_level=(_env("LOG_LEVEL", "INFO") or "INFO").upper(),
        version=_env("AUTHLINK_VERSION", "0.1.0") or "0.1.0",
        providers={
            provider_id: _provider_settings(env_name)
            for provider_id, env_name in PROVIDER_ENV_NAMES.items()
        },
    )

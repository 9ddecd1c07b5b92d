from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True)
class AuthUserOutput:
    id: str
    email: str | None
    display_name: str
    avatar_url: str
    locale: str
    default_role: str
    roles: tuple[str, ...]


@dataclass(frozen=True)
class RefreshSessionInput:
    refresh_token: str


@dataclass(frozen=True)
class IssuedRefreshToken:
    refresh_token: str
    expires_at: datetime


@dataclass(frozen=True)
class AuthTokensOutput:
    user: AuthUserOutput
    access_token: str
    refresh_token: str
    access_expires_at: datetime
    refresh_expires_at: datetime


@dataclass(frozen=True)
class AccessTokenPayload:
    user_id: str
    default_role: str | None
    roles: tuple[str, ...]

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime


@dataclass(frozen=True)
class User:
    id: str
    email: str | None
    display_name: str
    avatar_url: str
    locale: str
    default_role: str
    roles: tuple[str, ...]
    metadata: dict = field(default_factory=dict)
    email_verified: bool = False
    is_active: bool = True
    current_challenge: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass(frozen=True)
class NewUser:
    email: str | None
    display_name: str
    avatar_url: str
    locale: str
    default_role: str
    roles: tuple[str, ...]
    metadata: dict
    email_verified: bool


@dataclass(frozen=True)
class UserProvider:
    id: str
    user_id: str
    provider_id: str
    provider_user_id: str
    access_token: str | None
    refresh_token: str | None
    created_at: datetime
    updated_at: datetime


@dataclass(frozen=True)
class Authenticator:
    id: str
    user_id: str
    credential_id: str
    public_key: str
    counter: int
    nickname: str | None
    created_at: datetime


@dataclass(frozen=True)
class RefreshSession:
    id: str
    user_id: str
    refresh_token_hash: str
    expires_at: datetime
    revoked_at: datetime | None
    created_at: datetime

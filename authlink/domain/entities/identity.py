from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any


@dataclass(frozen=True)
class CanonicalProfile:
    external_id: str | None
    display_name: str | None = None
    avatar_url: str | None = None
    email: str | None = None
    email_verified: bool = False
    locale: str | None = None


@dataclass(frozen=True)
class ProviderTokens:
    access_token: str | None
    refresh_token: str | None = None


@dataclass(frozen=True)
class ProviderResponse:
    tokens: ProviderTokens
    profile: dict[str, Any] | None
    raw: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class RegistrationOptions:
    """Registration options exactly as the caller supplied them; None means unset."""

    locale: str | None = None
    display_name: str | None = None
    default_role: str | None = None
    allowed_roles: tuple[str, ...] | None = None
    metadata: dict | None = None


@dataclass(frozen=True)
class FlowState:
    provider_id: str
    state: str
    redirect_to: str | None
    options: RegistrationOptions
    created_at: datetime

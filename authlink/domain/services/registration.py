from __future__ import annotations

import hashlib
import json
import re
from dataclasses import dataclass
from typing import Mapping
from urllib.parse import urlencode

from authlink.domain.entities.identity import CanonicalProfile, RegistrationOptions
from authlink.domain.entities.user import NewUser
from authlink.domain.exceptions import AuthFlowError


_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


@dataclass(frozen=True)
class RegistrationPolicy:
    locale_default: str
    allowed_locales: tuple[str, ...]
    default_role: str
    default_allowed_roles: tuple[str, ...]
    gravatar_enabled: bool = False
    gravatar_default: str = "blank"
    gravatar_rating: str = "g"


def normalize_email(email: str) -> str:
    return email.strip().lower()


def parse_registration_options(
    query: Mapping[str, str],
    policy: RegistrationPolicy,
) -> RegistrationOptions:
    """Validate the registration options of a sign-in query.

    Values are kept as given. Defaults are applied when the user is created,
    so an unset option stays distinguishable from an explicit one.
    """
    locale = query.get("locale")
    if locale is not None and locale not in policy.allowed_locales:
        raise AuthFlowError("invalid-request", f"Locale {locale} is not allowed")

    allowed_roles: tuple[str, ...] | None = None
    raw_roles = query.get("allowedRoles")
    if raw_roles is not None:
        allowed_roles = tuple(role.strip() for role in raw_roles.split(",") if role.strip())
        forbidden = [role for role in allowed_roles if role not in policy.default_allowed_roles]
        if forbidden:
            raise AuthFlowError("invalid-request", f"Roles are not allowed: {', '.join(forbidden)}")

    default_role = query.get("defaultRole")
    if default_role is not None:
        permitted = allowed_roles if allowed_roles is not None else policy.default_allowed_roles
        if default_role not in permitted:
            raise AuthFlowError("invalid-request", "Default role must be part of the allowed roles")

    metadata: dict | None = None
    raw_metadata = query.get("metadata")
    if raw_metadata is not None:
        try:
            metadata = json.loads(raw_metadata)
        except ValueError as exc:
            raise AuthFlowError("invalid-request", "metadata must be a JSON object") from exc
        if not isinstance(metadata, dict):
            raise AuthFlowError("invalid-request", "metadata must be a JSON object")

    return RegistrationOptions(
        locale=locale,
        display_name=query.get("displayName"),
        default_role=default_role,
        allowed_roles=allowed_roles,
        metadata=metadata,
    )


def gravatar_url(email: str, policy: RegistrationPolicy) -> str | None:
    if not policy.gravatar_enabled:
        return None
    digest = hashlib.md5(normalize_email(email).encode("utf-8")).hexdigest()
    query = urlencode({"r": policy.gravatar_rating, "default": policy.gravatar_default})
    return f"https://www.gravatar.com/avatar/{digest}?{query}"


def build_new_user(
    profile: CanonicalProfile,
    options: RegistrationOptions | None,
    policy: RegistrationPolicy,
) -> NewUser:
    options = options or RegistrationOptions()

    email = normalize_email(profile.email) if profile.email else None
    if email is not None and not _EMAIL_RE.match(email):
        raise AuthFlowError("invalid-request", f"Invalid email returned by the provider: {email}")

    avatar_url = profile.avatar_url or (gravatar_url(email, policy) if email else None) or ""

    locale = policy.locale_default
    requested_locale = options.locale or profile.locale
    if requested_locale and requested_locale in policy.allowed_locales:
        locale = requested_locale

    roles = options.allowed_roles if options.allowed_roles else policy.default_allowed_roles
    default_role = options.default_role or policy.default_role
    if default_role not in roles:
        roles = (default_role, *roles)

    return NewUser(
        email=email,
        display_name=options.display_name or profile.display_name or email or "",
        avatar_url=avatar_url,
        locale=locale,
        default_role=default_role,
        roles=tuple(dict.fromkeys(roles)),
        metadata=dict(options.metadata) if options.metadata else {},
        email_verified=bool(profile.email_verified),
    )

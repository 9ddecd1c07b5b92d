from __future__ import annotations

import json
from typing import Any, Mapping

from authlink.domain.entities.identity import RegistrationOptions
from authlink.domain.entities.user import Authenticator, RefreshSession, User, UserProvider


def _as_str(value: Any) -> str:
    return str(value)


def _as_dict(value: Any) -> dict:
    if value is None:
        return {}
    if isinstance(value, str):
        value = json.loads(value)
    return dict(value)


def map_row_to_user(row: Mapping[str, Any]) -> User:
    return User(
        id=_as_str(row["id"]),
        email=row.get("email"),
        display_name=row["display_name"],
        avatar_url=row["avatar_url"],
        locale=row["locale"],
        default_role=row["default_role"],
        roles=tuple(row.get("roles") or ()),
        metadata=_as_dict(row.get("metadata")),
        email_verified=bool(row["email_verified"]),
        is_active=bool(row["is_active"]),
        current_challenge=row.get("current_challenge"),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def map_row_to_user_provider(row: Mapping[str, Any]) -> UserProvider:
    return UserProvider(
        id=_as_str(row["id"]),
        user_id=_as_str(row["user_id"]),
        provider_id=row["provider_id"],
        provider_user_id=row["provider_user_id"],
        access_token=row.get("access_token"),
        refresh_token=row.get("refresh_token"),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def map_row_to_authenticator(row: Mapping[str, Any]) -> Authenticator:
    return Authenticator(
        id=_as_str(row["id"]),
        user_id=_as_str(row["user_id"]),
        credential_id=row["credential_id"],
        public_key=row["public_key"],
        counter=int(row["counter"]),
        nickname=row.get("nickname"),
        created_at=row["created_at"],
    )


def map_row_to_refresh_session(row: Mapping[str, Any]) -> RefreshSession:
    return RefreshSession(
        id=_as_str(row["id"]),
        user_id=_as_str(row["user_id"]),
        refresh_token_hash=row["refresh_token_hash"],
        expires_at=row["expires_at"],
        revoked_at=row.get("revoked_at"),
        created_at=row["created_at"],
    )


def registration_options_to_json(options: RegistrationOptions) -> str:
    payload = {
        "locale": options.locale,
        "displayName": options.display_name,
        "defaultRole": options.default_role,
        "allowedRoles": list(options.allowed_roles) if options.allowed_roles is not None else None,
        "metadata": options.metadata,
    }
    return json.dumps(payload)


def map_json_to_registration_options(value: Any) -> RegistrationOptions:
    payload = _as_dict(value)
    allowed_roles = payload.get("allowedRoles")
    return RegistrationOptions(
        locale=payload.get("locale"),
        display_name=payload.get("displayName"),
        default_role=payload.get("defaultRole"),
        allowed_roles=tuple(allowed_roles) if allowed_roles is not None else None,
        metadata=payload.get("metadata"),
    )

from __future__ import annotations

from datetime import datetime, timezone
from uuid import uuid4

from authlink.application.dto.auth import AuthTokensOutput, AuthUserOutput, IssuedRefreshToken
from authlink.application.ports.accounts_port import AccountsPort
from authlink.application.ports.token_port import TokenPort
from authlink.domain.entities.user import User


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def build_auth_user_output(user: User) -> AuthUserOutput:
    return AuthUserOutput(
        id=user.id,
        email=user.email,
        display_name=user.display_name,
        avatar_url=user.avatar_url,
        locale=user.locale,
        default_role=user.default_role,
        roles=user.roles,
    )


def issue_refresh_token(
    *,
    user: User,
    accounts_port: AccountsPort,
    token_port: TokenPort,
) -> IssuedRefreshToken:
    now = utcnow()
    refresh_token = token_port.generate_refresh_token()
    expires_at = token_port.refresh_token_expires_at(now=now)
    accounts_port.create_refresh_session(
        session_id=str(uuid4()),
        user_id=user.id,
        refresh_token_hash=token_port.hash_refresh_token(refresh_token=refresh_token),
        expires_at=expires_at,
        created_at=now,
    )
    return IssuedRefreshToken(refresh_token=refresh_token, expires_at=expires_at)


def issue_tokens(
    *,
    user: User,
    accounts_port: AccountsPort,
    token_port: TokenPort,
) -> AuthTokensOutput:
    now = utcnow()
    access_token, access_expires_at = token_port.create_access_token(user=user, now=now)
    issued = issue_refresh_token(user=user, accounts_port=accounts_port, token_port=token_port)
    return AuthTokensOutput(
        user=build_auth_user_output(user),
        access_token=access_token,
        refresh_token=issued.refresh_token,
        access_expires_at=access_expires_at,
        refresh_expires_at=issued.expires_at,
    )

from __future__ import annotations

import hashlib
import secrets
from datetime import datetime, timedelta
from typing import Any

import jwt

from authlink.application.dto.auth import AccessTokenPayload
from authlink.application.ports.token_port import TokenPort
from authlink.domain.entities.user import User


ALGORITHM = "HS256"


def _access_claims(user: User, *, issuer: str, issued_at: datetime, expires_at: datetime) -> dict[str, Any]:
    return {
        "iss": issuer,
        "sub": user.id,
        "type": "access",
        "default_role": user.default_role,
        "roles": list(user.roles),
        "iat": int(issued_at.timestamp()),
        "exp": int(expires_at.timestamp()),
    }


class JwtTokenService(TokenPort):
    """Signed access tokens and opaque refresh tokens.

    Access tokens are HS256 JWTs bound to this server as issuer. Refresh
    tokens are random strings; only their SHA-256 digest is persisted.
    """

    def __init__(
        self,
        *,
        jwt_secret: str,
        issuer: str,
        access_ttl_minutes: int,
        refresh_ttl_days: int,
    ):
        self._jwt_secret = jwt_secret
        self._issuer = issuer
        self._access_ttl = timedelta(minutes=access_ttl_minutes)
        self._refresh_ttl = timedelta(days=refresh_ttl_days)

    def create_access_token(self, *, user: User, now: datetime) -> tuple[str, datetime]:
        expires_at = now + self._access_ttl
        claims = _access_claims(user, issuer=self._issuer, issued_at=now, expires_at=expires_at)
        return jwt.encode(claims, self._jwt_secret, algorithm=ALGORITHM), expires_at

    def decode_access_token(self, *, token: str) -> AccessTokenPayload:
        try:
            claims = jwt.decode(
                token,
                self._jwt_secret,
                algorithms=[ALGORITHM],
                issuer=self._issuer,
                options={"require": ["exp", "iss", "sub"]},
            )
        except jwt.PyJWTError as exc:
            raise ValueError("Invalid access token.") from exc

        if claims.get("type") != "access":
            raise ValueError("Invalid token type.")
        subject = claims["sub"]
        if not isinstance(subject, str) or not subject:
            raise ValueError("Invalid token subject.")

        return AccessTokenPayload(
            user_id=subject,
            default_role=claims.get("default_role"),
            roles=tuple(str(role) for role in claims.get("roles") or ()),
        )

    def generate_refresh_token(self) -> str:
        return secrets.token_urlsafe(48)

    def hash_refresh_token(self, *, refresh_token: str) -> str:
        return hashlib.sha256(refresh_token.encode("utf-8")).hexdigest()

    def refresh_token_expires_at(self, *, now: datetime) -> datetime:
        return now + self._refresh_ttl

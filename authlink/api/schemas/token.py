from __future__ import annotations

from pydantic import BaseModel, Field


class RefreshTokenRequest(BaseModel):
    refresh_token: str = Field(..., min_length=1, alias="refreshToken")


class SessionUserResponse(BaseModel):
    id: str
    email: str | None
    display_name: str = Field(..., serialization_alias="displayName")
    avatar_url: str = Field(..., serialization_alias="avatarUrl")
    locale: str
    default_role: str = Field(..., serialization_alias="defaultRole")
    roles: list[str]


class SessionResponse(BaseModel):
    access_token: str = Field(..., serialization_alias="accessToken")
    access_token_expires_in: int = Field(..., serialization_alias="accessTokenExpiresIn")
    refresh_token: str = Field(..., serialization_alias="refreshToken")
    user: SessionUserResponse

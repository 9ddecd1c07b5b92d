from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class WebAuthnVerifyRequest(BaseModel):
    credential: dict[str, Any]
    nickname: str | None = Field(default=None, max_length=255)


class WebAuthnVerifyResponse(BaseModel):
    id: str
    credential_id: str = Field(..., serialization_alias="credentialId")
    nickname: str | None

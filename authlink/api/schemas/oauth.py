from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class NativeTokenRequest(BaseModel):
    access_token: str = Field(..., min_length=1)
    provider: str = Field(default="google", min_length=1)


class NativeTokenResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    refresh_token: str = Field(..., serialization_alias="refreshToken")

from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter, Depends

from authlink.api.deps import get_refresh_session_use_case
from authlink.api.schemas.token import RefreshTokenRequest, SessionResponse, SessionUserResponse
from authlink.application.dto.auth import RefreshSessionInput
from authlink.application.use_cases.refresh_session import RefreshSessionUseCase


router = APIRouter()


def _expires_in_seconds(expires_at: datetime) -> int:
    now = datetime.now(timezone.utc)
    return max(int((expires_at - now).total_seconds()), 0)


@router.post("/token", response_model=SessionResponse)
def refresh_token(
    req: RefreshTokenRequest,
    use_case: RefreshSessionUseCase = Depends(get_refresh_session_use_case),
):
    output = use_case.execute(RefreshSessionInput(refresh_token=req.refresh_token))
    return SessionResponse(
        access_token=output.access_token,
        access_token_expires_in=_expires_in_seconds(output.access_expires_at),
        refresh_token=output.refresh_token,
        user=SessionUserResponse(
            id=output.user.id,
            email=output.user.email,
            display_name=output.user.display_name,
            avatar_url=output.user.avatar_url,
            locale=output.user.locale,
            default_role=output.user.default_role,
            roles=list(output.user.roles),
        ),
    )

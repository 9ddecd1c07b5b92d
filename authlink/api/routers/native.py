from __future__ import annotations

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from authlink.api.deps import get_native_token_sign_in_use_case
from authlink.api.schemas.oauth import NativeTokenRequest, NativeTokenResponse
from authlink.application.dto.oauth import NativeTokenInput
from authlink.application.use_cases.native_token_sign_in import NativeTokenSignInUseCase


router = APIRouter()


@router.post("/native/token", response_model=NativeTokenResponse)
def native_token_sign_in(
    req: NativeTokenRequest,
    use_case: NativeTokenSignInUseCase = Depends(get_native_token_sign_in_use_case),
):
    output = use_case.execute(
        NativeTokenInput(provider=req.provider, access_token=req.access_token)
    )
    if output.error is not None:
        return JSONResponse(status_code=output.status_code, content=output.error)
    return NativeTokenResponse(refresh_token=output.refresh_token)

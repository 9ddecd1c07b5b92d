from __future__ import annotations

from fastapi import APIRouter, Depends

from authlink.api.deps import (
    get_current_user,
    get_issue_webauthn_challenge_use_case,
    get_verify_webauthn_registration_use_case,
)
from authlink.api.schemas.webauthn import WebAuthnVerifyRequest, WebAuthnVerifyResponse
from authlink.application.dto.webauthn import (
    IssueWebAuthnChallengeInput,
    VerifyWebAuthnRegistrationInput,
)
from authlink.application.use_cases.webauthn_registration import (
    IssueWebAuthnChallengeUseCase,
    VerifyWebAuthnRegistrationUseCase,
)
from authlink.domain.entities.user import User


router = APIRouter()


@router.post("/user/webauthn/add")
def add_webauthn_authenticator(
    user: User = Depends(get_current_user),
    use_case: IssueWebAuthnChallengeUseCase = Depends(get_issue_webauthn_challenge_use_case),
):
    output = use_case.execute(IssueWebAuthnChallengeInput(user_id=user.id))
    return output.options


@router.post("/user/webauthn/verify", response_model=WebAuthnVerifyResponse)
def verify_webauthn_authenticator(
    req: WebAuthnVerifyRequest,
    user: User = Depends(get_current_user),
    use_case: VerifyWebAuthnRegistrationUseCase = Depends(get_verify_webauthn_registration_use_case),
):
    output = use_case.execute(
        VerifyWebAuthnRegistrationInput(
            user_id=user.id,
            credential=req.credential,
            nickname=req.nickname,
        )
    )
    return WebAuthnVerifyResponse(
        id=output.authenticator_id,
        credential_id=output.credential_id,
        nickname=output.nickname,
    )

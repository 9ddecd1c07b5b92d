from __future__ import annotations

import logging
from uuid import uuid4

from authlink.application.dto.webauthn import (
    IssueWebAuthnChallengeInput,
    VerifyWebAuthnRegistrationInput,
    VerifyWebAuthnRegistrationOutput,
    WebAuthnChallengeOutput,
)
from authlink.application.ports.accounts_port import AccountsPort
from authlink.application.ports.webauthn_port import WebAuthnPort
from authlink.domain.exceptions import AccountConflictError, AuthFlowError, WebAuthnAuthenticatorError

from .auth_common import utcnow


logger = logging.getLogger(__name__)


class IssueWebAuthnChallengeUseCase:
    def __init__(self, *, accounts_port: AccountsPort, webauthn_port: WebAuthnPort, enabled: bool):
        self._accounts_port = accounts_port
        self._webauthn_port = webauthn_port
        self._enabled = enabled

    def execute(self, command: IssueWebAuthnChallengeInput) -> WebAuthnChallengeOutput:
        if not self._enabled:
            raise AuthFlowError("disabled-endpoint")

        user = self._accounts_port.get_user_by_id(user_id=command.user_id)
        if user is None:
            raise AuthFlowError("user-not-found")

        authenticators = self._accounts_port.list_authenticators(user_id=user.id)
        payload = self._webauthn_port.generate_registration_options(
            user_id=user.id,
            user_name=user.display_name or user.email or user.id,
            exclude_credential_ids=[item.credential_id for item in authenticators],
        )
        # A new challenge replaces any earlier one.
        self._accounts_port.set_user_challenge(user_id=user.id, challenge=payload.challenge)
        logger.info("webauthn: challenge_issued user_id=%s", user.id)
        return WebAuthnChallengeOutput(options=payload.options)


class VerifyWebAuthnRegistrationUseCase:
    """Verify a registration response against the user's outstanding challenge.

    The challenge is consumed before the credential is checked, so each one
    can be verified at most once whatever the outcome.
    """

    def __init__(self, *, accounts_port: AccountsPort, webauthn_port: WebAuthnPort, enabled: bool):
        self._accounts_port = accounts_port
        self._webauthn_port = webauthn_port
        self._enabled = enabled

    def execute(self, command: VerifyWebAuthnRegistrationInput) -> VerifyWebAuthnRegistrationOutput:
        if not self._enabled:
            raise AuthFlowError("disabled-endpoint")

        user = self._accounts_port.get_user_by_id(user_id=command.user_id)
        if user is None:
            raise AuthFlowError("user-not-found")

        challenge = self._accounts_port.take_user_challenge(user_id=user.id)
        if not challenge:
            logger.warning("webauthn: no_pending_challenge user_id=%s", user.id)
            raise AuthFlowError(
                "invalid-webauthn-verification",
                "No pending WebAuthn challenge for this user",
            )

        try:
            verification = self._webauthn_port.verify_registration(
                credential=command.credential,
                expected_challenge=challenge,
            )
        except WebAuthnAuthenticatorError as exc:
            logger.warning("webauthn: rejected_authenticator user_id=%s error=%s", user.id, exc)
            raise AuthFlowError("invalid-webauthn-authenticator") from exc

        if not verification.verified or not verification.credential_id or not verification.public_key:
            raise AuthFlowError("invalid-webauthn-verification")

        try:
            authenticator = self._accounts_port.create_authenticator(
                authenticator_id=str(uuid4()),
                user_id=user.id,
                credential_id=verification.credential_id,
                public_key=verification.public_key,
                counter=verification.sign_count,
                nickname=command.nickname,
                created_at=utcnow(),
            )
        except AccountConflictError as exc:
            raise AuthFlowError(
                "invalid-webauthn-authenticator",
                "This authenticator is already registered",
            ) from exc

        logger.info(
            "webauthn: authenticator_registered user_id=%s authenticator_id=%s",
            user.id,
            authenticator.id,
        )
        return VerifyWebAuthnRegistrationOutput(
            authenticator_id=authenticator.id,
            credential_id=authenticator.credential_id,
            nickname=authenticator.nickname,
        )

from __future__ import annotations

from typing import Any, Protocol

from authlink.application.dto.webauthn import RegistrationOptionsPayload, RegistrationVerification


class WebAuthnPort(Protocol):
    def generate_registration_options(
        self,
        *,
        user_id: str,
        user_name: str,
        exclude_credential_ids: list[str],
    ) -> RegistrationOptionsPayload:
        ...

    def verify_registration(
        self,
        *,
        credential: dict[str, Any],
        expected_challenge: str,
    ) -> RegistrationVerification:
        """Raises WebAuthnAuthenticatorError when the credential cannot be verified."""
        ...

from __future__ import annotations

import json
import logging
from typing import Any
from urllib.parse import urlsplit

from webauthn import (
    base64url_to_bytes,
    generate_registration_options,
    options_to_json,
    verify_registration_response,
)
from webauthn.helpers import bytes_to_base64url
from webauthn.helpers.structs import AttestationConveyancePreference, PublicKeyCredentialDescriptor

from authlink.application.dto.webauthn import RegistrationOptionsPayload, RegistrationVerification
from authlink.application.ports.webauthn_port import WebAuthnPort
from authlink.domain.exceptions import WebAuthnAuthenticatorError


logger = logging.getLogger(__name__)


def relying_party_id(server_url: str) -> str:
    return urlsplit(server_url).hostname or "localhost"


class PyWebAuthnClient(WebAuthnPort):
    def __init__(self, *, rp_id: str, rp_name: str, expected_origins: tuple[str, ...]):
        self._rp_id = rp_id
        self._rp_name = rp_name
        self._expected_origins = list(expected_origins)

    def generate_registration_options(
        self,
        *,
        user_id: str,
        user_name: str,
        exclude_credential_ids: list[str],
    ) -> RegistrationOptionsPayload:
        options = generate_registration_options(
            rp_id=self._rp_id,
            rp_name=self._rp_name,
            user_id=user_id.encode("utf-8"),
            user_name=user_name,
            attestation=AttestationConveyancePreference.INDIRECT,
            exclude_credentials=[
                PublicKeyCredentialDescriptor(id=base64url_to_bytes(credential_id))
                for credential_id in exclude_credential_ids
            ],
        )
        return RegistrationOptionsPayload(
            challenge=bytes_to_base64url(options.challenge),
            options=json.loads(options_to_json(options)),
        )

    def verify_registration(
        self,
        *,
        credential: dict[str, Any],
        expected_challenge: str,
    ) -> RegistrationVerification:
        try:
            verified = verify_registration_response(
                credential=credential,
                expected_challenge=base64url_to_bytes(expected_challenge),
                expected_origin=self._expected_origins,
                expected_rp_id=self._rp_id,
            )
        except Exception as exc:
            logger.info("webauthn_client: registration_rejected rp_id=%s error=%s", self._rp_id, exc)
            raise WebAuthnAuthenticatorError(str(exc)) from exc

        return RegistrationVerification(
            verified=True,
            credential_id=bytes_to_base64url(verified.credential_id),
            public_key=bytes_to_base64url(verified.credential_public_key),
            sign_count=verified.sign_count,
        )

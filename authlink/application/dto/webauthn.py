from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class IssueWebAuthnChallengeInput:
    user_id: str


@dataclass(frozen=True)
class WebAuthnChallengeOutput:
    options: dict[str, Any]


@dataclass(frozen=True)
class VerifyWebAuthnRegistrationInput:
    user_id: str
    credential: dict[str, Any]
    nickname: str | None = None


@dataclass(frozen=True)
class VerifyWebAuthnRegistrationOutput:
    authenticator_id: str
    credential_id: str
    nickname: str | None


@dataclass(frozen=True)
class RegistrationOptionsPayload:
    challenge: str
    options: dict[str, Any]


@dataclass(frozen=True)
class RegistrationVerification:
    verified: bool
    credential_id: str | None = None
    public_key: str | None = None
    sign_count: int = 0

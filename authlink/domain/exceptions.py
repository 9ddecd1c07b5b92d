from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class ErrorSpec:
    status_code: int
    message: str


ERRORS: dict[str, ErrorSpec] = {
    "disabled-endpoint": ErrorSpec(409, "This endpoint is disabled"),
    "invalid-oauth-configuration": ErrorSpec(
        500,
        "The OAuth provider is not correctly configured",
    ),
    "invalid-request": ErrorSpec(400, "The request payload is incorrect"),
    "internal-error": ErrorSpec(500, "Internal server error"),
    "user-not-found": ErrorSpec(400, "No user found"),
    "unverified-user": ErrorSpec(401, "Email is not verified"),
    "disabled-user": ErrorSpec(401, "User is disabled"),
    "unauthenticated-user": ErrorSpec(401, "User is not logged in"),
    "invalid-refresh-token": ErrorSpec(401, "Invalid or expired refresh token"),
    "invalid-webauthn-authenticator": ErrorSpec(400, "Invalid WebAuthn authenticator"),
    "invalid-webauthn-verification": ErrorSpec(400, "Invalid WebAuthn verification"),
}


class DomainError(Exception):
    """Base for domain errors."""


class AuthFlowError(DomainError):
    """Error with a stable code from ERRORS, reported to the caller."""

    def __init__(self, code: str, message: str | None = None):
        if code not in ERRORS:
            raise ValueError(f"Unknown error code: {code}")
        self.code = code
        self.message = message or ERRORS[code].message
        super().__init__(self.message)

    @property
    def status_code(self) -> int:
        return ERRORS[self.code].status_code


class AccountConflictError(DomainError):
    """A uniqueness constraint rejected a concurrent user or link write."""


class ProviderExchangeError(DomainError):
    """The provider token or identity endpoint could not be used."""


class WebAuthnAuthenticatorError(DomainError):
    """The submitted credential failed structural or cryptographic checks."""

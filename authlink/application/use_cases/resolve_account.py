from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, ClassVar, Optional, Union
from uuid import uuid4

from authlink.application.dto.auth import IssuedRefreshToken
from authlink.application.ports.accounts_port import AccountsPort
from authlink.application.ports.token_port import TokenPort
from authlink.domain.entities.identity import CanonicalProfile, ProviderTokens, RegistrationOptions
from authlink.domain.entities.user import User, UserProvider
from authlink.domain.exceptions import AccountConflictError, AuthFlowError
from authlink.domain.services.registration import (
    RegistrationPolicy,
    build_new_user,
    normalize_email,
)

from .auth_common import issue_refresh_token, utcnow


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AccountUpdated:
    kind: ClassVar[str] = "updated"
    user: User
    link: UserProvider


@dataclass(frozen=True)
class AccountLinked:
    kind: ClassVar[str] = "linked"
    user: User
    link: UserProvider


@dataclass(frozen=True)
class AccountCreated:
    kind: ClassVar[str] = "created"
    user: User
    link: UserProvider


ResolutionOutcome = Union[AccountUpdated, AccountLinked, AccountCreated]


@dataclass(frozen=True)
class ResolutionRequest:
    provider_id: str
    external_id: str
    profile: CanonicalProfile
    tokens: ProviderTokens
    options: RegistrationOptions | None


ResolutionRule = Callable[[AccountsPort, ResolutionRequest], Optional[ResolutionOutcome]]


class AccountResolutionEngine:
    """Resolve an external identity to exactly one user.

    Rules run in order and the first one that matches wins:

    1. the identity is already linked: rotate the stored provider tokens;
    2. a user owns the profile email: link the identity to that user;
    3. otherwise create the user together with its first link.

    Each attempt runs in its own transaction. When a concurrent writer wins a
    uniqueness race the attempt fails with AccountConflictError and the rules
    run again, which then find the winner's row.
    """

    def __init__(
        self,
        *,
        accounts_port: AccountsPort,
        registration_policy: RegistrationPolicy,
        require_verified_email: bool = False,
        max_attempts: int = 3,
    ):
        self._accounts_port = accounts_port
        self._registration_policy = registration_policy
        self._require_verified_email = require_verified_email
        self._max_attempts = max_attempts
        self._rules: tuple[ResolutionRule, ...] = (
            self._update_existing_link,
            self._link_existing_user,
            self._create_user,
        )

    def resolve(
        self,
        *,
        provider_id: str,
        profile: CanonicalProfile,
        tokens: ProviderTokens,
        options: RegistrationOptions | None = None,
        accounts_port: AccountsPort | None = None,
    ) -> ResolutionOutcome:
        external_id = (profile.external_id or "").strip()
        if not external_id:
            raise AuthFlowError("internal-error", f"Missing id in profile for provider {provider_id}")

        request = ResolutionRequest(
            provider_id=provider_id,
            external_id=external_id,
            profile=profile,
            tokens=tokens,
            options=options,
        )
        port = accounts_port or self._accounts_port

        last_conflict: AccountConflictError | None = None
        for attempt in range(1, self._max_attempts + 1):
            try:
                outcome = port.execute_in_transaction(lambda tx: self._resolve_once(tx, request))
            except AccountConflictError as exc:
                last_conflict = exc
                logger.warning(
                    "account_resolution: conflict provider=%s attempt=%s/%s error=%s",
                    provider_id,
                    attempt,
                    self._max_attempts,
                    exc,
                )
                continue

            logger.info(
                "account_resolution: %s provider=%s user_id=%s",
                outcome.kind,
                provider_id,
                outcome.user.id,
            )
            return outcome

        raise last_conflict or AccountConflictError("Could not resolve the account.")

    def _resolve_once(self, port: AccountsPort, request: ResolutionRequest) -> ResolutionOutcome:
        for rule in self._rules:
            outcome = rule(port, request)
            if outcome is not None:
                return outcome
        raise AuthFlowError("internal-error", "Could not retrieve user")

    def _update_existing_link(
        self,
        port: AccountsPort,
        request: ResolutionRequest,
    ) -> ResolutionOutcome | None:
        link = port.get_user_provider(
            provider_id=request.provider_id,
            provider_user_id=request.external_id,
        )
        if link is None:
            return None

        user = port.get_user_by_id(user_id=link.user_id)
        if user is None:
            raise AuthFlowError(
                "internal-error",
                f"User linked to provider {request.provider_id} was not found",
            )

        # Flows without a provider refresh token keep the stored one.
        refresh_token = request.tokens.refresh_token
        if refresh_token is None:
            refresh_token = link.refresh_token

        link = port.update_user_provider_tokens(
            link_id=link.id,
            access_token=request.tokens.access_token,
            refresh_token=refresh_token,
            updated_at=utcnow(),
        )
        return AccountUpdated(user=user, link=link)

    def _link_existing_user(
        self,
        port: AccountsPort,
        request: ResolutionRequest,
    ) -> ResolutionOutcome | None:
        if not request.profile.email:
            return None

        user = port.get_user_by_email(email=normalize_email(request.profile.email))
        if user is None:
            return None

        if self._require_verified_email and not request.profile.email_verified:
            logger.warning(
                "account_resolution: refused_unverified_email_link provider=%s user_id=%s",
                request.provider_id,
                user.id,
            )
            raise AuthFlowError(
                "unverified-user",
                f"The email returned by {request.provider_id} is not verified",
            )

        link = port.create_user_provider(
            link_id=str(uuid4()),
            user_id=user.id,
            provider_id=request.provider_id,
            provider_user_id=request.external_id,
            access_token=request.tokens.access_token,
            refresh_token=request.tokens.refresh_token,
            created_at=utcnow(),
        )
        return AccountLinked(user=user, link=link)

    def _create_user(
        self,
        port: AccountsPort,
        request: ResolutionRequest,
    ) -> ResolutionOutcome:
        new_user = build_new_user(request.profile, request.options, self._registration_policy)
        now = utcnow()
        user = port.create_user(user_id=str(uuid4()), new_user=new_user, created_at=now)
        link = port.create_user_provider(
            link_id=str(uuid4()),
            user_id=user.id,
            provider_id=request.provider_id,
            provider_user_id=request.external_id,
            access_token=request.tokens.access_token,
            refresh_token=request.tokens.refresh_token,
            created_at=now,
        )
        return AccountCreated(user=user, link=link)


def sign_in_with_profile(
    *,
    engine: AccountResolutionEngine,
    accounts_port: AccountsPort,
    token_port: TokenPort,
    provider_id: str,
    profile: CanonicalProfile,
    tokens: ProviderTokens,
    options: RegistrationOptions | None = None,
) -> tuple[ResolutionOutcome, IssuedRefreshToken]:
    """Resolve the account and mint the application refresh token atomically."""

    def _tx(tx: AccountsPort) -> tuple[ResolutionOutcome, IssuedRefreshToken]:
        outcome = engine.resolve(
            provider_id=provider_id,
            profile=profile,
            tokens=tokens,
            options=options,
            accounts_port=tx,
        )
        if not outcome.user.is_active:
            raise AuthFlowError("disabled-user")
        issued = issue_refresh_token(user=outcome.user, accounts_port=tx, token_port=token_port)
        return outcome, issued

    return accounts_port.execute_in_transaction(_tx)

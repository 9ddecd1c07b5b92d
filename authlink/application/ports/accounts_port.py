from __future__ import annotations

from datetime import datetime
from typing import Callable, Protocol, TypeVar

from authlink.domain.entities.user import (
    Authenticator,
    NewUser,
    RefreshSession,
    User,
    UserProvider,
)


TAccountsResult = TypeVar("TAccountsResult")


class AccountsPort(Protocol):
    def execute_in_transaction(
        self,
        fn: Callable[[AccountsPort], TAccountsResult],
    ) -> TAccountsResult:
        ...

    def get_user_by_id(self, *, user_id: str) -> User | None:
        ...

    def get_user_by_email(self, *, email: str) -> User | None:
        ...

    def create_user(self, *, user_id: str, new_user: NewUser, created_at: datetime) -> User:
        """Raises AccountConflictError when the email is already taken."""
        ...

    def get_user_provider(self, *, provider_id: str, provider_user_id: str) -> UserProvider | None:
        ...

    def create_user_provider(
        self,
        *,
        link_id: str,
        user_id: str,
        provider_id: str,
        provider_user_id: str,
        access_token: str | None,
        refresh_token: str | None,
        created_at: datetime,
    ) -> UserProvider:
        """Raises AccountConflictError when (provider_id, provider_user_id) is already linked."""
        ...

    def update_user_provider_tokens(
        self,
        *,
        link_id: str,
        access_token: str | None,
        refresh_token: str | None,
        updated_at: datetime,
    ) -> UserProvider:
        ...

    def set_user_challenge(self, *, user_id: str, challenge: str | None) -> None:
        ...

    def take_user_challenge(self, *, user_id: str) -> str | None:
        """Return the stored challenge and clear it in the same statement."""
        ...

    def list_authenticators(self, *, user_id: str) -> list[Authenticator]:
        ...

    def create_authenticator(
        self,
        *,
        authenticator_id: str,
        user_id: str,
        credential_id: str,
        public_key: str,
        counter: int,
        nickname: str | None,
        created_at: datetime,
    ) -> Authenticator:
        ...

    def create_refresh_session(
        self,
        *,
        session_id: str,
        user_id: str,
        refresh_token_hash: str,
        expires_at: datetime,
        created_at: datetime,
    ) -> RefreshSession:
        ...

    def get_refresh_session_by_hash(self, *, refresh_token_hash: str) -> RefreshSession | None:
        ...

    def revoke_refresh_session(self, *, session_id: str, revoked_at: datetime) -> bool:
        """Return False when the session was already revoked."""
        ...

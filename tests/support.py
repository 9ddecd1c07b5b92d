from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timedelta, timezone
from threading import RLock
from typing import Any, Callable, Mapping
from urllib.parse import parse_qs, urlencode, urlsplit

from authlink.application.dto.auth import AccessTokenPayload
from authlink.application.dto.oauth import CompleteOAuthInput, OAuthUrls, StartOAuthInput
from authlink.application.dto.webauthn import RegistrationOptionsPayload, RegistrationVerification
from authlink.application.use_cases.complete_oauth import CompleteOAuthUseCase
from authlink.application.use_cases.resolve_account import AccountResolutionEngine
from authlink.application.use_cases.start_oauth import StartOAuthUseCase
from authlink.domain.entities.identity import ProviderResponse, ProviderTokens
from authlink.domain.entities.provider import Provider
from authlink.domain.entities.user import Authenticator, NewUser, RefreshSession, User, UserProvider
from authlink.domain.exceptions import AccountConflictError, ProviderExchangeError, WebAuthnAuthenticatorError
from authlink.domain.services.registration import RegistrationPolicy
from authlink.infrastructure.flow_state.memory_store import InMemoryFlowStateStore
from authlink.infrastructure.providers.registry import ProviderRegistry
from authlink.shared.config import ProviderSettings


def utc(year: int = 2024, month: int = 1, day: int = 1) -> datetime:
    return datetime(year, month, day, tzinfo=timezone.utc)


def make_policy(**overrides) -> RegistrationPolicy:
    values = {
        "locale_default": "en",
        "allowed_locales": ("en", "fr"),
        "default_role": "user",
        "default_allowed_roles": ("user", "me", "editor"),
        "gravatar_enabled": False,
    }
    values.update(overrides)
    return RegistrationPolicy(**values)


def make_registry(*provider_ids: str, incomplete: tuple[str, ...] = ()) -> ProviderRegistry:
    settings = {
        provider_id: ProviderSettings(
            enabled=True,
            client_id=None if provider_id in incomplete else f"{provider_id}-client",
            client_secret=None if provider_id in incomplete else f"{provider_id}-secret",
            scope=(),
        )
        for provider_id in provider_ids
    }
    return ProviderRegistry(provider_settings=settings)


class FakeAccountsPort:
    """In-memory accounts store enforcing the same unique keys as the SQL schema.

    Top-level transactions are serialized. Writes made inside a failed
    (nested) transaction are undone, like a savepoint rollback.
    """

    def __init__(self):
        self.users: dict[str, User] = {}
        self.links: dict[str, UserProvider] = {}
        self.authenticators: dict[str, Authenticator] = {}
        self.sessions: dict[str, RefreshSession] = {}
        self.lookups: list[str] = []
        self.transactions = 0
        self.before_insert: Callable[[str], None] | None = None
        self._lock = RLock()
        self._undo_stack: list[list[Callable[[], None]]] = []

    def _record(self, undo: Callable[[], None]) -> None:
        if self._undo_stack:
            self._undo_stack[-1].append(undo)

    def execute_in_transaction(self, fn):
        with self._lock:
            self.transactions += 1
            self._undo_stack.append([])
            try:
                result = fn(self)
            except BaseException:
                for undo in reversed(self._undo_stack.pop()):
                    undo()
                raise
            committed = self._undo_stack.pop()
            if self._undo_stack:
                self._undo_stack[-1].extend(committed)
            return result

    def add_user(self, user: User) -> User:
        with self._lock:
            self.users[user.id] = user
        return user

    def get_user_by_id(self, *, user_id: str) -> User | None:
        self.lookups.append(f"user:{user_id}")
        return self.users.get(user_id)

    def get_user_by_email(self, *, email: str) -> User | None:
        self.lookups.append(f"email:{email}")
        email_l = email.lower()
        for user in self.users.values():
            if user.email and user.email.lower() == email_l:
                return user
        return None

    def create_user(self, *, user_id: str, new_user: NewUser, created_at: datetime) -> User:
        with self._lock:
            if self.before_insert is not None:
                self.before_insert("user")
            if new_user.email and any(
                user.email and user.email.lower() == new_user.email.lower()
                for user in self.users.values()
            ):
                raise AccountConflictError("A user with this email already exists.")
            user = User(
                id=user_id,
                email=new_user.email,
                display_name=new_user.display_name,
                avatar_url=new_user.avatar_url,
                locale=new_user.locale,
                default_role=new_user.default_role,
                roles=new_user.roles,
                metadata=dict(new_user.metadata),
                email_verified=new_user.email_verified,
                created_at=created_at,
                updated_at=created_at,
            )
            self.users[user.id] = user
            self._record(lambda: self.users.pop(user_id, None))
        return user

    def get_user_provider(self, *, provider_id: str, provider_user_id: str) -> UserProvider | None:
        self.lookups.append(f"link:{provider_id}:{provider_user_id}")
        for link in self.links.values():
            if link.provider_id == provider_id and link.provider_user_id == provider_user_id:
                return link
        return None

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
        with self._lock:
            if self.before_insert is not None:
                self.before_insert("link")
            if any(
                link.provider_id == provider_id and link.provider_user_id == provider_user_id
                for link in self.links.values()
            ):
                raise AccountConflictError(f"Identity {provider_id} is already linked to a user.")
            link = UserProvider(
                id=link_id,
                user_id=user_id,
                provider_id=provider_id,
                provider_user_id=provider_user_id,
                access_token=access_token,
                refresh_token=refresh_token,
                created_at=created_at,
                updated_at=created_at,
            )
            self.links[link.id] = link
            self._record(lambda: self.links.pop(link_id, None))
        return link

    def update_user_provider_tokens(
        self,
        *,
        link_id: str,
        access_token: str | None,
        refresh_token: str | None,
        updated_at: datetime,
    ) -> UserProvider:
        with self._lock:
            previous = self.links[link_id]
            link = replace(
                previous,
                access_token=access_token,
                refresh_token=refresh_token,
                updated_at=updated_at,
            )
            self.links[link_id] = link
            self._record(lambda: self.links.__setitem__(link_id, previous))
        return link

    def set_user_challenge(self, *, user_id: str, challenge: str | None) -> None:
        with self._lock:
            self.users[user_id] = replace(self.users[user_id], current_challenge=challenge)

    def take_user_challenge(self, *, user_id: str) -> str | None:
        with self._lock:
            user = self.users.get(user_id)
            if user is None:
                return None
            self.users[user_id] = replace(user, current_challenge=None)
            return user.current_challenge

    def list_authenticators(self, *, user_id: str) -> list[Authenticator]:
        return [item for item in self.authenticators.values() if item.user_id == user_id]

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
        with self._lock:
            if any(item.credential_id == credential_id for item in self.authenticators.values()):
                raise AccountConflictError("Authenticator is already registered.")
            authenticator = Authenticator(
                id=authenticator_id,
                user_id=user_id,
                credential_id=credential_id,
                public_key=public_key,
                counter=counter,
                nickname=nickname,
                created_at=created_at,
            )
            self.authenticators[authenticator.id] = authenticator
        return authenticator

    def create_refresh_session(
        self,
        *,
        session_id: str,
        user_id: str,
        refresh_token_hash: str,
        expires_at: datetime,
        created_at: datetime,
    ) -> RefreshSession:
        with self._lock:
            session = RefreshSession(
                id=session_id,
                user_id=user_id,
                refresh_token_hash=refresh_token_hash,
                expires_at=expires_at,
                revoked_at=None,
                created_at=created_at,
            )
            self.sessions[session.id] = session
            self._record(lambda: self.sessions.pop(session_id, None))
        return session

    def get_refresh_session_by_hash(self, *, refresh_token_hash: str) -> RefreshSession | None:
        for session in self.sessions.values():
            if session.refresh_token_hash == refresh_token_hash:
                return session
        return None

    def revoke_refresh_session(self, *, session_id: str, revoked_at: datetime) -> bool:
        with self._lock:
            session = self.sessions[session_id]
            if session.revoked_at is not None:
                return False
            self.sessions[session_id] = replace(session, revoked_at=revoked_at)
        return True


class FakeTokenPort:
    def __init__(self):
        self._counter = 0
        self._lock = RLock()

    def create_access_token(self, *, user: User, now: datetime) -> tuple[str, datetime]:
        return f"access-{user.id}", now + timedelta(minutes=15)

    def decode_access_token(self, *, token: str) -> AccessTokenPayload:
        if not token.startswith("access-"):
            raise ValueError("Invalid access token.")
        return AccessTokenPayload(user_id=token.removeprefix("access-"), default_role=None, roles=())

    def generate_refresh_token(self) -> str:
        with self._lock:
            self._counter += 1
            return f"refresh-{self._counter}"

    def hash_refresh_token(self, *, refresh_token: str) -> str:
        return f"hash::{refresh_token}"

    def refresh_token_expires_at(self, *, now: datetime) -> datetime:
        return now + timedelta(days=30)


class FakeOAuthClient:
    """Provider endpoints replaced by canned responses; records every outbound call."""

    def __init__(
        self,
        *,
        response: ProviderResponse | None = None,
        userinfo: Any = None,
        error: Exception | None = None,
    ):
        self.response = response
        self.userinfo = userinfo
        self.error = error
        self.calls: list[tuple[str, str]] = []

    def authorization_url(
        self,
        provider: Provider,
        *,
        state: str,
        redirect_uri: str,
        extra_params: Mapping[str, str] | None = None,
    ) -> str:
        params = {"client_id": provider.credentials.client_id or "", "redirect_uri": redirect_uri, "state": state}
        params.update(provider.authorize_params)
        params.update(extra_params or {})
        return f"{provider.endpoints.authorize_url}?{urlencode(params)}"

    def exchange_code(self, provider: Provider, *, code: str, redirect_uri: str) -> ProviderResponse:
        self.calls.append(("exchange", provider.id))
        if self.error is not None:
            raise self.error
        if self.response is None:
            raise ProviderExchangeError("no canned response")
        return self.response

    def fetch_userinfo(self, provider: Provider, *, access_token: str) -> Any:
        self.calls.append(("userinfo", provider.id))
        if self.error is not None:
            raise self.error
        return self.userinfo


def provider_response(profile: dict | None, *, access_token: str | None = "provider-access", refresh_token: str | None = None):
    return ProviderResponse(
        tokens=ProviderTokens(access_token=access_token, refresh_token=refresh_token),
        profile=profile,
    )


class FakeWebAuthnPort:
    def __init__(self, *, credential_id: str = "cred-1", verified: bool = True, fail: bool = False):
        self.credential_id = credential_id
        self.verified = verified
        self.fail = fail
        self.issued = 0
        self.verified_challenges: list[str] = []
        self.excluded: list[list[str]] = []

    def generate_registration_options(
        self,
        *,
        user_id: str,
        user_name: str,
        exclude_credential_ids: list[str],
    ) -> RegistrationOptionsPayload:
        self.issued += 1
        self.excluded.append(list(exclude_credential_ids))
        challenge = f"challenge-{self.issued}"
        return RegistrationOptionsPayload(
            challenge=challenge,
            options={"challenge": challenge, "user": {"id": user_id, "name": user_name}},
        )

    def verify_registration(self, *, credential: dict, expected_challenge: str) -> RegistrationVerification:
        self.verified_challenges.append(expected_challenge)
        if self.fail:
            raise WebAuthnAuthenticatorError("bad attestation")
        if not self.verified:
            return RegistrationVerification(verified=False)
        return RegistrationVerification(
            verified=True,
            credential_id=self.credential_id,
            public_key="public-key",
            sign_count=0,
        )


def make_user(user_id: str = "user-1", *, email: str | None = "alice@example.com", **overrides) -> User:
    values = {
        "id": user_id,
        "email": email,
        "display_name": "Alice",
        "avatar_url": "",
        "locale": "en",
        "default_role": "user",
        "roles": ("user", "me"),
        "created_at": utc(),
        "updated_at": utc(),
    }
    values.update(overrides)
    return User(**values)


OAUTH_URLS = OAuthUrls(server_url="http://localhost:4000", client_url="http://localhost:3000")
GITHUB_PROFILE = {"id": 42, "login": "octocat", "email": "octo@example.com"}


def query_of(location: str) -> dict[str, str]:
    return {key: values[0] for key, values in parse_qs(urlsplit(location).query).items()}


class OAuthHarness:
    """Start and callback use cases wired to one in-memory store and fake provider."""

    def __init__(self, *providers: str, incomplete: tuple[str, ...] = (), client: FakeOAuthClient | None = None):
        self.registry = make_registry(*providers, incomplete=incomplete)
        self.store = InMemoryFlowStateStore(ttl_seconds=600)
        self.client = client or FakeOAuthClient(response=provider_response(GITHUB_PROFILE))
        self.accounts = FakeAccountsPort()
        self.tokens = FakeTokenPort()
        self.start = StartOAuthUseCase(
            provider_registry=self.registry,
            flow_state_port=self.store,
            oauth_client=self.client,
            registration_policy=make_policy(),
            urls=OAUTH_URLS,
        )
        self.complete = CompleteOAuthUseCase(
            provider_registry=self.registry,
            flow_state_port=self.store,
            oauth_client=self.client,
            accounts_port=self.accounts,
            token_port=self.tokens,
            resolution_engine=AccountResolutionEngine(
                accounts_port=self.accounts,
                registration_policy=make_policy(),
            ),
            urls=OAUTH_URLS,
        )

    def begin(self, provider: str = "github", **query: str):
        output = self.start.execute(StartOAuthInput(provider=provider, query=query))
        return output, query_of(output.location)

    def callback(self, session_id: str | None, provider: str = "github", **query: str):
        return self.complete.execute(
            CompleteOAuthInput(provider=provider, session_id=session_id, query=query)
        )

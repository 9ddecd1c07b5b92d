from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from typing import Callable

from fastapi import Header, HTTPException

from authlink.application.dto.oauth import OAuthUrls
from authlink.application.ports.flow_state_port import FlowStatePort
from authlink.application.use_cases.complete_oauth import CompleteOAuthUseCase
from authlink.application.use_cases.native_token_sign_in import NativeTokenSignInUseCase
from authlink.application.use_cases.refresh_session import RefreshSessionUseCase
from authlink.application.use_cases.resolve_account import AccountResolutionEngine
from authlink.application.use_cases.start_oauth import StartOAuthUseCase
from authlink.application.use_cases.webauthn_registration import (
    IssueWebAuthnChallengeUseCase,
    VerifyWebAuthnRegistrationUseCase,
)
from authlink.domain.entities.user import User
from authlink.domain.exceptions import AuthFlowError
from authlink.domain.services.registration import RegistrationPolicy
from authlink.infrastructure.clients.oauth_http_client import OAuthHttpClient
from authlink.infrastructure.db.engine import get_engine
from authlink.infrastructure.db.repositories.accounts_repository import SqlAccountsRepository
from authlink.infrastructure.db.repositories.flow_state_repository import SqlFlowStateRepository
from authlink.infrastructure.flow_state.memory_store import InMemoryFlowStateStore
from authlink.infrastructure.providers.registry import ProviderRegistry
from authlink.infrastructure.security.token_service import JwtTokenService
from authlink.infrastructure.webauthn.py_webauthn_client import PyWebAuthnClient, relying_party_id
from authlink.shared.config import get_settings


def _get_db_engine():
    settings = get_settings()
    if not settings.postgres_dsn:
        raise HTTPException(status_code=500, detail="POSTGRES_DSN is required.")
    return get_engine(settings.postgres_dsn)


def _get_accounts_repository() -> SqlAccountsRepository:
    return SqlAccountsRepository(_get_db_engine())


@lru_cache(maxsize=1)
def _get_flow_state_store() -> FlowStatePort:
    settings = get_settings()
    if settings.oauth_flow_store == "postgres":
        return SqlFlowStateRepository(_get_db_engine(), ttl_seconds=settings.oauth_flow_ttl_seconds)
    return InMemoryFlowStateStore(ttl_seconds=settings.oauth_flow_ttl_seconds)


@lru_cache(maxsize=1)
def _get_provider_registry() -> ProviderRegistry:
    return ProviderRegistry(provider_settings=get_settings().providers)


@lru_cache(maxsize=1)
def _get_oauth_client() -> OAuthHttpClient:
    return OAuthHttpClient(timeout_seconds=get_settings().provider_timeout_seconds)


@lru_cache(maxsize=1)
def _get_token_service() -> JwtTokenService:
    settings = get_settings()
    if not settings.jwt_secret:
        raise HTTPException(status_code=500, detail="JWT_SECRET is required.")
    return JwtTokenService(
        jwt_secret=settings.jwt_secret,
        issuer=settings.server_url,
        access_ttl_minutes=settings.access_token_ttl_minutes,
        refresh_ttl_days=settings.refresh_token_ttl_days,
    )


@lru_cache(maxsize=1)
def _get_webauthn_client() -> PyWebAuthnClient:
    settings = get_settings()
    return PyWebAuthnClient(
        rp_id=relying_party_id(settings.server_url),
        rp_name=settings.webauthn_rp_name,
        expected_origins=settings.webauthn_rp_origins,
    )


def _get_registration_policy() -> RegistrationPolicy:
    settings = get_settings()
    return RegistrationPolicy(
        locale_default=settings.locale_default,
        allowed_locales=settings.allowed_locales,
        default_role=settings.user_default_role,
        default_allowed_roles=settings.user_default_allowed_roles,
        gravatar_enabled=settings.gravatar_enabled,
        gravatar_default=settings.gravatar_default,
        gravatar_rating=settings.gravatar_rating,
    )


def get_oauth_urls() -> OAuthUrls:
    settings = get_settings()
    return OAuthUrls(
        server_url=settings.server_url,
        client_url=settings.client_url,
        allowed_redirect_urls=settings.allowed_redirect_urls,
    )


def _get_resolution_engine(accounts_repository: SqlAccountsRepository) -> AccountResolutionEngine:
    return AccountResolutionEngine(
        accounts_port=accounts_repository,
        registration_policy=_get_registration_policy(),
        require_verified_email=get_settings().link_require_verified_email,
    )


def get_start_oauth_use_case() -> StartOAuthUseCase:
    return StartOAuthUseCase(
        provider_registry=_get_provider_registry(),
        flow_state_port=_get_flow_state_store(),
        oauth_client=_get_oauth_client(),
        registration_policy=_get_registration_policy(),
        urls=get_oauth_urls(),
    )


def get_complete_oauth_use_case() -> CompleteOAuthUseCase:
    accounts_repository = _get_accounts_repository()
    return CompleteOAuthUseCase(
        provider_registry=_get_provider_registry(),
        flow_state_port=_get_flow_state_store(),
        oauth_client=_get_oauth_client(),
        accounts_port=accounts_repository,
        token_port=_get_token_service(),
        resolution_engine=_get_resolution_engine(accounts_repository),
        urls=get_oauth_urls(),
    )


def get_complete_oauth_use_case_factory() -> Callable[[], CompleteOAuthUseCase]:
    return get_complete_oauth_use_case


def get_flow_state_store_factory() -> Callable[[], FlowStatePort]:
    return _get_flow_state_store


def get_native_token_sign_in_use_case() -> NativeTokenSignInUseCase:
    accounts_repository = _get_accounts_repository()
    return NativeTokenSignInUseCase(
        provider_registry=_get_provider_registry(),
        oauth_client=_get_oauth_client(),
        accounts_port=accounts_repository,
        token_port=_get_token_service(),
        resolution_engine=_get_resolution_engine(accounts_repository),
    )


def get_issue_webauthn_challenge_use_case() -> IssueWebAuthnChallengeUseCase:
    return IssueWebAuthnChallengeUseCase(
        accounts_port=_get_accounts_repository(),
        webauthn_port=_get_webauthn_client(),
        enabled=get_settings().webauthn_enabled,
    )


def get_verify_webauthn_registration_use_case() -> VerifyWebAuthnRegistrationUseCase:
    return VerifyWebAuthnRegistrationUseCase(
        accounts_port=_get_accounts_repository(),
        webauthn_port=_get_webauthn_client(),
        enabled=get_settings().webauthn_enabled,
    )


def get_refresh_session_use_case() -> RefreshSessionUseCase:
    return RefreshSessionUseCase(
        accounts_port=_get_accounts_repository(),
        token_port=_get_token_service(),
    )


def get_current_user(
    authorization: str | None = Header(default=None),
) -> User:
    if not authorization or not authorization.startswith("Bearer "):
        raise AuthFlowError("unauthenticated-user", "Invalid authorization header")
    token = authorization.replace("Bearer ", "", 1).strip()
    if not token:
        raise AuthFlowError("unauthenticated-user", "Missing access token")

    token_service = _get_token_service()
    accounts_repository = _get_accounts_repository()

    try:
        payload = token_service.decode_access_token(token=token)
    except ValueError as exc:
        raise AuthFlowError("unauthenticated-user", str(exc)) from exc

    user = accounts_repository.get_user_by_id(user_id=payload.user_id)
    if user is None:
        raise AuthFlowError("unauthenticated-user", "User not found")
    if not user.is_active:
        raise AuthFlowError("disabled-user")
    return user


@dataclass(frozen=True)
class OAuthCookiePolicy:
    max_age_seconds: int
    secure: bool


def get_oauth_cookie_policy() -> OAuthCookiePolicy:
    settings = get_settings()
    return OAuthCookiePolicy(
        max_age_seconds=settings.oauth_flow_ttl_seconds,
        secure=settings.server_url.startswith("https://"),
    )

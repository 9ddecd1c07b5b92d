from __future__ import annotations

import logging
from typing import Any, Mapping

from authlink.application.dto.oauth import NativeTokenInput, NativeTokenOutput
from authlink.application.ports.accounts_port import AccountsPort
from authlink.application.ports.oauth_client_port import OAuthClientPort
from authlink.application.ports.provider_registry_port import ProviderRegistryPort
from authlink.application.ports.token_port import TokenPort
from authlink.domain.entities.identity import ProviderTokens
from authlink.domain.exceptions import AuthFlowError, ProviderExchangeError

from .resolve_account import AccountResolutionEngine, sign_in_with_profile


logger = logging.getLogger(__name__)


def _error_payload(error: AuthFlowError) -> NativeTokenOutput:
    return NativeTokenOutput(
        error={"error": error.code, "errorDescription": error.message},
        status_code=error.status_code,
    )


class NativeTokenSignInUseCase:
    """Sign in with an access token a native client obtained from the provider itself."""

    def __init__(
        self,
        *,
        provider_registry: ProviderRegistryPort,
        oauth_client: OAuthClientPort,
        accounts_port: AccountsPort,
        token_port: TokenPort,
        resolution_engine: AccountResolutionEngine,
    ):
        self._provider_registry = provider_registry
        self._oauth_client = oauth_client
        self._accounts_port = accounts_port
        self._token_port = token_port
        self._resolution_engine = resolution_engine

    def execute(self, command: NativeTokenInput) -> NativeTokenOutput:
        try:
            provider = self._provider_registry.resolve(command.provider)
        except AuthFlowError as exc:
            return _error_payload(exc)

        try:
            payload: Any = self._oauth_client.fetch_userinfo(
                provider,
                access_token=command.access_token,
            )
        except ProviderExchangeError as exc:
            logger.warning("native_sign_in: userinfo_failed provider=%s error=%s", provider.id, exc)
            return _error_payload(AuthFlowError("invalid-request", str(exc)))

        if isinstance(payload, Mapping) and payload.get("error"):
            logger.info(
                "native_sign_in: provider_error provider=%s error=%s",
                provider.id,
                payload.get("error"),
            )
            return NativeTokenOutput(error=dict(payload), status_code=400)

        profile = provider.normalize(payload) if isinstance(payload, Mapping) else None
        if profile is None or not profile.external_id:
            logger.warning("native_sign_in: unknown_response_format provider=%s", provider.id)
            return _error_payload(
                AuthFlowError("invalid-request", f"Unknown format for {provider.id} response")
            )

        try:
            _outcome, issued = sign_in_with_profile(
                engine=self._resolution_engine,
                accounts_port=self._accounts_port,
                token_port=self._token_port,
                provider_id=provider.id,
                profile=profile,
                tokens=ProviderTokens(access_token=command.access_token, refresh_token=None),
            )
        except AuthFlowError as exc:
            return _error_payload(exc)
        except Exception as exc:
            logger.exception("native_sign_in: sign_in_failed provider=%s", provider.id)
            return _error_payload(AuthFlowError("internal-error", str(exc) or None))

        logger.info("native_sign_in: signed_in provider=%s", provider.id)
        return NativeTokenOutput(refresh_token=issued.refresh_token)

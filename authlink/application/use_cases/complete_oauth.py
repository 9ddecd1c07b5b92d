from __future__ import annotations

import logging
import secrets
from typing import Mapping

from authlink.application.dto.oauth import CompleteOAuthInput, OAuthRedirectOutput, OAuthUrls
from authlink.application.ports.accounts_port import AccountsPort
from authlink.application.ports.flow_state_port import FlowStatePort
from authlink.application.ports.oauth_client_port import OAuthClientPort
from authlink.application.ports.provider_registry_port import ProviderRegistryPort
from authlink.application.ports.token_port import TokenPort
from authlink.domain.exceptions import ERRORS, AuthFlowError, ProviderExchangeError
from authlink.domain.services.redirects import build_error_redirect_url, build_redirect_url

from .resolve_account import AccountResolutionEngine, sign_in_with_profile


logger = logging.getLogger(__name__)


def error_details_from_query(
    query: Mapping[str, str],
    *,
    code: str | None = None,
    fallback: str | None = None,
) -> tuple[str, str]:
    """Pick the reported error code and description.

    An explicit code wins, then the provider's own ``error`` query value,
    then ``internal-error``. The description prefers ``error_description``.
    """
    query_error = query.get("error") or None
    error = code or query_error or "internal-error"
    description = query.get("error_description") or fallback
    if not description:
        description = ERRORS[error].message if error in ERRORS else "Unknown error"
    return error, description


class CompleteOAuthUseCase:
    def __init__(
        self,
        *,
        provider_registry: ProviderRegistryPort,
        flow_state_port: FlowStatePort,
        oauth_client: OAuthClientPort,
        accounts_port: AccountsPort,
        token_port: TokenPort,
        resolution_engine: AccountResolutionEngine,
        urls: OAuthUrls,
    ):
        self._provider_registry = provider_registry
        self._flow_state_port = flow_state_port
        self._oauth_client = oauth_client
        self._accounts_port = accounts_port
        self._token_port = token_port
        self._resolution_engine = resolution_engine
        self._urls = urls

    def execute(self, command: CompleteOAuthInput) -> OAuthRedirectOutput:
        # The flow is consumed before anything else so a replayed callback finds nothing.
        flow = self._flow_state_port.take(command.session_id) if command.session_id else None
        query = command.query
        redirect_to = (flow.redirect_to if flow else None) or self._urls.client_url
        provider_id = flow.provider_id if flow else command.provider

        def fail(code: str | None = None, fallback: str | None = None) -> OAuthRedirectOutput:
            error, description = error_details_from_query(query, code=code, fallback=fallback)
            logger.warning(
                "complete_oauth: failed provider=%s error=%s description=%s",
                provider_id,
                error,
                description,
            )
            return OAuthRedirectOutput(
                location=build_error_redirect_url(
                    redirect_to,
                    error=error,
                    description=description,
                    provider=provider_id,
                )
            )

        if flow is None:
            return fail(fallback="No OAuth flow in progress for this session")
        if flow.provider_id != command.provider:
            return fail("invalid-request", "The callback does not match the provider of this flow")
        if not secrets.compare_digest(str(query.get("state") or ""), flow.state):
            return fail("invalid-request", "Invalid OAuth state")
        if query.get("error"):
            return fail()

        try:
            provider = self._provider_registry.resolve(flow.provider_id)
            provider.ensure_configured()
        except AuthFlowError as exc:
            return fail(exc.code, exc.message)

        code = query.get("code")
        if not code:
            return fail(fallback="The provider did not return an authorization code")

        try:
            response = self._oauth_client.exchange_code(
                provider,
                code=code,
                redirect_uri=self._urls.callback_url(provider.id),
            )
        except ProviderExchangeError as exc:
            return fail(fallback=str(exc))

        if not response.tokens.access_token:
            return fail(fallback=f"The provider {provider.id} did not return an access token")
        if not response.profile:
            return fail(fallback=f"No profile returned by the provider {provider.id}")

        try:
            profile = provider.normalize(response.profile)
            _outcome, issued = sign_in_with_profile(
                engine=self._resolution_engine,
                accounts_port=self._accounts_port,
                token_port=self._token_port,
                provider_id=provider.id,
                profile=profile,
                tokens=response.tokens,
                options=flow.options,
            )
        except AuthFlowError as exc:
            return fail(exc.code, exc.message)
        except Exception as exc:
            logger.exception("complete_oauth: sign_in_failed provider=%s", provider.id)
            return fail(fallback=str(exc) or "Could not sign in")

        logger.info("complete_oauth: signed_in provider=%s", provider.id)
        return OAuthRedirectOutput(
            location=build_redirect_url(redirect_to, {"refreshToken": issued.refresh_token})
        )

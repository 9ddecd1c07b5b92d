from __future__ import annotations

import logging
import secrets

from authlink.application.dto.oauth import OAuthRedirectOutput, OAuthUrls, StartOAuthInput
from authlink.application.ports.flow_state_port import FlowStatePort
from authlink.application.ports.oauth_client_port import OAuthClientPort
from authlink.application.ports.provider_registry_port import ProviderRegistryPort
from authlink.domain.entities.identity import FlowState
from authlink.domain.exceptions import AuthFlowError
from authlink.domain.services.redirects import build_error_redirect_url, resolve_redirect_target
from authlink.domain.services.registration import RegistrationPolicy, parse_registration_options

from .auth_common import utcnow


logger = logging.getLogger(__name__)


class StartOAuthUseCase:
    def __init__(
        self,
        *,
        provider_registry: ProviderRegistryPort,
        flow_state_port: FlowStatePort,
        oauth_client: OAuthClientPort,
        registration_policy: RegistrationPolicy,
        urls: OAuthUrls,
    ):
        self._provider_registry = provider_registry
        self._flow_state_port = flow_state_port
        self._oauth_client = oauth_client
        self._registration_policy = registration_policy
        self._urls = urls

    def execute(self, command: StartOAuthInput) -> OAuthRedirectOutput:
        redirect_to = resolve_redirect_target(
            command.query.get("redirectTo"),
            client_url=self._urls.client_url,
            allowed_redirect_urls=self._urls.allowed_redirect_urls,
        )

        try:
            provider = self._provider_registry.resolve(command.provider)
            provider.ensure_configured()
            options = parse_registration_options(command.query, self._registration_policy)
            extra_params = provider.pre_request(command.query)
        except AuthFlowError as exc:
            logger.warning(
                "start_oauth: rejected provider=%s error=%s description=%s",
                command.provider,
                exc.code,
                exc.message,
            )
            return OAuthRedirectOutput(
                location=build_error_redirect_url(
                    redirect_to or self._urls.client_url,
                    error=exc.code,
                    description=exc.message,
                )
            )

        state = secrets.token_urlsafe(32)
        session_id = self._flow_state_port.create(
            FlowState(
                provider_id=provider.id,
                state=state,
                redirect_to=redirect_to,
                options=options,
                created_at=utcnow(),
            )
        )
        location = self._oauth_client.authorization_url(
            provider,
            state=state,
            redirect_uri=self._urls.callback_url(provider.id),
            extra_params=extra_params,
        )
        logger.info("start_oauth: redirect_to_provider provider=%s", provider.id)
        return OAuthRedirectOutput(
            location=location,
            session_id=session_id,
            cross_site_callback=provider.response_mode == "form_post",
        )

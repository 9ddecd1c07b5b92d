from __future__ import annotations

import logging
from typing import Any, Mapping

import httpx
import jwt

from authlink.application.ports.oauth_client_port import OAuthClientPort
from authlink.domain.entities.identity import ProviderResponse, ProviderTokens
from authlink.domain.entities.provider import Provider
from authlink.domain.exceptions import ProviderExchangeError


logger = logging.getLogger(__name__)


def _describe_error(payload: Mapping[str, Any]) -> str:
    error = payload.get("error")
    description = payload.get("error_description") or payload.get("message")
    if isinstance(error, Mapping):
        description = description or error.get("message")
        error = error.get("code") or error.get("type") or "provider_error"
    if description:
        return f"{error}: {description}"
    return str(error)


def _id_token_claims(provider: Provider, id_token: Any) -> dict[str, Any] | None:
    if not isinstance(id_token, str) or not id_token:
        return None
    # The token comes straight from the token endpoint, so only its claims are read.
    try:
        claims = jwt.decode(id_token, options={"verify_signature": False})
    except jwt.PyJWTError as exc:
        raise ProviderExchangeError(f"Invalid id_token returned by {provider.id}") from exc
    return dict(claims)


class OAuthHttpClient(OAuthClientPort):
    """Authorization code grant against the provider endpoints, over httpx."""

    def __init__(self, *, timeout_seconds: float, transport: httpx.BaseTransport | None = None):
        self.timeout = timeout_seconds
        self._transport = transport

    def _client(self) -> httpx.Client:
        return httpx.Client(timeout=self.timeout, transport=self._transport)

    def authorization_url(
        self,
        provider: Provider,
        *,
        state: str,
        redirect_uri: str,
        extra_params: Mapping[str, str] | None = None,
    ) -> str:
        params: dict[str, str] = {
            "response_type": "code",
            "client_id": provider.credentials.client_id or "",
            "redirect_uri": redirect_uri,
            "state": state,
        }
        if provider.scopes:
            params["scope"] = provider.scope_separator.join(provider.scopes)
        params.update(provider.authorize_params)
        params.update(extra_params or {})
        url = httpx.URL(provider.endpoints.authorize_url).copy_merge_params(params)
        return str(url)

    def exchange_code(self, provider: Provider, *, code: str, redirect_uri: str) -> ProviderResponse:
        data = {
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": redirect_uri,
            "client_id": provider.credentials.client_id or "",
            "client_secret": provider.credentials.secret(),
        }
        try:
            with self._client() as client:
                response = client.post(
                    provider.endpoints.token_url,
                    data=data,
                    headers={"Accept": "application/json"},
                )
                payload = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("oauth_client: token_exchange_failed provider=%s error=%s", provider.id, exc)
            raise ProviderExchangeError(f"Token exchange with {provider.id} failed") from exc

        if not isinstance(payload, Mapping):
            raise ProviderExchangeError(f"Unexpected token response from {provider.id}")
        if payload.get("error"):
            raise ProviderExchangeError(_describe_error(payload))
        if response.status_code >= 400:
            raise ProviderExchangeError(
                f"Token exchange with {provider.id} failed with status {response.status_code}"
            )

        tokens = ProviderTokens(
            access_token=payload.get("access_token") or None,
            refresh_token=payload.get("refresh_token") or None,
        )

        if provider.profile_source == "id_token":
            return ProviderResponse(
                tokens=tokens,
                profile=_id_token_claims(provider, payload.get("id_token")),
                raw=dict(payload),
            )

        if provider.profile_source == "token":
            profile = payload.get("profile")
            return ProviderResponse(
                tokens=tokens,
                profile=dict(profile) if isinstance(profile, Mapping) else None,
                raw=dict(payload),
            )

        if not tokens.access_token:
            return ProviderResponse(tokens=tokens, profile=None, raw=dict(payload))

        userinfo = self.fetch_userinfo(provider, access_token=tokens.access_token)
        if not isinstance(userinfo, Mapping):
            raise ProviderExchangeError(f"Unexpected profile response from {provider.id}")
        if userinfo.get("error"):
            raise ProviderExchangeError(_describe_error(userinfo))
        return ProviderResponse(tokens=tokens, profile=dict(userinfo), raw=dict(payload))

    def fetch_userinfo(self, provider: Provider, *, access_token: str) -> Any:
        """Return the decoded identity payload, error bodies included."""
        if not provider.endpoints.userinfo_url:
            raise ProviderExchangeError(f"Provider {provider.id} has no identity endpoint")

        headers = {
            "Authorization": f"Bearer {access_token}",
            "Accept": "application/json",
        }
        if provider.send_client_id_header and provider.credentials.client_id:
            headers["Client-Id"] = provider.credentials.client_id

        try:
            with self._client() as client:
                response = client.get(provider.endpoints.userinfo_url, headers=headers)
                return response.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("oauth_client: userinfo_failed provider=%s error=%s", provider.id, exc)
            raise ProviderExchangeError(f"Could not read the {provider.id} profile") from exc

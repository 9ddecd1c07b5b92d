from __future__ import annotations

import logging
from typing import Callable

from fastapi import APIRouter, Cookie, Depends, HTTPException, Request
from fastapi.responses import RedirectResponse
from starlette.concurrency import run_in_threadpool

from authlink.api.deps import (
    OAuthCookiePolicy,
    get_complete_oauth_use_case_factory,
    get_flow_state_store_factory,
    get_oauth_cookie_policy,
    get_oauth_urls,
    get_start_oauth_use_case,
)
from authlink.application.dto.oauth import (
    CompleteOAuthInput,
    OAuthRedirectOutput,
    OAuthUrls,
    StartOAuthInput,
)
from authlink.application.ports.flow_state_port import FlowStatePort
from authlink.application.use_cases.complete_oauth import CompleteOAuthUseCase
from authlink.application.use_cases.start_oauth import StartOAuthUseCase
from authlink.domain.services.redirects import build_error_redirect_url


logger = logging.getLogger(__name__)

router = APIRouter()

OAUTH_SESSION_COOKIE = "authlink.oauth.sid"
OAUTH_COOKIE_PATH = "/signin/provider"


def _redirect(output: OAuthRedirectOutput, policy: OAuthCookiePolicy) -> RedirectResponse:
    response = RedirectResponse(output.location, status_code=302)
    # form_post callbacks are cross-site POSTs, which only carry SameSite=None cookies.
    cross_site = output.cross_site_callback
    if output.session_id:
        response.set_cookie(
            key=OAUTH_SESSION_COOKIE,
            value=output.session_id,
            httponly=True,
            samesite="none" if cross_site else "lax",
            secure=policy.secure or cross_site,
            max_age=policy.max_age_seconds,
            path=OAUTH_COOKIE_PATH,
        )
    else:
        response.delete_cookie(
            key=OAUTH_SESSION_COOKIE,
            path=OAUTH_COOKIE_PATH,
            httponly=True,
            secure=policy.secure,
        )
    return response


def _abandon_flow(
    provider: str,
    session_id: str | None,
    *,
    store_factory: Callable[[], FlowStatePort],
    urls: OAuthUrls,
    description: str,
) -> OAuthRedirectOutput:
    """Destroy the flow of a callback that cannot be served and point back to the client."""
    redirect_to = urls.client_url
    if session_id:
        try:
            store = store_factory()
            flow = store.get(session_id)
            store.destroy(session_id)
        except HTTPException as exc:
            logger.error("oauth: flow_cleanup_failed provider=%s detail=%s", provider, exc.detail)
        else:
            if flow is not None and flow.redirect_to:
                redirect_to = flow.redirect_to
    return OAuthRedirectOutput(
        location=build_error_redirect_url(
            redirect_to,
            error="internal-error",
            description=description,
            provider=provider,
        )
    )


@router.get("/signin/provider/{provider}")
def start_oauth(
    provider: str,
    request: Request,
    use_case: StartOAuthUseCase = Depends(get_start_oauth_use_case),
    cookie_policy: OAuthCookiePolicy = Depends(get_oauth_cookie_policy),
):
    output = use_case.execute(
        StartOAuthInput(provider=provider, query=dict(request.query_params))
    )
    return _redirect(output, cookie_policy)


@router.api_route("/signin/provider/{provider}/callback", methods=["GET", "POST"])
async def complete_oauth(
    provider: str,
    request: Request,
    session_id: str | None = Cookie(default=None, alias=OAUTH_SESSION_COOKIE),
    use_case_factory: Callable[[], CompleteOAuthUseCase] = Depends(get_complete_oauth_use_case_factory),
    store_factory: Callable[[], FlowStatePort] = Depends(get_flow_state_store_factory),
    urls: OAuthUrls = Depends(get_oauth_urls),
    cookie_policy: OAuthCookiePolicy = Depends(get_oauth_cookie_policy),
):
    query = dict(request.query_params)
    if request.method == "POST":
        form = await request.form()
        query.update({key: value for key, value in form.items() if isinstance(value, str)})

    try:
        use_case = use_case_factory()
    except HTTPException as exc:
        logger.error("oauth: callback_unavailable provider=%s detail=%s", provider, exc.detail)
        output = await run_in_threadpool(
            _abandon_flow,
            provider,
            session_id,
            store_factory=store_factory,
            urls=urls,
            description=str(exc.detail),
        )
    else:
        output = await run_in_threadpool(
            use_case.execute,
            CompleteOAuthInput(provider=provider, session_id=session_id, query=query),
        )
    # The flow never survives its callback, whatever the outcome.
    return _redirect(
        OAuthRedirectOutput(location=output.location),
        cookie_policy,
    )

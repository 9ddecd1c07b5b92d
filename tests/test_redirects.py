from __future__ import annotations

from urllib.parse import parse_qs, urlsplit

import pytest

from authlink.domain.services.redirects import (
    build_error_redirect_url,
    build_redirect_url,
    resolve_redirect_target,
)


TRUSTED = {
    "client_url": "https://app.example.com",
    "allowed_redirect_urls": ("myapp://callback", "https://admin.example.com/"),
}


@pytest.mark.parametrize(
    "requested",
    [
        "https://app.example.com",
        "https://app.example.com/welcome",
        "https://app.example.com?tab=1",
        "myapp://callback",
        "https://admin.example.com/dashboard",
    ],
)
def test_trusted_redirects_are_accepted(requested):
    assert resolve_redirect_target(requested, **TRUSTED) == requested


@pytest.mark.parametrize(
    "requested",
    [
        None,
        "",
        "https://evil.example.com",
        "https://app.example.com.evil.com/",
        "https://app.example.comfoo",
    ],
)
def test_untrusted_redirects_are_ignored(requested):
    assert resolve_redirect_target(requested, **TRUSTED) is None


def test_build_redirect_url_keeps_existing_query_and_fragment():
    url = build_redirect_url("https://app.example.com/cb?next=/home#top", {"refreshToken": "abc"})

    parts = urlsplit(url)
    assert parse_qs(parts.query) == {"next": ["/home"], "refreshToken": ["abc"]}
    assert parts.fragment == "top"


def test_error_redirect_carries_provider_only_when_known():
    with_provider = build_error_redirect_url(
        "https://app.example.com",
        error="invalid-request",
        description="bad",
        provider="github",
    )
    without_provider = build_error_redirect_url(
        "https://app.example.com",
        error="internal-error",
        description="oops",
    )

    assert parse_qs(urlsplit(with_provider).query) == {
        "error": ["invalid-request"],
        "errorDescription": ["bad"],
        "provider": ["github"],
    }
    assert "provider" not in parse_qs(urlsplit(without_provider).query)

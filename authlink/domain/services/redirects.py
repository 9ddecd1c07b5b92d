from __future__ import annotations

from typing import Mapping
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit


def resolve_redirect_target(
    requested: str | None,
    *,
    client_url: str,
    allowed_redirect_urls: tuple[str, ...],
) -> str | None:
    """Return the requested redirect target when it points to a trusted client URL."""
    if not requested:
        return None
    candidate = requested.strip()
    trusted = [url for url in (client_url, *allowed_redirect_urls) if url]
    for base in trusted:
        root = base.rstrip("/")
        if candidate in (base, root) or candidate.startswith((root + "/", root + "?", root + "#")):
            return candidate
    return None


def build_redirect_url(base_url: str, params: Mapping[str, str]) -> str:
    parts = urlsplit(base_url)
    query = parse_qsl(parts.query, keep_blank_values=True)
    query.extend((key, value) for key, value in params.items())
    return urlunsplit((parts.scheme, parts.netloc, parts.path, urlencode(query), parts.fragment))


def build_error_redirect_url(
    base_url: str,
    *,
    error: str,
    description: str,
    provider: str | None = None,
) -> str:
    details = {"error": error, "errorDescription": description}
    if provider:
        details["provider"] = provider
    return build_redirect_url(base_url, details)

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from authlink.infrastructure.security.token_service import JwtTokenService

from tests.support import make_user


SECRET = "test-secret-with-at-least-32-bytes!"


def _service(secret: str = SECRET, issuer: str = "http://localhost:4000") -> JwtTokenService:
    return JwtTokenService(jwt_secret=secret, issuer=issuer, access_ttl_minutes=15, refresh_ttl_days=30)


def test_access_token_round_trip_carries_roles():
    service = _service()
    now = datetime.now(timezone.utc)

    token, expires_at = service.create_access_token(user=make_user("user-1"), now=now)
    payload = service.decode_access_token(token=token)

    assert expires_at == now + timedelta(minutes=15)
    assert payload.user_id == "user-1"
    assert payload.default_role == "user"
    assert payload.roles == ("user", "me")


@pytest.mark.parametrize(
    "issuing",
    [
        {"secret": "another-secret-with-at-least-32-bytes"},
        {"issuer": "https://other.example.com"},
    ],
)
def test_token_from_another_secret_or_issuer_is_rejected(issuing):
    token, _ = _service(**issuing).create_access_token(user=make_user(), now=datetime.now(timezone.utc))

    with pytest.raises(ValueError):
        _service().decode_access_token(token=token)


def test_expired_token_is_rejected():
    service = _service()
    token, _ = service.create_access_token(
        user=make_user(),
        now=datetime.now(timezone.utc) - timedelta(hours=1),
    )

    with pytest.raises(ValueError):
        service.decode_access_token(token=token)


def test_refresh_tokens_are_random_and_hashed_deterministically():
    service = _service()

    first = service.generate_refresh_token()
    second = service.generate_refresh_token()

    assert first != second
    assert service.hash_refresh_token(refresh_token=first) == service.hash_refresh_token(refresh_token=first)
    assert service.hash_refresh_token(refresh_token=first) != first
    assert service.refresh_token_expires_at(now=datetime(2024, 1, 1, tzinfo=timezone.utc)) == datetime(
        2024, 1, 31, tzinfo=timezone.utc
    )

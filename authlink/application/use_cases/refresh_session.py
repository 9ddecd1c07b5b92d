from __future__ import annotations

from authlink.application.dto.auth import AuthTokensOutput, RefreshSessionInput
from authlink.application.ports.accounts_port import AccountsPort
from authlink.application.ports.token_port import TokenPort
from authlink.domain.exceptions import AuthFlowError

from .auth_common import issue_tokens, utcnow


class RefreshSessionUseCase:
    def __init__(self, *, accounts_port: AccountsPort, token_port: TokenPort):
        self._accounts_port = accounts_port
        self._token_port = token_port

    def execute(self, command: RefreshSessionInput) -> AuthTokensOutput:
        token = command.refresh_token.strip()
        if not token:
            raise AuthFlowError("invalid-refresh-token", "Missing refresh token")

        refresh_hash = self._token_port.hash_refresh_token(refresh_token=token)

        def _tx(accounts_port: AccountsPort) -> AuthTokensOutput:
            now = utcnow()
            session = accounts_port.get_refresh_session_by_hash(refresh_token_hash=refresh_hash)
            if session is None:
                raise AuthFlowError("invalid-refresh-token")
            if session.revoked_at is not None:
                raise AuthFlowError("invalid-refresh-token", "Refresh token already used")
            if session.expires_at <= now:
                raise AuthFlowError("invalid-refresh-token", "Refresh token expired")

            user = accounts_port.get_user_by_id(user_id=session.user_id)
            if user is None:
                raise AuthFlowError("invalid-refresh-token", "User not found for refresh token")
            if not user.is_active:
                raise AuthFlowError("disabled-user")

            if not accounts_port.revoke_refresh_session(session_id=session.id, revoked_at=now):
                raise AuthFlowError("invalid-refresh-token", "Refresh token already used")
            return issue_tokens(user=user, accounts_port=accounts_port, token_port=self._token_port)

        return self._accounts_port.execute_in_transaction(_tx)

from __future__ import annotations

import json
import logging
from contextlib import contextmanager
from datetime import datetime
from typing import Callable, Iterator, TypeVar

from sqlalchemy import text
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import IntegrityError

from authlink.application.ports.accounts_port import AccountsPort
from authlink.domain.entities.user import NewUser
from authlink.domain.exceptions import AccountConflictError
from authlink.infrastructure.db.mappers.accounts_mapper import (
    map_row_to_authenticator,
    map_row_to_refresh_session,
    map_row_to_user,
    map_row_to_user_provider,
)


logger = logging.getLogger(__name__)

T = TypeVar("T")

_USER_COLUMNS = """
    u.id, u.email, u.display_name, u.avatar_url, u.locale, u.default_role, u.metadata,
    u.email_verified, u.is_active, u.current_challenge, u.created_at, u.updated_at,
    ARRAY(
        SELECT r.role FROM auth.user_roles r WHERE r.user_id = u.id ORDER BY r.id
    ) AS roles
"""

_USER_PROVIDER_COLUMNS = """
    id, user_id, provider_id, provider_user_id, access_token, refresh_token, created_at, updated_at
"""


class SqlAccountsRepository(AccountsPort):
    """Accounts store on raw SQL.

    Constructed with only an engine, every call runs in its own connection.
    ``execute_in_transaction`` hands ``fn`` a repository bound to a single
    connection; calling it again on a bound repository opens a savepoint so a
    failed inner attempt can be retried without losing the outer transaction.
    """

    def __init__(self, engine: Engine, connection: Connection | None = None):
        self._engine = engine
        self._connection = connection

    def execute_in_transaction(self, fn: Callable[[AccountsPort], T]) -> T:
        if self._connection is not None:
            with self._connection.begin_nested():
                return fn(self)
        with self._engine.begin() as conn:
            return fn(SqlAccountsRepository(self._engine, connection=conn))

    @contextmanager
    def _read(self) -> Iterator[Connection]:
        if self._connection is not None:
            yield self._connection
            return
        with self._engine.connect() as conn:
            yield conn

    @contextmanager
    def _write(self) -> Iterator[Connection]:
        if self._connection is not None:
            yield self._connection
            return
        with self._engine.begin() as conn:
            yield conn

    def get_user_by_id(self, *, user_id: str):
        sql = f"""
            SELECT {_USER_COLUMNS}
            FROM auth.users u
            WHERE u.id = :user_id
            LIMIT 1
        """
        with self._read() as conn:
            row = conn.execute(text(sql), {"user_id": user_id}).mappings().first()
        if row is None:
            return None
        return map_row_to_user(row)

    def get_user_by_email(self, *, email: str):
        sql = f"""
            SELECT {_USER_COLUMNS}
            FROM auth.users u
            WHERE lower(u.email) = :email
            LIMIT 1
        """
        with self._read() as conn:
            row = conn.execute(text(sql), {"email": email.lower()}).mappings().first()
        if row is None:
            return None
        return map_row_to_user(row)

    def create_user(self, *, user_id: str, new_user: NewUser, created_at: datetime):
        sql = """
            INSERT INTO auth.users (
                id, email, display_name, avatar_url, locale, default_role, metadata,
                email_verified, is_active, created_at, updated_at
            ) VALUES (
                :id, :email, :display_name, :avatar_url, :locale, :default_role, CAST(:metadata AS jsonb),
                :email_verified, true, :created_at, :created_at
            )
        """
        roles_sql = """
            INSERT INTO auth.user_roles (user_id, role)
            VALUES (:user_id, :role)
        """
        params = {
            "id": user_id,
            "email": new_user.email,
            "display_name": new_user.display_name,
            "avatar_url": new_user.avatar_url,
            "locale": new_user.locale,
            "default_role": new_user.default_role,
            "metadata": json.dumps(new_user.metadata or {}),
            "email_verified": new_user.email_verified,
            "created_at": created_at,
        }
        with self._write() as conn:
            try:
                conn.execute(text(sql), params)
            except IntegrityError as exc:
                raise AccountConflictError("A user with this email already exists.") from exc
            if new_user.roles:
                conn.execute(
                    text(roles_sql),
                    [{"user_id": user_id, "role": role} for role in new_user.roles],
                )
        user = self.get_user_by_id(user_id=user_id)
        if user is None:
            raise RuntimeError("Created user could not be read back.")
        return user

    def get_user_provider(self, *, provider_id: str, provider_user_id: str):
        sql = f"""
            SELECT {_USER_PROVIDER_COLUMNS}
            FROM auth.user_providers
            WHERE provider_id = :provider_id
              AND provider_user_id = :provider_user_id
            LIMIT 1
        """
        with self._read() as conn:
            row = (
                conn.execute(
                    text(sql),
                    {"provider_id": provider_id, "provider_user_id": provider_user_id},
                )
                .mappings()
                .first()
            )
        if row is None:
            return None
        return map_row_to_user_provider(row)

    def create_user_provider(
        self,
        *,
        link_id: str,
        user_id: str,
        provider_id: str,
        provider_user_id: str,
        access_token: str | None,
        refresh_token: str | None,
        created_at: datetime,
    ):
        sql = f"""
            INSERT INTO auth.user_providers (
                id, user_id, provider_id, provider_user_id, access_token, refresh_token, created_at, updated_at
            ) VALUES (
                :id, :user_id, :provider_id, :provider_user_id, :access_token, :refresh_token, :created_at, :created_at
            )
            RETURNING {_USER_PROVIDER_COLUMNS}
        """
        params = {
            "id": link_id,
            "user_id": user_id,
            "provider_id": provider_id,
            "provider_user_id": provider_user_id,
            "access_token": access_token,
            "refresh_token": refresh_token,
            "created_at": created_at,
        }
        with self._write() as conn:
            try:
                row = conn.execute(text(sql), params).mappings().one()
            except IntegrityError as exc:
                raise AccountConflictError(
                    f"Identity {provider_id} is already linked to a user."
                ) from exc
        return map_row_to_user_provider(row)

    def update_user_provider_tokens(
        self,
        *,
        link_id: str,
        access_token: str | None,
        refresh_token: str | None,
        updated_at: datetime,
    ):
        sql = f"""
            UPDATE auth.user_providers
            SET access_token = :access_token,
                refresh_token = :refresh_token,
                updated_at = :updated_at
            WHERE id = :id
            RETURNING {_USER_PROVIDER_COLUMNS}
        """
        params = {
            "id": link_id,
            "access_token": access_token,
            "refresh_token": refresh_token,
            "updated_at": updated_at,
        }
        with self._write() as conn:
            row = conn.execute(text(sql), params).mappings().one()
        return map_row_to_user_provider(row)

    def set_user_challenge(self, *, user_id: str, challenge: str | None) -> None:
        sql = """
            UPDATE auth.users
            SET current_challenge = :challenge,
                updated_at = now()
            WHERE id = :user_id
        """
        with self._write() as conn:
            conn.execute(text(sql), {"user_id": user_id, "challenge": challenge})

    def take_user_challenge(self, *, user_id: str) -> str | None:
        sql = """
            UPDATE auth.users AS u
            SET current_challenge = NULL,
                updated_at = now()
            FROM (
                SELECT id, current_challenge
                FROM auth.users
                WHERE id = :user_id
                FOR UPDATE
            ) AS previous
            WHERE u.id = previous.id
            RETURNING previous.current_challenge
        """
        with self._write() as conn:
            row = conn.execute(text(sql), {"user_id": user_id}).mappings().first()
        if row is None:
            return None
        return row["current_challenge"]

    def list_authenticators(self, *, user_id: str):
        sql = """
            SELECT id, user_id, credential_id, public_key, counter, nickname, created_at
            FROM auth.user_authenticators
            WHERE user_id = :user_id
            ORDER BY created_at ASC
        """
        with self._read() as conn:
            rows = conn.execute(text(sql), {"user_id": user_id}).mappings().all()
        return [map_row_to_authenticator(row) for row in rows]

    def create_authenticator(
        self,
        *,
        authenticator_id: str,
        user_id: str,
        credential_id: str,
        public_key: str,
        counter: int,
        nickname: str | None,
        created_at: datetime,
    ):
        sql = """
            INSERT INTO auth.user_authenticators (
                id, user_id, credential_id, public_key, counter, nickname, created_at
            ) VALUES (
                :id, :user_id, :credential_id, :public_key, :counter, :nickname, :created_at
            )
            RETURNING id, user_id, credential_id, public_key, counter, nickname, created_at
        """
        params = {
            "id": authenticator_id,
            "user_id": user_id,
            "credential_id": credential_id,
            "public_key": public_key,
            "counter": counter,
            "nickname": nickname,
            "created_at": created_at,
        }
        with self._write() as conn:
            try:
                row = conn.execute(text(sql), params).mappings().one()
            except IntegrityError as exc:
                raise AccountConflictError("Authenticator is already registered.") from exc
        return map_row_to_authenticator(row)

    def create_refresh_session(
        self,
        *,
        session_id: str,
        user_id: str,
        refresh_token_hash: str,
        expires_at: datetime,
        created_at: datetime,
    ):
        sql = """
            INSERT INTO auth.refresh_tokens (
                id, user_id, refresh_token_hash, expires_at, created_at
            ) VALUES (
                :id, :user_id, :refresh_token_hash, :expires_at, :created_at
            )
            RETURNING id, user_id, refresh_token_hash, expires_at, revoked_at, created_at
        """
        params = {
            "id": session_id,
            "user_id": user_id,
            "refresh_token_hash": refresh_token_hash,
            "expires_at": expires_at,
            "created_at": created_at,
        }
        with self._write() as conn:
            row = conn.execute(text(sql), params).mappings().one()
        return map_row_to_refresh_session(row)

    def get_refresh_session_by_hash(self, *, refresh_token_hash: str):
        sql = """
            SELECT id, user_id, refresh_token_hash, expires_at, revoked_at, created_at
            FROM auth.refresh_tokens
            WHERE refresh_token_hash = :refresh_token_hash
            LIMIT 1
        """
        with self._read() as conn:
            row = conn.execute(text(sql), {"refresh_token_hash": refresh_token_hash}).mappings().first()
        if row is None:
            return None
        return map_row_to_refresh_session(row)

    def revoke_refresh_session(self, *, session_id: str, revoked_at: datetime) -> bool:
        sql = """
            UPDATE auth.refresh_tokens
            SET revoked_at = :revoked_at
            WHERE id = :id
              AND revoked_at IS NULL
        """
        with self._write() as conn:
            result = conn.execute(text(sql), {"id": session_id, "revoked_at": revoked_at})
        if result.rowcount != 1:
            logger.warning("accounts_repository: refresh_session_already_revoked session_id=%s", session_id)
            return False
        return True

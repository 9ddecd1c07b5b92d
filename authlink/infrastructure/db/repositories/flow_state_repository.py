from __future__ import annotations

import secrets
from datetime import datetime, timedelta, timezone
from typing import Any, Mapping

from sqlalchemy import text
from sqlalchemy.engine import Engine

from authlink.application.ports.flow_state_port import FlowStatePort
from authlink.domain.entities.identity import FlowState
from authlink.infrastructure.db.mappers.accounts_mapper import (
    map_json_to_registration_options,
    registration_options_to_json,
)


def _map_row_to_flow_state(row: Mapping[str, Any]) -> FlowState:
    return FlowState(
        provider_id=row["provider_id"],
        state=row["state"],
        redirect_to=row.get("redirect_to"),
        options=map_json_to_registration_options(row.get("options")),
        created_at=row["created_at"],
    )


class SqlFlowStateRepository(FlowStatePort):
    """Flow state shared by every instance through the ``auth.oauth_flow_states`` table."""

    def __init__(self, engine: Engine, *, ttl_seconds: int):
        self._engine = engine
        self._ttl_seconds = ttl_seconds

    def create(self, state: FlowState) -> str:
        session_id = secrets.token_urlsafe(32)
        now = datetime.now(timezone.utc)
        sweep_sql = """
            DELETE FROM auth.oauth_flow_states
            WHERE expires_at <= :now
        """
        insert_sql = """
            INSERT INTO auth.oauth_flow_states (
                id, provider_id, state, redirect_to, options, created_at, expires_at
            ) VALUES (
                :id, :provider_id, :state, :redirect_to, CAST(:options AS jsonb), :created_at, :expires_at
            )
        """
        params = {
            "id": session_id,
            "provider_id": state.provider_id,
            "state": state.state,
            "redirect_to": state.redirect_to,
            "options": registration_options_to_json(state.options),
            "created_at": state.created_at,
            "expires_at": now + timedelta(seconds=self._ttl_seconds),
        }
        with self._engine.begin() as conn:
            conn.execute(text(sweep_sql), {"now": now})
            conn.execute(text(insert_sql), params)
        return session_id

    def get(self, session_id: str) -> FlowState | None:
        sql = """
            SELECT provider_id, state, redirect_to, options, created_at
            FROM auth.oauth_flow_states
            WHERE id = :id
              AND expires_at > now()
            LIMIT 1
        """
        with self._engine.connect() as conn:
            row = conn.execute(text(sql), {"id": session_id}).mappings().first()
        if row is None:
            return None
        return _map_row_to_flow_state(row)

    def take(self, session_id: str) -> FlowState | None:
        sql = """
            DELETE FROM auth.oauth_flow_states
            WHERE id = :id
            RETURNING provider_id, state, redirect_to, options, created_at, expires_at
        """
        with self._engine.begin() as conn:
            row = conn.execute(text(sql), {"id": session_id}).mappings().first()
        if row is None or row["expires_at"] <= datetime.now(timezone.utc):
            return None
        return _map_row_to_flow_state(row)

    def destroy(self, session_id: str) -> None:
        sql = """
            DELETE FROM auth.oauth_flow_states
            WHERE id = :id
        """
        with self._engine.begin() as conn:
            conn.execute(text(sql), {"id": session_id})

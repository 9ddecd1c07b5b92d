from __future__ import annotations

import secrets
import time
from threading import Lock
from typing import Callable

from authlink.application.ports.flow_state_port import FlowStatePort
from authlink.domain.entities.identity import FlowState


class InMemoryFlowStateStore(FlowStatePort):
    """Process-local flow state with a fixed time to live.

    Only usable when a single process serves both the start and the callback
    request of a flow.
    """

    def __init__(self, *, ttl_seconds: float, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[str, tuple[float, FlowState]] = {}
        self._lock = Lock()

    def _sweep(self, now: float) -> None:
        expired = [key for key, (expires_at, _) in self._entries.items() if expires_at <= now]
        for key in expired:
            self._entries.pop(key, None)

    def create(self, state: FlowState) -> str:
        session_id = secrets.token_urlsafe(32)
        now = self._clock()
        with self._lock:
            self._sweep(now)
            self._entries[session_id] = (now + self.ttl_seconds, state)
        return session_id

    def get(self, session_id: str) -> FlowState | None:
        now = self._clock()
        with self._lock:
            cached = self._entries.get(session_id)
            if cached is None:
                return None
            expires_at, state = cached
            if expires_at <= now:
                self._entries.pop(session_id, None)
                return None
            return state

    def take(self, session_id: str) -> FlowState | None:
        now = self._clock()
        with self._lock:
            cached = self._entries.pop(session_id, None)
        if cached is None:
            return None
        expires_at, state = cached
        if expires_at <= now:
            return None
        return state

    def destroy(self, session_id: str) -> None:
        with self._lock:
            self._entries.pop(session_id, None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

from __future__ import annotations

from typing import Protocol

from authlink.domain.entities.identity import FlowState


class FlowStatePort(Protocol):
    def create(self, state: FlowState) -> str:
        """Store a new flow and return its unguessable session id."""
        ...

    def get(self, session_id: str) -> FlowState | None:
        ...

    def take(self, session_id: str) -> FlowState | None:
        """Read and destroy in one step. A second call for the same id returns None."""
        ...

    def destroy(self, session_id: str) -> None:
        ...

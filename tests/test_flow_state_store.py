from __future__ import annotations

from authlink.domain.entities.identity import FlowState, RegistrationOptions
from authlink.infrastructure.flow_state.memory_store import InMemoryFlowStateStore

from tests.support import utc


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


def _flow(state: str = "nonce") -> FlowState:
    return FlowState(
        provider_id="github",
        state=state,
        redirect_to=None,
        options=RegistrationOptions(),
        created_at=utc(),
    )


def test_take_returns_flow_once():
    store = InMemoryFlowStateStore(ttl_seconds=600)
    session_id = store.create(_flow())

    assert store.take(session_id) == _flow()
    assert store.take(session_id) is None
    assert len(store) == 0


def test_session_ids_are_unique_and_unguessable():
    store = InMemoryFlowStateStore(ttl_seconds=600)

    ids = {store.create(_flow()) for _ in range(50)}

    assert len(ids) == 50
    assert all(len(session_id) >= 32 for session_id in ids)


def test_expired_flow_is_not_returned():
    clock = FakeClock()
    store = InMemoryFlowStateStore(ttl_seconds=600, clock=clock)
    session_id = store.create(_flow())

    clock.now += 600

    assert store.get(session_id) is None
    assert store.take(session_id) is None


def test_expired_flows_are_swept_on_write():
    clock = FakeClock()
    store = InMemoryFlowStateStore(ttl_seconds=10, clock=clock)
    store.create(_flow("a"))
    store.create(_flow("b"))

    clock.now += 11
    fresh = store.create(_flow("c"))

    assert len(store) == 1
    assert store.get(fresh).state == "c"


def test_destroy_removes_flow_and_tolerates_unknown_ids():
    store = InMemoryFlowStateStore(ttl_seconds=600)
    session_id = store.create(_flow())

    store.destroy(session_id)
    store.destroy(session_id)
    store.destroy("unknown")

    assert store.get(session_id) is None
    assert len(store) == 0

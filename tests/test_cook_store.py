import pytest

from weeknight.cook.store import SessionStore, CookStatus
from weeknight.cook.timeline import placeholder_timeline
from weeknight.errors import InvalidInput, NotFound
from weeknight.schemas import TimelineStep


def _steps(*timers):
    return [
        TimelineStep(id=f"s{i}", step_order=i, instruction=f"Step {i}", timer_sec=t)
        for i, t in enumerate(timers, start=1)
    ]


def test_create_initial_state():
    store = SessionStore()
    session = store.create("r1", "u1", _steps(30, 0))

    assert session.session_id in store
    assert session.current_step == 0
    assert session.status == CookStatus.IDLE
    assert session.timer_remaining_sec == 30
    assert len(store) == 1


def test_create_rejects_empty_timeline():
    store = SessionStore()
    with pytest.raises(InvalidInput):
        store.create("r1", "u1", [])


def test_session_ids_are_unique():
    store = SessionStore()
    ids = {store.create("r1", "u1", _steps(0)).session_id for _ in range(20)}
    assert len(ids) == 20


def test_get_unknown_session():
    store = SessionStore()
    with pytest.raises(NotFound):
        store.get("nope")
    assert store.get_or_none("nope") is None


def test_update_clamps_timer_and_stamps():
    store = SessionStore()
    session = store.create("r1", "u1", _steps(10))
    before = session.updated_at

    updated = store.update(session.session_id, timer_remaining_sec=-5)
    assert updated.timer_remaining_sec == 0
    assert updated.updated_at >= before


def test_update_rejects_out_of_range_step():
    store = SessionStore()
    session = store.create("r1", "u1", _steps(0, 0))
    with pytest.raises(InvalidInput):
        store.update(session.session_id, current_step=2)
    with pytest.raises(InvalidInput):
        store.update(session.session_id, current_step=-1)


def test_update_refuses_immutable_fields():
    store = SessionStore()
    session = store.create("r1", "u1", _steps(0))
    with pytest.raises(InvalidInput):
        store.update(session.session_id, recipe_id="other")


def test_delete_is_idempotent():
    store = SessionStore()
    session = store.create("r1", "u1", _steps(0))
    store.delete(session.session_id)
    store.delete(session.session_id)
    assert session.session_id not in store


def test_snapshot_shape():
    store = SessionStore()
    session = store.create("r1", "u1", placeholder_timeline("r1"))
    snap = store.snapshot(session.session_id)

    assert snap["session_id"] == session.session_id
    assert snap["status"] == "idle"
    assert snap["current_step"] == 0
    assert snap["step"]["id"] == "r1-step-1"


@pytest.mark.parametrize("orders", [(1, 1), (1, 3, 2), (2, 1)])
def test_create_rejects_unordered_steps(orders):
    store = SessionStore()
    steps = [
        TimelineStep(id=f"s{i}", step_order=order, instruction=f"Step {i}")
        for i, order in enumerate(orders)
    ]
    with pytest.raises(InvalidInput):
        store.create("r1", "u1", steps)
    assert len(store) == 0


def test_create_accepts_gaps_in_step_order():
    store = SessionStore()
    steps = [
        TimelineStep(id="a", step_order=10, instruction="Chop"),
        TimelineStep(id="b", step_order=20, instruction="Fry"),
    ]
    session = store.create("r1", "u1", steps)
    assert session.step.id == "a"

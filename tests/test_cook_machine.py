import asyncio

import pytest

from weeknight.cook.machine import CookSessionMachine, parse_seconds
from weeknight.cook.store import CookStatus
from weeknight.errors import InvalidInput, NotFound
from weeknight.schemas import TimelineStep


class Recorder:
    def __init__(self):
        self.events = []

    def send(self, event):
        self.events.append(event)

    def names(self):
        return [e.name for e in self.events]

    def clear(self):
        self.events.clear()


def _steps(*timers):
    return [
        TimelineStep(id=f"s{i}", step_order=i, instruction=f"Step {i}", timer_sec=t)
        for i, t in enumerate(timers, start=1)
    ]


@pytest.fixture
def machine():
    m = CookSessionMachine(tick_seconds=3600, stop_grace_seconds=3600)
    yield m
    m.shutdown()


def _session(machine, *timers):
    session = machine.start_session("r1", "u1", _steps(*timers))
    rec = Recorder()
    machine.broadcaster.subscribe(session.session_id, rec)
    rec.clear()
    return session.session_id, rec


def test_start_session_requires_recipe(machine):
    with pytest.raises(InvalidInput):
        machine.start_session(None, "u1", _steps(0))


def test_start_session_defaults_user(machine):
    session = machine.start_session("r1", None, _steps(0))
    assert session.user_id == "anonymous"


@pytest.mark.asyncio
async def test_next_is_monotonic_until_completed(machine):
    sid, rec = _session(machine, 0, 0, 0, 0)
    machine.apply_action(sid, "start")

    seen = []
    for _ in range(3):
        seen.append(machine.apply_action(sid, "next").current_step)
    assert seen == [1, 2, 3]

    result = machine.apply_action(sid, "next")
    assert result.status == CookStatus.COMPLETED
    assert result.current_step == 3
    assert rec.names().count("cook_complete") == 1

    again = machine.apply_action(sid, "next")
    assert again.current_step == 3
    assert again.status == CookStatus.COMPLETED
    assert rec.names().count("cook_complete") == 1


@pytest.mark.asyncio
async def test_three_step_scenario(machine):
    sid, rec = _session(machine, 0, 30, 0)

    machine.apply_action(sid, "start")
    assert not machine.timers.is_running(sid)

    rec.clear()
    result = machine.apply_action(sid, "next")
    assert result.current_step == 1
    assert result.timer_remaining_sec == 30
    assert rec.names() == ["step_completed", "step_started"]
    assert rec.events[0].data["step_order"] == 1
    assert rec.events[1].data["step_order"] == 2
    assert machine.timers.is_running(sid)

    for _ in range(5):
        machine.timers.tick(sid)
    result = machine.apply_action(sid, "pause")
    assert result.timer_remaining_sec == 25
    assert result.status == CookStatus.PAUSED
    assert not machine.timers.is_running(sid)


@pytest.mark.asyncio
async def test_pause_twice_then_resume(machine):
    sid, rec = _session(machine, 20)
    machine.apply_action(sid, "start")
    machine.timers.tick(sid)
    machine.timers.tick(sid)

    first = machine.apply_action(sid, "pause")
    machine.timers.tick(sid)
    second = machine.apply_action(sid, "pause")
    assert first.timer_remaining_sec == second.timer_remaining_sec == 18

    resumed = machine.apply_action(sid, "resume")
    assert resumed.status == CookStatus.COOKING
    assert resumed.timer_remaining_sec == 18
    assert machine.timers.is_running(sid)

    machine.timers.tick(sid)
    assert machine.get_session(sid).timer_remaining_sec == 17


@pytest.mark.asyncio
async def test_resume_without_timer_only_changes_status(machine):
    sid, rec = _session(machine, 0)
    machine.apply_action(sid, "pause")

    result = machine.apply_action(sid, "resume")
    assert result.status == CookStatus.COOKING
    assert not machine.timers.is_running(sid)
    assert "resumed" in rec.names()


def test_resume_when_not_paused_is_noop(machine):
    sid, rec = _session(machine, 0)
    result = machine.apply_action(sid, "resume")
    assert result.message == "Nothing to resume"
    assert result.status == CookStatus.IDLE
    assert rec.names() == []


def test_unknown_session_does_not_touch_others(machine):
    sid, _ = _session(machine, 10)
    before = machine.get_session(sid).model_copy()

    with pytest.raises(NotFound):
        machine.apply_action("does-not-exist", "start")

    after = machine.get_session(sid)
    assert after.status == before.status
    assert after.timer_remaining_sec == before.timer_remaining_sec


def test_missing_session_id_and_unknown_action(machine):
    sid, _ = _session(machine, 0)
    with pytest.raises(InvalidInput):
        machine.apply_action(None, "start")
    with pytest.raises(InvalidInput):
        machine.apply_action(sid, "fly")


def test_set_time_with_non_numeric_value(machine):
    sid, rec = _session(machine, 45)
    result = machine.apply_action(sid, "set_time", "soon")

    assert result.timer_remaining_sec == 45
    assert result.message == "Timer unchanged"
    assert "timer_adjusted" not in rec.names()


def test_set_time_and_add_time(machine):
    sid, rec = _session(machine, 45)

    assert machine.apply_action(sid, "set_time", "90s").timer_remaining_sec == 90
    assert machine.apply_action(sid, "add_time", 30).timer_remaining_sec == 120
    assert machine.apply_action(sid, "add_time", "junk").timer_remaining_sec == 180
    assert machine.apply_action(sid, "add_time").timer_remaining_sec == 240

    adjusted = [e.data for e in rec.events if e.name == "timer_adjusted"]
    assert adjusted[0] == {"session_id": sid, "set_sec": 90, "remaining_sec": 90}
    assert adjusted[1]["added_sec"] == 30
    assert not machine.timers.is_running(sid)


def test_prev_resets_to_full_timer(machine):
    sid, rec = _session(machine, 40, 0)
    machine.apply_action(sid, "next")

    result = machine.apply_action(sid, "prev")
    assert result.current_step == 0
    assert result.timer_remaining_sec == 40

    first = machine.apply_action(sid, "prev")
    assert first.message == "Already at the first step"
    assert first.current_step == 0


def test_repeat_has_no_state_change(machine):
    sid, rec = _session(machine, 15)
    result = machine.apply_action(sid, "repeat")

    assert result.timer_remaining_sec == 15
    assert result.status == CookStatus.IDLE
    assert rec.names() == ["instruction_repeat"]
    assert rec.events[0].data["step"]["id"] == "s1"


@pytest.mark.asyncio
async def test_stop_keeps_session_for_grace_period():
    machine = CookSessionMachine(tick_seconds=3600, stop_grace_seconds=0.01)
    sid, rec = _session(machine, 10)
    machine.apply_action(sid, "start")

    result = machine.apply_action(sid, "stop")
    assert result.status == CookStatus.COMPLETED
    assert "cook_stopped" in rec.names()
    assert not machine.timers.is_running(sid)
    assert machine.get_session(sid).status == CookStatus.COMPLETED

    await asyncio.sleep(0.05)
    with pytest.raises(NotFound):
        machine.get_session(sid)
    assert not machine.broadcaster.has_listeners(sid)


def test_parse_seconds():
    assert parse_seconds("90") == 90
    assert parse_seconds(" 15 sec") == 15
    assert parse_seconds(12.7) == 12
    assert parse_seconds("abc") is None
    assert parse_seconds(None) is None
    assert parse_seconds(True) is None
    assert parse_seconds(float("inf")) is None
    assert parse_seconds(float("-inf")) is None
    assert parse_seconds(float("nan")) is None


@pytest.mark.parametrize("value", [float("inf"), float("nan")])
def test_non_finite_time_values(machine, value):
    sid, rec = _session(machine, 45)

    result = machine.apply_action(sid, "set_time", value)
    assert result.message == "Timer unchanged"
    assert result.timer_remaining_sec == 45

    result = machine.apply_action(sid, "add_time", value)
    assert result.timer_remaining_sec == 45 + 60
    assert rec.events[-1].data["added_sec"] == 60


@pytest.mark.asyncio
async def test_completed_session_cannot_be_revived(machine):
    sid, rec = _session(machine, 30)
    machine.apply_action(sid, "start")
    assert machine.apply_action(sid, "next").status == CookStatus.COMPLETED
    rec.clear()

    for action in ("pause", "resume", "start", "prev", "add_time", "set_time"):
        result = machine.apply_action(sid, action, 10)
        assert result.message == "Cooking already completed"
        assert result.status == CookStatus.COMPLETED
        assert not machine.timers.is_running(sid)

    machine.apply_action(sid, "next")
    assert rec.names() == []
    assert machine.get_session(sid).timer_remaining_sec == 30


@pytest.mark.asyncio
async def test_stopped_session_stays_stopped(machine):
    sid, rec = _session(machine, 30)
    machine.apply_action(sid, "start")
    machine.apply_action(sid, "stop")
    rec.clear()

    result = machine.apply_action(sid, "start")
    assert result.status == CookStatus.COMPLETED
    assert not machine.timers.is_running(sid)

    machine.apply_action(sid, "pause")
    result = machine.apply_action(sid, "resume")
    assert result.status == CookStatus.COMPLETED
    assert not machine.timers.is_running(sid)
    assert rec.names() == []

    repeated = machine.apply_action(sid, "repeat")
    assert repeated.status == CookStatus.COMPLETED
    assert rec.names() == ["instruction_repeat"]

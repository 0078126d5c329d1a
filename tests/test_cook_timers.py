import asyncio

import pytest

from weeknight.cook.machine import CookSessionMachine
from weeknight.cook.store import CookStatus
from weeknight.schemas import TimelineStep


class Recorder:
    def __init__(self):
        self.events = []

    def send(self, event):
        self.events.append(event)

    def names(self):
        return [e.name for e in self.events]


def _steps(*timers):
    return [
        TimelineStep(id=f"s{i}", step_order=i, instruction=f"Step {i}", timer_sec=t)
        for i, t in enumerate(timers, start=1)
    ]


def _cooking(timers, tick_seconds=3600):
    machine = CookSessionMachine(tick_seconds=tick_seconds)
    session = machine.start_session("r1", "u1", _steps(*timers))
    rec = Recorder()
    machine.broadcaster.subscribe(session.session_id, rec)
    return machine, session.session_id, rec


@pytest.mark.asyncio
async def test_tick_counts_down_and_fires_done_once():
    machine, sid, rec = _cooking([3])
    machine.apply_action(sid, "start")
    assert machine.timers.is_running(sid)

    assert machine.timers.tick(sid) is True
    assert machine.timers.tick(sid) is True
    assert machine.timers.tick(sid) is False
    assert not machine.timers.is_running(sid)

    session = machine.get_session(sid)
    assert session.timer_remaining_sec == 0
    assert session.status == CookStatus.COOKING

    # Further ticks are ignored: nothing below zero, no second timer_done.
    machine.timers.tick(sid)
    assert machine.get_session(sid).timer_remaining_sec == 0
    assert rec.names().count("timer_done") == 1
    assert [e.data["remaining_sec"] for e in rec.events if e.name == "timer_tick"] == [2, 1, 0]
    machine.shutdown()


@pytest.mark.asyncio
async def test_tick_is_noop_when_paused():
    machine, sid, rec = _cooking([10])
    machine.apply_action(sid, "start")
    machine.apply_action(sid, "pause")

    assert machine.timers.tick(sid) is False
    assert machine.get_session(sid).timer_remaining_sec == 10
    assert "timer_tick" not in rec.names()
    machine.shutdown()


@pytest.mark.asyncio
async def test_start_without_timer_does_not_run():
    machine, sid, rec = _cooking([0, 5])
    machine.apply_action(sid, "start")

    assert not machine.timers.is_running(sid)
    assert machine.get_session(sid).status == CookStatus.COOKING
    machine.shutdown()


@pytest.mark.asyncio
async def test_timer_runs_in_real_time():
    machine, sid, rec = _cooking([2], tick_seconds=0.01)
    machine.apply_action(sid, "start")

    for _ in range(100):
        if "timer_done" in rec.names():
            break
        await asyncio.sleep(0.01)

    assert rec.names().count("timer_done") == 1
    assert machine.get_session(sid).timer_remaining_sec == 0
    assert not machine.timers.is_running(sid)
    machine.shutdown()


@pytest.mark.asyncio
async def test_stop_all_cancels_tasks():
    machine, sid, rec = _cooking([100])
    machine.apply_action(sid, "start")
    assert machine.timers.is_running(sid)

    machine.timers.stop_all()
    await asyncio.sleep(0)
    assert not machine.timers.is_running(sid)

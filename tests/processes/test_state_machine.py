"""Tests for the forward-only app lifecycle."""

import asyncio
import logging

import pytest

from spanharness.types import SupervisorState
from spanharness.processes.state_machine import AppLifecycle


@pytest.mark.asyncio
async def test_initial_state():
    lc = AppLifecycle("app")
    assert lc.state == SupervisorState.STARTING
    assert [s for s, _ in lc.history] == [SupervisorState.STARTING]


@pytest.mark.asyncio
async def test_ready_then_exited():
    lc = AppLifecycle("app")
    assert await lc.advance(SupervisorState.READY) is True
    assert await lc.advance(SupervisorState.EXITED) is True
    assert lc.state == SupervisorState.EXITED
    assert [s for s, _ in lc.history] == [
        SupervisorState.STARTING, SupervisorState.READY, SupervisorState.EXITED,
    ]


@pytest.mark.asyncio
async def test_exit_without_ready():
    lc = AppLifecycle("app")
    assert await lc.advance(SupervisorState.EXITED) is True
    assert lc.reached(SupervisorState.READY)


@pytest.mark.asyncio
async def test_repeated_or_late_advances_are_noops():
    lc = AppLifecycle("app")
    await lc.advance(SupervisorState.READY)
    assert await lc.advance(SupervisorState.READY) is False

    await lc.advance(SupervisorState.EXITED)
    # The scanner reporting READY after the exit watcher won the race
    assert await lc.advance(SupervisorState.READY) is False
    assert await lc.advance(SupervisorState.EXITED) is False
    assert lc.state == SupervisorState.EXITED
    assert len(lc.history) == 3


@pytest.mark.asyncio
async def test_transition_listener():
    lc = AppLifecycle("app")
    transitions = []

    async def listener(label, old, new):
        transitions.append((label, old.value, new.value))

    lc.on_transition(listener)
    await lc.advance(SupervisorState.READY)
    await lc.advance(SupervisorState.READY)
    await lc.advance(SupervisorState.EXITED)

    assert transitions == [
        ("app", "starting", "ready"),
        ("app", "ready", "exited"),
    ]


@pytest.mark.asyncio
async def test_failing_listener_is_logged_and_skipped(caplog):
    lc = AppLifecycle("app with pid '42'")
    heard = []

    async def broken(label, old, new):
        raise RuntimeError("listener bug")

    async def healthy(label, old, new):
        heard.append(new)

    lc.on_transition(broken)
    lc.on_transition(healthy)

    with caplog.at_level(logging.WARNING, logger="spanharness.processes.state_machine"):
        assert await lc.advance(SupervisorState.READY) is True

    assert lc.state == SupervisorState.READY
    assert heard == [SupervisorState.READY]
    assert "listener bug" in caplog.text
    assert "pid '42'" in caplog.text


@pytest.mark.asyncio
async def test_listeners_hear_transitions_in_order():
    lc = AppLifecycle("app")
    heard = []

    async def slow(label, old, new):
        if new == SupervisorState.READY:
            await asyncio.sleep(0.05)
        heard.append(new)

    lc.on_transition(slow)
    ready = asyncio.create_task(lc.advance(SupervisorState.READY))
    await asyncio.sleep(0)
    # State is already READY even though the listener is still running
    assert lc.state == SupervisorState.READY
    await lc.advance(SupervisorState.EXITED)
    await ready

    assert heard == [SupervisorState.READY, SupervisorState.EXITED]

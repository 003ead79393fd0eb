"""Tests for session/clock.py, driven by a fake time source."""

import threading

import chess

from session.clock import DecayClock
from session.models import SessionStatus
from session.state import GameSession


class FakeTime:
    def __init__(self) -> None:
        self.now = 100.0

    def __call__(self) -> float:
        return self.now


def test_tick_hands_measured_delta_to_session(session: GameSession) -> None:
    session.start_session(chess.STARTING_FEN, chess.WHITE)
    fake = FakeTime()
    clock = DecayClock(session, clock=fake)

    fake.now += 0.25
    assert clock.tick() == 250
    fake.now += 1.0
    assert clock.tick() == 1_000
    assert session.clocks[chess.WHITE] == 180_000 - 1_250


def test_tick_never_goes_backwards(session: GameSession) -> None:
    session.start_session(chess.STARTING_FEN, chess.WHITE)
    fake = FakeTime()
    clock = DecayClock(session, clock=fake)
    fake.now -= 5
    assert clock.tick() == 0
    assert session.clocks[chess.WHITE] == 180_000


def test_hooks_run_after_each_tick(session: GameSession) -> None:
    fake = FakeTime()
    clock = DecayClock(session, clock=fake)
    calls = []
    clock.after_tick.append(lambda: calls.append("pump"))
    clock.tick()
    clock.tick()
    assert calls == ["pump", "pump"]


def test_failing_hook_does_not_stop_the_clock(session: GameSession) -> None:
    session.start_session(chess.STARTING_FEN, chess.WHITE)
    fake = FakeTime()
    clock = DecayClock(session, clock=fake)
    calls = []

    def broken() -> None:
        raise RuntimeError("boom")

    clock.after_tick.extend([broken, lambda: calls.append("after")])
    fake.now += 0.5
    assert clock.tick() == 500
    assert calls == ["after"]
    assert session.status == SessionStatus.ACTIVE


def test_interval_defaults_to_config(session: GameSession) -> None:
    assert DecayClock(session).interval_ms == session.config.tick_interval_ms
    assert DecayClock(session, interval_ms=40).interval_ms == 40


def test_thread_ticks_until_stopped(session: GameSession) -> None:
    clock = DecayClock(session, interval_ms=10)
    ticked = threading.Event()
    clock.after_tick.append(ticked.set)

    clock.start()
    clock.start()
    try:
        assert ticked.wait(2.0)
    finally:
        clock.stop()
    assert clock._thread is None

"""
Shared fixtures for the rules, session and interface tests:
a manual scheduler (delayed callbacks run only when the test advances time)
and a scripted engine channel (no engine binary needed).
"""

from collections import deque
from dataclasses import dataclass, field
from typing import Any, Callable, Iterator

import pytest

from interface.channel import ChannelError
from session.models import SessionConfig
from session.state import GameSession


# --- MANUAL SCHEDULER ---
@dataclass
class ScheduledCall:
    due_ms: int
    callback: Callable[..., Any]
    args: tuple = ()
    cancelled: bool = field(default=False)

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler:
    """Collects delayed callbacks; advance() runs the ones that fall due."""

    def __init__(self) -> None:
        self.now_ms = 0
        self.calls: list[ScheduledCall] = []

    def call_later(self, delay_ms: int, callback: Callable[..., Any], *args: Any) -> ScheduledCall:
        call = ScheduledCall(self.now_ms + delay_ms, callback, args)
        self.calls.append(call)
        return call

    @property
    def pending(self) -> list[ScheduledCall]:
        return [call for call in self.calls if not call.cancelled]

    def advance(self, ms: int) -> None:
        self.now_ms += ms
        while True:
            due = [c for c in self.pending if c.due_ms <= self.now_ms]
            if not due:
                return
            call = min(due, key=lambda c: c.due_ms)
            self.calls.remove(call)
            call.callback(*call.args)


# --- SCRIPTED ENGINE CHANNEL ---
class FakeChannel:
    """
    Stands in for UciChannel. Answers the handshake by itself (unless told not to);
    everything else the engine "says" is queued by the test through emit().
    """

    def __init__(self, answer_handshake: bool = True, fail_open: bool = False) -> None:
        self.answer_handshake = answer_handshake
        self.fail_open = fail_open
        self.sent: list[str] = []
        self.lines: deque[str] = deque()
        self.opened = 0
        self._alive = False

    @property
    def alive(self) -> bool:
        return self._alive

    def open(self) -> None:
        if self.fail_open:
            raise ChannelError("no such engine")
        self.opened += 1
        self._alive = True

    def send(self, line: str) -> None:
        if not self._alive:
            raise ChannelError("engine is not running")
        self.sent.append(line)
        if self.answer_handshake and line == "uci":
            self.lines.extend(["id name Fake", "uciok"])
        elif self.answer_handshake and line == "isready":
            self.lines.append("readyok")

    def read(self, timeout: float) -> str | None:
        if self.lines:
            return self.lines.popleft()
        if not self._alive:
            raise ChannelError("engine output closed")
        return None

    def drain(self) -> list[str]:
        lines = list(self.lines)
        self.lines.clear()
        return lines

    def close(self) -> None:
        self._alive = False

    def emit(self, *lines: str) -> None:
        self.lines.extend(lines)

    def crash(self) -> None:
        self._alive = False


@pytest.fixture
def scheduler() -> ManualScheduler:
    return ManualScheduler()


@pytest.fixture
def channel() -> FakeChannel:
    return FakeChannel()


@pytest.fixture
def make_channel() -> Callable[..., FakeChannel]:
    """For tests that need a channel with non-default behaviour."""
    return FakeChannel


@pytest.fixture
def session(scheduler: ManualScheduler) -> Iterator[GameSession]:
    """A decay session on a manual scheduler. Ended at teardown so no callbacks linger."""
    game = GameSession(SessionConfig(), scheduler)
    try:
        yield game
    finally:
        game.end_session()

"""
Delayed callbacks for the session.

The session needs exactly two kinds of delayed work: ending a finished game
after a grace period, and playing the engine's move after a short pause.
Both go through a Scheduler so that tests can substitute a manual clock.
"""

import threading
from typing import Any, Callable, Protocol


class Handle(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    def call_later(self, delay_ms: int, callback: Callable[..., Any], *args: Any) -> Handle: ...


class ThreadScheduler:
    """Runs each callback on its own daemon threading.Timer."""

    def call_later(
        self, delay_ms: int, callback: Callable[..., Any], *args: Any
    ) -> threading.Timer:
        timer = threading.Timer(delay_ms / 1000, callback, args=args)
        timer.daemon = True
        timer.start()
        return timer

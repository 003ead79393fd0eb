"""
DecayClock: the periodic tick that drives a session's clocks.

A daemon thread wakes every tick interval (250 ms by default), measures how
much wall-clock time actually passed since the previous tick, and hands that
delta to GameSession.advance_clock(). Using the measured delta instead of
counting ticks keeps the clocks honest when the thread is scheduled late.

After each tick the clock runs its after-tick hooks. The engine service
registers its pump() here so engine replies are consumed on the same
cadence without a second polling thread.

The thread never touches session state directly; it only calls the
session's public methods, which serialize on the session lock.
"""

import logging
import threading
import time
from typing import Callable

from session.state import GameSession

_log = logging.getLogger(__name__)


class DecayClock:
    """
    Periodic ticker for one GameSession.

    Attributes:
        session:      The session to tick.
        interval_ms:  Sleep between ticks.
        after_tick:   Callables run after every tick, in registration order.
    """

    def __init__(
        self,
        session: GameSession,
        interval_ms: int | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.session = session
        self.interval_ms = interval_ms if interval_ms is not None else session.config.tick_interval_ms
        self.after_tick: list[Callable[[], None]] = []
        self._clock = clock
        self._last_tick = clock()
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    def tick(self) -> int:
        """
        Run one tick now.

        Returns:
            The elapsed milliseconds handed to the session.
        """
        now = self._clock()
        elapsed_ms = max(0, int((now - self._last_tick) * 1000))
        self._last_tick = now
        self.session.advance_clock(elapsed_ms)
        for hook in self.after_tick:
            try:
                hook()
            except Exception:
                # keep ticking
                _log.exception("after-tick hook failed")
        return elapsed_ms

    def start(self) -> None:
        """Start the ticking thread. Calling start() twice is a no-op."""
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop_event = threading.Event()
        self._last_tick = self._clock()
        self._thread = threading.Thread(target=self._run, name="decay-clock", daemon=True)
        self._thread.start()

    def stop(self) -> None:
        """Stop the ticking thread and wait briefly for it to exit."""
        self._stop_event.set()
        if self._thread is not None and self._thread.is_alive():
            self._thread.join(timeout=2.0)
        self._thread = None

    def _run(self) -> None:
        interval = self.interval_ms / 1000
        while not self._stop_event.wait(interval):
            self.tick()

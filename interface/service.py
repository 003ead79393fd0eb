"""
EngineService: glue between one GameSession and one EvaluationClient.

The service has no state of its own worth protecting. Each pump() call:

    1. re-handshakes a client that has fallen over (at most every 2 s)
    2. notices a new session generation and clears the client's dedupe marker
    3. drains engine events:
         info     → normalized to White, handed to session.update_evaluation()
         bestmove → session.make_bot_move() scheduled after a short delay
       events for a position the session has already left are dropped
    4. asks for an evaluation if the session is waiting for one, or if it
       is the engine's turn and no search is running; while pieces are
       frozen the search is limited to the moves the freeze overlay allows

pump() is cheap and is meant to run after every DecayClock tick.
"""

import logging
import time
from typing import Callable

from interface.client import BestMoveEvent, EngineEvent, EvaluationClient, InfoEvent
from interface.uci import normalize_score, side_to_move
from rules.constants import HANDSHAKE_RETRY_MS
from session.models import PLAYING_STATUSES, EvalResult
from session.scheduler import Scheduler, ThreadScheduler
from session.state import GameSession

_log = logging.getLogger(__name__)


class EngineService:
    """
    Drives engine evaluations and bot moves for a session.

    Attributes:
        session: The session being served.
        client:  The evaluation client.
    """

    def __init__(
        self,
        session: GameSession,
        client: EvaluationClient,
        scheduler: Scheduler | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.session = session
        self.client = client
        self._scheduler: Scheduler = scheduler if scheduler is not None else ThreadScheduler()
        self._clock = clock
        self._generation: int | None = None
        self._last_handshake: float | None = None

    def start(self) -> bool:
        """Initial handshake. Returns whether the engine is ready."""
        self._last_handshake = self._clock()
        ready = self.client.handshake()
        self.session.set_engine_ready(ready)
        return ready

    def pump(self) -> None:
        session = self.session

        if not self.client.ready:
            self._retry_handshake()

        if session.generation != self._generation:
            self._generation = session.generation
            self.client.forget_position()

        for event in self.client.poll():
            self._dispatch(event)

        if self.client.ready and session.status in PLAYING_STATUSES:
            engine_turn_idle = not session.is_player_turn and self.client.in_flight is None
            if session.is_evaluating or engine_turn_idle:
                self.client.request(
                    session.fen, session.config.search_depth, session.get_search_moves()
                )

        session.set_engine_ready(self.client.ready)

    def close(self) -> None:
        self.client.close()
        self.session.set_engine_ready(False)

    def _retry_handshake(self) -> None:
        now = self._clock()
        if (
            self._last_handshake is not None
            and (now - self._last_handshake) * 1000 < HANDSHAKE_RETRY_MS
        ):
            return
        self._last_handshake = now
        self.client.handshake()

    def _dispatch(self, event: EngineEvent) -> None:
        session = self.session
        if event.fen != session.fen:
            _log.debug("Dropping stale engine reply for %s", event.fen)
            return

        if isinstance(event, InfoEvent):
            info = event.info
            if info.depth < session.config.min_info_depth:
                return
            white_cp = normalize_score(info.score_cp, side_to_move(event.fen))
            session.update_evaluation(EvalResult.from_cp(white_cp, info.best_move, info.depth))
        elif isinstance(event, BestMoveEvent):
            if session.is_player_turn:
                return
            self._scheduler.call_later(
                session.config.bot_move_delay_ms,
                self._play_bot_move,
                event.move,
                session.generation,
                event.fen,
            )

    def _play_bot_move(self, move: str, generation: int, fen: str) -> None:
        """Delayed bot move; dropped if the session moved on meanwhile."""
        if self.session.generation != generation:
            _log.debug("Dropping delayed bot move %s from a previous session", move)
            return
        if self.session.make_bot_move(move, expected_fen=fen):
            return
        if self.session.fen == fen and not self.session.is_player_turn:
            # Same position, so the next pump asks again.
            _log.info("Engine move %s rejected; asking again", move)
            self.client.forget_position()

"""
GameSession: the single owner of an interactive chess session's state.

Everything that changes a session (the human's moves, the engine's moves,
engine evaluations, clock ticks, delayed auto-end callbacks) goes through a
public method on this class, and every such method runs under one
re-entrant lock. Nothing else holds a reference to the mutable state: the
board, history and timers are handed out as copies or immutable values.

Lifecycle:

    idle ──start_session──► active ◄──► warning
                              │            │
                              ▼            ▼
              collapsed / checkmate / stalemate / draw
                              │
                              ▼
                            ended ──reset──► idle

start_session() may jump straight from idle to a terminal status when the
starting FEN is already finished. A finished game ends itself after a grace
period unless its status changes first. end_session() is also reachable from
any status (cancel), and a main-clock timeout goes directly to ended.

Threading model:
    The decay clock thread calls advance_clock(); the engine service calls
    update_evaluation() and (via the scheduler) make_bot_move(); the UI calls
    the rest. The lock makes each of these atomic with respect to the others.
"""

import logging
import threading
from collections import Counter
from dataclasses import replace

import chess

from rules.decay import DecayTimer, DecayTracker
from rules.freeze import RulesAdapter, position_key
from session.models import (
    PLAYING_STATUSES,
    EvalResult,
    EvalStatus,
    GameResult,
    MoveRecord,
    SessionConfig,
    SessionStatus,
    resign_for_player,
)
from session.scheduler import Handle, Scheduler, ThreadScheduler

_log = logging.getLogger(__name__)

COLLAPSE_MESSAGE = "Position collapsed!"


def _color_name(color: chess.Color) -> str:
    return chess.COLOR_NAMES[color].capitalize()


class GameSession:
    """
    Turn-driven human-vs-engine session with the decay overlay.

    Attributes:
        config: SessionConfig in force. Read at every operation, so a new
                config takes effect on the next start_session().
    """

    def __init__(
        self,
        config: SessionConfig | None = None,
        scheduler: Scheduler | None = None,
    ) -> None:
        self.config = config if config is not None else SessionConfig()
        self._scheduler: Scheduler = scheduler if scheduler is not None else ThreadScheduler()
        self._lock = threading.RLock()
        self._decay = DecayTracker(
            duration_ms=self.config.decay_time_ms,
            increment_ms=self.config.decay_increment_ms,
        )
        self._rules = RulesAdapter(self._decay.frozen)
        self._pending: list[Handle] = []
        self._generation = 0
        self._engine_ready = False
        self._set_defaults()

    # -----------------------------------------------------------------------
    # Read-only view
    # -----------------------------------------------------------------------

    @property
    def status(self) -> SessionStatus:
        return self._status

    @property
    def fen(self) -> str:
        return self._board.fen()

    @property
    def board(self) -> chess.Board:
        """A copy of the current position."""
        with self._lock:
            return self._board.copy()

    @property
    def turn(self) -> chess.Color:
        return self._board.turn

    @property
    def initial_fen(self) -> str:
        return self._initial_fen

    @property
    def player_color(self) -> chess.Color:
        return self._player_color

    @property
    def is_player_turn(self) -> bool:
        return self._board.turn == self._player_color

    @property
    def move_history(self) -> tuple[MoveRecord, ...]:
        return self._history

    @property
    def evaluation(self) -> EvalResult | None:
        """Latest evaluation, from the human player's perspective."""
        return self._evaluation

    @property
    def is_evaluating(self) -> bool:
        """True while the current position is waiting for an evaluation."""
        return self._is_evaluating

    @property
    def result(self) -> GameResult | None:
        return self._result

    @property
    def game_over_message(self) -> str | None:
        return self._result.message if self._result else None

    @property
    def generation(self) -> int:
        """Incremented by every start_session(), even with an identical FEN."""
        return self._generation

    @property
    def engine_ready(self) -> bool:
        return self._engine_ready

    @property
    def clocks(self) -> dict[chess.Color, int | None]:
        """Remaining main-clock time per color (None when untimed)."""
        with self._lock:
            return dict(self._clocks)

    @property
    def decay_timers(self) -> dict[chess.Color, DecayTimer]:
        with self._lock:
            return {color: replace(t) for color, t in self._decay.timers.items()}

    @property
    def frozen_squares(self) -> dict[chess.Color, frozenset[str]]:
        with self._lock:
            return {
                color: frozenset(chess.square_name(sq) for sq in squares)
                for color, squares in self._decay.frozen.squares.items()
            }

    def get_legal_moves(self, square: str) -> list[str]:
        """
        Destination squares for the piece on `square`, e.g. ["e3", "e4"].

        Empty outside active/warning, for an unknown square name, and for
        frozen pieces.
        """
        with self._lock:
            if self._status not in PLAYING_STATUSES:
                return []
            try:
                origin = chess.parse_square(square)
            except ValueError:
                return []
            targets = self._rules.legal_targets(self._board, origin)
            return [chess.square_name(sq) for sq in sorted(targets)]

    def get_search_moves(self) -> list[str]:
        """
        Moves (UCI) the side to move may actually play, for restricting an
        engine search. Empty when nothing is frozen, since the engine's own
        move generation is then exact.
        """
        with self._lock:
            if self._status not in PLAYING_STATUSES or not self._decay.frozen:
                return []
            return [move.uci() for move in self._rules.legal_moves(self._board)]

    # -----------------------------------------------------------------------
    # Lifecycle
    # -----------------------------------------------------------------------

    def start_session(self, fen: str, player_color: chess.Color) -> None:
        """
        Start a new session from `fen` with the human playing `player_color`.

        A position that is already finished goes straight to its terminal
        status and no evaluation is requested for it.

        Raises:
            ValueError: `fen` is not a valid FEN.
        """
        board = chess.Board(fen)
        with self._lock:
            self._cancel_pending()
            self._set_defaults()
            self._generation += 1
            self._board = board
            self._initial_fen = fen
            self._player_color = player_color
            self._seen[position_key(board)] += 1

            outcome = self._rules.outcome(board, self._seen)
            if outcome is not None:
                self._finish(outcome)
                _log.info("Session started with game over: %s", self._result.message)
                return

            self._status = SessionStatus.ACTIVE
            self._is_evaluating = True
            _log.info(
                "Session started: fen=%s color=%s", fen, chess.COLOR_NAMES[player_color]
            )

    def restart_session(self) -> None:
        """Cold-start again from the stored initial FEN and color."""
        with self._lock:
            self.start_session(self._initial_fen, self._player_color)

    def end_session(self) -> None:
        """End the session (also the cancel path). Stops clocks and timers."""
        with self._lock:
            self._cancel_pending()
            if self._status != SessionStatus.ENDED:
                _log.info("Session ended (was %s)", self._status)
            self._status = SessionStatus.ENDED
            self._is_evaluating = False

    def reset(self) -> bool:
        """
        Clear position, history and evaluation back to defaults.

        Only allowed once the session has ended (or never started).

        Returns:
            True if the session was reset.
        """
        with self._lock:
            if self._status not in (SessionStatus.IDLE, SessionStatus.ENDED):
                _log.warning("reset() refused while session is %s", self._status)
                return False
            self._cancel_pending()
            self._set_defaults()
            return True

    def set_engine_ready(self, ready: bool) -> None:
        with self._lock:
            self._engine_ready = ready

    def resign(self) -> None:
        """The human resigns; the engine's color wins."""
        with self._lock:
            if self._status not in PLAYING_STATUSES:
                return
            self._result = GameResult("resignation", not self._player_color, "You resigned.")
            self.end_session()

    def agree_draw(self) -> None:
        """Finish the game as a draw by agreement."""
        with self._lock:
            if self._status not in PLAYING_STATUSES:
                return
            self._status = SessionStatus.DRAW
            self._result = GameResult("agreement", None, "Draw by agreement.")
            self._is_evaluating = False
            self._schedule_end(self.config.game_over_grace_ms)

    # -----------------------------------------------------------------------
    # Moves
    # -----------------------------------------------------------------------

    def make_move(self, from_square: str, to_square: str, promotion: str | None = None) -> bool:
        """
        The human moves a piece.

        Args:
            from_square: Origin square name, e.g. "e2".
            to_square:   Destination square name, e.g. "e4".
            promotion:   Promotion letter ("q", "r", "b", "n"); queen if
                         omitted on a promoting pawn move.

        Returns:
            True if the move was legal and committed. False leaves the
            session untouched (wrong status, not the human's turn, frozen
            piece, illegal move, or bad input).
        """
        with self._lock:
            if self._status not in PLAYING_STATUSES:
                return False
            if self._board.turn != self._player_color:
                return False
            try:
                origin = chess.parse_square(from_square)
                target = chess.parse_square(to_square)
                piece_type = chess.Piece.from_symbol(promotion).piece_type if promotion else None
            except ValueError:
                return False
            return self._commit(origin, target, piece_type, by_player=True)

    def make_bot_move(self, uci_move: str, expected_fen: str | None = None) -> bool:
        """
        Play the engine's move, given in UCI notation (e.g. "e7e5", "a2a1q").

        Ignored unless the session is active/warning and it is the engine's
        turn; a late or duplicated engine reply must never move the human's
        pieces.

        Args:
            uci_move:     The engine's move.
            expected_fen: If given, the move is dropped unless the session is
                          still in exactly this position.

        Returns:
            True if the move was committed.
        """
        with self._lock:
            if self._status not in PLAYING_STATUSES:
                _log.debug("Dropping bot move %s: session is %s", uci_move, self._status)
                return False
            if expected_fen is not None and expected_fen != self._board.fen():
                _log.debug("Dropping bot move %s for an old position", uci_move)
                return False
            if self._board.turn == self._player_color:
                _log.warning("Ignoring out-of-turn bot move %s", uci_move)
                return False
            try:
                move = chess.Move.from_uci(uci_move)
            except ValueError:
                _log.warning("Invalid bot move: %s", uci_move)
                return False
            if not self._commit(move.from_square, move.to_square, move.promotion, by_player=False):
                _log.warning("Invalid bot move: %s", uci_move)
                return False
            return True

    # -----------------------------------------------------------------------
    # Evaluation and clock
    # -----------------------------------------------------------------------

    def update_evaluation(self, result: EvalResult) -> None:
        """
        Apply an engine evaluation expressed from White's perspective.

        The score is re-signed to the human's perspective and stored. Status
        transitions only happen on the human's turn: while the engine is to
        move, the score describes a position the engine has not answered yet,
        and collapsing on it would end the game before the engine replies.

        Args:
            result: Evaluation from the reference color's point of view.
        """
        with self._lock:
            if self._status not in PLAYING_STATUSES:
                return

            adjusted = resign_for_player(result, self._player_color)
            self._evaluation = adjusted
            self._is_evaluating = False

            if self._board.turn != self._player_color:
                return

            if adjusted.status == EvalStatus.COLLAPSED:
                self._status = SessionStatus.COLLAPSED
                self._result = GameResult("collapsed", None, COLLAPSE_MESSAGE)
                _log.info("Position collapsed at %.2f", adjusted.score_pawns)
                self._schedule_end(self.config.collapse_grace_ms)
            elif adjusted.status == EvalStatus.WARNING:
                self._status = SessionStatus.WARNING
            else:
                self._status = SessionStatus.ACTIVE

    def advance_clock(self, elapsed_ms: int) -> None:
        """
        One clock tick: drain the side to move's clock and decay timer.

        The main clock comes first. If it runs out the session ends on time
        immediately, ahead of anything else that might be pending.

        Args:
            elapsed_ms: Wall-clock time since the previous tick.
        """
        with self._lock:
            if self._status not in PLAYING_STATUSES or elapsed_ms <= 0:
                return

            color = self._board.turn
            remaining = self._clocks[color]
            if remaining is not None:
                remaining = max(0, remaining - elapsed_ms)
                self._clocks[color] = remaining
                if remaining == 0:
                    self._time_out(color)
                    return

            if self.config.decay_enabled:
                self._decay.drain(color, elapsed_ms, self._board)

    # -----------------------------------------------------------------------
    # Internal helpers
    # -----------------------------------------------------------------------

    def _set_defaults(self) -> None:
        main_clock = self.config.main_clock_ms
        self._status = SessionStatus.IDLE
        self._board = chess.Board()
        self._initial_fen = chess.STARTING_FEN
        self._player_color = chess.WHITE
        self._history: tuple[MoveRecord, ...] = ()
        self._seen: Counter[str] = Counter()
        self._evaluation: EvalResult | None = None
        self._is_evaluating = False
        self._result: GameResult | None = None
        self._clocks: dict[chess.Color, int | None] = {
            chess.WHITE: main_clock,
            chess.BLACK: main_clock,
        }
        self._decay.duration_ms = self.config.decay_time_ms
        self._decay.increment_ms = self.config.decay_increment_ms
        self._decay.reset()

    def _commit(
        self,
        from_square: chess.Square,
        to_square: chess.Square,
        promotion: chess.PieceType | None,
        by_player: bool,
    ) -> bool:
        """Shared commit path for both movers. Caller holds the lock."""
        mover = self._board.turn
        outcome = self._rules.apply_move(self._board, from_square, to_square, promotion)
        if not outcome.accepted:
            return False

        board = outcome.board
        if self.config.decay_enabled:
            self._decay.record_move(mover, outcome.moved_piece.piece_type, to_square, board)

        self._board = board
        self._history = self._history + (
            MoveRecord(
                from_square=chess.square_name(from_square),
                to_square=chess.square_name(to_square),
                san=outcome.san,
                color=mover,
                fen=board.fen(),
            ),
        )
        self._is_evaluating = True
        _log.info("%s move: %s", "Player" if by_player else "Bot", outcome.san)

        self._seen[position_key(board)] += 1
        game_outcome = self._rules.outcome(board, self._seen)
        if game_outcome is not None:
            self._finish(game_outcome)
            _log.info("Game over: %s", self._result.message)
            self._schedule_end(self.config.game_over_grace_ms)
        return True

    def _finish(self, outcome: chess.Outcome) -> None:
        """Enter the terminal status matching a python-chess outcome."""
        if outcome.termination == chess.Termination.CHECKMATE:
            won = outcome.winner == self._player_color
            self._status = SessionStatus.CHECKMATE
            self._result = GameResult(
                "checkmate",
                outcome.winner,
                "Checkmate! You win!" if won else "Checkmate! You lost.",
            )
        elif outcome.termination == chess.Termination.STALEMATE:
            self._status = SessionStatus.STALEMATE
            self._result = GameResult("stalemate", None, "Stalemate. Draw!")
        else:
            self._status = SessionStatus.DRAW
            self._result = GameResult("draw", None, "Draw!")
        self._is_evaluating = False

    def _time_out(self, color: chess.Color) -> None:
        self._result = GameResult("timeout", not color, f"{_color_name(color)} ran out of time")
        _log.info(self._result.message)
        self.end_session()

    def _schedule_end(self, delay_ms: int) -> None:
        handle = self._scheduler.call_later(
            delay_ms, self._end_if_unchanged, self._status, self._generation
        )
        self._pending.append(handle)

    def _end_if_unchanged(self, status: SessionStatus, generation: int) -> None:
        with self._lock:
            if self._generation == generation and self._status == status:
                self.end_session()

    def _cancel_pending(self) -> None:
        for handle in self._pending:
            handle.cancel()
        self._pending.clear()

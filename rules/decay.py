"""
Queen decay timers.

Each color owns one DecayTimer bound to one queen. The timer is dormant until
that queen first moves; from then on it drains whenever it is its owner's
turn, and further queen moves buy back a little time. When it reaches zero
the queen on the tracked square freezes for the rest of the game.

Losing the queen outright (capture) is handled separately: the timer is
forced straight into the frozen state with nothing left on it. A queen that
appears later through promotion starts a completely fresh timer the first
time it moves.

DecayTracker owns both timers and the FrozenSquares shared with the
RulesAdapter. It never reads a clock itself; the session hands it elapsed
milliseconds.
"""

import logging
from dataclasses import dataclass

import chess

from rules.constants import DECAY_INCREMENT_MS, DECAY_PIECE_TYPE, DECAY_TIME_MS
from rules.freeze import FrozenSquares

_log = logging.getLogger(__name__)


@dataclass
class DecayTimer:
    """
    One color's decay timer.

    Attributes:
        active:       Counting down. Never True together with frozen.
        frozen:       Expired (or queen lost). Never True together with active.
        remaining_ms: Time left, clamped at zero.
        square:       Square of the queen this timer is bound to, if any.
        move_count:   Queen moves made since the timer (re)started.
    """

    active: bool = False
    frozen: bool = False
    remaining_ms: int = 0
    square: chess.Square | None = None
    move_count: int = 0

    def restart(self, square: chess.Square, duration_ms: int) -> None:
        """Fresh full-duration timer bound to `square`."""
        self.active = True
        self.frozen = False
        self.remaining_ms = duration_ms
        self.square = square
        self.move_count = 1

    def lose(self) -> None:
        """Decay by absence: the tracked queen is gone, no carryover."""
        self.active = False
        self.frozen = True
        self.remaining_ms = 0
        self.square = None
        self.move_count = 0


class DecayTracker:
    """
    Both colors' decay timers plus the frozen squares they produce.

    Attributes:
        timers:       Mapping from color to its DecayTimer.
        frozen:       FrozenSquares shared with the RulesAdapter.
        piece_type:   The decaying piece type.
        duration_ms:  Full timer duration.
        increment_ms: Time added per further move, capped at duration_ms.
    """

    def __init__(
        self,
        frozen: FrozenSquares | None = None,
        piece_type: chess.PieceType = DECAY_PIECE_TYPE,
        duration_ms: int = DECAY_TIME_MS,
        increment_ms: int = DECAY_INCREMENT_MS,
    ) -> None:
        self.frozen = frozen if frozen is not None else FrozenSquares()
        self.piece_type = piece_type
        self.duration_ms = duration_ms
        self.increment_ms = increment_ms
        self.timers: dict[chess.Color, DecayTimer] = {
            chess.WHITE: DecayTimer(),
            chess.BLACK: DecayTimer(),
        }

    def reset(self) -> None:
        """Dormant timers and no frozen squares, for a new game."""
        self.timers = {chess.WHITE: DecayTimer(), chess.BLACK: DecayTimer()}
        self.frozen.clear()

    def drain(self, color: chess.Color, elapsed_ms: int, board: chess.Board) -> bool:
        """
        Run `color`'s timer down by `elapsed_ms`.

        Callers only drain the side to move. A timer that is dormant or
        already frozen is left alone, so re-ticking after a freeze has no
        further effect.

        Args:
            color:      Whose timer to drain.
            elapsed_ms: Wall-clock time since the previous tick.
            board:      Current position, to check the tracked square.

        Returns:
            True if this call froze the timer.
        """
        timer = self.timers[color]
        if not timer.active or timer.frozen:
            return False

        timer.remaining_ms = max(0, timer.remaining_ms - elapsed_ms)
        if timer.remaining_ms > 0:
            return False

        timer.frozen = True
        timer.active = False
        if timer.square is not None and board.piece_at(timer.square) == chess.Piece(
            self.piece_type, color
        ):
            self.frozen.add(color, timer.square)
            _log.info(
                "%s queen on %s frozen by decay",
                chess.COLOR_NAMES[color],
                chess.square_name(timer.square),
            )
        else:
            _log.info("%s decay timer expired with no queen to freeze", chess.COLOR_NAMES[color])
        return True

    def record_move(
        self,
        color: chess.Color,
        moved_piece_type: chess.PieceType,
        to_square: chess.Square,
        board: chess.Board,
    ) -> None:
        """
        Update timers after a committed move.

        The mover's timer reacts only when the piece that moved was already
        a queen before the move (a pawn promoting does not count):
            - dormant         → start a full timer
            - running         → add the increment (capped), follow the queen
            - frozen          → a new queen: start a full timer

        Then, for both colors, the tracked square is re-resolved by scanning
        the board. A color with no queen left has its timer forced frozen
        with zero time. Finally the frozen squares are revalidated.

        Args:
            color:            The color that just moved.
            moved_piece_type: Type of the piece before it moved.
            to_square:        Where it landed.
            board:            Position after the move.
        """
        if moved_piece_type == self.piece_type:
            timer = self.timers[color]
            if timer.active and not timer.frozen:
                timer.move_count += 1
                timer.remaining_ms = min(
                    self.duration_ms, timer.remaining_ms + self.increment_ms
                )
                timer.square = to_square
            else:
                timer.restart(to_square, self.duration_ms)

        for side, timer in self.timers.items():
            found = self._locate(board, side, timer.square)
            if found is None:
                if timer.square is not None:
                    _log.info("%s queen gone: decay timer frozen", chess.COLOR_NAMES[side])
                timer.lose()
            elif timer.active or timer.frozen:
                timer.square = found

        self.revalidate(board)

    def revalidate(self, board: chess.Board) -> None:
        """Drop frozen squares that no longer hold a queen of their color."""
        self.frozen.revalidate(board, self.piece_type)

    def _locate(
        self, board: chess.Board, color: chess.Color, hint: chess.Square | None
    ) -> chess.Square | None:
        """
        Square of `color`'s decaying piece, or None if it has none.

        The current tracked square wins if it still holds one; otherwise the
        first one found scanning from a8 along each rank.
        """
        squares = board.pieces(self.piece_type, color)
        if not squares:
            return None
        if hint is not None and hint in squares:
            return hint
        return min(squares, key=lambda sq: (-chess.square_rank(sq), chess.square_file(sq)))

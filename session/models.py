"""
Session data model: statuses, records, evaluation results, and configuration.

Everything here is a plain value. MoveRecord, EvalResult and GameResult are
frozen dataclasses so they can be handed to the UI or across threads without
copying. SessionConfig is a pydantic model so that configuration coming from
outside (the terminal harness, a host application) is validated and clamped
in one place.
"""

from dataclasses import dataclass
from enum import StrEnum

import chess
from pydantic import BaseModel, field_validator

from rules.constants import (
    BOT_MOVE_DELAY_MS,
    COLLAPSE_GRACE_MS,
    DECAY_INCREMENT_MS,
    DECAY_TIME_MS,
    DEFAULT_SEARCH_DEPTH,
    EVAL_COLLAPSE_THRESHOLD,
    EVAL_EXCELLENT_THRESHOLD,
    EVAL_WARNING_THRESHOLD,
    GAME_OVER_GRACE_MS,
    MAIN_CLOCK_MS,
    MAX_SEARCH_DEPTH,
    MIN_INFO_DEPTH,
    MIN_SEARCH_DEPTH,
    REFERENCE_COLOR,
    TICK_INTERVAL_MS,
)


class SessionStatus(StrEnum):
    IDLE = "idle"
    ACTIVE = "active"
    WARNING = "warning"
    COLLAPSED = "collapsed"
    CHECKMATE = "checkmate"
    STALEMATE = "stalemate"
    DRAW = "draw"
    ENDED = "ended"


# Statuses in which moves, evaluations and clock ticks are accepted.
PLAYING_STATUSES = frozenset({SessionStatus.ACTIVE, SessionStatus.WARNING})

# Statuses from which the session only proceeds toward ENDED.
TERMINAL_STATUSES = frozenset(
    {
        SessionStatus.COLLAPSED,
        SessionStatus.CHECKMATE,
        SessionStatus.STALEMATE,
        SessionStatus.DRAW,
    }
)


class EvalStatus(StrEnum):
    EXCELLENT = "excellent"
    GOOD = "good"
    WARNING = "warning"
    COLLAPSED = "collapsed"


def classify_eval(score_pawns: float) -> EvalStatus:
    """
    Classify a score (pawns, positive = good for the viewer).

    Thresholds are inclusive on the losing side: exactly -4.5 collapses,
    exactly -0.8 warns.
    """
    if score_pawns <= EVAL_COLLAPSE_THRESHOLD:
        return EvalStatus.COLLAPSED
    if score_pawns <= EVAL_WARNING_THRESHOLD:
        return EvalStatus.WARNING
    if score_pawns >= EVAL_EXCELLENT_THRESHOLD:
        return EvalStatus.EXCELLENT
    return EvalStatus.GOOD


@dataclass(frozen=True)
class MoveRecord:
    """
    One applied ply.

    Attributes:
        from_square: Origin square name, e.g. "e2".
        to_square:   Destination square name, e.g. "e4".
        san:         Standard algebraic notation, e.g. "e4" or "Qxf7#".
        color:       The color that moved.
        fen:         Position after the move.
    """

    from_square: str
    to_square: str
    san: str
    color: chess.Color
    fen: str


@dataclass(frozen=True)
class EvalResult:
    """
    An engine evaluation.

    At the protocol boundary the score is from the reference color's (White's)
    point of view; once stored on the session it has been re-signed to the
    human player's point of view and `status` reclassified accordingly.

    Attributes:
        score_cp:    Centipawns. Mates saturate at +/-MATE_SCORE_CP.
        score_pawns: score_cp / 100.
        best_move:   First move of the principal variation (UCI), if any.
        depth:       Search depth the score was reported at.
        status:      classify_eval(score_pawns).
    """

    score_cp: int
    score_pawns: float
    best_move: str | None
    depth: int
    status: EvalStatus

    @classmethod
    def from_cp(cls, score_cp: int, best_move: str | None, depth: int) -> "EvalResult":
        score_pawns = score_cp / 100
        return cls(score_cp, score_pawns, best_move, depth, classify_eval(score_pawns))

    def negated(self) -> "EvalResult":
        """Same evaluation from the other side of the board."""
        return EvalResult.from_cp(-self.score_cp, self.best_move, self.depth)


def resign_for_player(
    result: EvalResult,
    player_color: chess.Color,
    reference: chess.Color = REFERENCE_COLOR,
) -> EvalResult:
    """
    Re-sign a reference-color evaluation to the human player's perspective.

    Args:
        result:       Evaluation from `reference`'s point of view.
        player_color: The human's color.
        reference:    The color `result` is expressed for.

    Returns:
        `result` unchanged if the player is the reference color, otherwise
        negated (with its status reclassified).
    """
    if player_color == reference:
        return result
    return result.negated()


@dataclass(frozen=True)
class GameResult:
    """
    Why a game finished and who won it.

    Attributes:
        reason:  "checkmate", "stalemate", "draw", "collapsed", "timeout",
                 "resignation" or "agreement".
        winner:  Winning color, or None for draws and collapses.
        message: Human-readable line for the UI.
    """

    reason: str
    winner: chess.Color | None
    message: str


class SessionConfig(BaseModel):
    """
    Tunables for one session.

    Fields:
        decay_enabled:      Play the decay variant (queen timers and freezes).
        decay_time_ms:      Full decay timer.
        decay_increment_ms: Time bought back per further queen move.
        main_clock_ms:      Per-color game clock; None plays untimed.
        tick_interval_ms:   Decay clock sampling interval.
        game_over_grace_ms: Delay before a finished game auto-ends.
        collapse_grace_ms:  Delay before a collapsed session auto-ends.
        bot_move_delay_ms:  Minimum delay before the engine's move is played.
        search_depth:       Depth requested from the engine (clamped 1-30).
        min_info_depth:     Info lines shallower than this are ignored.
    """

    decay_enabled: bool = True
    decay_time_ms: int = DECAY_TIME_MS
    decay_increment_ms: int = DECAY_INCREMENT_MS
    main_clock_ms: int | None = MAIN_CLOCK_MS
    tick_interval_ms: int = TICK_INTERVAL_MS
    game_over_grace_ms: int = GAME_OVER_GRACE_MS
    collapse_grace_ms: int = COLLAPSE_GRACE_MS
    bot_move_delay_ms: int = BOT_MOVE_DELAY_MS
    search_depth: int = DEFAULT_SEARCH_DEPTH
    min_info_depth: int = MIN_INFO_DEPTH

    @field_validator("search_depth")
    @classmethod
    def clamp_search_depth(cls, v: int) -> int:
        """Clamp search_depth to what an engine can reasonably answer."""
        return max(MIN_SEARCH_DEPTH, min(v, MAX_SEARCH_DEPTH))

    @field_validator("tick_interval_ms")
    @classmethod
    def clamp_tick_interval(cls, v: int) -> int:
        return max(10, v)

    @field_validator(
        "decay_time_ms",
        "decay_increment_ms",
        "game_over_grace_ms",
        "collapse_grace_ms",
        "bot_move_delay_ms",
        "min_info_depth",
    )
    @classmethod
    def clamp_non_negative(cls, v: int) -> int:
        return max(0, v)

    @field_validator("main_clock_ms")
    @classmethod
    def positive_clock(cls, v: int | None) -> int | None:
        """A non-positive clock means untimed."""
        if v is None or v <= 0:
            return None
        return v

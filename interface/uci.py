"""
UCI (Universal Chess Interface) protocol: the client's half.

The session talks to an external engine (Stockfish by default) over the
standard text protocol. This module holds the pure, stateless pieces of that
conversation: framing an evaluation request, parsing what comes back, and
putting scores into a fixed perspective. The stateful parts live in
interface/client.py (request bookkeeping) and interface/channel.py (the
subprocess pipe).

Protocol overview (what we send and what we listen for):
    Client → Engine: uci, isready, position fen <FEN>, go depth <n>, stop, quit
    Engine → Client: uciok, readyok, info depth ... score ... pv ..., bestmove

Everything else the engine prints (id lines, option lines, "info string",
currmove updates) is protocol noise and parses to None.

Perspective:
    UCI engines report scores from the side to move's point of view. We
    normalize every score to a single reference color (White) at this
    boundary; the session later re-signs it to the human player's color.
"""

import re
from dataclasses import dataclass, field
from typing import Literal

import chess
from pydantic import BaseModel, field_validator

from rules.constants import (
    DEFAULT_SEARCH_DEPTH,
    MATE_SCORE_CP,
    MAX_SEARCH_DEPTH,
    MIN_SEARCH_DEPTH,
    REFERENCE_COLOR,
)

# A single move token: square pair plus optional promotion letter.
_MOVE_TOKEN = re.compile(r"^[a-h][1-8][a-h][1-8][qrbn]?$")


# ---------------------------------------------------------------------------
# Request framing
# ---------------------------------------------------------------------------


class EvaluationRequest(BaseModel):
    """
    One evaluation request.

    Fields:
        command:     Always "evaluate".
        position:    FEN of the position to evaluate. Must parse.
        depth:       Search depth, clamped to [1, 30].
        searchmoves: If given, the only root moves the engine may consider.
    """

    command: Literal["evaluate"] = "evaluate"
    position: str
    depth: int = DEFAULT_SEARCH_DEPTH
    searchmoves: tuple[str, ...] = ()

    @field_validator("position")
    @classmethod
    def valid_fen(cls, v: str) -> str:
        """Reject anything python-chess cannot load."""
        chess.Board(v)
        return v

    @field_validator("depth")
    @classmethod
    def clamp_depth(cls, v: int) -> int:
        return max(MIN_SEARCH_DEPTH, min(v, MAX_SEARCH_DEPTH))

    @field_validator("searchmoves")
    @classmethod
    def valid_moves(cls, v: tuple[str, ...]) -> tuple[str, ...]:
        for move in v:
            if not _MOVE_TOKEN.match(move):
                raise ValueError(f"not a UCI move: {move!r}")
        return v

    def to_uci(self) -> list[str]:
        """The UCI command lines that carry this request."""
        go = f"go depth {self.depth}"
        if self.searchmoves:
            go += " searchmoves " + " ".join(self.searchmoves)
        return [f"position fen {self.position}", go]


# ---------------------------------------------------------------------------
# Response parsing
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class UciInfo:
    """
    A parsed "info depth ..." line.

    Attributes:
        depth:     Search depth of the report.
        score_cp:  Centipawns from the side to move's perspective. Mate
                   scores saturate at +/-MATE_SCORE_CP.
        mate:      Moves to mate if the engine reported one (negative when
                   the side to move is getting mated), else None.
        pv:        Principal variation as UCI move tokens.
    """

    depth: int
    score_cp: int
    mate: int | None = None
    pv: tuple[str, ...] = field(default_factory=tuple)

    @property
    def best_move(self) -> str | None:
        """First move of the principal variation."""
        return self.pv[0] if self.pv else None


def parse_info(line: str) -> UciInfo | None:
    """
    Parse a UCI info line carrying a score.

    Example:
        >>> parse_info("info depth 12 seldepth 18 score cp -45 nodes 1 pv e7e5 d2d4")
        UciInfo(depth=12, score_cp=-45, mate=None, pv=('e7e5', 'd2d4'))

    Lines without a score (currmove updates, "info string ...") and lines
    for secondary multipv variations are noise. So is anything with a
    missing or non-numeric value.

    Args:
        line: One raw line of engine output.

    Returns:
        UciInfo, or None if the line is not a usable scored info line.
    """
    tokens = line.split()
    if len(tokens) < 3 or tokens[0] != "info" or tokens[1] != "depth":
        return None

    depth: int | None = None
    score_cp: int | None = None
    mate: int | None = None
    pv: tuple[str, ...] = ()

    i = 1
    try:
        while i < len(tokens):
            key = tokens[i]
            if key == "depth":
                depth = int(tokens[i + 1])
                i += 2
            elif key == "multipv":
                if int(tokens[i + 1]) != 1:
                    return None
                i += 2
            elif key == "score":
                kind, value = tokens[i + 1], int(tokens[i + 2])
                if kind == "cp":
                    score_cp = value
                elif kind == "mate":
                    # "mate 0" means the side to move is already mated.
                    mate = value
                    score_cp = MATE_SCORE_CP if value > 0 else -MATE_SCORE_CP
                else:
                    return None
                i += 3
            elif key == "pv":
                # Everything after "pv" is the principal variation.
                pv = tuple(tokens[i + 1:])
                break
            else:
                i += 1
    except (IndexError, ValueError):
        return None

    if depth is None or score_cp is None:
        return None
    if pv and not all(_MOVE_TOKEN.match(move) for move in pv):
        return None
    return UciInfo(depth=depth, score_cp=score_cp, mate=mate, pv=pv)


def parse_bestmove(line: str) -> str | None:
    """
    Parse a final "bestmove <move> [ponder <move>]" line.

    Args:
        line: One raw line of engine output.

    Returns:
        The move token, or None for anything else (including
        "bestmove (none)", sent when the position has no legal move).
    """
    tokens = line.split()
    if len(tokens) < 2 or tokens[0] != "bestmove":
        return None
    move = tokens[1]
    return move if _MOVE_TOKEN.match(move) else None


# ---------------------------------------------------------------------------
# Perspective
# ---------------------------------------------------------------------------


def side_to_move(fen: str) -> chess.Color:
    """Side to move in a FEN (White if the field is missing)."""
    fields = fen.split()
    return chess.BLACK if len(fields) > 1 and fields[1] == "b" else chess.WHITE


def normalize_score(
    score_cp: int, mover: chess.Color, reference: chess.Color = REFERENCE_COLOR
) -> int:
    """
    Convert a side-to-move score into the reference color's perspective.

    Args:
        score_cp:  Score as the engine reported it.
        mover:     Side to move in the evaluated position.
        reference: Perspective to convert into.

    Returns:
        `score_cp` if the mover is the reference color, else its negation.
    """
    return score_cp if mover == reference else -score_cp

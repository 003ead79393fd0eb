"""
Freeze overlay: standard chess legality with frozen pieces made inert.

A frozen piece stays on the board but takes no part in the game: it cannot
move, it does not block, pin, attack or give check, and it does not defend.
python-chess knows nothing about this, so every question we ask it is asked
about a *shadow board* — a copy of the real position with every frozen piece
lifted off.

Moving is a three-step affair:
    1. strip   — build the shadow board (frozen pieces removed)
    2. move    — validate and push the move on the shadow board
    3. restore — put the lifted pieces back on their squares

The result is a brand-new board; the input board is never touched. A frozen
enemy piece on the destination square is captured, so it is the one piece
that is not restored.

python-chess clears a board's move stack whenever pieces are placed or
removed by hand, so the stack cannot be trusted for repetition once anything
is frozen. position_key() gives callers a stable key to count positions with.
"""

from dataclasses import dataclass, field
from typing import Iterable, Iterator, Mapping

import chess

from rules.constants import DECAY_PIECE_TYPE


@dataclass
class FrozenSquares:
    """
    Per-color sets of squares whose occupant is frozen.

    Attributes:
        squares: Mapping from color to the set of that color's frozen squares.
                 Both colors are always present.
    """

    squares: dict[chess.Color, set[chess.Square]] = field(
        default_factory=lambda: {chess.WHITE: set(), chess.BLACK: set()}
    )

    def __bool__(self) -> bool:
        return any(self.squares.values())

    def __contains__(self, square: chess.Square) -> bool:
        return any(square in squares for squares in self.squares.values())

    def for_color(self, color: chess.Color) -> set[chess.Square]:
        return self.squares[color]

    def all(self) -> frozenset[chess.Square]:
        """Every frozen square, both colors."""
        return frozenset(self.squares[chess.WHITE] | self.squares[chess.BLACK])

    def add(self, color: chess.Color, square: chess.Square) -> bool:
        """Freeze a square. Returns False if it was already frozen."""
        if square in self.squares[color]:
            return False
        self.squares[color].add(square)
        return True

    def discard(self, color: chess.Color, square: chess.Square) -> None:
        self.squares[color].discard(square)

    def clear(self) -> None:
        for squares in self.squares.values():
            squares.clear()

    def revalidate(
        self, board: chess.Board, piece_type: chess.PieceType = DECAY_PIECE_TYPE
    ) -> None:
        """
        Drop every square that no longer holds a frozen-able piece.

        A square stays frozen only while it is occupied by a piece of
        `piece_type` and of the color that owns the entry. Anything else
        (an empty square after a capture, or a different occupant) is
        evicted.

        Args:
            board:      The current position.
            piece_type: The decaying piece type.
        """
        for color, squares in self.squares.items():
            expected = chess.Piece(piece_type, color)
            stale = {sq for sq in squares if board.piece_at(sq) != expected}
            squares.difference_update(stale)


@dataclass(frozen=True)
class MoveOutcome:
    """
    Result of RulesAdapter.apply_move().

    Attributes:
        accepted:    True if the move was legal and applied.
        board:       Resulting position (the untouched input when rejected).
        move:        The move that was applied, promotion included.
        san:         Standard algebraic notation of the move.
        moved_piece: The piece that moved, as it was before the move. A pawn
                     that promotes is reported as a pawn.
        captured:    The captured piece, or None.
    """

    accepted: bool
    board: chess.Board
    move: chess.Move | None = None
    san: str | None = None
    moved_piece: chess.Piece | None = None
    captured: chess.Piece | None = None


def shadow_board(
    board: chess.Board, frozen: Iterable[chess.Square]
) -> tuple[chess.Board, dict[chess.Square, chess.Piece]]:
    """
    Build the shadow board: a copy of `board` with the frozen pieces lifted.

    Args:
        board:  The real position. Not modified.
        frozen: Squares to lift. Empty squares are skipped.

    Returns:
        (shadow, lifted) where lifted maps each lifted square to its piece,
        ready to be restored after a move.
    """
    shadow = board.copy()
    lifted: dict[chess.Square, chess.Piece] = {}
    for square in frozen:
        piece = shadow.piece_at(square)
        if piece is not None:
            lifted[square] = piece
            shadow.remove_piece_at(square)
    return shadow, lifted


class RulesAdapter:
    """
    Legality oracle for decay chess.

    Wraps python-chess and applies the freeze overlay described in the module
    docstring. The adapter shares the session's FrozenSquares object; the
    only mutation it performs on it is evicting a frozen piece that gets
    captured.

    Attributes:
        frozen: The session's frozen squares.
    """

    def __init__(self, frozen: FrozenSquares | None = None) -> None:
        self.frozen: FrozenSquares = frozen if frozen is not None else FrozenSquares()

    def legal_moves(self, board: chess.Board) -> list[chess.Move]:
        """Every move apply_move() would accept for the side to move."""
        shadow, lifted = shadow_board(board, self.frozen.all())
        return list(self._overlay_moves(board, shadow, lifted))

    def legal_targets(self, board: chess.Board, square: chess.Square) -> set[chess.Square]:
        """
        Destination squares reachable by the piece on `square`.

        With nothing frozen this is plain python-chess move generation. With
        frozen pieces on the board, targets are computed on the shadow board,
        so frozen pieces neither block nor pin, and never move themselves.
        The mover's own frozen pieces are still solid ground: you cannot land
        on your own piece.

        Args:
            board:  The current position.
            square: Origin square. Only the side to move has targets.

        Returns:
            Set of destination squares (promotion variants collapse to one).
        """
        if not self.frozen:
            return {m.to_square for m in board.legal_moves if m.from_square == square}

        if square in self.frozen:
            return set()

        shadow, lifted = shadow_board(board, self.frozen.all())
        return {
            m.to_square
            for m in self._overlay_moves(board, shadow, lifted)
            if m.from_square == square
        }

    def apply_move(
        self,
        board: chess.Board,
        from_square: chess.Square,
        to_square: chess.Square,
        promotion: chess.PieceType | None = None,
    ) -> MoveOutcome:
        """
        Validate and apply a move with the strip → move → restore overlay.

        A pawn reaching the last rank without an explicit promotion piece is
        promoted to a queen. A promoted queen is a brand-new piece as far as
        decay goes; it carries no timer state from anything before it.

        Castling needs every square between king and rook free on the real
        board, so a frozen piece anywhere on that path forbids it.

        Args:
            board:       The current position. Not modified.
            from_square: Origin square.
            to_square:   Destination square.
            promotion:   Promotion piece type, if any.

        Returns:
            A MoveOutcome. Rejected outcomes carry the input board unchanged.
        """
        rejected = MoveOutcome(accepted=False, board=board)
        mover = board.turn

        if from_square in self.frozen:
            return rejected
        if to_square in self.frozen.for_color(mover):
            return rejected

        shadow, lifted = shadow_board(board, self.frozen.all())
        moved_piece = shadow.piece_at(from_square)
        if moved_piece is None or moved_piece.color != mover:
            return rejected

        if (
            promotion is None
            and moved_piece.piece_type == chess.PAWN
            and chess.square_rank(to_square) in (0, 7)
        ):
            promotion = chess.QUEEN

        move = chess.Move(from_square, to_square, promotion=promotion)
        if not shadow.is_legal(move):
            return rejected
        if shadow.is_castling(move) and _castling_blocked(move, lifted):
            return rejected

        if shadow.is_en_passant(move):
            captured = chess.Piece(chess.PAWN, not mover)
        else:
            # Looked up on the real board: a frozen enemy piece is capturable.
            captured = board.piece_at(to_square)
        san = shadow.san(move)
        shadow.push(move)

        for square, piece in lifted.items():
            if square != to_square:
                shadow.set_piece_at(square, piece)

        if to_square in self.frozen.for_color(not mover):
            self.frozen.discard(not mover, to_square)

        return MoveOutcome(
            accepted=True,
            board=shadow,
            move=move,
            san=san,
            moved_piece=moved_piece,
            captured=captured,
        )

    def outcome(
        self, board: chess.Board, seen: Mapping[str, int] | None = None
    ) -> chess.Outcome | None:
        """
        Terminal-condition check, in fixed order.

        1. checkmate  — side to move has no move apply_move() would accept
                        and is in check; the side that just moved wins
        2. stalemate  — no acceptable move, not in check
        3. draw       — insufficient material, fifty-move rule, or
                        threefold repetition

        Everything except repetition is judged on the shadow board (a frozen
        queen neither gives check nor counts as material). python-chess
        forgets its move stack whenever pieces are placed by hand, so the
        caller keeps its own tally of positions for the repetition check.

        Args:
            board: The position to judge.
            seen:  Occurrences per position_key(), this position included.
                   Without it, repetition falls back to the board's own
                   move stack.

        Returns:
            A chess.Outcome, or None if the game goes on.
        """
        shadow, lifted = shadow_board(board, self.frozen.all())
        if not any(True for _ in self._overlay_moves(board, shadow, lifted)):
            if shadow.is_check():
                return chess.Outcome(chess.Termination.CHECKMATE, winner=not shadow.turn)
            return chess.Outcome(chess.Termination.STALEMATE, winner=None)
        if shadow.is_insufficient_material():
            return chess.Outcome(chess.Termination.INSUFFICIENT_MATERIAL, winner=None)
        if shadow.is_fifty_moves():
            return chess.Outcome(chess.Termination.FIFTY_MOVES, winner=None)
        if seen is not None:
            repeated = seen.get(position_key(board), 0) >= 3
        else:
            repeated = board.is_repetition(3)
        if repeated:
            return chess.Outcome(chess.Termination.THREEFOLD_REPETITION, winner=None)
        return None

    def _overlay_moves(
        self,
        board: chess.Board,
        shadow: chess.Board,
        lifted: dict[chess.Square, chess.Piece],
    ) -> Iterator[chess.Move]:
        """Shadow-board legal moves minus the ones the overlay forbids."""
        own_frozen = self.frozen.for_color(board.turn)
        for move in shadow.legal_moves:
            if move.to_square in own_frozen:
                continue
            if lifted and shadow.is_castling(move) and _castling_blocked(move, lifted):
                continue
            yield move


def position_key(board: chess.Board) -> str:
    """
    Identity of a position for repetition: placement, side to move,
    castling rights and a capturable en passant square.
    """
    return " ".join(board.fen().split()[:4])


def _castling_blocked(move: chess.Move, lifted: Iterable[chess.Square]) -> bool:
    """True if a lifted piece stands between the castling king and its rook."""
    rank = chess.square_rank(move.from_square)
    kingside = chess.square_file(move.to_square) > chess.square_file(move.from_square)
    rook = chess.square(7 if kingside else 0, rank)
    path = chess.SquareSet(chess.between(move.from_square, rook))
    return any(square in path for square in lifted)

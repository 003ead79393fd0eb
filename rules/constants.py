"""
Decay-chess constants: timers, clocks, evaluation thresholds, and delays.

Every number the session engine depends on is defined here so that no other
module introduces a magic number. The pydantic SessionConfig in
session/models.py uses these as its defaults; tests import them directly.

Time values are integer milliseconds throughout. The session clock is driven
by wall-clock deltas, so these values are budgets, not tick counts.
"""

import chess

# ---------------------------------------------------------------------------
# Decay variant
# ---------------------------------------------------------------------------
# Only one piece type decays in this variant. The first move of that piece
# starts its timer; each further move buys back a small increment, capped at
# the full duration so a queen can never bank more than one full timer.

DECAY_PIECE_TYPE: chess.PieceType = chess.QUEEN
DECAY_TIME_MS: int = 25_000       # Full timer for a freshly moved queen
DECAY_INCREMENT_MS: int = 2_000   # Added per further queen move, capped

# ---------------------------------------------------------------------------
# Clocks
# ---------------------------------------------------------------------------
# MAIN_CLOCK_MS is the per-color game clock (3:00, no increment). Reaching
# zero ends the game on time regardless of anything else in flight.
# TICK_INTERVAL_MS is how often the decay clock thread samples wall time.

MAIN_CLOCK_MS: int = 180_000
TICK_INTERVAL_MS: int = 250

# ---------------------------------------------------------------------------
# Evaluation thresholds (pawns, from the human player's perspective)
# ---------------------------------------------------------------------------

EVAL_WARNING_THRESHOLD: float = -0.8
EVAL_COLLAPSE_THRESHOLD: float = -4.5
EVAL_EXCELLENT_THRESHOLD: float = 0.5

# Mate scores are mapped onto a saturating centipawn magnitude so that the
# rest of the pipeline only ever handles one kind of number.
MATE_SCORE_CP: int = 10_000

# ---------------------------------------------------------------------------
# Engine search
# ---------------------------------------------------------------------------
# Info lines shallower than MIN_INFO_DEPTH are too noisy to act on; they make
# the evaluation flicker between statuses while the engine warms up.

DEFAULT_SEARCH_DEPTH: int = 12
MIN_SEARCH_DEPTH: int = 1
MAX_SEARCH_DEPTH: int = 30
MIN_INFO_DEPTH: int = 8

# Reference color: the engine's side-to-move scores are normalized to this
# color before any player-specific re-signing.
REFERENCE_COLOR: chess.Color = chess.WHITE

# ---------------------------------------------------------------------------
# Delays
# ---------------------------------------------------------------------------

GAME_OVER_GRACE_MS: int = 3_000   # Terminal status shown before auto-end
COLLAPSE_GRACE_MS: int = 1_200    # Collapsed status shown before auto-end
BOT_MOVE_DELAY_MS: int = 600      # Bot "thinks" at least this long
HANDSHAKE_TIMEOUT_MS: int = 5_000
HANDSHAKE_RETRY_MS: int = 2_000   # Minimum gap between re-handshake attempts

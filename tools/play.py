#!/usr/bin/env python3
"""
Play a decay-chess session against a UCI engine in the terminal.

Wires the whole stack together the way a host app would: a GameSession, an
EvaluationClient over a UciChannel to the engine binary, the EngineService
that feeds replies back, and the DecayClock thread that ticks the clocks and
pumps the service.

Usage: python3 tools/play.py [--engine stockfish] [--fen FEN] [--color black]
                             [--depth 12] [--clock 180] [--no-decay]

At the prompt, type a move in UCI notation ("e2e4", "e7e8q"), or one of:
    moves <square>   list legal destinations for a piece
    restart          start over from the same position
    resign           give up
    quit             leave
"""
import argparse
import logging
import os
import sys
import time

_REPO_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if _REPO_ROOT not in sys.path:
    sys.path.insert(0, _REPO_ROOT)

import chess

from interface.channel import UciChannel
from interface.client import EvaluationClient
from interface.service import EngineService
from session.clock import DecayClock
from session.models import PLAYING_STATUSES, SessionConfig
from session.scheduler import ThreadScheduler
from session.state import GameSession

_log = logging.getLogger("play")


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Play decay chess against a UCI engine.")
    parser.add_argument("--engine", default="stockfish", help="engine command line")
    parser.add_argument("--fen", default=chess.STARTING_FEN, help="starting position")
    parser.add_argument("--color", choices=["white", "black"], default="white")
    parser.add_argument("--depth", type=int, default=12, help="engine search depth")
    parser.add_argument("--clock", type=int, default=180, help="seconds per side, 0 for untimed")
    parser.add_argument("--no-decay", action="store_true", help="play standard chess")
    return parser.parse_args(argv)


def render(session: GameSession) -> str:
    """Board, clocks, decay timers and evaluation as a block of text."""
    lines = [str(session.board), ""]
    clocks = session.clocks
    timers = session.decay_timers
    frozen = session.frozen_squares
    for color in (chess.WHITE, chess.BLACK):
        name = chess.COLOR_NAMES[color].capitalize()
        clock = clocks[color]
        clock_text = "--:--" if clock is None else f"{clock // 60000}:{clock // 1000 % 60:02d}"
        timer = timers[color]
        if timer.frozen:
            queen = "frozen"
        elif timer.active:
            queen = f"{-(-timer.remaining_ms // 1000)}s"
        else:
            queen = "-"
        frozen_text = ",".join(sorted(frozen[color])) or "-"
        lines.append(f"{name:<6} clock {clock_text}  queen {queen:<7} frozen {frozen_text}")

    evaluation = session.evaluation
    if evaluation is not None:
        lines.append(
            f"Eval {evaluation.score_pawns:+.2f} ({evaluation.status}) depth {evaluation.depth}"
        )
    lines.append(f"Status: {session.status}")
    if session.game_over_message:
        lines.append(session.game_over_message)
    return "\n".join(lines)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(level=logging.INFO, stream=sys.stderr)

    config = SessionConfig(
        decay_enabled=not args.no_decay,
        search_depth=args.depth,
        main_clock_ms=args.clock * 1000,
    )
    scheduler = ThreadScheduler()
    session = GameSession(config, scheduler)
    service = EngineService(session, EvaluationClient(UciChannel(args.engine)), scheduler)
    clock = DecayClock(session)
    clock.after_tick.append(service.pump)

    if not service.start():
        _log.warning("Engine %r not ready; will keep retrying", args.engine)

    color = chess.WHITE if args.color == "white" else chess.BLACK
    session.start_session(args.fen, color)
    clock.start()

    try:
        while True:
            # Wait out the engine's turn.
            while (
                session.status in PLAYING_STATUSES
                and not session.is_player_turn
                and session.engine_ready
            ):
                time.sleep(0.1)

            print(render(session))
            if session.status not in PLAYING_STATUSES:
                command = input("restart / quit> ").strip()
            else:
                command = input("move> ").strip()

            if command in ("quit", "exit"):
                break
            if command == "restart":
                session.restart_session()
            elif command == "resign":
                session.resign()
            elif command.startswith("moves "):
                square = command.split()[1]
                print(" ".join(session.get_legal_moves(square)) or "(none)")
            elif len(command) in (4, 5):
                if not session.make_move(command[:2], command[2:4], command[4:] or None):
                    print("Illegal move.")
            elif command:
                print("Type a move like e2e4, or: moves <sq>, restart, resign, quit")
    except (EOFError, KeyboardInterrupt):
        pass
    finally:
        clock.stop()
        session.end_session()
        service.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())

"""
Tests for interface/service.py: the session and the engine client wired
together, with the manual scheduler and the scripted channel standing in for
real time and a real engine.
"""

import chess
import pytest

from interface.client import EvaluationClient
from interface.service import EngineService
from session.models import EvalStatus, SessionStatus
from session.state import GameSession

START = chess.STARTING_FEN
AFTER_E4 = "rnbqkbnr/pppppppp/8/8/4P3/8/PPPP1PPP/RNBQKBNR b KQkq - 0 1"


class FakeTime:
    def __init__(self) -> None:
        self.now = 100.0

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def fake_time() -> FakeTime:
    return FakeTime()


@pytest.fixture
def service(session: GameSession, channel, scheduler, fake_time: FakeTime) -> EngineService:
    svc = EngineService(session, EvaluationClient(channel), scheduler, clock=fake_time)
    assert svc.start()
    return svc


def test_start_marks_engine_ready(service: EngineService, session: GameSession) -> None:
    assert session.engine_ready


def test_start_reports_missing_engine(session: GameSession, make_channel, scheduler) -> None:
    svc = EngineService(session, EvaluationClient(make_channel(fail_open=True)), scheduler)
    assert not svc.start()
    assert not session.engine_ready


def test_pump_requests_evaluation_once(service: EngineService, session: GameSession, channel) -> None:
    session.start_session(START, chess.WHITE)
    service.pump()
    service.pump()
    assert channel.sent.count(f"position fen {START}") == 1
    assert channel.sent.count("go depth 12") == 1


def test_pump_idle_session_requests_nothing(service: EngineService, channel) -> None:
    service.pump()
    assert not any(line.startswith("position") for line in channel.sent)


def test_evaluation_is_normalized_and_resigned(
    service: EngineService, session: GameSession, channel
) -> None:
    """White to move reports -450: good for black, so the black human sees +4.5."""
    session.start_session(START, chess.BLACK)
    service.pump()
    channel.emit("info depth 12 score cp -450 pv e7e5")
    service.pump()

    assert session.evaluation.score_pawns == 4.5
    assert session.evaluation.status == EvalStatus.EXCELLENT
    assert session.status == SessionStatus.ACTIVE
    assert not session.is_evaluating


def test_black_to_move_score_is_flipped_to_white(
    service: EngineService, session: GameSession, channel
) -> None:
    session.start_session(AFTER_E4, chess.BLACK)
    service.pump()
    channel.emit("info depth 12 score cp -100 pv e7e5")
    service.pump()
    # -100 for black to move: black (the human) is worse by one pawn
    assert session.evaluation.score_cp == -100
    assert session.status == SessionStatus.WARNING


def test_shallow_info_is_ignored(service: EngineService, session: GameSession, channel) -> None:
    session.start_session(START, chess.WHITE)
    service.pump()
    channel.emit("info depth 5 score cp -900 pv e2e4")
    service.pump()
    assert session.evaluation is None
    assert session.is_evaluating
    assert session.status == SessionStatus.ACTIVE


def test_collapse_from_engine_score(
    service: EngineService, session: GameSession, channel, scheduler
) -> None:
    session.start_session(START, chess.WHITE)
    service.pump()
    channel.emit("info depth 14 score mate -3 pv e2e4")
    service.pump()
    assert session.status == SessionStatus.COLLAPSED
    scheduler.advance(1_200)
    assert session.status == SessionStatus.ENDED


def test_bestmove_played_after_delay(
    service: EngineService, session: GameSession, channel, scheduler
) -> None:
    session.start_session(START, chess.BLACK)
    service.pump()
    channel.emit("info depth 12 score cp 30 pv e2e4", "bestmove e2e4")
    service.pump()

    scheduler.advance(599)
    assert session.fen == START
    scheduler.advance(1)
    assert session.fen == AFTER_E4
    assert session.move_history[-1].color == chess.WHITE

    # the new position goes out for evaluation on the next pump
    service.pump()
    assert channel.sent[-1] == "go depth 12"
    assert channel.sent[-2] == f"position fen {AFTER_E4}"


def test_bestmove_ignored_on_human_turn(
    service: EngineService, session: GameSession, channel, scheduler
) -> None:
    session.start_session(START, chess.WHITE)
    service.pump()
    channel.emit("bestmove e2e4")
    service.pump()
    assert scheduler.pending == []
    assert session.fen == START


def test_reply_for_left_position_is_dropped(
    service: EngineService, session: GameSession, channel
) -> None:
    session.start_session(START, chess.WHITE)
    service.pump()
    session.make_move("e2", "e4")
    channel.emit("info depth 12 score cp -900 pv e2e4")
    service.pump()

    assert session.evaluation is None
    assert session.status == SessionStatus.ACTIVE
    # the new position was requested, superseding the old search
    assert "stop" in channel.sent
    assert channel.sent[-2] == f"position fen {AFTER_E4}"


def test_restart_on_same_fen_drops_old_bot_move_and_re_requests(
    service: EngineService, session: GameSession, channel, scheduler
) -> None:
    session.start_session(START, chess.BLACK)
    service.pump()
    channel.emit("bestmove e2e4")
    service.pump()
    assert len(scheduler.pending) == 1

    session.restart_session()
    scheduler.advance(600)
    assert session.fen == START
    assert session.move_history == ()

    service.pump()
    assert channel.sent.count(f"position fen {START}") == 2


def test_channel_fault_keeps_session_playable(
    service: EngineService, session: GameSession, channel, fake_time: FakeTime
) -> None:
    session.start_session(START, chess.WHITE)
    service.pump()
    channel.crash()
    service.pump()

    assert not session.engine_ready
    assert session.make_move("e2", "e4")

    # retry is throttled
    fake_time.now += 1.0
    service.pump()
    assert channel.opened == 1
    assert not session.engine_ready

    fake_time.now += 1.0
    service.pump()
    assert channel.opened == 2
    assert session.engine_ready
    assert channel.sent[-2] == f"position fen {AFTER_E4}"


def test_close(service: EngineService, session: GameSession, channel) -> None:
    service.close()
    assert not session.engine_ready
    assert not channel.alive


def test_engine_turn_re_requested_after_crash_mid_search(
    service: EngineService, session: GameSession, channel, fake_time: FakeTime
) -> None:
    """An info line clears the evaluating flag; the engine's move is still owed."""
    session.start_session(START, chess.WHITE)
    service.pump()
    session.make_move("e2", "e4")
    service.pump()

    channel.emit("bestmove d2d4", "info depth 12 score cp 20 pv e7e5")
    channel.crash()
    service.pump()
    assert not session.is_evaluating
    assert not session.engine_ready

    fake_time.now += 2.0
    service.pump()
    assert session.engine_ready
    assert channel.sent[-2] == f"position fen {AFTER_E4}"
    assert channel.sent[-1] == "go depth 12"


def test_rejected_engine_move_is_asked_again_with_search_moves(
    service: EngineService, session: GameSession, channel, scheduler
) -> None:
    session.start_session("3qk3/8/8/8/8/8/8/3QK3 w - - 0 1", chess.WHITE)
    assert session.make_move("e1", "f1")
    assert session.make_bot_move("d8d5")
    assert session.make_move("f1", "g1")
    session.advance_clock(25_000)
    assert session.frozen_squares[chess.BLACK] == frozenset({"d5"})
    fen = session.fen

    service.pump()
    go = channel.sent[-1].split()
    assert go[:4] == ["go", "depth", "12", "searchmoves"]
    assert set(go[4:]) == {"e8e7", "e8f7", "e8f8"}

    # the engine ignores the restriction and moves its frozen queen
    channel.emit("bestmove d5d4")
    service.pump()
    scheduler.advance(600)
    assert session.fen == fen

    service.pump()
    assert channel.sent.count(f"position fen {fen}") == 2

    channel.emit("bestmove e8e7")
    service.pump()
    scheduler.advance(600)
    assert session.move_history[-1].san == "Ke7"
    assert session.is_player_turn

"""
Tests for interface/channel.py over a real child process.

The "engine" is a few lines of Python run with the current interpreter, so no
engine binary is needed.
"""

import sys
import time

import chess
import pytest

from interface.channel import ChannelError, UciChannel
from interface.client import BestMoveEvent, EvaluationClient, InfoEvent

TOY_ENGINE = """
import sys
for line in sys.stdin:
    cmd = line.strip()
    if cmd == "uci":
        print("id name Toy")
        print("uciok", flush=True)
    elif cmd == "isready":
        print("readyok", flush=True)
    elif cmd.startswith("go"):
        print("info depth 8 score cp 12 pv e2e4")
        print("bestmove e2e4", flush=True)
    elif cmd == "quit":
        break
"""


@pytest.fixture
def toy_channel():
    channel = UciChannel([sys.executable, "-c", TOY_ENGINE])
    yield channel
    channel.close()


def _poll_until(client: EvaluationClient, kind: type, timeout: float = 5.0) -> list:
    events: list = []
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        events.extend(client.poll())
        if any(isinstance(e, kind) for e in events):
            return events
        time.sleep(0.01)
    raise AssertionError(f"no {kind.__name__} within {timeout}s")


def test_command_string_is_split() -> None:
    assert UciChannel("stockfish --threads 2").command == ["stockfish", "--threads", "2"]


def test_handshake_and_evaluation_round_trip(toy_channel: UciChannel) -> None:
    client = EvaluationClient(toy_channel)
    assert client.handshake()
    assert toy_channel.alive

    assert client.request(chess.STARTING_FEN)
    events = _poll_until(client, BestMoveEvent)
    assert isinstance(events[0], InfoEvent)
    assert events[0].info.score_cp == 12
    assert events[-1] == BestMoveEvent(chess.STARTING_FEN, "e2e4")


def test_read_times_out_with_none(toy_channel: UciChannel) -> None:
    toy_channel.open()
    assert toy_channel.read(0.05) is None
    assert toy_channel.drain() == []


def test_engine_exit_is_reported(toy_channel: UciChannel) -> None:
    toy_channel.open()
    toy_channel.send("quit")
    with pytest.raises(ChannelError):
        # the reader thread hands over EOF once the process has gone
        while True:
            toy_channel.read(5.0)
    assert not toy_channel.alive
    with pytest.raises(ChannelError):
        toy_channel.send("isready")


def test_missing_binary() -> None:
    channel = UciChannel("definitely-not-a-chess-engine-binary")
    with pytest.raises(ChannelError):
        channel.open()
    assert not channel.alive
    assert not EvaluationClient(channel).handshake()


def test_close_is_idempotent(toy_channel: UciChannel) -> None:
    toy_channel.open()
    toy_channel.close()
    toy_channel.close()
    assert not toy_channel.alive

"""
EvaluationClient: request bookkeeping on top of a UCI channel.

States:
    uninitialized ──handshake()──► ready ──request()──► awaiting
                                     ▲                      │
                                     └──── bestmove ────────┘

Any channel fault drops the client back to uninitialized. It never raises:
the session just stops hearing from the engine until a later handshake()
succeeds.

Deduplication and staleness:
    UCI engines do not echo request ids, so the client keys everything on the
    position it last asked about. request() for the FEN that was just
    requested is a no-op. Asking about a new position while a search is still
    running sends "stop" and remembers that one more bestmove (and the info
    lines before it) belongs to a superseded search; those are discarded as
    they arrive. Every event the client emits is tagged with the FEN it
    answers, so the consumer can drop answers for positions it has since
    left.
"""

import logging
import time
from dataclasses import dataclass
from enum import StrEnum
from typing import Iterable, Protocol

from pydantic import ValidationError

from interface.channel import ChannelError
from interface.uci import EvaluationRequest, UciInfo, parse_bestmove, parse_info
from rules.constants import DEFAULT_SEARCH_DEPTH, HANDSHAKE_TIMEOUT_MS

_log = logging.getLogger(__name__)


class EngineChannel(Protocol):
    @property
    def alive(self) -> bool: ...

    def open(self) -> None: ...

    def send(self, line: str) -> None: ...

    def read(self, timeout: float) -> str | None: ...

    def drain(self) -> list[str]: ...

    def close(self) -> None: ...


class ClientState(StrEnum):
    UNINITIALIZED = "uninitialized"
    READY = "ready"
    AWAITING = "awaiting"


@dataclass(frozen=True)
class InfoEvent:
    """A scored info line for the position `fen`."""

    fen: str
    info: UciInfo


@dataclass(frozen=True)
class BestMoveEvent:
    """The engine's final answer for the position `fen`."""

    fen: str
    move: str


EngineEvent = InfoEvent | BestMoveEvent


class EvaluationClient:
    """
    Stateful evaluation client over an EngineChannel.

    Attributes:
        state:                Current ClientState.
        depth:                Default search depth for requests.
        handshake_timeout_ms: Time allowed for each handshake reply.
    """

    def __init__(
        self,
        channel: EngineChannel,
        depth: int = DEFAULT_SEARCH_DEPTH,
        handshake_timeout_ms: int = HANDSHAKE_TIMEOUT_MS,
    ) -> None:
        self.state = ClientState.UNINITIALIZED
        self.depth = depth
        self.handshake_timeout_ms = handshake_timeout_ms
        self._channel = channel
        self._in_flight: str | None = None
        self._last_requested: str | None = None
        self._superseded = 0

    @property
    def ready(self) -> bool:
        return self.state != ClientState.UNINITIALIZED

    @property
    def in_flight(self) -> str | None:
        """FEN of the search currently running, if any."""
        return self._in_flight

    def handshake(self) -> bool:
        """
        Bring the engine up: (re)launch if needed, then uci/uciok and
        isready/readyok.

        Returns:
            True if the client is now ready.
        """
        try:
            if not self._channel.alive:
                self._channel.open()
            self._channel.send("uci")
            self._await("uciok")
            self._channel.send("isready")
            self._await("readyok")
        except ChannelError as exc:
            _log.warning("Engine handshake failed: %s", exc)
            self._demote()
            return False

        self.state = ClientState.READY
        self._in_flight = None
        self._last_requested = None
        self._superseded = 0
        _log.info("Engine ready")
        return True

    def request(
        self, fen: str, depth: int | None = None, searchmoves: Iterable[str] = ()
    ) -> bool:
        """
        Ask the engine to evaluate `fen`.

        Args:
            fen:         Position to evaluate.
            depth:       Search depth; the client default if None.
            searchmoves: Restrict the engine to these root moves (UCI).

        Returns:
            True if a request was sent. False when not ready, when `fen` was
            the last position requested, or when the request is invalid.
        """
        if self.state == ClientState.UNINITIALIZED:
            return False
        if fen == self._last_requested:
            return False

        try:
            req = EvaluationRequest(
                position=fen,
                depth=depth if depth is not None else self.depth,
                searchmoves=tuple(searchmoves),
            )
        except ValidationError:
            _log.debug("Not evaluating invalid position %r", fen)
            return False

        try:
            if self.state == ClientState.AWAITING:
                self._channel.send("stop")
                self._superseded += 1
            for line in req.to_uci():
                self._channel.send(line)
        except ChannelError as exc:
            _log.warning("Engine request failed: %s", exc)
            self._demote()
            return False

        self._last_requested = fen
        self._in_flight = fen
        self.state = ClientState.AWAITING
        return True

    def forget_position(self) -> None:
        """
        Clear the dedupe marker so the next request() always goes out.

        Needed whenever a new session starts: a fresh game may begin from the
        very FEN that was last evaluated, and without this it would never be
        evaluated and the engine would never move.
        """
        self._last_requested = None

    def poll(self) -> list[EngineEvent]:
        """
        Consume everything the engine has said since the last poll.

        Returns:
            Events for the current search, oldest first. Noise and output
            from superseded searches are dropped.
        """
        if self.state == ClientState.UNINITIALIZED:
            return []

        events: list[EngineEvent] = []
        for line in self._channel.drain():
            if line.startswith("bestmove"):
                if self._superseded:
                    self._superseded -= 1
                    _log.debug("Dropping superseded reply: %s", line)
                    continue
                fen, self._in_flight = self._in_flight, None
                if self.state == ClientState.AWAITING:
                    self.state = ClientState.READY
                move = parse_bestmove(line)
                if fen is not None and move is not None:
                    events.append(BestMoveEvent(fen, move))
                continue

            if self._superseded or self._in_flight is None:
                continue
            info = parse_info(line)
            if info is None:
                continue
            events.append(InfoEvent(self._in_flight, info))

        if not self._channel.alive:
            _log.warning("Engine channel closed")
            self._demote()
        return events

    def close(self) -> None:
        self._channel.close()
        self._demote()

    def _await(self, token: str) -> None:
        deadline = time.monotonic() + self.handshake_timeout_ms / 1000
        while True:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise ChannelError(f"timed out waiting for {token}")
            if self._channel.read(remaining) == token:
                return

    def _demote(self) -> None:
        self.state = ClientState.UNINITIALIZED
        self._in_flight = None
        self._last_requested = None
        self._superseded = 0

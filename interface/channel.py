"""
Subprocess transport to a UCI engine.

The engine runs as a child process with text pipes on stdin and stdout. Each
command line we write is flushed immediately; the engine will not act on a
line still sitting in our buffer.

Reading never blocks the caller. A daemon thread reads the engine's stdout
line by line into a queue (the inbox); callers drain the inbox whenever they
like. When the engine exits or the pipe breaks, the reader enqueues an EOF
marker and the channel reports itself dead from then on.

Only ChannelError escapes this module. The evaluation client catches it and
demotes itself; nothing above the client ever sees a transport failure.
"""

import logging
import queue
import shlex
import subprocess
import threading

_log = logging.getLogger(__name__)

_EOF = object()


class ChannelError(RuntimeError):
    """The engine process is gone, or the pipe to it is broken."""


class UciChannel:
    """
    Line-oriented pipe to one engine process.

    Attributes:
        command: Argument vector used to launch the engine.
    """

    def __init__(self, command: str | list[str] = "stockfish") -> None:
        self.command: list[str] = shlex.split(command) if isinstance(command, str) else list(command)
        self._proc: subprocess.Popen | None = None
        self._reader: threading.Thread | None = None
        self._inbox: queue.Queue = queue.Queue()
        self._eof = False

    @property
    def alive(self) -> bool:
        return self._proc is not None and self._proc.poll() is None and not self._eof

    def open(self) -> None:
        """
        Launch the engine process (closing any previous one first).

        Raises:
            ChannelError: The engine binary could not be started.
        """
        self.close()
        try:
            self._proc = subprocess.Popen(
                self.command,
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                stderr=subprocess.DEVNULL,
                text=True,
                bufsize=1,
            )
        except OSError as exc:
            self._proc = None
            raise ChannelError(f"cannot start engine {self.command!r}: {exc}") from exc

        self._inbox = queue.Queue()
        self._eof = False
        self._reader = threading.Thread(
            target=self._read_loop, args=(self._proc, self._inbox), name="uci-reader", daemon=True
        )
        self._reader.start()
        _log.info("Engine process started: %s", " ".join(self.command))

    def send(self, line: str) -> None:
        """
        Write one command line and flush.

        Raises:
            ChannelError: The process is not running or the pipe is broken.
        """
        if not self.alive or self._proc.stdin is None:
            raise ChannelError("engine is not running")
        try:
            self._proc.stdin.write(line + "\n")
            self._proc.stdin.flush()
        except (OSError, ValueError) as exc:
            self._eof = True
            raise ChannelError(f"write to engine failed: {exc}") from exc

    def read(self, timeout: float) -> str | None:
        """
        Wait up to `timeout` seconds for the next line.

        Returns:
            The line, or None on timeout.

        Raises:
            ChannelError: The engine's output has ended.
        """
        if self._eof:
            raise ChannelError("engine output closed")
        try:
            item = self._inbox.get(timeout=timeout)
        except queue.Empty:
            return None
        if item is _EOF:
            self._eof = True
            raise ChannelError("engine output closed")
        return item

    def drain(self) -> list[str]:
        """Every line received so far, without waiting."""
        lines: list[str] = []
        while not self._eof:
            try:
                item = self._inbox.get_nowait()
            except queue.Empty:
                break
            if item is _EOF:
                self._eof = True
                break
            lines.append(item)
        return lines

    def close(self) -> None:
        """Ask the engine to quit, then make sure it is gone."""
        proc, self._proc = self._proc, None
        if proc is None:
            return
        try:
            if proc.poll() is None and proc.stdin is not None:
                proc.stdin.write("quit\n")
                proc.stdin.flush()
            proc.wait(timeout=2)
        except (OSError, ValueError, subprocess.TimeoutExpired):
            proc.kill()
            proc.wait(timeout=2)
        self._eof = True

    @staticmethod
    def _read_loop(proc: subprocess.Popen, inbox: queue.Queue) -> None:
        try:
            for raw_line in proc.stdout:
                line = raw_line.strip()
                if line:
                    inbox.put(line)
        except (OSError, ValueError) as exc:
            _log.debug("engine reader stopped: %s", exc)
        finally:
            inbox.put(_EOF)

"""Task output streams and the in-memory buffer used for quiet runs."""

from __future__ import annotations

import io
import threading
from dataclasses import dataclass
from enum import Enum
from typing import TextIO


@dataclass(frozen=True, slots=True)
class Output:
    """Writers a task communicates through.

    ``primary`` carries the information a task is expected to produce;
    ``message`` carries status information such as logs and error messages.
    """

    primary: TextIO
    message: TextIO

    @classmethod
    def single(cls, stream: TextIO) -> Output:
        return cls(primary=stream, message=stream)

    def write_message(self, msg: str, *args: object) -> None:
        """Write one line to the message writer. ``args`` are %-formatted into ``msg``."""
        line = msg % args if args else msg
        self.message.write(line + "\n")


class Stream(str, Enum):
    PRIMARY = "primary"
    MESSAGE = "message"


@dataclass(frozen=True, slots=True)
class BufferedEntry:
    stream: Stream
    payload: str


class BufferedOutput:
    """Stores everything written to its :class:`Output` in memory.

    Writes may come from several threads; each one becomes a separate entry.
    :meth:`write_to` reproduces the same sequence of writes, on the same
    streams, to another :class:`Output`.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._entries: list[BufferedEntry] = []

    def output(self) -> Output:
        return Output(
            primary=_BufferedWriter(self, Stream.PRIMARY),
            message=_BufferedWriter(self, Stream.MESSAGE),
        )

    @property
    def entries(self) -> tuple[BufferedEntry, ...]:
        with self._lock:
            return tuple(self._entries)

    def write_to(self, other: Output) -> None:
        """Replay the buffered writes into ``other``. The buffer is left intact."""
        for entry in self.entries:
            target = other.primary if entry.stream is Stream.PRIMARY else other.message
            target.write(entry.payload)
        other.primary.flush()
        if other.message is not other.primary:
            other.message.flush()

    def _append(self, entry: BufferedEntry) -> None:
        with self._lock:
            self._entries.append(entry)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


class _BufferedWriter(io.TextIOBase):
    def __init__(self, buffer: BufferedOutput, stream: Stream) -> None:
        super().__init__()
        self._buffer = buffer
        self._stream = stream

    def writable(self) -> bool:
        return True

    def write(self, s: str) -> int:
        if not isinstance(s, str):
            raise TypeError(f"write() argument must be str, not {type(s).__name__}")
        self._buffer._append(BufferedEntry(stream=self._stream, payload=s))
        return len(s)

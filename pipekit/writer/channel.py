"""
Message writer channels: Sinks that carry messages to the launcher.

Durability guarantees:
- Every write is serialized before any byte reaches the sink, so a message
  that cannot be encoded leaves the sink untouched
- Every write is flushed before write_message() returns
- FileChannel: append + flush (+ fsync), a killed process leaves a valid
  prefix of complete lines
- AtomicFileChannel: temp file + os.replace(), readers only ever see
  complete files
"""

from __future__ import annotations

import os
import sys
import uuid
from abc import ABC, abstractmethod
from pathlib import Path
from typing import TextIO

from pipekit.errors import ChannelOpenError, UsageError, WriteError
from pipekit.messages import PipesMessage, encode_message


class MessageWriterChannel(ABC):
    """
    A sink for messages, exclusively owned by one session.

    Subclasses implement _write_line() and _release(); the base class
    handles encoding and the closed state.
    """

    def __init__(self) -> None:
        self._closed = False

    @property
    def closed(self) -> bool:
        """True once close() has been called."""
        return self._closed

    def write_message(self, message: PipesMessage) -> None:
        """
        Write one message as a JSON line and flush it.

        Raises:
            UsageError: If the channel is closed.
            WriteError: If the message cannot be serialized or written.
        """
        if self._closed:
            raise UsageError(
                f"Cannot write {message.method.value} message: channel is closed"
            )
        line = encode_message(message) + "\n"
        try:
            self._write_line(line)
        except OSError as e:
            raise WriteError(f"Failed to write {message.method.value} message: {e}") from e

    def close(self) -> None:
        """Release the underlying handle. Idempotent."""
        if self._closed:
            return
        self._closed = True
        try:
            self._release()
        except OSError as e:
            raise WriteError(f"Failed to close channel: {e}") from e

    @abstractmethod
    def _write_line(self, line: str) -> None:
        """Write and flush one newline-terminated line."""

    @abstractmethod
    def _release(self) -> None:
        """Release the underlying handle."""


class FileChannel(MessageWriterChannel):
    """Appends messages to a file, one line each."""

    def __init__(self, path: str | Path, fsync: bool = True) -> None:
        """
        Open *path* for appending.

        Args:
            path: The messages file. Created if missing; its directory must exist.
            fsync: Whether to fsync after each message.

        Raises:
            ChannelOpenError: If the file cannot be opened for appending.
        """
        super().__init__()
        self._path = Path(path)
        self._fsync = fsync
        try:
            self._file: TextIO = open(self._path, "a", encoding="utf-8")
        except OSError as e:
            raise ChannelOpenError(f"Cannot open messages file {self._path}: {e}") from e

    @property
    def path(self) -> Path:
        return self._path

    def _write_line(self, line: str) -> None:
        self._file.write(line)
        self._file.flush()
        if self._fsync:
            os.fsync(self._file.fileno())

    def _release(self) -> None:
        self._file.close()

    def __repr__(self) -> str:
        return f"FileChannel(path={str(self._path)!r})"


class AtomicFileChannel(MessageWriterChannel):
    """
    Maintains a messages file that is replaced atomically on every write.

    The lines written so far are kept so each replacement carries the full
    sequence.
    """

    def __init__(self, path: str | Path, fsync: bool = True) -> None:
        """
        Create (or truncate) *path* atomically.

        Raises:
            ChannelOpenError: If the target directory is not writable.
        """
        super().__init__()
        self._path = Path(path)
        self._fsync = fsync
        self._lines: list[str] = []
        try:
            self._replace()
        except OSError as e:
            raise ChannelOpenError(f"Cannot create messages file {self._path}: {e}") from e

    @property
    def path(self) -> Path:
        return self._path

    def _write_line(self, line: str) -> None:
        self._lines.append(line)
        try:
            self._replace()
        except OSError:
            # Keep in-memory state in step with the file on disk
            self._lines.pop()
            raise

    def _replace(self) -> None:
        tmp = self._path.with_name(f".{self._path.name}.tmp.{uuid.uuid4().hex[:8]}")
        try:
            with open(tmp, "w", encoding="utf-8") as f:
                f.writelines(self._lines)
                f.flush()
                if self._fsync:
                    os.fsync(f.fileno())
            os.replace(tmp, self._path)
        finally:
            if tmp.exists():
                tmp.unlink()

    def _release(self) -> None:
        self._lines = []

    def __repr__(self) -> str:
        return f"AtomicFileChannel(path={str(self._path)!r})"


class StreamChannel(MessageWriterChannel):
    """Writes messages to stdout or stderr."""

    STREAMS = ("stdout", "stderr")

    def __init__(self, stream: str) -> None:
        """
        Args:
            stream: ``"stdout"`` or ``"stderr"`` (case-insensitive).

        Raises:
            ChannelOpenError: If *stream* names neither.
        """
        super().__init__()
        name = stream.lower()
        if name not in self.STREAMS:
            raise ChannelOpenError(
                f"Invalid stream {stream!r} for stdio channel. "
                f"Valid streams: {', '.join(self.STREAMS)}"
            )
        self._stream_name = name

    def _write_line(self, line: str) -> None:
        # Resolved per write so redirected streams are honored
        stream: TextIO = getattr(sys, self._stream_name)
        stream.write(line)
        stream.flush()

    def _release(self) -> None:
        # The process owns the standard streams
        pass

    def __repr__(self) -> str:
        return f"StreamChannel(stream={self._stream_name!r})"

"""
MessageWriter: Turn messages params into an open channel.

The writer is a strategy selected at session init. Subclasses decide which
channel the params describe; writing and closing are shared.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod

from pipekit.config import ATOMIC_KEY, ATOMIC_PATH_KEY, PATH_KEY, STDIO_KEY, PipesConfig
from pipekit.errors import ChannelOpenError
from pipekit.messages import PipesMessage
from pipekit.params import Params
from pipekit.writer.channel import (
    AtomicFileChannel,
    FileChannel,
    MessageWriterChannel,
    StreamChannel,
)

logger = logging.getLogger(__name__)


class MessageWriter(ABC):
    """
    Abstract base for message writers.

    Implementations must provide open(); write() and close() delegate to
    the channel.
    """

    @abstractmethod
    def open(self, params: Params) -> MessageWriterChannel:
        """
        Open the channel described by the messages params.

        Args:
            params: Decoded messages params.

        Returns:
            An open channel.

        Raises:
            ChannelOpenError: If the params describe no usable sink.
        """

    def write(self, channel: MessageWriterChannel, message: PipesMessage) -> None:
        """
        Write one message to the channel.

        Raises:
            UsageError: If the channel is closed.
            WriteError: If the write fails.
        """
        channel.write_message(message)

    def close(
        self,
        channel: MessageWriterChannel,
        exception: BaseException | None = None,
    ) -> None:
        """
        Write the closed sentinel as the final message and release the channel.

        The channel is released even if the sentinel write fails. Closing an
        already-closed channel is a no-op.

        Args:
            channel: The channel to close.
            exception: The exception that ended the session, if any.
        """
        if channel.closed:
            return
        try:
            channel.write_message(PipesMessage.closed(exception))
        finally:
            channel.close()
            logger.debug(f"Closed {channel!r}")


class DefaultMessageWriter(MessageWriter):
    """
    Writer supporting file, atomic-file and stdio sinks.

    Params shapes:
        {"path": "/tmp/msgs.jsonl"}                   -> FileChannel (append)
        {"path": "/tmp/msgs.jsonl", "atomic": true}   -> AtomicFileChannel
        {"atomic_path": "/tmp/msgs.jsonl"}            -> AtomicFileChannel
        {"stdio": "stdout"}                           -> StreamChannel
    """

    def __init__(self, config: PipesConfig | None = None) -> None:
        self._config = config or PipesConfig()

    def open(self, params: Params) -> MessageWriterChannel:
        channel: MessageWriterChannel
        if ATOMIC_PATH_KEY in params:
            channel = AtomicFileChannel(
                self._require_str(params, ATOMIC_PATH_KEY), fsync=self._config.fsync
            )
        elif PATH_KEY in params:
            path = self._require_str(params, PATH_KEY)
            if params.get(ATOMIC_KEY, False):
                channel = AtomicFileChannel(path, fsync=self._config.fsync)
            else:
                channel = FileChannel(path, fsync=self._config.fsync)
        elif STDIO_KEY in params:
            channel = StreamChannel(self._require_str(params, STDIO_KEY))
        else:
            raise ChannelOpenError(
                f"No way to write messages: params must contain one of "
                f"{PATH_KEY!r}, {ATOMIC_PATH_KEY!r}, {STDIO_KEY!r}; "
                f"got keys: {sorted(params)}"
            )

        logger.debug(f"Opened {channel!r}")
        return channel

    @staticmethod
    def _require_str(params: Params, key: str) -> str:
        value = params[key]
        if not isinstance(value, str) or not value:
            raise ChannelOpenError(f"Messages param {key!r} must be a non-empty string")
        return value

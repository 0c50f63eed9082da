"""
Writer module: Channels and the writers that open them.

- MessageWriter / DefaultMessageWriter: params -> open channel
- MessageWriterChannel: an exclusively owned, flushed-per-message sink
"""

from pipekit.writer.base import DefaultMessageWriter, MessageWriter
from pipekit.writer.channel import (
    AtomicFileChannel,
    FileChannel,
    MessageWriterChannel,
    StreamChannel,
)

__all__ = [
    "MessageWriter",
    "DefaultMessageWriter",
    "MessageWriterChannel",
    "FileChannel",
    "AtomicFileChannel",
    "StreamChannel",
]

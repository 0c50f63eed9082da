"""
pipekit: Client side of the Pipes protocol.

A process launched by an orchestrator reads its run context from the
environment and reports events back through a messages file, with no
network connection:

    launcher: env vars (context params, messages params) -> spawn process
    process:  init() -> Context + channel -> report_*/log -> closed
    launcher: tail messages file -> event stream

Everything else is plug-ins: params loaders, context loaders and message
writers are injected at init().

Example:
    import pipekit

    with pipekit.init() as session:
        context = session.context
        rows = process(context.partition_key)
        session.report_asset_materialization(metadata={"rows": rows})
        session.report_asset_check("rows_positive", passed=rows > 0)
"""

__version__ = "0.1.0"

# Config
from pipekit.config import CONTEXT_ENV_VAR, MESSAGES_ENV_VAR, PipesConfig

# Context
from pipekit.context import Context, ContextLoader, DefaultContextLoader

# Display
from pipekit.display import display_messages

# Errors
from pipekit.errors import (
    ChannelOpenError,
    ConfigError,
    ContextDecodeError,
    ParamsError,
    PipesError,
    UsageError,
    WriteError,
)

# Messages
from pipekit.messages import (
    AssetCheckSeverity,
    LogLevel,
    MessageMethod,
    PipesMessage,
    read_messages,
)

# Params
from pipekit.params import (
    EnvVarParamsLoader,
    MappingParamsLoader,
    ParamsLoader,
    decode_params,
    encode_params,
)

# Session
from pipekit.session import PipesLogHandler, Session, init

# Writers
from pipekit.writer import (
    AtomicFileChannel,
    DefaultMessageWriter,
    FileChannel,
    MessageWriter,
    MessageWriterChannel,
    StreamChannel,
)

__all__ = [
    # Version
    "__version__",
    # Session
    "init",
    "Session",
    "PipesLogHandler",
    # Context
    "Context",
    "ContextLoader",
    "DefaultContextLoader",
    # Params
    "ParamsLoader",
    "EnvVarParamsLoader",
    "MappingParamsLoader",
    "encode_params",
    "decode_params",
    # Messages
    "PipesMessage",
    "MessageMethod",
    "AssetCheckSeverity",
    "LogLevel",
    "read_messages",
    # Writers
    "MessageWriter",
    "DefaultMessageWriter",
    "MessageWriterChannel",
    "FileChannel",
    "AtomicFileChannel",
    "StreamChannel",
    # Config
    "PipesConfig",
    "CONTEXT_ENV_VAR",
    "MESSAGES_ENV_VAR",
    # Errors
    "PipesError",
    "ParamsError",
    "ContextDecodeError",
    "ChannelOpenError",
    "ConfigError",
    "WriteError",
    "UsageError",
    # Display
    "display_messages",
]

"""
Session: The facade user code reports through.

Lifecycle:

    Uninitialized --init()--> Opened --close()--> Closed

- init() loads params, then the context, then opens the channel; the first
  failure propagates and nothing is registered
- At most one session is active per process; init() while one is active
  raises UsageError
- close() writes the closed sentinel exactly once; further reporting raises
  UsageError and writes nothing
- Used as a context manager, the session is closed on every exit path
- Outside a context manager, an uncaught exception or interpreter exit
  closes a session that is still open

Example:
    import pipekit

    with pipekit.init() as session:
        session.log("info", f"Processing run {session.context.run_id}")
        session.report_asset_materialization(metadata={"rows": 42})
        session.report_asset_check("not_empty", passed=True)
"""

from __future__ import annotations

import atexit
import logging
import sys
import threading
from typing import Any

from pipekit.config import PipesConfig
from pipekit.context import Context, ContextLoader, DefaultContextLoader
from pipekit.errors import PipesError, UsageError
from pipekit.messages import AssetCheckSeverity, LogLevel, PipesMessage
from pipekit.params import EnvVarParamsLoader, ParamsLoader
from pipekit.writer import DefaultMessageWriter, MessageWriter, MessageWriterChannel

logger = logging.getLogger(__name__)

# Process-scoped state: the one active session, guarded by _lock
_lock = threading.Lock()
_active_session: Session | None = None

# The hook that was installed before ours, called after closing
_previous_excepthook = None


class Session:
    """
    An open reporting session.

    Created by init(). Holds the immutable Context and the exclusively
    owned channel, and mediates every message written to it.
    """

    def __init__(
        self,
        context: Context,
        channel: MessageWriterChannel,
        message_writer: MessageWriter,
    ) -> None:
        self._context = context
        self._channel = channel
        self._writer = message_writer
        self._closed = False
        self._materialized: set[str] = set()
        self._logger: logging.Logger | None = None
        self._log_handler: PipesLogHandler | None = None

    @property
    def context(self) -> Context:
        """The run context supplied by the launcher."""
        return self._context

    @property
    def is_closed(self) -> bool:
        return self._closed

    @property
    def logger(self) -> logging.Logger:
        """
        A stdlib logger whose records are forwarded to the launcher.

        Records below DEBUG are dropped. The logger does not propagate, so
        records are not duplicated by root handlers.
        """
        if self._logger is None:
            self._logger = logging.getLogger(f"pipekit.run.{self._context.run_id[:8]}")
            self._logger.setLevel(logging.DEBUG)
            self._logger.propagate = False
            self._log_handler = PipesLogHandler(self)
            self._logger.addHandler(self._log_handler)
        return self._logger

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    def report_asset_materialization(
        self,
        asset_key: str | None = None,
        metadata: dict[str, Any] | None = None,
        data_version: str | None = None,
    ) -> None:
        """
        Report that an asset was materialized.

        Args:
            asset_key: The asset. Defaults to the context's single asset key.
            metadata: JSON-compatible metadata about the materialization.
            data_version: Version identifier of the produced data.

        Raises:
            UsageError: If the session is closed, the asset key cannot be
                resolved, or the asset was already reported.
            WriteError: If the channel write fails.
        """
        self._check_open("report_asset_materialization")
        key = self._resolve_asset_key(asset_key)
        if key in self._materialized:
            raise UsageError(
                f"Asset {key!r} was already reported as materialized in this session"
            )
        self._check_metadata(metadata)
        if data_version is not None and not isinstance(data_version, str):
            raise UsageError("data_version must be a string")

        self._writer.write(
            self._channel,
            PipesMessage.materialization(key, metadata=metadata, data_version=data_version),
        )
        self._materialized.add(key)

    def report_asset_check(
        self,
        check_name: str,
        asset_key: str | None = None,
        *,
        passed: bool,
        severity: AssetCheckSeverity | str = AssetCheckSeverity.ERROR,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        """
        Report the result of an asset check.

        Args:
            check_name: Name of the check.
            asset_key: The checked asset. Defaults to the context's single asset key.
            passed: Whether the check passed. Keyword-only.
            severity: Severity if the check failed.
            metadata: JSON-compatible metadata about the check.

        Raises:
            UsageError: If the session is closed or an argument is invalid.
            WriteError: If the channel write fails.
        """
        self._check_open("report_asset_check")
        if not isinstance(check_name, str) or not check_name:
            raise UsageError("check_name must be a non-empty string")
        if not isinstance(passed, bool):
            raise UsageError(f"passed must be a bool, got {type(passed).__name__}")
        key = self._resolve_asset_key(asset_key)
        try:
            severity = AssetCheckSeverity(severity)
        except ValueError:
            raise UsageError(
                f"Invalid severity {severity!r}. "
                f"Valid severities: {', '.join(s.value for s in AssetCheckSeverity)}"
            ) from None
        self._check_metadata(metadata)

        self._writer.write(
            self._channel,
            PipesMessage.asset_check(
                key, check_name, passed, severity=severity, metadata=metadata
            ),
        )

    def log(self, level: LogLevel | str | int, text: str) -> None:
        """
        Send a log line to the launcher.

        Args:
            level: A LogLevel, a level name, or a stdlib logging level.
            text: The message.

        Raises:
            UsageError: If the session is closed or the level is invalid.
            WriteError: If the channel write fails.
        """
        self._check_open("log")
        self._writer.write(self._channel, PipesMessage.log(level, str(text)))

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def close(self, exception: BaseException | None = None) -> None:
        """
        Write the closed sentinel and release the channel. Idempotent.

        The session is terminal and unregistered even if the sentinel write
        fails; the failure is raised.

        Args:
            exception: The exception that ended the session, if any.
        """
        if self._closed:
            return
        self._closed = True
        atexit.unregister(self._close_at_exit)
        try:
            self._writer.close(self._channel, exception)
        finally:
            if self._logger is not None and self._log_handler is not None:
                self._logger.removeHandler(self._log_handler)
            _release(self)
            logger.debug(f"Session for run {self._context.run_id} closed")

    def __enter__(self) -> Session:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        if exc_val is None:
            self.close()
            return

        # A clean sys.exit() is a normal completion
        if isinstance(exc_val, SystemExit) and exc_val.code in (0, None):
            exc_val = None

        try:
            self.close(exception=exc_val)
        except PipesError:
            # The in-flight exception takes precedence over a failed sentinel
            logger.exception("Failed to write closed message while handling an exception")

    def _close_at_exit(self) -> None:
        if self._closed:
            return
        try:
            self.close()
        except PipesError:
            logger.exception("Failed to write closed message at interpreter exit")

    def __repr__(self) -> str:
        state = "closed" if self._closed else "open"
        return f"Session(run_id={self._context.run_id!r}, channel={self._channel!r}, {state})"

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _check_open(self, operation: str) -> None:
        if self._closed:
            raise UsageError(f"Cannot call {operation}() after the session was closed")

    def _resolve_asset_key(self, asset_key: str | None) -> str:
        if asset_key is None:
            return self._context.asset_key
        if not isinstance(asset_key, str) or not asset_key:
            raise UsageError("asset_key must be a non-empty string")
        if self._context.asset_keys and asset_key not in self._context.asset_keys:
            raise UsageError(
                f"Asset {asset_key!r} is not one of this run's asset keys: "
                f"{', '.join(self._context.asset_keys)}"
            )
        return asset_key

    @staticmethod
    def _check_metadata(metadata: Any) -> None:
        if metadata is not None and not isinstance(metadata, dict):
            raise UsageError(f"metadata must be a dict, got {type(metadata).__name__}")


class PipesLogHandler(logging.Handler):
    """
    Logging handler that forwards records to a session's log().

    Example:
        logging.getLogger("mylib").addHandler(PipesLogHandler(session))
    """

    def __init__(self, session: Session, level: int = logging.NOTSET) -> None:
        super().__init__(level)
        self._session = session

    def emit(self, record: logging.LogRecord) -> None:
        try:
            self._session.log(record.levelno, self.format(record))
        except Exception:
            self.handleError(record)


# ---------------------------------------------------------------------------
# Process-scoped entry points
# ---------------------------------------------------------------------------


def init(
    params_loader: ParamsLoader | None = None,
    context_loader: ContextLoader | None = None,
    message_writer: MessageWriter | None = None,
    config: PipesConfig | None = None,
) -> Session:
    """
    Open the process's session.

    Loads params, then the context, then opens the channel. The session is
    registered only once all three succeeded.

    Args:
        params_loader: Defaults to EnvVarParamsLoader.
        context_loader: Defaults to DefaultContextLoader.
        message_writer: Defaults to DefaultMessageWriter.
        config: Defaults to PipesConfig.load().

    Returns:
        The open Session. Pass it explicitly to code that reports.

    Raises:
        UsageError: If a session is already active.
        ConfigError: If a config file is unreadable or invalid.
        ParamsError: If params are missing or undecodable.
        ContextDecodeError: If the context cannot be loaded.
        ChannelOpenError: If the channel cannot be opened.
    """
    global _active_session

    with _lock:
        if _active_session is not None:
            raise UsageError(
                "A pipes session is already active in this process; "
                "close it before calling init() again"
            )

        if config is None:
            config = PipesConfig.load()
        params_loader = params_loader or EnvVarParamsLoader(config=config)
        context_loader = context_loader or DefaultContextLoader()
        message_writer = message_writer or DefaultMessageWriter(config=config)

        context_params = params_loader.load_context_params()
        messages_params = params_loader.load_messages_params()
        context = context_loader.load_context(context_params)
        channel = message_writer.open(messages_params)

        session = Session(context, channel, message_writer)
        _active_session = session
        atexit.register(session._close_at_exit)
        _install_excepthook()

    logger.debug(f"Session for run {context.run_id} opened on {channel!r}")
    return session


def _release(session: Session) -> None:
    global _active_session

    with _lock:
        if _active_session is session:
            _active_session = None


def _install_excepthook() -> None:
    global _previous_excepthook

    if sys.excepthook is not _excepthook:
        _previous_excepthook = sys.excepthook
        sys.excepthook = _excepthook


def _excepthook(exc_type, exc_val, exc_tb) -> None:
    # Runs before atexit handlers, so the sentinel carries the exception
    session = _active_session
    if session is not None and not session.is_closed:
        try:
            session.close(exception=exc_val)
        except PipesError:
            logger.exception("Failed to write closed message for uncaught exception")
    hook = _previous_excepthook or sys.__excepthook__
    hook(exc_type, exc_val, exc_tb)

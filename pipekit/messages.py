"""
Messages: The wire format sent back to the launcher.

Each message is one compact JSON object on its own line:

    {"method": "report_asset_materialization", "params": {...}}
    {"method": "report_asset_check", "params": {...}}
    {"method": "log", "params": {...}}
    {"method": "closed", "params": {}}

Ordering guarantees:
- Messages appear in the order they were reported
- ``closed`` appears exactly once, as the last line
- A reader may stop at a torn trailing line; every earlier line is complete
"""

from __future__ import annotations

import json
import logging
import traceback
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

from pipekit.errors import UsageError, WriteError

logger = logging.getLogger(__name__)


class MessageMethod(str, Enum):
    """Kinds of messages on the wire."""

    REPORT_ASSET_MATERIALIZATION = "report_asset_materialization"
    REPORT_ASSET_CHECK = "report_asset_check"
    LOG = "log"
    CLOSED = "closed"


class AssetCheckSeverity(str, Enum):
    """Severity attached to asset check results."""

    WARN = "WARN"
    ERROR = "ERROR"


class LogLevel(str, Enum):
    """Levels accepted by Session.log()."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"

    @classmethod
    def coerce(cls, level: LogLevel | str | int) -> LogLevel:
        """
        Normalize a level given as an enum, a name, or a stdlib logging int.

        Integer levels between the named ones round down (e.g. 25 -> INFO).

        Raises:
            UsageError: If *level* is an unknown name or an unsupported type.
        """
        if isinstance(level, cls):
            return level
        if isinstance(level, bool):
            raise UsageError(f"Invalid log level: {level!r}")
        if isinstance(level, int):
            for threshold, member in _INT_LEVELS:
                if level >= threshold:
                    return member
            return cls.DEBUG
        if isinstance(level, str):
            name = level.strip().upper()
            if name == "WARN":
                name = "WARNING"
            try:
                return cls(name)
            except ValueError:
                raise UsageError(
                    f"Invalid log level {level!r}. "
                    f"Valid levels: {', '.join(m.value for m in cls)}"
                ) from None
        raise UsageError(f"Invalid log level type: {type(level).__name__}")


_INT_LEVELS = (
    (logging.CRITICAL, LogLevel.CRITICAL),
    (logging.ERROR, LogLevel.ERROR),
    (logging.WARNING, LogLevel.WARNING),
    (logging.INFO, LogLevel.INFO),
)


@dataclass(frozen=True)
class PipesMessage:
    """
    A single message sent to the launcher.

    Attributes:
        method: The message kind.
        params: Method-specific payload (JSON-compatible).
    """

    method: MessageMethod
    params: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def materialization(
        cls,
        asset_key: str,
        metadata: dict[str, Any] | None = None,
        data_version: str | None = None,
    ) -> PipesMessage:
        """Create a report_asset_materialization message."""
        return cls(
            method=MessageMethod.REPORT_ASSET_MATERIALIZATION,
            params={
                "asset_key": asset_key,
                "metadata": dict(metadata or {}),
                "data_version": data_version,
            },
        )

    @classmethod
    def asset_check(
        cls,
        asset_key: str,
        check_name: str,
        passed: bool,
        severity: AssetCheckSeverity = AssetCheckSeverity.ERROR,
        metadata: dict[str, Any] | None = None,
    ) -> PipesMessage:
        """Create a report_asset_check message."""
        return cls(
            method=MessageMethod.REPORT_ASSET_CHECK,
            params={
                "asset_key": asset_key,
                "check_name": check_name,
                "passed": passed,
                "severity": AssetCheckSeverity(severity).value,
                "metadata": dict(metadata or {}),
            },
        )

    @classmethod
    def log(cls, level: LogLevel | str | int, message: str) -> PipesMessage:
        """Create a log message."""
        return cls(
            method=MessageMethod.LOG,
            params={"level": LogLevel.coerce(level).value, "message": message},
        )

    @classmethod
    def closed(cls, exception: BaseException | None = None) -> PipesMessage:
        """
        Create the closed sentinel.

        If *exception* is given, its name, message and stack travel with the
        sentinel so the launcher can report why the process stopped.
        """
        params: dict[str, Any] = {}
        if exception is not None:
            params["exception"] = {
                "name": type(exception).__name__,
                "message": str(exception),
                "stack": traceback.format_exception(
                    type(exception), exception, exception.__traceback__
                ),
            }
        return cls(method=MessageMethod.CLOSED, params=params)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the wire dictionary."""
        return {"method": self.method.value, "params": self.params}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PipesMessage:
        """Create from a wire dictionary."""
        return cls(
            method=MessageMethod(data["method"]),
            params=dict(data.get("params") or {}),
        )


def _encode_default(obj: Any) -> Any:
    # Read-only mappings, e.g. values taken from Context.extras
    if isinstance(obj, Mapping):
        return dict(obj)
    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


def encode_message(message: PipesMessage) -> str:
    """
    Encode a message as a single JSON line (without the trailing newline).

    Read-only mappings are encoded as objects.

    Raises:
        WriteError: If the params are not JSON-serializable (including NaN/Inf).
    """
    try:
        return json.dumps(
            message.to_dict(),
            separators=(",", ":"),
            allow_nan=False,
            default=_encode_default,
        )
    except (TypeError, ValueError) as e:
        raise WriteError(
            f"Cannot serialize {message.method.value} message: {e}"
        ) from e


def decode_message(line: str) -> PipesMessage:
    """
    Decode one wire line.

    Raises:
        ValueError: If the line is not a valid message.
    """
    data = json.loads(line)
    if not isinstance(data, dict) or "method" not in data:
        raise ValueError(f"Not a pipes message: {line!r}")
    return PipesMessage.from_dict(data)


def read_messages(path: str | Path) -> Iterator[PipesMessage]:
    """
    Read messages from a messages file, as a launcher tailing it would.

    A trailing line without a newline is a write in progress (or one torn by
    a killed process) and is skipped if it does not parse.

    Args:
        path: The messages file.

    Yields:
        Messages in file order.

    Raises:
        ValueError: If a complete line is not a valid message.
    """
    with open(path, encoding="utf-8") as f:
        for line in f:
            if not line.endswith("\n"):
                try:
                    message = decode_message(line)
                except ValueError:
                    logger.debug(f"Skipping incomplete trailing line in {path}")
                    return
                yield message
                return
            if line.strip():
                yield decode_message(line)

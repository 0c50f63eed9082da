"""
Exception taxonomy for pipekit.

Every loader and writer failure surfaces as one of these types. Lower-level
exceptions (OSError, JSONDecodeError, zlib.error, ...) are chained as the
``__cause__`` so the original failure stays observable.
"""

from __future__ import annotations


class PipesError(Exception):
    """Base class for all pipekit errors."""

    pass


class ParamsError(PipesError):
    """Raised when a bootstrap parameter is missing or cannot be decoded."""

    pass


class ContextDecodeError(PipesError):
    """Raised when context JSON is malformed or fails schema validation."""

    pass


class ChannelOpenError(PipesError):
    """Raised when the message sink cannot be opened for writing."""

    pass


class WriteError(PipesError):
    """Raised when a message cannot be serialized or written to its channel."""

    pass


class UsageError(PipesError):
    """Raised on API misuse: double init, or reporting on a closed session."""

    pass


class ConfigError(PipesError):
    """Raised when a .pipekit.toml file cannot be read or is invalid."""

    pass

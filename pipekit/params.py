"""
ParamsLoader: Locate and decode bootstrap parameters.

The launcher injects two opaque blobs into the process environment:
context params and messages params. Each blob is a JSON object that was
zlib-compressed and then base64-encoded:

    JSON object -> zlib.compress -> base64  (launcher)
    base64 -> zlib.decompress -> JSON object  (this module)

Decoded params are returned as read-only mappings.
"""

from __future__ import annotations

import base64
import binascii
import json
import logging
import os
import zlib
from collections.abc import Mapping
from types import MappingProxyType
from typing import Any, Protocol

from pipekit.config import PipesConfig
from pipekit.errors import ParamsError

logger = logging.getLogger(__name__)

# Opaque, immutable mapping of decoded params
Params = Mapping[str, Any]


def encode_params(params: Mapping[str, Any]) -> str:
    """
    Encode params the way a launcher does.

    Args:
        params: A JSON-serializable mapping.

    Returns:
        The base64 text of the zlib-compressed JSON.
    """
    raw = json.dumps(dict(params)).encode("utf-8")
    return base64.b64encode(zlib.compress(raw)).decode("ascii")


def decode_params(value: str) -> Params:
    """
    Decode a params blob.

    Args:
        value: Base64 text of zlib-compressed JSON.

    Returns:
        A read-only mapping.

    Raises:
        ParamsError: If the value is not base64, not zlib data, not UTF-8
            JSON, or does not decode to a JSON object.
    """
    try:
        compressed = base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ParamsError(f"Params value is not valid base64: {e}") from e

    try:
        raw = zlib.decompress(compressed)
    except zlib.error as e:
        raise ParamsError(f"Params value is not valid zlib data: {e}") from e

    try:
        data = json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise ParamsError(f"Params value is not valid JSON: {e}") from e

    if not isinstance(data, dict):
        raise ParamsError(
            f"Params must decode to a JSON object, got {type(data).__name__}"
        )

    return MappingProxyType(data)


class ParamsLoader(Protocol):
    """
    Protocol for params loaders.

    A ParamsLoader tells whether the process was launched under the protocol
    and produces the two decoded params mappings.
    """

    def is_active(self) -> bool:
        """Return True if the launcher supplied the protocol's parameters."""
        ...

    def load_context_params(self) -> Params:
        """
        Load and decode the context params.

        Raises:
            ParamsError: If the parameter is missing or undecodable.
        """
        ...

    def load_messages_params(self) -> Params:
        """
        Load and decode the messages params.

        Raises:
            ParamsError: If the parameter is missing or undecodable.
        """
        ...


class MappingParamsLoader:
    """
    Params loader reading encoded values from an arbitrary mapping.

    Useful when the launcher's variables were captured elsewhere, and in tests.
    """

    def __init__(
        self,
        mapping: Mapping[str, str],
        config: PipesConfig | None = None,
    ) -> None:
        """
        Initialize the loader.

        Args:
            mapping: Variable name -> encoded value.
            config: Supplies the variable names. Defaults to PipesConfig().
        """
        self._mapping = mapping
        self._config = config or PipesConfig()

    def is_active(self) -> bool:
        return bool(self._mapping.get(self._config.context_env_var)) and bool(
            self._mapping.get(self._config.messages_env_var)
        )

    def load_context_params(self) -> Params:
        return self._load(self._config.context_env_var)

    def load_messages_params(self) -> Params:
        return self._load(self._config.messages_env_var)

    def _load(self, name: str) -> Params:
        value = self._mapping.get(name)
        if not value:
            raise ParamsError(f"Required parameter {name} is not set")

        try:
            params = decode_params(value)
        except ParamsError as e:
            raise ParamsError(f"Could not decode {name}: {e}") from e

        logger.debug(f"Decoded {name} with keys {sorted(params)}")
        return params


class EnvVarParamsLoader(MappingParamsLoader):
    """
    Default params loader reading from the process environment.

    The environment is read at call time, so variables set after
    construction are observed.
    """

    def __init__(
        self,
        env: Mapping[str, str] | None = None,
        config: PipesConfig | None = None,
    ) -> None:
        """
        Initialize the loader.

        Args:
            env: Environment mapping. Defaults to ``os.environ``.
            config: Supplies the variable names. Defaults to PipesConfig().
        """
        super().__init__(os.environ if env is None else env, config)

"""
Context: Immutable run metadata supplied by the launcher.

Context params arrive in one of two shapes:

- Inline: ``{"context": {...}}`` carries the context JSON directly.
- Path: ``{"path": "/tmp/ctx.json"}`` points at a JSON file to read.

Either way the decoded object must match:

    {
        "run_id": str,                 # required
        "asset_keys": [str, ...],      # required, may be empty
        "job_name": str | null,
        "partition_key": str | null,
        "code_version_tag": str | null,
        "retry_number": int,
        "extras": {str: any}
    }

Construction is all-or-nothing: every check runs before a Context exists.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any, Protocol

from pipekit.config import CONTEXT_KEY, PATH_KEY
from pipekit.errors import ContextDecodeError, UsageError
from pipekit.params import Params

logger = logging.getLogger(__name__)

_OPTIONAL_STR_FIELDS = ("job_name", "partition_key", "code_version_tag")


def freeze(value: Any) -> Any:
    """Return a deep, read-only copy of a JSON value (dicts -> mappingproxy, lists -> tuples)."""
    if isinstance(value, Mapping):
        return MappingProxyType({k: freeze(v) for k, v in value.items()})
    if isinstance(value, (list, tuple)):
        return tuple(freeze(v) for v in value)
    return value


def thaw(value: Any) -> Any:
    """Inverse of freeze(): a fresh, mutable JSON value."""
    if isinstance(value, Mapping):
        return {k: thaw(v) for k, v in value.items()}
    if isinstance(value, tuple):
        return [thaw(v) for v in value]
    return value


@dataclass(frozen=True)
class Context:
    """
    Run metadata for the current invocation.

    Attributes:
        run_id: Identifier of the launcher's run.
        asset_keys: Asset keys this invocation is responsible for.
        job_name: Name of the launching job, if any.
        partition_key: Partition this invocation covers, if partitioned.
        code_version_tag: Code version the launcher associated with the run.
        retry_number: Zero-based retry attempt of the launching step.
        extras: Free-form launcher-supplied data, deeply read-only: objects
            are mappingproxies and arrays are tuples.
    """

    run_id: str
    asset_keys: tuple[str, ...]
    job_name: str | None = None
    partition_key: str | None = None
    code_version_tag: str | None = None
    retry_number: int = 0
    extras: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))

    @classmethod
    def from_dict(cls, data: Any) -> Context:
        """
        Validate decoded context JSON and build a Context.

        Raises:
            ContextDecodeError: If *data* is not an object, a required field
                is missing, or any field has the wrong type.
        """
        if not isinstance(data, dict):
            raise ContextDecodeError(
                f"Context must be a JSON object, got {type(data).__name__}"
            )

        run_id = data.get("run_id")
        if not isinstance(run_id, str) or not run_id:
            raise ContextDecodeError("Context is missing required field 'run_id'")

        asset_keys = data.get("asset_keys")
        if not isinstance(asset_keys, list):
            raise ContextDecodeError(
                "Context is missing required field 'asset_keys' (a list of strings)"
            )
        if not all(isinstance(key, str) for key in asset_keys):
            raise ContextDecodeError("Context field 'asset_keys' must contain only strings")

        for name in _OPTIONAL_STR_FIELDS:
            value = data.get(name)
            if value is not None and not isinstance(value, str):
                raise ContextDecodeError(
                    f"Context field {name!r} must be a string or null, "
                    f"got {type(value).__name__}"
                )

        retry_number = data.get("retry_number", 0)
        # bool is an int subclass
        if not isinstance(retry_number, int) or isinstance(retry_number, bool):
            raise ContextDecodeError("Context field 'retry_number' must be an integer")

        extras = data.get("extras", {})
        if extras is None:
            extras = {}
        if not isinstance(extras, dict):
            raise ContextDecodeError(
                f"Context field 'extras' must be an object, got {type(extras).__name__}"
            )

        return cls(
            run_id=run_id,
            asset_keys=tuple(asset_keys),
            job_name=data.get("job_name"),
            partition_key=data.get("partition_key"),
            code_version_tag=data.get("code_version_tag"),
            retry_number=retry_number,
            extras=freeze(extras),
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the JSON shape this context was loaded from."""
        return {
            "run_id": self.run_id,
            "asset_keys": list(self.asset_keys),
            "job_name": self.job_name,
            "partition_key": self.partition_key,
            "code_version_tag": self.code_version_tag,
            "retry_number": self.retry_number,
            "extras": thaw(self.extras),
        }

    @property
    def is_asset_step(self) -> bool:
        """True if this invocation is responsible for at least one asset."""
        return bool(self.asset_keys)

    @property
    def is_partition_step(self) -> bool:
        """True if the launcher scoped this invocation to a partition."""
        return self.partition_key is not None

    @property
    def asset_key(self) -> str:
        """
        The single asset key of this invocation.

        Raises:
            UsageError: If the context has zero or several asset keys.
        """
        if len(self.asset_keys) != 1:
            raise UsageError(
                f"Context has {len(self.asset_keys)} asset keys; "
                "an explicit asset_key is required"
            )
        return self.asset_keys[0]

    def get_extra(self, key: str) -> Any:
        """
        Return a launcher-supplied extra.

        Raises:
            UsageError: If the launcher did not supply *key*.
        """
        try:
            return self.extras[key]
        except KeyError:
            available = ", ".join(sorted(self.extras)) or "(none)"
            raise UsageError(
                f"No extra {key!r} in context. Available extras: {available}"
            ) from None


class ContextLoader(Protocol):
    """Protocol for context loaders."""

    def load_context(self, params: Params) -> Context:
        """
        Build the Context described by *params*.

        Raises:
            ContextDecodeError: If the context cannot be loaded or validated.
        """
        ...


class DefaultContextLoader:
    """
    Context loader supporting inline and file-path params.

    Inline takes precedence when both keys are present.
    """

    def load_context(self, params: Params) -> Context:
        if CONTEXT_KEY in params:
            data = self._parse_inline(params[CONTEXT_KEY])
            source = "inline params"
        elif PATH_KEY in params:
            path = params[PATH_KEY]
            if not isinstance(path, str) or not path:
                raise ContextDecodeError(
                    f"Context param {PATH_KEY!r} must be a non-empty string"
                )
            data = self._read_file(Path(path))
            source = path
        else:
            raise ContextDecodeError(
                f"Context params must contain {CONTEXT_KEY!r} or {PATH_KEY!r}, "
                f"got keys: {sorted(params)}"
            )

        context = Context.from_dict(data)
        logger.debug(f"Loaded context for run {context.run_id} from {source}")
        return context

    def _parse_inline(self, value: Any) -> Any:
        # Launchers may double-encode the inline context as a JSON string
        if isinstance(value, str):
            try:
                return json.loads(value)
            except json.JSONDecodeError as e:
                raise ContextDecodeError(f"Inline context is not valid JSON: {e}") from e
        return value

    def _read_file(self, path: Path) -> Any:
        try:
            text = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise ContextDecodeError(f"Could not read context file {path}: {e}") from e

        try:
            return json.loads(text)
        except json.JSONDecodeError as e:
            raise ContextDecodeError(f"Context file {path} is not valid JSON: {e}") from e

"""Shared fixtures for pipekit tests."""

from __future__ import annotations

import atexit
import json
import sys
from pathlib import Path

import pytest

import pipekit.session
from pipekit.config import CONTEXT_ENV_VAR, MESSAGES_ENV_VAR
from pipekit.params import encode_params


@pytest.fixture(autouse=True)
def reset_active_session():
    """Ensure no session, exit handler or excepthook leaks between tests."""
    excepthook = sys.excepthook
    yield
    leftover = pipekit.session._active_session
    if leftover is not None:
        atexit.unregister(leftover._close_at_exit)
    pipekit.session._active_session = None
    sys.excepthook = excepthook
    pipekit.session._previous_excepthook = None


@pytest.fixture
def context_file(tmp_path: Path) -> Path:
    path = tmp_path / "ctx.json"
    path.write_text(json.dumps({"run_id": "abc", "asset_keys": ["a"], "extras": {}}))
    return path


@pytest.fixture
def messages_file(tmp_path: Path) -> Path:
    return tmp_path / "msgs.jsonl"


@pytest.fixture
def pipes_env(monkeypatch, context_file: Path, messages_file: Path) -> dict[str, str]:
    """Set the launcher's environment variables for a file-based session."""
    env = {
        CONTEXT_ENV_VAR: encode_params({"path": str(context_file)}),
        MESSAGES_ENV_VAR: encode_params({"path": str(messages_file)}),
    }
    for name, value in env.items():
        monkeypatch.setenv(name, value)
    return env

"""Tests for params decoding and loaders."""

from __future__ import annotations

import base64
import json
import zlib

import pytest

from pipekit.config import CONTEXT_ENV_VAR, MESSAGES_ENV_VAR, PipesConfig
from pipekit.errors import ParamsError
from pipekit.params import (
    EnvVarParamsLoader,
    MappingParamsLoader,
    decode_params,
    encode_params,
)


class TestCodec:
    """Tests for encode_params/decode_params."""

    def test_round_trip(self):
        params = {"path": "/tmp/ctx.json", "nested": {"a": [1, 2.5, None, True]}}
        assert decode_params(encode_params(params)) == params

    def test_round_trip_empty(self):
        assert decode_params(encode_params({})) == {}

    def test_decoded_params_are_read_only(self):
        params = decode_params(encode_params({"path": "/tmp/x"}))
        with pytest.raises(TypeError):
            params["path"] = "/tmp/y"  # type: ignore[index]

    def test_matches_launcher_encoding(self):
        """A blob built by hand the way a launcher does decodes."""
        raw = json.dumps({"path": "/tmp/msgs.jsonl"}).encode()
        value = base64.b64encode(zlib.compress(raw)).decode()
        assert decode_params(value) == {"path": "/tmp/msgs.jsonl"}

    def test_invalid_base64(self):
        with pytest.raises(ParamsError, match="base64"):
            decode_params("not base64!!")

    def test_not_compressed(self):
        value = base64.b64encode(b'{"path": "/tmp/x"}').decode()
        with pytest.raises(ParamsError, match="zlib"):
            decode_params(value)

    def test_not_json(self):
        value = base64.b64encode(zlib.compress(b"{not json")).decode()
        with pytest.raises(ParamsError, match="JSON"):
            decode_params(value)

    def test_not_an_object(self):
        value = base64.b64encode(zlib.compress(b"[1, 2, 3]")).decode()
        with pytest.raises(ParamsError, match="JSON object"):
            decode_params(value)

    def test_error_chains_cause(self):
        with pytest.raises(ParamsError) as exc_info:
            decode_params(base64.b64encode(b"plain").decode())
        assert isinstance(exc_info.value.__cause__, zlib.error)


class TestEnvVarParamsLoader:
    """Tests for the environment-backed loader."""

    def test_is_active_when_both_set(self, monkeypatch):
        monkeypatch.setenv(CONTEXT_ENV_VAR, encode_params({"context": {}}))
        monkeypatch.setenv(MESSAGES_ENV_VAR, encode_params({"path": "/tmp/x"}))
        assert EnvVarParamsLoader().is_active()

    def test_inactive_when_one_missing(self, monkeypatch):
        monkeypatch.setenv(CONTEXT_ENV_VAR, encode_params({"context": {}}))
        monkeypatch.delenv(MESSAGES_ENV_VAR, raising=False)
        assert not EnvVarParamsLoader().is_active()

    def test_inactive_when_empty(self, monkeypatch):
        monkeypatch.setenv(CONTEXT_ENV_VAR, "")
        monkeypatch.setenv(MESSAGES_ENV_VAR, "")
        assert not EnvVarParamsLoader().is_active()

    def test_loads_both_params(self, monkeypatch):
        monkeypatch.setenv(CONTEXT_ENV_VAR, encode_params({"path": "/tmp/ctx.json"}))
        monkeypatch.setenv(MESSAGES_ENV_VAR, encode_params({"path": "/tmp/msgs.jsonl"}))
        loader = EnvVarParamsLoader()
        assert loader.load_context_params() == {"path": "/tmp/ctx.json"}
        assert loader.load_messages_params() == {"path": "/tmp/msgs.jsonl"}

    def test_reads_environment_at_call_time(self, monkeypatch):
        monkeypatch.delenv(CONTEXT_ENV_VAR, raising=False)
        loader = EnvVarParamsLoader()
        monkeypatch.setenv(CONTEXT_ENV_VAR, encode_params({"path": "/late"}))
        assert loader.load_context_params() == {"path": "/late"}

    def test_missing_variable(self, monkeypatch):
        monkeypatch.delenv(CONTEXT_ENV_VAR, raising=False)
        with pytest.raises(ParamsError, match=CONTEXT_ENV_VAR):
            EnvVarParamsLoader().load_context_params()

    def test_undecodable_variable_names_it(self, monkeypatch):
        monkeypatch.setenv(MESSAGES_ENV_VAR, "garbage")
        with pytest.raises(ParamsError, match=MESSAGES_ENV_VAR):
            EnvVarParamsLoader().load_messages_params()

    def test_explicit_env_mapping(self):
        env = {CONTEXT_ENV_VAR: encode_params({"context": {"run_id": "x"}})}
        loader = EnvVarParamsLoader(env=env)
        assert loader.load_context_params() == {"context": {"run_id": "x"}}

    def test_custom_variable_names(self):
        config = PipesConfig(context_env_var="MY_CTX", messages_env_var="MY_MSGS")
        env = {
            "MY_CTX": encode_params({"path": "/c"}),
            "MY_MSGS": encode_params({"path": "/m"}),
        }
        loader = EnvVarParamsLoader(env=env, config=config)
        assert loader.is_active()
        assert loader.load_messages_params() == {"path": "/m"}


class TestMappingParamsLoader:
    def test_loads_from_mapping(self):
        loader = MappingParamsLoader(
            {
                CONTEXT_ENV_VAR: encode_params({"path": "/c"}),
                MESSAGES_ENV_VAR: encode_params({"stdio": "stdout"}),
            }
        )
        assert loader.load_context_params() == {"path": "/c"}
        assert loader.load_messages_params() == {"stdio": "stdout"}

    def test_empty_mapping(self):
        loader = MappingParamsLoader({})
        assert not loader.is_active()
        with pytest.raises(ParamsError):
            loader.load_messages_params()

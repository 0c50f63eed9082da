"""Tests for Context and DefaultContextLoader."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from pipekit.context import Context, DefaultContextLoader
from pipekit.errors import ContextDecodeError, UsageError

FULL_CONTEXT = {
    "run_id": "run-123",
    "asset_keys": ["orders", "customers"],
    "job_name": "nightly",
    "partition_key": "2024-01-01",
    "code_version_tag": "v7",
    "retry_number": 2,
    "extras": {"threshold": 0.5, "nested": {"a": [1, 2]}},
}


class TestContextFromDict:
    """Tests for Context.from_dict validation."""

    def test_full_context(self):
        context = Context.from_dict(FULL_CONTEXT)
        assert context.run_id == "run-123"
        assert context.asset_keys == ("orders", "customers")
        assert context.job_name == "nightly"
        assert context.partition_key == "2024-01-01"
        assert context.code_version_tag == "v7"
        assert context.retry_number == 2
        assert context.extras["threshold"] == 0.5
        assert context.extras["nested"]["a"] == (1, 2)

    def test_minimal_context_defaults(self):
        context = Context.from_dict({"run_id": "abc", "asset_keys": []})
        assert context.asset_keys == ()
        assert context.job_name is None
        assert context.partition_key is None
        assert context.code_version_tag is None
        assert context.retry_number == 0
        assert context.extras == {}

    def test_null_extras(self):
        context = Context.from_dict({"run_id": "abc", "asset_keys": [], "extras": None})
        assert context.extras == {}

    def test_to_dict_round_trip(self):
        assert Context.from_dict(FULL_CONTEXT).to_dict() == FULL_CONTEXT

    @pytest.mark.parametrize(
        "data",
        [
            {"asset_keys": ["a"]},
            {"run_id": "", "asset_keys": ["a"]},
            {"run_id": 7, "asset_keys": ["a"]},
            {"run_id": "abc"},
            {"run_id": "abc", "asset_keys": "a"},
            {"run_id": "abc", "asset_keys": ["a", 1]},
            {"run_id": "abc", "asset_keys": [], "partition_key": 5},
            {"run_id": "abc", "asset_keys": [], "retry_number": "1"},
            {"run_id": "abc", "asset_keys": [], "retry_number": True},
            {"run_id": "abc", "asset_keys": [], "extras": []},
            ["run_id", "abc"],
            None,
        ],
    )
    def test_invalid_context(self, data):
        with pytest.raises(ContextDecodeError):
            Context.from_dict(data)

    def test_context_is_frozen(self):
        context = Context.from_dict(FULL_CONTEXT)
        with pytest.raises(AttributeError):
            context.run_id = "other"  # type: ignore[misc]

    def test_extras_are_read_only(self):
        context = Context.from_dict(FULL_CONTEXT)
        with pytest.raises(TypeError):
            context.extras["threshold"] = 1.0  # type: ignore[index]

    def test_extras_detached_from_source(self):
        data = {"run_id": "abc", "asset_keys": [], "extras": {"k": 1}}
        context = Context.from_dict(data)
        data["extras"]["k"] = 2
        assert context.extras["k"] == 1

    def test_nested_extras_are_read_only(self):
        context = Context.from_dict(
            {"run_id": "abc", "asset_keys": [], "extras": {"n": {"x": 1}, "items": [1]}}
        )
        with pytest.raises(TypeError):
            context.extras["n"]["x"] = 2  # type: ignore[index]
        with pytest.raises(AttributeError):
            context.extras["items"].append(2)  # type: ignore[union-attr]

    def test_nested_extras_detached_from_source(self):
        data = {"run_id": "abc", "asset_keys": [], "extras": {"n": {"x": 1}, "items": [1]}}
        context = Context.from_dict(data)
        data["extras"]["n"]["x"] = 2
        data["extras"]["items"].append(2)
        assert context.extras["n"]["x"] == 1
        assert context.extras["items"] == (1,)

    def test_to_dict_returns_mutable_copy(self):
        context = Context.from_dict(FULL_CONTEXT)
        extras = context.to_dict()["extras"]
        extras["nested"]["a"].append(3)
        assert context.extras["nested"]["a"] == (1, 2)


class TestContextHelpers:
    def test_single_asset_key(self):
        context = Context.from_dict({"run_id": "abc", "asset_keys": ["a"]})
        assert context.asset_key == "a"
        assert context.is_asset_step

    def test_asset_key_requires_exactly_one(self):
        context = Context.from_dict(FULL_CONTEXT)
        with pytest.raises(UsageError, match="2 asset keys"):
            context.asset_key

    def test_no_asset_keys(self):
        context = Context.from_dict({"run_id": "abc", "asset_keys": []})
        assert not context.is_asset_step
        with pytest.raises(UsageError):
            context.asset_key

    def test_is_partition_step(self):
        assert Context.from_dict(FULL_CONTEXT).is_partition_step
        assert not Context.from_dict({"run_id": "a", "asset_keys": []}).is_partition_step

    def test_get_extra(self):
        context = Context.from_dict(FULL_CONTEXT)
        assert context.get_extra("threshold") == 0.5

    def test_get_missing_extra(self):
        context = Context.from_dict(FULL_CONTEXT)
        with pytest.raises(UsageError, match="nested, threshold"):
            context.get_extra("missing")


class TestDefaultContextLoader:
    """Tests for inline and path context params."""

    def test_inline(self):
        context = DefaultContextLoader().load_context({"context": FULL_CONTEXT})
        assert context.run_id == "run-123"

    def test_inline_json_string(self):
        context = DefaultContextLoader().load_context({"context": json.dumps(FULL_CONTEXT)})
        assert context.job_name == "nightly"

    def test_inline_malformed_string(self):
        with pytest.raises(ContextDecodeError, match="not valid JSON"):
            DefaultContextLoader().load_context({"context": "{broken"})

    def test_path(self, tmp_path: Path):
        path = tmp_path / "ctx.json"
        path.write_text(json.dumps({"run_id": "abc", "asset_keys": ["a"], "extras": {}}))
        context = DefaultContextLoader().load_context({"path": str(path)})
        assert context.run_id == "abc"
        assert context.asset_keys == ("a",)
        assert context.extras == {}

    def test_inline_wins_over_path(self, tmp_path: Path):
        context = DefaultContextLoader().load_context(
            {"context": FULL_CONTEXT, "path": str(tmp_path / "missing.json")}
        )
        assert context.run_id == "run-123"

    def test_missing_file(self, tmp_path: Path):
        with pytest.raises(ContextDecodeError, match="Could not read") as exc_info:
            DefaultContextLoader().load_context({"path": str(tmp_path / "nope.json")})
        assert isinstance(exc_info.value.__cause__, FileNotFoundError)

    def test_malformed_file(self, tmp_path: Path):
        path = tmp_path / "ctx.json"
        path.write_text('{"run_id": "abc", "asset_keys": [')
        with pytest.raises(ContextDecodeError, match="not valid JSON"):
            DefaultContextLoader().load_context({"path": str(path)})

    def test_incomplete_file(self, tmp_path: Path):
        path = tmp_path / "ctx.json"
        path.write_text(json.dumps({"run_id": "abc"}))
        with pytest.raises(ContextDecodeError, match="asset_keys"):
            DefaultContextLoader().load_context({"path": str(path)})

    def test_invalid_path_value(self):
        with pytest.raises(ContextDecodeError, match="non-empty string"):
            DefaultContextLoader().load_context({"path": 42})

    def test_unknown_shape(self):
        with pytest.raises(ContextDecodeError, match="must contain"):
            DefaultContextLoader().load_context({"other": 1})

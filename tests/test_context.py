"""Tests for context capture (JSON snapshot of workflow state)."""

import logging
import math

import pytest

from pylocal.bridge.context import (
    DEFAULT_NAMES,
    ContextNames,
    capture_context,
    row_context,
    to_plain,
)


class LazyProxy:
    """Stands in for a host-side accessor object that is not JSON."""

    def __getattr__(self, name):
        if name.startswith("_"):
            raise AttributeError(name)
        return LazyProxy()


class TestToPlain:
    """Tests for the strict JSON round trip."""

    def test_plain_values_survive(self):
        value = {"a": [1, 2.5, "x", None, True], "b": {"c": {}}}
        assert to_plain(value) == value

    def test_returns_a_copy(self):
        value = {"a": [1]}
        plain = to_plain(value)
        plain["a"].append(2)
        assert value == {"a": [1]}

    def test_tuples_become_lists(self):
        assert to_plain({"t": (1, 2)}) == {"t": [1, 2]}

    def test_non_string_keys_are_stringified(self):
        assert to_plain({1: "one"}) == {"1": "one"}

    @pytest.mark.parametrize("value", [
        LazyProxy(),
        {1, 2},
        {"nan": math.nan},
        {"inf": math.inf},
        b"bytes",
    ])
    def test_unserializable_values_are_rejected(self, value):
        assert capture_context(parameter=value) == {}

    def test_circular_structure_is_rejected(self):
        value = []
        value.append(value)
        assert capture_context(parameter=value) == {}


class TestCaptureContext:
    """Tests for capture_context()."""

    def test_fields_use_prefixed_wire_keys(self):
        snapshot = capture_context(
            json={"a": 1},
            binary={"file": {"mimeType": "text/plain"}},
            parameter={"p": 2},
            node={"name": "Code"},
            env={"HOME": "/home/user"},
            item={"json": {"a": 1}},
        )

        assert snapshot == {
            "_item": {"json": {"a": 1}},
            "_json": {"a": 1},
            "_binary": {"file": {"mimeType": "text/plain"}},
            "_parameter": {"p": 2},
            "_node": {"name": "Code"},
            "_env": {"HOME": "/home/user"},
        }

    def test_unsupplied_fields_are_absent(self):
        snapshot = capture_context(json={"a": 1})
        assert snapshot == {"_json": {"a": 1}}

    def test_none_is_kept_as_null(self):
        """Only unsupplied or unserializable fields are dropped; None is valid JSON."""
        snapshot = capture_context(binary=None)
        assert snapshot == {"_binary": None}

    def test_batch_and_per_item_shapes(self):
        rows = [{"json": {"n": 1}}, {"json": {"n": 2}}]

        batch = capture_context(items=rows)
        per_item = capture_context(item=rows[0])

        assert "_items" in batch and "_item" not in batch
        assert "_item" in per_item and "_items" not in per_item

    def test_bad_field_dropped_others_kept(self):
        snapshot = capture_context(
            json={"ok": True},
            parameter={"proxy": LazyProxy()},
            node={"name": "Code"},
        )

        assert "_parameter" not in snapshot
        assert snapshot["_json"] == {"ok": True}
        assert snapshot["_node"] == {"name": "Code"}

    def test_dropped_fields_logged_at_debug(self, caplog):
        with caplog.at_level(logging.DEBUG, logger="pylocal.bridge.context"):
            capture_context(parameter={1, 2}, json={})

        assert "parameter" in caplog.text

    def test_custom_prefix(self):
        names = ContextNames(prefix="ctx_")
        snapshot = capture_context(json={}, items=[], names=names)
        assert set(snapshot) == {"ctx_json", "ctx_items"}


class TestContextNames:

    def test_default_keys(self):
        assert DEFAULT_NAMES.keys() == {
            "items": "_items",
            "item": "_item",
            "json": "_json",
            "binary": "_binary",
            "parameter": "_parameter",
            "node": "_node",
            "env": "_env",
        }

    def test_unknown_field_raises(self):
        with pytest.raises(ValueError, match="Unknown context field"):
            DEFAULT_NAMES.key("credentials")


class TestRowContext:

    def test_json_and_binary(self):
        row = {"json": {"a": 1}, "binary": {"data": {"fileName": "a.txt"}}}
        assert row_context(row) == {"json": {"a": 1}, "binary": {"data": {"fileName": "a.txt"}}}

    def test_no_binary(self):
        assert row_context({"json": {"a": 1}}) == {"json": {"a": 1}}

    def test_missing_json_defaults_to_empty_object(self):
        assert row_context({}) == {"json": {}}

    def test_no_row(self):
        assert row_context(None) == {}

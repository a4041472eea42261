# tests/unit/replace/test_unit_outputs.py — v1
"""Tests for replace/outputs.py — terraform output cache and rendering."""

from __future__ import annotations

import json

import pytest

from infralib_agent.core.errors import ReplacementError
from infralib_agent.replace.outputs import (
    OutputCache,
    output_file_path,
    output_key,
    output_value,
)
from infralib_agent.replace.tags import parse_indexed


class TestPaths:
    def test_output_file_path(self):
        assert output_file_path("dev", "net") == "dev-net/terraform-output.json"

    def test_output_key(self):
        assert output_key("vpc", "private/subnets") == "vpc__private_subnets"


class TestOutputValue:
    def test_string(self):
        assert output_value({"value": "vpc-123"}, parse_indexed("id"), "t") == "vpc-123"

    def test_number_and_bool(self):
        assert output_value({"value": 3}, parse_indexed("n"), "t") == "3"
        assert output_value({"value": True}, parse_indexed("b"), "t") == "true"

    def test_index_into_scalar(self):
        with pytest.raises(ReplacementError, match="not a list"):
            output_value({"value": "x"}, parse_indexed("id[0]"), "t")

    def test_list_joined_with_quotes(self):
        value = {"value": ["a", "b"]}
        assert output_value(value, parse_indexed("l"), "t") == '"a","b"'

    def test_list_single_index_unquoted(self):
        value = {"value": ["a", "b", "c"]}
        assert output_value(value, parse_indexed("l[2]"), "t") == "c"

    def test_list_range(self):
        value = {"value": ["a", "b", "c"]}
        assert output_value(value, parse_indexed("l[0-1]"), "t") == '"a","b"'

    def test_map_as_json(self):
        value = {"value": {"k": "v"}}
        assert output_value(value, parse_indexed("m"), "t") == '{"k":"v"}'


class TestOutputCache:
    @pytest.mark.asyncio
    async def test_reads_once(self, bucket):
        await bucket.put_file(
            "dev-net/terraform-output.json", json.dumps({"vpc__vpc_id": {"value": "vpc-1"}})
        )
        cache = OutputCache(bucket, "dev")
        first = await cache.step_outputs("net")
        await bucket.put_file("dev-net/terraform-output.json", "{}")
        second = await cache.step_outputs("net")
        assert first == second == {"vpc__vpc_id": {"value": "vpc-1"}}

    @pytest.mark.asyncio
    async def test_missing_file(self, bucket):
        assert await OutputCache(bucket, "dev").step_outputs("net") == {}

    @pytest.mark.asyncio
    async def test_broken_file(self, bucket):
        await bucket.put_file("dev-net/terraform-output.json", "{not json")
        with pytest.raises(ReplacementError, match="failed to parse"):
            await OutputCache(bucket, "dev").step_outputs("net")

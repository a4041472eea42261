# tests/unit/replace/test_unit_tags.py — v1
"""Tests for replace/tags.py — tag grammar and indexed addressing."""

from __future__ import annotations

import pytest

from infralib_agent.core.errors import IndexOutOfRangeError, ReplacementError
from infralib_agent.replace.tags import (
    IndexedKey,
    find_tags,
    parse_candidate,
    parse_indexed,
    select_index,
)


class TestFindTags:
    def test_simple(self):
        tags = find_tags("vpc_id = {{ output.net.vpc.vpc_id }}")
        assert len(tags) == 1
        assert tags[0].text == "{{ output.net.vpc.vpc_id }}"
        assert tags[0].candidates[0].type == "output"
        assert tags[0].candidates[0].key == "output.net.vpc.vpc_id"

    def test_several_in_order(self):
        tags = find_tags("{{config.prefix}}-{{ agent.accountId }}")
        assert [t.candidates[0].type for t in tags] == ["config", "agent"]

    def test_chain_with_literal(self):
        tag = find_tags('{{ optout.net.vpc.id | ssm.net.vpc.id | "none" }}')[0]
        assert [c.type for c in tag.candidates] == ["optout", "ssm", ""]
        assert tag.candidates[2].literal == "none"

    def test_escaped(self):
        tag = find_tags("{{ `{{ .Values.name }}` }}")[0]
        assert tag.escaped == "{{ .Values.name }}"
        assert tag.candidates == ()

    def test_two_escapes_on_one_line(self):
        tags = find_tags('x: "{{ `{{ .A }}` }}-{{ `{{ .B }}` }}"')
        assert [t.escaped for t in tags] == ["{{ .A }}", "{{ .B }}"]

    def test_escape_unwraps_one_backtick_pair(self):
        tag = find_tags("{{ ``code`` }}")[0]
        assert tag.escaped == "`code`"

    def test_type_is_lowercased_and_leading_dot_dropped(self):
        candidate = parse_candidate(".Config.prefix")
        assert candidate.type == "config"
        assert candidate.key == "Config.prefix"

    def test_deferred(self):
        assert find_tags("{{ agent.version.net.vpc }}")[0].deferred is True
        assert find_tags("{{ output.a.b.c | agent.accountId }}")[0].deferred is True
        assert find_tags("{{ output.a.b.c }}")[0].deferred is False

    def test_no_type(self):
        with pytest.raises(ReplacementError, match="failed to parse"):
            parse_candidate("justaword")

    def test_plain_text(self):
        assert find_tags("no tags { here }") == []


class TestIndexed:
    def test_plain(self):
        assert parse_indexed("subnets") == IndexedKey("subnets")

    def test_single(self):
        key = parse_indexed("subnets[1]")
        assert (key.name, key.start, key.end) == ("subnets", 1, None)
        assert key.indexed

    def test_range(self):
        key = parse_indexed("subnets[0-2]")
        assert (key.start, key.end) == (0, 2)

    def test_malformed(self):
        with pytest.raises(ReplacementError):
            parse_indexed("subnets[x]")


class TestSelectIndex:
    VALUES = ["a", "b", "c"]

    def test_single(self):
        assert select_index(self.VALUES, parse_indexed("l[1]"), "tag") == "b"

    def test_single_strips_quotes(self):
        assert select_index(['"a"', '"b"'], parse_indexed("l[0]"), "tag") == "a"

    def test_range_inclusive(self):
        assert select_index(self.VALUES, parse_indexed("l[0-1]"), "tag") == "a,b"

    def test_start_out_of_range(self):
        with pytest.raises(IndexOutOfRangeError, match="start index 5"):
            select_index(self.VALUES, parse_indexed("l[5]"), "tag")

    def test_end_out_of_range(self):
        with pytest.raises(IndexOutOfRangeError, match="end index 3"):
            select_index(self.VALUES, parse_indexed("l[1-3]"), "tag")

# src/replace/tags.py — v1
"""Replacement tag grammar.

    {{ `literal` }}                      escaped, unwrapped verbatim
    {{ type.path[.more][idx] | ... }}    candidate chain, first non-empty wins
    {{ output.a.b.c | "fallback" }}      double-quoted literal fallback

Indexes are ``[n]`` for a single element or ``[n-m]`` for an inclusive
range (joined with ",").
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from infralib_agent.core.errors import IndexOutOfRangeError, ReplacementError

TAG_PATTERN = re.compile(r"\{\{\s*((?:`.*?`)|(?:[^{}]+(?:\|[^{}]+)*))\s*\}\}")
INDEX_PATTERN = re.compile(r"([^\[\]]+)(\[(\d+)(-(\d+))?])?")

# Types resolved in the second pass, after phase-1 checksums are taken
DEFERRED_TYPES = frozenset({"agent"})


@dataclass(frozen=True)
class Candidate:
    """One alternative of a chain: either a typed lookup or a literal."""

    type: str = ""
    key: str = ""
    literal: str | None = None

    @property
    def deferred(self) -> bool:
        return self.type in DEFERRED_TYPES


@dataclass(frozen=True)
class Tag:
    """A parsed ``{{ }}`` occurrence."""

    text: str
    candidates: tuple[Candidate, ...] = ()
    escaped: str | None = None

    @property
    def deferred(self) -> bool:
        return any(candidate.deferred for candidate in self.candidates)


@dataclass(frozen=True)
class IndexedKey:
    name: str
    start: int | None = None
    end: int | None = None

    @property
    def indexed(self) -> bool:
        return self.start is not None


def find_tags(content: str) -> list[Tag]:
    """All tags in content, in order of appearance."""
    return [parse_tag(match.group(0), match.group(1)) for match in TAG_PATTERN.finditer(content)]


def parse_tag(text: str, body: str) -> Tag:
    body = body.strip()
    if len(body) >= 2 and body.startswith("`") and body.endswith("`"):
        return Tag(text=text, escaped=body[1:-1])
    candidates = tuple(parse_candidate(part) for part in body.split("|"))
    return Tag(text=text, candidates=candidates)


def parse_candidate(part: str) -> Candidate:
    """Parse one chain element.

    Raises:
        ReplacementError: If the element has no ``type.`` prefix.
    """
    part = part.strip()
    if len(part) >= 2 and part.startswith('"') and part.endswith('"'):
        return Candidate(literal=part[1:-1])
    key = part.lstrip(".")
    if "." not in key:
        raise ReplacementError(f"failed to parse replace tag {part!r}")
    return Candidate(type=key[: key.index(".")].lower(), key=key)


def parse_indexed(part: str) -> IndexedKey:
    match = INDEX_PATTERN.fullmatch(part)
    if match is None:
        raise ReplacementError(f"failed to parse key {part!r}")
    start = int(match.group(3)) if match.group(3) is not None else None
    end = int(match.group(5)) if match.group(5) is not None else None
    return IndexedKey(name=match.group(1), start=start, end=end)


def select_index(values: list[str], key: IndexedKey, tag: str) -> str:
    """Pick the addressed element(s) of a list value.

    Raises:
        IndexOutOfRangeError: If the start or end index is past the end.
    """
    assert key.start is not None
    if key.start + 1 > len(values):
        raise IndexOutOfRangeError(f"start index {key.start} of parameter {tag} is out of range")
    if key.end is None:
        return values[key.start].strip('"')
    if key.end + 1 > len(values):
        raise IndexOutOfRangeError(f"end index {key.end} of parameter {tag} is out of range")
    return ",".join(values[key.start : key.end + 1])

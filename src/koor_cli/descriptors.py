"""Request descriptors and the small argument grammars they are built from."""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Iterable, Sequence
from urllib.parse import quote

# Left literal so comma lists, glob patterns and timestamps read as typed.
QUERY_SAFE_CHARS = ",*:"


@dataclass(frozen=True)
class ResourcePath:
    project: str
    name: str

    def __str__(self) -> str:
        return f"{self.project}/{self.name}"


def parse_resource_path(value: str) -> ResourcePath:
    """Split ``project/name`` on the first slash; a missing slash leaves name empty."""
    project, _, name = value.partition("/")
    return ResourcePath(project=project, name=name)


def tail_after(argv: Sequence[str], words: Sequence[str]) -> list[str]:
    """Return the tokens following the first occurrence of ``words`` in ``argv``."""
    width = len(words)
    for index in range(len(argv) - width + 1):
        if list(argv[index : index + width]) == list(words):
            return list(argv[index + width :])
    return []


def split_leading_id(tokens: Sequence[str]) -> tuple[str | None, list[str]]:
    """Take the first token as a resource id unless it starts an option.

    Any token beginning with ``--`` starts the options tail, so an id can
    never begin with ``--``.
    """
    if tokens and not tokens[0].startswith("--"):
        return tokens[0], list(tokens[1:])
    return None, list(tokens)


def encode_query(params: Iterable[tuple[str, str]]) -> str:
    return "&".join(
        f"{quote(name, safe=QUERY_SAFE_CHARS)}={quote(value, safe=QUERY_SAFE_CHARS)}"
        for name, value in params
    )


def json_object(fields: Iterable[tuple[str, str]]) -> str:
    """Compose a compact JSON object from already-encoded JSON value fragments.

    Lets a caller splice user-supplied JSON text into an envelope without
    re-serialising it, e.g. ``{"topic":"t","data":<payload as typed>}``.
    """
    members = ",".join(f"{json.dumps(name)}:{fragment}" for name, fragment in fields)
    return "{" + members + "}"


def compact_json(value: object) -> str:
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False)


_DECODER = json.JSONDecoder()
_JSON_WHITESPACE = " \t\n\r"


def _skip_whitespace(text: str, index: int) -> int:
    while index < len(text) and text[index] in _JSON_WHITESPACE:
        index += 1
    return index


def _raw_members(
    text: str, opener: str, closer: str, *, keyed: bool
) -> list[tuple[str | None, str]] | None:
    index = _skip_whitespace(text, 0)
    if not text.startswith(opener, index):
        return None
    index = _skip_whitespace(text, index + 1)
    members: list[tuple[str | None, str]] = []
    if text.startswith(closer, index):
        return members if _skip_whitespace(text, index + 1) == len(text) else None
    while True:
        name = None
        try:
            if keyed:
                name, index = _DECODER.raw_decode(text, index)
                if not isinstance(name, str):
                    return None
                index = _skip_whitespace(text, index)
                if not text.startswith(":", index):
                    return None
                index = _skip_whitespace(text, index + 1)
            _, stop = _DECODER.raw_decode(text, index)
        except ValueError:
            return None
        members.append((name, text[index:stop]))
        index = _skip_whitespace(text, stop)
        if text.startswith(",", index):
            index = _skip_whitespace(text, index + 1)
            continue
        if text.startswith(closer, index):
            break
        return None
    return members if _skip_whitespace(text, index + 1) == len(text) else None


def raw_array_items(text: str) -> list[str] | None:
    """Return each element of a JSON array exactly as written, or None if not an array."""
    members = _raw_members(text, "[", "]", keyed=False)
    return None if members is None else [raw for _, raw in members]


def raw_object_members(text: str) -> dict[str, str] | None:
    """Map each key of a JSON object to its value's source text, or None if not an object."""
    members = _raw_members(text, "{", "}", keyed=True)
    return None if members is None else {str(name): raw for name, raw in members}


def flag_position(argv: Sequence[str], flag: str) -> int:
    """Index of the first ``--flag`` or ``--flag=value`` token, ``len(argv)`` if absent."""
    for index, token in enumerate(argv):
        if token == flag or token.startswith(flag + "="):
            return index
    return len(argv)


@dataclass(frozen=True)
class RequestDescriptor:
    method: str
    path: str
    query: tuple[tuple[str, str], ...] = ()
    body: bytes | None = None

    @property
    def target(self) -> str:
        if not self.query:
            return self.path
        return f"{self.path}?{encode_query(self.query)}"


__all__ = [
    "RequestDescriptor",
    "ResourcePath",
    "compact_json",
    "encode_query",
    "flag_position",
    "json_object",
    "parse_resource_path",
    "raw_array_items",
    "raw_object_members",
    "split_leading_id",
    "tail_after",
]

"""Response rendering for koor-cli."""

from __future__ import annotations

import json
from typing import Sequence

PRETTY_FLAG = "--pretty"


def pretty_requested(argv: Sequence[str]) -> bool:
    return PRETTY_FLAG in argv


def format_body(body: bytes, *, pretty: bool) -> str:
    text = body.decode("utf-8", errors="replace")
    if not pretty:
        return text
    try:
        parsed = json.loads(text)
    except ValueError:
        return text
    return json.dumps(parsed, indent=2, ensure_ascii=False) + "\n"


def render_body(body: bytes, *, pretty: bool, stdout) -> None:
    stdout.write(format_body(body, pretty=pretty))
    stdout.flush()


__all__ = ["PRETTY_FLAG", "format_body", "pretty_requested", "render_body"]

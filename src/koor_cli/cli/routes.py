"""Route table mapping simple subcommands to HTTP requests."""

from __future__ import annotations

import argparse
import json
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional

from koor_cli.descriptors import (
    RequestDescriptor,
    compact_json,
    flag_position,
    json_object,
    split_leading_id,
    tail_after,
)
from koor_cli.errors import UsageError

BODY_USAGE = "--file <path> | --data <json>"


def read_body(args: argparse.Namespace, *, usage: str | None = None) -> bytes:
    """Return the payload named by exactly one of ``--file`` or ``--data``."""
    file_path = getattr(args, "file", None)
    data = getattr(args, "data", None)
    if file_path is not None and data is not None:
        raise UsageError("use either --file or --data, not both", usage=usage)
    if file_path is not None:
        return Path(file_path).read_bytes()
    if data is not None:
        return data.encode("utf-8")
    raise UsageError("expected --file <path> or --data <json>", usage=usage)


def parse_json_body(body: bytes, *, what: str, usage: str | None = None) -> object:
    try:
        return json.loads(body.decode("utf-8"))
    except (UnicodeDecodeError, ValueError) as exc:
        raise UsageError(f"{what} is not valid JSON: {exc}", usage=usage) from exc


def _split_list(value: str | None) -> list[str]:
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


@dataclass(frozen=True)
class Param:
    """A query parameter filled from a command-line flag."""

    name: str
    dest: Optional[str] = None
    flag: Optional[str] = None

    @property
    def option(self) -> str:
        return self.flag or f"--{self.name}"


def ordered_query(args: argparse.Namespace, params: tuple[Param, ...]) -> list[tuple[str, str]]:
    """Query pairs for the flags that were given, in the order they were typed."""
    argv = getattr(args, "argv", ())
    query = []
    for param in sorted(params, key=lambda p: flag_position(argv, p.option)):
        value = getattr(args, param.dest or param.name, None)
        if value is not None:
            query.append((param.name, str(value)))
    return query


@dataclass(frozen=True)
class Route:
    method: str
    path: str
    params: tuple[Param, ...] = ()
    fixed: tuple[tuple[str, str], ...] = ()
    payload: bool = False
    usage: Optional[str] = None

    def build(self, args: argparse.Namespace) -> RequestDescriptor:
        path = self.path.format(**vars(args))
        query = list(self.fixed) + ordered_query(args, self.params)
        body = read_body(args, usage=self.usage) if self.payload else None
        return RequestDescriptor(self.method, path, tuple(query), body)


def _state_diff(args: argparse.Namespace) -> RequestDescriptor:
    return RequestDescriptor(
        "GET",
        f"/api/state/{args.key}",
        (("diff", f"{args.v1},{args.v2}"),),
    )


def _events_publish(args: argparse.Namespace) -> RequestDescriptor:
    payload = read_body(args, usage=f"koor-cli events publish <topic> {BODY_USAGE}")
    body = json_object([("topic", json.dumps(args.topic)), ("data", payload.decode("utf-8"))])
    return RequestDescriptor("POST", "/api/events/publish", body=body.encode("utf-8"))


def _rules_import(args: argparse.Namespace) -> RequestDescriptor:
    usage = f"koor-cli rules import {BODY_USAGE}"
    body = read_body(args, usage=usage)
    rules = parse_json_body(body, what="rules payload", usage=usage)
    if not isinstance(rules, list):
        raise UsageError("rules payload must be a JSON array", usage=usage)
    return RequestDescriptor("POST", "/api/rules/import", body=body)


def _webhooks_add(args: argparse.Namespace) -> RequestDescriptor:
    payload: dict[str, object] = {"id": args.id, "url": args.url}
    patterns = _split_list(args.patterns)
    if patterns:
        payload["patterns"] = patterns
    if args.secret:
        payload["secret"] = args.secret
    return RequestDescriptor("POST", "/api/webhooks", body=compact_json(payload).encode("utf-8"))


def _templates_create(args: argparse.Namespace) -> RequestDescriptor:
    usage = f"koor-cli templates create <id> --name <name> {BODY_USAGE}"
    data = read_body(args, usage=usage)
    parse_json_body(data, what="template data", usage=usage)
    body = json_object(
        [
            ("id", json.dumps(args.id)),
            ("name", json.dumps(args.name)),
            ("description", json.dumps(args.description or "")),
            ("kind", json.dumps(args.kind)),
            ("data", data.decode("utf-8")),
            ("tags", compact_json(_split_list(args.tags))),
        ]
    )
    return RequestDescriptor("POST", "/api/templates", body=body.encode("utf-8"))


def _templates_apply(args: argparse.Namespace) -> RequestDescriptor:
    body = compact_json({"project": args.project})
    return RequestDescriptor("POST", f"/api/templates/{args.id}/apply", body=body.encode("utf-8"))


def _metrics_agents(args: argparse.Namespace) -> RequestDescriptor:
    agent_id, _ = split_leading_id(tail_after(args.argv, ("metrics", "agents")))
    path = "/api/metrics/agents"
    if agent_id is not None:
        path += f"/{agent_id}"
    query = ordered_query(args, (Param("instance_id"), Param("period")))
    return RequestDescriptor("GET", path, tuple(query))


def _register(args: argparse.Namespace) -> RequestDescriptor:
    payload = {"name": args.name, "workspace": args.workspace, "intent": args.intent}
    if args.stack:
        payload["stack"] = args.stack
    return RequestDescriptor(
        "POST",
        "/api/instances/register",
        body=compact_json(payload).encode("utf-8"),
    )


RouteBuilder = Callable[[argparse.Namespace], RequestDescriptor]

ROUTES: dict[tuple[str, Optional[str]], Route | RouteBuilder] = {
    ("status", None): Route("GET", "/health"),
    ("state", "list"): Route("GET", "/api/state"),
    ("state", "get"): Route("GET", "/api/state/{key}"),
    ("state", "set"): Route(
        "PUT",
        "/api/state/{key}",
        payload=True,
        usage=f"koor-cli state set <key> {BODY_USAGE}",
    ),
    ("state", "delete"): Route("DELETE", "/api/state/{key}"),
    ("state", "history"): Route(
        "GET",
        "/api/state/{key}",
        params=(Param("limit"),),
        fixed=(("history", "1"),),
    ),
    ("state", "rollback"): Route(
        "POST",
        "/api/state/{key}",
        params=(Param("rollback", dest="version", flag="--version"),),
    ),
    ("state", "diff"): _state_diff,
    ("specs", "list"): Route("GET", "/api/specs/{project}"),
    ("specs", "get"): Route("GET", "/api/specs/{resource}"),
    ("specs", "set"): Route(
        "PUT",
        "/api/specs/{resource}",
        payload=True,
        usage=f"koor-cli specs set <project>/<name> {BODY_USAGE}",
    ),
    ("specs", "delete"): Route("DELETE", "/api/specs/{resource}"),
    ("events", "publish"): _events_publish,
    ("events", "history"): Route(
        "GET",
        "/api/events/history",
        params=(
            Param("last"),
            Param("topic"),
            Param("from", dest="from_time"),
            Param("to", dest="to_time"),
            Param("source"),
        ),
    ),
    ("rules", "import"): _rules_import,
    ("webhooks", "list"): Route("GET", "/api/webhooks"),
    ("webhooks", "add"): _webhooks_add,
    ("webhooks", "delete"): Route("DELETE", "/api/webhooks/{id}"),
    ("webhooks", "test"): Route("POST", "/api/webhooks/{id}/test"),
    ("compliance", "history"): Route(
        "GET",
        "/api/compliance/history",
        params=(Param("instance_id"), Param("limit")),
    ),
    ("compliance", "run"): Route("POST", "/api/compliance/run"),
    ("templates", "list"): Route(
        "GET",
        "/api/templates",
        params=(Param("kind"), Param("tag")),
    ),
    ("templates", "get"): Route("GET", "/api/templates/{id}"),
    ("templates", "create"): _templates_create,
    ("templates", "delete"): Route("DELETE", "/api/templates/{id}"),
    ("templates", "apply"): _templates_apply,
    ("audit", None): Route(
        "GET",
        "/api/audit",
        params=(
            Param("actor"),
            Param("action"),
            Param("from", dest="from_time"),
            Param("to", dest="to_time"),
            Param("limit"),
        ),
    ),
    ("audit", "summary"): Route(
        "GET",
        "/api/audit/summary",
        params=(Param("from", dest="from_time"), Param("to", dest="to_time")),
    ),
    ("metrics", "agents"): _metrics_agents,
    ("instances", "list"): Route(
        "GET",
        "/api/instances",
        params=(
            Param("name"),
            Param("workspace"),
            Param("stack"),
            Param("capability"),
        ),
    ),
    ("instances", "get"): Route("GET", "/api/instances/{id}"),
    ("instances", "stale"): Route("GET", "/api/instances/stale"),
    ("register", None): _register,
    ("activate", None): Route("POST", "/api/instances/{id}/activate"),
}


def build_request(key: tuple[str, Optional[str]], args: argparse.Namespace) -> RequestDescriptor:
    route = ROUTES[key]
    if isinstance(route, Route):
        return route.build(args)
    return route(args)


__all__ = [
    "ROUTES",
    "Param",
    "Route",
    "build_request",
    "ordered_query",
    "parse_json_body",
    "read_body",
]

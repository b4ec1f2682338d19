"""Command-line interface for koor-cli."""

from __future__ import annotations

import argparse
import os
import re
import sys
from importlib.metadata import PackageNotFoundError
from importlib.metadata import version as pkg_version
from pathlib import Path
from typing import Sequence

from koor_cli.cli.backup import run_backup, run_restore
from koor_cli.cli.config import (
    SERVER_ENV_VAR,
    SETTABLE_KEYS,
    TOKEN_ENV_VAR,
    CLIConfig,
    ConfigError,
    load_cli_config,
    save_cli_setting,
)
from koor_cli.cli.contracts import (
    run_contract_get,
    run_contract_set,
    run_contract_test,
    run_contract_validate,
)
from koor_cli.cli.events import run_subscribe
from koor_cli.cli.exit_codes import EXIT_FAILURE, EXIT_INTERRUPTED, EXIT_SUCCESS
from koor_cli.cli.output import format_body, pretty_requested, render_body
from koor_cli.cli.routes import BODY_USAGE, ROUTES, build_request
from koor_cli.cli.usage import USAGE
from koor_cli.client import KoorClient
from koor_cli.descriptors import ResourcePath, parse_resource_path
from koor_cli.errors import KoorCLIError, UsageError

COMMANDS = (
    "config",
    "status",
    "state",
    "specs",
    "contract",
    "events",
    "rules",
    "webhooks",
    "compliance",
    "templates",
    "audit",
    "metrics",
    "instances",
    "register",
    "activate",
    "backup",
    "restore",
)
_HELP_WORDS = ("help", "--help", "-h")
_SWITCHES = ("--pretty", "--poll")
_VERSION_WORDS = ("version", "--version")
_RESOURCE_METAVAR = "<project>/<name>"

_SENSITIVE_FIELDS = (
    "token",
    "secret",
    "authorization",
    "password",
    "api_key",
)


class _ArgumentParser(argparse.ArgumentParser):
    def error(self, message: str):  # type: ignore[override]
        raise UsageError(message, usage=self.usage)


def _sdk_version() -> str:
    try:
        return pkg_version("koor-cli")
    except PackageNotFoundError:
        return "0.0.0+local"


def _resource_arg(value: str) -> ResourcePath:
    resource = parse_resource_path(value)
    if not resource.project or not resource.name:
        raise argparse.ArgumentTypeError(f"expected {_RESOURCE_METAVAR}, got {value!r}")
    return resource


def _common_options() -> argparse.ArgumentParser:
    common = _ArgumentParser(add_help=False, allow_abbrev=False)
    common.add_argument("--pretty", action="store_true", help="Pretty-print JSON output")
    return common


def _command(
    sub, name: str, usage: str, common: argparse.ArgumentParser
) -> argparse.ArgumentParser:
    return sub.add_parser(
        name,
        usage=usage,
        parents=[common],
        add_help=False,
        allow_abbrev=False,
    )


def _subcommands(parser: argparse.ArgumentParser, *, required: bool = True):
    return parser.add_subparsers(dest="subcommand", metavar="subcommand", required=required)


def _add_body_options(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--file", default=None, help="Read the JSON body from a file")
    parser.add_argument("--data", default=None, help="Inline JSON body")


def _build_parser() -> argparse.ArgumentParser:
    common = _common_options()
    parser = _ArgumentParser(
        prog="koor-cli",
        usage="koor-cli <command> [args]",
        parents=[common],
        add_help=False,
        allow_abbrev=False,
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Path to the settings file (default: ./settings.json)",
    )
    sub = parser.add_subparsers(dest="command", metavar="command", required=True)

    config = _command(sub, "config", "koor-cli config <set|show>", common)
    config_sub = _subcommands(config)
    config_set = _command(config_sub, "set", "koor-cli config set <server|token> <value>", common)
    config_set.add_argument("key")
    config_set.add_argument("value")
    _command(config_sub, "show", "koor-cli config show", common)

    _command(sub, "status", "koor-cli status", common)

    state = _command(
        sub,
        "state",
        "koor-cli state <list|get|set|delete|history|rollback|diff> [args]",
        common,
    )
    state_sub = _subcommands(state)
    _command(state_sub, "list", "koor-cli state list", common)
    state_get = _command(state_sub, "get", "koor-cli state get <key>", common)
    state_get.add_argument("key")
    state_set = _command(state_sub, "set", f"koor-cli state set <key> {BODY_USAGE}", common)
    state_set.add_argument("key")
    _add_body_options(state_set)
    state_delete = _command(state_sub, "delete", "koor-cli state delete <key>", common)
    state_delete.add_argument("key")
    state_history = _command(
        state_sub, "history", "koor-cli state history <key> [--limit N]", common
    )
    state_history.add_argument("key")
    state_history.add_argument("--limit", default=None)
    state_rollback = _command(
        state_sub, "rollback", "koor-cli state rollback <key> --version V", common
    )
    state_rollback.add_argument("key")
    state_rollback.add_argument("--version", required=True)
    state_diff = _command(state_sub, "diff", "koor-cli state diff <key> --v1 A --v2 B", common)
    state_diff.add_argument("key")
    state_diff.add_argument("--v1", required=True)
    state_diff.add_argument("--v2", required=True)

    specs = _command(sub, "specs", "koor-cli specs <list|get|set|delete> [args]", common)
    specs_sub = _subcommands(specs)
    specs_list = _command(specs_sub, "list", "koor-cli specs list <project>", common)
    specs_list.add_argument("project")
    specs_get = _command(specs_sub, "get", f"koor-cli specs get {_RESOURCE_METAVAR}", common)
    specs_get.add_argument("resource", metavar=_RESOURCE_METAVAR, type=_resource_arg)
    specs_set = _command(
        specs_sub, "set", f"koor-cli specs set {_RESOURCE_METAVAR} {BODY_USAGE}", common
    )
    specs_set.add_argument("resource", metavar=_RESOURCE_METAVAR, type=_resource_arg)
    _add_body_options(specs_set)
    specs_delete = _command(
        specs_sub, "delete", f"koor-cli specs delete {_RESOURCE_METAVAR}", common
    )
    specs_delete.add_argument("resource", metavar=_RESOURCE_METAVAR, type=_resource_arg)

    contract = _command(sub, "contract", "koor-cli contract <set|get|validate|test> [args]", common)
    contract_sub = _subcommands(contract)
    contract_set = _command(
        contract_sub, "set", f"koor-cli contract set {_RESOURCE_METAVAR} {BODY_USAGE}", common
    )
    contract_set.add_argument("resource", metavar=_RESOURCE_METAVAR, type=_resource_arg)
    _add_body_options(contract_set)
    contract_get = _command(
        contract_sub, "get", f"koor-cli contract get {_RESOURCE_METAVAR}", common
    )
    contract_get.add_argument("resource", metavar=_RESOURCE_METAVAR, type=_resource_arg)
    contract_validate = _command(
        contract_sub,
        "validate",
        (
            f"koor-cli contract validate {_RESOURCE_METAVAR} --endpoint <endpoint> "
            "[--direction request|response] [--payload <json> | --file <path>]"
        ),
        common,
    )
    contract_validate.add_argument("resource", metavar=_RESOURCE_METAVAR, type=_resource_arg)
    contract_validate.add_argument("--endpoint", required=True)
    contract_validate.add_argument("--direction", default="request")
    contract_validate.add_argument("--payload", default=None)
    contract_validate.add_argument("--file", default=None)
    contract_test = _command(
        contract_sub,
        "test",
        f"koor-cli contract test {_RESOURCE_METAVAR} --target <base-url>",
        common,
    )
    contract_test.add_argument("resource", metavar=_RESOURCE_METAVAR, type=_resource_arg)
    contract_test.add_argument("--target", required=True)

    events = _command(sub, "events", "koor-cli events <publish|history|subscribe> [args]", common)
    events_sub = _subcommands(events)
    events_publish = _command(
        events_sub, "publish", f"koor-cli events publish <topic> {BODY_USAGE}", common
    )
    events_publish.add_argument("topic")
    _add_body_options(events_publish)
    events_history = _command(
        events_sub,
        "history",
        "koor-cli events history [--last N] [--topic P] [--from T] [--to T] [--source S]",
        common,
    )
    events_history.add_argument("--last", default=None)
    events_history.add_argument("--topic", default=None)
    events_history.add_argument("--from", dest="from_time", default=None)
    events_history.add_argument("--to", dest="to_time", default=None)
    events_history.add_argument("--source", default=None)
    events_subscribe = _command(
        events_sub, "subscribe", "koor-cli events subscribe [pattern] [--poll]", common
    )
    events_subscribe.add_argument("pattern", nargs="?", default=None)
    events_subscribe.add_argument("--poll", action="store_true")

    rules = _command(sub, "rules", "koor-cli rules <import|export> [args]", common)
    rules_sub = _subcommands(rules)
    rules_import = _command(rules_sub, "import", f"koor-cli rules import {BODY_USAGE}", common)
    _add_body_options(rules_import)
    rules_export = _command(
        rules_sub, "export", "koor-cli rules export [--source S] [--output <path>]", common
    )
    rules_export.add_argument("--source", default=None)
    rules_export.add_argument("--output", default=None)

    webhooks = _command(sub, "webhooks", "koor-cli webhooks <list|add|delete|test> [args]", common)
    webhooks_sub = _subcommands(webhooks)
    _command(webhooks_sub, "list", "koor-cli webhooks list", common)
    webhooks_add = _command(
        webhooks_sub,
        "add",
        "koor-cli webhooks add <id> --url <url> [--patterns a,b] [--secret S]",
        common,
    )
    webhooks_add.add_argument("id")
    webhooks_add.add_argument("--url", required=True)
    webhooks_add.add_argument("--patterns", default=None)
    webhooks_add.add_argument("--secret", default=None)
    webhooks_delete = _command(webhooks_sub, "delete", "koor-cli webhooks delete <id>", common)
    webhooks_delete.add_argument("id")
    webhooks_test = _command(webhooks_sub, "test", "koor-cli webhooks test <id>", common)
    webhooks_test.add_argument("id")

    compliance = _command(sub, "compliance", "koor-cli compliance <history|run> [args]", common)
    compliance_sub = _subcommands(compliance)
    compliance_history = _command(
        compliance_sub,
        "history",
        "koor-cli compliance history [--instance_id I] [--limit N]",
        common,
    )
    compliance_history.add_argument("--instance_id", default=None)
    compliance_history.add_argument("--limit", default=None)
    _command(compliance_sub, "run", "koor-cli compliance run", common)

    templates = _command(
        sub, "templates", "koor-cli templates <list|get|create|delete|apply> [args]", common
    )
    templates_sub = _subcommands(templates)
    templates_list = _command(
        templates_sub, "list", "koor-cli templates list [--kind K] [--tag T]", common
    )
    templates_list.add_argument("--kind", default=None)
    templates_list.add_argument("--tag", default=None)
    templates_get = _command(templates_sub, "get", "koor-cli templates get <id>", common)
    templates_get.add_argument("id")
    templates_create = _command(
        templates_sub,
        "create",
        (
            "koor-cli templates create <id> --name N [--kind K] [--description D] "
            f"[--tags a,b] {BODY_USAGE}"
        ),
        common,
    )
    templates_create.add_argument("id")
    templates_create.add_argument("--name", required=True)
    templates_create.add_argument("--kind", default="")
    templates_create.add_argument("--description", default="")
    templates_create.add_argument("--tags", default=None)
    _add_body_options(templates_create)
    templates_delete = _command(templates_sub, "delete", "koor-cli templates delete <id>", common)
    templates_delete.add_argument("id")
    templates_apply = _command(
        templates_sub, "apply", "koor-cli templates apply <id> --project P", common
    )
    templates_apply.add_argument("id")
    templates_apply.add_argument("--project", required=True)

    audit = _command(
        sub,
        "audit",
        "koor-cli audit [summary] [--actor A] [--action A] [--from T] [--to T] [--limit N]",
        common,
    )
    audit.add_argument("--actor", default=None)
    audit.add_argument("--action", default=None)
    audit.add_argument("--from", dest="from_time", default=None)
    audit.add_argument("--to", dest="to_time", default=None)
    audit.add_argument("--limit", default=None)
    audit_sub = _subcommands(audit, required=False)
    audit_summary = _command(
        audit_sub, "summary", "koor-cli audit summary [--from T] [--to T]", common
    )
    audit_summary.add_argument("--from", dest="from_time", default=None)
    audit_summary.add_argument("--to", dest="to_time", default=None)

    metrics = _command(sub, "metrics", "koor-cli metrics agents [args]", common)
    metrics_sub = _subcommands(metrics)
    metrics_agents = _command(
        metrics_sub,
        "agents",
        "koor-cli metrics agents [<id>] [--instance_id I] [--period P]",
        common,
    )
    metrics_agents.add_argument("agent_id", nargs="?", default=None)
    metrics_agents.add_argument("--instance_id", default=None)
    metrics_agents.add_argument("--period", default=None)

    instances = _command(sub, "instances", "koor-cli instances <list|get|stale> [args]", common)
    instances_sub = _subcommands(instances)
    instances_list = _command(
        instances_sub,
        "list",
        "koor-cli instances list [--name N] [--workspace W] [--stack S] [--capability C]",
        common,
    )
    instances_list.add_argument("--name", default=None)
    instances_list.add_argument("--workspace", default=None)
    instances_list.add_argument("--stack", default=None)
    instances_list.add_argument("--capability", default=None)
    instances_get = _command(instances_sub, "get", "koor-cli instances get <id>", common)
    instances_get.add_argument("id")
    _command(instances_sub, "stale", "koor-cli instances stale", common)

    register = _command(
        sub,
        "register",
        "koor-cli register <name> [--workspace W] [--intent I] [--stack S]",
        common,
    )
    register.add_argument("name")
    register.add_argument("--workspace", default="")
    register.add_argument("--intent", default="")
    register.add_argument("--stack", default=None)

    activate = _command(sub, "activate", "koor-cli activate <id>", common)
    activate.add_argument("id")

    backup = _command(sub, "backup", "koor-cli backup --output <path>", common)
    backup.add_argument("--output", required=True)

    restore = _command(sub, "restore", "koor-cli restore --file <path>", common)
    restore.add_argument("--file", required=True)

    return parser


def _leading_verb(argv: Sequence[str]) -> str | None:
    index = 0
    while index < len(argv):
        token = argv[index]
        if token == "--config":
            index += 2
            continue
        if token in _HELP_WORDS or token in _VERSION_WORDS:
            return token
        if token.startswith("-"):
            index += 1
            continue
        return token
    return None


def _attach_dash_values(argv: Sequence[str]) -> list[str]:
    """Rewrite ``--flag -value`` as ``--flag=-value`` so argparse keeps the value.

    Only a token starting with ``--`` begins a new flag, so the token after a
    value-taking flag is its value even when it starts with a single dash.
    """
    joined: list[str] = []
    index = 0
    while index < len(argv):
        token = argv[index]
        following = argv[index + 1] if index + 1 < len(argv) else None
        if (
            token.startswith("--")
            and token != "--"
            and "=" not in token
            and token not in _SWITCHES
            and following is not None
            and following.startswith("-")
            and not following.startswith("--")
        ):
            joined.append(f"{token}={following}")
            index += 2
            continue
        joined.append(token)
        index += 1
    return joined


def _sanitize_error_text(value: str) -> str:
    redacted = value
    redacted = re.sub(r"(?i)(bearer\s+)([^,\s]+)", r"\1[REDACTED]", redacted)
    for field in _SENSITIVE_FIELDS:
        redacted = re.sub(
            rf"(?i)({field}\s*[=:]\s*)(?!bearer\b)([^,\s&]+)",
            r"\1[REDACTED]",
            redacted,
        )
    return redacted


def _print_error(stderr, prefix: str, message: str, *, code: int) -> int:
    print(f"{prefix}: {_sanitize_error_text(message)}", file=stderr)
    return code


def _print_usage_error(stderr, exc: UsageError) -> int:
    _print_error(stderr, "error", str(exc), code=EXIT_FAILURE)
    if exc.usage:
        print(f"usage: {exc.usage}", file=stderr)
    return EXIT_FAILURE


def _mask(value: str) -> str:
    if len(value) <= 4:
        return "****"
    return "****" + value[-4:]


def _run_version(*, stdout) -> int:
    print(f"koor-cli {_sdk_version()}", file=stdout)
    return EXIT_SUCCESS


def _run_config_set(*, args, stdout, stderr) -> int:
    if args.key not in SETTABLE_KEYS:
        raise UsageError(
            f"unknown config key: {args.key} (valid: {', '.join(SETTABLE_KEYS)})",
            usage="koor-cli config set <server|token> <value>",
        )
    path = save_cli_setting(args.config, args.key, args.value)
    shown = _mask(args.value) if args.key == "token" else args.value
    print(f"config {args.key} set to {shown}", file=stdout)

    env_var = SERVER_ENV_VAR if args.key == "server" else TOKEN_ENV_VAR
    if (os.getenv(env_var) or "").strip():
        print(
            f"warning: {env_var} is set and overrides the {args.key} stored in {path}",
            file=stderr,
        )
    return EXIT_SUCCESS


def _run_config_show(*, args, stdout) -> int:
    config = load_cli_config(args.config)
    token_state = "set" if config.token else "not set"
    print(f"server: {config.server} ({config.server_source})", file=stdout)
    print(f"token: {token_state} ({config.token_source})", file=stdout)
    print(f"config file: {config.config_path}", file=stdout)
    return EXIT_SUCCESS


def _run_rules_export(*, args, client: KoorClient, pretty: bool, stdout, stderr) -> int:
    response = client.export_rules(args.source)
    if args.output is None:
        render_body(response.body, pretty=pretty, stdout=stdout)
        return EXIT_SUCCESS
    if not response.ok:
        raise KoorCLIError(
            f"rules export failed (status {response.status_code}): {response.text.strip()}"
        )
    output_path = Path(args.output)
    output_path.write_text(format_body(response.body, pretty=True), encoding="utf-8")
    print(f"rules exported to {output_path}", file=stdout)
    return EXIT_SUCCESS


def _run_route(*, args, client: KoorClient, pretty: bool, stdout, stderr) -> int:
    descriptor = build_request((args.command, args.subcommand), args)
    response = client.execute(descriptor)
    render_body(response.body, pretty=pretty, stdout=stdout)
    return EXIT_SUCCESS


_WORKFLOWS = {
    ("backup", None): run_backup,
    ("restore", None): run_restore,
    ("contract", "set"): run_contract_set,
    ("contract", "get"): run_contract_get,
    ("contract", "validate"): run_contract_validate,
    ("contract", "test"): run_contract_test,
    ("events", "subscribe"): run_subscribe,
    ("rules", "export"): _run_rules_export,
}


def _build_client(config: CLIConfig) -> KoorClient:
    return KoorClient(base_url=config.server, token=config.token or None)


def _dispatch(args, *, stdout, stderr) -> int:
    if not hasattr(args, "subcommand"):
        args.subcommand = None

    if args.command == "config":
        if args.subcommand == "set":
            return _run_config_set(args=args, stdout=stdout, stderr=stderr)
        return _run_config_show(args=args, stdout=stdout)

    config = load_cli_config(args.config)
    client = _build_client(config)
    key = (args.command, args.subcommand)
    handler = _WORKFLOWS.get(key)
    if handler is None and key in ROUTES:
        handler = _run_route
    if handler is None:
        raise UsageError(f"unknown {args.command} command: {args.subcommand}", usage=USAGE)
    return handler(args=args, client=client, pretty=args.pretty, stdout=stdout, stderr=stderr)


def main(argv: Sequence[str] | None = None, *, stdout=sys.stdout, stderr=sys.stderr) -> int:
    argv = list(sys.argv[1:] if argv is None else argv)

    verb = _leading_verb(argv)
    if verb is None:
        print(USAGE, file=stderr)
        return EXIT_FAILURE
    if verb in _HELP_WORDS:
        print(USAGE, file=stderr)
        return EXIT_SUCCESS
    if verb in _VERSION_WORDS:
        return _run_version(stdout=stdout)
    if verb not in COMMANDS:
        print(f"unknown command: {verb}", file=stderr)
        print(USAGE, file=stderr)
        return EXIT_FAILURE

    try:
        args, _ = _build_parser().parse_known_args(_attach_dash_values(argv))
        args.argv = argv
        args.pretty = pretty_requested(argv)
        return _dispatch(args, stdout=stdout, stderr=stderr)
    except UsageError as exc:
        return _print_usage_error(stderr, exc)
    except ConfigError as exc:
        return _print_error(stderr, "config error", str(exc), code=EXIT_FAILURE)
    except KoorCLIError as exc:
        return _print_error(stderr, "error", str(exc), code=EXIT_FAILURE)
    except OSError as exc:
        return _print_error(stderr, "error", str(exc), code=EXIT_FAILURE)
    except KeyboardInterrupt:
        return EXIT_INTERRUPTED


if __name__ == "__main__":
    raise SystemExit(main())

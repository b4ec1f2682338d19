"""Backup and restore of server state and rules."""

from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path
from typing import Any

from pydantic import TypeAdapter, ValidationError

from koor_cli.cli.exit_codes import EXIT_SUCCESS
from koor_cli.client import KoorClient
from koor_cli.descriptors import raw_object_members
from koor_cli.errors import KoorCLIError, TransportError
from koor_cli.schemas import BACKUP_RULE_SOURCES, BackupArtifact, RulesImportResult, StateItem

_STATE_ITEMS = TypeAdapter(list[StateItem])


class BackupError(KoorCLIError):
    """Raised when a backup or restore cannot proceed."""


def _warn(stderr, message: str) -> None:
    print(f"warning: {message}", file=stderr)


def _write_artifact(path: Path, payload: dict[str, Any]) -> None:
    directory = path.parent
    directory.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=directory, prefix=f".{path.name}.", suffix=".tmp")
    tmp_path = Path(tmp_name)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(json.dumps(payload, indent=2, ensure_ascii=False) + "\n")
        tmp_path.chmod(0o644)
        os.replace(tmp_path, path)
    except BaseException:
        tmp_path.unlink(missing_ok=True)
        raise


def _list_state_keys(client: KoorClient) -> list[str]:
    response = client.list_state()
    try:
        items = _STATE_ITEMS.validate_json(response.body)
    except ValidationError as exc:
        raise BackupError(
            f"unexpected state list response (status {response.status_code}): "
            f"{response.text.strip()}"
        ) from exc
    return [item.key for item in items]


def _collect_state(client: KoorClient, keys: list[str], stderr) -> dict[str, Any]:
    state: dict[str, Any] = {}
    for key in keys:
        try:
            response = client.get_state(key)
        except TransportError as exc:
            _warn(stderr, f"could not backup state key {key}: {exc}")
            continue
        if not response.ok:
            _warn(stderr, f"could not backup state key {key}: status {response.status_code}")
            continue
        try:
            state[key] = json.loads(response.text)
        except ValueError:
            _warn(stderr, f"could not backup state key {key}: value is not JSON")
    return state


def _collect_rules(client: KoorClient, stderr) -> list[Any]:
    try:
        response = client.export_rules(BACKUP_RULE_SOURCES)
    except TransportError as exc:
        _warn(stderr, f"could not backup rules: {exc}")
        return []
    try:
        rules = json.loads(response.text)
    except ValueError:
        rules = None
    if not isinstance(rules, list):
        _warn(
            stderr,
            f"could not backup rules: unexpected response (status {response.status_code})",
        )
        return []
    return rules


def run_backup(*, args, client: KoorClient, pretty: bool, stdout, stderr) -> int:
    output_path = Path(args.output)
    keys = _list_state_keys(client)
    state = _collect_state(client, keys, stderr)
    rules = _collect_rules(client, stderr)

    _write_artifact(output_path, {"state": state, "rules": rules})

    print(f"backup written to {output_path}", file=stdout)
    print(f"state keys: {len(state)}", file=stdout)
    print(f"rules: {len(rules)}", file=stdout)
    return EXIT_SUCCESS


def load_artifact(path: Path) -> tuple[BackupArtifact, dict[str, str], str]:
    """Parse a backup file.

    Returns the validated artifact together with the source text of each
    state value and of the rules array, so restore can send them unchanged.
    """
    raw = path.read_text(encoding="utf-8")
    try:
        artifact = BackupArtifact.model_validate_json(raw)
    except ValidationError as exc:
        raise BackupError(f"invalid backup file {path}: {exc.errors()[0]['msg']}") from exc
    sections = raw_object_members(raw) or {}
    state = raw_object_members(sections.get("state", "{}")) or {}
    rules = sections.get("rules", "[]")
    return artifact, state, rules


def run_restore(*, args, client: KoorClient, pretty: bool, stdout, stderr) -> int:
    artifact, state, rules = load_artifact(Path(args.file))

    restored = 0
    for key, document in state.items():
        try:
            response = client.put_state(key, document)
        except TransportError as exc:
            _warn(stderr, f"could not restore state key {key}: {exc}")
            continue
        if not response.ok:
            _warn(stderr, f"could not restore state key {key}: status {response.status_code}")
            continue
        restored += 1

    imported = 0
    if artifact.rules:
        try:
            response = client.import_rules(rules)
        except TransportError as exc:
            _warn(stderr, f"could not restore rules: {exc}")
        else:
            try:
                imported = RulesImportResult.model_validate_json(response.body).imported
            except ValidationError:
                _warn(
                    stderr,
                    f"could not restore rules: unexpected response (status {response.status_code})",
                )

    print(f"state keys restored: {restored}/{len(state)}", file=stdout)
    print(f"rules imported: {imported}", file=stdout)
    return EXIT_SUCCESS


__all__ = ["BackupError", "load_artifact", "run_backup", "run_restore"]

from __future__ import annotations

import io
import json

import requests

from koor_cli.cli.main import main

_RULES_EXPORT = "/api/rules/export?source=local,learned,external,user-rules"


def _run(argv):
    out = io.StringIO()
    err = io.StringIO()
    rc = main(argv, stdout=out, stderr=err)
    return rc, out.getvalue(), err.getvalue()


def test_backup_writes_state_and_rules(server, tmp_path) -> None:
    server.reply("GET", "/api/state", body='[{"key":"a"},{"key":"b"}]')
    server.reply("GET", "/api/state/a", body='{"x":1}')
    server.reply("GET", "/api/state/b", body='{"y":2}')
    server.reply("GET", _RULES_EXPORT, body='[{"r":1}]')
    output = tmp_path / "backup.json"

    rc, out, err = _run(["backup", "--output", str(output)])

    assert rc == 0
    assert err == ""
    expected = {"state": {"a": {"x": 1}, "b": {"y": 2}}, "rules": [{"r": 1}]}
    assert output.read_text(encoding="utf-8") == json.dumps(expected, indent=2) + "\n"
    assert "state keys: 2\n" in out
    assert "rules: 1\n" in out
    assert server.targets() == [
        "GET /api/state",
        "GET /api/state/a",
        "GET /api/state/b",
        f"GET {_RULES_EXPORT}",
    ]


def test_backup_skips_unreadable_keys_with_warning(server, tmp_path) -> None:
    server.reply("GET", "/api/state", body='[{"key":"a"},{"key":"b"},{"key":"c"}]')
    server.reply("GET", "/api/state/a", body='{"x":1}')
    server.respond_with("GET", "/api/state/b", requests.ConnectionError("reset by peer"))
    server.reply("GET", "/api/state/c", status=500, body="boom")
    server.respond_with("GET", _RULES_EXPORT, requests.ConnectionError("down"))
    output = tmp_path / "backup.json"

    rc, out, err = _run(["backup", "--output", str(output)])

    assert rc == 0
    payload = json.loads(output.read_text(encoding="utf-8"))
    assert payload == {"state": {"a": {"x": 1}}, "rules": []}
    assert "warning: could not backup state key b: request failed: reset by peer" in err
    assert "warning: could not backup state key c: status 500" in err
    assert "warning: could not backup rules: request failed: down" in err
    assert "state keys: 1\n" in out


def test_backup_fails_when_state_list_is_not_an_array(server, tmp_path) -> None:
    server.reply("GET", "/api/state", status=401, body='{"error":"unauthorized"}')
    output = tmp_path / "backup.json"

    rc, out, err = _run(["backup", "--output", str(output)])

    assert rc == 1
    assert out == ""
    assert err.startswith("error: unexpected state list response (status 401)")
    assert not output.exists()


def test_backup_requires_output(server) -> None:
    rc, _, err = _run(["backup"])

    assert rc == 1
    assert "--output" in err
    assert server.calls == []


def test_restore_puts_state_and_imports_rules(server, tmp_path) -> None:
    artifact = tmp_path / "backup.json"
    artifact.write_text(
        json.dumps({"state": {"a": {"x": 1}, "b": [1, 2]}, "rules": [{"r": 1}], "extra": True}),
        encoding="utf-8",
    )
    server.reply("PUT", "/api/state/a", body="{}")
    server.reply("PUT", "/api/state/b", body="{}")
    server.reply("POST", "/api/rules/import", body='{"imported":1}')

    rc, out, err = _run(["restore", "--file", str(artifact)])

    assert rc == 0
    assert err == ""
    assert out == "state keys restored: 2/2\nrules imported: 1\n"
    bodies = {call.target: call.data for call in server.calls}
    assert bodies["/api/state/a"] == b'{"x": 1}'
    assert bodies["/api/state/b"] == b"[1, 2]"
    assert bodies["/api/rules/import"] == b'[{"r": 1}]'


def test_restore_counts_only_successful_puts(server, tmp_path) -> None:
    artifact = tmp_path / "backup.json"
    artifact.write_text(json.dumps({"state": {"a": 1, "b": 2}}), encoding="utf-8")
    server.reply("PUT", "/api/state/a", body="{}")
    server.reply("PUT", "/api/state/b", status=500, body="nope")

    rc, out, err = _run(["restore", "--file", str(artifact)])

    assert rc == 0
    assert out == "state keys restored: 1/2\nrules imported: 0\n"
    assert "warning: could not restore state key b: status 500" in err
    assert all(call.target != "/api/rules/import" for call in server.calls)


def test_restore_rejects_invalid_artifact(server, tmp_path) -> None:
    artifact = tmp_path / "backup.json"
    artifact.write_text("[1, 2, 3]", encoding="utf-8")

    rc, _, err = _run(["restore", "--file", str(artifact)])

    assert rc == 1
    assert err.startswith(f"error: invalid backup file {artifact}")
    assert server.calls == []


def test_restore_sends_stored_values_byte_for_byte(server, tmp_path) -> None:
    artifact = tmp_path / "backup.json"
    artifact.write_text(
        '{"state": {"k": {"price": 1.50, "tag": "\\u003cb\\u003e"}}, "rules": null}',
        encoding="utf-8",
    )
    server.reply("PUT", "/api/state/k", body="{}")

    rc, out, _ = _run(["restore", "--file", str(artifact)])

    assert rc == 0
    assert out == "state keys restored: 1/1\nrules imported: 0\n"
    assert server.calls[0].data == b'{"price": 1.50, "tag": "\\u003cb\\u003e"}'
    assert server.targets() == ["PUT /api/state/k"]

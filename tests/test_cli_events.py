from __future__ import annotations

import io
import json

import pytest
import requests

from koor_cli.cli import events
from koor_cli.cli.main import main
from koor_cli.client import KoorClient

_HISTORY = "/api/events/history?last=10"


def _run(argv):
    out = io.StringIO()
    err = io.StringIO()
    rc = main(argv, stdout=out, stderr=err)
    return rc, out.getvalue(), err.getvalue()


def _stop_after(monkeypatch, polls: int) -> list[float]:
    sleeps: list[float] = []

    def fake_sleep(seconds: float) -> None:
        sleeps.append(seconds)
        if len(sleeps) >= polls:
            raise KeyboardInterrupt

    monkeypatch.setattr("koor_cli.cli.events.time.sleep", fake_sleep)
    return sleeps


def _scripted_history(server, *pages) -> None:
    replies = iter(pages)

    def _next(data):
        reply = next(replies)
        if isinstance(reply, BaseException):
            raise reply
        return 200, reply

    server.respond_with("GET", _HISTORY, _next)


@pytest.mark.parametrize(
    ("server_url", "pattern", "expected"),
    [
        ("http://h:9800", "*", "ws://h:9800/api/events/subscribe?pattern=*"),
        ("https://h/", "state.*", "wss://h/api/events/subscribe?pattern=state.*"),
    ],
)
def test_subscribe_url(server_url, pattern, expected) -> None:
    assert events.subscribe_url(server_url, pattern) == expected


def test_poll_fallback_prints_each_event_once(server, monkeypatch) -> None:
    _scripted_history(
        server,
        '[{"id": 1, "topic": "a"}, {"id":2,"topic":"b"}]',
        '[{"id":2,"topic":"b"},\n {"id": 3, "topic": "c"}]',
        '[{"id": 3, "topic": "c"}]',
    )
    sleeps = _stop_after(monkeypatch, polls=3)

    rc, out, err = _run(["events", "subscribe", "--poll"])

    assert rc == 130
    assert out.splitlines() == [
        '{"id": 1, "topic": "a"}',
        '{"id":2,"topic":"b"}',
        '{"id": 3, "topic": "c"}',
    ]
    assert sleeps == [2, 2, 2]
    assert "subscribing to ws://h:9800/api/events/subscribe?pattern=* (pattern: *)" in err
    assert "use: websocat ws://h:9800/api/events/subscribe?pattern=*" in err
    assert "or:  wscat -c ws://h:9800/api/events/subscribe?pattern=*" in err
    assert "falling back to polling history every 2 seconds..." in err


def test_poll_prints_server_bytes_unchanged(server, monkeypatch) -> None:
    event = '{"id": 1, "data": "\\u003cb\\u003e", "n": 1.50}'
    _scripted_history(server, f"[{event}]")
    _stop_after(monkeypatch, polls=1)

    rc, out, _ = _run(["events", "subscribe", "--poll"])

    assert rc == 130
    assert out == event + "\n"


def test_poll_errors_are_reported_and_loop_continues(server, monkeypatch) -> None:
    _scripted_history(
        server,
        requests.ConnectionError("refused"),
        '[{"id":5}]',
    )
    _stop_after(monkeypatch, polls=2)

    rc, out, err = _run(["events", "subscribe", "--poll"])

    assert rc == 130
    assert out == '{"id":5}\n'
    assert "poll error: request failed: refused" in err


def test_poll_once_treats_events_without_integer_id_as_id_zero() -> None:
    client = KoorClient(base_url="http://h:9800")
    body = json.dumps([{"id": "x"}, {"topic": "no-id"}, {"id": True}, {"id": 4}])

    class _Response:
        status_code = 200
        text = body

    client.event_history = lambda last=10: _Response()  # type: ignore[method-assign]
    seen: set[int] = set()
    out = io.StringIO()

    printed = events.poll_once(client, seen, stdout=out, stderr=io.StringIO())

    assert printed == 2
    assert seen == {0, 4}
    assert out.getvalue() == '{"id": "x"}\n{"id": 4}\n'


def test_poll_once_reports_non_array_history() -> None:
    client = KoorClient(base_url="http://h:9800")

    class _Response:
        status_code = 500
        text = "oops"

    client.event_history = lambda last=10: _Response()  # type: ignore[method-assign]
    err = io.StringIO()

    printed = events.poll_once(client, set(), stdout=io.StringIO(), stderr=err)

    assert printed == 0
    assert err.getvalue() == "poll error: unexpected history response (status 500)\n"


def test_falls_back_to_polling_when_stream_unavailable(server, monkeypatch) -> None:
    def refuse(url, **kwargs):  # noqa: ANN001, ARG001
        raise ConnectionRefusedError("connection refused")

    monkeypatch.setattr("koor_cli.cli.events.connect", refuse)
    _scripted_history(server, '[{"id":9}]')
    _stop_after(monkeypatch, polls=1)

    rc, out, err = _run(["events", "subscribe", "state.*"])

    assert rc == 130
    assert out == '{"id":9}\n'
    assert "stream unavailable: connection refused" in err
    assert "falling back to polling" in err


class _FakeSocket:
    def __init__(self, messages) -> None:
        self._messages = messages

    def __enter__(self):
        return self

    def __exit__(self, *exc) -> None:
        return None

    def __iter__(self):
        return iter(self._messages)


def test_streams_messages_when_upgrade_succeeds(server, monkeypatch) -> None:
    monkeypatch.setenv("KOOR_TOKEN", "tok")
    captured: dict[str, object] = {}

    def fake_connect(url, **kwargs):  # noqa: ANN001
        captured["url"] = url
        captured.update(kwargs)
        return _FakeSocket(['{"id":1}', b'{"id":2}\n'])

    monkeypatch.setattr("koor_cli.cli.events.connect", fake_connect)

    rc, out, err = _run(["events", "subscribe", "deploy.*"])

    assert rc == 0
    assert out == '{"id":1}\n{"id":2}\n'
    assert captured["url"] == "ws://h:9800/api/events/subscribe?pattern=deploy.*"
    assert captured["additional_headers"] == {"Authorization": "Bearer tok"}
    assert "falling back" not in err
    assert server.calls == []

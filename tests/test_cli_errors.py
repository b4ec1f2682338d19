from __future__ import annotations

import io

import requests

from koor_cli.cli.main import _sanitize_error_text, main


def test_transport_error_redacts_query_token(server) -> None:
    server.respond_with(
        "GET",
        "/health",
        requests.ConnectionError("proxy rejected http://h/?token=abc123&x=1"),
    )
    err = io.StringIO()

    rc = main(["status"], stdout=io.StringIO(), stderr=err)

    assert rc == 1
    assert "token=[REDACTED]" in err.getvalue()
    assert "abc123" not in err.getvalue()


def test_sanitize_redacts_bearer_header() -> None:
    text = _sanitize_error_text("sent Authorization: Bearer s3cr3t to server")
    assert "s3cr3t" not in text
    assert "Bearer [REDACTED]" in text


def test_sanitize_redacts_named_secret_field() -> None:
    text = _sanitize_error_text("webhook rejected: secret=hunter2, retry later")
    assert text == "webhook rejected: secret=[REDACTED], retry later"


def test_sanitize_leaves_plain_messages_alone() -> None:
    message = "request failed: connection refused"
    assert _sanitize_error_text(message) == message

"""Event subscription: live stream when the server allows it, history polling otherwise."""

from __future__ import annotations

import time

from pydantic import ValidationError
from websockets.exceptions import ConnectionClosedError, WebSocketException
from websockets.sync.client import connect

from koor_cli.cli.exit_codes import EXIT_INTERRUPTED, EXIT_SUCCESS
from koor_cli.client import KoorClient
from koor_cli.descriptors import encode_query, raw_array_items
from koor_cli.errors import StreamUnavailableError, TransportError
from koor_cli.schemas import EventRecord

DEFAULT_PATTERN = "*"
POLL_INTERVAL_SECONDS = 2
HISTORY_WINDOW = 10
OPEN_TIMEOUT_SECONDS = 10


def subscribe_url(server: str, pattern: str) -> str:
    if server.startswith("https://"):
        server = "wss://" + server[len("https://") :]
    elif server.startswith("http://"):
        server = "ws://" + server[len("http://") :]
    query = encode_query([("pattern", pattern)])
    return f"{server.rstrip('/')}/api/events/subscribe?{query}"


def _emit(stdout, line: str) -> None:
    stdout.write(line.rstrip("\n") + "\n")
    stdout.flush()


def stream_events(url: str, *, token: str | None, stdout) -> None:
    """Print every message from the subscribe socket until the server closes it.

    Raises StreamUnavailableError when the upgrade cannot be established and
    TransportError when an open stream drops abnormally.
    """
    headers = {"Authorization": f"Bearer {token}"} if token else None
    try:
        websocket = connect(url, additional_headers=headers, open_timeout=OPEN_TIMEOUT_SECONDS)
    except (OSError, TimeoutError, WebSocketException) as exc:
        raise StreamUnavailableError(str(exc) or exc.__class__.__name__) from exc

    with websocket:
        try:
            for message in websocket:
                if isinstance(message, bytes):
                    message = message.decode("utf-8", errors="replace")
                _emit(stdout, message)
        except ConnectionClosedError as exc:
            raise TransportError(f"event stream closed: {exc}") from exc


def _event_id(raw: str) -> int:
    # Elements without an integer id share id 0, so only the first is printed.
    try:
        return EventRecord.model_validate_json(raw).id
    except ValidationError:
        return 0


def poll_once(client: KoorClient, seen: set[int], *, stdout, stderr) -> int:
    """Fetch the recent history window and print events not printed before.

    Each event is printed exactly as the server sent it. Returns the number of
    events printed. Failures are reported and swallowed so the polling loop
    keeps running.
    """
    try:
        response = client.event_history(last=HISTORY_WINDOW)
    except TransportError as exc:
        print(f"poll error: {exc}", file=stderr)
        return 0
    events = raw_array_items(response.text)
    if events is None:
        print(
            f"poll error: unexpected history response (status {response.status_code})",
            file=stderr,
        )
        return 0

    printed = 0
    for raw in events:
        event_id = _event_id(raw)
        if event_id in seen:
            continue
        seen.add(event_id)
        _emit(stdout, raw)
        printed += 1
    return printed


def _print_fallback_notice(url: str, stderr) -> None:
    print("live WebSocket streaming requires a WebSocket client.", file=stderr)
    print(f"use: websocat {url}", file=stderr)
    print(f"or:  wscat -c {url}", file=stderr)
    print(file=stderr)
    print(f"falling back to polling history every {POLL_INTERVAL_SECONDS} seconds...", file=stderr)


def poll_events(client: KoorClient, *, stdout, stderr) -> None:
    seen: set[int] = set()
    while True:
        poll_once(client, seen, stdout=stdout, stderr=stderr)
        time.sleep(POLL_INTERVAL_SECONDS)


def run_subscribe(*, args, client: KoorClient, pretty: bool, stdout, stderr) -> int:
    pattern = args.pattern or DEFAULT_PATTERN
    url = subscribe_url(client.base_url, pattern)
    print(f"subscribing to {url} (pattern: {pattern})...", file=stderr)
    try:
        if not args.poll:
            try:
                stream_events(url, token=client.token, stdout=stdout)
                return EXIT_SUCCESS
            except StreamUnavailableError as exc:
                print(f"stream unavailable: {exc}", file=stderr)
        _print_fallback_notice(url, stderr)
        poll_events(client, stdout=stdout, stderr=stderr)
    except KeyboardInterrupt:
        return EXIT_INTERRUPTED
    return EXIT_SUCCESS


__all__ = ["poll_events", "poll_once", "run_subscribe", "stream_events", "subscribe_url"]

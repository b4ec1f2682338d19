from __future__ import annotations

import types
from typing import Callable, Union

import pytest

from koor_cli.client import KoorClient

BASE_URL = "http://h:9800"

Reply = Union[tuple, Callable[[bytes | None], tuple], BaseException]


class FakeServer:
    """Canned responses keyed by (method, path?query); records every request."""

    def __init__(self) -> None:
        self.routes: dict[tuple[str, str], Reply] = {}
        self.calls: list[types.SimpleNamespace] = []

    def reply(self, method: str, target: str, status: int = 200, body: bytes | str = b"") -> None:
        if isinstance(body, str):
            body = body.encode("utf-8")
        self.routes[(method, target)] = (status, body)

    def respond_with(self, method: str, target: str, handler: Reply) -> None:
        self.routes[(method, target)] = handler

    def request(self, method, url, *, data=None, headers=None, timeout=None):  # noqa: ANN001
        target = "/" + url.split("//", 1)[1].split("/", 1)[1]
        self.calls.append(
            types.SimpleNamespace(
                method=method,
                url=url,
                target=target,
                data=data,
                headers=headers or {},
                timeout=timeout,
            )
        )
        reply = self.routes.get((method, target), (404, b'{"error":"not found"}'))
        if isinstance(reply, BaseException):
            raise reply
        if callable(reply):
            reply = reply(data)
        status, body = reply
        if isinstance(body, str):
            body = body.encode("utf-8")
        return types.SimpleNamespace(status_code=status, content=body)

    def targets(self) -> list[str]:
        return [f"{call.method} {call.target}" for call in self.calls]


@pytest.fixture
def server(tmp_path, monkeypatch) -> FakeServer:
    fake = FakeServer()
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("KOOR_SERVER", BASE_URL)
    monkeypatch.delenv("KOOR_TOKEN", raising=False)

    def _client(*, base_url: str, token: str | None = None) -> KoorClient:
        client = KoorClient(base_url=base_url, token=token)
        monkeypatch.setattr(client._session, "request", fake.request)
        return client

    monkeypatch.setattr("koor_cli.cli.main.KoorClient", _client)
    return fake

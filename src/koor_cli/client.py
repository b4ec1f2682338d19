"""HTTP client for the control-plane server."""

from __future__ import annotations

from dataclasses import dataclass

import requests

from koor_cli.descriptors import RequestDescriptor
from koor_cli.errors import TransportError

DEFAULT_SERVER = "http://localhost:9800"


@dataclass(frozen=True)
class ServerResponse:
    status_code: int
    body: bytes

    @property
    def ok(self) -> bool:
        return self.status_code < 400

    @property
    def text(self) -> str:
        return self.body.decode("utf-8", errors="replace")


@dataclass
class KoorClient:
    base_url: str = DEFAULT_SERVER
    token: str | None = None
    timeout: float | None = None

    def __post_init__(self) -> None:
        self._session = requests.Session()

    def _url(self, path: str) -> str:
        return f"{self.base_url.rstrip('/')}{path}"

    def _headers(self, *, has_body: bool) -> dict[str, str]:
        headers: dict[str, str] = {}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        if has_body:
            headers["Content-Type"] = "application/json"
        return headers

    def request(
        self,
        method: str,
        path: str,
        body: bytes | str | None = None,
    ) -> ServerResponse:
        if isinstance(body, str):
            body = body.encode("utf-8")
        try:
            response = self._session.request(
                method,
                self._url(path),
                data=body,
                headers=self._headers(has_body=body is not None),
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise TransportError(f"request failed: {exc}") from exc
        return ServerResponse(status_code=response.status_code, body=response.content)

    def execute(self, descriptor: RequestDescriptor) -> ServerResponse:
        return self.request(descriptor.method, descriptor.target, descriptor.body)

    def list_state(self) -> ServerResponse:
        return self.request("GET", "/api/state")

    def get_state(self, key: str) -> ServerResponse:
        return self.request("GET", f"/api/state/{key}")

    def put_state(self, key: str, body: bytes | str) -> ServerResponse:
        return self.request("PUT", f"/api/state/{key}", body)

    def export_rules(self, source: str | None = None) -> ServerResponse:
        query = (("source", source),) if source else ()
        return self.execute(RequestDescriptor("GET", "/api/rules/export", query))

    def import_rules(self, body: bytes | str) -> ServerResponse:
        return self.request("POST", "/api/rules/import", body)

    def get_spec(self, project: str, name: str) -> ServerResponse:
        return self.request("GET", f"/api/specs/{project}/{name}")

    def validate_contract(self, project: str, name: str, body: bytes | str) -> ServerResponse:
        return self.request("POST", f"/api/contracts/{project}/{name}/validate", body)

    def test_contract(self, project: str, name: str, body: bytes | str) -> ServerResponse:
        return self.request("POST", f"/api/contracts/{project}/{name}/test", body)

    def event_history(self, last: int = 10) -> ServerResponse:
        return self.execute(RequestDescriptor("GET", "/api/events/history", (("last", str(last)),)))


__all__ = ["DEFAULT_SERVER", "KoorClient", "ServerResponse"]

"""Pytest configuration - loads .env for live tests and fakes the web service for unit tests."""

import json
import urllib.parse
import urllib.request
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import pytest
from dotenv import load_dotenv

from corebos_cli.sdk import CoreBOSClient

# Load .env from project root
env_path = Path(__file__).parent.parent / ".env"
load_dotenv(env_path)

BASE_URL = "http://crm.example.com/"
SERVICE_URL = "http://crm.example.com/webservice.php"
TOKEN = "5b3b8c2d1f0e4"
SESSION_ID = "3a1f6c2e5b9d0c8a7"
USER_ID = "19x1"


class FakeResponse:
    """Minimal stand-in for the object returned by urlopen."""

    def __init__(self, body: bytes):
        self._body = body

    def read(self) -> bytes:
        return self._body

    def __enter__(self) -> "FakeResponse":
        return self

    def __exit__(self, *exc: Any) -> bool:
        return False


@dataclass
class RecordedRequest:
    """A request seen by the fake web service."""

    method: str
    url: str
    params: dict[str, str]
    content_type: str | None
    timeout: float | None

    @property
    def operation(self) -> str:
        return self.params["operation"]

    def json_param(self, name: str) -> Any:
        return json.loads(self.params[name])


class FakeService:
    """Replaces urlopen: records requests and replays queued replies in order."""

    def __init__(self) -> None:
        self.requests: list[RecordedRequest] = []
        self._replies: list[bytes | BaseException] = []

    def reply(self, result: Any) -> "FakeService":
        return self.raw(json.dumps({"success": True, "result": result}))

    def fail(self, code: str, message: str) -> "FakeService":
        return self.raw(json.dumps({"success": False, "error": {"code": code, "message": message}}))

    def raw(self, body: str | bytes) -> "FakeService":
        self._replies.append(body.encode("utf-8") if isinstance(body, str) else body)
        return self

    def error(self, exc: BaseException) -> "FakeService":
        self._replies.append(exc)
        return self

    def challenge(self, token: str = TOKEN) -> "FakeService":
        return self.reply({"token": token, "serverTime": 1700000000, "expireTime": "1700000300"})

    def login(self, session_id: str = SESSION_ID, user_id: str = USER_ID) -> "FakeService":
        return self.reply({"sessionName": session_id, "userId": user_id, "version": "0.22"})

    @property
    def operations(self) -> list[str]:
        return [r.operation for r in self.requests]

    @property
    def last(self) -> RecordedRequest:
        return self.requests[-1]

    def __call__(self, req: urllib.request.Request, timeout: float | None = None) -> FakeResponse:
        method = req.get_method()
        url, _, query = req.full_url.partition("?")
        raw_params = req.data.decode("utf-8") if req.data else query
        self.requests.append(
            RecordedRequest(
                method=method,
                url=url,
                params=dict(urllib.parse.parse_qsl(raw_params, keep_blank_values=True)),
                content_type=req.get_header("Content-type"),
                timeout=timeout,
            )
        )
        if not self._replies:
            raise AssertionError(f"Unexpected request: {method} {req.full_url}")
        reply = self._replies.pop(0)
        if isinstance(reply, BaseException):
            raise reply
        return FakeResponse(reply)


@pytest.fixture
def service(monkeypatch):
    """Fake coreBOS web service."""
    monkeypatch.delenv("COREBOS_TIMEOUT", raising=False)
    fake = FakeService()
    monkeypatch.setattr(urllib.request, "urlopen", fake)
    return fake


@pytest.fixture
def client(service):
    """Client pointed at the fake service, not logged in."""
    return CoreBOSClient(BASE_URL)


@pytest.fixture
def logged_in(client, service):
    """Client with an authenticated session; recorded requests are reset."""
    service.challenge().login()
    client.auth.login("admin", "cdYTBpiMR9RfGgO")
    service.requests.clear()
    return client

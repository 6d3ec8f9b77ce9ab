from __future__ import annotations

import io
import json
from collections.abc import Callable, Iterator
from dataclasses import dataclass, field
from email.message import Message
from typing import Any
from urllib import error, parse, request

import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from fastapi.testclient import TestClient
from jwt.algorithms import RSAAlgorithm

from toolkit_api.app.models import ToolkitConfig
from toolkit_api.app.settings import Settings

ORG_URL = "https://example.okta.com"
API_TOKEN = "00test-token"
CLIENT_ID = "0oaservice"
KEY_ID = "test-kid"


class _FakeHTTPResponse:
    def __init__(self, raw_body: bytes, status: int = 200) -> None:
        self._raw_body = raw_body
        self.status = status

    def read(self) -> bytes:
        return self._raw_body

    def __enter__(self) -> _FakeHTTPResponse:
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        _ = (exc_type, exc, tb)
        return False


@dataclass
class RecordedCall:
    method: str
    path: str
    query: dict[str, str]
    payload: Any
    headers: dict[str, str] = field(default_factory=dict)


Route = tuple[int, Any] | Callable[[RecordedCall], tuple[int, Any]]


class FakeOkta:
    """Routes urllib requests to canned or computed (status, body) answers."""

    def __init__(self) -> None:
        self.routes: dict[tuple[str, str], Route] = {}
        self.calls: list[RecordedCall] = []
        # Consulted for paths without an exact route, e.g. ones carrying ids.
        self.fallback: Callable[[RecordedCall], tuple[int, Any]] | None = None

    def add(self, method: str, path: str, route: Route) -> None:
        self.routes[(method, path)] = route

    def calls_to(self, method: str, path: str) -> list[RecordedCall]:
        return [call for call in self.calls if call.method == method and call.path == path]

    def urlopen(self, req: request.Request, timeout: float | None = None) -> _FakeHTTPResponse:
        _ = timeout
        url = parse.urlsplit(req.full_url)
        headers = {key.lower(): value for key, value in req.header_items()}
        call = RecordedCall(
            method=req.get_method(),
            path=url.path,
            query=dict(parse.parse_qsl(url.query)),
            payload=_decode_payload(req.data, headers.get("content-type", "")),
            headers=headers,
        )
        self.calls.append(call)

        route = self.routes.get((call.method, call.path))
        if route is None and self.fallback is not None:
            status, body = self.fallback(call)
        elif route is None:
            status, body = 404, {"errorCode": "E0000022", "errorSummary": f"Resource not found: {call.path}"}
        elif callable(route):
            status, body = route(call)
        else:
            status, body = route

        raw_body = b"" if body is None else json.dumps(body).encode("utf-8")
        if status >= 400:
            raise error.HTTPError(req.full_url, status, "error", Message(), io.BytesIO(raw_body))
        return _FakeHTTPResponse(raw_body, status)


def _decode_payload(data: bytes | None, content_type: str) -> Any:
    if not data:
        return None
    text = data.decode("utf-8")
    if "x-www-form-urlencoded" in content_type:
        return dict(parse.parse_qsl(text))
    return json.loads(text)


def okta_error(status: int, summary: str, *, code: str = "E0000001", causes: list[str] | None = None) -> tuple[int, Any]:
    body: dict[str, Any] = {"errorCode": code, "errorSummary": summary}
    if causes:
        body["errorCauses"] = [{"errorSummary": cause} for cause in causes]
    return status, body


@pytest.fixture
def fake_okta(monkeypatch: pytest.MonkeyPatch) -> FakeOkta:
    fake = FakeOkta()
    monkeypatch.setattr(request, "urlopen", fake.urlopen)
    return fake


@pytest.fixture
def config() -> ToolkitConfig:
    return ToolkitConfig(org_url=ORG_URL, api_token=API_TOKEN)


@pytest.fixture(scope="session")
def rsa_private_key() -> rsa.RSAPrivateKey:
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def pkcs8_pem(rsa_private_key: rsa.RSAPrivateKey) -> str:
    return rsa_private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode("ascii")


@pytest.fixture(scope="session")
def private_jwk(rsa_private_key: rsa.RSAPrivateKey) -> str:
    return RSAAlgorithm.to_jwk(rsa_private_key)


@pytest.fixture
def oauth_config(pkcs8_pem: str) -> ToolkitConfig:
    return ToolkitConfig(
        org_url=ORG_URL,
        api_token=API_TOKEN,
        client_id=CLIENT_ID,
        private_key=pkcs8_pem,
        key_id=KEY_ID,
    )


@pytest.fixture
def test_settings() -> Settings:
    return Settings(stream_queue_size=8, stream_poll_interval_s=0.01)


@pytest.fixture
def client(test_settings: Settings) -> Iterator[TestClient]:
    from toolkit_api.main import create_app

    app = create_app(settings_override=test_settings)
    with TestClient(app) as test_client:
        yield test_client

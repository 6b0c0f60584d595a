import json
import pathlib
import sys
from types import SimpleNamespace
from typing import Any, Callable, Dict, List, Optional

import pytest
import requests
from slack_sdk.errors import SlackApiError

sys.path.append(str(pathlib.Path(__file__).resolve().parents[1]))
from botdeploy.core.settings import RoutingSettings, reset_settings_cache
from botdeploy.deployments.platform import DeploymentPlatform, PlatformType
from botdeploy.models.session import create_schema, get_sessionmaker


def make_response(status_code: int = 200, payload: Any = None, text: str | None = None) -> requests.Response:
    response = requests.Response()
    response.status_code = status_code
    response.url = "https://api.example.test"
    if payload is not None:
        response._content = json.dumps(payload).encode("utf-8")
        response.headers["Content-Type"] = "application/json"
    else:
        response._content = (text or "").encode("utf-8")
    return response


class FakeSession:
    """Records requests and replies from a queue, then from ``default``."""

    def __init__(
        self,
        responses: Optional[List[requests.Response]] = None,
        default: Optional[Callable[[str, str], requests.Response]] = None,
    ) -> None:
        self._responses = list(responses or [])
        self._default = default
        self.requests: List[Dict[str, Any]] = []

    def request(self, method: str, url: str, **kwargs: Any) -> requests.Response:
        headers = dict(kwargs.get("headers") or {})
        self.requests.append({"method": method, "url": url, **kwargs, "headers": headers})
        if self._responses:
            return self._responses.pop(0)
        if self._default is not None:
            return self._default(method, url)
        raise AssertionError(f"no response queued for {method} {url}")

    def post(self, url: str, **kwargs: Any) -> requests.Response:
        return self.request("POST", url, **kwargs)

    def calls_to(self, suffix: str) -> List[Dict[str, Any]]:
        return [call for call in self.requests if call["url"].endswith(suffix)]


def platform_api(method: str, url: str) -> requests.Response:
    """Happy-path replies for the Slack and GoHighLevel endpoints we call."""

    if "/contacts/" in url:
        return make_response(200, {"contact": {"id": "contact-1", "tags": []}})
    if url.endswith("/conversations/messages"):
        return make_response(200, {"messageId": "out-1", "conversationId": "conv-1"})
    return make_response(200, {"ok": True})


class FakeSlackApi:
    """Factory standing in for ``slack_sdk.WebClient``.

    Every client it builds records calls here as ``{"method", "token", **kwargs}``.
    ``errors`` holds Slack error codes answered, in order, to the next calls.
    """

    def __init__(self, errors: Optional[List[str]] = None) -> None:
        self.errors = list(errors or [])
        self.calls: List[Dict[str, Any]] = []
        self.clients: List[Dict[str, Any]] = []

    def __call__(self, *, token: str, base_url: str, timeout: int) -> "_FakeSlackWebClient":
        self.clients.append({"token": token, "base_url": base_url, "timeout": timeout})
        return _FakeSlackWebClient(self, token)

    def calls_to(self, method: str) -> List[Dict[str, Any]]:
        return [call for call in self.calls if call["method"] == method]


class _FakeSlackWebClient:
    def __init__(self, api: FakeSlackApi, token: str) -> None:
        self.api = api
        self.token = token

    def _call(self, method: str, kwargs: Dict[str, Any]) -> SimpleNamespace:
        self.api.calls.append({"method": method, "token": self.token, **kwargs})
        if self.api.errors:
            error = self.api.errors.pop(0)
            raise SlackApiError("The request to the Slack API failed.", {"ok": False, "error": error})
        return SimpleNamespace(data={"ok": True, "ts": "999.1"})

    def chat_postMessage(self, **kwargs: Any) -> SimpleNamespace:
        return self._call("chat.postMessage", kwargs)

    def assistant_threads_setStatus(self, **kwargs: Any) -> SimpleNamespace:
        return self._call("assistant.threads.setStatus", kwargs)


class RecordingPlatform(DeploymentPlatform):
    type = PlatformType.SLACK

    def __init__(self, *, streaming: bool = False, fail_send: bool = False) -> None:
        self.supports_streaming = streaming
        self.fail_send = fail_send
        self.events: List[tuple[str, str]] = []

    def send_message(self, content: str) -> None:
        if self.fail_send:
            raise RuntimeError("send failed")
        self.events.append(("send", content))

    def set_status(self, status: str) -> None:
        self.events.append(("status", status))

    def append_to_message(self, chunk: str) -> None:
        self.events.append(("append", chunk))


class RecordingProcessor:
    def __init__(self, error: Exception | None = None) -> None:
        self.calls: list = []
        self.error = error

    def process(self, options) -> None:
        self.calls.append(options)
        if self.error is not None:
            raise self.error


@pytest.fixture(autouse=True)
def _fresh_settings():
    reset_settings_cache()
    yield
    reset_settings_cache()


@pytest.fixture
def routing() -> RoutingSettings:
    return RoutingSettings(history_limit=10, request_timeout=5.0)


@pytest.fixture
def fake_session() -> FakeSession:
    return FakeSession(default=platform_api)


@pytest.fixture
def slack_api() -> FakeSlackApi:
    return FakeSlackApi()


@pytest.fixture
def sqlite_factory(tmp_path):
    factory = get_sessionmaker(f"sqlite+pysqlite:///{tmp_path / 'botdeploy.db'}")
    create_schema(factory)
    yield factory
    factory.kw["bind"].dispose()

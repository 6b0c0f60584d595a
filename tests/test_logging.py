import json
import logging
from logging.handlers import TimedRotatingFileHandler

import pytest
from fastapi import FastAPI, Request
from starlette.testclient import TestClient

from botdeploy.app_logging import APP_LOGGER_NAME, _install_access_logging, _scrub, init_logging


def _clear_handlers(name: str) -> logging.Logger:
    logger = logging.getLogger(name)
    logger.handlers.clear()
    return logger


@pytest.fixture
def log_dir(monkeypatch, tmp_path):
    monkeypatch.setenv("LOG_DIR", str(tmp_path))
    yield tmp_path
    _clear_handlers(APP_LOGGER_NAME)
    _clear_handlers("uvicorn.access")


def _echo_app() -> FastAPI:
    app = FastAPI()

    @app.post("/api/apps/slack/events")
    async def echo(request: Request):
        return {"rid": request.state.request_id}

    @app.get("/api/health")
    async def health():  # pragma: no cover - simple
        return {"status": "ok"}

    _install_access_logging(app)
    return app


def test_init_logging_adds_rotating_handlers(log_dir, monkeypatch):
    monkeypatch.setenv("LOG_RETENTION_DAYS", "5")
    app_logger = _clear_handlers(APP_LOGGER_NAME)
    access_logger = _clear_handlers("uvicorn.access")

    init_logging(FastAPI())

    for logger in (app_logger, access_logger):
        handler = next(h for h in logger.handlers if isinstance(h, TimedRotatingFileHandler))
        assert handler.when == "MIDNIGHT"
        assert handler.backupCount == 5


def test_init_logging_replaces_existing_access_handlers(log_dir):
    access_logger = _clear_handlers("uvicorn.access")
    stream_handler = logging.StreamHandler()
    access_logger.addHandler(stream_handler)

    init_logging()

    assert stream_handler not in access_logger.handlers
    assert any(isinstance(h, TimedRotatingFileHandler) for h in access_logger.handlers)


def test_module_loggers_write_to_app_log(log_dir):
    _clear_handlers(APP_LOGGER_NAME)
    init_logging()

    logging.getLogger("botdeploy.channels.slack").warning("thread status failed")
    for handler in logging.getLogger(APP_LOGGER_NAME).handlers:
        handler.flush()

    assert "thread status failed" in (log_dir / "app.log").read_text()


def test_access_log_scrubs_webhook_signatures(caplog, monkeypatch):
    monkeypatch.setenv("LOG_REQUEST_BODIES", "true")
    app = _echo_app()

    with (
        TestClient(app) as client,
        caplog.at_level(logging.INFO, logger="uvicorn.access"),
    ):
        resp = client.post(
            "/api/apps/slack/events",
            json={"token": "verification", "event": {"text": "hi"}},
            headers={
                "X-Request-Id": "abc",
                "X-Slack-Signature": "v0=deadbeef",
                "X-Slack-Retry-Num": "1",
            },
        )

        assert resp.status_code == 200
        assert resp.headers["X-Request-Id"] == "abc"
        assert resp.json() == {"rid": "abc"}

        data = json.loads(caplog.records[0].getMessage())
        assert data["request_id"] == "abc"
        assert data["headers"]["x-slack-signature"] == "***"
        assert data["body"]["token"] == "***"
        assert data["body"]["event"] == {"text": "hi"}
        assert data["platform"] == "slack"
        assert data["retry"] == {"x-slack-retry-num": "1"}

        caplog.clear()
        client.get("/api/health")
        assert len(caplog.records) == 0


def test_scrub_masks_nested_oauth_fields():
    scrubbed = _scrub(
        {"credentials": [{"access_token": "a", "refresh_token": "r", "scope": "chat:write"}]}
    )

    assert scrubbed == {
        "credentials": [{"access_token": "***", "refresh_token": "***", "scope": "chat:write"}]
    }


def test_non_json_bodies_are_logged_by_size(caplog, monkeypatch):
    monkeypatch.setenv("LOG_REQUEST_BODIES", "true")
    app = _echo_app()

    with (
        TestClient(app) as client,
        caplog.at_level(logging.INFO, logger="uvicorn.access"),
    ):
        resp = client.post("/api/apps/slack/events", content=b"payload=%7B%7D")

    assert resp.status_code == 200
    data = json.loads(caplog.records[0].getMessage())
    assert data["body_bytes"] == len(b"payload=%7B%7D")
    assert "body" not in data

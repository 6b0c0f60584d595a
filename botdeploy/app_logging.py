"""Application and access logging for the webhook service.

Two rotating log files are written under ``LOG_DIR``: ``app.log`` for the
``botdeploy`` logger tree and ``access.log`` for one JSON line per webhook
request.  Webhook deliveries carry signatures and OAuth tokens, so those
headers and body fields are masked before anything is written.

Environment variables: LOG_DIR, LOG_LEVEL, LOG_JSON, LOG_REQUEST_BODIES,
LOG_RETENTION_DAYS, LOG_ROTATE_UTC.
"""

from __future__ import annotations

import json
import logging
import os
import re
import time
from logging.handlers import TimedRotatingFileHandler
from uuid import uuid4

from fastapi import FastAPI, Request

APP_LOGGER_NAME = "botdeploy"
ACCESS_LOGGER_NAME = "uvicorn.access"

SENSITIVE_FIELDS = {
    "authorization",
    "cookie",
    "set-cookie",
    "token",
    "access_token",
    "refresh_token",
    "client_secret",
    "x-slack-signature",
    "x-wh-signature",
}

# Retry markers platforms attach to redelivered webhooks.
RETRY_HEADERS = ("x-slack-retry-num", "x-slack-retry-reason")

_WEBHOOK_PATH = re.compile(r"^/api/apps/(?P<platform>[a-z]+)/events$")


class JsonFormatter(logging.Formatter):
    """Minimal JSON log formatter used when LOG_JSON=true."""

    def format(self, record: logging.LogRecord) -> str:  # pragma: no cover - simple
        log_record = {
            "level": record.levelname,
            "time": self.formatTime(record, "%Y-%m-%dT%H:%M:%S"),
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            log_record["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(log_record)


def _get_formatter(log_json: bool) -> logging.Formatter:
    if log_json:
        return JsonFormatter()
    return logging.Formatter("[%(asctime)s] %(levelname)s in %(name)s: %(message)s")


def _rotating_handler(
    path: str, *, retention_days: int, rotate_utc: bool, formatter: logging.Formatter
) -> TimedRotatingFileHandler:
    handler = TimedRotatingFileHandler(
        path, when="midnight", backupCount=retention_days, utc=rotate_utc
    )
    handler.setFormatter(formatter)
    return handler


def _scrub(data: object) -> object:
    """Recursively mask sensitive keys in dictionaries and lists."""

    if isinstance(data, dict):
        return {
            k: ("***" if k.lower() in SENSITIVE_FIELDS else _scrub(v))
            for k, v in data.items()
        }
    if isinstance(data, list):
        return [_scrub(v) for v in data]
    return data


async def _read_body(request: Request) -> bytes:
    """Read the body once and make it readable again for the route."""

    body = await request.body()

    async def receive() -> dict:  # pragma: no cover - internal
        return {"type": "http.request", "body": body, "more_body": False}

    request._receive = receive  # type: ignore[attr-defined]
    return body


def _install_access_logging(app: FastAPI) -> None:
    """Log one scrubbed JSON line per request, health and metrics excluded.

    Every line carries an ``X-Request-Id`` (taken from the request or
    generated) that is echoed back on the response.  Webhook requests also
    record the platform and any retry headers.  With ``LOG_REQUEST_BODIES``
    enabled, JSON bodies are logged scrubbed; other bodies only by size.
    """

    log_request_bodies = os.getenv("LOG_REQUEST_BODIES", "false").lower() == "true"
    skip_paths = {"/api/health", "/api/metrics"}
    access_logger = logging.getLogger(ACCESS_LOGGER_NAME)

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        path = request.url.path
        if path in skip_paths:
            return await call_next(request)

        request_id = request.headers.get("X-Request-Id") or uuid4().hex
        request.state.request_id = request_id
        start = time.perf_counter()

        log_data: dict[str, object] = {"request_id": request_id}
        if log_request_bodies:
            body = await _read_body(request)
            if body:
                try:
                    log_data["body"] = _scrub(json.loads(body))
                except ValueError:
                    log_data["body_bytes"] = len(body)

        response = await call_next(request)

        client_ip = request.headers.get("X-Forwarded-For")
        if not client_ip and request.client is not None:
            client_ip = request.client.host
        log_data.update(
            method=request.method,
            path=path,
            status=response.status_code,
            latency_ms=round((time.perf_counter() - start) * 1000, 2),
            client_ip=client_ip,
            headers=_scrub(dict(request.headers)),
        )
        match = _WEBHOOK_PATH.match(path)
        if match:
            log_data["platform"] = match.group("platform")
            retries = {h: request.headers[h] for h in RETRY_HEADERS if h in request.headers}
            if retries:
                log_data["retry"] = retries

        response.headers["X-Request-Id"] = request_id
        access_logger.info(json.dumps(log_data, default=str))
        return response


def init_logging(app: FastAPI | None = None) -> None:
    """Attach rotating file handlers and, given an app, the access middleware."""

    log_dir = os.getenv("LOG_DIR", "logs")
    log_level = getattr(logging, os.getenv("LOG_LEVEL", "INFO").upper(), logging.INFO)
    retention_days = int(os.getenv("LOG_RETENTION_DAYS", "7"))
    rotate_utc = os.getenv("LOG_ROTATE_UTC", "false").lower() == "true"
    formatter = _get_formatter(os.getenv("LOG_JSON", "false").lower() == "true")

    os.makedirs(log_dir, exist_ok=True)

    app_logger = logging.getLogger(APP_LOGGER_NAME)
    if not app_logger.handlers:
        app_logger.addHandler(
            _rotating_handler(
                os.path.join(log_dir, "app.log"),
                retention_days=retention_days,
                rotate_utc=rotate_utc,
                formatter=formatter,
            )
        )
    app_logger.setLevel(log_level)

    access_logger = logging.getLogger(ACCESS_LOGGER_NAME)
    access_logger.handlers.clear()
    access_logger.addHandler(
        _rotating_handler(
            os.path.join(log_dir, "access.log"),
            retention_days=retention_days,
            rotate_utc=rotate_utc,
            formatter=formatter,
        )
    )
    access_logger.setLevel(log_level)

    if app is not None:
        _install_access_logging(app)

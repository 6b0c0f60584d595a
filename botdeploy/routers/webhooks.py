"""Webhook endpoints for Slack and GoHighLevel events.

Both routes verify the delivery, resolve the deployment that owns the
workspace/location, drop repeats and acknowledge immediately; the actual
processing runs as a background task after the response is sent.
"""

from __future__ import annotations

import datetime as dt
import json
import logging
from typing import Any

from fastapi import APIRouter, BackgroundTasks, HTTPException, Request, status
from fastapi.responses import JSONResponse

from ..core.rate_limit import limiter, webhook_rate_limit
from ..deployments.platform import PlatformType
from ..integrations.gohighlevel import verify_gohighlevel_signature
from ..integrations.slack import verify_slack_signature
from ..services import Services

logger = logging.getLogger(__name__)

router = APIRouter(tags=["webhooks"])


def _services(request: Request) -> Services:
    return request.app.state.services


def _parse_json(body: bytes) -> dict[str, Any]:
    try:
        payload = json.loads(body.decode("utf-8")) if body else {}
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise HTTPException(
            status_code=400, detail=f"Invalid JSON payload: {exc}"
        ) from exc
    if not isinstance(payload, dict):
        raise HTTPException(status_code=400, detail="Payload must be a JSON object")
    return payload


def _integration_not_found() -> JSONResponse:
    return JSONResponse({"error": "Integration not found"}, status_code=404)


def _is_stale(timestamp: Any, max_age_seconds: int) -> bool:
    if isinstance(timestamp, (int, float)):
        # Epoch milliseconds.
        sent = dt.datetime.fromtimestamp(timestamp / 1000, dt.timezone.utc)
    else:
        try:
            sent = dt.datetime.fromisoformat(str(timestamp).replace("Z", "+00:00"))
        except ValueError:
            return True
    if sent.tzinfo is None:
        sent = sent.replace(tzinfo=dt.timezone.utc)
    age = dt.datetime.now(dt.timezone.utc) - sent
    return abs(age.total_seconds()) > max_age_seconds


@router.post("/api/apps/slack/events")
@limiter.limit(webhook_rate_limit)
async def slack_events(request: Request, background_tasks: BackgroundTasks):
    services = _services(request)
    body = await request.body()
    if not verify_slack_signature(
        services.slack.signing_secret,
        request.headers.get("X-Slack-Request-Timestamp"),
        body,
        request.headers.get("X-Slack-Signature"),
        max_age_seconds=services.routing.webhook_max_age_seconds,
    ):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid signature"
        )

    payload = _parse_json(body)
    if payload.get("type") == "url_verification":
        return {"challenge": payload.get("challenge")}

    event = payload.get("event")
    if not isinstance(event, dict):
        raise HTTPException(status_code=400, detail="No event in request body")

    team_id = payload.get("team_id") or event.get("team")
    deployment = (
        services.deployments.find_by_account(PlatformType.SLACK, str(team_id))
        if team_id
        else None
    )
    if deployment is None:
        logger.error("No deployment found for Slack team %s", team_id)
        return _integration_not_found()

    event_id = payload.get("event_id")
    if event_id and services.dedup.mark_seen(f"slack:event:{event_id}"):
        logger.debug("Duplicate Slack event %s", event_id)
        return {"success": True}

    background_tasks.add_task(services.dispatch, PlatformType.SLACK, event, deployment)
    return {"success": True}


@router.post("/api/apps/gohighlevel/events")
@limiter.limit(webhook_rate_limit)
async def gohighlevel_events(request: Request, background_tasks: BackgroundTasks):
    services = _services(request)
    body = await request.body()
    if not verify_gohighlevel_signature(
        body, request.headers.get("x-wh-signature"), services.gohighlevel.public_key
    ):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid signature"
        )

    payload = _parse_json(body)
    timestamp = payload.get("timestamp")
    if timestamp and _is_stale(timestamp, services.routing.webhook_max_age_seconds):
        logger.warning("Rejecting stale GoHighLevel webhook %s", payload.get("webhookId"))
        return JSONResponse({"error": "Request too old"}, status_code=400)

    event_type = payload.get("type")
    if event_type == "ContactTagUpdate":
        logger.debug("Ignoring ContactTagUpdate for contact %s", payload.get("id"))
        return {"success": True}
    if event_type != "InboundMessage" or payload.get("direction") != "inbound":
        return {"success": True}

    location_id = payload.get("locationId")
    deployment = (
        services.deployments.find_by_account(PlatformType.GOHIGHLEVEL, str(location_id))
        if location_id
        else None
    )
    if deployment is None:
        logger.error("No deployment found for GoHighLevel location %s", location_id)
        return _integration_not_found()

    message_id = payload.get("messageId")
    if message_id and services.dedup.mark_seen(f"ghl:message:{message_id}"):
        logger.debug("Duplicate GoHighLevel message %s", message_id)
        return {"success": True}

    background_tasks.add_task(
        services.dispatch, PlatformType.GOHIGHLEVEL, payload, deployment
    )
    return {"success": True}

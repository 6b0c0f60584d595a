import base64
import datetime as dt
import hashlib
import hmac
import json
import time

import pytest
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding, rsa
from fastapi.testclient import TestClient

from botdeploy.auth.credentials import InMemoryCredentialStore, PlatformCredential
from botdeploy.conversations.repository import InMemoryConversationRepository
from botdeploy.core.rate_limit import limiter
from botdeploy.core.settings import GoHighLevelSettings, RoutingSettings, SlackSettings
from botdeploy.deployments.platform import PlatformType
from botdeploy.deployments.repository import DeploymentRecord, InMemoryDeploymentRepository
from botdeploy.deployments.responders import EchoResponder
from botdeploy.deployments.schemas import DeploymentConfig
from botdeploy.main import create_app
from botdeploy.services import build_services

from conftest import FakeSession, platform_api

SIGNING_SECRET = "slack-signing-secret"
PRIVATE_KEY = rsa.generate_private_key(public_exponent=65537, key_size=2048)
PUBLIC_PEM = PRIVATE_KEY.public_key().public_bytes(
    serialization.Encoding.PEM, serialization.PublicFormat.SubjectPublicKeyInfo
).decode()


@pytest.fixture
def http_session():
    return FakeSession(default=platform_api)


@pytest.fixture
def client(monkeypatch, tmp_path, http_session, slack_api):
    monkeypatch.setenv("LOG_DIR", str(tmp_path))
    limiter.reset()
    deployments = InMemoryDeploymentRepository(
        [
            DeploymentRecord(
                bot_id="bot-1",
                owner_id="owner-1",
                platform=PlatformType.SLACK,
                platform_account_id="T1",
                config=DeploymentConfig(),
            ),
            DeploymentRecord(
                bot_id="bot-2",
                owner_id="owner-2",
                platform=PlatformType.GOHIGHLEVEL,
                platform_account_id="loc-1",
                config=DeploymentConfig.model_validate(
                    {"channels": [{"type": "SMS", "active": True}]}
                ),
            ),
        ]
    )
    credentials = InMemoryCredentialStore(
        [
            PlatformCredential(
                provider="slack", owner_id="owner-1", access_token="xoxb-1", platform_account_id="T1"
            ),
            PlatformCredential(
                provider="gohighlevel",
                owner_id="owner-2",
                access_token="ghl-1",
                refresh_token="ghl-r",
                platform_account_id="loc-1",
            ),
        ]
    )
    services = build_services(
        deployments=deployments,
        conversations=InMemoryConversationRepository(),
        credentials=credentials,
        responder=EchoResponder(),
        http_session=http_session,
        slack=SlackSettings(client_id="c", client_secret="s", signing_secret=SIGNING_SECRET),
        gohighlevel=GoHighLevelSettings(client_id="c", client_secret="s", public_key=PUBLIC_PEM),
        routing=RoutingSettings(request_timeout=5.0),
        slack_web_client=slack_api,
    )
    with TestClient(create_app(services)) as test_client:
        yield test_client


def _slack_post(client, payload, *, secret=SIGNING_SECRET):
    body = json.dumps(payload).encode()
    ts = str(int(time.time()))
    signature = "v0=" + hmac.new(
        secret.encode(), b"v0:" + ts.encode() + b":" + body, hashlib.sha256
    ).hexdigest()
    return client.post(
        "/api/apps/slack/events",
        content=body,
        headers={
            "Content-Type": "application/json",
            "X-Slack-Request-Timestamp": ts,
            "X-Slack-Signature": signature,
        },
    )


def _ghl_post(client, payload, *, signature=None):
    body = json.dumps(payload).encode()
    if signature is None:
        signature = base64.b64encode(
            PRIVATE_KEY.sign(body, padding.PKCS1v15(), hashes.SHA256())
        ).decode()
    return client.post(
        "/api/apps/gohighlevel/events",
        content=body,
        headers={"Content-Type": "application/json", "x-wh-signature": signature},
    )


def _slack_event(event_id="Ev1", team_id="T1", text="hello"):
    return {
        "type": "event_callback",
        "team_id": team_id,
        "event_id": event_id,
        "event": {
            "type": "message",
            "channel_type": "im",
            "channel": "D1",
            "ts": "100.1",
            "text": text,
            "user": "U1",
        },
    }


def _ghl_event(**overrides):
    payload = {
        "type": "InboundMessage",
        "direction": "inbound",
        "locationId": "loc-1",
        "contactId": "contact-1",
        "conversationId": "conv-1",
        "messageType": "SMS",
        "body": "hi",
        "messageId": "m-1",
        "timestamp": dt.datetime.now(dt.timezone.utc).isoformat(),
    }
    payload.update(overrides)
    return payload


def test_health_and_version(client):
    assert client.get("/api/health").json() == {"status": "ok"}
    assert "version" in client.get("/api/version").json()


def test_slack_url_verification(client):
    resp = _slack_post(client, {"type": "url_verification", "challenge": "abc123"})

    assert resp.status_code == 200
    assert resp.json() == {"challenge": "abc123"}


def test_slack_rejects_bad_signature(client, slack_api):
    resp = _slack_post(client, _slack_event(), secret="wrong")

    assert resp.status_code == 401
    assert slack_api.calls == []


def test_slack_unknown_team_is_not_found(client):
    resp = _slack_post(client, _slack_event(team_id="T-unknown"))

    assert resp.status_code == 404
    assert resp.json() == {"error": "Integration not found"}


def test_slack_event_is_processed_in_background(client, slack_api):
    resp = _slack_post(client, _slack_event())

    assert resp.status_code == 200
    assert resp.json() == {"success": True}
    posts = slack_api.calls_to("chat.postMessage")
    assert [call["text"] for call in posts] == ["You said: hello"]
    assert posts[0]["token"] == "xoxb-1"


def test_slack_duplicate_deliveries_are_dropped(client, slack_api):
    assert _slack_post(client, _slack_event(event_id="EvDup")).status_code == 200
    assert _slack_post(client, _slack_event(event_id="EvDup")).json() == {"success": True}

    assert len(slack_api.calls_to("chat.postMessage")) == 1


def test_slack_missing_event_is_bad_request(client):
    resp = _slack_post(client, {"type": "event_callback", "team_id": "T1"})

    assert resp.status_code == 400


def test_gohighlevel_inbound_message_round_trip(client, http_session):
    resp = _ghl_post(client, _ghl_event())

    assert resp.status_code == 200
    sent = http_session.calls_to("/conversations/messages")
    assert len(sent) == 1
    assert sent[0]["json"]["message"] == "You said: hi"
    assert sent[0]["json"]["contactId"] == "contact-1"
    assert sent[0]["headers"]["Authorization"] == "Bearer ghl-1"


def test_gohighlevel_rejects_bad_signature(client, http_session):
    resp = _ghl_post(client, _ghl_event(), signature=base64.b64encode(b"forged").decode())

    assert resp.status_code == 401
    assert http_session.requests == []


def test_gohighlevel_rejects_stale_timestamp(client, http_session):
    old = (dt.datetime.now(dt.timezone.utc) - dt.timedelta(minutes=10)).isoformat()

    resp = _ghl_post(client, _ghl_event(timestamp=old))

    assert resp.status_code == 400
    assert http_session.requests == []


@pytest.mark.parametrize(
    "payload",
    [
        {"type": "ContactTagUpdate", "locationId": "loc-1", "id": "contact-1", "tags": ["vip"]},
        _ghl_event(type="OutboundMessage", direction="outbound"),
    ],
)
def test_gohighlevel_non_inbound_events_are_acknowledged(client, http_session, payload):
    resp = _ghl_post(client, payload)

    assert resp.json() == {"success": True}
    assert http_session.requests == []


def test_gohighlevel_unknown_location_is_not_found(client):
    resp = _ghl_post(client, _ghl_event(locationId="loc-unknown", messageId="m-9"))

    assert resp.status_code == 404
    assert resp.json() == {"error": "Integration not found"}


def test_gohighlevel_duplicate_message_ids(client, http_session):
    _ghl_post(client, _ghl_event(messageId="m-dup"))
    _ghl_post(client, _ghl_event(messageId="m-dup"))

    assert len(http_session.calls_to("/conversations/messages")) == 1


def test_slack_retry_after_not_found_is_processed_once_configured(client, slack_api):
    event = _slack_event(event_id="EvLate", team_id="T2")
    assert _slack_post(client, event).status_code == 404

    client.app.state.services.deployments.add(
        DeploymentRecord(
            bot_id="bot-3",
            owner_id="owner-1",
            platform=PlatformType.SLACK,
            platform_account_id="T2",
            config=DeploymentConfig(),
        )
    )
    client.app.state.services.tokens.store.update(
        PlatformCredential(
            provider="slack", owner_id="owner-1", access_token="xoxb-2", platform_account_id="T2"
        )
    )

    assert _slack_post(client, event).json() == {"success": True}
    assert [call["token"] for call in slack_api.calls_to("chat.postMessage")] == ["xoxb-2"]


def test_gohighlevel_retry_after_not_found_is_processed_once_configured(client, http_session):
    event = _ghl_event(locationId="loc-late", messageId="m-late")
    assert _ghl_post(client, event).status_code == 404

    client.app.state.services.deployments.add(
        DeploymentRecord(
            bot_id="bot-4",
            owner_id="owner-2",
            platform=PlatformType.GOHIGHLEVEL,
            platform_account_id="loc-late",
            config=DeploymentConfig.model_validate({"channels": [{"type": "SMS", "active": True}]}),
        )
    )
    client.app.state.services.tokens.store.update(
        PlatformCredential(
            provider="gohighlevel",
            owner_id="owner-2",
            access_token="ghl-late",
            platform_account_id="loc-late",
        )
    )

    assert _ghl_post(client, event).json() == {"success": True}
    sent = http_session.calls_to("/conversations/messages")
    assert [call["headers"]["Authorization"] for call in sent] == ["Bearer ghl-late"]

import datetime as dt
import uuid

import pytest

from botdeploy.auth.credentials import PlatformCredential, SQLAlchemyCredentialStore
from botdeploy.conversations import repository as conversation_repository
from botdeploy.conversations.repository import SQLAlchemyConversationRepository
from botdeploy.deployments.platform import PlatformType
from botdeploy.deployments.repository import DeploymentRecord, SQLAlchemyDeploymentRepository
from botdeploy.deployments.schemas import DeploymentConfig
from botdeploy.models import Conversation, Deployment
from botdeploy.models.session import session_scope


@pytest.fixture
def ticking_clock(monkeypatch):
    start = dt.datetime(2024, 5, 1, 9, 0, tzinfo=dt.timezone.utc)
    ticks = iter(range(10_000))

    def _now():
        return start + dt.timedelta(seconds=next(ticks))

    monkeypatch.setattr(conversation_repository, "utcnow", _now)
    return _now


def test_upsert_conversation_is_idempotent(sqlite_factory):
    repo = SQLAlchemyConversationRepository(sqlite_factory)
    conversation_id = uuid.uuid4()
    kwargs = dict(bot_id="bot-1", external_user_id="U1", source="slack", metadata={"channel": "C1"})

    first = repo.upsert_conversation(conversation_id, **kwargs)
    with session_scope(sqlite_factory) as session:
        session.get(Conversation, conversation_id).status = "PAUSED"
    second = repo.upsert_conversation(conversation_id, **kwargs)

    assert first.id == second.id == conversation_id
    assert second.status == "ACTIVE"
    assert second.metadata == {"channel": "C1"}
    with session_scope(sqlite_factory) as session:
        assert session.query(Conversation).count() == 1


def test_recent_messages_are_bounded_and_oldest_first(sqlite_factory, ticking_clock):
    repo = SQLAlchemyConversationRepository(sqlite_factory)
    conversation_id = uuid.uuid4()
    repo.upsert_conversation(conversation_id, bot_id="b", external_user_id="U1", source="slack")
    for index in range(12):
        role = "user" if index % 2 == 0 else "assistant"
        repo.add_message(conversation_id, role, f"message {index}")

    history = repo.recent_messages(conversation_id, limit=10)

    assert [row.content for row in history] == [f"message {i}" for i in range(2, 12)]


def test_response_messages_survive_storage(sqlite_factory):
    repo = SQLAlchemyConversationRepository(sqlite_factory)
    conversation_id = uuid.uuid4()
    repo.upsert_conversation(conversation_id, bot_id="b", external_user_id="U1", source="slack")
    parts = [{"role": "assistant", "content": [{"type": "text", "text": "hi"}]}]

    repo.add_message(conversation_id, "assistant", "hi", response_messages=parts)

    assert repo.recent_messages(conversation_id)[0].response_messages == parts


def test_credential_update_is_last_writer_wins(sqlite_factory):
    store = SQLAlchemyCredentialStore(sqlite_factory)
    credential = PlatformCredential(
        provider="gohighlevel",
        owner_id="owner-1",
        access_token="a1",
        refresh_token="r1",
        platform_account_id="loc-1",
        expires_at=dt.datetime(2030, 1, 1, tzinfo=dt.timezone.utc),
    )
    store.update(credential)

    replacement = PlatformCredential(
        provider="gohighlevel",
        owner_id="owner-1",
        access_token="a2",
        refresh_token="r2",
        platform_account_id="loc-1",
    )
    stored = store.update(replacement)

    assert stored.id == credential.id
    assert store.get_by_access_token("gohighlevel", "a1") is None
    found = store.get_by_access_token("gohighlevel", "a2")
    assert found.refresh_token == "r2"
    assert found.expires_at is None
    assert store.get_by_owner("owner-1", "gohighlevel").access_token == "a2"


def test_credential_expiry_comes_back_timezone_aware(sqlite_factory):
    store = SQLAlchemyCredentialStore(sqlite_factory)
    expires = dt.datetime(2030, 1, 1, 12, tzinfo=dt.timezone.utc)
    store.update(
        PlatformCredential(provider="slack", owner_id="o", access_token="x", expires_at=expires)
    )

    assert store.get_by_owner("o", "slack").expires_at == expires


def test_deployment_lookup_by_account_and_bot(sqlite_factory):
    repo = SQLAlchemyDeploymentRepository(sqlite_factory)
    config = DeploymentConfig.model_validate(
        {"locationId": "loc-1", "channels": [{"type": "SMS", "active": True}]}
    )
    repo.add(
        DeploymentRecord(
            bot_id="bot-1",
            owner_id="owner-1",
            platform=PlatformType.GOHIGHLEVEL,
            platform_account_id="loc-1",
            config=config,
        )
    )
    with session_scope(sqlite_factory) as session:
        session.add(
            Deployment(
                bot_id="bot-1",
                owner_id="owner-1",
                platform="gohighlevel",
                platform_account_id="loc-2",
                config={"version": 99},
            )
        )

    found = repo.find_by_account(PlatformType.GOHIGHLEVEL, "loc-1")
    assert found is not None
    assert found.config.active_channels()[0].type == "SMS"
    assert repo.find_by_account(PlatformType.SLACK, "loc-1") is None
    assert repo.get_for_bot("bot-1", PlatformType.GOHIGHLEVEL, "loc-1").bot_id == "bot-1"
    # The row with an unknown config version is skipped.
    assert [d.platform_account_id for d in repo.list_for_bot("bot-1", PlatformType.GOHIGHLEVEL)] == ["loc-1"]

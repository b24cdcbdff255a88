"""Tests for the escalation HTTP client."""

import uuid
from datetime import UTC, datetime, timedelta

import httpx
import pytest

from tests.conftest import make_friends, make_user
from wakecheck.client.api_client import (
    EscalationApiClient,
    EscalationApiError,
    EscalationTransportError,
)
from wakecheck.core.security import create_access_token
from wakecheck.main import app

T0 = datetime(2026, 3, 2, 6, 30, tzinfo=UTC)


def client_for(user) -> EscalationApiClient:
    return EscalationApiClient(
        "http://test",
        create_access_token(user.id),
        transport=httpx.ASGITransport(app=app),
    )


def mock_client(handler) -> EscalationApiClient:
    return EscalationApiClient(
        "http://test", "token", transport=httpx.MockTransport(handler)
    )


class TestAgainstServer:
    @pytest.mark.asyncio
    async def test_create_get_snooze_dismiss(self, db_session):
        owner = await make_user(db_session, "Owner")
        friend = await make_user(db_session, "Friend")
        await make_friends(db_session, owner, friend)

        async with client_for(owner) as api:
            created = await api.create_escalation(
                alarm_id="alarm-1",
                trigger_time=T0,
                delay_minutes=5,
                friend_ids=[friend.id],
            )
            assert created.escalation_time == T0 + timedelta(minutes=5)

            deadline = await api.snooze(created.event_id, 5)
            assert deadline == T0 + timedelta(minutes=10)

            first = await api.dismiss(created.event_id)
            second = await api.dismiss(created.event_id)
            assert (first.status, first.changed) == ("dismissed", True)
            assert (second.status, second.changed) == ("dismissed", False)

            remote = await api.get_escalation(created.event_id)
            assert remote.status == "dismissed"

    @pytest.mark.asyncio
    async def test_create_and_snooze_repeat_safely(self, db_session):
        owner = await make_user(db_session, "Owner")
        friend = await make_user(db_session, "Friend")
        await make_friends(db_session, owner, friend)
        event_id = uuid.uuid4()

        async with client_for(owner) as api:
            created = [
                await api.create_escalation(
                    alarm_id="alarm-1",
                    trigger_time=T0,
                    delay_minutes=5,
                    friend_ids=[friend.id],
                    event_id=event_id,
                )
                for _ in range(2)
            ]
            deadlines = [
                await api.snooze(
                    event_id, 9, expected_escalation_time=created[0].escalation_time
                )
                for _ in range(2)
            ]

        assert [remote.event_id for remote in created] == [event_id, event_id]
        assert deadlines == [T0 + timedelta(minutes=14)] * 2

    @pytest.mark.asyncio
    async def test_unknown_event_is_api_error(self, db_session):
        owner = await make_user(db_session)

        async with client_for(owner) as api:
            with pytest.raises(EscalationApiError) as exc_info:
                await api.get_escalation(uuid.uuid4())

        assert exc_info.value.status_code == 404


class TestTransportFailures:
    @pytest.mark.asyncio
    async def test_connection_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        async with mock_client(handler) as api:
            with pytest.raises(EscalationTransportError):
                await api.dismiss(uuid.uuid4())

    @pytest.mark.asyncio
    async def test_server_error_is_transport_error(self):
        def handler(request):
            return httpx.Response(503, json={"detail": "Escalation store unavailable"})

        async with mock_client(handler) as api:
            with pytest.raises(EscalationTransportError):
                await api.snooze(uuid.uuid4(), 5)

    @pytest.mark.asyncio
    async def test_conflict_is_api_error(self):
        def handler(request):
            return httpx.Response(409, json={"detail": "Escalation is dismissed"})

        async with mock_client(handler) as api:
            with pytest.raises(EscalationApiError) as exc_info:
                await api.snooze(uuid.uuid4(), 5)

        assert exc_info.value.detail == "Escalation is dismissed"

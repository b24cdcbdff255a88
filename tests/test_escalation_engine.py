"""Tests for the escalation sweep."""

import uuid
from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock, patch

import pytest

from tests.conftest import make_user
from wakecheck.config import settings
from wakecheck.database import get_session_maker
from wakecheck.models.escalation_event import EscalationStatus
from wakecheck.services import escalation_engine
from wakecheck.services.escalation_engine import process_due_escalations
from wakecheck.services.escalation_store import (
    create_event,
    get_event,
    transition_event,
)
from wakecheck.services.push import PushDeliveryError

T0 = datetime(2026, 3, 2, 6, 30, tzinfo=UTC)


async def open_event(db, owner, friends, *, trigger=T0, delay=5, message=None):
    return await create_event(
        db,
        user_id=owner.id,
        alarm_id="alarm-1",
        trigger_time=trigger,
        escalation_time=trigger + timedelta(minutes=delay),
        friend_ids=[f.id for f in friends],
        message=message,
    )


class TestProcessDueEscalations:
    @pytest.mark.asyncio
    async def test_nothing_due(self, db_session):
        owner = await make_user(db_session, "Owner")
        friend = await make_user(db_session, "Friend")
        await open_event(db_session, owner, [friend])
        sender = AsyncMock(return_value=True)

        result = await process_due_escalations(
            db_session, now=T0 + timedelta(minutes=4), sender=sender
        )

        assert result.due == 0
        assert result.escalated == 0
        sender.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_escalates_and_skips_friend_without_address(self, db_session):
        owner = await make_user(db_session, "Jamie")
        reachable = await make_user(db_session, "Reachable", push_token="token-a")
        unreachable = await make_user(db_session, "Unreachable", push_token=None)
        event = await open_event(db_session, owner, [reachable, unreachable])
        sender = AsyncMock(return_value=True)
        now = T0 + timedelta(minutes=5)

        result = await process_due_escalations(db_session, now=now, sender=sender)

        assert result.escalated == 1
        assert result.notifications_attempted == 1
        assert result.notifications_delivered == 1
        assert result.skipped_no_address == 1
        sender.assert_awaited_once()

        message = sender.await_args.args[0]
        assert message.token == "token-a"
        assert message.title == "Jamie needs help waking up!"
        assert message.body == "Their alarm has been going off for 5 minutes."
        assert message.data == {
            "type": "friend_alarm",
            "user_id": str(owner.id),
            "event_id": str(event.id),
        }

        event = await get_event(db_session, event.id)
        assert event.status == EscalationStatus.ESCALATED.value
        assert event.escalated_at == now

    @pytest.mark.asyncio
    async def test_dismissed_event_untouched(self, db_session):
        owner = await make_user(db_session, "Owner")
        friend = await make_user(db_session, "Friend")
        event = await open_event(db_session, owner, [friend])
        dismissed_at = T0 + timedelta(minutes=3)
        await transition_event(
            db_session,
            event.id,
            EscalationStatus.PENDING,
            EscalationStatus.DISMISSED,
            at=dismissed_at,
        )
        sender = AsyncMock(return_value=True)

        result = await process_due_escalations(
            db_session, now=T0 + timedelta(minutes=6), sender=sender
        )

        assert result.due == 0
        sender.assert_not_awaited()
        event = await get_event(db_session, event.id)
        assert event.status == "dismissed"
        assert event.dismissed_at == dismissed_at
        assert event.escalated_at is None

    @pytest.mark.asyncio
    async def test_second_tick_is_a_noop(self, db_session):
        owner = await make_user(db_session, "Owner")
        friend = await make_user(db_session, "Friend")
        await open_event(db_session, owner, [friend])
        sender = AsyncMock(return_value=True)
        now = T0 + timedelta(minutes=5)

        first = await process_due_escalations(db_session, now=now, sender=sender)
        second = await process_due_escalations(
            db_session, now=now + timedelta(minutes=1), sender=sender
        )

        assert first.escalated == 1
        assert second.due == 0
        assert sender.await_count == 1

    @pytest.mark.asyncio
    async def test_delivery_failure_still_escalates(self, db_session):
        owner = await make_user(db_session, "Owner")
        friend_a = await make_user(db_session, "A", push_token="token-a")
        friend_b = await make_user(db_session, "B", push_token="token-b")
        event = await open_event(db_session, owner, [friend_a, friend_b])

        async def sender(message):
            if message.token == "token-a":
                raise PushDeliveryError("gateway down")
            return True

        result = await process_due_escalations(
            db_session, now=T0 + timedelta(minutes=5), sender=sender
        )

        assert result.escalated == 1
        assert result.notifications_attempted == 2
        assert result.notifications_delivered == 1
        assert (await get_event(db_session, event.id)).status == "escalated"

    @pytest.mark.asyncio
    async def test_owner_name_fallback_and_custom_message(self, db_session):
        owner = await make_user(db_session, "   ")
        friend = await make_user(db_session, "Friend")
        await open_event(db_session, owner, [friend], message="Bang on my door")
        sender = AsyncMock(return_value=True)

        await process_due_escalations(
            db_session, now=T0 + timedelta(minutes=6), sender=sender
        )

        message = sender.await_args.args[0]
        assert message.title == "Someone needs help waking up!"
        assert message.body == (
            "Their alarm has been going off for 6 minutes. \"Bang on my door\""
        )

    @pytest.mark.asyncio
    async def test_stale_event_fires_after_outage(self, db_session):
        owner = await make_user(db_session, "Owner")
        friend = await make_user(db_session, "Friend")
        event = await open_event(db_session, owner, [friend])
        sender = AsyncMock(return_value=True)

        result = await process_due_escalations(
            db_session, now=T0 + timedelta(hours=5), sender=sender
        )

        assert result.escalated_event_ids == [event.id]

    @pytest.mark.asyncio
    async def test_lost_race_drops_notifications(self, db_session):
        owner = await make_user(db_session, "Owner")
        friend = await make_user(db_session, "Friend")
        event = await open_event(db_session, owner, [friend])
        sender = AsyncMock(return_value=True)
        original_plan = escalation_engine.plan_escalation

        async def plan_then_user_dismisses(db, due, now, planned):
            plan = await original_plan(db, due, now, planned)
            async with get_session_maker()() as other:
                await transition_event(
                    other, due.event_id, EscalationStatus.PENDING, EscalationStatus.DISMISSED
                )
            return plan

        with patch.object(escalation_engine, "plan_escalation", plan_then_user_dismisses):
            result = await process_due_escalations(
                db_session, now=T0 + timedelta(minutes=5), sender=sender
            )

        assert result.lost_races == 1
        assert result.escalated == 0
        sender.assert_not_awaited()
        assert (await get_event(db_session, event.id)).status == "dismissed"

    @pytest.mark.asyncio
    async def test_planning_failure_isolated_to_one_event(self, db_session):
        broken_owner = await make_user(db_session, "Broken")
        owner = await make_user(db_session, "Owner")
        friend = await make_user(db_session, "Friend")
        broken = await open_event(db_session, broken_owner, [friend])
        healthy = await open_event(db_session, owner, [friend])
        broken_owner_id, broken_id, healthy_id = broken_owner.id, broken.id, healthy.id
        sender = AsyncMock(return_value=True)
        original_resolve = escalation_engine._resolve_owner_name

        async def resolve(db, user_id):
            if user_id == broken_owner_id:
                raise RuntimeError("lookup failed")
            return await original_resolve(db, user_id)

        with patch.object(escalation_engine, "_resolve_owner_name", resolve):
            result = await process_due_escalations(
                db_session, now=T0 + timedelta(minutes=5), sender=sender
            )

        assert result.errors == 1
        assert result.escalated_event_ids == [healthy_id]
        assert (await get_event(db_session, broken_id)).status == "pending"
        assert (await get_event(db_session, healthy_id)).status == "escalated"


class TestSweepRateLimit:
    @pytest.mark.asyncio
    async def test_over_limit_friend_skipped_but_event_escalates(self, db_session):
        owner = await make_user(db_session, "Owner")
        friend = await make_user(db_session, "Friend")
        now = T0 + timedelta(minutes=30)

        for minutes_ago in (5, 15, 25):
            past = await open_event(db_session, owner, [friend], trigger=T0 - timedelta(hours=1))
            await transition_event(
                db_session,
                past.id,
                EscalationStatus.PENDING,
                EscalationStatus.ESCALATED,
                at=now - timedelta(minutes=minutes_ago),
            )

        event = await open_event(db_session, owner, [friend])
        sender = AsyncMock(return_value=True)

        result = await process_due_escalations(db_session, now=now, sender=sender)

        assert result.escalated_event_ids == [event.id]
        assert result.skipped_rate_limited == 1
        sender.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_limit_counts_notifications_planned_in_same_tick(self, db_session):
        friend = await make_user(db_session, "Friend")
        owners = [await make_user(db_session, f"Owner {i}") for i in range(4)]
        for owner in owners:
            await open_event(db_session, owner, [friend])
        sender = AsyncMock(return_value=True)

        result = await process_due_escalations(
            db_session, now=T0 + timedelta(minutes=5), sender=sender
        )

        assert result.escalated == 4
        assert sender.await_count == settings.escalation_rate_limit_max
        assert result.skipped_rate_limited == 1

    @pytest.mark.asyncio
    async def test_limit_not_enforced_when_disabled(self, db_session, monkeypatch):
        monkeypatch.setattr(settings, "escalation_enforce_rate_limit", False)
        friend = await make_user(db_session, "Friend")
        owners = [await make_user(db_session, f"Owner {i}") for i in range(4)]
        for owner in owners:
            await open_event(db_session, owner, [friend])
        sender = AsyncMock(return_value=True)

        await process_due_escalations(
            db_session, now=T0 + timedelta(minutes=5), sender=sender
        )

        assert sender.await_count == 4

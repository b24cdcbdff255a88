"""Tests for escalation lifecycle operations and wake-up stats."""

import uuid
from datetime import UTC, date, datetime, timedelta

import pytest

from tests.conftest import make_friends, make_user
from wakecheck.models.escalation_event import EscalationStatus
from wakecheck.services.escalation_store import (
    EscalationAlreadyExistsError,
    EscalationNotFoundError,
    InvalidStateError,
    get_event,
    list_events_for_user,
    transition_event,
)
from wakecheck.services.escalations import (
    HistoryAccessDeniedError,
    compute_streaks,
    dismiss_escalation,
    get_escalation_history,
    get_wake_stats,
    snooze_escalation,
    trigger_escalation,
)

T0 = datetime(2026, 3, 2, 6, 30, tzinfo=UTC)


async def owner_with_friend(db):
    owner = await make_user(db, "Owner")
    friend = await make_user(db, "Friend")
    await make_friends(db, owner, friend)
    return owner, friend


async def trigger(db, owner, friend, *, trigger_time=T0, delay=5, event_id=None):
    return await trigger_escalation(
        db,
        owner.id,
        alarm_id="alarm-1",
        trigger_time=trigger_time,
        delay_minutes=delay,
        friend_ids=[friend.id],
        event_id=event_id,
    )


class TestTriggerEscalation:
    @pytest.mark.asyncio
    async def test_creates_event_with_deadline(self, db_session):
        owner, friend = await owner_with_friend(db_session)

        event = await trigger(db_session, owner, friend)

        assert event.status == "pending"
        assert event.escalation_time == T0 + timedelta(minutes=5)
        assert event.friend_ids == [friend.id]

    @pytest.mark.asyncio
    async def test_rejects_non_friends(self, db_session):
        owner, friend = await owner_with_friend(db_session)
        stranger = await make_user(db_session, "Stranger")

        with pytest.raises(ValueError, match="Not friends"):
            await trigger_escalation(
                db_session,
                owner.id,
                alarm_id="alarm-1",
                trigger_time=T0,
                delay_minutes=5,
                friend_ids=[friend.id, stranger.id],
            )

    @pytest.mark.asyncio
    async def test_rejects_empty_friend_list(self, db_session):
        owner = await make_user(db_session)
        with pytest.raises(ValueError):
            await trigger_escalation(
                db_session,
                owner.id,
                alarm_id="alarm-1",
                trigger_time=T0,
                delay_minutes=5,
                friend_ids=[],
            )

    @pytest.mark.asyncio
    async def test_naive_trigger_time_treated_as_utc(self, db_session):
        owner, friend = await owner_with_friend(db_session)

        event = await trigger(db_session, owner, friend, trigger_time=T0.replace(tzinfo=None))

        assert event.trigger_time == T0

    @pytest.mark.asyncio
    async def test_repeated_trigger_with_same_id_returns_existing(self, db_session):
        owner, friend = await owner_with_friend(db_session)
        event_id = uuid.uuid4()

        first = await trigger(db_session, owner, friend, event_id=event_id)
        second = await trigger(db_session, owner, friend, event_id=event_id)

        assert first.id == second.id == event_id
        assert len(await list_events_for_user(db_session, owner.id)) == 1

    @pytest.mark.asyncio
    async def test_trigger_id_taken_by_another_owner(self, db_session):
        owner, friend = await owner_with_friend(db_session)
        event = await trigger(db_session, owner, friend)
        other = await make_user(db_session, "Other")
        await make_friends(db_session, other, friend)

        with pytest.raises(EscalationAlreadyExistsError):
            await trigger(db_session, other, friend, event_id=event.id)


class TestDismissEscalation:
    @pytest.mark.asyncio
    async def test_dismiss_pending(self, db_session):
        owner, friend = await owner_with_friend(db_session)
        event = await trigger(db_session, owner, friend)

        outcome = await dismiss_escalation(db_session, owner.id, event.id)

        assert outcome.changed is True
        assert outcome.event.status == "dismissed"
        assert outcome.event.dismissed_at is not None

    @pytest.mark.asyncio
    async def test_dismiss_twice_is_idempotent(self, db_session):
        owner, friend = await owner_with_friend(db_session)
        event = await trigger(db_session, owner, friend)
        await dismiss_escalation(db_session, owner.id, event.id)

        outcome = await dismiss_escalation(db_session, owner.id, event.id)

        assert outcome.changed is False
        assert outcome.event.status == "dismissed"

    @pytest.mark.asyncio
    async def test_dismiss_after_escalation_reports_escalated(self, db_session):
        owner, friend = await owner_with_friend(db_session)
        event = await trigger(db_session, owner, friend)
        await transition_event(
            db_session, event.id, EscalationStatus.PENDING, EscalationStatus.ESCALATED
        )

        outcome = await dismiss_escalation(db_session, owner.id, event.id)

        assert outcome.changed is False
        assert outcome.event.status == "escalated"
        assert (await get_event(db_session, event.id)).dismissed_at is None

    @pytest.mark.asyncio
    async def test_dismiss_someone_elses_event(self, db_session):
        owner, friend = await owner_with_friend(db_session)
        event = await trigger(db_session, owner, friend)

        with pytest.raises(EscalationNotFoundError):
            await dismiss_escalation(db_session, friend.id, event.id)


class TestSnoozeEscalation:
    @pytest.mark.asyncio
    async def test_snooze_adds_to_current_deadline(self, db_session):
        owner, friend = await owner_with_friend(db_session)
        event = await trigger(db_session, owner, friend)

        event = await snooze_escalation(db_session, owner.id, event.id, 9)

        assert event.escalation_time == T0 + timedelta(minutes=14)

    @pytest.mark.asyncio
    async def test_snooze_terminal_event(self, db_session):
        owner, friend = await owner_with_friend(db_session)
        event = await trigger(db_session, owner, friend)
        await dismiss_escalation(db_session, owner.id, event.id)

        with pytest.raises(InvalidStateError):
            await snooze_escalation(db_session, owner.id, event.id, 5)

    @pytest.mark.asyncio
    async def test_repeated_snooze_with_expected_deadline_applies_once(self, db_session):
        owner, friend = await owner_with_friend(db_session)
        event = await trigger(db_session, owner, friend)
        seen = event.escalation_time

        for _ in range(2):
            event = await snooze_escalation(
                db_session, owner.id, event.id, 9, expected_escalation_time=seen
            )

        assert event.escalation_time == T0 + timedelta(minutes=14)


class TestHistory:
    @pytest.mark.asyncio
    async def test_own_history_newest_first(self, db_session):
        owner, friend = await owner_with_friend(db_session)
        first = await trigger(db_session, owner, friend, trigger_time=T0 - timedelta(days=1))
        second = await trigger(db_session, owner, friend)

        events = await get_escalation_history(db_session, owner.id, owner.id)

        assert [e.id for e in events] == [second.id, first.id]

    @pytest.mark.asyncio
    async def test_default_limit(self, db_session):
        owner, friend = await owner_with_friend(db_session)
        for day in range(25):
            await trigger(db_session, owner, friend, trigger_time=T0 - timedelta(days=day))

        events = await get_escalation_history(db_session, owner.id, owner.id)

        assert len(events) == 20

    @pytest.mark.asyncio
    async def test_other_users_history_denied(self, db_session):
        owner, friend = await owner_with_friend(db_session)
        with pytest.raises(HistoryAccessDeniedError):
            await get_escalation_history(db_session, friend.id, owner.id)


class TestComputeStreaks:
    def test_empty(self):
        assert compute_streaks(set(), date(2026, 3, 10)) == (0, 0)

    def test_current_streak_includes_today(self):
        today = date(2026, 3, 10)
        days = {today, today - timedelta(days=1), today - timedelta(days=2)}
        assert compute_streaks(days, today) == (3, 3)

    def test_current_streak_zero_without_today(self):
        today = date(2026, 3, 10)
        days = {today - timedelta(days=1), today - timedelta(days=2)}
        assert compute_streaks(days, today) == (0, 2)

    def test_best_streak_across_gaps(self):
        today = date(2026, 3, 10)
        days = {
            date(2026, 2, 1), date(2026, 2, 2), date(2026, 2, 3), date(2026, 2, 4),
            date(2026, 3, 9), today,
        }
        assert compute_streaks(days, today) == (2, 4)


class TestWakeStats:
    @pytest.mark.asyncio
    async def test_totals_and_streaks(self, db_session):
        owner, friend = await owner_with_friend(db_session)
        now = T0 + timedelta(hours=1)

        for days_ago in (0, 1, 2):
            event = await trigger(
                db_session, owner, friend, trigger_time=T0 - timedelta(days=days_ago)
            )
            await dismiss_escalation(db_session, owner.id, event.id)

        escalated = await trigger(db_session, owner, friend, trigger_time=T0 - timedelta(days=3))
        await transition_event(
            db_session, escalated.id, EscalationStatus.PENDING, EscalationStatus.ESCALATED
        )
        await trigger(db_session, owner, friend)  # still pending

        stats = await get_wake_stats(db_session, owner.id, now=now)

        assert stats.total_alarms == 5
        assert stats.dismissed_on_time == 3
        assert stats.escalated == 1
        assert stats.current_streak == 3
        assert stats.best_streak == 3
        assert stats.success_rate == 60.0

    @pytest.mark.asyncio
    async def test_no_alarms(self, db_session):
        owner = await make_user(db_session)

        stats = await get_wake_stats(db_session, owner.id, now=T0)

        assert stats.total_alarms == 0
        assert stats.success_rate == 0.0
        assert stats.current_streak == 0

    @pytest.mark.asyncio
    async def test_other_users_events_ignored(self, db_session):
        owner, friend = await owner_with_friend(db_session)
        event = await trigger(db_session, owner, friend)
        await dismiss_escalation(db_session, owner.id, event.id)

        stats = await get_wake_stats(db_session, friend.id, now=T0)

        assert stats.total_alarms == 0

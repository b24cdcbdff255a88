"""Client-side escalation coordinator.

Reacts to alarm signals by opening, dismissing and snoozing escalation
events on the server, and runs one local backup timer per alarm-fire
cycle. The server is the authority on whether friends are notified; the
coordinator keeps two deadlines per cycle so its own belief never
silently replaces the server's:

- ``local_deadline``: when the device believes escalation happens,
  updated optimistically on snooze even when the server is unreachable.
- ``confirmed_deadline``: the deadline the server last acknowledged.
"""

import asyncio
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta

from wakecheck.client.alarm import Alarm, AlarmDismissed, AlarmFired, AlarmSignal, AlarmSnoozed
from wakecheck.client.api_client import (
    DismissResult,
    EscalationApiError,
    EscalationApiClient,
    EscalationTransportError,
)
from wakecheck.client.backup_timer import BackupTimer
from wakecheck.logging_config import get_logger

logger = get_logger(__name__)

WARNING_TITLE = "Still trying to wake up?"
WARNING_BODY = "Your friend will be notified soon. Dismiss your alarm to cancel."

DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_RETRY_DELAY_SECONDS = 1.0


class EscalationSyncError(Exception):
    """A remote escalation call failed after retries.

    Recoverable: the UI should offer a retry, since the server may still
    escalate at the old deadline.
    """

    def __init__(self, operation: str, event_id: uuid.UUID | None, cause: Exception):
        self.operation = operation
        self.event_id = event_id
        super().__init__(f"Could not {operation} escalation {event_id}: {cause}")


class DeadlineDivergenceError(Exception):
    """The locally believed deadline differs from the server's."""

    def __init__(
        self,
        event_id: uuid.UUID,
        local_deadline: datetime,
        confirmed_deadline: datetime,
    ):
        self.event_id = event_id
        self.local_deadline = local_deadline
        self.confirmed_deadline = confirmed_deadline
        super().__init__(
            f"Escalation {event_id} deadline diverged: local "
            f"{local_deadline.isoformat()}, server {confirmed_deadline.isoformat()}"
        )


@dataclass(frozen=True)
class LocalWarning:
    """A notification shown only to the alarm owner."""

    alarm_id: str
    event_id: uuid.UUID | None
    title: str = WARNING_TITLE
    body: str = WARNING_BODY


WarningSink = Callable[[LocalWarning], Awaitable[None]]


@dataclass
class EscalationCycle:
    """State of one alarm-fire cycle."""

    alarm_id: str
    event_id: uuid.UUID | None
    local_deadline: datetime
    confirmed_deadline: datetime | None
    timer: BackupTimer = field(repr=False)
    # Client-chosen id sent with the create; event_id is set once confirmed
    requested_event_id: uuid.UUID | None = None

    @property
    def diverged(self) -> bool:
        return (
            self.confirmed_deadline is not None
            and self.local_deadline != self.confirmed_deadline
        )


def _utcnow() -> datetime:
    return datetime.now(UTC)


class EscalationCoordinator:
    """Drive escalation events from alarm signals.

    Args:
        api: Client for the escalation endpoints.
        warn: Shows a local warning notification to the owner.
        clock: Returns the current time (aware, UTC).
        seconds_per_minute: Scales every timer; tests pass a small value.
        max_attempts: Attempts per remote dismiss/snooze/create call.
        retry_delay: Seconds between attempts.
    """

    def __init__(
        self,
        api: EscalationApiClient,
        warn: WarningSink,
        *,
        clock: Callable[[], datetime] = _utcnow,
        seconds_per_minute: float = 60.0,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        retry_delay: float = DEFAULT_RETRY_DELAY_SECONDS,
    ):
        self._api = api
        self._warn = warn
        self._clock = clock
        self._seconds_per_minute = seconds_per_minute
        self._max_attempts = max(1, max_attempts)
        self._retry_delay = retry_delay
        self._cycles: dict[str, EscalationCycle] = {}

    @property
    def cycles(self) -> dict[str, EscalationCycle]:
        """Active cycles by alarm id."""
        return dict(self._cycles)

    def cycle_for_event(self, event_id: uuid.UUID) -> EscalationCycle | None:
        for cycle in self._cycles.values():
            if cycle.event_id == event_id:
                return cycle
        return None

    async def _with_retries(self, operation: str, event_id: uuid.UUID | None, call):
        attempt = 1
        while True:
            try:
                return await call()
            except EscalationTransportError as exc:
                if attempt >= self._max_attempts:
                    logger.error(
                        "Escalation call failed, giving up",
                        operation=operation,
                        event_id=str(event_id),
                        attempts=attempt,
                        error=str(exc),
                    )
                    raise EscalationSyncError(operation, event_id, exc) from exc
                logger.warning(
                    "Escalation call failed, retrying",
                    operation=operation,
                    event_id=str(event_id),
                    attempt=attempt,
                )
                attempt += 1
                await asyncio.sleep(self._retry_delay)

    def _start_timer(self, cycle: EscalationCycle) -> None:
        remaining = (cycle.local_deadline - self._clock()).total_seconds()
        cycle.timer.start(remaining / 60.0 * self._seconds_per_minute)

    def _retire(self, cycle: EscalationCycle) -> None:
        cycle.timer.cancel()
        if self._cycles.get(cycle.alarm_id) is cycle:
            del self._cycles[cycle.alarm_id]

    async def alarm_triggered(
        self,
        alarm: Alarm,
        fired_at: datetime | None = None,
    ) -> uuid.UUID | None:
        """Open an escalation for a fired alarm.

        Returns None without contacting the server when the alarm has
        escalation disabled or no friends. If the server cannot be
        reached the backup timer still starts, then EscalationSyncError
        is raised.

        The event id is chosen here and sent with every attempt, so a
        retry after a lost response finds the event the first attempt
        created instead of opening a second one.
        """
        if not alarm.escalates:
            logger.debug("Alarm does not escalate", alarm_id=alarm.id)
            return None

        previous = self._cycles.get(alarm.id)
        if previous is not None:
            self._retire(previous)

        trigger_time = fired_at or self._clock()
        requested_id = uuid.uuid4()
        cycle = EscalationCycle(
            alarm_id=alarm.id,
            event_id=None,
            local_deadline=trigger_time + timedelta(minutes=alarm.escalation_delay_minutes),
            confirmed_deadline=None,
            timer=BackupTimer(lambda: self._on_timer(alarm.id), name=f"backup-{alarm.id}"),
            requested_event_id=requested_id,
        )
        self._cycles[alarm.id] = cycle
        self._start_timer(cycle)

        remote = await self._with_retries(
            "create",
            None,
            lambda: self._api.create_escalation(
                alarm_id=alarm.id,
                trigger_time=trigger_time,
                delay_minutes=alarm.escalation_delay_minutes,
                friend_ids=list(alarm.escalation_friend_ids),
                message=alarm.escalation_message,
                event_id=requested_id,
            ),
        )
        cycle.event_id = remote.event_id
        cycle.confirmed_deadline = remote.escalation_time

        logger.info(
            "Escalation opened",
            alarm_id=alarm.id,
            event_id=str(remote.event_id),
            escalation_time=remote.escalation_time.isoformat(),
        )
        return remote.event_id

    async def alarm_dismissed(self, event_id: uuid.UUID | None) -> DismissResult | None:
        """Cancel the backup timer and dismiss the event on the server.

        A no-op when there is no event. The timer is cancelled before the
        remote call, so a failed dismissal still silences the local
        warning; the failure is raised as EscalationSyncError.
        """
        if event_id is None:
            return None

        cycle = self.cycle_for_event(event_id)
        if cycle is not None:
            self._retire(cycle)

        result = await self._with_retries(
            "dismiss", event_id, lambda: self._api.dismiss(event_id)
        )
        logger.info(
            "Escalation dismissed",
            event_id=str(event_id),
            status=result.status,
            changed=result.changed,
        )
        return result

    async def _dismiss_unconfirmed(self, requested_id: uuid.UUID) -> DismissResult | None:
        """Dismiss an event whose create was never acknowledged.

        The create may still have reached the server, so the requested id
        is dismissed too; a 404 means nothing was opened.
        """
        try:
            return await self.alarm_dismissed(requested_id)
        except EscalationApiError as e:
            if e.status_code != 404:
                raise
            logger.debug("Unconfirmed escalation was never created", event_id=str(requested_id))
            return None

    async def alarm_snoozed(
        self,
        event_id: uuid.UUID | None,
        additional_minutes: int,
    ) -> datetime | None:
        """Extend the deadline locally and on the server.

        The local deadline and backup timer move first. If the server
        call fails the confirmed deadline stays at the old value and
        EscalationSyncError is raised; the server may still escalate at
        that old deadline.

        Raises:
            DeadlineDivergenceError: If the server acknowledged a
                deadline different from the local one.
        """
        if event_id is None:
            return None
        if additional_minutes <= 0:
            raise ValueError("additional_minutes must be positive")

        cycle = self.cycle_for_event(event_id)
        expected = None
        if cycle is not None:
            expected = cycle.confirmed_deadline
            cycle.local_deadline += timedelta(minutes=additional_minutes)
            self._start_timer(cycle)

        confirmed = await self._with_retries(
            "snooze",
            event_id,
            lambda: self._api.snooze(
                event_id,
                additional_minutes,
                expected_escalation_time=expected,
            ),
        )

        if cycle is not None:
            cycle.confirmed_deadline = confirmed
            if cycle.diverged:
                raise DeadlineDivergenceError(event_id, cycle.local_deadline, confirmed)

        logger.info(
            "Escalation snoozed",
            event_id=str(event_id),
            escalation_time=confirmed.isoformat(),
        )
        return confirmed

    async def check_deadline(self, event_id: uuid.UUID) -> str:
        """Refresh the confirmed deadline from the server.

        Returns:
            The server-side status.

        Raises:
            DeadlineDivergenceError: If the local deadline disagrees.
        """
        remote = await self._api.get_escalation(event_id)
        cycle = self.cycle_for_event(event_id)
        if cycle is None:
            return remote.status

        cycle.confirmed_deadline = remote.escalation_time
        if remote.status != "pending":
            self._retire(cycle)
        elif cycle.diverged:
            raise DeadlineDivergenceError(
                event_id, cycle.local_deadline, remote.escalation_time
            )
        return remote.status

    async def _on_timer(self, alarm_id: str) -> None:
        """Backup timer expiry: warn the owner unless the server settled it."""
        cycle = self._cycles.get(alarm_id)
        if cycle is None:
            return

        status = None
        if cycle.event_id is not None:
            try:
                remote = await self._api.get_escalation(cycle.event_id)
                status = remote.status
            except (EscalationTransportError, EscalationApiError) as e:
                logger.warning(
                    "Could not confirm escalation state",
                    alarm_id=alarm_id,
                    event_id=str(cycle.event_id),
                    error=str(e),
                )

        if status not in (None, "pending"):
            logger.debug("Escalation already settled", alarm_id=alarm_id, status=status)
            return

        await self._warn(LocalWarning(alarm_id=alarm_id, event_id=cycle.event_id))
        logger.info("Local escalation warning shown", alarm_id=alarm_id)

    async def handle(self, signal: AlarmSignal) -> None:
        """Apply one alarm signal, routing by alarm id."""
        if isinstance(signal, AlarmFired):
            await self.alarm_triggered(signal.alarm, signal.fired_at)
        elif isinstance(signal, AlarmDismissed):
            cycle = self._cycles.get(signal.alarm_id)
            if cycle is None:
                return
            self._retire(cycle)
            if cycle.event_id is not None:
                await self.alarm_dismissed(cycle.event_id)
            elif cycle.requested_event_id is not None:
                await self._dismiss_unconfirmed(cycle.requested_event_id)
        elif isinstance(signal, AlarmSnoozed):
            cycle = self._cycles.get(signal.alarm_id)
            if cycle is None:
                return
            if cycle.event_id is None:
                cycle.local_deadline += timedelta(minutes=signal.additional_minutes)
                self._start_timer(cycle)
                return
            await self.alarm_snoozed(cycle.event_id, signal.additional_minutes)

    async def run(self, signals: "asyncio.Queue[AlarmSignal | None]") -> None:
        """Consume signals until a None sentinel arrives.

        Sync failures are logged and the loop keeps going, so one
        unreachable call does not stop later signals.
        """
        try:
            while True:
                signal = await signals.get()
                try:
                    if signal is None:
                        return
                    await self.handle(signal)
                except (
                    EscalationSyncError,
                    DeadlineDivergenceError,
                    EscalationApiError,
                ) as exc:
                    logger.error(
                        "Escalation signal failed",
                        signal=type(signal).__name__,
                        error=str(exc),
                    )
                finally:
                    signals.task_done()
        finally:
            await self.aclose()

    async def aclose(self) -> None:
        """Cancel every backup timer."""
        for cycle in list(self._cycles.values()):
            self._retire(cycle)

    async def __aenter__(self) -> "EscalationCoordinator":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

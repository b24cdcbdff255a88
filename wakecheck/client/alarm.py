"""Alarm configuration and the signals the alarm scheduler emits."""

import uuid
from dataclasses import dataclass, field
from datetime import datetime

# Delays the app offers before friends are woken up
ESCALATION_DELAY_OPTIONS = (2, 5, 10, 15)
DEFAULT_ESCALATION_DELAY_MINUTES = 5


@dataclass
class Alarm:
    """An alarm as configured on the device."""

    id: str
    label: str = ""
    escalation_enabled: bool = False
    escalation_delay_minutes: int = DEFAULT_ESCALATION_DELAY_MINUTES
    escalation_friend_ids: list[uuid.UUID] = field(default_factory=list)
    escalation_message: str | None = None

    def __post_init__(self) -> None:
        if self.escalation_delay_minutes not in ESCALATION_DELAY_OPTIONS:
            raise ValueError(
                f"escalation_delay_minutes must be one of {ESCALATION_DELAY_OPTIONS}"
            )

    @property
    def escalates(self) -> bool:
        """Whether firing this alarm should open an escalation."""
        return self.escalation_enabled and bool(self.escalation_friend_ids)


@dataclass(frozen=True)
class AlarmFired:
    alarm: Alarm
    fired_at: datetime | None = None


@dataclass(frozen=True)
class AlarmDismissed:
    alarm_id: str


@dataclass(frozen=True)
class AlarmSnoozed:
    alarm_id: str
    additional_minutes: int


AlarmSignal = AlarmFired | AlarmDismissed | AlarmSnoozed

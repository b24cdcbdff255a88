"""Device-side escalation coordination."""

from wakecheck.client.alarm import (
    ESCALATION_DELAY_OPTIONS,
    Alarm,
    AlarmDismissed,
    AlarmFired,
    AlarmSignal,
    AlarmSnoozed,
)
from wakecheck.client.api_client import (
    DismissResult,
    EscalationApiClient,
    EscalationApiError,
    EscalationTransportError,
    RemoteEscalation,
)
from wakecheck.client.backup_timer import BackupTimer
from wakecheck.client.coordinator import (
    DeadlineDivergenceError,
    EscalationCoordinator,
    EscalationSyncError,
    LocalWarning,
)

__all__ = [
    "ESCALATION_DELAY_OPTIONS",
    "Alarm",
    "AlarmDismissed",
    "AlarmFired",
    "AlarmSignal",
    "AlarmSnoozed",
    "BackupTimer",
    "DeadlineDivergenceError",
    "DismissResult",
    "EscalationApiClient",
    "EscalationApiError",
    "EscalationCoordinator",
    "EscalationSyncError",
    "EscalationTransportError",
    "LocalWarning",
    "RemoteEscalation",
]

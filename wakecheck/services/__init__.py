# Business Logic Services
from wakecheck.services.escalation_engine import SweepResult, process_due_escalations
from wakecheck.services.scheduler import (
    check_escalations,
    get_scheduler,
    start_scheduler,
    stop_scheduler,
)

__all__ = [
    "SweepResult",
    "process_due_escalations",
    "check_escalations",
    "get_scheduler",
    "start_scheduler",
    "stop_scheduler",
]

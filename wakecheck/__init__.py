"""WakeCheck: friend-escalation backend for a social alarm clock."""

__version__ = "0.1.0"

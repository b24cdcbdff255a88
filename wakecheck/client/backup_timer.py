"""Local backup timer.

One timer per alarm-fire cycle, owned by the coordinator. It only ever
warns the alarm owner locally; escalation decisions stay on the server.
"""

import asyncio
from collections.abc import Awaitable, Callable

from wakecheck.logging_config import get_logger

logger = get_logger(__name__)


class BackupTimer:
    """A cancellable, restartable one-shot timer backed by an asyncio task."""

    def __init__(self, callback: Callable[[], Awaitable[None]], *, name: str = "backup-timer"):
        self._callback = callback
        self._name = name
        self._task: asyncio.Task | None = None
        self.fired = False

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self, delay_seconds: float) -> None:
        """Arm the timer, replacing any previous countdown."""
        self.cancel()
        self.fired = False
        self._task = asyncio.create_task(
            self._run(max(0.0, delay_seconds)), name=self._name
        )

    def cancel(self) -> None:
        """Stop the countdown. Safe to call when not running."""
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None

    async def wait(self) -> None:
        """Wait for the current countdown (and callback) to finish."""
        task = self._task
        if task is not None:
            await asyncio.wait({task})

    async def _run(self, delay_seconds: float) -> None:
        await asyncio.sleep(delay_seconds)
        self.fired = True
        try:
            await self._callback()
        except Exception:
            logger.exception("Backup timer callback failed", timer=self._name)

    async def __aenter__(self) -> "BackupTimer":
        return self

    async def __aexit__(self, *exc_info) -> None:
        self.cancel()

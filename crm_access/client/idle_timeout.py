"""
client/idle_timeout.py
----------------------
Inactivity sign-out for tenant sessions.

The countdown restarts on every touch(). When `warning_before` seconds are
left the warning callback fires; from then on ordinary activity no longer
counts and only stay_signed_in() restarts the countdown. When the timeout
runs out the idle callback fires once and the timer stops.
"""

import asyncio
import inspect
from typing import Any, Awaitable, Callable, Optional, Union

from crm_access.core.logging import get_logger

logger = get_logger(__name__)

IdleCallback = Callable[[], Union[Awaitable[Any], Any]]


async def _notify(callback: Optional[IdleCallback]) -> None:
    if callback is None:
        return
    result = callback()
    if inspect.isawaitable(result):
        await result


class IdleTimeout:

    def __init__(
        self,
        on_idle: IdleCallback,
        on_warning: Optional[IdleCallback] = None,
        on_active: Optional[IdleCallback] = None,
        timeout: float = 900.0,
        warning_before: float = 120.0,
    ) -> None:
        self._on_idle = on_idle
        self._on_warning = on_warning
        self._on_active = on_active
        self._timeout = timeout
        self._warning_before = min(max(warning_before, 0.0), timeout)
        self._task: Optional[asyncio.Task] = None
        self._activity = asyncio.Event()
        self._last_activity = 0.0
        self._warning = False

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def warning(self) -> bool:
        return self._warning

    def remaining(self) -> float:
        """Seconds until the idle sign-out, 0 when not running."""
        if not self.running:
            return 0.0
        return max(0.0, self._last_activity + self._timeout - self._now())

    def start(self) -> None:
        if self.running:
            return
        self._warning = False
        self._last_activity = self._now()
        self._activity = asyncio.Event()
        self._task = asyncio.create_task(self._run())
        logger.info("Idle timer started", timeout=self._timeout)

    async def stop(self) -> None:
        task, self._task = self._task, None
        self._warning = False
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    def touch(self) -> bool:
        """
        Record user activity. Ignored while the warning is showing.

        Returns:
            True if the countdown was restarted.
        """
        if not self.running or self._warning:
            return False
        self._last_activity = self._now()
        self._activity.set()
        return True

    async def stay_signed_in(self) -> None:
        if not self.running:
            return
        was_warning = self._warning
        self._warning = False
        self._last_activity = self._now()
        self._activity.set()
        if was_warning:
            logger.info("Idle warning dismissed")
            await _notify(self._on_active)

    @staticmethod
    def _now() -> float:
        return asyncio.get_running_loop().time()

    async def _run(self) -> None:
        while True:
            self._activity.clear()
            deadline = self._last_activity + self._timeout
            if not self._warning:
                delay = deadline - self._warning_before - self._now()
                if delay <= 0:
                    self._warning = True
                    logger.info("Idle warning", remaining=round(self.remaining(), 1))
                    await _notify(self._on_warning)
                    continue
            else:
                delay = deadline - self._now()
                if delay <= 0:
                    logger.info("Idle timeout reached, signing out")
                    # Detach first: the idle callback usually ends up in stop()
                    self._task = None
                    self._warning = False
                    await _notify(self._on_idle)
                    return
            try:
                await asyncio.wait_for(self._activity.wait(), timeout=delay)
            except asyncio.TimeoutError:
                pass

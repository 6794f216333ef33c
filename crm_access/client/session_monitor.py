"""
client/session_monitor.py
-------------------------
Background poll of the backend's session check for the privileged console.

A login elsewhere supersedes this session server-side; the monitor notices
within one poll interval, tears down the local context and hands control to
the re-authentication callback. An unreachable backend does not end the
session.
"""

import asyncio
import inspect
from typing import Any, Awaitable, Callable, Optional, Union

from crm_access.client.backend import BackendClient
from crm_access.client.context import SessionContext
from crm_access.client.store import LocalStore
from crm_access.core.errors import UpstreamUnreachable
from crm_access.core.logging import get_logger

logger = get_logger(__name__)

InvalidatedCallback = Callable[[], Union[Awaitable[Any], Any]]


class SessionMonitor:

    def __init__(
        self,
        backend: BackendClient,
        context: SessionContext,
        on_invalidated: InvalidatedCallback,
        interval: float = 60.0,
        store: Optional[LocalStore] = None,
    ) -> None:
        self._backend = backend
        self._context = context
        self._on_invalidated = on_invalidated
        self._interval = interval
        self._store = store
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def check_once(self) -> bool:
        """
        One poll. Returns False if the session was found invalid (and has
        been torn down), True otherwise.
        """
        token = self._context.admin_token
        if token is None:
            return True
        try:
            valid = await self._backend.session_valid(token)
        except UpstreamUnreachable as exc:
            logger.warning("Session check unreachable, keeping session", error=exc.detail)
            return True
        if valid:
            return True

        logger.info("Session no longer valid, signing out")
        self._context.teardown()
        if self._store is not None:
            self._context.persist(self._store)
        result = self._on_invalidated()
        if inspect.isawaitable(result):
            await result
        return False

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._loop())
        logger.info("Session monitor started", interval=self._interval)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Session monitor stopped")

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            try:
                if not await self.check_once():
                    return
            except Exception as exc:
                logger.error(
                    "Session check failed, polling continues", error=str(exc), exc_info=True
                )

"""Periodic re-fetch of pending applications to correct the live badge."""
from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable

from marketplace_realtime.application.exceptions import AuthExpired
from marketplace_realtime.domain.entities.application import ApplicationSummary
from marketplace_realtime.services.application_badge import ApplicationBadge

logger = logging.getLogger(__name__)

FetchApplications = Callable[[], Awaitable[list[ApplicationSummary]]]


class PendingApplicationsPoller:
    """Background task independent from the live event path."""

    def __init__(self, fetch: FetchApplications, badge: ApplicationBadge, *, interval: float) -> None:
        self._fetch = fetch
        self._badge = badge
        self._interval = interval
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def refresh_once(self) -> int:
        applications = await self._fetch()
        return self._badge.reconcile(applications)

    async def start(self) -> None:
        self._task = asyncio.create_task(self._run(), name="pending-applications-poller")
        logger.info("Pending applications poller started (interval=%.0fs)", self._interval)

    async def stop(self) -> None:
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
            logger.info("Pending applications poller stopped")

    async def _run(self) -> None:
        while True:
            try:
                await self.refresh_once()
            except AuthExpired:
                logger.warning("Pending applications poller stopping: token rejected")
                return
            except Exception:
                logger.exception("Pending applications refresh failed")
            await asyncio.sleep(self._interval)

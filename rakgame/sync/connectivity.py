import asyncio
import logging
from typing import Awaitable, Callable, List, Optional

import requests

from rakgame.sync.queue import DrainResult, SyncQueue

logger = logging.getLogger(__name__)

ReconnectListener = Callable[[DrainResult], Awaitable[None]]


def _plural(count: int) -> str:
    return 's' if count > 1 else ''


class ConnectivityObserver:
    """
    Tracks online/offline state and drains the sync queue when the connection
    comes back.

    Each offline-to-online transition schedules one drain after ``settle_delay``
    seconds. If the connection drops again before the delay is over nothing is
    replayed. Reconnect listeners (typically the record stores' refetch) run once
    the drain has finished.
    """

    def __init__(
        self,
        queue: SyncQueue,
        notifier,
        settle_delay: float = 1.0,
        probe_url: Optional[str] = None,
        probe_timeout: float = 3.0,
        online: bool = True
    ):
        self.queue = queue
        self.notifier = notifier
        self.settle_delay = settle_delay
        self.probe_url = probe_url
        self.probe_timeout = probe_timeout
        self._online = online
        self._sync_task: Optional[asyncio.Task] = None
        self._listeners: List[ReconnectListener] = []

    @property
    def is_online(self) -> bool:
        return self._online

    def add_reconnect_listener(self, listener: ReconnectListener) -> None:
        self._listeners.append(listener)

    def set_online(self, online: bool) -> Optional[asyncio.Task]:
        """
        Record the current connectivity state.

        Returns the scheduled sync task on an offline-to-online transition, None
        otherwise. Must be called from inside the event loop.
        """
        was_online = self._online
        self._online = online
        if online == was_online:
            return None

        logger.info("Connection restored" if online else "Connection lost")
        if not online:
            return None

        if self._sync_task is not None and not self._sync_task.done():
            return None
        self._sync_task = asyncio.get_running_loop().create_task(self._sync_after_settle())
        return self._sync_task

    async def wait_for_sync(self) -> Optional[DrainResult]:
        """Wait for the scheduled sync, if any, and return its result"""
        if self._sync_task is None:
            return None
        return await self._sync_task

    async def _sync_after_settle(self) -> DrainResult:
        await asyncio.sleep(self.settle_delay)
        if not self._online:
            logger.info("Connection dropped during settle delay, sync skipped")
            return DrainResult()

        result = await self.sync_now()
        for listener in list(self._listeners):
            try:
                await listener(result)
            except Exception:
                logger.exception("Reconnect listener failed")
        return result

    async def sync_now(self) -> DrainResult:
        """Drain the queue immediately and report the outcome"""
        if not self._online or self.queue.length() == 0:
            return DrainResult()

        try:
            result = await self.queue.drain()
        except Exception as e:
            logger.error(f"Error processing sync queue: {str(e)}")
            self.notifier.error('Failed to sync pending changes')
            return DrainResult()

        if result.succeeded > 0:
            self.notifier.success(f"Synced {result.succeeded} pending change{_plural(result.succeeded)}")
        if result.failed > 0:
            self.notifier.error(f"Failed to sync {result.failed} change{_plural(result.failed)}")
        return result

    def _probe_once(self) -> bool:
        try:
            requests.head(self.probe_url, timeout=self.probe_timeout)
            return True
        except requests.RequestException as e:
            logger.debug(f"Connectivity probe failed: {str(e)}")
            return False

    async def probe(self) -> bool:
        """Check whether the backend host answers at all"""
        if not self.probe_url:
            return self._online
        return await asyncio.to_thread(self._probe_once)

    async def watch(self, interval: float = 5.0, stop: Optional[asyncio.Event] = None) -> None:
        """Poll the probe and feed the result to set_online until stop is set"""
        while stop is None or not stop.is_set():
            self.set_online(await self.probe())
            if stop is None:
                await asyncio.sleep(interval)
            else:
                try:
                    await asyncio.wait_for(stop.wait(), timeout=interval)
                except asyncio.TimeoutError:
                    pass

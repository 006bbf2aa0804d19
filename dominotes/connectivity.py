from __future__ import annotations
from typing import Any, Awaitable, Callable, Optional
import asyncio
import logging

log = logging.getLogger(__name__)

Probe = Callable[[], Awaitable[bool]]


class ConnectivityMonitor:
    """
    Tracks whether the server is reachable and fires ``on_online`` when it
    comes back.

    Only a transition to online triggers ``on_online``, once per transition;
    going offline just flips the flag. The callback runs as a single-slot
    task: a trigger while the previous run is still going is ignored.
    """

    def __init__(
        self,
        on_online: Callable[[], Awaitable[Any]],
        probe: Optional[Probe] = None,
        online: bool = True,
    ):
        self._on_online = on_online
        self._probe = probe
        self._online = online
        self._task: Optional[asyncio.Task] = None
        self._watcher: Optional[asyncio.Task] = None

    @property
    def is_online(self) -> bool:
        return self._online

    @property
    def syncing(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self, online: Optional[bool] = None) -> None:
        """Take the current reachability and catch up on queued work if online.

        Without an explicit reading the probe is asked.
        """
        if online is None and self._probe is not None:
            online = await self._probe()
        if online is not None:
            self._online = online
        log.info("Starting %s", "online" if self._online else "offline")
        if self._online:
            self._trigger()

    def notify(self, online: bool) -> None:
        """Feed a reachability reading; acts only on transitions."""
        if online == self._online:
            return
        self._online = online
        if online:
            log.info("Back online")
            self._trigger()
        else:
            log.info("Gone offline")

    def _trigger(self) -> None:
        if self.syncing:
            log.debug("Sync already scheduled; ignoring trigger")
            return
        self._task = asyncio.create_task(self._on_online())

    async def wait_idle(self) -> Any:
        """Wait for the running sync task, returning its result."""
        if self._task is None:
            return None
        return await self._task

    async def watch(self, interval: float = 5.0) -> None:
        """Poll the probe forever, feeding each reading to ``notify``."""
        if self._probe is None:
            raise RuntimeError("watch() needs a probe")
        while True:
            await asyncio.sleep(interval)
            self.notify(await self._probe())

    def start_watching(self, interval: float = 5.0) -> None:
        if self._watcher is None or self._watcher.done():
            self._watcher = asyncio.create_task(self.watch(interval))

    async def stop(self) -> None:
        if self._watcher is not None:
            self._watcher.cancel()
            try:
                await self._watcher
            except asyncio.CancelledError:
                pass
            self._watcher = None
        # a running pass is never cancelled, only awaited
        if self._task is not None:
            await self._task

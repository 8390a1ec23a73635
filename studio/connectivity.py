"""
Connectivity Monitor - tracks whether the remote store is reachable

Features:
1. Online/offline flag the persistence client consults before each attempt
2. Listeners fired when connectivity is lost or restored
3. Optional probe loop against the remote health check, with exponential
   backoff while the remote stays down
"""

import asyncio
from enum import Enum
from typing import Optional, List, Callable, Awaitable

from studio.config import StudioConfig
from studio.logging_config import logger


class ConnectionStatus(str, Enum):
    ONLINE = "online"
    OFFLINE = "offline"


Listener = Callable[[], Awaitable[None]]
HealthCheck = Callable[[], Awaitable[bool]]


class ConnectivityMonitor:
    """
    Usage:
        monitor = ConnectivityMonitor(config)
        monitor.on_restored(persistence.replay_pending)

        await monitor.set_online(False)
        await monitor.set_online(True)   # fires on_restored listeners

        monitor.start_probe(remote.health)
    """

    def __init__(self, config: StudioConfig, online: bool = True):
        self.config = config
        self.status = ConnectionStatus.ONLINE if online else ConnectionStatus.OFFLINE
        self.failed_probes = 0
        self._restored_listeners: List[Listener] = []
        self._lost_listeners: List[Listener] = []
        self._probe_task: Optional[asyncio.Task] = None

    @property
    def is_online(self) -> bool:
        return self.status == ConnectionStatus.ONLINE

    def on_restored(self, listener: Listener) -> None:
        self._restored_listeners.append(listener)

    def on_lost(self, listener: Listener) -> None:
        self._lost_listeners.append(listener)

    async def set_online(self, online: bool) -> None:
        """Record a connectivity change and notify listeners on transitions"""
        new_status = ConnectionStatus.ONLINE if online else ConnectionStatus.OFFLINE
        if new_status == self.status:
            return

        self.status = new_status
        if online:
            self.failed_probes = 0
            logger.info("Remote store reachable again")
            await self._notify(self._restored_listeners)
        else:
            logger.warning("Remote store unreachable - working offline")
            await self._notify(self._lost_listeners)

    async def _notify(self, listeners: List[Listener]) -> None:
        for listener in list(listeners):
            try:
                await listener()
            except Exception as e:
                logger.log_error_with_context(e, context="connectivity listener")

    def _get_backoff_delay(self) -> float:
        """Probe delay while offline, doubling per failed probe"""
        delay = self.config.probe_interval * (2 ** self.failed_probes)
        return min(delay, self.config.probe_max_delay)

    async def probe(self, check: HealthCheck) -> bool:
        """Run one health check and update the status"""
        try:
            healthy = await check()
        except Exception as e:
            logger.debug(f"Health probe failed: {e}")
            healthy = False

        if not healthy:
            self.failed_probes += 1
        await self.set_online(healthy)
        return healthy

    def start_probe(self, check: HealthCheck) -> None:
        """Probe the remote periodically until stop_probe() is called"""
        async def probe_loop():
            while True:
                try:
                    delay = self.config.probe_interval if self.is_online else self._get_backoff_delay()
                    await asyncio.sleep(delay)
                    await self.probe(check)
                except asyncio.CancelledError:
                    break

        if self._probe_task is None:
            self._probe_task = asyncio.create_task(probe_loop())

    async def stop_probe(self) -> None:
        if self._probe_task:
            self._probe_task.cancel()
            try:
                await self._probe_task
            except asyncio.CancelledError:
                pass
            self._probe_task = None

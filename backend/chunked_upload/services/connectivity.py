from __future__ import annotations

import asyncio
import contextlib
import enum
import logging
from typing import Awaitable, Callable

from chunked_upload.core.config import settings

logger = logging.getLogger(__name__)


class ConnectionStatus(str, enum.Enum):
    ONLINE = "online"
    OFFLINE = "offline"
    UNSTABLE = "unstable"


StatusListener = Callable[[ConnectionStatus], None]


class ConnectivityMonitor:
    """Combines a passive network-state signal with periodic health probes.

    ``network_available`` is the cheap local signal (interface up, OS
    reachability flag); ``probe`` hits the upload API. A failing probe while
    the signal still reports a network is reported as ``UNSTABLE``.
    """

    def __init__(
        self,
        probe: Callable[[], Awaitable[bool]] | None = None,
        network_available: Callable[[], bool] | None = None,
        interval: float | None = None,
    ) -> None:
        self._probe = probe
        self._network_available = network_available or (lambda: True)
        self.interval = interval or settings.client_probe_interval_seconds
        self._state = ConnectionStatus.ONLINE
        self._listeners: list[StatusListener] = []
        self._task: asyncio.Task[None] | None = None
        self._pending_refreshes: set[asyncio.Task[ConnectionStatus]] = set()

    def current_state(self) -> ConnectionStatus:
        return self._state

    @property
    def is_offline(self) -> bool:
        return self._state is ConnectionStatus.OFFLINE

    def on_change(self, callback: StatusListener) -> Callable[[], None]:
        self._listeners.append(callback)

        def _unsubscribe() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return _unsubscribe

    def _set_state(self, state: ConnectionStatus) -> None:
        if state is self._state:
            return
        logger.info("Connection status changed: %s -> %s", self._state.value, state.value)
        self._state = state
        for listener in list(self._listeners):
            listener(state)

    def check_network(self) -> ConnectionStatus:
        if not self._network_available():
            self._set_state(ConnectionStatus.OFFLINE)
        elif self._state is ConnectionStatus.OFFLINE:
            self._set_state(ConnectionStatus.ONLINE)
        return self._state

    async def refresh(self) -> ConnectionStatus:
        if not self._network_available():
            self._set_state(ConnectionStatus.OFFLINE)
        elif self._probe is None:
            self._set_state(ConnectionStatus.ONLINE)
        elif await self._probe():
            self._set_state(ConnectionStatus.ONLINE)
        else:
            logger.warning("Network reported up but the upload API did not answer the probe")
            self._set_state(ConnectionStatus.UNSTABLE)
        return self._state

    def notify_network_change(self) -> None:
        self.check_network()
        task = asyncio.get_running_loop().create_task(self.refresh())
        self._pending_refreshes.add(task)
        task.add_done_callback(self._pending_refreshes.discard)

    async def wait_until_online(
        self,
        poll_interval: float = 1.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        while self.check_network() is ConnectionStatus.OFFLINE:
            await sleep(poll_interval)

    async def _run(self) -> None:
        while True:
            await self.refresh()
            await asyncio.sleep(self.interval)

    def start(self) -> None:
        if self._task is None or self._task.done():
            self._task = asyncio.get_running_loop().create_task(self._run())

    async def stop(self) -> None:
        tasks = [task for task in (self._task, *self._pending_refreshes) if task is not None]
        self._task = None
        for task in tasks:
            task.cancel()
        for task in tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task

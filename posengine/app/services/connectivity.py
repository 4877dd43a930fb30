from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)

Listener = Callable[[bool], Awaitable[None] | None]


class ConnectivityMonitor:
    """Tracks whether the remote store is reachable.

    Probes ``ping`` every *interval* seconds and notifies listeners only on
    transitions (online -> offline or back). Listeners may be plain or async
    callables; they receive the new state.
    """

    def __init__(
        self,
        ping: Callable[[], Awaitable[bool]],
        interval: float = 15.0,
        initially_online: bool = True,
    ) -> None:
        self._ping = ping
        self.interval = interval
        self._online = initially_online
        self._listeners: list[Listener] = []
        self._task: asyncio.Task[None] | None = None

    @property
    def is_online(self) -> bool:
        return self._online

    def add_listener(self, listener: Listener) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    def remove_listener(self, listener: Listener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    async def set_online(self, online: bool) -> None:
        if online == self._online:
            return
        self._online = online
        logger.info("Remote store is now %s", "reachable" if online else "unreachable")
        for listener in list(self._listeners):
            try:
                result = listener(online)
                if asyncio.iscoroutine(result):
                    await result
            except Exception:
                logger.exception("Connectivity listener failed")

    async def probe(self) -> bool:
        try:
            online = await self._ping()
        except Exception as exc:
            logger.debug("Connectivity probe failed: %s", exc)
            online = False
        await self.set_online(online)
        return online

    async def _run(self) -> None:
        while True:
            await self.probe()
            await asyncio.sleep(self.interval)

    def start(self) -> None:
        if self._task is None or self._task.done():
            self._task = asyncio.get_running_loop().create_task(self._run())

    async def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

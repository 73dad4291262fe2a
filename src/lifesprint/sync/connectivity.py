"""Online/offline signal shared by the sync engine and its triggers."""
import logging
from typing import Awaitable, Callable, List

logger = logging.getLogger(__name__)

Listener = Callable[[bool], None]


class ConnectivityMonitor:
    """
    Boolean observable. Listeners are called on transitions only, with the
    new state, in subscription order.
    """

    def __init__(self, online: bool = True):
        self._online = online
        self._listeners: List[Listener] = []

    @property
    def is_online(self) -> bool:
        return self._online

    def subscribe(self, listener: Listener) -> Listener:
        self._listeners.append(listener)
        return listener

    def unsubscribe(self, listener: Listener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def set_online(self, online: bool) -> None:
        """Record the current state and notify listeners if it changed."""
        online = bool(online)
        if online == self._online:
            return
        self._online = online
        logger.info("Connectivity %s", "restored" if online else "lost")
        for listener in list(self._listeners):
            listener(online)

    async def probe(self, check: Callable[[], Awaitable[bool]]) -> bool:
        """Update the state from an async reachability check (e.g. RemoteStore.ping)."""
        online = await check()
        self.set_online(online)
        return self._online

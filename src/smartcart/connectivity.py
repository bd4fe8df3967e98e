"""Network connectivity signal."""

import inspect
from collections.abc import Awaitable, Callable
from typing import Any

from .logging import get_logger

logger = get_logger(__name__)

OnlineCallback = Callable[[], Awaitable[Any] | Any]


class ConnectivityMonitor:
    """Holds the online/offline flag and notifies subscribers on reconnect.

    The platform layer calls set_online() when the network state changes.
    Callbacks fire only on the offline -> online edge.
    """

    def __init__(self, online: bool = True):
        self._online = online
        self._subscribers: list[OnlineCallback] = []

    @property
    def is_online(self) -> bool:
        return self._online

    def subscribe(self, callback: OnlineCallback) -> Callable[[], None]:
        """Register a callback for the online edge.

        Returns:
            A function that removes the subscription
        """
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    async def set_online(self, online: bool) -> None:
        """Update the flag, awaiting subscribers if we just came back online."""
        was_online = self._online
        self._online = online
        if online and not was_online:
            logger.info("Connectivity restored, notifying %d subscriber(s)", len(self._subscribers))
            for callback in list(self._subscribers):
                try:
                    outcome = callback()
                    if inspect.isawaitable(outcome):
                        await outcome
                except Exception:
                    logger.exception("Online subscriber failed")

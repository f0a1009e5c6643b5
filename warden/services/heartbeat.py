"""
Group Warden - Idle-Prevention Heartbeat
========================================

Keeps the session looking active by sending a typing indicator to every
conversation that has a lock enabled.

DESIGN:
    Indicators are sent one conversation at a time, ``heartbeat_spacing``
    seconds apart. They are not remote mutations, so they skip the global
    gate. A disconnect-type failure ends the round and asks the session
    manager to reconnect; any other failure is logged and the round goes on.
"""

import asyncio
from typing import Callable, Optional

from warden.core.config import Config
from warden.core.logger import logger
from warden.core.store import PolicyStore
from warden.transport.base import DisconnectedError, Transport, TransportError


class Heartbeat:
    """Typing-indicator loop."""

    def __init__(
        self,
        config: Config,
        store: PolicyStore,
        transport: Transport,
        on_disconnect: Callable[[str], None],
    ) -> None:
        self.config = config
        self.store = store
        self.transport = transport
        self.on_disconnect = on_disconnect

    async def beat_once(self) -> int:
        """
        Send one round of typing indicators.

        Returns:
            Number of indicators delivered.
        """
        sent = 0
        for thread_id, policy in self.store.items():
            if policy.inert:
                continue
            try:
                await self.transport.send_typing(thread_id)
                sent += 1
            except DisconnectedError as e:
                logger.warning("Heartbeat Detected Disconnect", [
                    ("Thread", thread_id),
                    ("Error", str(e)[:100]),
                ])
                self.on_disconnect("heartbeat disconnect")
                return sent
            except TransportError as e:
                logger.warning("Typing Indicator Failed", [
                    ("Thread", thread_id),
                    ("Error", str(e)[:100]),
                ])
            if self.config.heartbeat_spacing > 0:
                await asyncio.sleep(self.config.heartbeat_spacing)

        logger.debug("Heartbeat round complete", [("Sent", str(sent))])
        return sent

    async def run(self, interval: Optional[float] = None) -> None:
        interval = interval if interval is not None else self.config.heartbeat_interval
        while True:
            await asyncio.sleep(interval)
            await self.beat_once()


__all__ = ["Heartbeat"]

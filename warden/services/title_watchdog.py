"""
Group Warden - Title-Change Watchdog
====================================

Detects a conversation title drifting from its locked value and reverts
it after a grace window.

DESIGN:
    Per conversation the watchdog holds one of three states:

        Stable          title matches, nothing pending
        Detected(at)    divergence first seen at monotonic time ``at``
        Reverting       a title-set call is in flight

    A poll tick visits up to ``max_title_checks_per_tick`` title-locked
    conversations, continuing round-robin from where the previous tick
    stopped so every conversation is eventually checked:

        title == groupName                  -> Stable
        differs, Stable                     -> Detected(now)
        differs, Detected(at), now-at >= D  -> Reverting -> revert -> Stable

    A rename notification from the event stream only moves Stable to
    Detected(now). The revert itself always waits for a poll tick so an
    operator renaming by hand has the grace window to undo it first.

    Reverts bypass the conversation queue but still go through the
    global gate. Success or failure both return to Stable; a title that
    stays wrong is detected again on a later tick.
"""

import asyncio
import time
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Union

from warden.core.config import Config
from warden.core.logger import logger
from warden.core.store import PolicyStore
from warden.services.gate import GlobalGate
from warden.transport.base import Transport, TransportError


# =============================================================================
# Title State
# =============================================================================

@dataclass(frozen=True)
class Stable:
    pass


@dataclass(frozen=True)
class Detected:
    at: float


@dataclass(frozen=True)
class Reverting:
    pass


TitleState = Union[Stable, Detected, Reverting]

STABLE = Stable()
REVERTING = Reverting()


# =============================================================================
# Watchdog
# =============================================================================

class TitleWatchdog:
    """
    Poll-driven title lock enforcement.

    Attributes:
        reverts: Number of revert calls issued (successful or not).
    """

    def __init__(
        self,
        config: Config,
        store: PolicyStore,
        transport: Transport,
        gate: GlobalGate,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.config = config
        self.store = store
        self.transport = transport
        self.gate = gate
        self._clock = clock
        self._states: Dict[str, TitleState] = {}
        self._cursor = 0
        self.reverts = 0

    def state_of(self, thread_id: str) -> TitleState:
        return self._states.get(thread_id, STABLE)

    def clear(self, thread_id: str) -> None:
        self._states.pop(thread_id, None)

    # =========================================================================
    # Fast Path
    # =========================================================================

    def note_rename(self, thread_id: str, new_name: str) -> None:
        """Record a rename seen on the event stream; never reverts by itself."""
        policy = self.store.get(thread_id)
        if policy is None or not policy.gclock or not policy.group_name:
            return
        if new_name == policy.group_name:
            return
        if isinstance(self.state_of(thread_id), Stable):
            self._states[thread_id] = Detected(self._clock())
            logger.tree("Title Change Detected", [
                ("Thread", thread_id),
                ("New Title", new_name[:60]),
                ("Revert In", f"{self.config.title_revert_delay:g}s"),
                ("Source", "event"),
            ], emoji="🏷️")

    # =========================================================================
    # Poll Tick
    # =========================================================================

    def _next_batch(self) -> List[str]:
        locked = [tid for tid, p in self.store.items() if p.gclock and p.group_name]
        if not locked:
            self._cursor = 0
            return []

        limit = min(self.config.max_title_checks_per_tick, len(locked))
        start = self._cursor % len(locked)
        batch = [locked[(start + i) % len(locked)] for i in range(limit)]
        self._cursor = (start + limit) % len(locked)
        return batch

    async def tick(self) -> None:
        """Check one batch of title-locked conversations."""
        for thread_id in self._next_batch():
            try:
                await self.check(thread_id)
            except Exception as e:
                logger.warning("Title Check Failed", [
                    ("Thread", thread_id),
                    ("Error", str(e)[:100]),
                ])

    async def check(self, thread_id: str) -> None:
        """Advance the state machine of one conversation."""
        policy = self.store.get(thread_id)
        if policy is None or not policy.gclock:
            self.clear(thread_id)
            return

        state = self.state_of(thread_id)
        if isinstance(state, Reverting):
            return

        snapshot = await self.transport.get_thread_snapshot(thread_id)
        if snapshot is None:
            return

        # Policy may have changed while the snapshot was in flight.
        if not policy.gclock:
            self.clear(thread_id)
            return

        if snapshot.thread_name == policy.group_name:
            if not isinstance(state, Stable):
                logger.debug("Title back to locked value", [("Thread", thread_id)])
            self.clear(thread_id)
            return

        now = self._clock()
        state = self.state_of(thread_id)

        if isinstance(state, Stable):
            self._states[thread_id] = Detected(now)
            logger.tree("Title Change Detected", [
                ("Thread", thread_id),
                ("New Title", snapshot.thread_name[:60]),
                ("Revert In", f"{self.config.title_revert_delay:g}s"),
                ("Source", "poll"),
            ], emoji="🏷️")
            return

        if isinstance(state, Detected) and now - state.at >= self.config.title_revert_delay:
            await self._revert(thread_id, policy.group_name)

    async def _revert(self, thread_id: str, title: str) -> None:
        self._states[thread_id] = REVERTING
        self.reverts += 1
        try:
            async with self.gate:
                await self.transport.set_title(thread_id, title)
            logger.tree("Title Reverted", [
                ("Thread", thread_id),
                ("Title", title[:60]),
            ], emoji="🔒")
        except TransportError as e:
            logger.warning("Title Revert Failed", [
                ("Thread", thread_id),
                ("Error", str(e)[:100]),
            ])
        finally:
            self.clear(thread_id)

    # =========================================================================
    # Loop
    # =========================================================================

    async def run(self, interval: Optional[float] = None) -> None:
        """Tick forever at the poll interval; cancelled by the session manager."""
        interval = interval if interval is not None else self.config.title_poll_interval
        while True:
            await asyncio.sleep(interval)
            await self.tick()


__all__ = [
    "TitleWatchdog",
    "TitleState",
    "Stable",
    "Detected",
    "Reverting",
]

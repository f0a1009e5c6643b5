"""
Group Warden - Re-Sync Sweep & Membership Sync
==============================================

Periodic reconciliation of every nickname-locked conversation against its
live membership, plus the same reconciliation triggered by join events.

DESIGN:
    Real-time events can be dropped, so the sweep runs once at login and
    then on a fixed interval. For each enabled, non-cooling policy it
    fetches a snapshot, prunes ``original`` down to current members and
    queues fixes only for members whose nickname is wrong, operator first.

    Membership sync does the same for one conversation when members join
    or the conversation is created, and additionally snapshots new members
    into ``original`` with the policy nickname.
"""

import asyncio
from typing import Optional

from warden.core.config import Config
from warden.core.logger import logger
from warden.core.store import Policy, PolicyStore
from warden.services.nickname_reactor import NicknameReactor
from warden.transport.base import ThreadSnapshot, Transport, TransportError


def prune_original(policy: Policy, snapshot: ThreadSnapshot) -> int:
    """
    Drop ``original`` entries for members no longer in the conversation.

    Returns:
        Number of entries removed.
    """
    members = set(snapshot.participant_ids)
    departed = [uid for uid in policy.original if uid not in members]
    for uid in departed:
        del policy.original[uid]
    return len(departed)


class ResyncSweep:
    """Brings live nicknames back in line with stored policies."""

    def __init__(
        self,
        config: Config,
        store: PolicyStore,
        transport: Transport,
        reactor: NicknameReactor,
    ) -> None:
        self.config = config
        self.store = store
        self.transport = transport
        self.reactor = reactor

    async def _snapshot(self, thread_id: str) -> Optional[ThreadSnapshot]:
        try:
            return await self.transport.get_thread_snapshot(thread_id)
        except TransportError as e:
            logger.debug("Snapshot unavailable", [
                ("Thread", thread_id),
                ("Error", str(e)[:100]),
            ])
            return None

    # =========================================================================
    # Sweep
    # =========================================================================

    async def run_once(self) -> int:
        """
        Reconcile every enabled, non-cooling conversation.

        Returns:
            Number of corrective tasks queued.
        """
        queued = 0
        checked = 0

        for thread_id, policy in self.store.items():
            if not policy.enabled or policy.cooldown:
                continue

            snapshot = await self._snapshot(thread_id)
            if snapshot is None:
                continue
            checked += 1

            if prune_original(policy, snapshot):
                self.store.save()

            queued += self.reactor.enqueue_members(thread_id, snapshot, only_mismatched=True, reason="sweep")

        logger.tree("Re-Sync Sweep Complete", [
            ("Checked", str(checked)),
            ("Fixes Queued", str(queued)),
        ], emoji="🔄")
        return queued

    async def run(self, interval: Optional[float] = None) -> None:
        """Sweep now, then every ``interval`` seconds until cancelled."""
        interval = interval if interval is not None else self.config.resync_interval
        while True:
            try:
                await self.run_once()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.warning("Re-Sync Sweep Failed", [
                    ("Error Type", type(e).__name__),
                    ("Error", str(e)[:100]),
                ])
            await asyncio.sleep(interval)

    # =========================================================================
    # Membership Sync
    # =========================================================================

    async def sync_membership(self, thread_id: str) -> int:
        """
        Snapshot new members of a nickname-locked conversation and fix them.

        Returns:
            Number of corrective tasks queued.
        """
        policy = self.store.get(thread_id)
        if policy is None or not policy.enabled:
            return 0

        snapshot = await self._snapshot(thread_id)
        if snapshot is None:
            return 0

        nick = policy.nick or self.config.default_nickname
        added = 0
        for uid in snapshot.participant_ids:
            if uid == self.config.operator_id or uid in policy.original:
                continue
            policy.original[uid] = nick
            added += 1
        removed = prune_original(policy, snapshot)
        self.store.save()

        queued = self.reactor.enqueue_members(thread_id, snapshot, only_mismatched=True, reason="membership")

        logger.tree("Membership Synced", [
            ("Thread", thread_id),
            ("Added", str(added)),
            ("Removed", str(removed)),
            ("Fixes Queued", str(queued)),
        ], emoji="👥")
        return queued


__all__ = ["ResyncSweep", "prune_original"]

"""
Group Warden - Operator Commands
================================

Text commands accepted from the operator inside a conversation.

Commands:
    /nicklock on      Enable nickname lock and apply it to every member
    /nicklock off     Disable nickname lock (policy kept)
    /nickall          Re-snapshot members and re-apply the lock nickname
    /gclock <name>    Lock the title to <name> and apply it now
    /gclock           Lock the title to its current value
    /unlockgname      Release the title lock

DESIGN:
    Only messages whose sender is the configured operator are considered.
    The command word is matched case-insensitively; the /gclock argument
    keeps its case. Nothing is ever sent back into the conversation:
    every outcome, including failures, goes to the log only.
"""

from typing import Optional

from warden.core.config import Config, is_operator
from warden.core.logger import logger
from warden.core.store import Policy, PolicyStore
from warden.services.gate import GlobalGate
from warden.services.nickname_reactor import NicknameReactor
from warden.services.sweep import prune_original
from warden.services.title_watchdog import TitleWatchdog
from warden.transport.base import ThreadSnapshot, Transport, TransportError
from warden.transport.events import MessageEvent


GCLOCK_PREFIX = "/gclock "


class CommandHandler:
    """Parses operator messages and applies policy changes."""

    def __init__(
        self,
        config: Config,
        store: PolicyStore,
        transport: Transport,
        gate: GlobalGate,
        reactor: NicknameReactor,
        watchdog: TitleWatchdog,
    ) -> None:
        self.config = config
        self.store = store
        self.transport = transport
        self.gate = gate
        self.reactor = reactor
        self.watchdog = watchdog

    @staticmethod
    def is_command(body: str) -> bool:
        lowered = body.strip().lower()
        return lowered in ("/nicklock on", "/nicklock off", "/nickall", "/gclock", "/unlockgname") or (
            lowered.startswith(GCLOCK_PREFIX)
        )

    async def handle(self, event: MessageEvent) -> bool:
        """
        Run the command in an operator message.

        Returns:
            True if the message was a recognized operator command.
        """
        if not is_operator(event.sender_id, self.config):
            return False

        body = event.body.strip()
        lowered = body.lower()
        thread_id = event.thread_id

        try:
            if lowered == "/nicklock on":
                await self.nicklock_on(thread_id)
            elif lowered == "/nicklock off":
                self.nicklock_off(thread_id)
            elif lowered == "/nickall":
                await self.nickall(thread_id)
            elif lowered.startswith(GCLOCK_PREFIX):
                await self.gclock_set(thread_id, body[len(GCLOCK_PREFIX):].strip())
            elif lowered == "/gclock":
                await self.gclock_capture(thread_id)
            elif lowered == "/unlockgname":
                self.unlock_title(thread_id)
            else:
                return False
        except TransportError as e:
            logger.warning("Command Failed", [
                ("Command", lowered.split(" ")[0]),
                ("Thread", thread_id),
                ("Error", str(e)[:100]),
            ])
        return True

    # =========================================================================
    # Nickname Lock
    # =========================================================================

    def _snapshot_members(self, policy: Policy, snapshot: ThreadSnapshot) -> None:
        nick = policy.nick or self.config.default_nickname
        for uid in snapshot.participant_ids:
            if uid != self.config.operator_id:
                policy.original[uid] = nick
        prune_original(policy, snapshot)

    async def _fetch(self, thread_id: str, command: str) -> Optional[ThreadSnapshot]:
        snapshot = await self.transport.get_thread_snapshot(thread_id)
        if snapshot is None:
            logger.warning("Command Skipped", [
                ("Command", command),
                ("Thread", thread_id),
                ("Reason", "Thread info unavailable"),
            ])
        return snapshot

    async def nicklock_on(self, thread_id: str) -> None:
        snapshot = await self._fetch(thread_id, "/nicklock on")
        if snapshot is None:
            return

        policy = self.store.get_or_create(thread_id)
        policy.enabled = True
        policy.nick = policy.nick or self.config.default_nickname
        policy.count = 0
        policy.cooldown = False
        self.reactor.cancel_cooldown(thread_id)
        self._snapshot_members(policy, snapshot)
        self.store.save()

        queued = self.reactor.enqueue_members(thread_id, snapshot, only_mismatched=False, reason="command")
        logger.tree("Nickname Lock Enabled", [
            ("Thread", thread_id),
            ("Nickname", policy.nick),
            ("Members", str(len(policy.original))),
            ("Fixes Queued", str(queued)),
        ], emoji="🔐")

    def nicklock_off(self, thread_id: str) -> None:
        policy = self.store.get(thread_id)
        if policy is None:
            return
        policy.enabled = False
        self.store.save()
        logger.tree("Nickname Lock Disabled", [("Thread", thread_id)], emoji="🔓")

    async def nickall(self, thread_id: str) -> None:
        policy = self.store.get(thread_id)
        if policy is None or not policy.enabled:
            return
        if policy.cooldown:
            logger.info("/nickall ignored during cooldown", [("Thread", thread_id)])
            return

        snapshot = await self._fetch(thread_id, "/nickall")
        if snapshot is None:
            return

        self._snapshot_members(policy, snapshot)
        self.store.save()

        queued = self.reactor.enqueue_members(thread_id, snapshot, only_mismatched=False, reason="command")
        logger.tree("Nicknames Reapplied", [
            ("Thread", thread_id),
            ("Nickname", policy.nick or self.config.default_nickname),
            ("Fixes Queued", str(queued)),
        ], emoji="🎭")

    # =========================================================================
    # Title Lock
    # =========================================================================

    async def gclock_set(self, thread_id: str, name: str) -> None:
        if not name:
            return

        policy = self.store.get_or_create(thread_id)
        policy.group_name = name
        policy.gclock = True
        self.watchdog.clear(thread_id)
        self.store.save()

        async with self.gate:
            await self.transport.set_title(thread_id, name)

        logger.tree("Title Locked", [
            ("Thread", thread_id),
            ("Title", name[:60]),
        ], emoji="🔒")

    async def gclock_capture(self, thread_id: str) -> None:
        snapshot = await self._fetch(thread_id, "/gclock")
        if snapshot is None:
            return
        if not snapshot.thread_name:
            logger.warning("Title Lock Refused", [
                ("Thread", thread_id),
                ("Reason", "conversation has no title"),
            ])
            return

        policy = self.store.get_or_create(thread_id)
        policy.group_name = snapshot.thread_name
        policy.gclock = True
        self.watchdog.clear(thread_id)
        self.store.save()

        logger.tree("Title Locked", [
            ("Thread", thread_id),
            ("Title", snapshot.thread_name[:60]),
            ("Source", "current"),
        ], emoji="🔒")

    def unlock_title(self, thread_id: str) -> None:
        policy = self.store.get(thread_id)
        if policy is None:
            return
        policy.gclock = False
        self.watchdog.clear(thread_id)
        self.store.save()
        logger.tree("Title Unlocked", [("Thread", thread_id)], emoji="🔓")


__all__ = ["CommandHandler"]

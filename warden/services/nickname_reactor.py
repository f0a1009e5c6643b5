"""
Group Warden - Nickname Revert Reactor
======================================

Reacts to nickname changes and queues corrective nickname sets, with a
per-conversation cooldown breaker.

DESIGN:
    Every corrective nickname set in the process is built here, whether it
    comes from a live event, an operator command, membership sync or the
    periodic re-sync sweep. One builder means one counter per
    conversation and one place enforcing the cooldown rule:

    - no task is enqueued while the policy is cooling down, and a task
      already queued re-checks the policy before it takes the gate and is
      dropped, so a pending lift never waits behind dead work;
    - each successful counted set increments ``count``; reaching the limit
      sets ``cooldown`` and starts a timer;
    - the timer does not touch the policy directly, it enqueues an ungated
      lift task so the conversation queue stays the only mutator.

    After a successful set the task sleeps the dynamic delay for the new
    count while still holding its queue slot and the global gate.
"""

import asyncio
from typing import Awaitable, Callable, Dict, Optional

from warden.core.config import Config
from warden.core.logger import logger
from warden.core.store import Policy, PolicyStore
from warden.services.pacing import DelayScheduler
from warden.services.task_queue import ConversationQueues
from warden.transport.base import ThreadSnapshot, Transport, TransportError
from warden.transport.events import NicknameChangeEvent
from warden.utils.async_utils import create_safe_task


class NicknameReactor:
    """
    Event-driven nickname lock enforcement.

    Attributes:
        cooldown_timers: Conversation id -> pending cooldown timer task.
    """

    def __init__(
        self,
        config: Config,
        store: PolicyStore,
        transport: Transport,
        queues: ConversationQueues,
        delays: DelayScheduler,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.config = config
        self.store = store
        self.transport = transport
        self.queues = queues
        self.delays = delays
        self._sleep = sleep
        self.cooldown_timers: Dict[str, asyncio.Task] = {}

    # =========================================================================
    # Event Handling
    # =========================================================================

    def desired_for(self, policy: Policy, user_id: str) -> str:
        return policy.desired_nickname(user_id, self.config.default_nickname)

    def accepts_fixes(self, thread_id: str) -> bool:
        policy = self.store.get(thread_id)
        return policy is not None and policy.enabled and not policy.cooldown

    def on_nickname_change(self, event: NicknameChangeEvent) -> bool:
        """
        Queue a revert when a member's new nickname differs from the locked one.

        Returns:
            True if a corrective task was queued.
        """
        policy = self.store.get(event.thread_id)
        if policy is None or not policy.enabled or policy.cooldown:
            return False

        desired = self.desired_for(policy, event.participant_id)
        if event.nickname == desired:
            return False

        return self.enqueue_fix(event.thread_id, event.participant_id, desired, reason="revert")

    # =========================================================================
    # Corrective Tasks
    # =========================================================================

    def enqueue_fix(
        self,
        thread_id: str,
        user_id: str,
        nickname: str,
        counted: bool = True,
        reason: str = "revert",
    ) -> bool:
        """
        Queue one nickname set for a conversation member.

        Args:
            thread_id: Conversation id.
            user_id: Member whose nickname is set.
            nickname: Value to set.
            counted: Whether success counts towards the cooldown limit. The
                operator's own nickname is not counted.
            reason: Label for logs (revert, command, sweep, membership).

        Returns:
            False when the policy is missing, disabled or cooling down.
        """
        if not self.accepts_fixes(thread_id):
            return False

        async def task() -> None:
            await self._apply(thread_id, user_id, nickname, counted, reason)

        self.queues.enqueue(thread_id, task, should_run=lambda: self.accepts_fixes(thread_id))
        return True

    def enqueue_members(
        self,
        thread_id: str,
        snapshot: ThreadSnapshot,
        only_mismatched: bool,
        reason: str,
    ) -> int:
        """
        Queue the operator's fix first, then one fix per other member.

        Args:
            thread_id: Conversation id.
            snapshot: Current membership and nicknames.
            only_mismatched: Skip members already carrying their locked nickname.
            reason: Label for logs.

        Returns:
            Number of tasks queued.
        """
        policy = self.store.get(thread_id)
        if not self.accepts_fixes(thread_id):
            return 0

        queued = 0
        operator_id = self.config.operator_id
        operator_nick = policy.nick or self.config.default_nickname

        if operator_id in snapshot.participant_ids or not only_mismatched:
            if not only_mismatched or snapshot.nickname_of(operator_id) != operator_nick:
                if self.enqueue_fix(thread_id, operator_id, operator_nick, counted=False, reason=reason):
                    queued += 1

        for user_id in snapshot.participant_ids:
            if user_id == operator_id:
                continue
            desired = self.desired_for(policy, user_id)
            if only_mismatched and snapshot.nickname_of(user_id) == desired:
                continue
            if self.enqueue_fix(thread_id, user_id, desired, reason=reason):
                queued += 1

        return queued

    async def _apply(self, thread_id: str, user_id: str, nickname: str, counted: bool, reason: str) -> None:
        policy = self.store.get(thread_id)
        if policy is None or not policy.enabled or policy.cooldown:
            logger.debug("Queued nickname fix skipped", [
                ("Thread", thread_id),
                ("Member", user_id),
            ])
            return

        try:
            await self.transport.set_nickname(thread_id, user_id, nickname)
        except TransportError as e:
            logger.warning("Nickname Set Failed", [
                ("Thread", thread_id),
                ("Member", user_id),
                ("Reason", reason),
                ("Error", str(e)[:100]),
            ])
            return

        if counted:
            policy.count += 1
            if policy.count >= self.config.nickname_change_limit and not policy.cooldown:
                self._start_cooldown(thread_id, policy)
            self.store.save()

        logger.tree("Nickname Set", [
            ("Thread", thread_id),
            ("Member", user_id),
            ("Nickname", nickname[:40]),
            ("Reason", reason),
            ("Count", str(policy.count)),
        ], emoji="🎭")

        await self._sleep(self.delays.delay_seconds(policy.count))

    # =========================================================================
    # Cooldown
    # =========================================================================

    def _start_cooldown(self, thread_id: str, policy: Policy) -> None:
        policy.cooldown = True
        logger.tree("Nickname Cooldown Started", [
            ("Thread", thread_id),
            ("Actions", str(policy.count)),
            ("Duration", f"{self.config.nickname_cooldown:g}s"),
        ], emoji="⏸️")
        self._schedule_lift(thread_id)

    def _schedule_lift(self, thread_id: str, delay: Optional[float] = None) -> None:
        delay = self.config.nickname_cooldown if delay is None else delay
        self.cancel_cooldown(thread_id)
        self.cooldown_timers[thread_id] = create_safe_task(
            self._cooldown_timer(thread_id, delay), f"Cooldown {thread_id}"
        )

    async def _cooldown_timer(self, thread_id: str, delay: float) -> None:
        await asyncio.sleep(delay)
        self.cooldown_timers.pop(thread_id, None)

        async def lift() -> None:
            self._lift_cooldown(thread_id)

        self.queues.enqueue(thread_id, lift, gated=False)

    def cancel_cooldown(self, thread_id: str) -> None:
        """Drop a pending lift timer, e.g. when /nicklock on resets the policy."""
        task = self.cooldown_timers.pop(thread_id, None)
        if task is not None and not task.done():
            task.cancel()

    def _lift_cooldown(self, thread_id: str) -> None:
        policy = self.store.get(thread_id)
        if policy is None:
            return
        policy.cooldown = False
        policy.count = 0
        self.store.save()
        logger.tree("Nickname Cooldown Lifted", [("Thread", thread_id)], emoji="▶️")

    def resume_cooldowns(self) -> int:
        """
        Schedule lift timers for policies persisted mid-cooldown.

        Returns:
            Number of timers scheduled.
        """
        resumed = 0
        for thread_id, policy in self.store.items():
            if policy.cooldown:
                self._schedule_lift(thread_id)
                resumed += 1
        if resumed:
            logger.info("Resumed nickname cooldowns", [("Conversations", str(resumed))])
        return resumed

    def cancel_timers(self) -> None:
        for thread_id in list(self.cooldown_timers):
            self.cancel_cooldown(thread_id)


__all__ = ["NicknameReactor"]

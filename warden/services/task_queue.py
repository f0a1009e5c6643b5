"""
Group Warden - Per-Conversation Task Queue
==========================================

Ordered, serialized execution of corrective tasks for each conversation.

DESIGN:
    Each conversation gets a deque of zero-argument coroutine functions
    and at most one drain loop. The drain loop pops the oldest task,
    takes the global gate, runs the task, releases the gate, then waits a
    small fixed pacing interval before the next one. A failing task is
    logged and the loop moves on. When the deque is empty the loop exits
    and a later enqueue starts a new one.

    Tasks pace themselves further by sleeping the dynamic delay inside
    their own body, which keeps the gate held for that pause.

    Bookkeeping tasks that make no remote call (cooldown lift) are queued
    with gated=False: they keep their FIFO position without taking the gate.

    A task may carry a should_run predicate, checked when the task reaches
    the head of the queue. A task whose predicate fails is dropped without
    taking the gate or a pacing turn.
"""

import asyncio
from collections import deque
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Deque, Dict, Optional, Tuple

from warden.core.logger import logger
from warden.services.gate import GlobalGate
from warden.utils.async_utils import create_safe_task


TaskFn = Callable[[], Awaitable[None]]
Predicate = Callable[[], bool]


@dataclass
class ConversationQueue:
    """Runtime queue state for one conversation."""

    tasks: Deque[Tuple[TaskFn, bool, Optional[Predicate]]] = field(default_factory=deque)
    running: bool = False
    idle: asyncio.Event = field(default_factory=asyncio.Event)
    drain_task: Optional[asyncio.Task] = None
    completed: int = 0
    failed: int = 0
    skipped: int = 0

    def __post_init__(self) -> None:
        self.idle.set()


class ConversationQueues:
    """
    All conversation queues, sharing one global gate.

    Attributes:
        gate: The global concurrency gate every gated task acquires.
        pacing: Seconds slept between tasks of the same conversation.
    """

    def __init__(self, gate: GlobalGate, pacing: float = 0.5) -> None:
        self.gate = gate
        self.pacing = pacing
        self._queues: Dict[str, ConversationQueue] = {}

    # =========================================================================
    # Queue Access
    # =========================================================================

    def _ensure(self, thread_id: str) -> ConversationQueue:
        queue = self._queues.get(thread_id)
        if queue is None:
            queue = ConversationQueue()
            self._queues[thread_id] = queue
        return queue

    def pending(self, thread_id: str) -> int:
        queue = self._queues.get(thread_id)
        return len(queue.tasks) if queue else 0

    def backlog(self) -> int:
        return sum(len(q.tasks) for q in self._queues.values())

    def is_running(self, thread_id: str) -> bool:
        queue = self._queues.get(thread_id)
        return bool(queue and queue.running)

    # =========================================================================
    # Enqueue & Drain
    # =========================================================================

    def enqueue(
        self,
        thread_id: str,
        task: TaskFn,
        gated: bool = True,
        should_run: Optional[Predicate] = None,
    ) -> None:
        """
        Append a task and make sure a drain loop is running.

        Args:
            thread_id: Conversation the task belongs to.
            task: Zero-argument coroutine function.
            gated: Whether the task must hold the global gate while running.
            should_run: Checked before the gate is taken; the task is dropped
                when it returns False.
        """
        queue = self._ensure(thread_id)
        queue.tasks.append((task, gated, should_run))
        queue.idle.clear()

        if not queue.running:
            queue.running = True
            queue.drain_task = create_safe_task(self._drain(thread_id), f"Queue {thread_id}")

    async def _drain(self, thread_id: str) -> None:
        queue = self._ensure(thread_id)
        try:
            while queue.tasks:
                task, gated, should_run = queue.tasks.popleft()
                if should_run is not None and not should_run():
                    queue.skipped += 1
                    continue

                try:
                    if gated:
                        async with self.gate:
                            await task()
                    else:
                        await task()
                    queue.completed += 1
                except asyncio.CancelledError:
                    raise
                except Exception as e:
                    queue.failed += 1
                    logger.warning("Queue Task Failed", [
                        ("Thread", thread_id),
                        ("Error Type", type(e).__name__),
                        ("Error", str(e)[:100]),
                    ])

                if self.pacing > 0:
                    await asyncio.sleep(self.pacing)
        finally:
            queue.running = False
            queue.drain_task = None
            queue.idle.set()

    async def wait_idle(self, thread_id: str) -> None:
        """Wait until the conversation's queue is empty and its loop has exited."""
        queue = self._queues.get(thread_id)
        if queue is None:
            return
        await queue.idle.wait()

    async def wait_all_idle(self) -> None:
        # A drained task may enqueue more work, so loop until nothing is running.
        while any(q.running for q in self._queues.values()):
            await asyncio.gather(*(q.idle.wait() for q in list(self._queues.values())))

    def cancel_all(self) -> int:
        """
        Stop every drain loop and drop queued tasks.

        Returns:
            Number of tasks abandoned.
        """
        abandoned = 0
        for queue in self._queues.values():
            abandoned += len(queue.tasks)
            queue.tasks.clear()
            if queue.drain_task and not queue.drain_task.done():
                queue.drain_task.cancel()
        return abandoned


__all__ = ["ConversationQueues", "ConversationQueue", "TaskFn", "Predicate"]

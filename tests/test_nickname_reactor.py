"""
Tests for warden/services/nickname_reactor.py

Covers revert decisions, counters, the cooldown breaker and its lift.
"""

import asyncio
from dataclasses import replace

import pytest

from warden.services.gate import GlobalGate
from warden.services.nickname_reactor import NicknameReactor
from warden.services.pacing import DelayScheduler
from warden.services.task_queue import ConversationQueues
from warden.transport.base import ThreadSnapshot
from warden.transport.events import NicknameChangeEvent


def build_reactor(config, store, transport):
    queues = ConversationQueues(GlobalGate(1), pacing=0)
    reactor = NicknameReactor(config, store, transport, queues, DelayScheduler.from_config(config))
    return reactor, queues


def lock_nicknames(store, thread_id, nick="Locked", original=None):
    policy = store.get_or_create(thread_id)
    policy.enabled = True
    policy.nick = nick
    policy.original = dict(original or {})
    return policy


def change(thread_id, user_id, nickname):
    return NicknameChangeEvent(thread_id=thread_id, participant_id=user_id, nickname=nickname)


# =============================================================================
# Revert Decisions
# =============================================================================

class TestRevertDecisions:
    """Tests for when a nickname change is reverted and to what."""

    @pytest.mark.asyncio
    async def test_falls_back_to_policy_nick(self, config, store, transport):
        reactor, queues = build_reactor(config, store, transport)
        lock_nicknames(store, "G", nick="Z")

        assert reactor.on_nickname_change(change("G", "u1", "Whatever"))
        await queues.wait_idle("G")

        assert transport.nickname_calls("G") == [("u1", "Z")]

    @pytest.mark.asyncio
    async def test_uses_member_snapshot_first(self, config, store, transport):
        reactor, queues = build_reactor(config, store, transport)
        lock_nicknames(store, "G", nick="Z", original={"u1": "Snapshot"})

        reactor.on_nickname_change(change("G", "u1", "Whatever"))
        await queues.wait_idle("G")

        assert transport.nickname_calls("G") == [("u1", "Snapshot")]

    @pytest.mark.asyncio
    async def test_falls_back_to_default_nickname(self, config, store, transport):
        reactor, queues = build_reactor(config, store, transport)
        lock_nicknames(store, "G", nick="")

        reactor.on_nickname_change(change("G", "u1", "Whatever"))
        await queues.wait_idle("G")

        assert transport.nickname_calls("G") == [("u1", "Locked")]

    def test_matching_nickname_ignored(self, config, store, transport):
        reactor, queues = build_reactor(config, store, transport)
        lock_nicknames(store, "G", nick="Z")

        assert not reactor.on_nickname_change(change("G", "u1", "Z"))
        assert queues.pending("G") == 0

    def test_absent_or_disabled_policy_ignored(self, config, store, transport):
        reactor, queues = build_reactor(config, store, transport)
        store.get_or_create("off").enabled = False

        assert not reactor.on_nickname_change(change("missing", "u1", "X"))
        assert not reactor.on_nickname_change(change("off", "u1", "X"))
        assert queues.backlog() == 0

    @pytest.mark.asyncio
    async def test_success_increments_count_and_saves(self, config, store, transport):
        reactor, queues = build_reactor(config, store, transport)
        policy = lock_nicknames(store, "G")

        reactor.on_nickname_change(change("G", "u1", "X"))
        reactor.on_nickname_change(change("G", "u2", "Y"))
        await queues.wait_idle("G")

        assert policy.count == 2
        assert config.store_path.exists()

    @pytest.mark.asyncio
    async def test_failure_not_counted(self, config, store, transport):
        reactor, queues = build_reactor(config, store, transport)
        policy = lock_nicknames(store, "G")
        transport.fail_nickname_for.add("u1")

        reactor.on_nickname_change(change("G", "u1", "X"))
        reactor.on_nickname_change(change("G", "u2", "Y"))
        await queues.wait_idle("G")

        assert policy.count == 1
        assert len(transport.nickname_calls("G")) == 2

    @pytest.mark.asyncio
    async def test_operator_fix_not_counted(self, config, store, transport):
        reactor, queues = build_reactor(config, store, transport)
        policy = lock_nicknames(store, "G")

        reactor.enqueue_fix("G", "op", "Locked", counted=False)
        await queues.wait_idle("G")

        assert transport.nickname_calls("G") == [("op", "Locked")]
        assert policy.count == 0

    @pytest.mark.asyncio
    async def test_delay_follows_new_count(self, config, store, transport):
        queues = ConversationQueues(GlobalGate(1), pacing=0)
        slept = []

        async def fake_sleep(seconds):
            slept.append(seconds)

        paced = replace(config, fast_delay_min_ms=1000, fast_delay_max_ms=1000,
                        slow_delay_min_ms=9000, slow_delay_max_ms=9000)
        reactor = NicknameReactor(paced, store, transport, queues,
                                  DelayScheduler.from_config(paced), sleep=fake_sleep)
        policy = lock_nicknames(store, "G")
        policy.count = 4

        reactor.on_nickname_change(change("G", "u1", "X"))
        reactor.on_nickname_change(change("G", "u2", "X"))
        await queues.wait_idle("G")

        # count 5 and 6 are slow positions
        assert slept == [9.0, 9.0]


# =============================================================================
# Cooldown
# =============================================================================

class TestCooldown:
    """Tests for the per-conversation cooldown breaker."""

    @pytest.mark.asyncio
    async def test_limit_starts_cooldown_and_blocks(self, config, store, transport):
        limited = replace(config, nickname_change_limit=2)
        reactor, queues = build_reactor(limited, store, transport)
        policy = lock_nicknames(store, "G")

        for uid in ("u1", "u2", "u3"):
            reactor.on_nickname_change(change("G", uid, "X"))
        await queues.wait_idle("G")

        # Third task was already queued and skipped itself.
        assert transport.nickname_calls("G") == [("u1", "Locked"), ("u2", "Locked")]
        assert policy.cooldown
        assert policy.count == 2
        assert "G" in reactor.cooldown_timers

        assert not reactor.on_nickname_change(change("G", "u4", "X"))
        assert queues.pending("G") == 0
        reactor.cancel_timers()

    @pytest.mark.asyncio
    async def test_cooldown_lift_resets_count(self, config, store, transport):
        limited = replace(config, nickname_change_limit=1, nickname_cooldown=0.02)
        reactor, queues = build_reactor(limited, store, transport)
        policy = lock_nicknames(store, "G")

        reactor.on_nickname_change(change("G", "u1", "X"))
        await queues.wait_idle("G")
        assert policy.cooldown

        await asyncio.sleep(0.05)
        await queues.wait_idle("G")

        assert not policy.cooldown
        assert policy.count == 0
        assert reactor.on_nickname_change(change("G", "u1", "X"))
        await queues.wait_idle("G")
        reactor.cancel_timers()

    @pytest.mark.asyncio
    async def test_lift_not_delayed_by_busy_gate(self, config, store, transport):
        limited = replace(config, nickname_change_limit=1, nickname_cooldown=0.05)
        reactor, queues = build_reactor(limited, store, transport)
        policy = lock_nicknames(store, "A")
        busy = asyncio.Event()

        async def other_conversation():
            await busy.wait()

        for uid in ("u1", "u2", "u3"):
            reactor.on_nickname_change(change("A", uid, "X"))
        queues.enqueue("B", other_conversation)

        await asyncio.sleep(0.2)

        # B still holds the gate; the stale fixes for A were dropped and the lift ran.
        assert queues.gate.active == 1
        assert not policy.cooldown
        assert policy.count == 0
        assert transport.nickname_calls("A") == [("u1", "Locked")]

        busy.set()
        await queues.wait_all_idle()
        reactor.cancel_timers()

    @pytest.mark.asyncio
    async def test_resume_cooldowns_after_restart(self, config, store, transport):
        short = replace(config, nickname_cooldown=0.02)
        reactor, queues = build_reactor(short, store, transport)
        policy = lock_nicknames(store, "G")
        policy.cooldown = True
        policy.count = 50
        store.get_or_create("other").enabled = True

        assert reactor.resume_cooldowns() == 1

        await asyncio.sleep(0.05)
        await queues.wait_idle("G")
        assert not policy.cooldown
        assert policy.count == 0

    @pytest.mark.asyncio
    async def test_cancel_cooldown_drops_timer(self, config, store, transport):
        short = replace(config, nickname_cooldown=0.02)
        reactor, queues = build_reactor(short, store, transport)
        policy = lock_nicknames(store, "G")
        policy.cooldown = True
        reactor.resume_cooldowns()

        reactor.cancel_cooldown("G")
        await asyncio.sleep(0.05)

        assert policy.cooldown
        assert queues.backlog() == 0


# =============================================================================
# Member Batches
# =============================================================================

class TestEnqueueMembers:
    """Tests for batch fixes used by commands and the sweep."""

    @pytest.mark.asyncio
    async def test_operator_first_then_members(self, config, store, transport):
        reactor, queues = build_reactor(config, store, transport)
        lock_nicknames(store, "G")
        snapshot = ThreadSnapshot("T", ["a", "op", "b"], {})

        assert reactor.enqueue_members("G", snapshot, only_mismatched=False, reason="command") == 3
        await queues.wait_idle("G")

        assert [uid for uid, _ in transport.nickname_calls("G")] == ["op", "a", "b"]

    @pytest.mark.asyncio
    async def test_only_mismatched(self, config, store, transport):
        reactor, queues = build_reactor(config, store, transport)
        lock_nicknames(store, "G")
        snapshot = ThreadSnapshot("T", ["op", "a", "b"], {"op": "Locked", "a": "Locked", "b": "Nope"})

        assert reactor.enqueue_members("G", snapshot, only_mismatched=True, reason="sweep") == 1
        await queues.wait_idle("G")

        assert transport.nickname_calls("G") == [("b", "Locked")]

    def test_nothing_queued_during_cooldown(self, config, store, transport):
        reactor, queues = build_reactor(config, store, transport)
        lock_nicknames(store, "G").cooldown = True
        snapshot = ThreadSnapshot("T", ["op", "a"], {})

        assert reactor.enqueue_members("G", snapshot, only_mismatched=False, reason="command") == 0
        assert queues.backlog() == 0

"""
Tests for warden/services/commands.py

Covers every operator command and the operator-only rule.
"""

import pytest

from warden.services.commands import CommandHandler
from warden.services.gate import GlobalGate
from warden.services.nickname_reactor import NicknameReactor
from warden.services.pacing import DelayScheduler
from warden.services.task_queue import ConversationQueues
from warden.services.title_watchdog import Detected, Stable, TitleWatchdog
from warden.transport.base import TransportError
from warden.transport.events import MessageEvent


@pytest.fixture
def handler(config, store, transport):
    gate = GlobalGate(1)
    queues = ConversationQueues(gate, pacing=0)
    reactor = NicknameReactor(config, store, transport, queues, DelayScheduler.from_config(config))
    watchdog = TitleWatchdog(config, store, transport, gate, clock=lambda: 0.0)
    return CommandHandler(config, store, transport, gate, reactor, watchdog)


def message(body, sender="op", thread_id="G1"):
    return MessageEvent(thread_id=thread_id, sender_id=sender, body=body)


# =============================================================================
# Dispatch
# =============================================================================

class TestDispatch:
    """Tests for command recognition."""

    @pytest.mark.asyncio
    async def test_non_operator_ignored(self, handler, store):
        assert not await handler.handle(message("/gclock Mine", sender="intruder"))
        assert "G1" not in store

    @pytest.mark.asyncio
    async def test_unknown_text_ignored(self, handler):
        assert not await handler.handle(message("hello there"))

    @pytest.mark.asyncio
    async def test_command_word_case_insensitive(self, handler, store, transport):
        transport.add_thread("G1", "Chat", {"op": "", "a": ""})
        assert await handler.handle(message("/NickLock ON"))
        assert store.get("G1").enabled

    def test_is_command(self):
        assert CommandHandler.is_command("/nickall")
        assert CommandHandler.is_command("  /GCLOCK Some Name ")
        assert not CommandHandler.is_command("/gclocked")
        assert not CommandHandler.is_command("nickall")

    @pytest.mark.asyncio
    async def test_transport_failure_logged_not_raised(self, handler, transport):
        transport.title_error = TransportError("denied")
        assert await handler.handle(message("/gclock New"))


# =============================================================================
# Nickname Lock
# =============================================================================

class TestNicklock:
    """Tests for /nicklock and /nickall."""

    @pytest.mark.asyncio
    async def test_nicklock_on_scenario(self, handler, store, transport):
        transport.add_thread("G1", "Chat", {"op": "", "m1": "", "m2": "Bob", "m3": ""})

        await handler.handle(message("/nicklock on"))
        await handler.reactor.queues.wait_idle("G1")

        policy = store.get("G1")
        assert policy.enabled
        assert policy.count == 3
        assert policy.original == {"m1": "Locked", "m2": "Locked", "m3": "Locked"}
        assert transport.nickname_calls("G1") == [
            ("op", "Locked"),
            ("m1", "Locked"),
            ("m2", "Locked"),
            ("m3", "Locked"),
        ]

    @pytest.mark.asyncio
    async def test_nicklock_on_resets_cooldown(self, handler, store, transport):
        transport.add_thread("G1", "Chat", {"op": "", "m1": ""})
        policy = store.get_or_create("G1")
        policy.nick = "Kept"
        policy.cooldown = True
        policy.count = 50

        await handler.handle(message("/nicklock on"))
        await handler.reactor.queues.wait_idle("G1")

        assert not policy.cooldown
        assert policy.count == 1
        assert transport.nickname_calls("G1")[-1] == ("m1", "Kept")

    @pytest.mark.asyncio
    async def test_nicklock_on_without_thread_info(self, handler, store):
        await handler.handle(message("/nicklock on"))
        assert "G1" not in store

    @pytest.mark.asyncio
    async def test_nicklock_off_keeps_policy(self, handler, store, config):
        store.get_or_create("G1").enabled = True

        await handler.handle(message("/nicklock off"))

        assert "G1" in store
        assert not store.get("G1").enabled
        assert config.store_path.exists()

    @pytest.mark.asyncio
    async def test_nickall_resnapshots_members(self, handler, store, transport):
        transport.add_thread("G1", "Chat", {"op": "", "new": "", "old": "Locked"})
        policy = store.get_or_create("G1")
        policy.enabled = True
        policy.original = {"gone": "Locked", "old": "Custom"}

        await handler.handle(message("/nickall"))
        await handler.reactor.queues.wait_idle("G1")

        assert policy.original == {"new": "Locked", "old": "Locked"}
        assert [uid for uid, _ in transport.nickname_calls("G1")] == ["op", "new", "old"]

    @pytest.mark.asyncio
    async def test_nickall_ignored_when_disabled_or_cooling(self, handler, store, transport):
        transport.add_thread("G1", "Chat", {"op": "", "a": ""})
        policy = store.get_or_create("G1")

        await handler.handle(message("/nickall"))
        policy.enabled = True
        policy.cooldown = True
        await handler.handle(message("/nickall"))

        assert transport.nickname_calls("G1") == []


# =============================================================================
# Title Lock
# =============================================================================

class TestTitleLock:
    """Tests for /gclock and /unlockgname."""

    @pytest.mark.asyncio
    async def test_gclock_with_name_applies_now(self, handler, store, transport):
        transport.add_thread("G1", "Old Name")

        await handler.handle(message("/gclock The Crew"))

        policy = store.get("G1")
        assert policy.gclock
        assert policy.group_name == "The Crew"
        assert transport.title_calls() == [("G1", "The Crew")]
        assert handler.gate.active == 0

    @pytest.mark.asyncio
    async def test_gclock_argument_keeps_case(self, handler, store, transport):
        await handler.handle(message("/GCLOCK MiXeD Case"))
        assert store.get("G1").group_name == "MiXeD Case"

    @pytest.mark.asyncio
    async def test_gclock_captures_current_title(self, handler, store, transport):
        transport.add_thread("G1", "Current Title")

        await handler.handle(message("/gclock"))

        policy = store.get("G1")
        assert policy.gclock
        assert policy.group_name == "Current Title"
        assert transport.title_calls() == []

    @pytest.mark.asyncio
    async def test_gclock_refuses_untitled_conversation(self, handler, store, transport):
        transport.add_thread("G1", "")

        await handler.handle(message("/gclock"))

        policy = store.get("G1")
        assert policy is None or not policy.gclock

    @pytest.mark.asyncio
    async def test_unlockgname_clears_watchdog_state(self, handler, store):
        policy = store.get_or_create("G1")
        policy.gclock = True
        policy.group_name = "Name"
        handler.watchdog.note_rename("G1", "Other")
        assert isinstance(handler.watchdog.state_of("G1"), Detected)

        await handler.handle(message("/unlockgname"))

        assert not policy.gclock
        assert policy.group_name == "Name"
        assert isinstance(handler.watchdog.state_of("G1"), Stable)

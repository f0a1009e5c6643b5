"""
Group Warden - Session Lifecycle Manager
========================================

Owns the enforcement engine and keeps the messaging session alive.

DESIGN:
    The manager builds every stateful component once (store, gate,
    queues, delay scheduler, watchdog, reactor, sweep, heartbeat,
    commands) and injects them into each other. Only the session itself
    is re-established on failure; policies, queues and cooldown timers
    survive reconnects.

    State machine:

        LOGGED_OUT -> LOGGING_IN -> ACTIVE -> RECONNECTING -> LOGGING_IN ...
                                                     any -> STOPPED

    While ACTIVE five background tasks run:

        title watchdog poll loop
        heartbeat (typing indicators)
        re-sync sweep (at login, then periodically)
        credential backup
        event listener

    A reconnect request from the heartbeat, the listener (failure or end
    of stream) or the loop exception handler sets one event; the session
    coroutine wakes up, cancels its tasks, closes the transport and goes
    back to logging in.

    Login failures back off min(60, attempts * 5) seconds and retry
    forever. A CredentialStateError is not retried: without a credential
    file there is nothing to log in with.
"""

import asyncio
from enum import Enum
from random import Random
from typing import Any, Dict, List, Optional

from warden.core.config import Config
from warden.core.credentials import CredentialStore
from warden.core.logger import logger
from warden.core.store import PolicyStore
from warden.services.commands import CommandHandler
from warden.services.gate import GlobalGate
from warden.services.heartbeat import Heartbeat
from warden.services.nickname_reactor import NicknameReactor
from warden.services.pacing import DelayScheduler
from warden.services.sweep import ResyncSweep
from warden.services.task_queue import ConversationQueues
from warden.services.title_watchdog import TitleWatchdog
from warden.transport.base import DisconnectedError, ForceReconnect, Transport, TransportError
from warden.transport.events import (
    MembershipEvent,
    MessageEvent,
    NicknameChangeEvent,
    TitleChangeEvent,
    parse_event,
)
from warden.utils.async_utils import create_safe_task, safe_async_operation
from warden.utils.error_handler import ErrorHandler


# =============================================================================
# Session State
# =============================================================================

class SessionState(str, Enum):
    LOGGED_OUT = "logged_out"
    LOGGING_IN = "logging_in"
    ACTIVE = "active"
    RECONNECTING = "reconnecting"
    STOPPED = "stopped"


LOGIN_BACKOFF_STEP = 5
LOGIN_BACKOFF_MAX = 60


def login_backoff(attempts: int, step: int = LOGIN_BACKOFF_STEP) -> int:
    """Seconds to wait after the given number of consecutive failed logins."""
    return min(LOGIN_BACKOFF_MAX, attempts * step)


# =============================================================================
# Session Manager
# =============================================================================

class SessionManager:
    """
    Login loop and owner of all enforcement components.

    Attributes:
        state: Current SessionState.
        user_id: Id of the logged-in account, None before the first login.
        login_attempts: Consecutive failed login attempts.
        reconnects: Number of sessions torn down for a reconnect.
    """

    # Pause before logging in again after an established session dropped.
    reconnect_delay: float = 5.0
    backoff_step: int = LOGIN_BACKOFF_STEP

    def __init__(self, config: Config, transport: Transport, rng: Optional[Random] = None) -> None:
        self.config = config
        self.transport = transport

        self.store = PolicyStore(config.store_path, config.default_nickname)
        self.credentials = CredentialStore(config.credential_path)
        self.gate = GlobalGate(config.global_max_concurrent)
        self.queues = ConversationQueues(self.gate, pacing=config.queue_pacing_ms / 1000)
        self.delays = DelayScheduler.from_config(config, rng)

        self.watchdog = TitleWatchdog(config, self.store, transport, self.gate)
        self.reactor = NicknameReactor(config, self.store, transport, self.queues, self.delays)
        self.sweep = ResyncSweep(config, self.store, transport, self.reactor)
        self.heartbeat = Heartbeat(config, self.store, transport, self.request_reconnect)
        self.commands = CommandHandler(config, self.store, transport, self.gate, self.reactor, self.watchdog)

        self.state = SessionState.LOGGED_OUT
        self.user_id: Optional[str] = None
        self.login_attempts = 0
        self.reconnects = 0

        self._shutting_down = False
        self._flushed = False
        self._stopping = asyncio.Event()
        self._reconnect = asyncio.Event()
        self._reconnect_reason = ""
        self._session_tasks: List[asyncio.Task] = []

    # =========================================================================
    # Main Loop
    # =========================================================================

    async def run(self) -> None:
        """
        Load policies, then log in and keep the session alive until shutdown.

        Raises:
            CredentialStateError: If the credential file is missing or malformed.
        """
        asyncio.get_running_loop().set_exception_handler(self._on_loop_exception)

        self.store.load()
        self.reactor.resume_cooldowns()

        while not self._shutting_down:
            self.state = SessionState.LOGGING_IN
            credential_state = self.credentials.load()

            self.login_attempts += 1
            logger.info("Logging in", [("Attempt", str(self.login_attempts))])
            try:
                self.user_id = await self.transport.login(credential_state)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                backoff = login_backoff(self.login_attempts, self.backoff_step)
                self.state = SessionState.LOGGED_OUT
                ErrorHandler.handle(e, "SessionManager.login", attempt=self.login_attempts)
                logger.info("Login retry scheduled", [
                    ("Attempt", str(self.login_attempts)),
                    ("Retry In", f"{backoff}s"),
                ])
                await self._sleep_unless_stopping(backoff)
                continue

            self.login_attempts = 0
            logger.tree("Session Active", [
                ("Account", str(self.user_id)),
                ("Policies", str(len(self.store))),
            ], emoji="✅")

            await self._run_session()

            if self._shutting_down:
                break

            self.state = SessionState.RECONNECTING
            self.reconnects += 1
            logger.warning("Reconnecting", [
                ("Reason", self._reconnect_reason or "unknown"),
                ("Reconnects", str(self.reconnects)),
            ])
            await self._close_transport()
            await self._sleep_unless_stopping(self.reconnect_delay)

        self.state = SessionState.STOPPED

    async def _run_session(self) -> None:
        self._reconnect = asyncio.Event()
        self._reconnect_reason = ""
        self.state = SessionState.ACTIVE
        if self._shutting_down:
            self._reconnect.set()

        self._session_tasks = [
            create_safe_task(self.watchdog.run(), "Title Watchdog"),
            create_safe_task(self.heartbeat.run(), "Heartbeat"),
            create_safe_task(self.sweep.run(), "Re-Sync Sweep"),
            create_safe_task(self._backup_loop(), "Credential Backup"),
            create_safe_task(self._listen(), "Event Listener"),
        ]

        try:
            await self._reconnect.wait()
        finally:
            await self._cancel_session_tasks()

    async def _cancel_session_tasks(self) -> None:
        tasks, self._session_tasks = self._session_tasks, []
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def _sleep_unless_stopping(self, seconds: float) -> None:
        if seconds <= 0:
            return
        try:
            await asyncio.wait_for(self._stopping.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass

    async def _close_transport(self) -> None:
        try:
            await self.transport.close()
        except Exception as e:
            logger.debug("Transport close failed", [("Error", str(e)[:100])])

    # =========================================================================
    # Reconnect Requests
    # =========================================================================

    def request_reconnect(self, reason: str) -> None:
        """Ask the session loop to drop the current session and log in again."""
        if self._reconnect.is_set():
            return
        self._reconnect_reason = reason
        self._reconnect.set()

    def _on_loop_exception(self, loop: asyncio.AbstractEventLoop, context: Dict[str, Any]) -> None:
        exc = context.get("exception")
        logger.error("Unhandled Loop Exception", [
            ("Message", str(context.get("message", ""))[:100]),
            ("Error Type", type(exc).__name__ if exc else "None"),
            ("Error", str(exc)[:100] if exc else ""),
        ])
        if self.state == SessionState.ACTIVE:
            self.request_reconnect("unhandled loop exception")

    # =========================================================================
    # Event Listener
    # =========================================================================

    async def _listen(self) -> None:
        try:
            async for raw in self.transport.events():
                await self.dispatch(raw)
        except (TransportError, ForceReconnect) as e:
            self.request_reconnect(f"listener failed: {str(e)[:80]}")
            return
        except asyncio.CancelledError:
            raise
        except Exception as e:
            ErrorHandler.handle(e, "SessionManager._listen")
            self.request_reconnect(f"listener crashed: {type(e).__name__}")
            return
        self.request_reconnect("event stream ended")

    async def dispatch(self, raw: Any) -> None:
        """
        Route one raw event to commands, the watchdog, the reactor or membership sync.

        Raises:
            ForceReconnect: If handling hit a dropped session.
        """
        event = parse_event(raw)
        if event is None:
            return

        try:
            if isinstance(event, MessageEvent):
                if CommandHandler.is_command(event.body):
                    self._spawn(self.commands.handle(event), "Operator Command")
            elif isinstance(event, TitleChangeEvent):
                self.watchdog.note_rename(event.thread_id, event.name)
            elif isinstance(event, NicknameChangeEvent):
                self.reactor.on_nickname_change(event)
            elif isinstance(event, MembershipEvent):
                self._spawn(self.sweep.sync_membership(event.thread_id), "Membership Sync")
        except DisconnectedError as e:
            raise ForceReconnect(str(e)) from e
        except TransportError as e:
            logger.warning("Event Handling Failed", [
                ("Thread", event.thread_id),
                ("Error", str(e)[:100]),
            ])

    def _spawn(self, coro, name: str) -> None:
        # Handlers that wait on the gate or the network run beside the
        # listener so event intake never stalls behind a paced task.
        task = create_safe_task(coro, name)
        self._session_tasks.append(task)
        task.add_done_callback(self._forget_task)

    def _forget_task(self, task: asyncio.Task) -> None:
        try:
            self._session_tasks.remove(task)
        except ValueError:
            pass

    # =========================================================================
    # Credential Backup
    # =========================================================================

    async def backup_credentials(self) -> bool:
        """Export the live session cookies and write them to the credential file."""
        try:
            state = await self.transport.export_credential_state()
        except TransportError as e:
            logger.warning("Credential Export Failed", [("Error", str(e)[:100])])
            return False
        if not state:
            return False
        return self.credentials.backup(state)

    async def _backup_loop(self) -> None:
        while True:
            await asyncio.sleep(self.config.credential_backup_interval)
            await self.backup_credentials()

    # =========================================================================
    # Status & Shutdown
    # =========================================================================

    def status(self) -> Dict[str, Any]:
        return {
            "state": self.state.value,
            "policies": len(self.store),
            "backlog": self.queues.backlog(),
            "gate_active": self.gate.active,
            "gate_waiting": self.gate.waiting,
            "reconnects": self.reconnects,
        }

    def request_shutdown(self) -> None:
        """Stop the login loop; safe to call from a signal handler."""
        if self._shutting_down:
            return
        self._shutting_down = True
        logger.info("Shutdown requested")
        self._stopping.set()
        self._reconnect.set()

    async def shutdown(self) -> None:
        """
        Stop everything and flush state: credential backup and policy save.

        Queued corrective tasks are abandoned.
        """
        self.request_shutdown()
        if self._flushed:
            return
        self._flushed = True

        await self._cancel_session_tasks()
        self.reactor.cancel_timers()
        abandoned = self.queues.cancel_all()

        backed_up = False
        if self.user_id is not None:
            backed_up = await safe_async_operation("Credential Backup", self.backup_credentials(), default=False)
        saved = self.store.save()
        await self._close_transport()

        self.state = SessionState.STOPPED
        logger.tree("Group Warden Stopped", [
            ("Abandoned Tasks", str(abandoned)),
            ("Credentials Saved", "Yes" if backed_up else "No"),
            ("Policies Saved", "Yes" if saved else "No"),
        ], emoji="🛑")


__all__ = ["SessionManager", "SessionState", "login_backoff"]

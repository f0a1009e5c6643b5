"""
Group Warden - Test Fixtures
============================

Shared fixtures for all tests.
"""

import os
import sys
import tempfile
from pathlib import Path
from typing import Any, Dict, List, Optional, Set, Tuple

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

# Log files go to a throwaway folder; must be set before warden is imported.
os.environ["WARDEN_LOGS_DIR"] = tempfile.mkdtemp(prefix="warden-logs-")

from warden.core.config import Config  # noqa: E402
from warden.core.store import PolicyStore  # noqa: E402
from warden.transport.base import ThreadSnapshot, Transport, TransportError  # noqa: E402


OPERATOR = "op"


# =============================================================================
# Fake Transport
# =============================================================================

class FakeTransport(Transport):
    """
    In-memory messaging session.

    Every call is recorded in ``calls``. Nickname and title sets update the
    stored snapshot so later reads see the change.
    """

    def __init__(self) -> None:
        self.snapshots: Dict[str, ThreadSnapshot] = {}
        self.calls: List[Tuple[Any, ...]] = []
        self.fail_nickname_for: Set[str] = set()
        self.title_error: Optional[Exception] = None
        self.typing_error: Optional[Exception] = None
        self.login_results: List[Any] = []
        self.login_calls = 0
        self.on_login = None
        self.raw_events: List[Dict[str, Any]] = []
        self.events_error: Optional[Exception] = None
        self.credential_state: Optional[List[Any]] = [{"key": "c_user", "value": OPERATOR}]
        self.closed = 0

    def add_thread(self, thread_id: str, name: str = "", members: Optional[Dict[str, str]] = None) -> ThreadSnapshot:
        members = members or {}
        snapshot = ThreadSnapshot(
            thread_name=name,
            participant_ids=list(members),
            nicknames={uid: nick for uid, nick in members.items() if nick},
        )
        self.snapshots[thread_id] = snapshot
        return snapshot

    def nickname_calls(self, thread_id: Optional[str] = None) -> List[Tuple[str, str]]:
        return [
            (call[2], call[3])
            for call in self.calls
            if call[0] == "nickname" and (thread_id is None or call[1] == thread_id)
        ]

    def title_calls(self) -> List[Tuple[str, str]]:
        return [(call[1], call[2]) for call in self.calls if call[0] == "title"]

    # -------------------------------------------------------------------------
    # Transport
    # -------------------------------------------------------------------------

    async def login(self, credential_state: List[Any]) -> str:
        self.login_calls += 1
        if self.on_login is not None:
            self.on_login(self.login_calls)
        if self.login_results:
            result = self.login_results.pop(0)
            if isinstance(result, BaseException):
                raise result
            return result
        return OPERATOR

    async def get_thread_snapshot(self, thread_id: str) -> Optional[ThreadSnapshot]:
        self.calls.append(("snapshot", thread_id))
        return self.snapshots.get(thread_id)

    async def set_nickname(self, thread_id: str, user_id: str, nickname: str) -> None:
        self.calls.append(("nickname", thread_id, user_id, nickname))
        if user_id in self.fail_nickname_for:
            raise TransportError("nickname rejected")
        snapshot = self.snapshots.get(thread_id)
        if snapshot is not None:
            snapshot.nicknames[user_id] = nickname

    async def set_title(self, thread_id: str, title: str) -> None:
        self.calls.append(("title", thread_id, title))
        if self.title_error is not None:
            raise self.title_error
        snapshot = self.snapshots.get(thread_id)
        if snapshot is not None:
            snapshot.thread_name = title

    async def send_typing(self, thread_id: str) -> None:
        self.calls.append(("typing", thread_id))
        if self.typing_error is not None:
            raise self.typing_error

    async def export_credential_state(self) -> Optional[List[Any]]:
        return self.credential_state

    async def events(self):
        for raw in list(self.raw_events):
            yield raw
        if self.events_error is not None:
            raise self.events_error

    async def close(self) -> None:
        self.closed += 1


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def config(tmp_path):
    """Config with zero pacing so queues drain immediately."""
    return Config(
        operator_id=OPERATOR,
        data_dir=tmp_path,
        fast_delay_min_ms=0,
        fast_delay_max_ms=0,
        slow_delay_min_ms=0,
        slow_delay_max_ms=0,
        queue_pacing_ms=0,
        heartbeat_spacing=0,
    )


@pytest.fixture
def store(config):
    return PolicyStore(config.store_path, config.default_nickname)


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def credential_file(config):
    """Write a valid credential file and return its path."""
    config.credential_path.write_text('[{"key": "c_user", "value": "op"}]', encoding="utf-8")
    return config.credential_path

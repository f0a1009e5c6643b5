"""
Group Warden - Transport Interface
==================================

Capability interface between the enforcement engine and the messaging
session.

DESIGN:
    Everything the scheduler needs from the platform fits in a handful of
    awaitable calls: log in, read a thread snapshot, set a nickname, set a
    title, send a typing indicator, export the session cookies and stream
    real-time events. Components depend on this interface only, so the
    whole engine runs against an in-memory fake in tests.

    Failures of a call raise TransportError. DisconnectedError marks the
    subset that means the session itself is gone and a re-login is needed.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Dict, List, Optional


# =============================================================================
# Errors
# =============================================================================

DISCONNECT_MARKERS = (
    "client disconnecting",
    "not logged in",
)
"""Error message fragments that mean the session has been dropped."""


class TransportError(Exception):
    """A call to the messaging session failed."""

    def __init__(self, message: str, status: Optional[int] = None) -> None:
        super().__init__(message)
        self.status = status


class DisconnectedError(TransportError):
    """The session is no longer usable; a re-login is required."""

    pass


class ForceReconnect(Exception):
    """Raised inside the session to request a fresh login."""

    pass


def is_disconnect_message(message: str) -> bool:
    lowered = (message or "").lower()
    return any(marker in lowered for marker in DISCONNECT_MARKERS)


# =============================================================================
# Thread Snapshot
# =============================================================================

@dataclass
class ThreadSnapshot:
    """
    Normalized view of a conversation's title and membership.

    Attributes:
        thread_name: Current title ("" when untitled).
        participant_ids: Current member ids.
        nicknames: Member id -> current nickname (members without one are absent).
    """

    thread_name: str = ""
    participant_ids: List[str] = field(default_factory=list)
    nicknames: Dict[str, str] = field(default_factory=dict)

    def nickname_of(self, user_id: str) -> Optional[str]:
        return self.nicknames.get(user_id) or None

    @classmethod
    def from_raw(cls, info: Any) -> Optional["ThreadSnapshot"]:
        """
        Build a snapshot from a raw thread-info payload.

        Accepts ``participantIDs`` or falls back to the ids in ``userInfo``;
        nicknames come from ``nicknames`` and then from ``userInfo[].nickname``.

        Returns:
            The snapshot, or None when the payload is not a mapping.
        """
        if not isinstance(info, dict):
            return None

        user_info = info.get("userInfo")
        if not isinstance(user_info, list):
            user_info = []
        user_info = [u for u in user_info if isinstance(u, dict) and u.get("id")]

        participant_ids = info.get("participantIDs")
        if not isinstance(participant_ids, list):
            participant_ids = [u["id"] for u in user_info]
        participant_ids = [str(pid) for pid in participant_ids if pid]

        nicknames: Dict[str, str] = {}
        for user in user_info:
            if user.get("nickname"):
                nicknames[str(user["id"])] = str(user["nickname"])
        raw_nicknames = info.get("nicknames")
        if isinstance(raw_nicknames, dict):
            for uid, nick in raw_nicknames.items():
                if nick:
                    nicknames[str(uid)] = str(nick)

        return cls(
            thread_name=str(info.get("threadName") or ""),
            participant_ids=participant_ids,
            nicknames=nicknames,
        )


# =============================================================================
# Transport
# =============================================================================

class Transport(ABC):
    """Async capability interface to the messaging session."""

    @abstractmethod
    async def login(self, credential_state: List[Any]) -> str:
        """Open a session from exported cookies. Returns the logged-in user id."""

    @abstractmethod
    async def get_thread_snapshot(self, thread_id: str) -> Optional[ThreadSnapshot]:
        """Fetch title and membership, or None when unavailable or malformed."""

    @abstractmethod
    async def set_nickname(self, thread_id: str, user_id: str, nickname: str) -> None:
        ...

    @abstractmethod
    async def set_title(self, thread_id: str, title: str) -> None:
        ...

    @abstractmethod
    async def send_typing(self, thread_id: str) -> None:
        ...

    @abstractmethod
    async def export_credential_state(self) -> Optional[List[Any]]:
        ...

    @abstractmethod
    def events(self) -> AsyncIterator[Dict[str, Any]]:
        """Stream raw real-time events until the connection ends."""

    @abstractmethod
    async def close(self) -> None:
        ...


__all__ = [
    "Transport",
    "ThreadSnapshot",
    "TransportError",
    "DisconnectedError",
    "ForceReconnect",
    "is_disconnect_message",
]

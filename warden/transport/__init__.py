"""
Group Warden - Transport Package
================================

Capability interface to the messaging session, typed events, and the
aiohttp bridge implementation.
"""

from .base import (
    DisconnectedError,
    ForceReconnect,
    ThreadSnapshot,
    Transport,
    TransportError,
    is_disconnect_message,
)
from .events import (
    Event,
    MembershipEvent,
    MessageEvent,
    NicknameChangeEvent,
    TitleChangeEvent,
    parse_event,
)
from .bridge import BridgeTransport


__all__ = [
    "Transport",
    "ThreadSnapshot",
    "TransportError",
    "DisconnectedError",
    "ForceReconnect",
    "is_disconnect_message",
    "Event",
    "MessageEvent",
    "NicknameChangeEvent",
    "TitleChangeEvent",
    "MembershipEvent",
    "parse_event",
    "BridgeTransport",
]

"""
Group Warden - Event Parsing
===========================

Turns raw real-time payloads from the session into typed events.

Raw events follow the messenger client shape: ``type`` is "message" or
"event", log events carry ``logMessageType`` and ``logMessageData``.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional, Union


@dataclass(frozen=True)
class MessageEvent:
    thread_id: str
    sender_id: str
    body: str


@dataclass(frozen=True)
class NicknameChangeEvent:
    thread_id: str
    participant_id: str
    nickname: str


@dataclass(frozen=True)
class TitleChangeEvent:
    thread_id: str
    name: str


@dataclass(frozen=True)
class MembershipEvent:
    """Members joined the conversation or the conversation was created."""

    thread_id: str
    kind: str


Event = Union[MessageEvent, NicknameChangeEvent, TitleChangeEvent, MembershipEvent]

MEMBERSHIP_LOG_TYPES = ("log:subscribe", "log:thread-created")


def parse_event(raw: Any) -> Optional[Event]:
    """
    Parse one raw event.

    Returns:
        A typed event, or None for anything the engine does not react to.
    """
    if not isinstance(raw, dict):
        return None

    thread_id = raw.get("threadID")
    if not thread_id:
        return None
    thread_id = str(thread_id)

    event_type = raw.get("type")
    log_type = raw.get("logMessageType")
    data = raw.get("logMessageData")
    if not isinstance(data, dict):
        data = {}

    if event_type == "message":
        return MessageEvent(
            thread_id=thread_id,
            sender_id=str(raw.get("senderID") or ""),
            body=str(raw.get("body") or "").strip(),
        )

    if log_type == "log:user-nickname":
        participant = data.get("participant_id")
        if not participant:
            return None
        return NicknameChangeEvent(
            thread_id=thread_id,
            participant_id=str(participant),
            nickname=str(data.get("nickname") or ""),
        )

    if event_type == "event" and log_type == "log:thread-name":
        return TitleChangeEvent(thread_id=thread_id, name=str(data.get("name") or ""))

    if event_type == "event" and log_type in MEMBERSHIP_LOG_TYPES:
        return MembershipEvent(thread_id=thread_id, kind=log_type)

    return None


__all__ = [
    "Event",
    "MessageEvent",
    "NicknameChangeEvent",
    "TitleChangeEvent",
    "MembershipEvent",
    "parse_event",
]

"""
Group Warden - Policy Store
===========================

Durable mapping from conversation id to enforcement policy.

DESIGN:
    The store is a JSON object on disk, one entry per conversation, using
    the camelCase keys of the original data file (``groupName``) so an
    existing ``groupData.json`` loads unchanged.

    Writes go to a sibling ``.tmp`` file which is then moved over the real
    file with ``os.replace``; a reader never sees a half-written store.
    A failed save is logged and swallowed: in-memory policies stay
    authoritative until the next successful save.

    Policies are never deleted, only soft-disabled.
"""

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterator, Optional, Tuple

from warden.core.logger import logger


# =============================================================================
# Policy
# =============================================================================

@dataclass
class Policy:
    """
    Enforcement configuration and counters for one conversation.

    Attributes:
        enabled: Nickname enforcement active.
        nick: Enforced nickname.
        original: Member id -> enforced nickname snapshot.
        count: Corrective actions since the last cooldown reset.
        cooldown: Nickname corrections suspended.
        gclock: Title enforcement active.
        group_name: Enforced title.
    """

    enabled: bool = False
    nick: str = ""
    original: Dict[str, str] = field(default_factory=dict)
    count: int = 0
    cooldown: bool = False
    gclock: bool = False
    group_name: str = ""

    @property
    def inert(self) -> bool:
        return not self.enabled and not self.gclock

    def desired_nickname(self, user_id: str, default: str) -> str:
        """Enforced nickname for a member: snapshot, then policy nick, then default."""
        return self.original.get(user_id) or self.nick or default

    def to_dict(self) -> Dict[str, Any]:
        return {
            "enabled": self.enabled,
            "nick": self.nick,
            "original": dict(self.original),
            "count": self.count,
            "cooldown": self.cooldown,
            "gclock": self.gclock,
            "groupName": self.group_name,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any], default_nickname: str = "") -> "Policy":
        """
        Build a policy from its stored form.

        Unknown keys are ignored; missing ones take defaults. A missing or
        empty ``nick`` is back-filled with the default nickname.
        """
        original = data.get("original") or {}
        if not isinstance(original, dict):
            original = {}
        try:
            count = max(0, int(data.get("count") or 0))
        except (TypeError, ValueError):
            count = 0

        return cls(
            enabled=bool(data.get("enabled", False)),
            nick=str(data.get("nick") or default_nickname),
            original={str(k): str(v) for k, v in original.items() if v},
            count=count,
            cooldown=bool(data.get("cooldown", False)),
            gclock=bool(data.get("gclock", False)),
            group_name=str(data.get("groupName") or ""),
        )


# =============================================================================
# Policy Store
# =============================================================================

class PolicyStore:
    """
    In-memory policies backed by an atomically replaced JSON file.

    Attributes:
        path: Location of the store file.
    """

    def __init__(self, path: Path, default_nickname: str = "") -> None:
        self.path = Path(path)
        self.default_nickname = default_nickname
        self._policies: Dict[str, Policy] = {}

    # =========================================================================
    # Access
    # =========================================================================

    def get(self, thread_id: str) -> Optional[Policy]:
        return self._policies.get(str(thread_id))

    def get_or_create(self, thread_id: str) -> Policy:
        """Return the policy for a conversation, creating an inert one if absent."""
        key = str(thread_id)
        policy = self._policies.get(key)
        if policy is None:
            policy = Policy(nick=self.default_nickname)
            self._policies[key] = policy
        return policy

    def items(self) -> Iterator[Tuple[str, Policy]]:
        # Snapshot so callers may await while iterating.
        return iter(list(self._policies.items()))

    def __len__(self) -> int:
        return len(self._policies)

    def __contains__(self, thread_id: object) -> bool:
        return str(thread_id) in self._policies

    # =========================================================================
    # Persistence
    # =========================================================================

    def load(self) -> None:
        """
        Load policies from disk.

        A missing file is created empty. An unreadable or malformed file is
        logged and leaves the store empty; it is not fatal. A malformed file
        is moved aside to ``<name>.corrupt`` so the next save cannot erase it.
        """
        try:
            if not self.path.exists():
                self.path.parent.mkdir(parents=True, exist_ok=True)
                self.path.write_text("{}", encoding="utf-8")

            raw = json.loads(self.path.read_text(encoding="utf-8") or "{}")
            if not isinstance(raw, dict):
                raise ValueError("policy store must be a JSON object")

            self._policies = {
                str(thread_id): Policy.from_dict(data, self.default_nickname)
                for thread_id, data in raw.items()
                if isinstance(data, dict)
            }
        except (OSError, ValueError) as e:
            logger.warning("Policy Store Load Failed", [
                ("Path", str(self.path)),
                ("Error", str(e)[:100]),
            ])
            self._policies = {}
            if isinstance(e, ValueError):
                self._quarantine()
            return

        logger.tree("Policy Store Loaded", [
            ("Path", str(self.path)),
            ("Conversations", str(len(self._policies))),
            ("Nicklocked", str(sum(1 for _, p in self.items() if p.enabled))),
            ("Title Locked", str(sum(1 for _, p in self.items() if p.gclock))),
        ], emoji="💾")

    def _quarantine(self) -> None:
        target = self.path.with_name(self.path.name + ".corrupt")
        try:
            os.replace(self.path, target)
        except OSError as e:
            logger.error("Policy Store Quarantine Failed", [
                ("Path", str(self.path)),
                ("Error", str(e)[:100]),
            ])
            return
        logger.warning("Malformed policy store moved aside", [("Moved To", str(target))])

    def save(self) -> bool:
        """
        Write all policies to disk via temp file and atomic replace.

        Returns:
            True if the store was written, False if the write failed.
        """
        payload = {thread_id: policy.to_dict() for thread_id, policy in self._policies.items()}
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp.write_text(json.dumps(payload, indent=2, ensure_ascii=False), encoding="utf-8")
            os.replace(tmp, self.path)
        except OSError as e:
            logger.warning("Policy Store Save Failed", [
                ("Path", str(self.path)),
                ("Error", str(e)[:100]),
            ])
            return False

        logger.debug("Policy store saved")
        return True


__all__ = ["Policy", "PolicyStore"]

"""
Group Warden - Credential State
===============================

Reads and backs up the session credential file (a JSON array of
cookie-like records exported by the messaging session).

DESIGN:
    Reading is strict: a missing file, unreadable file, invalid JSON or a
    non-array payload raises CredentialStateError. Without credentials
    there is nothing to retry, so the session loop lets this propagate.

    Backups are written with the same temp-file + os.replace pattern as
    the policy store.
"""

import json
import os
from pathlib import Path
from typing import Any, List

from warden.core.logger import logger


class CredentialStateError(Exception):
    """Raised when the credential file is missing, unreadable or malformed."""

    pass


class CredentialStore:
    """File-backed credential state."""

    def __init__(self, path: Path) -> None:
        self.path = Path(path)

    def load(self) -> List[Any]:
        """
        Read the credential state.

        Returns:
            The list of credential records.

        Raises:
            CredentialStateError: If the file cannot be read or is not a JSON array.
        """
        try:
            text = self.path.read_text(encoding="utf-8")
        except OSError as e:
            raise CredentialStateError(f"Cannot read {self.path}: {e}") from e

        try:
            state = json.loads(text)
        except ValueError as e:
            raise CredentialStateError(f"Invalid JSON in {self.path}: {e}") from e

        if not isinstance(state, list):
            raise CredentialStateError(f"Invalid {self.path.name}: must be an array")

        return state

    def backup(self, state: List[Any]) -> bool:
        """
        Persist a fresh credential state exported from the live session.

        Returns:
            True if written, False on failure (logged).
        """
        if not isinstance(state, list) or not state:
            logger.debug("Credential backup skipped (empty state)")
            return False

        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp.write_text(json.dumps(state, indent=2), encoding="utf-8")
            os.replace(tmp, self.path)
        except OSError as e:
            logger.warning("Credential Backup Failed", [
                ("Path", str(self.path)),
                ("Error", str(e)[:100]),
            ])
            return False

        logger.info("Credential state backed up", [("Records", str(len(state)))])
        return True


__all__ = ["CredentialStore", "CredentialStateError"]

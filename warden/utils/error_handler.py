"""
Group Warden - Error Handler
============================

Error categorization, recovery hints and critical-error capture.

Features:
- Error categorization (config, credentials, transport, persistence)
- Recovery suggestion per category
- Full traceback logging for critical errors
- Critical error context saved as JSON under logs/errors/
"""

import json
import sys
import traceback
from datetime import datetime
from pathlib import Path
from typing import Any, Dict

import aiohttp

from warden.core.config import ConfigValidationError
from warden.core.credentials import CredentialStateError
from warden.core.logger import logger, LOGS_DIR
from warden.transport.base import DisconnectedError, TransportError


class ErrorContext:
    """Captures error context for logging and storage."""

    @staticmethod
    def get_full_context(e: BaseException, location: str, **kwargs) -> Dict[str, Any]:
        return {
            "timestamp": datetime.now().isoformat(),
            "location": location,
            "error_type": type(e).__name__,
            "error_message": str(e),
            "traceback": "".join(traceback.format_exception(type(e), e, e.__traceback__)),
            "python_version": sys.version,
            "additional_context": kwargs,
        }


class ErrorHandler:
    """Error handling with context and recovery hints."""

    ERROR_CATEGORIES = (
        ("config", (ConfigValidationError,)),
        ("credentials", (CredentialStateError,)),
        ("transport", (TransportError, aiohttp.ClientError, ConnectionError, TimeoutError)),
        ("persistence", (OSError,)),
    )

    SUGGESTIONS = {
        "config": "Check the .env file (OPERATOR_ID is required)",
        "credentials": "Re-export appstate.json from a logged-in session",
        "transport": "Bridge or network issue - the session loop will reconnect",
        "persistence": "Check disk space and permissions on the data directory",
    }

    @classmethod
    def categorize_error(cls, e: BaseException) -> str:
        """
        Categorize the error type.

        Returns:
            Category name, "general" if nothing matches.
        """
        for category, error_types in cls.ERROR_CATEGORIES:
            if isinstance(e, error_types):
                return category
        return "general"

    @classmethod
    def get_recovery_suggestion(cls, e: BaseException, category: str) -> str:
        if isinstance(e, DisconnectedError):
            return "Session dropped - reconnecting with backoff"
        return cls.SUGGESTIONS.get(category, "Unexpected error - check logs for details")

    @classmethod
    def handle(cls, e: BaseException, location: str, critical: bool = False, **context) -> str:
        """
        Log an error with its category and recovery suggestion.

        Args:
            e: The exception.
            location: Where the error occurred.
            critical: Whether the error stops the process.
            **context: Additional context saved with critical errors.

        Returns:
            The error category.
        """
        category = cls.categorize_error(e)
        suggestion = cls.get_recovery_suggestion(e, category)
        error_msg = f"[{category.upper()}] in {location}"

        if critical:
            full_context = ErrorContext.get_full_context(e, location, **context)
            logger.error(f"💥 CRITICAL ERROR {error_msg}", [
                ("Type", full_context["error_type"]),
                ("Error", full_context["error_message"][:200]),
                ("Recovery", suggestion),
            ])
            logger.info(f"Traceback:\n{full_context['traceback']}")
            cls._store_critical_error(full_context)
        else:
            logger.warning(f"ERROR {error_msg}", [
                ("Type", type(e).__name__),
                ("Error", str(e)[:100]),
                ("Recovery", suggestion),
            ])

        return category

    @staticmethod
    def _store_critical_error(context: Dict[str, Any]) -> None:
        try:
            error_dir = Path(LOGS_DIR) / "errors"
            error_dir.mkdir(exist_ok=True, parents=True)

            timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
            error_file = error_dir / f"error_{timestamp}.json"

            with open(error_file, "w", encoding="utf-8") as f:
                json.dump(context, f, indent=2, default=str)

            logger.info(f"Critical error saved to {error_file}")
        except OSError as save_error:
            logger.info(f"Failed to save error details: {save_error}")


__all__ = ["ErrorHandler", "ErrorContext"]

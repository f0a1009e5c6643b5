"""
Group Warden - Async Utilities
==============================

Helpers for background tasks and best-effort operations so failures are
logged instead of disappearing.

Usage:
    from warden.utils.async_utils import create_safe_task

    # Instead of:
    asyncio.create_task(self._poll_loop())

    # Use:
    create_safe_task(self._poll_loop(), "Title Watchdog")
"""

import asyncio
from typing import Any, Coroutine

from warden.core.logger import logger


async def safe_async_operation(
    name: str,
    coro: Coroutine[Any, Any, Any],
    default: Any = None,
    log_level: str = "warning",
) -> Any:
    """
    Run a single async operation, returning ``default`` if it raises.

    Args:
        name: Name of the operation for logging.
        coro: The coroutine to run.
        default: Value to return if the operation fails.
        log_level: Log level for errors ("debug", "warning", "error").

    Returns:
        Result of the coroutine, or default if it fails.
    """
    try:
        return await coro
    except Exception as e:
        error_details = [
            ("Operation", name),
            ("Error Type", type(e).__name__),
            ("Error", str(e)[:100]),
        ]

        if log_level == "debug":
            logger.debug("Async Operation Failed", error_details)
        elif log_level == "error":
            logger.error("Async Operation Failed", error_details)
        else:
            logger.warning("Async Operation Failed", error_details)

        return default


# =============================================================================
# Safe Background Tasks
# =============================================================================

def create_safe_task(
    coro: Coroutine[Any, Any, Any],
    name: str = "Background Task",
) -> asyncio.Task:
    """
    Create a background task with automatic error logging.

    Cancellation is treated as a normal stop (shutdown or reconnect).

    Args:
        coro: The coroutine to run as a background task.
        name: Name for logging purposes, also used as the task name.

    Returns:
        The created asyncio.Task.
    """
    async def wrapped():
        try:
            await coro
        except asyncio.CancelledError:
            pass
        except Exception as e:
            logger.error("Background Task Failed", [
                ("Task", name),
                ("Error Type", type(e).__name__),
                ("Error", str(e)[:200]),
            ])

    return asyncio.create_task(wrapped(), name=name)


__all__ = [
    "safe_async_operation",
    "create_safe_task",
]

"""
Group Warden - Utils Package
============================

Helpers usable anywhere in the codebase.

Available Utilities:
    create_safe_task: Background task with failure logging
    safe_async_operation: Await with a default on failure
    ErrorHandler: Categorized error reporting with critical error storage
"""

from .async_utils import create_safe_task, safe_async_operation
from .error_handler import ErrorHandler


__all__ = [
    "create_safe_task",
    "safe_async_operation",
    "ErrorHandler",
]

"""
Group Warden - Core Package
===========================

Configuration, logging, persistence and health monitoring.

DESIGN:
    Config and logger are process-wide singletons:
    - get_config() returns the same Config instance
    - logger is a global TreeLogger instance

    The policy store and credential store are plain classes; the session
    manager owns one of each.
"""

# =============================================================================
# Core Imports
# =============================================================================

from .config import (
    Config,
    ConfigValidationError,
    get_config,
    is_operator,
    load_config,
    validate_and_log_config,
)

from .logger import logger, NY_TZ, TreeLogger

from .store import Policy, PolicyStore

from .credentials import CredentialStateError, CredentialStore

from .health import HealthCheckServer


# =============================================================================
# Module Export
# =============================================================================

__all__ = [
    # Config
    "Config",
    "ConfigValidationError",
    "get_config",
    "is_operator",
    "load_config",
    "validate_and_log_config",
    # Logger
    "logger",
    "NY_TZ",
    "TreeLogger",
    # Store
    "Policy",
    "PolicyStore",
    # Credentials
    "CredentialStateError",
    "CredentialStore",
    # Health
    "HealthCheckServer",
]

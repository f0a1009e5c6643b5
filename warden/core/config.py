"""
Group Warden - Configuration Module
===================================

Centralized configuration loaded from environment variables.

DESIGN:
    A single dataclass is the source of truth for every tunable: operator
    identity, pacing bands, watchdog timings, cooldown thresholds and
    intervals. Values are validated once at load time; components receive
    the Config object through their constructors so tests can build one
    directly with zero delays.

    Key patterns:
    - Singleton via get_config() for the running process
    - Fail fast on missing required variables
    - Optional integers are range-clamped with a warning
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional


# =============================================================================
# Configuration Dataclass
# =============================================================================

@dataclass
class Config:
    """
    Runtime configuration.

    Durations are seconds unless the field name ends in ``_ms``.

    Attributes:
        operator_id: The only identity allowed to issue commands. Also the
            account whose own nickname is fixed first in every conversation.
        default_nickname: Nickname applied when a policy has none.
        data_dir: Folder holding the credential file and the policy store.
        bridge_url: Base URL of the messaging session bridge.
    """

    # -------------------------------------------------------------------------
    # Required
    # -------------------------------------------------------------------------

    operator_id: str

    # -------------------------------------------------------------------------
    # Identity & Paths
    # -------------------------------------------------------------------------

    default_nickname: str = "Locked"
    data_dir: Path = Path("data")
    bridge_url: str = "http://127.0.0.1:3000"
    port: int = 10000

    # -------------------------------------------------------------------------
    # Title Watchdog
    # -------------------------------------------------------------------------

    title_poll_interval: float = 60.0
    title_revert_delay: float = 47.0
    max_title_checks_per_tick: int = 5

    # -------------------------------------------------------------------------
    # Nickname Pacing (milliseconds)
    # -------------------------------------------------------------------------

    fast_delay_min_ms: int = 5000
    fast_delay_max_ms: int = 7000
    slow_delay_min_ms: int = 12000
    slow_delay_max_ms: int = 13000
    queue_pacing_ms: int = 500

    # -------------------------------------------------------------------------
    # Nickname Cooldown
    # -------------------------------------------------------------------------

    nickname_change_limit: int = 50
    nickname_cooldown: float = 300.0

    # -------------------------------------------------------------------------
    # Background Intervals
    # -------------------------------------------------------------------------

    heartbeat_interval: float = 600.0
    heartbeat_spacing: float = 1.2
    credential_backup_interval: float = 600.0
    resync_interval: float = 300.0

    # -------------------------------------------------------------------------
    # Concurrency
    # -------------------------------------------------------------------------

    global_max_concurrent: int = 1

    # -------------------------------------------------------------------------
    # Optional: Webhooks
    # -------------------------------------------------------------------------

    error_webhook_url: Optional[str] = None

    @property
    def credential_path(self) -> Path:
        return self.data_dir / "appstate.json"

    @property
    def store_path(self) -> Path:
        return self.data_dir / "groupData.json"


# =============================================================================
# Validation
# =============================================================================

class ConfigValidationError(Exception):
    """Raised when required configuration is missing or invalid."""

    pass


def _parse_int_with_default(
    value: Optional[str],
    default: int,
    name: str,
    min_val: int = None,
    max_val: int = None,
) -> int:
    """
    Parse optional integer with default and range validation.

    Args:
        value: String value from environment variable.
        default: Default value if not set or invalid.
        name: Variable name for warning messages.
        min_val: Minimum allowed value (inclusive).
        max_val: Maximum allowed value (inclusive).

    Returns:
        Parsed integer within valid range, or default.
    """
    if not value:
        return default
    try:
        parsed = int(value)
    except ValueError:
        from warden.core.logger import logger
        logger.warning(f"Config {name}='{value}' invalid, using default {default}")
        return default

    if min_val is not None and parsed < min_val:
        from warden.core.logger import logger
        logger.warning(f"Config {name}={parsed} below min {min_val}, using {min_val}")
        return min_val
    if max_val is not None and parsed > max_val:
        from warden.core.logger import logger
        logger.warning(f"Config {name}={parsed} above max {max_val}, using {max_val}")
        return max_val
    return parsed


def _validate_url(value: Optional[str], name: str) -> Optional[str]:
    """
    Validate URL format.

    Returns:
        URL if valid, None if invalid or empty.
    """
    if not value:
        return None
    if not value.startswith(("https://", "http://")):
        from warden.core.logger import logger
        logger.warning(f"Config {name} invalid URL format, ignoring")
        return None
    return value.rstrip("/")


# =============================================================================
# Configuration Loading
# =============================================================================

def load_config() -> Config:
    """
    Load and validate configuration from environment variables.

    Returns:
        Validated Config object.

    Raises:
        ConfigValidationError: If a required variable is missing or a band
            is inverted (min above max).
    """
    operator_id = os.getenv("OPERATOR_ID", "").strip()
    if not operator_id:
        raise ConfigValidationError("Missing required environment variables: OPERATOR_ID")

    bridge_url = _validate_url(os.getenv("BRIDGE_URL"), "BRIDGE_URL") or "http://127.0.0.1:3000"

    config = Config(
        operator_id=operator_id,
        default_nickname=os.getenv("DEFAULT_NICKNAME", "Locked"),
        data_dir=Path(os.getenv("DATA_DIR", "data")),
        bridge_url=bridge_url,
        port=_parse_int_with_default(os.getenv("PORT"), 10000, "PORT", min_val=1, max_val=65535),
        title_poll_interval=_parse_int_with_default(
            os.getenv("TITLE_POLL_INTERVAL"), 60, "TITLE_POLL_INTERVAL", min_val=5, max_val=3600
        ),
        title_revert_delay=_parse_int_with_default(
            os.getenv("TITLE_REVERT_DELAY"), 47, "TITLE_REVERT_DELAY", min_val=0, max_val=3600
        ),
        max_title_checks_per_tick=_parse_int_with_default(
            os.getenv("MAX_TITLE_CHECKS_PER_TICK"), 5, "MAX_TITLE_CHECKS_PER_TICK", min_val=1, max_val=100
        ),
        fast_delay_min_ms=_parse_int_with_default(
            os.getenv("FAST_DELAY_MIN_MS"), 5000, "FAST_DELAY_MIN_MS", min_val=0
        ),
        fast_delay_max_ms=_parse_int_with_default(
            os.getenv("FAST_DELAY_MAX_MS"), 7000, "FAST_DELAY_MAX_MS", min_val=0
        ),
        slow_delay_min_ms=_parse_int_with_default(
            os.getenv("SLOW_DELAY_MIN_MS"), 12000, "SLOW_DELAY_MIN_MS", min_val=0
        ),
        slow_delay_max_ms=_parse_int_with_default(
            os.getenv("SLOW_DELAY_MAX_MS"), 13000, "SLOW_DELAY_MAX_MS", min_val=0
        ),
        queue_pacing_ms=_parse_int_with_default(
            os.getenv("QUEUE_PACING_MS"), 500, "QUEUE_PACING_MS", min_val=0, max_val=60000
        ),
        nickname_change_limit=_parse_int_with_default(
            os.getenv("NICKNAME_CHANGE_LIMIT"), 50, "NICKNAME_CHANGE_LIMIT", min_val=1
        ),
        nickname_cooldown=_parse_int_with_default(
            os.getenv("NICKNAME_COOLDOWN"), 300, "NICKNAME_COOLDOWN", min_val=1
        ),
        heartbeat_interval=_parse_int_with_default(
            os.getenv("HEARTBEAT_INTERVAL"), 600, "HEARTBEAT_INTERVAL", min_val=10
        ),
        credential_backup_interval=_parse_int_with_default(
            os.getenv("CREDENTIAL_BACKUP_INTERVAL"), 600, "CREDENTIAL_BACKUP_INTERVAL", min_val=10
        ),
        resync_interval=_parse_int_with_default(
            os.getenv("RESYNC_INTERVAL"), 300, "RESYNC_INTERVAL", min_val=10
        ),
        global_max_concurrent=_parse_int_with_default(
            os.getenv("GLOBAL_MAX_CONCURRENT"), 1, "GLOBAL_MAX_CONCURRENT", min_val=1, max_val=10
        ),
        error_webhook_url=_validate_url(os.getenv("ERROR_WEBHOOK_URL"), "ERROR_WEBHOOK_URL"),
    )

    if config.fast_delay_min_ms > config.fast_delay_max_ms:
        raise ConfigValidationError("FAST_DELAY_MIN_MS must not exceed FAST_DELAY_MAX_MS")
    if config.slow_delay_min_ms > config.slow_delay_max_ms:
        raise ConfigValidationError("SLOW_DELAY_MIN_MS must not exceed SLOW_DELAY_MAX_MS")

    return config


# =============================================================================
# Global Config Instance
# =============================================================================

_config: Optional[Config] = None


def get_config() -> Config:
    """
    Get the global configuration instance, loading if needed.

    Raises:
        ConfigValidationError: On first call if config is invalid.
    """
    global _config
    if _config is None:
        _config = load_config()
    return _config


def validate_and_log_config() -> Config:
    """
    Load the config (triggering validation) and log a startup summary.

    Raises:
        ConfigValidationError: If required configuration is missing.
    """
    from warden.core.logger import logger

    config = get_config()

    logger.tree("Configuration Validated", [
        ("Operator", config.operator_id),
        ("Data Dir", str(config.data_dir)),
        ("Bridge", config.bridge_url),
        ("Title Revert Delay", f"{config.title_revert_delay:g}s"),
        ("Fast Band", f"{config.fast_delay_min_ms}-{config.fast_delay_max_ms}ms"),
        ("Slow Band", f"{config.slow_delay_min_ms}-{config.slow_delay_max_ms}ms"),
        ("Cooldown", f"{config.nickname_change_limit} actions / {config.nickname_cooldown:g}s"),
        ("Global Concurrency", str(config.global_max_concurrent)),
        ("Error Webhook", "Enabled" if config.error_webhook_url else "Disabled"),
    ], emoji="⚙️")

    return config


def is_operator(user_id: Optional[str], config: Config) -> bool:
    """Check whether a sender id is the configured operator."""
    return user_id is not None and str(user_id) == config.operator_id


# =============================================================================
# Module Export
# =============================================================================

__all__ = [
    "Config",
    "ConfigValidationError",
    "get_config",
    "load_config",
    "validate_and_log_config",
    "is_operator",
]

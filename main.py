#!/usr/bin/env python3
"""
Group Warden - Entry Point
==========================

Keeps group conversation nicknames and titles locked to the operator's
chosen values.

Features:
- Operator commands (/nicklock on|off, /nickall, /gclock, /unlockgname)
- Rate-limited nickname revert with cooldown breaker
- Debounced title revert
- Idle-prevention heartbeat and credential backups
- Single instance enforcement
- Graceful shutdown on SIGINT/SIGTERM

Exit codes:
    0  graceful shutdown
    1  configuration or credential error, or another instance running
"""

import asyncio
import fcntl
import os
import signal
import sys
from pathlib import Path
from typing import IO, Optional

from dotenv import load_dotenv

from warden.core.config import validate_and_log_config
from warden.core.health import HealthCheckServer
from warden.core.logger import logger
from warden.session import SessionManager
from warden.transport.bridge import BridgeTransport
from warden.utils.error_handler import ErrorHandler


LOCK_FILE_NAME = "warden.pid"


def acquire_instance_lock(data_dir: Path) -> Optional[IO[str]]:
    """
    Take an exclusive lock on the PID file in the data directory.

    Two wardens on the same data directory would fight over the same
    policies and credential file.

    Returns:
        The open lock file (keep it referenced for the process lifetime),
        or None if another instance holds the lock.
    """
    pid_file = data_dir / LOCK_FILE_NAME
    try:
        data_dir.mkdir(parents=True, exist_ok=True)
        fp = open(pid_file, "a+")
        fcntl.flock(fp.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
    except OSError as e:
        logger.error("Instance Lock Failed", [
            ("Lock File", str(pid_file)),
            ("Error", str(e)[:100]),
        ])
        return None

    fp.seek(0)
    fp.truncate()
    fp.write(str(os.getpid()))
    fp.flush()
    logger.success("Instance lock acquired", [
        ("PID", str(os.getpid())),
        ("Lock File", str(pid_file)),
    ])
    return fp


async def main() -> int:
    """
    Run the warden until a shutdown signal.

    Returns:
        Process exit code.

    Raises:
        ConfigValidationError: If required configuration is missing.
        CredentialStateError: If the credential file is missing or malformed.
    """
    load_dotenv()

    logger.tree("GROUP WARDEN STARTING", [
        ("Commands", "/nicklock, /nickall, /gclock, /unlockgname"),
    ], "🛡️")

    config = validate_and_log_config()
    logger.set_webhook(config.error_webhook_url)

    lock = acquire_instance_lock(config.data_dir)
    if lock is None:
        logger.critical("⛔ Startup aborted - another instance is already running")
        return 1

    session = SessionManager(config, BridgeTransport(config.bridge_url))
    health = HealthCheckServer(session, config.port)

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, session.request_shutdown)

    await health.start()
    try:
        await session.run()
    finally:
        await session.shutdown()
        await health.stop()
        lock.close()

    return 0


def run() -> None:
    """Console entry point."""
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        logger.info("🛑 Warden stopped by user (Ctrl+C)")
    except Exception as e:
        ErrorHandler.handle(
            e,
            location="main.run",
            critical=True,
        )
        sys.exit(1)


if __name__ == "__main__":
    run()

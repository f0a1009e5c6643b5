"""
Group Warden - Source Package
=============================

Automation agent that keeps group conversation nicknames and titles
locked to operator-defined values.

Package Structure:
- session.py: Login loop and owner of every enforcement component
- core/: Configuration, logging, policy store, credentials, health server
- services/: Gate, queues, pacing, watchdog, reactor, sweep, commands, heartbeat
- transport/: Messaging session interface, event parsing, aiohttp bridge
- utils/: Background task helpers and error handling

Version: v1.0.0
"""

__version__ = "1.0.0"

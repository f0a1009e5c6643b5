"""
Group Warden - Services Package
===============================

The rate-limited enforcement engine.

DESIGN:
    Services never construct each other. The session manager builds one of
    each and passes dependencies through constructors:

    GlobalGate          FIFO semaphore around every remote mutation
    ConversationQueues  one serialized task queue per conversation
    DelayScheduler      fast/slow pause after each corrective action
    TitleWatchdog       debounced title revert
    NicknameReactor     nickname revert and cooldown breaker
    ResyncSweep         periodic reconciliation and membership sync
    CommandHandler      operator text commands
    Heartbeat           typing-indicator keepalive
"""

from .gate import GlobalGate
from .task_queue import ConversationQueues
from .pacing import DelayBand, DelayScheduler
from .title_watchdog import Detected, Reverting, Stable, TitleWatchdog
from .nickname_reactor import NicknameReactor
from .sweep import ResyncSweep
from .commands import CommandHandler
from .heartbeat import Heartbeat


__all__ = [
    "GlobalGate",
    "ConversationQueues",
    "DelayBand",
    "DelayScheduler",
    "TitleWatchdog",
    "Stable",
    "Detected",
    "Reverting",
    "NicknameReactor",
    "ResyncSweep",
    "CommandHandler",
    "Heartbeat",
]

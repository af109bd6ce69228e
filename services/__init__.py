"""
Services package for mc-session-bot
"""

from services.command_registry import CommandRegistry, CommandNotFound, DuplicateCommand
from services.idle_scheduler import IdleScheduler, SchedulerConfig
from services.protocol_client import ConnectError, ProtocolClient, ProtocolSession

__all__ = [
    "CommandRegistry",
    "CommandNotFound",
    "DuplicateCommand",
    "IdleScheduler",
    "SchedulerConfig",
    "ConnectError",
    "ProtocolClient",
    "ProtocolSession",
]

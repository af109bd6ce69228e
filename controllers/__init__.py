"""
Controllers package for mc-session-bot
"""

from controllers.message_controller import MessageController
from controllers.command_controller import CommandController

__all__ = ["MessageController", "CommandController"]

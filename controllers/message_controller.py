"""
Message Controller
Handles incoming chat lines: command dispatch and mentions
"""

import logging
import random
from typing import Optional

from models.command_spec import CommandContext
from models.session import SessionHandle, SessionRevoked
from services.command_registry import CommandNotFound, CommandRegistry
from utils.command_parser import parse_command_args
from utils.message_utils import send_message

logger = logging.getLogger("mc-session-bot")

MENTION_RESPONSES = (
    "Hello {username}! How can I help you?",
    "Hi there {username}! 👋",
    "{username}, I'm here and active!",
    "What's up, {username}?",
)


class MessageController:
    """Controller for handling chat events of the connected session"""

    def __init__(self,
                 registry: CommandRegistry,
                 prefix: str = "!",
                 help_command: str = "help",
                 rng: Optional[random.Random] = None):
        """
        Initialize the message controller.

        Args:
            registry: Command registry used to resolve command names
            prefix: Chat prefix marking a command
            help_command: Command name suggested after an unknown command
            rng: Random source for mention replies
        """
        self.registry = registry
        self.prefix = prefix
        self.help_command = help_command
        self.rng = rng or random.Random()
        self._handle: Optional[SessionHandle] = None

    @property
    def bound(self) -> bool:
        return self._handle is not None and not self._handle.revoked

    def bind(self, handle: SessionHandle):
        """Attach to a freshly connected session"""
        self._handle = handle
        logger.debug(f"Dispatcher bound to session {handle.session_id}")

    def unbind(self):
        """Detach from the current session"""
        if self._handle is not None:
            logger.debug(f"Dispatcher unbound from session {self._handle.session_id}")
        self._handle = None

    async def reply(self, text: str) -> bool:
        """Send a chat message through the bound session"""
        return await send_message(self._handle, text)

    async def handle_chat(self, sender: str, message: str):
        """Process a chat line from another player"""
        if not self.bound:
            return

        logger.info(f"<{sender}> {message}")

        if self.is_command(message):
            await self.dispatch(sender, message)

        if self._mentions_bot(message):
            await self._handle_mention(sender)

    def is_command(self, message: str) -> bool:
        return bool(self.prefix) and message.startswith(self.prefix)

    async def dispatch(self, sender: str, message: str) -> bool:
        """
        Resolve and run a command line.

        Returns True if a handler ran to completion. Unknown commands and
        handler failures are answered in chat and never raised.
        """
        if not self.is_command(message):
            return False

        tokens = parse_command_args(message[len(self.prefix):])
        if not tokens:
            return False

        name = tokens[0].lower()
        args = tokens[1:]

        try:
            spec = self.registry.lookup(name)
        except CommandNotFound:
            await self.reply(
                f"Unknown command: {name}. Type {self.prefix}{self.help_command} for available commands."
            )
            return False

        handle = self._handle
        ctx = CommandContext(
            sender=sender,
            handle=handle,
            prefix=self.prefix,
            registry=self.registry,
            raw=message,
        )

        logger.info(f"Command executed by {sender}: {message}")
        try:
            await spec.handler(ctx, args)
        except SessionRevoked:
            logger.debug(f"Session ended while running command {name}")
            return False
        except Exception:
            logger.exception(f"Error executing command {name}")
            await self.reply(f"Error executing command: {name}")
            return False
        return True

    def _mentions_bot(self, message: str) -> bool:
        try:
            username = self._handle.username
        except SessionRevoked:
            return False
        return bool(username) and username.lower() in message.lower()

    async def _handle_mention(self, sender: str):
        """Answer a mention of the bot's name"""
        response = self.rng.choice(MENTION_RESPONSES).format(username=sender)
        await self.reply(response)

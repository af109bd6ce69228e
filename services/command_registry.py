"""
Command Registry
Maps chat command names to their specs
"""

import logging
from typing import Dict, List

from models.command_spec import CommandSpec

logger = logging.getLogger("mc-session-bot")


class DuplicateCommand(ValueError):
    """Raised when a command name is registered twice"""


class CommandNotFound(LookupError):
    """Raised when no command matches a name"""

    def __init__(self, name: str):
        super().__init__(name)
        self.name = name


class CommandRegistry:
    """Registry of chat commands, keyed by case-folded name"""

    def __init__(self):
        self._commands: Dict[str, CommandSpec] = {}

    def register(self, spec: CommandSpec) -> CommandSpec:
        """Register a command; names are unique regardless of case"""
        key = spec.name.lower()
        if key in self._commands:
            raise DuplicateCommand(f"Command already registered: {spec.name}")
        self._commands[key] = spec
        logger.debug(f"Registered command: {spec.name}")
        return spec

    def lookup(self, name: str) -> CommandSpec:
        """Exact, case-insensitive lookup"""
        try:
            return self._commands[name.lower()]
        except KeyError:
            raise CommandNotFound(name) from None

    def list(self) -> List[CommandSpec]:
        """All commands in registration order"""
        return list(self._commands.values())

    def names(self) -> List[str]:
        return [spec.name for spec in self._commands.values()]

    def __contains__(self, name: str) -> bool:
        return name.lower() in self._commands

    def __len__(self) -> int:
        return len(self._commands)

"""
Protocol Client
Capability surface of the game-server protocol used by the bot.

The protocol implementation itself (handshake, packets, world state,
pathfinding) lives outside this project. Everything the bot needs from it
goes through ProtocolClient.open() and the ProtocolSession it returns.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional, Protocol, Tuple

from models.session_event import EventKind

logger = logging.getLogger("mc-session-bot")

# Connectivity failures presumed recoverable by reconnecting
TRANSIENT_ERROR_CODES = frozenset({
    "ECONNREFUSED",
    "ENOTFOUND",
    "ECONNRESET",
    "ETIMEDOUT",
    "EAI_AGAIN",
})

# emit(kind, **payload); may be called from any thread
EventEmitter = Callable[..., None]


class ConnectError(Exception):
    """A connect attempt did not reach login"""

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.code = code


class MinorAction(str, Enum):
    """Low-impact actions used to keep the server from idling us out"""
    SWING_ARM = "swing_arm"
    LOOK_AROUND = "look_around"
    JUMP = "jump"


@dataclass(frozen=True)
class Vitals:
    """Health, food and position of the bot"""
    health: float
    food: float
    position: Optional[Tuple[float, float, float]] = None


@dataclass(frozen=True)
class WorldTime:
    """In-game clock"""
    day: int
    time_of_day: int


def is_transient_error(code: Optional[str]) -> bool:
    """Check if an error code should drive a reconnect"""
    return code in TRANSIENT_ERROR_CODES


class ProtocolSession(Protocol):
    """One open connection to the server"""

    username: str

    async def send_chat(self, text: str) -> None:
        ...

    async def perform_minor_action(self, kind: MinorAction) -> None:
        ...

    async def query_vitals(self) -> Vitals:
        ...

    async def query_online_players(self) -> List[str]:
        ...

    async def query_time(self) -> WorldTime:
        ...

    async def follow_player(self, username: str) -> None:
        """Keep following a player until stop_moving() (pathfinder goal)"""
        ...

    async def move_to_player(self, username: str) -> None:
        """Walk to a player's current position"""
        ...

    async def stop_moving(self) -> None:
        ...

    async def respawn(self) -> None:
        ...

    def close(self, reason: str) -> None:
        """Quit the server; safe to call on an already closed session"""
        ...


class ProtocolClient(Protocol):
    """Factory for protocol sessions"""

    def open(self,
             host: str,
             port: int,
             identity: str,
             auth_mode: str,
             emit: EventEmitter,
             *,
             version: Optional[str] = None,
             password: Optional[str] = None) -> ProtocolSession:
        """
        Start connecting and return the session immediately.

        The outcome is reported through ``emit``: EventKind.LOGIN on success,
        EventKind.ERROR / SESSION_ENDED / KICKED on failure.
        """
        ...


class PlayerNotFound(LookupError):
    """Raised by movement actions when the target player is not visible"""


class PathfindingUnavailable(RuntimeError):
    """Raised by movement actions when no pathfinder is loaded"""


def create_protocol_client(backend: str) -> ProtocolClient:
    """
    Construct the protocol client for the configured backend.

    Imports are lazy so the core never requires the bridge runtime.
    """
    if backend == "mineflayer":
        from services.mineflayer_client import MineflayerClient

        return MineflayerClient()
    raise ValueError(f"Unknown protocol backend: {backend!r}")


__all__ = [
    "ConnectError",
    "EventEmitter",
    "EventKind",
    "MinorAction",
    "PathfindingUnavailable",
    "PlayerNotFound",
    "ProtocolClient",
    "ProtocolSession",
    "TRANSIENT_ERROR_CODES",
    "Vitals",
    "WorldTime",
    "create_protocol_client",
    "is_transient_error",
]

"""
Session Event Model
Typed events posted by the protocol client into the session manager queue
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict


class EventKind(str, Enum):
    """Events a protocol session can emit"""
    LOGIN = "login"
    SESSION_ENDED = "end"
    KICKED = "kicked"
    ERROR = "error"
    CHAT = "chat"
    VITALS_CHANGED = "vitals"
    PLAYER_JOINED = "player_joined"
    PLAYER_LEFT = "player_left"
    DIED = "death"


@dataclass(frozen=True)
class SessionEvent:
    """An event tagged with the session that produced it"""
    kind: EventKind
    session_id: int
    payload: Dict[str, Any] = field(default_factory=dict)

    def get(self, key: str, default=None):
        return self.payload.get(key, default)

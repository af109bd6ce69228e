"""
Session Model
One connect attempt against the game server and the capability handle issued for it
"""

import itertools
import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, List, Optional

logger = logging.getLogger("mc-session-bot")

_session_ids = itertools.count(1)


class SessionState(str, Enum):
    """Lifecycle states of the session manager"""
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"
    DISCONNECTING = "disconnecting"


ACTIVE_STATES = (SessionState.CONNECTING, SessionState.CONNECTED)


class SessionRevoked(RuntimeError):
    """Raised when a handle is used after its session was superseded or closed"""


class SessionHandle:
    """
    Revocable reference to a connected protocol session.

    The dispatcher and the idle scheduler only ever talk to the server
    through a handle. Once the session leaves ``connected`` the handle is
    revoked and every call raises SessionRevoked.
    """

    def __init__(self, protocol, session_id: int, connected_at: Optional[datetime] = None):
        self._protocol = protocol
        self.session_id = session_id
        self.connected_at = connected_at or datetime.now()
        self._revoked = False

    @property
    def revoked(self) -> bool:
        return self._revoked

    def revoke(self):
        """Invalidate the handle; idempotent"""
        if not self._revoked:
            self._revoked = True
            logger.debug(f"Session handle {self.session_id} revoked")

    def _live(self):
        if self._revoked:
            raise SessionRevoked(f"session {self.session_id} is no longer connected")
        return self._protocol

    @property
    def username(self) -> str:
        return self._live().username

    @property
    def uptime_seconds(self) -> float:
        return (datetime.now() - self.connected_at).total_seconds()

    async def send_chat(self, text: str):
        await self._live().send_chat(text)

    async def perform_minor_action(self, kind):
        await self._live().perform_minor_action(kind)

    async def query_vitals(self):
        return await self._live().query_vitals()

    async def query_online_players(self) -> List[str]:
        return await self._live().query_online_players()

    async def query_time(self):
        return await self._live().query_time()

    async def follow_player(self, username: str):
        await self._live().follow_player(username)

    async def move_to_player(self, username: str):
        await self._live().move_to_player(username)

    async def stop_moving(self):
        await self._live().stop_moving()

    async def respawn(self):
        await self._live().respawn()


@dataclass
class Session:
    """Represents one logical connection attempt"""
    attempt_count: int = 0
    state: SessionState = SessionState.CONNECTING
    session_id: int = field(default_factory=lambda: next(_session_ids))
    created_at: datetime = field(default_factory=datetime.now)
    last_activity: datetime = field(default_factory=datetime.now)
    connected_at: Optional[datetime] = None
    protocol: Any = None
    handle: Optional[SessionHandle] = None

    def is_active(self) -> bool:
        """Check if session is connecting or connected"""
        return self.state in ACTIVE_STATES

    def touch(self):
        """Record activity on this session"""
        self.last_activity = datetime.now()

    def mark_connected(self) -> SessionHandle:
        """Transition to connected and issue the capability handle"""
        self.state = SessionState.CONNECTED
        self.attempt_count = 0
        self.connected_at = datetime.now()
        self.handle = SessionHandle(self.protocol, self.session_id, self.connected_at)
        return self.handle

    def end_session(self):
        """End the session and revoke its handle"""
        self.state = SessionState.DISCONNECTED
        if self.handle is not None:
            self.handle.revoke()

"""
Session Manager
Owns the connection state machine, the reconnect policy and the wiring
between protocol events, the command dispatcher and the idle scheduler.

All state changes happen on one asyncio task consuming an event queue.
Protocol callbacks only ever post SessionEvents into that queue, tagged
with the id of the session that produced them; events from any session
other than the current active one are dropped.
"""

import asyncio
import logging
from typing import Optional

from controllers.message_controller import MessageController
from models.bot_config import BotConfig
from models.retry_policy import RetryPolicy
from models.session import ACTIVE_STATES, Session, SessionHandle, SessionState
from models.session_event import EventKind, SessionEvent
from services.idle_scheduler import IdleScheduler
from services.protocol_client import ConnectError, ProtocolClient, is_transient_error
from utils.message_utils import send_message

logger = logging.getLogger("mc-session-bot")

LOW_HEALTH = 10


class SessionManager:
    """Keeps one session alive against the game server"""

    def __init__(self,
                 client: ProtocolClient,
                 config: BotConfig,
                 dispatcher: MessageController,
                 scheduler: IdleScheduler,
                 retry_policy: RetryPolicy = None):
        """
        Initialize the session manager.

        Args:
            client: Protocol client used to open sessions
            config: Bot configuration
            dispatcher: Chat command dispatcher, bound while connected
            scheduler: Idle scheduler, running while connected
            retry_policy: Reconnect budget and backoff (defaults from config)
        """
        self.client = client
        self.config = config
        self.dispatcher = dispatcher
        self.scheduler = scheduler
        self.retry_policy = retry_policy or config.retry_policy

        self.state = SessionState.DISCONNECTED
        self.session: Optional[Session] = None
        self.attempt_count = 0
        self.exit_code: Optional[int] = None

        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._events: Optional[asyncio.Queue] = None
        self._exit: Optional[asyncio.Future] = None
        self._login_waiter: Optional[asyncio.Future] = None
        self._reconnect_task: Optional[asyncio.Task] = None
        self._shutdown_task: Optional[asyncio.Task] = None
        self._terminated = False

        # Statistics
        self._total_connects = 0
        self._stale_events = 0

    @property
    def terminated(self) -> bool:
        return self._terminated

    @property
    def connected(self) -> bool:
        return self.state is SessionState.CONNECTED

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def run(self) -> int:
        """
        Connect and keep the session alive.

        Returns the process exit code: 0 after shutdown(), 1 when the first
        connect fails or the retry budget is exhausted.
        """
        self._loop = asyncio.get_running_loop()
        self._events = asyncio.Queue()
        self._exit = self._loop.create_future()

        consumer = asyncio.create_task(self._consume_events(), name="session-events")
        self._schedule_connect(0, initial=True)
        try:
            return await self._exit
        finally:
            consumer.cancel()
            pending = [consumer]
            task = self._reconnect_task
            if task is not None and not task.done():
                task.cancel()
                pending.append(task)
            await asyncio.gather(*pending, return_exceptions=True)

    async def connect(self) -> SessionHandle:
        """
        Open a new session and wait for login.

        Raises ConnectError if the server refuses, closes the connection or
        stays silent past the connect timeout. Must run inside run().
        """
        if self._events is None:
            raise RuntimeError("connect() requires a running session manager")
        if self._terminated:
            raise ConnectError("Session manager has been shut down")
        if self.state in ACTIVE_STATES:
            raise ConnectError(f"Cannot connect while {self.state.value}")
        pending = self._reconnect_task
        if pending is not None and not pending.done() and pending is not asyncio.current_task():
            raise ConnectError("A connect attempt is already scheduled")

        session = Session(attempt_count=self.attempt_count)
        self.session = session
        self.state = SessionState.CONNECTING
        waiter = self._loop.create_future()
        self._login_waiter = waiter
        self._total_connects += 1

        logger.info(
            f"Connecting to {self.config.host}:{self.config.port} as {self.config.username} "
            f"(session {session.session_id})"
        )
        try:
            session.protocol = self.client.open(
                self.config.host,
                self.config.port,
                self.config.username,
                self.config.auth_type,
                self._emitter(session.session_id),
                version=self.config.version,
                password=self.config.password,
            )
        except Exception as e:
            self._abandon(session, "Failed to open connection")
            raise ConnectError(f"Failed to create bot: {e}") from e

        try:
            return await asyncio.wait_for(waiter, timeout=self.config.connect_timeout)
        except asyncio.TimeoutError:
            self._abandon(session, "Login timed out")
            raise ConnectError(f"No login within {self.config.connect_timeout:g}s") from None
        except ConnectError:
            self._abandon(session, "Connection failed")
            raise
        finally:
            if self._login_waiter is waiter:
                self._login_waiter = None

    async def shutdown(self, reason: str = "Bot shutting down"):
        """
        Stop for good from any state.

        Cancels a pending reconnect (or in-flight connect), stops the idle
        scheduler and closes the session, in that order. Idempotent.
        """
        if self._terminated:
            return
        self._terminated = True
        logger.info("Shutting down session manager...")
        self.state = SessionState.DISCONNECTING

        task = self._reconnect_task
        self._reconnect_task = None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)

        self.scheduler.cancel()
        self.dispatcher.unbind()
        await self.scheduler.stop()

        session = self.session
        if session is not None:
            session.end_session()
            self._close_protocol(session, reason)

        self.state = SessionState.DISCONNECTED
        logger.info("Bot disconnected")
        self._finish(0)

    def request_shutdown(self, reason: str = "Bot shutting down"):
        """Schedule shutdown() from a signal handler or another callback"""
        if self._shutdown_task is None:
            self._shutdown_task = asyncio.ensure_future(self.shutdown(reason))
        return self._shutdown_task

    # ------------------------------------------------------------------
    # Event intake
    # ------------------------------------------------------------------

    def _emitter(self, session_id: int):
        """Thread-safe callback handed to the protocol client for one session"""
        loop = self._loop
        queue = self._events

        def emit(kind, **payload):
            event = SessionEvent(EventKind(kind), session_id, payload)
            try:
                loop.call_soon_threadsafe(queue.put_nowait, event)
            except RuntimeError:
                logger.debug(f"Event loop closed, dropping {event.kind.value} event")

        return emit

    async def _consume_events(self):
        """Apply queued events one at a time"""
        while True:
            event = await self._events.get()
            try:
                await self.handle_event(event)
            except Exception:
                logger.exception(f"Error handling {event.kind.value} event")

    async def handle_event(self, event: SessionEvent) -> bool:
        """Apply one event; returns False when it was dropped"""
        if self._terminated:
            logger.debug(f"Ignoring {event.kind.value} event after shutdown")
            return False

        session = self.session
        if session is None or event.session_id != session.session_id or not session.is_active():
            self._stale_events += 1
            logger.debug(f"Ignoring {event.kind.value} event from stale session {event.session_id}")
            return False

        kind = event.kind
        if kind is EventKind.LOGIN:
            await self._on_login(session)
        elif kind in (EventKind.SESSION_ENDED, EventKind.KICKED):
            await self._on_session_lost(session, kind, event.get("reason"))
        elif kind is EventKind.ERROR:
            await self._on_error(session, event.get("code"), event.get("message"))
        elif session.state is not SessionState.CONNECTED:
            return False
        elif kind is EventKind.CHAT:
            await self._on_chat(session, event.get("sender"), event.get("message", ""))
        elif kind is EventKind.VITALS_CHANGED:
            self._on_vitals(event.get("health"), event.get("food"))
        elif kind is EventKind.PLAYER_JOINED:
            await self._on_player_joined(session, event.get("username"))
        elif kind is EventKind.PLAYER_LEFT:
            logger.info(f"Player left: {event.get('username')}")
        elif kind is EventKind.DIED:
            logger.warning("Bot died! Respawning...")
            await session.handle.respawn()
        return True

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    async def _on_login(self, session: Session):
        if session.state is not SessionState.CONNECTING:
            return

        handle = session.mark_connected()
        self.attempt_count = 0
        self.state = SessionState.CONNECTED
        self.dispatcher.bind(handle)
        self.scheduler.start(handle)

        waiter = self._login_waiter
        if waiter is not None and not waiter.done():
            waiter.set_result(handle)

        logger.info(f"Bot logged in as {handle.username}")
        if self.config.join_message:
            await send_message(handle, self.config.join_message)

    async def _on_session_lost(self, session: Session, kind: EventKind, reason):
        if session.state is SessionState.CONNECTING:
            self._reject_login(ConnectError(f"Connection closed before login: {reason}"))
            return

        if kind is EventKind.KICKED:
            logger.warning(f"Bot was kicked: {reason}")
        else:
            logger.warning(f"Bot disconnected: {reason}")

        self._end_session(session, f"Session lost: {reason}")
        self._retry_or_exhaust()
        await self.scheduler.stop()

    async def _on_error(self, session: Session, code, message):
        if session.state is SessionState.CONNECTING:
            logger.error(f"Bot connection error: {message}")
            self._reject_login(ConnectError(message or f"connection error {code}", code=code))
            return

        if not is_transient_error(code):
            logger.error(f"Bot error: {message}")
            return

        logger.warning(f"Network error ({code}): {message}")
        self._end_session(session, f"Network error: {code}")
        self._retry_or_exhaust()
        await self.scheduler.stop()

    async def _on_chat(self, session: Session, sender: str, message: str):
        if sender == session.handle.username:
            return
        session.touch()
        self.scheduler.record_activity()
        await self.dispatcher.handle_chat(sender, message)

    def _on_vitals(self, health, food):
        if health is not None and health <= LOW_HEALTH:
            logger.warning(f"Low health: {health}/20 (food: {food}/20)")

    async def _on_player_joined(self, session: Session, username: str):
        logger.info(f"Player joined: {username}")
        if self.config.welcome_messages and username and username != session.handle.username:
            await send_message(session.handle, f"Welcome {username}! 👋")

    def _reject_login(self, error: ConnectError):
        waiter = self._login_waiter
        if waiter is not None and not waiter.done():
            waiter.set_exception(error)

    def _end_session(self, session: Session, reason: str):
        """Leave connected: stop ticks, detach the dispatcher, close the socket"""
        self.scheduler.cancel()
        self.dispatcher.unbind()
        session.end_session()
        self._close_protocol(session, reason)

    def _abandon(self, session: Session, reason: str):
        """Clean up a connect attempt that never reached login"""
        if session.state is SessionState.DISCONNECTED:
            return
        session.end_session()
        self._close_protocol(session, reason)
        if self.session is session and self.state is SessionState.CONNECTING:
            self.state = SessionState.DISCONNECTED

    def _close_protocol(self, session: Session, reason: str):
        protocol = session.protocol
        if protocol is None:
            return
        try:
            protocol.close(reason)
        except Exception as e:
            logger.warning(f"Error closing session {session.session_id}: {e}")

    # ------------------------------------------------------------------
    # Retry policy
    # ------------------------------------------------------------------

    def _retry_or_exhaust(self):
        """Schedule the next attempt, or give up when the budget is spent"""
        if self.retry_policy.exhausted(self.attempt_count):
            logger.error(
                f"Max reconnection attempts ({self.retry_policy.max_attempts}) reached. Exiting..."
            )
            self._terminated = True
            self.state = SessionState.DISCONNECTED
            self._finish(1)
            return

        self.attempt_count += 1
        delay = self.retry_policy.delay_for(self.attempt_count)
        self.state = SessionState.RECONNECTING
        logger.info(
            f"Attempting to reconnect in {delay:g} seconds... "
            f"(Attempt {self.attempt_count}/{self.retry_policy.max_attempts})"
        )
        self._schedule_connect(delay)

    def _schedule_connect(self, delay: float, initial: bool = False):
        self._reconnect_task = asyncio.create_task(
            self._connect_after(delay, initial), name="session-reconnect"
        )

    async def _connect_after(self, delay: float, initial: bool = False):
        if delay > 0:
            await asyncio.sleep(delay)
        if self._terminated or self.state in ACTIVE_STATES:
            return
        try:
            await self.connect()
        except ConnectError as e:
            if self._terminated:
                return
            if initial:
                # Startup failures are not retried
                logger.error(f"Failed to start bot: {e}")
                self._terminated = True
                self.state = SessionState.DISCONNECTED
                self._finish(1)
                return
            logger.error(f"Connection attempt failed: {e}")
            self._retry_or_exhaust()

    def _finish(self, exit_code: int):
        self.exit_code = exit_code
        if self._exit is not None and not self._exit.done():
            self._exit.set_result(exit_code)

    @property
    def stats(self) -> dict:
        """Get session manager status"""
        session = self.session
        handle = session.handle if session is not None else None
        uptime = None
        if self.connected and handle is not None:
            uptime = round(handle.uptime_seconds, 1)
        return {
            "state": self.state.value,
            "connected": self.connected,
            "session_id": session.session_id if session is not None else None,
            "username": self.config.username,
            "server": f"{self.config.host}:{self.config.port}",
            "attempt_count": self.attempt_count,
            "max_attempts": self.retry_policy.max_attempts,
            "uptime_seconds": uptime,
            "total_connects": self._total_connects,
            "stale_events": self._stale_events,
            "scheduler": self.scheduler.stats,
        }

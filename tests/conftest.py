import asyncio
import random
import time

import pytest

from controllers.command_controller import CommandController
from controllers.message_controller import MessageController
from models.bot_config import BotConfig, SchedulerConfig
from models.retry_policy import RetryPolicy
from models.session import SessionHandle
from models.session_event import EventKind
from services.command_registry import CommandRegistry
from services.idle_scheduler import IdleScheduler
from services.protocol_client import PlayerNotFound, Vitals, WorldTime
from services.session_manager import SessionManager


class FakeProtocolSession:
    """In-memory protocol session recording everything the bot does"""

    def __init__(self, emit=None, username="TestBot"):
        self.emit = emit
        self.username = username
        self.chat = []
        self.actions = []
        self.vitals = Vitals(health=20, food=18, position=(10.4, 64.0, -3.6))
        self.players = ["TestBot", "Steve"]
        self.world_time = WorldTime(day=3, time_of_day=6000)
        self.following = None
        self.moving_to = None
        self.stopped = False
        self.respawned = 0
        self.closed_with = None

    async def send_chat(self, text):
        self.chat.append(text)

    async def perform_minor_action(self, kind):
        self.actions.append(kind)

    async def query_vitals(self):
        return self.vitals

    async def query_online_players(self):
        return list(self.players)

    async def query_time(self):
        return self.world_time

    async def follow_player(self, username):
        if username not in self.players:
            raise PlayerNotFound(username)
        self.following = username

    async def move_to_player(self, username):
        if username not in self.players:
            raise PlayerNotFound(username)
        self.moving_to = username

    async def stop_moving(self):
        self.following = None
        self.stopped = True

    async def respawn(self):
        self.respawned += 1

    def close(self, reason):
        self.closed_with = reason


class FakeProtocolClient:
    """
    Protocol client whose connect outcomes are scripted.

    Outcomes: "login", "refused", "kicked", "silent", "raise".
    """

    def __init__(self, outcomes=None, default="login"):
        self.outcomes = list(outcomes or [])
        self.default = default
        self.sessions = []
        self.open_calls = []

    def open(self, host, port, identity, auth_mode, emit, *, version=None, password=None):
        self.open_calls.append((host, port, identity, auth_mode))
        outcome = self.outcomes.pop(0) if self.outcomes else self.default
        if outcome == "raise":
            raise OSError("bridge unavailable")

        session = FakeProtocolSession(emit, username=identity)
        self.sessions.append(session)
        if outcome == "login":
            emit(EventKind.LOGIN)
        elif outcome == "refused":
            emit(EventKind.ERROR, code="ECONNREFUSED", message="connect ECONNREFUSED 127.0.0.1:25565")
        elif outcome == "kicked":
            emit(EventKind.KICKED, reason="Server is full", logged_in=False)
        return session

    @property
    def current(self):
        return self.sessions[-1]


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


@pytest.fixture
def protocol():
    return FakeProtocolSession()


@pytest.fixture
def handle(protocol):
    return SessionHandle(protocol, session_id=1)


@pytest.fixture
def registry():
    registry = CommandRegistry()
    CommandController(registry, rng=random.Random(7))
    return registry


@pytest.fixture
def dispatcher(registry, handle):
    controller = MessageController(registry, prefix="!", rng=random.Random(7))
    controller.bind(handle)
    return controller


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def bot_config():
    return BotConfig(
        host="localhost",
        port=25565,
        username="TestBot",
        join_message=None,
        connect_timeout=1.0,
        reconnect_delay=0.01,
        max_reconnect_attempts=3,
        anti_idle_interval=1000.0,
        health_report_interval=1000.0,
        log_dir="",
    )


@pytest.fixture
def make_manager(bot_config):
    """Build a SessionManager around a scripted client"""

    def _make(client, retry_policy=None, config=None):
        config = config or bot_config
        registry = CommandRegistry()
        CommandController(registry, rng=random.Random(7))
        dispatcher = MessageController(registry, prefix=config.command_prefix, rng=random.Random(7))
        scheduler = IdleScheduler(
            SchedulerConfig(anti_idle_interval=1000.0, health_report_interval=1000.0),
            rng=random.Random(7),
        )
        return SessionManager(client, config, dispatcher, scheduler, retry_policy=retry_policy or RetryPolicy(3, 0.01))

    return _make


@pytest.fixture
def eventually():
    """Wait until a condition holds, yielding to the event loop"""

    async def _wait(predicate, timeout=2.0):
        deadline = time.monotonic() + timeout
        while not predicate():
            if time.monotonic() > deadline:
                raise AssertionError("condition was not met in time")
            await asyncio.sleep(0.005)

    return _wait


@pytest.fixture
def client_factory():
    """Factory for scripted protocol clients"""
    return FakeProtocolClient

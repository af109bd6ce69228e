"""
Mineflayer Client
ProtocolClient backed by the Node mineflayer library through JSPyBridge.

Needs a Node runtime with ``mineflayer`` and ``mineflayer-pathfinder``
available; JSPyBridge installs missing packages on first require().
Bridge callbacks run on the bridge's own thread, so every event is handed
to the session manager through the thread-safe emitter it provides.
"""

import asyncio
import logging
from typing import List, Optional

from javascript import On, globalThis, require

from models.session_event import EventKind
from services.protocol_client import (
    EventEmitter,
    MinorAction,
    PathfindingUnavailable,
    PlayerNotFound,
    Vitals,
    WorldTime,
)

logger = logging.getLogger("mc-session-bot")

FOLLOW_DISTANCE = 2
JUMP_DURATION = 0.3  # seconds


class MineflayerSession:
    """One mineflayer bot instance"""

    def __init__(self, bot, pathfinder_module, emit: EventEmitter):
        self._bot = bot
        self._pathfinder = pathfinder_module
        self._emit = emit
        self._pathfinder_loaded = False
        self._closed = False
        self.username = str(bot.username)
        self._register_events()

    def _register_events(self):
        """Forward mineflayer events as session events"""
        bot = self._bot
        emit = self._emit

        @On(bot, "login")
        def on_login(this, *args):
            self.username = str(bot.username)
            emit(EventKind.LOGIN)

        @On(bot, "spawn")
        def on_spawn(this, *args):
            self._load_pathfinder()

        @On(bot, "end")
        def on_end(this, reason=None, *args):
            emit(EventKind.SESSION_ENDED, reason=str(reason))

        @On(bot, "kicked")
        def on_kicked(this, reason=None, logged_in=None, *args):
            emit(EventKind.KICKED, reason=str(reason), logged_in=bool(logged_in))

        @On(bot, "error")
        def on_error(this, err=None, *args):
            code = getattr(err, "code", None)
            emit(EventKind.ERROR, code=str(code) if code else None, message=str(err))

        @On(bot, "chat")
        def on_chat(this, username, message, *args):
            emit(EventKind.CHAT, sender=str(username), message=str(message))

        @On(bot, "health")
        def on_health(this, *args):
            emit(EventKind.VITALS_CHANGED, health=bot.health, food=bot.food)

        @On(bot, "playerJoined")
        def on_player_joined(this, player, *args):
            emit(EventKind.PLAYER_JOINED, username=str(player.username))

        @On(bot, "playerLeft")
        def on_player_left(this, player, *args):
            emit(EventKind.PLAYER_LEFT, username=str(player.username))

        @On(bot, "death")
        def on_death(this, *args):
            emit(EventKind.DIED)

    def _load_pathfinder(self):
        if self._pathfinder_loaded:
            return
        try:
            self._bot.loadPlugin(self._pathfinder.pathfinder)
            movements = self._pathfinder.Movements(self._bot)
            self._bot.pathfinder.setMovements(movements)
            self._pathfinder_loaded = True
            logger.info("Pathfinder loaded successfully")
        except Exception as e:
            logger.error(f"Failed to load pathfinder: {e}")

    def _player_entity(self, username: str):
        player = self._bot.players[username]
        if not player or not player.entity:
            raise PlayerNotFound(username)
        return player.entity

    def _require_pathfinder(self):
        if not self._pathfinder_loaded:
            raise PathfindingUnavailable("pathfinder plugin is not loaded")

    async def send_chat(self, text: str):
        await asyncio.to_thread(self._bot.chat, text)

    async def perform_minor_action(self, kind: MinorAction):
        bot = self._bot
        if kind == MinorAction.SWING_ARM:
            await asyncio.to_thread(bot.swingArm)
        elif kind == MinorAction.LOOK_AROUND:
            await asyncio.to_thread(bot.look, bot.entity.yaw + 0.1, bot.entity.pitch)
        elif kind == MinorAction.JUMP:
            await asyncio.to_thread(bot.setControlState, "jump", True)
            try:
                await asyncio.sleep(JUMP_DURATION)
            finally:
                await asyncio.to_thread(bot.setControlState, "jump", False)
        else:
            raise ValueError(f"Unknown minor action: {kind!r}")

    async def query_vitals(self) -> Vitals:
        bot = self._bot
        position = None
        if bot.entity:
            pos = bot.entity.position
            position = (float(pos.x), float(pos.y), float(pos.z))
        return Vitals(health=float(bot.health), food=float(bot.food), position=position)

    async def query_online_players(self) -> List[str]:
        names = globalThis.Object.keys(self._bot.players).valueOf()
        return [str(name) for name in names]

    async def query_time(self) -> WorldTime:
        world_time = self._bot.time
        return WorldTime(day=int(world_time.day), time_of_day=int(world_time.timeOfDay))

    async def follow_player(self, username: str):
        self._require_pathfinder()
        entity = self._player_entity(username)
        goal = self._pathfinder.goals.GoalFollow(entity, FOLLOW_DISTANCE)
        await asyncio.to_thread(self._bot.pathfinder.setGoal, goal, True)

    async def move_to_player(self, username: str):
        self._require_pathfinder()
        pos = self._player_entity(username).position
        goal = self._pathfinder.goals.GoalNear(pos.x, pos.y, pos.z, FOLLOW_DISTANCE)
        await asyncio.to_thread(self._bot.pathfinder.setGoal, goal)

    async def stop_moving(self):
        self._require_pathfinder()
        await asyncio.to_thread(self._bot.pathfinder.setGoal, None)

    async def respawn(self):
        await asyncio.to_thread(self._bot.respawn)

    def close(self, reason: str):
        if self._closed:
            return
        self._closed = True
        try:
            self._bot.quit(reason)
        except Exception as e:
            logger.warning(f"Error while quitting mineflayer bot: {e}")


class MineflayerClient:
    """ProtocolClient creating mineflayer bots"""

    def __init__(self):
        self._mineflayer = require("mineflayer")
        self._pathfinder = require("mineflayer-pathfinder")

    def open(self,
             host: str,
             port: int,
             identity: str,
             auth_mode: str,
             emit: EventEmitter,
             *,
             version: Optional[str] = None,
             password: Optional[str] = None) -> MineflayerSession:
        options = {
            "host": host,
            "port": port,
            "username": identity,
            "auth": auth_mode,
            "hideErrors": False,
        }
        if version:
            options["version"] = version
        if password:
            options["password"] = password

        logger.info("Creating bot connection...")
        bot = self._mineflayer.createBot(options)
        return MineflayerSession(bot, self._pathfinder, emit)

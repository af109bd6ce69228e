"""
Command Controller
Built-in chat commands
"""

import logging
import random
from typing import List, Optional

from models.command_spec import CommandContext, CommandSpec
from services.command_registry import CommandNotFound, CommandRegistry
from services.protocol_client import PathfindingUnavailable, PlayerNotFound
from utils.formatting import format_minecraft_time, format_uptime

logger = logging.getLogger("mc-session-bot")

PING_RESPONSES = ("Pong!", "I'm here!", "Bot is responsive!", "🏓 Pong!")

MAX_HEALTH = 20
MAX_FOOD = 20


class CommandController:
    """Controller registering and serving the built-in commands"""

    def __init__(self, registry: CommandRegistry, rng: Optional[random.Random] = None):
        """
        Initialize the command controller.

        Args:
            registry: Registry the built-in commands are added to
            rng: Random source for ping replies
        """
        self.registry = registry
        self.rng = rng or random.Random()

        # Register commands
        self._register_commands()

    def _register_commands(self):
        """Register all bot commands, in help order"""
        commands = [
            ("help", "Show available commands", "help [command]", self.help),
            ("status", "Show bot status", "status", self.status),
            ("time", "Show current server time", "time", self.time),
            ("players", "List online players", "players", self.players),
            ("ping", "Check bot responsiveness", "ping", self.ping),
            ("follow", "Make bot follow a player", "follow [player]", self.follow),
            ("stop", "Stop following", "stop", self.stop),
            ("come", "Make bot come to you", "come", self.come),
            ("say", "Make bot say something", "say <message>", self.say),
            ("uptime", "Show bot uptime", "uptime", self.uptime),
        ]
        for name, description, usage, handler in commands:
            self.registry.register(CommandSpec(
                name=name,
                description=description,
                usage=usage,
                handler=handler,
            ))

    async def help(self, ctx: CommandContext, args: List[str]):
        """List commands, or describe one"""
        if not args:
            await ctx.reply(f"Available commands: {', '.join(self.registry.names())}")
            await ctx.reply(f"Use {ctx.prefix}help <command> for specific command info.")
            return

        name = args[0].lower()
        try:
            spec = self.registry.lookup(name)
        except CommandNotFound:
            await ctx.reply(f"Command not found: {name}")
            return
        await ctx.reply(f"{spec.name}: {spec.description}")
        await ctx.reply(f"Usage: {spec.usage_text(ctx.prefix)}")

    async def status(self, ctx: CommandContext, args: List[str]):
        vitals = await ctx.handle.query_vitals()
        await ctx.reply(
            f"Status: Online | Health: {vitals.health:g}/{MAX_HEALTH} | Food: {vitals.food:g}/{MAX_FOOD}"
        )
        if vitals.position is not None:
            x, y, z = vitals.position
            await ctx.reply(f"Position: X:{round(x)} Y:{round(y)} Z:{round(z)}")

    async def time(self, ctx: CommandContext, args: List[str]):
        world_time = await ctx.handle.query_time()
        await ctx.reply(f"Day {world_time.day}, {format_minecraft_time(world_time.time_of_day)}")

    async def players(self, ctx: CommandContext, args: List[str]):
        names = await ctx.handle.query_online_players()
        if not names:
            await ctx.reply("No players online.")
            return
        await ctx.reply(f"Players online ({len(names)}): {', '.join(names)}")

    async def ping(self, ctx: CommandContext, args: List[str]):
        await ctx.reply(self.rng.choice(PING_RESPONSES))

    async def follow(self, ctx: CommandContext, args: List[str]):
        """Follow the named player, or the sender"""
        target = args[0] if args else ctx.sender

        if target not in await ctx.handle.query_online_players():
            await ctx.reply(f"Player {target} not found.")
            return

        try:
            await ctx.handle.follow_player(target)
        except PlayerNotFound:
            await ctx.reply(f"Player {target} not found.")
            return
        except PathfindingUnavailable:
            await ctx.reply("Pathfinding not available.")
            return

        await ctx.reply(f"Following {target}")
        logger.info(f"Bot started following {target}")

    async def stop(self, ctx: CommandContext, args: List[str]):
        try:
            await ctx.handle.stop_moving()
        except PathfindingUnavailable:
            await ctx.reply("Pathfinding not available.")
            return
        await ctx.reply("Stopped following.")
        logger.info("Bot stopped following")

    async def come(self, ctx: CommandContext, args: List[str]):
        """Walk to the sender"""
        try:
            await ctx.handle.move_to_player(ctx.sender)
        except PlayerNotFound:
            await ctx.reply(f"Cannot find player {ctx.sender}.")
            return
        except PathfindingUnavailable:
            await ctx.reply("Pathfinding not available.")
            return

        await ctx.reply(f"Coming to {ctx.sender}!")
        logger.info(f"Bot moving to {ctx.sender}'s position")

    async def say(self, ctx: CommandContext, args: List[str]):
        if not args:
            await ctx.reply(f"Usage: {ctx.prefix}say <message>")
            return
        message = " ".join(args)
        await ctx.reply(message)
        logger.info(f"Bot said (requested by {ctx.sender}): {message}")

    async def uptime(self, ctx: CommandContext, args: List[str]):
        """Time since the current session logged in"""
        await ctx.reply(f"Uptime: {format_uptime(ctx.handle.uptime_seconds)}")

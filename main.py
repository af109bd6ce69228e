"""
mc-session-bot
Persistent Minecraft bot: keeps one session alive, reconnects with a
bounded linear backoff and serves chat commands.

Exit codes: 0 after a graceful shutdown, 1 when the reconnect budget is
exhausted or startup fails. An external supervisor is expected to restart
the process on 1.
"""

import asyncio
import logging
import signal
import sys
import threading

import uvicorn
from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from controllers.bot_controller import bot_controller, bot_router, health_router
from controllers.command_controller import CommandController
from controllers.message_controller import MessageController
from models.bot_config import BotConfig, ConfigError
from services.command_registry import CommandRegistry
from services.idle_scheduler import IdleScheduler
from services.protocol_client import create_protocol_client
from services.session_manager import SessionManager
from utils.logging_setup import configure_logging

logger = logging.getLogger("mc-session-bot")

app = FastAPI(
    title="mc-session-bot Health",
    description="Health and control endpoints for the Minecraft session bot"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health_router)
app.include_router(bot_router)


def run_health_server(port: int):
    """Run the health check server on a separate thread"""
    uvicorn.run(app, host="0.0.0.0", port=port, log_level="warning")


def build_session_manager(config: BotConfig, client) -> SessionManager:
    """Wire registry, dispatcher and scheduler around a protocol client"""
    registry = CommandRegistry()
    CommandController(registry)
    dispatcher = MessageController(registry, prefix=config.command_prefix)
    scheduler = IdleScheduler(config.scheduler_config)
    return SessionManager(client, config, dispatcher, scheduler)


async def main() -> int:
    """Main entry point"""
    try:
        config = BotConfig.from_env().validate()
    except ConfigError as e:
        logger.error(f"Invalid configuration: {e}")
        logger.error("Please check your .env file or environment variables.")
        return 1

    configure_logging(config.log_level, config.log_dir)
    config.log_summary()

    try:
        client = create_protocol_client(config.protocol_backend)
    except Exception as e:
        logger.error(f"Failed to start bot: {e}")
        return 1

    manager = build_session_manager(config, client)

    # Graceful shutdown
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, manager.request_shutdown, f"Received {sig.name}")

    bot_controller.set_references(manager, loop)

    if config.health_port:
        health_thread = threading.Thread(target=run_health_server, args=(config.health_port,), daemon=True)
        health_thread.start()

    logger.info("Starting Minecraft Bot...")
    exit_code = await manager.run()
    logger.info(f"Bot stopped with exit code {exit_code}")
    return exit_code


def cli():
    """Console script entry point"""
    load_dotenv()
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        sys.exit(0)


if __name__ == "__main__":
    cli()

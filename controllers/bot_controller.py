"""
Bot Controller
HTTP health and control endpoints for the session manager
"""

import asyncio
import logging

from fastapi import APIRouter

logger = logging.getLogger("mc-session-bot")

# APIRouter for bot control endpoints
bot_router = APIRouter(
    prefix="/api/bot",
    tags=["Bot Control"]
)

health_router = APIRouter(tags=["Health"])


class BotController:
    """Controller exposing the session manager over HTTP"""

    def __init__(self):
        self.manager = None
        self.bot_loop = None  # event loop the session manager runs on

    def set_references(self, manager, loop=None):
        """Set references to the session manager and its event loop"""
        self.manager = manager
        self.bot_loop = loop

    async def _snapshot(self) -> dict:
        """Read the manager's state on the bot's event loop"""
        loop = self.bot_loop
        if loop is not None and loop.is_running() and loop is not asyncio.get_running_loop():
            future = asyncio.run_coroutine_threadsafe(self._read_state(), loop)
            return await asyncio.wrap_future(future)
        return await self._read_state()

    async def _read_state(self) -> dict:
        manager = self.manager
        return {**manager.stats, "terminated": manager.terminated, "exit_code": manager.exit_code}

    async def get_status(self) -> dict:
        """Get the current session status"""
        if self.manager is None:
            return {"success": False, "state": "not_started", "connected": False}
        return {"success": True, **await self._snapshot()}

    async def get_health_info(self) -> dict:
        """Get health check information"""
        if self.manager is None:
            return {"status": "starting", "connected": False, "state": "not_started"}
        state = await self._snapshot()
        return {
            "status": "unhealthy" if state["terminated"] and state["exit_code"] else "healthy",
            "connected": state["connected"],
            "state": state["state"],
            "attempt_count": state["attempt_count"],
        }

    async def shutdown_bot(self) -> dict:
        """Request a graceful shutdown of the bot"""
        if self.manager is None:
            return {"success": False, "message": "Bot is not running"}
        if self.manager.terminated:
            return {"success": True, "message": "Bot is already shut down"}

        # The session manager lives on another event loop
        if self.bot_loop and self.bot_loop.is_running():
            asyncio.run_coroutine_threadsafe(self.manager.shutdown("Shutdown requested via API"), self.bot_loop)
            logger.info("Bot shutdown scheduled via API")
        else:
            await self.manager.shutdown("Shutdown requested via API")
            logger.info("Bot shut down via API")
        return {"success": True, "message": "Bot shutdown requested"}


# Create bot controller instance
bot_controller = BotController()


@health_router.get("/health")
async def health_check():
    """Health check endpoint"""
    return {"service": "mc-session-bot", **await bot_controller.get_health_info()}


@health_router.get("/ready")
async def readiness_check():
    """Readiness check endpoint - ready once the session is connected"""
    info = await bot_controller.get_health_info()
    return {"status": "ready" if info["connected"] else "not_ready", "state": info["state"]}


@bot_router.get("/status")
async def get_bot_status():
    """Get the current bot status"""
    return await bot_controller.get_status()


@bot_router.post("/shutdown")
async def shutdown_bot():
    """Gracefully shut the bot down"""
    return await bot_controller.shutdown_bot()

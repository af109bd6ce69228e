"""
Idle Scheduler
Anti-idle actions and periodic health reports for the connected session
"""

import asyncio
import logging
import random
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, List, Optional

from models.bot_config import SchedulerConfig
from models.session import SessionHandle, SessionRevoked
from services.protocol_client import MinorAction

logger = logging.getLogger("mc-session-bot")

ANTI_IDLE_ACTIONS = (
    MinorAction.SWING_ARM,
    MinorAction.LOOK_AROUND,
    MinorAction.JUMP,
)


@dataclass
class ScheduledTask:
    """A named action run every ``interval`` seconds"""
    name: str
    interval: float
    action: Callable[[], Awaitable[object]]


class IdleScheduler:
    """Runs the anti-idle and health report tasks while a session is connected"""

    def __init__(self,
                 config: SchedulerConfig = None,
                 rng: Optional[random.Random] = None,
                 clock: Callable[[], float] = time.monotonic):
        """
        Initialize the idle scheduler.

        Args:
            config: Scheduler configuration
            rng: Random source picking anti-idle actions
            clock: Monotonic clock in seconds
        """
        self.config = config or SchedulerConfig()
        self.rng = rng or random.Random()
        self.clock = clock
        self.last_activity = clock()
        self._handle: Optional[SessionHandle] = None
        self._tasks: List[asyncio.Task] = []

        # Statistics
        self.anti_idle_count = 0
        self.health_report_count = 0

    @property
    def running(self) -> bool:
        return any(not task.done() for task in self._tasks)

    @property
    def idle_time(self) -> float:
        return self.clock() - self.last_activity

    def record_activity(self):
        """Note chat activity; postpones the next anti-idle action"""
        self.last_activity = self.clock()

    def scheduled_tasks(self) -> List[ScheduledTask]:
        tasks = []
        if self.config.anti_idle_enabled:
            tasks.append(ScheduledTask("anti-idle", self.config.anti_idle_interval, self.anti_idle_tick))
        tasks.append(ScheduledTask("health-report", self.config.health_report_interval, self.health_report_tick))
        return tasks

    def start(self, handle: SessionHandle):
        """Start both periodic tasks for a connected session"""
        self.cancel()
        self._tasks = []
        self._handle = handle
        self.record_activity()
        for scheduled in self.scheduled_tasks():
            task = asyncio.create_task(self._run_periodic(scheduled), name=f"idle-scheduler-{scheduled.name}")
            self._tasks.append(task)
        logger.info(f"Idle scheduler started ({len(self._tasks)} tasks)")

    def cancel(self):
        """Cancel both tasks immediately; no further ticks fire"""
        self._handle = None
        for task in self._tasks:
            task.cancel()

    async def stop(self):
        """Cancel both tasks and wait for them to finish"""
        tasks = list(self._tasks)
        self.cancel()
        self._tasks.clear()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
            logger.info("Idle scheduler stopped")

    async def _run_periodic(self, scheduled: ScheduledTask):
        """Run one task on its own cadence until cancelled"""
        while True:
            await asyncio.sleep(scheduled.interval)
            try:
                await scheduled.action()
            except Exception as e:
                logger.error(f"Error in scheduled task {scheduled.name}: {e}")

    async def anti_idle_tick(self) -> bool:
        """
        One anti-idle check.

        Performs a single randomly chosen action when the session has been
        idle for at least the threshold. Returns True if an action fired.
        """
        handle = self._handle
        if handle is None or handle.revoked:
            return False
        if self.idle_time < self.config.idle_threshold:
            return False

        action = self.rng.choice(ANTI_IDLE_ACTIONS)
        try:
            await handle.perform_minor_action(action)
            logger.debug(f"Performed anti-idle action: {action.value}")
        except SessionRevoked:
            return False
        except Exception as e:
            logger.error(f"Error performing anti-idle action {action.value}: {e}")
        self.anti_idle_count += 1
        self.record_activity()
        return True

    async def health_report_tick(self) -> Optional[Dict[str, object]]:
        """Log a status record for the connected session"""
        handle = self._handle
        if handle is None or handle.revoked:
            return None

        try:
            vitals = await handle.query_vitals()
            players = await handle.query_online_players()
            report = {
                "connected": True,
                "username": handle.username,
                "health": vitals.health,
                "food": vitals.food,
                "players_online": len(players),
            }
        except SessionRevoked:
            return None

        self.health_report_count += 1
        logger.info(
            f"Health Check - Bot status: Online | Health: {report['health']}/20 | Food: {report['food']}/20"
        )
        logger.info(f"Players online: {report['players_online']}")
        return report

    @property
    def stats(self) -> dict:
        """Get scheduler statistics"""
        return {
            "running": self.running,
            "idle_seconds": round(self.idle_time, 1),
            "anti_idle_actions": self.anti_idle_count,
            "health_reports": self.health_report_count,
        }

"""
Deferred callbacks for the analysis loop.

The controller never sleeps. It asks a scheduler to call it back later
and keeps the returned handle so ``stop()`` can cancel the pending cycle.
Tests substitute a manual scheduler that fires callbacks on demand.
"""

import logging
import threading
from typing import Callable, Protocol

logger = logging.getLogger(__name__)


class ScheduledTask(Protocol):
    def cancel(self) -> None:
        ...


class Scheduler(Protocol):
    def schedule(self, delay: float, callback: Callable[[], None]) -> ScheduledTask:
        ...


class TimerScheduler:
    """Runs each callback on its own daemon ``threading.Timer``."""

    def __init__(self, name: str = "cerveau-cycle"):
        self.name = name

    def schedule(self, delay: float, callback: Callable[[], None]) -> threading.Timer:
        timer = threading.Timer(max(0.0, delay), callback)
        timer.daemon = True
        timer.name = self.name
        timer.start()
        logger.debug(f"Next cycle in {delay:.2f}s")
        return timer

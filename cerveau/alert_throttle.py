"""
Alert throttle.

Decides whether an alert text may be spoken now. The same text is held
back while it is still within the cool-down window of its last
utterance; once the window has elapsed it is spoken again, so a
persistent obstacle keeps re-alerting.

The memory is an immutable value. ``mark_spoken`` returns a new one and
``AlertThrottle`` simply holds the current value and a clock.

Usage:
    throttle = AlertThrottle(window=3.0)
    if throttle.should_speak(text):
        speech.speak(text)
        throttle.mark_spoken(text)
"""

import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional

from .verdict import is_sentinel

logger = logging.getLogger(__name__)

DEFAULT_WINDOW = 3.0


@dataclass(frozen=True)
class AlertMemory:
    """Last spoken alert and the suppression window."""
    last_text: str = ""
    spoken_at: float = 0.0
    window: float = DEFAULT_WINDOW

    def expired(self, now: float) -> bool:
        return now - self.spoken_at >= self.window


def should_speak(memory: AlertMemory, text: Optional[str], now: float) -> bool:
    """Whether ``text`` may be vocalized at time ``now``."""
    text = (text or "").strip()
    if not text or is_sentinel(text):
        return False
    if text == memory.last_text and not memory.expired(now):
        return False
    return True


def mark_spoken(memory: AlertMemory, text: str, now: float) -> AlertMemory:
    """Return the memory after ``text`` has been spoken at ``now``."""
    return AlertMemory(last_text=text.strip(), spoken_at=now, window=memory.window)


class AlertThrottle:
    """Owner of the current AlertMemory."""

    def __init__(self, window: float = DEFAULT_WINDOW, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self.memory = AlertMemory(window=window)

    @property
    def window(self) -> float:
        return self.memory.window

    def should_speak(self, text: Optional[str]) -> bool:
        return should_speak(self.memory, text, self._clock())

    def mark_spoken(self, text: str) -> None:
        self.memory = mark_spoken(self.memory, text, self._clock())

    def reset(self) -> None:
        self.memory = AlertMemory(window=self.memory.window)
        logger.debug("Alert memory cleared")

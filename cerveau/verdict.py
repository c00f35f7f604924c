"""
Verdict classification.

The model answers either the sentinel ``RAS`` ("rien à signaler", nothing
to report) or a short alert sentence naming the obstacle. Matching is
exact after stripping surrounding whitespace, which is what the system
instruction asks the model to produce.
"""

import time
from dataclasses import dataclass
from enum import Enum
from typing import Optional

SENTINEL = "RAS"


class VerdictStatus(str, Enum):
    DANGER = "danger"
    SAFE = "safe"


@dataclass(frozen=True)
class Verdict:
    """Classified outcome of one analysis cycle."""
    text: str
    timestamp: int  # capture time, ms since epoch
    status: VerdictStatus

    @property
    def is_danger(self) -> bool:
        return self.status is VerdictStatus.DANGER

    def to_dict(self) -> dict:
        return {
            "text": self.text,
            "timestamp": self.timestamp,
            "status": self.status.value,
        }


def is_sentinel(text: Optional[str]) -> bool:
    """True when ``text`` is exactly the no-obstacle marker."""
    return (text or "").strip() == SENTINEL


def classify(raw_text: Optional[str]) -> VerdictStatus:
    """Map raw model output to a status.

    Empty or missing text is treated as danger: it is what an unfinished
    answer looks like, and it must never be reported as safe.
    """
    if is_sentinel(raw_text):
        return VerdictStatus.SAFE
    return VerdictStatus.DANGER


def make_verdict(raw_text: Optional[str], timestamp: Optional[int] = None) -> Verdict:
    """Build a Verdict from raw model output."""
    if timestamp is None:
        timestamp = int(time.time() * 1000)
    text = (raw_text or "").strip()
    return Verdict(text=text, timestamp=timestamp, status=classify(text))

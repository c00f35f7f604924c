"""
Fake collaborators and a manual scheduler for analysis loop tests.
"""

import threading
from typing import Callable, List, Optional

from cerveau.exceptions import FrameNotReady
from cerveau.frame_sampler import Frame, StreamHandle


class ManualTask:
    def __init__(self, delay: float, callback: Callable[[], None]):
        self.delay = delay
        self.callback = callback
        self.cancelled = False

    def cancel(self):
        self.cancelled = True


class ManualScheduler:
    """Scheduler that only fires when the test says so."""

    def __init__(self):
        self.tasks: List[ManualTask] = []

    def schedule(self, delay, callback):
        task = ManualTask(delay, callback)
        self.tasks.append(task)
        return task

    @property
    def pending(self) -> List[ManualTask]:
        return [t for t in self.tasks if not t.cancelled and t.callback is not None]

    def run_next(self) -> ManualTask:
        task = self.pending[0]
        callback, task.callback = task.callback, None
        callback()
        return task


class FakeSampler:
    """Camera stand-in. ``frames`` entries are Frames or exceptions."""

    def __init__(self, frames: Optional[list] = None, acquire_error: Exception = None):
        self.frames = list(frames or [])
        self.acquire_error = acquire_error
        self.acquired = 0
        self.released: List[Optional[StreamHandle]] = []
        self.on_acquire: Optional[Callable[[], None]] = None

    def acquire(self, constraints=None):
        self.acquired += 1
        if self.on_acquire:
            self.on_acquire()
        if self.acquire_error:
            raise self.acquire_error
        return StreamHandle(capture=object(), constraints=constraints)

    def capture(self, handle, capture_config=None):
        if handle is None or handle.released:
            raise FrameNotReady("released")
        item = self.frames.pop(0) if self.frames else make_frame()
        if isinstance(item, Exception):
            raise item
        return item

    def release(self, handle):
        if handle is None:
            return
        handle.released = True
        self.released.append(handle)


class FakeClient:
    """Inference stand-in. ``answers`` entries are strings or exceptions."""

    def __init__(self, answers: Optional[list] = None):
        self.answers = list(answers or [])
        self.calls = 0
        self.on_analyze: Optional[Callable[[], None]] = None

    def analyze(self, frame):
        self.calls += 1
        if self.on_analyze:
            self.on_analyze()
        item = self.answers.pop(0) if self.answers else "RAS"
        if isinstance(item, Exception):
            raise item
        return item


class FakeSpeech:
    def __init__(self):
        self.spoken: List[str] = []
        self.cancels = 0

    def speak(self, text):
        self.spoken.append(text)
        return True

    def cancel(self):
        self.cancels += 1


class SlowSpeech(FakeSpeech):
    """Speech whose ``speak`` blocks until ``release`` is set."""

    def __init__(self):
        super().__init__()
        self.started = threading.Event()
        self.release = threading.Event()

    def speak(self, text):
        self.started.set()
        self.release.wait(5.0)
        return super().speak(text)


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


def make_frame(captured_at: int = 1_700_000_000_000) -> Frame:
    return Frame(data=b"\xff\xd8jpeg", width=320, height=240, captured_at=captured_at)



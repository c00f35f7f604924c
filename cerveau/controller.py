"""
Analysis Loop Controller

Orchestrates one capture -> analyze -> classify -> speak cycle at a time,
on a self-paced cadence: the next cycle is scheduled only once the
current one has resolved, so a slow model slows the loop down instead of
piling up requests.

Lifecycle:
    IDLE -> STARTING -> RUNNING -> STOPPING -> IDLE

Usage:
    from cerveau.controller import AnalysisLoopController

    loop = AnalysisLoopController(FrameSampler(), InferenceClient(), SpeechSynthesizer())
    loop.add_listener(lambda state: print(state.phase, state.last_result))
    loop.start()
    ...
    loop.stop()
"""

import logging
import threading
from dataclasses import dataclass
from enum import Enum
from functools import partial
from typing import Callable, List, Optional

from .alert_throttle import AlertThrottle
from .config import config
from .diagnostics import Metrics, metrics as global_metrics
from .exceptions import (
    AuthError,
    CameraUnavailable,
    FrameNotReady,
    InferenceError,
    MissingCredentialError,
)
from .frame_sampler import CameraConstraints, CaptureConfig, FrameSampler, StreamHandle
from .inference import InferenceClient
from .scheduler import ScheduledTask, Scheduler, TimerScheduler
from .tts import SpeechSynthesizer
from .verdict import Verdict, make_verdict

logger = logging.getLogger(__name__)

# User facing messages (spoken language of the device)
CAMERA_ERROR = "Accès caméra refusé ou indisponible."
MISSING_KEY_ERROR = "Clé API manquante."
REJECTED_KEY_ERROR = "Clé API refusée."

CREDENTIAL_ERRORS = (MISSING_KEY_ERROR, REJECTED_KEY_ERROR)


class LoopPhase(str, Enum):
    IDLE = "idle"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"


@dataclass(frozen=True)
class LoopState:
    """Snapshot of the controller, handed to listeners."""
    phase: LoopPhase = LoopPhase.IDLE
    active: bool = False
    analyzing: bool = False
    last_result: Optional[Verdict] = None
    error: Optional[str] = None
    degraded: bool = False
    consecutive_failures: int = 0

    def to_dict(self) -> dict:
        return {
            "phase": self.phase.value,
            "active": self.active,
            "analyzing": self.analyzing,
            "last_result": self.last_result.to_dict() if self.last_result else None,
            "error": self.error,
            "degraded": self.degraded,
            "consecutive_failures": self.consecutive_failures,
        }


@dataclass
class LoopConfig:
    """Loop cadence and failure handling.

    Attributes:
        cycle_delay: Seconds between the end of a cycle and the next one
        not_ready_delay: Retry delay while the camera has no frame yet
        degraded_after: Consecutive inference failures before degraded mode
        degraded_notice: Spoken once on entering degraded mode, empty = silent
        alert_cooldown: Seconds before the same alert may be spoken again
    """
    cycle_delay: float = 2.5
    not_ready_delay: float = 0.2
    degraded_after: int = 3
    degraded_notice: str = "Analyse indisponible."
    alert_cooldown: float = 3.0

    @classmethod
    def from_env(cls) -> "LoopConfig":
        """Load from environment/.env"""
        return cls(
            cycle_delay=config.get_float("CERVEAU_CYCLE_DELAY", 2.5),
            not_ready_delay=config.get_float("CERVEAU_NOT_READY_DELAY", 0.2),
            degraded_after=config.get_int("CERVEAU_DEGRADED_AFTER", 3),
            degraded_notice=config.get("CERVEAU_DEGRADED_NOTICE", ""),
            alert_cooldown=config.get_float("CERVEAU_ALERT_COOLDOWN", 3.0),
        )


StateListener = Callable[[LoopState], None]


class AnalysisLoopController:
    """State machine driving the capture-analyze-speak loop."""

    def __init__(
        self,
        sampler: FrameSampler,
        client: InferenceClient,
        speech: SpeechSynthesizer,
        throttle: Optional[AlertThrottle] = None,
        scheduler: Optional[Scheduler] = None,
        capture_config: Optional[CaptureConfig] = None,
        constraints: Optional[CameraConstraints] = None,
        loop_config: Optional[LoopConfig] = None,
        metrics: Optional[Metrics] = None,
    ):
        self.sampler = sampler
        self.client = client
        self.speech = speech
        self.loop_config = loop_config or LoopConfig.from_env()
        self.throttle = throttle or AlertThrottle(window=self.loop_config.alert_cooldown)
        self.scheduler = scheduler or TimerScheduler()
        self.capture_config = capture_config or CaptureConfig.from_env()
        self.constraints = constraints or CameraConstraints.from_env()
        self.metrics = metrics or global_metrics

        self._lock = threading.RLock()
        self._listeners: List[StateListener] = []

        self._phase = LoopPhase.IDLE
        self._generation = 0
        self._handle: Optional[StreamHandle] = None
        self._pending: Optional[ScheduledTask] = None
        self._analyzing = False
        self._last_result: Optional[Verdict] = None
        self._error: Optional[str] = None
        self._failures = 0
        self._degraded = False

    # ------------------------------------------------------------------
    # Observable state
    # ------------------------------------------------------------------

    @property
    def state(self) -> LoopState:
        with self._lock:
            return LoopState(
                phase=self._phase,
                active=self._phase is LoopPhase.RUNNING,
                analyzing=self._analyzing,
                last_result=self._last_result,
                error=self._error,
                degraded=self._degraded,
                consecutive_failures=self._failures,
            )

    @property
    def phase(self) -> LoopPhase:
        with self._lock:
            return self._phase

    def add_listener(self, callback: StateListener) -> None:
        """Call ``callback(state)`` on every state change."""
        with self._lock:
            self._listeners.append(callback)

    def _notify(self) -> None:
        state = self.state
        with self._lock:
            listeners = list(self._listeners)
        for callback in listeners:
            try:
                callback(state)
            except Exception as e:
                logger.error(f"State listener failed: {e}", exc_info=True)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> bool:
        """Acquire the camera and begin cycling.

        Returns:
            True if the loop is running (or already starting/running),
            False if the camera could not be acquired or stop() won the race.
        """
        with self._lock:
            if self._phase is not LoopPhase.IDLE:
                logger.debug(f"start() ignored in phase {self._phase.value}")
                return self._phase in (LoopPhase.STARTING, LoopPhase.RUNNING)
            self._phase = LoopPhase.STARTING
            self._error = None
            self._generation += 1
            generation = self._generation
        self._notify()

        try:
            handle = self.sampler.acquire(self.constraints)
        except CameraUnavailable as e:
            logger.error(f"Camera unavailable: {e}")
            with self._lock:
                if self._generation == generation:
                    self._phase = LoopPhase.IDLE
                    self._error = CAMERA_ERROR
            self._notify()
            return False

        with self._lock:
            stale = self._generation != generation or self._phase is not LoopPhase.STARTING
            if not stale:
                self._handle = handle
                self._phase = LoopPhase.RUNNING
                self._pending = self.scheduler.schedule(0, partial(self._run_cycle, generation))

        if stale:
            logger.info("Loop stopped while the camera was starting, releasing it")
            self.sampler.release(handle)
            return False

        logger.info("Analysis loop started")
        self._notify()
        return True

    def stop(self) -> None:
        """Stop cycling and release everything. Idempotent."""
        with self._lock:
            if self._phase in (LoopPhase.IDLE, LoopPhase.STOPPING):
                return
            self._phase = LoopPhase.STOPPING
            self._generation += 1
            pending, self._pending = self._pending, None
            handle, self._handle = self._handle, None
        self._notify()

        if pending is not None:
            pending.cancel()
        self.sampler.release(handle)
        self.speech.cancel()

        with self._lock:
            self.throttle.reset()
            self._last_result = None
            self._analyzing = False
            self._failures = 0
            self._degraded = False
            self._phase = LoopPhase.IDLE

        logger.info("Analysis loop stopped")
        self._notify()

    # ------------------------------------------------------------------
    # Cycle
    # ------------------------------------------------------------------

    def _is_current(self, generation: int) -> bool:
        return self._generation == generation and self._phase is LoopPhase.RUNNING

    def _schedule_next(self, generation: int, delay: float) -> None:
        # Caller holds the lock
        self._pending = self.scheduler.schedule(delay, partial(self._run_cycle, generation))

    def _run_cycle(self, generation: int) -> None:
        with self._lock:
            if not self._is_current(generation) or self._analyzing:
                return
            self._pending = None
            self._analyzing = True
            handle = self._handle
        self._notify()

        with self.metrics.track("cycle"):
            delay = self._execute(generation, handle)

        with self._lock:
            if not self._is_current(generation):
                logger.debug("Discarding result of a stopped run")
                return
            self._analyzing = False
            self._schedule_next(generation, delay)
        self._notify()

    def _execute(self, generation: int, handle: Optional[StreamHandle]) -> float:
        """Run one cycle and return the delay before the next one."""
        try:
            with self.metrics.track("capture"):
                frame = self.sampler.capture(handle, self.capture_config)
        except FrameNotReady as e:
            logger.debug(f"Frame not ready: {e}")
            return self.loop_config.not_ready_delay
        except Exception as e:
            logger.error(f"Capture failed: {e}", exc_info=True)
            return self.loop_config.cycle_delay

        alert = False
        try:
            with self.metrics.track("inference"):
                text = self.client.analyze(frame)
        except MissingCredentialError as e:
            logger.error(f"Inference skipped: {e}")
            utterance = self._on_failure(generation, MISSING_KEY_ERROR)
        except AuthError as e:
            logger.error(f"Inference rejected: {e}")
            utterance = self._on_failure(generation, REJECTED_KEY_ERROR)
        except InferenceError as e:
            logger.warning(f"Inference failed ({type(e).__name__}): {e}")
            utterance = self._on_failure(generation)
        except Exception as e:
            logger.error(f"Unexpected inference error: {e}", exc_info=True)
            utterance = self._on_failure(generation)
        else:
            utterance = self._on_result(generation, make_verdict(text, frame.captured_at))
            alert = True

        if utterance is not None:
            self._say(generation, utterance, alert=alert)
        return self.loop_config.cycle_delay

    def _on_result(self, generation: int, verdict: Verdict) -> Optional[str]:
        """Record a verdict. Returns the alert to speak, if any."""
        with self._lock:
            if not self._is_current(generation):
                return None
            self._last_result = verdict
            self._failures = 0
            if self._degraded:
                logger.info("Inference recovered, leaving degraded mode")
            self._degraded = False
            if self._error in CREDENTIAL_ERRORS:
                self._error = None

            if not verdict.is_danger:
                logger.debug("Path clear")
                return None
            logger.info(f"Danger: {verdict.text}")
            if not self.throttle.should_speak(verdict.text):
                logger.debug(f"Alert throttled: {verdict.text}")
                return None
            return verdict.text

    def _on_failure(self, generation: int, error: Optional[str] = None) -> Optional[str]:
        """Count a failure. Returns the degraded notice when it is first due."""
        with self._lock:
            if not self._is_current(generation):
                return None
            if error is not None:
                self._error = error
            self._failures += 1
            threshold = self.loop_config.degraded_after
            if threshold > 0 and self._failures >= threshold and not self._degraded:
                self._degraded = True
                logger.warning(f"{self._failures} consecutive inference failures, degraded mode")
                return self.loop_config.degraded_notice or None
            return None

    def _say(self, generation: int, text: str, alert: bool = False) -> None:
        # Caller must not hold the lock
        with self._lock:
            if not self._is_current(generation):
                return
        self.speech.cancel()
        self.speech.speak(text)

        with self._lock:
            current = self._is_current(generation)
            if current and alert:
                self.throttle.mark_spoken(text)
        if not current:
            self.speech.cancel()

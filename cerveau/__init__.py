"""
Cerveau - camera to vision model to speech obstacle alerts

Uses lazy imports so `cerveau --help` does not pay for OpenCV and pydantic.
"""

__version__ = "0.1.0"
__license__ = "Apache-2.0"


def __getattr__(name):
    """Lazy import handler - imports modules only when accessed."""

    # Loop
    if name in ("AnalysisLoopController", "LoopConfig", "LoopPhase", "LoopState"):
        from . import controller
        return getattr(controller, name)

    # Collaborators
    if name in ("FrameSampler", "CameraConstraints", "CaptureConfig", "Frame"):
        from . import frame_sampler
        return getattr(frame_sampler, name)
    if name in ("InferenceClient", "InferenceConfig"):
        from . import inference
        return getattr(inference, name)
    if name in ("SpeechSynthesizer", "SpeechConfig"):
        from . import tts
        return getattr(tts, name)
    if name in ("AlertThrottle", "AlertMemory"):
        from . import alert_throttle
        return getattr(alert_throttle, name)
    if name in ("Verdict", "VerdictStatus", "classify", "SENTINEL"):
        from . import verdict
        return getattr(verdict, name)

    # Diagnostics
    if name in ("enable_diagnostics", "metrics"):
        from . import diagnostics
        return getattr(diagnostics, name)

    # Exceptions
    if name in ("CerveauError", "CameraUnavailable", "FrameNotReady", "InferenceError"):
        from . import exceptions
        return getattr(exceptions, name)

    raise AttributeError(f"module 'cerveau' has no attribute '{name}'")


__all__ = [
    "AnalysisLoopController",
    "LoopConfig",
    "LoopPhase",
    "LoopState",
    "FrameSampler",
    "CameraConstraints",
    "CaptureConfig",
    "Frame",
    "InferenceClient",
    "InferenceConfig",
    "SpeechSynthesizer",
    "SpeechConfig",
    "AlertThrottle",
    "AlertMemory",
    "Verdict",
    "VerdictStatus",
    "classify",
    "SENTINEL",
    "enable_diagnostics",
    "metrics",
    "CerveauError",
    "CameraUnavailable",
    "FrameNotReady",
    "InferenceError",
]

"""
CLI Command Handlers

Each handler implements a specific CLI subcommand.
"""

import argparse
import json
import threading
import time
from typing import Dict, Optional

import yaml

from ..config import CONFIG_CATEGORIES, DEFAULTS, SECRET_MARKERS, config
from ..diagnostics import console, enable_diagnostics, metrics


# =============================================================================
# RUN HANDLER
# =============================================================================

def _apply_overrides(args: argparse.Namespace):
    """Copy explicit CLI options into the in-memory config (not saved)."""
    overrides = {
        "CERVEAU_CAMERA_DEVICE": args.device,
        "CERVEAU_CAPTURE_WIDTH": args.width,
        "CERVEAU_CAPTURE_QUALITY": args.quality,
        "CERVEAU_CYCLE_DELAY": args.interval,
        "CERVEAU_PROVIDER": args.provider,
        "CERVEAU_MODEL": args.model,
    }
    for key, value in overrides.items():
        if value is not None:
            config.set(key, value)
    if args.quiet:
        config.set("CERVEAU_TTS_ENABLED", "false")


def _status_printer():
    """Listener printing verdicts and errors as they change."""
    seen: Dict[str, object] = {"result": None, "error": None, "degraded": False}

    def _print(state):
        if state.error and state.error != seen["error"]:
            console.print(f"[red]❌ {state.error}[/red]")
        seen["error"] = state.error

        if state.degraded != seen["degraded"]:
            if state.degraded:
                console.print("[yellow]⚠️  Analysis unavailable (degraded mode)[/yellow]")
            else:
                console.print("[green]✅ Analysis back[/green]")
            seen["degraded"] = state.degraded

        result = state.last_result
        if result is not None and result is not seen["result"]:
            stamp = time.strftime("%H:%M:%S", time.localtime(result.timestamp / 1000))
            if result.is_danger:
                console.print(f"[dim]{stamp}[/dim] [bold red]🔴 {result.text}[/bold red]")
            else:
                console.print(f"[dim]{stamp}[/dim] [green]🟢 {result.text}[/green]")
        seen["result"] = result

    return _print


def handle_run(args: argparse.Namespace) -> int:
    """Handle the 'run' command."""
    from ..controller import AnalysisLoopController
    from ..exceptions import ConfigurationError
    from ..frame_sampler import FrameSampler
    from ..inference import InferenceClient
    from ..tts import SpeechSynthesizer

    _apply_overrides(args)
    enable_diagnostics(
        level="DEBUG" if args.debug else config.get("CERVEAU_LOG_LEVEL", "INFO"),
        log_file=config.get("CERVEAU_LOG_FILE") or None,
    )

    try:
        client = InferenceClient()
        controller = AnalysisLoopController(FrameSampler(), client, SpeechSynthesizer())
    except ConfigurationError as e:
        print(f"❌ Configuration error: {e}")
        return 1

    controller.add_listener(_status_printer())

    inference_config = client.config
    print(f"🧠 Cerveau | {inference_config.provider}:{inference_config.model} "
          f"| every {controller.loop_config.cycle_delay:g}s "
          f"| {controller.capture_config.target_width}px q={controller.capture_config.quality:g}")
    print(f"   Camera: {controller.constraints.device} | Speech: {'off' if args.quiet else 'on'}")
    if args.duration:
        print(f"   Duration: {args.duration:g}s")
    print("   Ctrl+C to stop")
    print()

    if not controller.start():
        return 1

    done = threading.Event()
    try:
        done.wait(args.duration if args.duration else None)
    except KeyboardInterrupt:
        print("\n🛑 Stopped")
    finally:
        controller.stop()

    if args.metrics:
        metrics.print_summary()
        print(f"📊 Inference: {client.get_metrics()}")

    return 0


# =============================================================================
# CONFIG HANDLER
# =============================================================================

def handle_config(args: argparse.Namespace) -> int:
    """Handle the 'config' command."""
    if args.show:
        values = config.masked_dict()
        if args.format == "json":
            print(json.dumps(values, indent=2, sort_keys=True))
        elif args.format == "yaml":
            print(yaml.safe_dump(values, sort_keys=True, allow_unicode=True), end="")
        else:
            print("📋 Current Configuration:")
            for category, items in CONFIG_CATEGORIES.items():
                print()
                print(f"  [{category}]")
                for key, label, _desc in items:
                    print(f"  {key}={values.get(key, '')}")
        return 0

    if args.get:
        if args.get not in DEFAULTS:
            print(f"❌ Unknown key: {args.get}")
            return 1
        value = config.get(args.get)
        print(f"{args.get}={value}")
        return 0

    if args.set:
        key, value = args.set
        if key not in DEFAULTS:
            print(f"❌ Unknown key: {key}")
            return 1
        config.set(key, value)
        config.save(keys_only=[key])
        shown = "*" * 8 if any(m in key for m in SECRET_MARKERS) else value
        print(f"✅ Set {key}={shown}")
        return 0

    # Default: show help
    print("Use --show to view config, --set KEY VALUE to modify")
    return 0


# =============================================================================
# TEST HANDLER
# =============================================================================

def _grab_frame(device: Optional[str] = None, attempts: int = 25):
    """Open the camera, wait for a first frame and release it."""
    from ..exceptions import FrameNotReady
    from ..frame_sampler import CameraConstraints, CaptureConfig, FrameSampler

    constraints = CameraConstraints.from_env()
    if device is not None:
        constraints.device = int(device) if device.isdigit() else device

    sampler = FrameSampler()
    handle = sampler.acquire(constraints)
    try:
        for _ in range(attempts):
            try:
                return sampler.capture(handle, CaptureConfig.from_env())
            except FrameNotReady:
                time.sleep(0.2)
        raise FrameNotReady("Camera opened but produced no frame")
    finally:
        sampler.release(handle)


def handle_test(args: argparse.Namespace) -> int:
    """Handle the 'test' command."""
    from ..exceptions import CerveauError

    component = args.component
    failed = False

    if component == "camera" or component == "all":
        print("📹 Testing camera...")
        try:
            frame = _grab_frame(args.device)
            print(f"   ✅ Camera working ({frame.width}x{frame.height}, {frame.size_kb} KB)")
        except CerveauError as e:
            print(f"   ❌ Camera error: {e}")
            failed = True

    if component == "tts" or component == "all":
        print("🔊 Testing TTS...")
        from ..tts import SpeechSynthesizer

        speech = SpeechSynthesizer()
        status = speech.status()
        engines = ", ".join(status["available_engines"]) or "none"
        print(f"   Engines: {engines} | lang={status['lang']} | {status['wpm']} wpm")
        if speech.speak("Test de la synthèse vocale."):
            print("   ✅ TTS working")
        else:
            print("   ❌ No TTS engine could speak")
            failed = True

    if component == "inference" or component == "all":
        print("🤖 Testing inference...")
        from ..frame_sampler import load_image
        from ..inference import InferenceClient
        from ..verdict import make_verdict

        try:
            frame = load_image(args.image) if args.image else _grab_frame(args.device)
            client = InferenceClient()
            start = time.time()
            text = client.analyze(frame)
            verdict = make_verdict(text, frame.captured_at)
            elapsed_ms = (time.time() - start) * 1000
            print(f"   ✅ {client.config.provider}:{client.config.model} answered "
                  f"\"{verdict.text}\" ({verdict.status.value}, {elapsed_ms:.0f}ms)")
        except CerveauError as e:
            print(f"   ❌ Inference failed ({type(e).__name__}): {e}")
            failed = True

    return 1 if failed else 0

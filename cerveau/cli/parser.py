"""
CLI Argument Parser

Defines all CLI arguments and subcommands.
"""

import argparse
from typing import List, Optional

from .. import __version__


def create_parser() -> argparse.ArgumentParser:
    """Create the main argument parser."""
    parser = argparse.ArgumentParser(
        prog="cerveau",
        description="Cerveau - spoken obstacle alerts from a camera and a vision model",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  cerveau run
  cerveau run --device 1 --interval 3 --duration 120
  cerveau run --provider openai --model gpt-4o-mini --quiet
  cerveau config --set CERVEAU_API_KEY xxx
  cerveau test inference --image hallway.jpg
        """
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # Run command (the analysis loop)
    _add_run_parser(subparsers)

    # Config command
    _add_config_parser(subparsers)

    # Test command
    _add_test_parser(subparsers)

    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    return parser


def _add_run_parser(subparsers):
    """Add run subcommand parser."""
    run = subparsers.add_parser(
        "run",
        help="Start the analysis loop",
        description="Capture, analyze and speak alerts until Ctrl+C or --duration"
    )

    # Camera / capture
    run.add_argument("--device", "-d", help="Camera device index or video URL")
    run.add_argument("--width", "-w", type=int, help="Width of the still sent to the model")
    run.add_argument("--quality", type=float, help="JPEG quality 0.0 - 1.0")

    # Loop
    run.add_argument("--interval", "-i", type=float,
                     help="Seconds between two analysis cycles")
    run.add_argument("--duration", "-t", type=float, default=0,
                     help="Duration in seconds (0 = until Ctrl+C)")

    # Inference
    run.add_argument("--provider", "-p", choices=["gemini", "openai"], help="Vision model provider")
    run.add_argument("--model", "-m", help="Vision model name")

    # Output
    run.add_argument("--quiet", "-q", action="store_true", help="Do not speak, print alerts only")
    run.add_argument("--debug", action="store_true", help="Debug logging")
    run.add_argument("--metrics", action="store_true", help="Print timing summary on exit")


def _add_config_parser(subparsers):
    """Add config subcommand parser."""
    cfg = subparsers.add_parser(
        "config",
        help="Configuration management",
        description="View and modify Cerveau configuration (.env)"
    )

    cfg.add_argument("--show", action="store_true", help="Show current config")
    cfg.add_argument("--format", "-f", choices=["text", "json", "yaml"], default="text",
                     help="Output format for --show")
    cfg.add_argument("--set", nargs=2, metavar=("KEY", "VALUE"), help="Set config value")
    cfg.add_argument("--get", metavar="KEY", help="Get config value")


def _add_test_parser(subparsers):
    """Add test subcommand parser."""
    test = subparsers.add_parser(
        "test",
        help="Test components",
        description="Smoke-test the camera, speech output or the vision model"
    )

    test.add_argument("component", choices=["camera", "tts", "inference", "all"],
                      help="Component to test")
    test.add_argument("--image", help="Image file for the inference test (default: camera frame)")
    test.add_argument("--device", "-d", help="Camera device for the camera test")


def parse_args(args: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = create_parser()
    return parser.parse_args(args)

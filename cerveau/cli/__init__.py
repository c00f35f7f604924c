"""
Cerveau CLI Module

Usage:
    from cerveau.cli import run_cli

    run_cli(["run", "--duration", "60"])
"""

from .main import main, run_cli
from .parser import create_parser, parse_args
from .handlers import (
    handle_run,
    handle_config,
    handle_test,
)

__all__ = [
    "main",
    "run_cli",
    "create_parser",
    "parse_args",
    "handle_run",
    "handle_config",
    "handle_test",
]

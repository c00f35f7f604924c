"""
Diagnostics and monitoring for Cerveau: logging setup and cycle metrics
"""

import json
import logging
import threading
import time
from collections import defaultdict
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Dict, Optional

from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

# Rich console for pretty output
console = Console()

DEFAULT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def enable_diagnostics(
    level: str = "INFO",
    format: str = DEFAULT_FORMAT,
    use_rich: bool = True,
    log_file: Optional[str] = None,
) -> logging.Logger:
    """Configure root logging for the CLI.

    Args:
        level: Logging level name (DEBUG, INFO, WARNING, ERROR)
        format: Format string for the plain and file handlers
        use_rich: Use RichHandler for console output
        log_file: Optional path of an additional log file

    Returns:
        The configured ``cerveau`` logger
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    if use_rich:
        handler = RichHandler(
            console=console,
            show_time=True,
            show_path=False
        )
        handler.setFormatter(logging.Formatter("%(message)s"))
    else:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(format))

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.addHandler(handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(logging.Formatter(format))
        root_logger.addHandler(file_handler)

    cerveau_logger = logging.getLogger("cerveau")
    cerveau_logger.setLevel(log_level)

    # urllib3 logs every connection at DEBUG
    logging.getLogger("urllib3").setLevel(max(log_level, logging.INFO))

    return cerveau_logger


class Metrics:
    """Metrics collection for the analysis loop"""

    def __init__(self):
        self._metrics = defaultdict(lambda: {
            'processed': 0,
            'errors': 0,
            'total_time': 0.0,
            'min_time': float('inf'),
            'max_time': 0.0,
            'last_update': None
        })
        self._lock = threading.Lock()

    @contextmanager
    def track(self, name: str):
        """Context manager to track metrics for a named operation"""
        start_time = time.time()
        error = False

        try:
            yield
        except Exception:
            error = True
            raise
        finally:
            elapsed = time.time() - start_time

            with self._lock:
                metric = self._metrics[name]
                metric['processed'] += 1
                if error:
                    metric['errors'] += 1
                metric['total_time'] += elapsed
                metric['min_time'] = min(metric['min_time'], elapsed)
                metric['max_time'] = max(metric['max_time'], elapsed)
                metric['last_update'] = datetime.now()

    def get_stats(self, name: str) -> Dict[str, Any]:
        """Get statistics for a named metric"""
        with self._lock:
            if name not in self._metrics:
                return {}

            stats = self._metrics[name].copy()
            if stats['processed'] > 0:
                stats['avg_time'] = stats['total_time'] / stats['processed']
            return stats

    def get_all_stats(self) -> Dict[str, Dict[str, Any]]:
        """Get all collected statistics"""
        with self._lock:
            names = list(self._metrics)
        return {name: self.get_stats(name) for name in names}

    def print_summary(self):
        """Print a summary table of all metrics"""
        table = Table(title="Analysis Loop Metrics")
        table.add_column("Stage", style="cyan")
        table.add_column("Processed", style="green")
        table.add_column("Errors", style="red")
        table.add_column("Avg Time (s)", style="yellow")
        table.add_column("Min/Max (s)", style="blue")

        for name, metric in self.get_all_stats().items():
            table.add_row(
                name,
                str(metric.get('processed', 0)),
                str(metric.get('errors', 0)),
                f"{metric.get('avg_time', 0):.3f}",
                f"{metric.get('min_time', 0):.3f}/{metric.get('max_time', 0):.3f}"
            )

        console.print(table)

    def reset(self, name: Optional[str] = None):
        """Reset metrics for a specific name or all metrics"""
        with self._lock:
            if name:
                self._metrics.pop(name, None)
            else:
                self._metrics.clear()

    def export_json(self) -> str:
        """Export metrics as JSON"""
        stats = self.get_all_stats()
        for metric in stats.values():
            if metric.get('last_update'):
                metric['last_update'] = metric['last_update'].isoformat()
        return json.dumps(stats, indent=2)


# Global metrics instance
metrics = Metrics()

"""
Logging utilities for the counterfactual search engine.
"""

import os
import sys
import json
import time
import logging
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Dict, Iterator, Optional, Union

from rich.console import Console
from rich.logging import RichHandler

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


def parse_level(level: Union[int, str]) -> int:
    """Numeric logging level for a level name; unknown names fall back to INFO."""
    if isinstance(level, int):
        return level
    return _LEVELS.get(level.lower(), logging.INFO)


def _console_handler(use_rich: bool) -> logging.Handler:
    if use_rich:
        # feature values are logged verbatim, never as markup
        return RichHandler(console=Console(stderr=True), show_time=False, show_path=False, markup=False)
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    return handler


def _file_handler(log_dir: str, name: str) -> logging.Handler:
    os.makedirs(log_dir, exist_ok=True)
    timestamp = datetime.now().strftime("%Y%m%d-%H%M%S")
    handler = logging.FileHandler(os.path.join(log_dir, f"{name}_{timestamp}.log"))
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    return handler


def setup_logger(
    name: str = "cfsearch",
    level: Union[int, str] = logging.INFO,
    log_dir: Optional[str] = None,
    use_rich: bool = True
) -> logging.Logger:
    """
    Configure the named logger with a console handler and, when log_dir is
    given, a timestamped log file in that directory.

    Existing handlers are replaced, so calling this twice does not duplicate
    output.
    """
    numeric_level = parse_level(level)
    logger = logging.getLogger(name)
    logger.setLevel(numeric_level)
    logger.propagate = False
    logger.handlers.clear()

    handlers = [_console_handler(use_rich)]
    if log_dir:
        handlers.append(_file_handler(log_dir, name))
    for handler in handlers:
        handler.setLevel(numeric_level)
        logger.addHandler(handler)

    logger.debug(f"Logger initialized: {name}")
    return logger


class TimingLogger:
    """Records how long named phases of a run take."""

    def __init__(self, logger: Optional[logging.Logger] = None, level: int = logging.INFO):
        self.logger = logger or logging.getLogger("timing")
        self.level = level
        self._started: Dict[str, float] = {}
        self.timings: Dict[str, float] = {}

    def start(self, name: str) -> None:
        self._started[name] = time.monotonic()

    def stop(self, name: str) -> float:
        """Stop a phase, log and return its duration (0.0 if it never started)."""
        if name not in self._started:
            self.logger.warning(f"Timer '{name}' was never started")
            return 0.0

        elapsed = time.monotonic() - self._started.pop(name)
        self.timings[name] = elapsed
        self.logger.log(self.level, f"{name}: {elapsed:.3f}s")
        return elapsed

    @contextmanager
    def timed(self, name: str) -> Iterator[None]:
        """Time the enclosed block; nothing is recorded if it raises."""
        self.start(name)
        yield
        self.stop(name)

    def summary(self) -> str:
        if not self.timings:
            return "No timings recorded"
        return "\n".join(f"{name}: {elapsed:.3f}s" for name, elapsed in self.timings.items())


class SearchStats:
    """Counters for one search run, logged as JSON when the run ends."""

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger("stats")
        self.stats: Dict[str, Any] = {}
        self.start_time = time.monotonic()

    def add(self, key: str, value: Any) -> None:
        self.stats[key] = value

    def increment(self, key: str, amount: Union[int, float] = 1) -> None:
        self.stats[key] = self.stats.get(key, 0) + amount

    def get(self, key: str) -> Any:
        """Get a statistic value, None when it was never recorded."""
        return self.stats.get(key)

    def log(self, level: int = logging.INFO) -> None:
        stats_to_log = dict(self.stats)
        stats_to_log["elapsed_time"] = f"{time.monotonic() - self.start_time:.3f}s"
        self.logger.log(level, f"Stats: {json.dumps(stats_to_log, indent=2, default=str)}")

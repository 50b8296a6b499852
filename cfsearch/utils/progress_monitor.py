"""
Progress monitoring utility for counterfactual searches.
Tracks the stages of one explanation request and the consumed search budget.
"""

import time
import logging
from enum import Enum, auto
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)


class Stage(Enum):
    """Enum representing the stages of an explanation request."""
    BUILD = auto()
    SEARCH = auto()
    REPORT = auto()
    COMPLETE = auto()


class ProgressMonitor:
    """
    Progress monitoring utility for one explanation request.
    Reports how much of the termination budget has been consumed.
    """

    _NEXT_STAGE = {
        Stage.BUILD: Stage.SEARCH,
        Stage.SEARCH: Stage.REPORT,
        Stage.REPORT: Stage.COMPLETE,
    }

    def __init__(self, verbose: bool = False, report_every: float = 0.1):
        """
        Initialize the progress monitor.

        Args:
            verbose: Whether to log progress updates at INFO level
            report_every: Minimum progress increase between two progress logs
        """
        self.verbose = verbose
        self.report_every = report_every
        self.current_stage = Stage.BUILD
        self.start_time = time.time()
        self.stage_start_times: Dict[Stage, float] = {}
        self.stage_durations: Dict[Stage, float] = {}
        self.completed_stages: List[Stage] = []
        self.progress = 0.0
        self._last_reported = 0.0

        self.start_stage(Stage.BUILD)

    def _log(self, message: str) -> None:
        logger.log(logging.INFO if self.verbose else logging.DEBUG, message)

    def start_stage(self, stage: Stage) -> None:
        """Start a new processing stage."""
        self.current_stage = stage
        self.stage_start_times[stage] = time.time()
        self._log(f"Starting {stage.name}")

    def complete_stage(self, stage: Stage) -> None:
        """Mark a stage as completed and move to the next one."""
        if stage in self.stage_start_times and stage not in self.completed_stages:
            duration = time.time() - self.stage_start_times[stage]
            self.stage_durations[stage] = duration
            self.completed_stages.append(stage)
            self._log(f"Completed {stage.name} in {duration:.2f}s")

        if stage == self.current_stage and stage in self._NEXT_STAGE:
            self.current_stage = self._NEXT_STAGE[stage]

    def update_progress(self, progress: float) -> None:
        """
        Update progress within the search stage.

        Args:
            progress: Fraction of the termination budget consumed, between 0 and 1
        """
        self.progress = max(0.0, min(1.0, progress))
        if self.progress - self._last_reported >= self.report_every or self.progress >= 1.0 > self._last_reported:
            self._last_reported = self.progress
            self._log(f"{Stage.SEARCH.name}: {self.progress * 100:.1f}% of budget consumed")

    def get_elapsed_time(self) -> float:
        """Get the total elapsed time in seconds."""
        return time.time() - self.start_time

    def get_stage_summary(self) -> Dict[str, float]:
        """Get a mapping of stage names to durations."""
        return {stage.name: duration for stage, duration in self.stage_durations.items()}

    def get_progress_report(self) -> Dict[str, Any]:
        """Get a detailed progress report."""
        return {
            "elapsed_time": self.get_elapsed_time(),
            "current_stage": self.current_stage.name,
            "completed_stages": [stage.name for stage in self.completed_stages],
            "stage_durations": self.get_stage_summary(),
            "search_progress": self.progress,
        }

    def complete(self, failed_stage: Optional[Stage] = None) -> None:
        """Mark the request as finished."""
        if failed_stage is None:
            self.complete_stage(self.current_stage)
        self.current_stage = Stage.COMPLETE
        self._log(f"Process completed in {self.get_elapsed_time():.2f}s")

"""
Optimizer contract and the default local search optimizer.

The explainer only depends on the Optimizer interface: any engine that
proposes moves, scores candidates through the problem's score calculator,
honours the termination policy and reports improving solutions can be
plugged in.
"""

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, List, Optional

import numpy as np

from cfsearch.counterfactual.score import CounterfactualScoreCalculator
from cfsearch.counterfactual.solution import CounterfactualSolution
from cfsearch.utils.config import SolverConfig
from cfsearch.utils.error_utils import ConfigurationError
from cfsearch.utils.logging_utils import SearchStats

logger = logging.getLogger(__name__)

BestSolutionCallback = Callable[[CounterfactualSolution], None]
ProgressCallback = Callable[[float], None]


@dataclass(frozen=True)
class TerminationPolicy:
    """
    Stops a search after a number of score evaluations or a wall-clock budget.

    An evaluation limit makes a seeded search reproducible.
    """
    max_evaluations: Optional[int] = None
    max_seconds: Optional[float] = None

    def __post_init__(self):
        if self.max_evaluations is not None and self.max_evaluations < 1:
            raise ConfigurationError("max_evaluations must be at least 1", ["max_evaluations"])
        if self.max_seconds is not None and self.max_seconds <= 0:
            raise ConfigurationError("max_seconds must be positive", ["max_seconds"])

    def with_defaults(self, seconds: float) -> 'TerminationPolicy':
        """Apply a wall-clock budget when no limit was given."""
        if self.max_evaluations is None and self.max_seconds is None:
            return TerminationPolicy(max_seconds=seconds)
        return self

    def is_terminated(self, evaluations: int, elapsed: float) -> bool:
        if self.max_evaluations is not None and evaluations >= self.max_evaluations:
            return True
        if self.max_seconds is not None and elapsed >= self.max_seconds:
            return True
        return False

    def progress(self, evaluations: int, elapsed: float) -> float:
        """Fraction of the budget consumed."""
        fractions = []
        if self.max_evaluations is not None:
            fractions.append(evaluations / self.max_evaluations)
        if self.max_seconds is not None:
            fractions.append(elapsed / self.max_seconds)
        return min(1.0, max(fractions)) if fractions else 0.0


@dataclass
class SearchProblem:
    """The starting solution and how to score candidates."""
    solution: CounterfactualSolution
    score_calculator: CounterfactualScoreCalculator


class Optimizer(ABC):
    """Abstract search engine."""

    @abstractmethod
    async def solve(
        self,
        problem: SearchProblem,
        termination: TerminationPolicy,
        on_best_solution: Optional[BestSolutionCallback] = None,
        on_progress: Optional[ProgressCallback] = None
    ) -> CounterfactualSolution:
        """
        Search for the best-scoring solution.

        Every improvement of the best solution is passed to on_best_solution
        before the search continues. No score evaluation is left pending when
        this coroutine returns or raises.

        Returns:
            The best solution found, scored
        """
        pass


class LocalSearchOptimizer(Optimizer):
    """
    Late acceptance local search over single-entity moves.

    Each step draws a batch of moves on non-fixed entities, scores the batch
    concurrently and keeps the best candidate if it is no worse than the
    current solution or than the solution held `late_acceptance_size` steps
    earlier.
    """

    def __init__(self, config: Optional[SolverConfig] = None):
        self.config = config or SolverConfig()
        if self.config.move_batch_size < 1:
            raise ConfigurationError("move_batch_size must be at least 1", ["move_batch_size"])
        if self.config.late_acceptance_size < 1:
            raise ConfigurationError("late_acceptance_size must be at least 1", ["late_acceptance_size"])

    async def _score_all(
        self,
        calculator: CounterfactualScoreCalculator,
        candidates: List[CounterfactualSolution]
    ) -> None:
        # wait for every evaluation before surfacing the first failure
        results = await asyncio.gather(
            *(calculator.calculate(c) for c in candidates), return_exceptions=True
        )
        for result in results:
            if isinstance(result, BaseException):
                raise result

    async def solve(
        self,
        problem: SearchProblem,
        termination: TerminationPolicy,
        on_best_solution: Optional[BestSolutionCallback] = None,
        on_progress: Optional[ProgressCallback] = None
    ) -> CounterfactualSolution:
        rng = np.random.default_rng(self.config.seed)
        calculator = problem.score_calculator
        stats = SearchStats(logger)
        start = time.monotonic()

        current = problem.solution.copy()
        await calculator.calculate(current)
        evaluations = 1
        best = current
        if on_best_solution is not None:
            on_best_solution(best)
        stats.increment("improvements")

        movable = [i for i, e in enumerate(current.entities) if not e.is_fixed()]
        history = [current.score] * self.config.late_acceptance_size
        step = 0

        while movable and not termination.is_terminated(evaluations, time.monotonic() - start):
            batch_size = self.config.move_batch_size
            if termination.max_evaluations is not None:
                batch_size = min(batch_size, termination.max_evaluations - evaluations)

            candidates = []
            for _ in range(batch_size):
                index = movable[int(rng.integers(len(movable)))]
                value = current.entities[index].propose_move(
                    rng,
                    uniform_probability=self.config.uniform_move_probability,
                    step_ratio=self.config.step_ratio
                )
                candidates.append(current.with_move(index, value))

            await self._score_all(calculator, candidates)
            evaluations += len(candidates)

            candidate = min(candidates, key=lambda s: s.score)
            slot = step % len(history)
            if candidate.score <= current.score or candidate.score <= history[slot]:
                current = candidate
                stats.increment("accepted_moves")
            history[slot] = current.score

            if current.score < best.score:
                best = current
                stats.increment("improvements")
                logger.debug(f"New best score {best.score} after {evaluations} evaluations")
                if on_best_solution is not None:
                    on_best_solution(best)

            if on_progress is not None:
                on_progress(termination.progress(evaluations, time.monotonic() - start))

            step += 1
            # let cancellation and other searches through
            await asyncio.sleep(0)

        stats.add("evaluations", evaluations)
        stats.add("steps", step)
        stats.add("best_score", str(best.score))
        stats.log(logging.DEBUG)
        return best

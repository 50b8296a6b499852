"""
Goal criteria: map the outputs of a candidate to a distance-to-goal and a
validity verdict.
"""

import logging
import math
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Sequence, Union

from cfsearch.model.domains import is_number
from cfsearch.model.prediction import Output, PredictionOutput
from cfsearch.utils.config import DEFAULT_GOAL_THRESHOLD
from cfsearch.utils.error_utils import ConfigurationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GoalScore:
    """Non-negative distance to the goal plus a validity bit."""
    distance: float
    valid: bool

    @classmethod
    def exact_match(cls) -> 'GoalScore':
        return cls(0.0, True)

    @classmethod
    def create(cls, distance: float, valid: Optional[bool] = None) -> 'GoalScore':
        """Build a score; validity defaults to an exact match. NaN counts as infinitely far."""
        distance = abs(float(distance))
        if math.isnan(distance):
            distance = math.inf
        if valid is None:
            valid = distance == 0.0
        return cls(distance, bool(valid))


class GoalCriteria(ABC):
    """Pluggable goal evaluation."""

    @abstractmethod
    def evaluate(self, outputs: Sequence[Output]) -> GoalScore:
        pass

    def __call__(self, outputs: Sequence[Output]) -> GoalScore:
        return self.evaluate(outputs)


class FunctionGoalCriteria(GoalCriteria):
    """
    Wraps an arbitrary callable as goal criteria.

    The callable may return a GoalScore or a bare distance, in which case the
    candidate is valid only on an exact match.
    """

    def __init__(self, fn: Callable[[List[Output]], object]):
        self.fn = fn

    def evaluate(self, outputs: Sequence[Output]) -> GoalScore:
        result = self.fn(list(outputs))
        if isinstance(result, GoalScore):
            return result
        return GoalScore.create(float(result))


def as_goal_criteria(criteria: Union[GoalCriteria, Callable[[List[Output]], object]]) -> GoalCriteria:
    """
    Accept goal criteria or a plain function of the outputs.

    Raises:
        ConfigurationError: if criteria is neither
    """
    if isinstance(criteria, GoalCriteria):
        return criteria
    if callable(criteria):
        return FunctionGoalCriteria(criteria)
    raise ConfigurationError(f"Goal criteria {criteria!r} is not callable", ["goal_criteria"])


def output_mismatch(predicted: Optional[Output], goal: Output) -> float:
    """
    Mismatch between one predicted output and its target.

    Numeric outputs use the absolute difference relative to the goal value
    (plain absolute difference for a zero goal). Other types count 0 or 1.
    A prediction whose confidence is below the goal's score adds the shortfall.
    A NaN or infinite prediction or confidence never matches: its mismatch is
    infinite.
    """
    if predicted is None:
        return 1.0

    if is_number(goal.value) and is_number(predicted.value):
        if not (math.isfinite(predicted.value) and math.isfinite(goal.value)):
            return math.inf
        difference = abs(float(predicted.value) - float(goal.value))
        mismatch = difference / abs(float(goal.value)) if goal.value != 0 else difference
    else:
        mismatch = 0.0 if predicted.value == goal.value else 1.0

    if not math.isfinite(predicted.score):
        return math.inf
    shortfall = max(0.0, float(goal.score) - float(predicted.score))
    return mismatch + shortfall


class DefaultGoalCriteria(GoalCriteria):
    """
    Compares predicted outputs with the goal outputs by name.

    Outputs named in output_thresholds are valid when their own mismatch is
    within their threshold. All other outputs are valid together when their
    mean mismatch is within the global threshold.
    """

    def __init__(
        self,
        goal: PredictionOutput,
        threshold: Optional[float] = None,
        output_thresholds: Optional[Dict[str, float]] = None
    ):
        self.goal = goal
        self.threshold = DEFAULT_GOAL_THRESHOLD if threshold is None else float(threshold)
        self.output_thresholds = dict(output_thresholds or {})

        if self.threshold < 0:
            raise ConfigurationError(f"Goal threshold must be non-negative, got {self.threshold}",
                                     ["goal_threshold"])
        names = {o.name for o in goal.outputs}
        for name, value in self.output_thresholds.items():
            if name not in names:
                raise ConfigurationError(f"Threshold given for unknown goal output '{name}'", [name])
            if value < 0:
                raise ConfigurationError(f"Threshold of output '{name}' must be non-negative", [name])

    def mismatches(self, outputs: Sequence[Output]) -> Dict[str, float]:
        by_name = {o.name: o for o in outputs}
        return {g.name: output_mismatch(by_name.get(g.name), g) for g in self.goal.outputs}

    def met_outputs(self, outputs: Sequence[Output]) -> List[str]:
        """Names of the goal outputs that individually meet their threshold."""
        by_name = {o.name: o for o in outputs}
        met = []
        for name, mismatch in self.mismatches(outputs).items():
            predicted = by_name.get(name)
            if predicted is None or not predicted.score >= self.goal.by_name(name).score:
                continue
            if mismatch <= self.output_thresholds.get(name, self.threshold):
                met.append(name)
        return met

    def evaluate(self, outputs: Sequence[Output]) -> GoalScore:
        if not self.goal.outputs:
            return GoalScore.exact_match()

        mismatches = self.mismatches(outputs)
        by_name = {o.name: o for o in outputs}

        valid = True
        shared = []
        for goal_output in self.goal.outputs:
            mismatch = mismatches[goal_output.name]
            predicted = by_name.get(goal_output.name)
            # confidence thresholds apply to every output
            if predicted is not None and not predicted.score >= goal_output.score:
                valid = False
            if goal_output.name in self.output_thresholds:
                if mismatch > self.output_thresholds[goal_output.name]:
                    valid = False
            else:
                shared.append(mismatch)

        if shared and sum(shared) / len(shared) > self.threshold:
            valid = False

        distance = sum(mismatches.values()) / len(mismatches)
        if valid:
            distance = 0.0
        return GoalScore(distance, valid)

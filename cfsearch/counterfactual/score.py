"""
Multi-level scoring of candidate solutions.

The hard tier counts constraint violations and must be zero for a candidate
to be feasible. The soft tier is minimised among feasible candidates.
Scores compare lexicographically, lower is better.
"""

import logging
import threading
from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional, Sequence, Tuple

from cfsearch.counterfactual.entities import CounterfactualEntity
from cfsearch.counterfactual.goal import GoalCriteria
from cfsearch.model.provider import PredictionProvider, predict_with_policy
from cfsearch.utils.config import ScoreWeights

if TYPE_CHECKING:
    from cfsearch.counterfactual.solution import CounterfactualSolution

logger = logging.getLogger(__name__)


@dataclass(frozen=True, order=True)
class Score:
    """
    hard: (changed fixed entities, entities outside their domain)
    soft: (weighted goal distance, weighted feature distance plus sparsity)
    """
    hard: Tuple[int, ...]
    soft: Tuple[float, ...]

    def is_feasible(self) -> bool:
        return all(h == 0 for h in self.hard)

    def __str__(self) -> str:
        hard = "/".join(str(h) for h in self.hard)
        soft = "/".join(f"{s:.6g}" for s in self.soft)
        return f"{hard}hard/{soft}soft"


def hard_score(entities: Sequence[CounterfactualEntity]) -> Tuple[int, int]:
    fixed_changes = sum(1 for e in entities if e.is_fixed() and e.is_changed())
    out_of_domain = sum(1 for e in entities if not e.is_fixed() and not e.domain.contains(e.value))
    return fixed_changes, out_of_domain


def feature_distance(entities: Sequence[CounterfactualEntity]) -> float:
    """Mean normalised distance of the entities from their original values."""
    if not entities:
        return 0.0
    return sum(e.distance() for e in entities) / len(entities)


def sparsity(entities: Sequence[CounterfactualEntity]) -> float:
    """Fraction of entities whose value changed."""
    if not entities:
        return 0.0
    return sum(1 for e in entities if e.is_changed()) / len(entities)


class CounterfactualScoreCalculator:
    """Scores a candidate by asking the model for its prediction."""

    def __init__(
        self,
        model: PredictionProvider,
        goal_criteria: GoalCriteria,
        weights: Optional[ScoreWeights] = None,
        prediction_timeout: Optional[float] = None,
        prediction_retries: int = 1
    ):
        self.model = model
        self.goal_criteria = goal_criteria
        self.weights = weights or ScoreWeights()
        self.prediction_timeout = prediction_timeout
        self.prediction_retries = prediction_retries
        self._lock = threading.Lock()
        self._evaluations = 0

    @property
    def evaluations(self) -> int:
        with self._lock:
            return self._evaluations

    async def calculate(self, solution: 'CounterfactualSolution') -> Score:
        """
        Predict the candidate's outputs and score it.

        The outputs, goal score and score are cached on the solution.

        Raises:
            PredictionError: if the model fails or times out for this candidate
        """
        outputs = await predict_with_policy(
            self.model,
            [solution.to_prediction_input()],
            timeout=self.prediction_timeout,
            attempts=self.prediction_retries
        )
        with self._lock:
            self._evaluations += 1

        prediction = outputs[0]
        goal_score = self.goal_criteria.evaluate(prediction.outputs)
        entities = solution.entities

        score = Score(
            hard=hard_score(entities),
            soft=(
                self.weights.goal * goal_score.distance,
                self.weights.distance * feature_distance(entities)
                + self.weights.sparsity * sparsity(entities),
            )
        )

        solution.outputs = prediction
        solution.goal_score = goal_score
        solution.score = score
        return score

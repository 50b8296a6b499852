"""
Candidate solutions and per-request identity management.
"""

import logging
import threading
import uuid
from typing import Any, List, Optional, Sequence, Set

from cfsearch.counterfactual.entities import CounterfactualEntity
from cfsearch.counterfactual.goal import GoalScore
from cfsearch.counterfactual.score import Score
from cfsearch.model.prediction import Feature, PredictionInput, PredictionOutput
from cfsearch.utils.error_utils import IdentityInvariantError

logger = logging.getLogger(__name__)


class CounterfactualSolution:
    """
    One search state: the entities plus the cached prediction and score.

    Solutions are copy-on-write. with_move() returns a new solution and
    leaves this one untouched, so candidates can be scored concurrently.
    """

    def __init__(
        self,
        entities: Sequence[CounterfactualEntity],
        execution_id: uuid.UUID,
        original_input: Optional[PredictionInput] = None
    ):
        self.entities: List[CounterfactualEntity] = list(entities)
        self.execution_id = execution_id
        self.original_input = original_input or PredictionInput([e.original for e in self.entities])
        self.outputs: Optional[PredictionOutput] = None
        self.goal_score: Optional[GoalScore] = None
        self.score: Optional[Score] = None

    @property
    def features(self) -> List[Feature]:
        return [e.as_feature() for e in self.entities]

    def to_prediction_input(self) -> PredictionInput:
        return PredictionInput(self.features)

    def copy(self) -> 'CounterfactualSolution':
        clone = CounterfactualSolution(
            [e.copy() for e in self.entities], self.execution_id, self.original_input
        )
        clone.outputs = self.outputs
        clone.goal_score = self.goal_score
        clone.score = self.score
        return clone

    def with_move(self, index: int, value: Any) -> 'CounterfactualSolution':
        """New unscored solution with entity `index` set to `value`."""
        entities = list(self.entities)
        moved = entities[index].copy()
        moved.assign(value)
        entities[index] = moved
        return CounterfactualSolution(entities, self.execution_id, self.original_input)

    def is_valid(self) -> bool:
        if self.goal_score is None or self.score is None:
            return False
        return self.goal_score.valid and self.score.is_feasible()

    def changed_entities(self) -> List[CounterfactualEntity]:
        return [e for e in self.entities if e.is_changed()]

    def __repr__(self) -> str:
        return f"CounterfactualSolution(score={self.score}, entities={self.entities!r})"


class SequenceCounter:
    """
    Issues the sequence ids of one explanation request.

    Callers that must deliver results in sequence order hold `lock` around
    both the id assignment and the delivery.
    """

    def __init__(self, start: int = 1):
        self.lock = threading.RLock()
        self._next = start
        self._issued: Set[int] = set()

    def next_id(self) -> int:
        with self.lock:
            sequence_id = self._next
            if sequence_id in self._issued:
                raise IdentityInvariantError(
                    f"Sequence id {sequence_id} was already issued", sequence_id
                )
            self._issued.add(sequence_id)
            self._next += 1
            return sequence_id

    @property
    def issued(self) -> List[int]:
        with self.lock:
            return sorted(self._issued)

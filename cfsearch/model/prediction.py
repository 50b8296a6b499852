"""
Core value types exchanged with the predictive model.
"""

import uuid
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional, Union

from cfsearch.model.domains import FeatureDomain, FixedDomain, NumericFeatureDistribution
from cfsearch.model.types import FeatureType

if TYPE_CHECKING:
    from cfsearch.counterfactual.goal import GoalCriteria


@dataclass(frozen=True)
class Feature:
    """A named, typed input value. Never mutated: with_value() returns a new Feature."""
    name: str
    type: FeatureType
    value: Any
    domain: FeatureDomain = field(default_factory=FixedDomain)

    def with_value(self, value: Any) -> 'Feature':
        return replace(self, value=value)

    def as_number(self) -> float:
        if isinstance(self.value, bool):
            return 1.0 if self.value else 0.0
        return float(self.value)


@dataclass(frozen=True)
class Output:
    """
    A named model output.

    On a prediction, score is the model's confidence. On a goal, score is the
    minimum confidence the counterfactual's prediction must reach.
    """
    name: str
    type: FeatureType
    value: Any
    score: float = 1.0


@dataclass
class PredictionInput:
    features: List[Feature] = field(default_factory=list)

    def by_name(self, name: str) -> Optional[Feature]:
        for feature in self.features:
            if feature.name == name:
                return feature
        return None


@dataclass
class PredictionOutput:
    outputs: List[Output] = field(default_factory=list)

    def by_name(self, name: str) -> Optional[Output]:
        for output in self.outputs:
            if output.name == name:
                return output
        return None


@dataclass
class CounterfactualPrediction:
    """
    An explanation request: the original input, the desired outputs and the
    settings that only apply to this request.
    """
    input: PredictionInput
    goal: PredictionOutput
    goal_threshold: Optional[float] = None
    output_thresholds: Dict[str, float] = field(default_factory=dict)
    execution_id: uuid.UUID = field(default_factory=uuid.uuid4)
    max_running_time_seconds: Optional[float] = None
    goal_criteria: Optional[Union['GoalCriteria', Callable[[List['Output']], Any]]] = None
    distributions: Dict[str, NumericFeatureDistribution] = field(default_factory=dict)

    def __post_init__(self):
        if self.execution_id is None:
            self.execution_id = uuid.uuid4()

"""
Read-only results of a counterfactual search and their rendering.
"""

import io
import uuid
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from rich import box
from rich.console import Console
from rich.table import Table
from rich.text import Text

from cfsearch.counterfactual.entities import CounterfactualEntity
from cfsearch.counterfactual.goal import DefaultGoalCriteria, GoalCriteria
from cfsearch.counterfactual.score import Score
from cfsearch.model.prediction import Feature, Output, PredictionInput, PredictionOutput

TABLE_WIDTH = 120


def _cell(value: Any) -> Text:
    if value is None:
        return Text("-")
    if isinstance(value, float):
        return Text(f"{value:.4g}")
    return Text(str(value))


def _json_value(value: Any) -> Any:
    if isinstance(value, (bool, int, float, str)) or value is None:
        return value
    return str(value)


def _output_to_dict(output: Output) -> Dict[str, Any]:
    return {
        "name": output.name,
        "type": output.type.value,
        "value": _json_value(output.value),
        "score": output.score,
    }


@dataclass(frozen=True)
class CounterfactualResult:
    """
    Snapshot of a surfaced solution, intermediate or final.

    Never mutated after construction.
    """
    entities: Tuple[CounterfactualEntity, ...]
    features: Tuple[Feature, ...]
    output: Tuple[PredictionOutput, ...]
    valid: bool
    execution_id: uuid.UUID
    solution_id: uuid.UUID
    sequence_id: int
    score: Optional[Score]
    goal_distance: float
    evaluations: int
    elapsed_seconds: float
    goal: Optional[PredictionOutput] = None
    original_output: Optional[PredictionOutput] = None
    met_outputs: Tuple[str, ...] = ()
    is_final: bool = False

    @classmethod
    def from_solution(
        cls,
        solution,
        sequence_id: int,
        evaluations: int,
        elapsed_seconds: float,
        goal: Optional[PredictionOutput] = None,
        original_output: Optional[PredictionOutput] = None,
        goal_criteria: Optional[GoalCriteria] = None,
        is_final: bool = False
    ) -> 'CounterfactualResult':
        """Wrap a solution under a fresh solution id."""
        predicted = solution.outputs.outputs if solution.outputs is not None else []
        if isinstance(goal_criteria, DefaultGoalCriteria):
            met = tuple(goal_criteria.met_outputs(predicted))
        elif goal is not None and solution.goal_score is not None and solution.goal_score.valid:
            met = tuple(o.name for o in goal.outputs)
        else:
            met = ()
        entities = tuple(e.copy() for e in solution.entities)
        goal_distance = solution.goal_score.distance if solution.goal_score is not None else float("inf")
        return cls(
            entities=entities,
            features=tuple(e.as_feature() for e in entities),
            output=(solution.outputs,) if solution.outputs is not None else (),
            valid=solution.is_valid(),
            execution_id=solution.execution_id,
            solution_id=uuid.uuid4(),
            sequence_id=sequence_id,
            score=solution.score,
            goal_distance=goal_distance,
            evaluations=evaluations,
            elapsed_seconds=elapsed_seconds,
            goal=goal,
            original_output=original_output,
            met_outputs=met,
            is_final=is_final,
        )

    def is_valid(self) -> bool:
        return self.valid

    @property
    def original_input(self) -> PredictionInput:
        return PredictionInput([e.original for e in self.entities])

    def changed_features(self) -> List[str]:
        return [e.name for e in self.entities if e.is_changed()]

    def as_table(
        self,
        original_outputs: Optional[PredictionOutput] = None,
        goal: Optional[PredictionOutput] = None
    ) -> str:
        """
        Render the result as plain text. The same result always renders the
        same way.
        """
        original_outputs = original_outputs or self.original_output
        goal = goal or self.goal

        features = Table(title="Counterfactual Search Results", box=box.ASCII)
        features.add_column("Feature")
        features.add_column("Original Value")
        features.add_column("Counterfactual Value")
        features.add_column("Changed?")
        features.add_column("Domain")
        for entity in self.entities:
            features.add_row(
                _cell(entity.name),
                _cell(entity.original.value),
                _cell(entity.value),
                _cell("Yes" if entity.is_changed() else "No"),
                _cell(entity.domain.describe()),
            )

        outputs = Table(title="Goal Outputs", box=box.ASCII)
        outputs.add_column("Output")
        outputs.add_column("Original Value")
        outputs.add_column("Counterfactual Value")
        outputs.add_column("Goal Value")
        outputs.add_column("Meets Threshold?")
        predicted = self.output[0] if self.output else PredictionOutput()
        for goal_output in (goal.outputs if goal else []):
            original = original_outputs.by_name(goal_output.name) if original_outputs else None
            counterfactual = predicted.by_name(goal_output.name)
            outputs.add_row(
                _cell(goal_output.name),
                _cell(original.value if original else None),
                _cell(counterfactual.value if counterfactual else None),
                _cell(goal_output.value),
                _cell("Yes" if goal_output.name in self.met_outputs else "No"),
            )

        buffer = io.StringIO()
        console = Console(
            file=buffer,
            width=TABLE_WIDTH,
            color_system=None,
            force_terminal=False,
            highlight=False,
        )
        console.print(features)
        console.print(outputs)
        console.print(
            f"Meets Validity Criteria? {'Yes' if self.valid else 'No'}"
            f" (goal distance {self.goal_distance:.4g}, sequence {self.sequence_id})",
            markup=False,
        )
        return buffer.getvalue()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "execution_id": str(self.execution_id),
            "solution_id": str(self.solution_id),
            "sequence_id": self.sequence_id,
            "valid": self.valid,
            "final": self.is_final,
            "goal_distance": self.goal_distance,
            "score": {"hard": list(self.score.hard), "soft": list(self.score.soft)} if self.score else None,
            "evaluations": self.evaluations,
            "elapsed_seconds": self.elapsed_seconds,
            "features": [
                {
                    "name": e.name,
                    "type": e.feature.type.value,
                    "original": _json_value(e.original.value),
                    "value": _json_value(e.value),
                    "changed": e.is_changed(),
                    "domain": e.domain.describe(),
                }
                for e in self.entities
            ],
            "outputs": [_output_to_dict(o) for po in self.output for o in po.outputs],
        }

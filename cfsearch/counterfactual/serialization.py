"""
JSON encoding of explanation requests and results.

Request format:
{
    "execution_id": "optional uuid",
    "goal_threshold": 0.01,
    "output_thresholds": {"output name": 0.0},
    "max_running_time_seconds": 10,
    "features": [
        {"name": "age", "type": "number", "value": 40,
         "domain": {"type": "range", "lower": 18, "upper": 90}},
        {"name": "colour", "type": "categorical", "value": "red",
         "domain": {"type": "categorical", "categories": ["red", "blue"]}},
        {"name": "id", "type": "number", "value": 7}
    ],
    "goal": [{"name": "approved", "type": "boolean", "value": true, "score": 0.5}],
    "distributions": {"age": [18, 25, 40, 61]}
}

A feature without a domain is fixed.
"""

import json
import logging
import os
import uuid
from typing import Any, Dict

from cfsearch.counterfactual.result import CounterfactualResult
from cfsearch.model.domains import (
    CategoricalDomain,
    CategoricalNumericDomain,
    FeatureDomain,
    FixedDomain,
    NumericFeatureDistribution,
    NumericRangeDomain,
)
from cfsearch.model.prediction import (
    CounterfactualPrediction,
    Feature,
    Output,
    PredictionInput,
    PredictionOutput,
)
from cfsearch.model.types import FeatureType
from cfsearch.utils.error_utils import ConfigurationError

logger = logging.getLogger(__name__)


def domain_from_dict(data: Dict[str, Any]) -> FeatureDomain:
    if not data:
        return FixedDomain()
    kind = data.get("type", "fixed")
    if kind == "fixed":
        return FixedDomain()
    if kind == "range":
        return NumericRangeDomain(data["lower"], data["upper"])
    if kind == "categorical":
        return CategoricalDomain(data["categories"])
    if kind == "categorical_numeric":
        return CategoricalNumericDomain(data["categories"])
    raise ConfigurationError(f"Unknown domain type '{kind}'", ["domain"])


def domain_to_dict(domain: FeatureDomain) -> Dict[str, Any]:
    if isinstance(domain, NumericRangeDomain):
        return {"type": "range", "lower": domain.lower, "upper": domain.upper}
    if isinstance(domain, CategoricalNumericDomain):
        return {"type": "categorical_numeric", "categories": list(domain.categories)}
    if isinstance(domain, CategoricalDomain):
        return {"type": "categorical", "categories": list(domain.categories)}
    return {"type": "fixed"}


def _feature_type(value: str, field_name: str) -> FeatureType:
    try:
        return FeatureType(value)
    except ValueError:
        raise ConfigurationError(f"Unknown feature type '{value}'", [field_name]) from None


def request_from_dict(data: Dict[str, Any]) -> CounterfactualPrediction:
    """
    Build a request from its JSON form.

    Raises:
        ConfigurationError: if a field is missing or malformed
    """
    try:
        features = [
            Feature(
                name=f["name"],
                type=_feature_type(f.get("type", "number"), f["name"]),
                value=f["value"],
                domain=domain_from_dict(f.get("domain")),
            )
            for f in data.get("features", [])
        ]
        goal = [
            Output(
                name=o["name"],
                type=_feature_type(o.get("type", "number"), o["name"]),
                value=o["value"],
                score=float(o.get("score", 1.0)),
            )
            for o in data.get("goal", [])
        ]
        execution_id = uuid.UUID(data["execution_id"]) if data.get("execution_id") else None
        distributions = {
            name: NumericFeatureDistribution(samples)
            for name, samples in data.get("distributions", {}).items()
        }
    except (KeyError, TypeError, ValueError) as e:
        raise ConfigurationError(f"Malformed request: {e}", ["request"]) from e

    return CounterfactualPrediction(
        input=PredictionInput(features),
        goal=PredictionOutput(goal),
        goal_threshold=data.get("goal_threshold"),
        output_thresholds=dict(data.get("output_thresholds", {})),
        execution_id=execution_id,
        max_running_time_seconds=data.get("max_running_time_seconds"),
        distributions=distributions,
    )


def request_to_dict(prediction: CounterfactualPrediction) -> Dict[str, Any]:
    data: Dict[str, Any] = {
        "execution_id": str(prediction.execution_id),
        "features": [
            {
                "name": f.name,
                "type": f.type.value,
                "value": f.value,
                "domain": domain_to_dict(f.domain),
            }
            for f in prediction.input.features
        ],
        "goal": [
            {"name": o.name, "type": o.type.value, "value": o.value, "score": o.score}
            for o in prediction.goal.outputs
        ],
    }
    if prediction.goal_threshold is not None:
        data["goal_threshold"] = prediction.goal_threshold
    if prediction.output_thresholds:
        data["output_thresholds"] = dict(prediction.output_thresholds)
    if prediction.max_running_time_seconds is not None:
        data["max_running_time_seconds"] = prediction.max_running_time_seconds
    if prediction.distributions:
        data["distributions"] = {
            name: d.samples.tolist() for name, d in prediction.distributions.items()
        }
    return data


def load_request(path: str) -> CounterfactualPrediction:
    with open(path, "r") as f:
        return request_from_dict(json.load(f))


def save_result(result: CounterfactualResult, output_dir: str) -> str:
    """Write the result as JSON and return the file path."""
    os.makedirs(output_dir, exist_ok=True)
    path = os.path.join(output_dir, f"counterfactual_{result.execution_id}.json")
    with open(path, "w") as f:
        json.dump(result.to_dict(), f, indent=2)
    logger.info(f"Saved counterfactual result to {path}")
    return path

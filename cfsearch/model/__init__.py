"""
Model package for cfsearch.
Describes features, their domains and the predictor contract.
"""

from cfsearch.model.types import FeatureType
from cfsearch.model.domains import (
    FeatureDomain,
    FixedDomain,
    NumericRangeDomain,
    CategoricalDomain,
    CategoricalNumericDomain,
    NumericFeatureDistribution
)
from cfsearch.model.prediction import (
    Feature,
    Output,
    PredictionInput,
    PredictionOutput,
    CounterfactualPrediction
)
from cfsearch.model.provider import PredictionProvider, FunctionPredictionProvider, HttpPredictionProvider

__all__ = [
    'FeatureType',
    'FeatureDomain',
    'FixedDomain',
    'NumericRangeDomain',
    'CategoricalDomain',
    'CategoricalNumericDomain',
    'NumericFeatureDistribution',
    'Feature',
    'Output',
    'PredictionInput',
    'PredictionOutput',
    'CounterfactualPrediction',
    'PredictionProvider',
    'FunctionPredictionProvider',
    'HttpPredictionProvider'
]

"""
Factory helpers for building features with their domains.
Features declared without a domain are fixed.
"""

from typing import Any, Optional

from cfsearch.model.domains import (
    CategoricalDomain,
    CategoricalNumericDomain,
    FeatureDomain,
    FixedDomain,
    NumericRangeDomain,
)
from cfsearch.model.prediction import Feature
from cfsearch.model.types import FeatureType


def numerical_feature(name: str, value: float, domain: Optional[NumericRangeDomain] = None) -> Feature:
    return Feature(name, FeatureType.NUMBER, value, domain or FixedDomain())


def boolean_feature(name: str, value: bool, domain: Optional[FeatureDomain] = None) -> Feature:
    """A boolean feature. Pass CategoricalDomain(True, False) to let the search flip it."""
    return Feature(name, FeatureType.BOOLEAN, bool(value), domain or FixedDomain())


def flippable_boolean_feature(name: str, value: bool) -> Feature:
    return boolean_feature(name, value, CategoricalDomain(True, False))


def categorical_feature(name: str, value: Any, domain: Optional[CategoricalDomain] = None) -> Feature:
    return Feature(name, FeatureType.CATEGORICAL, value, domain or FixedDomain())


def categorical_numerical_feature(
    name: str,
    value: float,
    domain: Optional[CategoricalNumericDomain] = None
) -> Feature:
    return Feature(name, FeatureType.CATEGORICAL_NUMERIC, value, domain or FixedDomain())

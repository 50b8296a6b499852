"""
Counterfactual entities: the decision variables perturbed by the search.

Each entity wraps one feature and its domain. A move replaces the entity's
feature with a new immutable Feature; the original feature is kept so the
entity can report whether, and how far, it moved.
"""

import copy
import logging
from typing import Any, Optional

import numpy as np

from cfsearch.model.domains import (
    CategoricalDomain,
    CategoricalNumericDomain,
    FeatureDomain,
    FixedDomain,
    NumericFeatureDistribution,
    NumericRangeDomain,
    is_number,
)
from cfsearch.model.prediction import Feature
from cfsearch.utils.error_utils import ConfigurationError

logger = logging.getLogger(__name__)

# Probability that a changed entity proposes going back to its original value
RESET_PROBABILITY = 0.1


class CounterfactualEntity:
    """Base class of all counterfactual entities."""

    def __init__(self, feature: Feature):
        self._validate(feature)
        self.original = feature
        self.feature = feature

    @staticmethod
    def from_feature(
        feature: Feature,
        distribution: Optional[NumericFeatureDistribution] = None
    ) -> 'CounterfactualEntity':
        """
        Build the entity matching the feature's domain.

        Raises:
            ConfigurationError: if the domain is incompatible with the feature type
                or the feature's value lies outside its domain
        """
        domain = feature.domain
        if isinstance(domain, FixedDomain):
            return FixedEntity(feature)
        if isinstance(domain, NumericRangeDomain):
            return NumericEntity(feature, distribution)
        if isinstance(domain, CategoricalNumericDomain):
            return CategoricalNumericEntity(feature)
        if isinstance(domain, CategoricalDomain):
            return CategoricalEntity(feature)
        raise ConfigurationError(
            f"Unsupported domain {type(domain).__name__} for feature '{feature.name}'",
            [feature.name]
        )

    def _validate(self, feature: Feature) -> None:
        domain = feature.domain
        if domain is None:
            raise ConfigurationError(f"Feature '{feature.name}' has no domain", [feature.name])
        if not domain.supports(feature.type):
            raise ConfigurationError(
                f"Domain {domain.describe()} is not compatible with "
                f"{feature.type.value} feature '{feature.name}'",
                [feature.name]
            )
        if feature.type.is_numeric and not is_number(feature.value):
            raise ConfigurationError(
                f"Feature '{feature.name}' is declared {feature.type.value} "
                f"but has value {feature.value!r}",
                [feature.name]
            )
        if not domain.is_fixed() and not domain.contains(feature.value):
            raise ConfigurationError(
                f"Value {feature.value!r} of feature '{feature.name}' "
                f"is outside its domain {domain.describe()}",
                [feature.name]
            )

    @property
    def name(self) -> str:
        return self.feature.name

    @property
    def domain(self) -> FeatureDomain:
        return self.feature.domain

    @property
    def value(self) -> Any:
        return self.feature.value

    def as_feature(self) -> Feature:
        return self.feature

    def is_fixed(self) -> bool:
        return self.domain.is_fixed()

    def is_changed(self) -> bool:
        return self.feature.value != self.original.value

    def distance(self) -> float:
        """
        Normalised distance between the current and the original value.

        This is the categorical distance used by CategoricalEntity and
        CategoricalNumericEntity: 0 when unchanged, 1 for any other member.
        """
        return 1.0 if self.is_changed() else 0.0

    def propose_move(
        self,
        rng: np.random.Generator,
        uniform_probability: float = 0.3,
        step_ratio: float = 0.1
    ) -> Any:
        """
        Propose a new value drawn from the domain, different from the current
        value whenever the domain allows it.

        This is the categorical move used by CategoricalEntity and
        CategoricalNumericEntity: occasionally reset a changed entity to its
        original value, otherwise jump to another member of the domain.
        The numeric arguments only matter to NumericEntity.
        """
        if self.is_changed() and rng.random() < RESET_PROBABILITY:
            return self.original.value
        return self.domain.sample(rng, exclude=self.feature.value)

    def assign(self, value: Any) -> None:
        """
        Replace the entity's feature with one carrying the given value.

        Fixed entities accept the assignment; the score calculator penalises it.
        """
        if not self.is_fixed() and not self.domain.contains(value):
            raise ConfigurationError(
                f"Value {value!r} is outside the domain {self.domain.describe()} "
                f"of feature '{self.name}'",
                [self.name]
            )
        self.feature = self.feature.with_value(value)

    def copy(self) -> 'CounterfactualEntity':
        return copy.copy(self)

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(name={self.name!r}, value={self.value!r}, "
            f"original={self.original.value!r}, domain={self.domain.describe()})"
        )


class FixedEntity(CounterfactualEntity):
    """An entity that must keep its original value."""

    def distance(self) -> float:
        return 0.0

    def propose_move(self, rng, uniform_probability=0.3, step_ratio=0.1) -> Any:
        return self.original.value


class NumericEntity(CounterfactualEntity):
    """An entity over a bounded numeric range."""

    def __init__(self, feature: Feature, distribution: Optional[NumericFeatureDistribution] = None):
        super().__init__(feature)
        self.distribution = distribution
        self._scale = distribution.scale() if distribution is not None else None
        if self._scale is None:
            self._scale = self.domain.width

    def distance(self) -> float:
        if not self.is_changed() or not self._scale:
            return 0.0
        return abs(float(self.value) - float(self.original.value)) / self._scale

    def propose_move(self, rng, uniform_probability=0.3, step_ratio=0.1) -> float:
        domain = self.domain
        if domain.width == 0:
            return float(self.value)
        if self.is_changed() and rng.random() < RESET_PROBABILITY:
            return self.original.value
        if rng.random() < uniform_probability:
            proposal = domain.sample(rng)
        else:
            proposal = domain.clip(float(self.value) + rng.normal(0.0, step_ratio * domain.width))
        if proposal == self.value:
            proposal = domain.sample(rng)
        return proposal


class CategoricalEntity(CounterfactualEntity):
    """
    An entity over a finite set of categories (also used for booleans). Moves
    and distance are the categorical ones defined on CounterfactualEntity.
    """
    pass


class CategoricalNumericEntity(CounterfactualEntity):
    """
    An entity over a finite set of numbers. Moves jump between members of the
    set; any membership change counts as a full unit of distance.
    """
    pass

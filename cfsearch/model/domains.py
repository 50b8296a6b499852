"""
Feature domain definitions.

A domain describes the legal value space of one feature. The search engine
only ever proposes values drawn from a feature's domain; a Fixed domain marks
a feature that must keep its original value.
"""

import math
from abc import ABC, abstractmethod
from dataclasses import dataclass
from numbers import Real
from typing import Any, Iterable, Optional, Tuple

import numpy as np
from scipy.stats import median_abs_deviation

from cfsearch.model.types import FeatureType
from cfsearch.utils.error_utils import ConfigurationError


def is_number(value: Any) -> bool:
    return isinstance(value, Real) and not isinstance(value, bool)


def _format_category(value: Any) -> str:
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


class FeatureDomain(ABC):
    """Base class of all feature domains."""

    def is_fixed(self) -> bool:
        return False

    @abstractmethod
    def supports(self, feature_type: FeatureType) -> bool:
        """Whether a feature of the given declared type may use this domain."""

    @abstractmethod
    def contains(self, value: Any) -> bool:
        """Whether the value is a legal value of this domain."""

    @abstractmethod
    def sample(self, rng: np.random.Generator, exclude: Any = None) -> Any:
        """
        Draw a legal value from the domain.

        Args:
            rng: Random generator driving the draw
            exclude: Value to avoid when the domain has alternatives to it

        Returns:
            A value for which contains() holds
        """

    @abstractmethod
    def describe(self) -> str:
        """Short human-readable summary used in result tables."""


@dataclass(frozen=True)
class FixedDomain(FeatureDomain):
    """No perturbation allowed: the feature keeps its original value."""

    def is_fixed(self) -> bool:
        return True

    def supports(self, feature_type: FeatureType) -> bool:
        return True

    def contains(self, value: Any) -> bool:
        return True

    def sample(self, rng: np.random.Generator, exclude: Any = None) -> Any:
        return exclude

    def describe(self) -> str:
        return "Fixed"


@dataclass(frozen=True)
class NumericRangeDomain(FeatureDomain):
    """Closed numeric interval [lower, upper]."""
    lower: float
    upper: float

    def __post_init__(self):
        if not (is_number(self.lower) and is_number(self.upper)):
            raise ConfigurationError(
                f"Numeric range bounds must be numbers, got [{self.lower!r}, {self.upper!r}]",
                ["lower", "upper"]
            )
        if not (math.isfinite(self.lower) and math.isfinite(self.upper)):
            raise ConfigurationError("Numeric range bounds must be finite", ["lower", "upper"])
        if self.lower > self.upper:
            raise ConfigurationError(
                f"Numeric range lower bound {self.lower} exceeds upper bound {self.upper}",
                ["lower", "upper"]
            )

    @property
    def width(self) -> float:
        return float(self.upper - self.lower)

    def supports(self, feature_type: FeatureType) -> bool:
        return feature_type == FeatureType.NUMBER

    def contains(self, value: Any) -> bool:
        return is_number(value) and self.lower <= value <= self.upper

    def clip(self, value: float) -> float:
        return float(min(max(value, self.lower), self.upper))

    def sample(self, rng: np.random.Generator, exclude: Any = None) -> float:
        if self.width == 0:
            return float(self.lower)
        return float(rng.uniform(self.lower, self.upper))

    def describe(self) -> str:
        return f"[{float(self.lower)}, {float(self.upper)}]"


class _DiscreteDomain(FeatureDomain):
    """Shared behaviour of the finite-set domains."""
    categories: Tuple[Any, ...]

    def _normalise(self, categories: Iterable[Any]) -> None:
        unique = []
        for category in categories:
            if category not in unique:
                unique.append(category)
        if not unique:
            raise ConfigurationError(
                f"{type(self).__name__} needs at least one category", ["categories"]
            )
        object.__setattr__(self, "categories", tuple(unique))

    def contains(self, value: Any) -> bool:
        return any(self._same(value, category) for category in self.categories)

    def _same(self, value: Any, category: Any) -> bool:
        return type(value) is type(category) and value == category

    def sample(self, rng: np.random.Generator, exclude: Any = None) -> Any:
        candidates = [c for c in self.categories if exclude is None or not self._same(exclude, c)]
        if not candidates:
            candidates = list(self.categories)
        return candidates[int(rng.integers(len(candidates)))]

    def describe(self) -> str:
        return "[" + ", ".join(_format_category(c) for c in self.categories) + "]"


@dataclass(frozen=True)
class CategoricalDomain(_DiscreteDomain):
    """Finite set of allowed discrete values (strings or booleans)."""
    categories: Tuple[Any, ...]

    def __init__(self, *categories: Any):
        if len(categories) == 1 and isinstance(categories[0], (list, tuple, set, frozenset)):
            categories = tuple(categories[0])
        self._normalise(categories)

    def supports(self, feature_type: FeatureType) -> bool:
        all_bool = all(isinstance(c, bool) for c in self.categories)
        if feature_type == FeatureType.BOOLEAN:
            return all_bool
        return feature_type == FeatureType.CATEGORICAL


@dataclass(frozen=True)
class CategoricalNumericDomain(_DiscreteDomain):
    """
    Finite set of numbers treated as unordered categories.

    Moves jump between members of the set, the predictor still receives the
    numeric value.
    """
    categories: Tuple[Any, ...]

    def __init__(self, *categories: Any):
        if len(categories) == 1 and isinstance(categories[0], (list, tuple, set, frozenset)):
            categories = tuple(categories[0])
        if not all(is_number(c) for c in categories):
            raise ConfigurationError(
                f"Categorical numeric domain accepts numbers only, got {list(categories)!r}",
                ["categories"]
            )
        self._normalise(categories)

    def _same(self, value: Any, category: Any) -> bool:
        return is_number(value) and value == category

    def supports(self, feature_type: FeatureType) -> bool:
        return feature_type == FeatureType.CATEGORICAL_NUMERIC


class NumericFeatureDistribution:
    """Empirical distribution of a numeric feature, used to scale distances."""

    def __init__(self, samples: Iterable[float]):
        self.samples = np.asarray(list(samples), dtype=float)
        if self.samples.size == 0:
            raise ConfigurationError("A feature distribution needs at least one sample", ["samples"])

    def scale(self) -> Optional[float]:
        """
        Median absolute deviation of the samples, falling back to the standard
        deviation for degenerate samples. None when both are zero.
        """
        mad = float(median_abs_deviation(self.samples))
        if mad > 0:
            return mad
        std = float(np.std(self.samples))
        return std if std > 0 else None

    def __repr__(self) -> str:
        return f"NumericFeatureDistribution(n={self.samples.size})"

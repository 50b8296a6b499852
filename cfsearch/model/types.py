from enum import Enum


class FeatureType(Enum):
    """Declared type of a feature or an output."""
    NUMBER = "number"
    BOOLEAN = "boolean"
    CATEGORICAL = "categorical"
    CATEGORICAL_NUMERIC = "categorical_numeric"

    @property
    def is_numeric(self) -> bool:
        return self in (FeatureType.NUMBER, FeatureType.CATEGORICAL_NUMERIC)

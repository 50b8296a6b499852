"""
Pytest configuration for cfsearch tests.
"""

import os
import sys
import pytest
import logging
import tempfile
import shutil

# Add parent directory to path to import modules
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from cfsearch.model.prediction import Output, PredictionOutput
from cfsearch.model.types import FeatureType

# Configure logging for tests
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def sum_threshold_model(center: float, epsilon: float):
    """Boolean output 'inside': whether the feature sum lies in center +/- epsilon."""
    def predict(inputs):
        outputs = []
        for pi in inputs:
            total = sum(f.as_number() for f in pi.features)
            inside = center - epsilon <= total <= center + epsilon
            outputs.append(PredictionOutput([Output("inside", FeatureType.BOOLEAN, inside, 1.0)]))
        return outputs
    return predict


def sum_skip_model(skip_index: int):
    """Numeric output 'sum' over every feature except the one at skip_index."""
    def predict(inputs):
        outputs = []
        for pi in inputs:
            total = sum(f.as_number() for i, f in enumerate(pi.features) if i != skip_index)
            outputs.append(PredictionOutput([Output("sum", FeatureType.NUMBER, total, 1.0)]))
        return outputs
    return predict


def feature_pass_model(feature_index: int):
    """Echoes one feature as the output named after it."""
    def predict(inputs):
        outputs = []
        for pi in inputs:
            feature = pi.features[feature_index]
            outputs.append(PredictionOutput([Output(feature.name, feature.type, feature.value, 1.0)]))
        return outputs
    return predict


def symbolic_arithmetic_model():
    """Evaluates 'x op y' where op is a categorical feature."""
    operations = {
        "+": lambda a, b: a + b,
        "-": lambda a, b: a - b,
        "*": lambda a, b: a * b,
    }

    def predict(inputs):
        outputs = []
        for pi in inputs:
            x = pi.by_name("x").as_number()
            y = pi.by_name("y").as_number()
            result = operations[pi.by_name("op").value](x, y)
            outputs.append(PredictionOutput([Output("result", FeatureType.NUMBER, result, 1.0)]))
        return outputs
    return predict


def linear_model(weights, intercept: float = 0.0):
    """Numeric output 'linear-sum' = intercept + weights . features."""
    def predict(inputs):
        outputs = []
        for pi in inputs:
            total = intercept + sum(w * f.as_number() for w, f in zip(weights, pi.features))
            outputs.append(PredictionOutput([Output("linear-sum", FeatureType.NUMBER, total, 1.0)]))
        return outputs
    return predict


# Fixtures
@pytest.fixture
def temp_output_dir():
    """Create a temporary directory for test outputs."""
    temp_dir = tempfile.mkdtemp()
    yield temp_dir
    # Cleanup after test
    shutil.rmtree(temp_dir)


@pytest.fixture
def sum_model():
    """Sum-threshold model centred on 500 with a tolerance of 10."""
    return sum_threshold_model(500.0, 10.0)

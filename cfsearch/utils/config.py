"""
Configuration module for the counterfactual search engine.
Provides centralized configuration management across modules.
"""

import os
import json
import logging
from typing import Optional
from dataclasses import dataclass, field, asdict

logger = logging.getLogger(__name__)

DEFAULT_GOAL_THRESHOLD = 0.01
MAX_RUNNING_TIME_SECONDS = 60.0


@dataclass
class SolverConfig:
    """Configuration for the local search optimizer."""
    seed: Optional[int] = 0
    max_evaluations: Optional[int] = None
    move_batch_size: int = 8
    late_acceptance_size: int = 400
    uniform_move_probability: float = 0.3
    step_ratio: float = 0.1


@dataclass
class ScoreWeights:
    """Weights of the soft score terms."""
    goal: float = 1.0
    distance: float = 1.0
    sparsity: float = 0.25


@dataclass
class CounterfactualConfig:
    """Main configuration for counterfactual searches."""
    goal_threshold: float = DEFAULT_GOAL_THRESHOLD
    max_running_time_seconds: float = MAX_RUNNING_TIME_SECONDS
    async_timeout_seconds: float = 300.0
    prediction_timeout_seconds: float = 30.0
    prediction_retries: int = 1
    output_dir: str = "output"
    verbose: bool = False
    solver: SolverConfig = field(default_factory=SolverConfig)
    weights: ScoreWeights = field(default_factory=ScoreWeights)

    def __post_init__(self):
        if self.prediction_retries < 1:
            self.prediction_retries = 1

    def with_seed(self, seed: Optional[int]) -> 'CounterfactualConfig':
        """Set the random seed of the solver and return the config."""
        self.solver.seed = seed
        return self

    def with_max_evaluations(self, max_evaluations: Optional[int]) -> 'CounterfactualConfig':
        """Set a deterministic evaluation-count budget and return the config."""
        self.solver.max_evaluations = max_evaluations
        return self

    def save(self, path: str) -> None:
        """Save configuration to a JSON file."""
        directory = os.path.dirname(path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        with open(path, "w") as f:
            json.dump(asdict(self), f, indent=2)
        logger.info(f"Saved configuration to {path}")

    @classmethod
    def load(cls, path: str) -> 'CounterfactualConfig':
        """Load configuration from a JSON file."""
        with open(path, "r") as f:
            config_dict = json.load(f)

        # Extract component configs
        solver_dict = config_dict.pop("solver", {})
        weights_dict = config_dict.pop("weights", {})

        config = cls(**config_dict)

        if solver_dict:
            config.solver = SolverConfig(**solver_dict)
        if weights_dict:
            config.weights = ScoreWeights(**weights_dict)

        return config

    @classmethod
    def from_args(cls, args) -> 'CounterfactualConfig':
        """Create configuration from argparse Namespace."""
        if getattr(args, "config", None):
            config = cls.load(args.config)
        else:
            config = cls()

        if getattr(args, "goal_threshold", None) is not None:
            config.goal_threshold = args.goal_threshold
        if getattr(args, "max_seconds", None) is not None:
            config.max_running_time_seconds = args.max_seconds
        if getattr(args, "timeout", None) is not None:
            config.async_timeout_seconds = args.timeout
        if getattr(args, "output_dir", None):
            config.output_dir = args.output_dir
        if getattr(args, "verbose", False):
            config.verbose = True

        # Solver settings
        if getattr(args, "seed", None) is not None:
            config.solver.seed = args.seed
        if getattr(args, "max_evaluations", None) is not None:
            config.solver.max_evaluations = args.max_evaluations

        return config

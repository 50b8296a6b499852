"""
Main entry point for cfsearch.
Loads an explanation request, runs the counterfactual search against a
predictor and reports the result.
"""

import os
import sys
import json
import logging
import argparse
import importlib

from cfsearch.counterfactual.explainer import CounterfactualExplainer
from cfsearch.counterfactual.serialization import load_request, save_result
from cfsearch.model.provider import FunctionPredictionProvider, PredictionProvider
from cfsearch.utils.config import CounterfactualConfig
from cfsearch.utils.error_utils import (
    ConfigurationError,
    CounterfactualError,
    format_error_for_user,
    handle_exceptions,
    log_exception,
)
from cfsearch.utils.logging_utils import setup_logger, TimingLogger

# Setup logger
logger = setup_logger(name="cfsearch", level=logging.INFO, use_rich=True)
timer = TimingLogger(logger=logger)


def setup_parser():
    """Set up command line argument parser."""
    parser = argparse.ArgumentParser(description="cfsearch: counterfactual explanations")

    # Request and model
    parser.add_argument("--request", type=str, required=True,
                        help="Path to the explanation request (JSON)")
    parser.add_argument("--model", type=str, required=True,
                        help="Predictor as module:callable, e.g. mymodels:predict")
    parser.add_argument("--model-in-thread", action="store_true",
                        help="Run a synchronous predictor in a worker thread")

    # Search settings
    parser.add_argument("--seed", type=int,
                        help="Random seed of the search")
    parser.add_argument("--max-evaluations", type=int,
                        help="Stop after this many score evaluations (reproducible)")
    parser.add_argument("--max-seconds", type=float,
                        help="Default wall-clock budget of a search")
    parser.add_argument("--goal-threshold", type=float,
                        help="Global goal threshold")
    parser.add_argument("--timeout", type=float,
                        help="Give up on a search after this many seconds")

    # Output settings
    parser.add_argument("--output-dir", type=str,
                        help="Output directory")
    parser.add_argument("--no-save", action="store_true",
                        help="Do not write the result JSON")
    parser.add_argument("--verbose", action="store_true",
                        help="Enable verbose logging")

    # Config settings
    parser.add_argument("--config", type=str,
                        help="Path to configuration file")
    parser.add_argument("--save-config", type=str,
                        help="Save configuration to the specified file path")

    return parser


@handle_exceptions(reraise=True)
def load_model(model_path: str, run_in_thread: bool = False) -> PredictionProvider:
    """
    Import a predictor given as module:attribute.

    The attribute may be a PredictionProvider instance or a callable mapping a
    list of PredictionInput to a list of PredictionOutput.
    """
    module_name, _, attribute = model_path.partition(":")
    if not module_name or not attribute:
        raise ConfigurationError(f"Model must be given as module:callable, got '{model_path}'", ["model"])

    sys.path.insert(0, os.getcwd())
    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise ConfigurationError(f"Cannot import model module '{module_name}': {e}", ["model"]) from e
    target = getattr(module, attribute, None)
    if target is None:
        raise ConfigurationError(f"Module '{module_name}' has no attribute '{attribute}'", ["model"])

    if isinstance(target, PredictionProvider):
        return target
    if not callable(target):
        raise ConfigurationError(f"'{model_path}' is not callable", ["model"])
    return FunctionPredictionProvider(target, run_in_thread=run_in_thread)


def main():
    """Main entry point."""
    parser = setup_parser()
    args = parser.parse_args()

    if args.verbose:
        logger.setLevel(logging.DEBUG)
        for handler in logger.handlers:
            handler.setLevel(logging.DEBUG)

    try:
        config = CounterfactualConfig.from_args(args)
    except Exception as e:
        logger.error(f"Error loading configuration: {e}")
        return 2

    if args.save_config:
        try:
            logger.info(f"Saving configuration to {args.save_config}...")
            config.save(args.save_config)
        except OSError as e:
            logger.error(f"Error saving configuration: {e}")

    try:
        with timer.timed("load"):
            prediction = load_request(args.request)
            model = load_model(args.model, args.model_in_thread)

        with timer.timed("search"):
            result = CounterfactualExplainer(config).explain(prediction, model)
    except CounterfactualError as e:
        log_exception(e, logging.DEBUG)
        print(json.dumps(format_error_for_user(e), indent=2, default=str))
        return 1
    except (OSError, ValueError) as e:
        logger.error(f"Error reading request {args.request}: {e}")
        return 2
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 130

    print(result.as_table())

    if not args.no_save:
        path = save_result(result, config.output_dir)
        print(f"Result saved to {path}")

    print("\nPerformance Timing:")
    print("=" * 50)
    print(timer.summary())
    return 0 if result.is_valid() else 3


if __name__ == "__main__":
    sys.exit(main())

"""
Counterfactual explainer: turns an explanation request into a search, runs
it asynchronously and surfaces intermediate and final results.
"""

import asyncio
import logging
import time
from enum import Enum
from typing import Callable, List, Optional, Union

from cfsearch.counterfactual.entities import CounterfactualEntity
from cfsearch.counterfactual.goal import DefaultGoalCriteria, GoalCriteria, as_goal_criteria
from cfsearch.counterfactual.result import CounterfactualResult
from cfsearch.counterfactual.score import CounterfactualScoreCalculator
from cfsearch.counterfactual.solution import CounterfactualSolution, SequenceCounter
from cfsearch.counterfactual.solver import (
    LocalSearchOptimizer,
    Optimizer,
    SearchProblem,
    TerminationPolicy,
)
from cfsearch.model.prediction import CounterfactualPrediction, PredictionOutput
from cfsearch.model.provider import FunctionPredictionProvider, PredictionProvider, predict_with_policy
from cfsearch.utils.config import CounterfactualConfig
from cfsearch.utils.error_utils import (
    ConfigurationError,
    CounterfactualError,
    SearchCancelledError,
    SearchTimeoutError,
    handle_exceptions,
)
from cfsearch.utils.logging_utils import TimingLogger
from cfsearch.utils.progress_monitor import ProgressMonitor, Stage

logger = logging.getLogger(__name__)

ResultConsumer = Callable[[CounterfactualResult], None]
OptimizerFactory = Callable[[CounterfactualConfig], Optimizer]


class SearchState(Enum):
    BUILT = "built"
    RUNNING = "running"
    COMPLETED = "completed"
    TIMED_OUT = "timed_out"
    FAILED = "failed"
    CANCELLED = "cancelled"


def default_optimizer_factory(config: CounterfactualConfig) -> Optimizer:
    return LocalSearchOptimizer(config.solver)


class CounterfactualSearch:
    """
    One explanation request, from BUILT to a terminal state.

    Sequence ids are issued by a counter owned by this search only.
    """

    def __init__(
        self,
        prediction: CounterfactualPrediction,
        model: PredictionProvider,
        entities: List[CounterfactualEntity],
        goal_criteria: GoalCriteria,
        score_calculator: CounterfactualScoreCalculator,
        optimizer: Optimizer,
        termination: TerminationPolicy,
        config: CounterfactualConfig
    ):
        self.prediction = prediction
        self.model = model
        self.entities = entities
        self.goal_criteria = goal_criteria
        self.score_calculator = score_calculator
        self.optimizer = optimizer
        self.termination = termination
        self.config = config

        self.state = SearchState.BUILT
        self.sequence = SequenceCounter()
        self.intermediate_results: List[CounterfactualResult] = []
        self.final_result: Optional[CounterfactualResult] = None
        self.original_output: Optional[PredictionOutput] = None
        self.error: Optional[BaseException] = None
        self.monitor = ProgressMonitor(verbose=config.verbose)
        self.timer = TimingLogger(logger=logger, level=logging.DEBUG)
        self._start = 0.0

    @property
    def execution_id(self):
        return self.prediction.execution_id

    def _elapsed(self) -> float:
        return time.monotonic() - self._start

    def _wrap(self, solution: CounterfactualSolution, sequence_id: int, is_final: bool) -> CounterfactualResult:
        return CounterfactualResult.from_solution(
            solution,
            sequence_id=sequence_id,
            evaluations=self.score_calculator.evaluations,
            elapsed_seconds=self._elapsed(),
            goal=self.prediction.goal,
            original_output=self.original_output,
            goal_criteria=self.goal_criteria,
            is_final=is_final,
        )

    def _publish(self, solution: CounterfactualSolution, consumer: Optional[ResultConsumer]) -> None:
        # id assignment and delivery share the lock so delivery order follows sequence order
        with self.sequence.lock:
            result = self._wrap(solution, self.sequence.next_id(), is_final=False)
            self.intermediate_results.append(result)
            if consumer is not None:
                handle_exceptions(error_log_level=logging.WARNING)(consumer)(result)

    async def run(self, consumer: Optional[ResultConsumer] = None) -> CounterfactualResult:
        """
        Run the search to completion.

        Raises:
            PredictionError: if the model fails during an evaluation
            asyncio.CancelledError: if the caller cancels the search
        """
        if self.state == SearchState.CANCELLED:
            raise SearchCancelledError(f"Search {self.execution_id} was cancelled")
        if self.state != SearchState.BUILT:
            raise CounterfactualError(f"Search {self.execution_id} was already started",
                                      {"state": self.state.value})

        self.state = SearchState.RUNNING
        self._start = time.monotonic()
        self.monitor.complete_stage(Stage.BUILD)
        self.monitor.start_stage(Stage.SEARCH)
        self.timer.start("search")
        logger.info(
            f"Starting counterfactual search {self.execution_id} over {len(self.entities)} features "
            f"({self.termination})"
        )

        problem = SearchProblem(
            CounterfactualSolution(self.entities, self.execution_id, self.prediction.input),
            self.score_calculator
        )

        try:
            outputs = await predict_with_policy(
                self.model,
                [self.prediction.input],
                timeout=self.config.prediction_timeout_seconds,
                attempts=self.config.prediction_retries
            )
            self.original_output = outputs[0]
            best = await self.optimizer.solve(
                problem,
                self.termination,
                on_best_solution=lambda solution: self._publish(solution, consumer),
                on_progress=self.monitor.update_progress
            )
        except asyncio.CancelledError:
            self.state = SearchState.CANCELLED
            self.monitor.complete(failed_stage=Stage.SEARCH)
            logger.info(f"Counterfactual search {self.execution_id} cancelled")
            raise
        except Exception as e:
            self.state = SearchState.FAILED
            self.error = e
            self.monitor.complete(failed_stage=Stage.SEARCH)
            logger.error(f"Counterfactual search {self.execution_id} failed: {e}")
            raise

        self.timer.stop("search")
        self.monitor.complete_stage(Stage.SEARCH)
        self.monitor.start_stage(Stage.REPORT)

        with self.sequence.lock:
            self.final_result = self._wrap(best, self.sequence.next_id(), is_final=True)

        self.state = SearchState.COMPLETED
        self.monitor.complete_stage(Stage.REPORT)
        self.monitor.complete()
        logger.debug(f"Progress report for {self.execution_id}: {self.monitor.get_progress_report()}")
        logger.info(
            f"Counterfactual search {self.execution_id} completed: valid={self.final_result.valid}, "
            f"evaluations={self.final_result.evaluations}, changed={self.final_result.changed_features()}"
        )
        return self.final_result


class CounterfactualExplainer:
    """
    Entry point for counterfactual explanations.

    Example:
        explainer = CounterfactualExplainer(CounterfactualConfig().with_max_evaluations(1000))
        result = explainer.explain(prediction, model)
        print(result.as_table())
    """

    def __init__(
        self,
        config: Optional[CounterfactualConfig] = None,
        optimizer_factory: Optional[OptimizerFactory] = None
    ):
        self.config = config or CounterfactualConfig()
        self.optimizer_factory = optimizer_factory or default_optimizer_factory

    def termination_for(self, prediction: CounterfactualPrediction) -> TerminationPolicy:
        """
        An evaluation budget from the config wins, then the request's running
        time, then the configured default running time.
        """
        if self.config.solver.max_evaluations is not None:
            return TerminationPolicy(max_evaluations=self.config.solver.max_evaluations)
        if prediction.max_running_time_seconds is not None:
            return TerminationPolicy(max_seconds=prediction.max_running_time_seconds)
        return TerminationPolicy().with_defaults(self.config.max_running_time_seconds)

    def build(
        self,
        prediction: CounterfactualPrediction,
        model: Union[PredictionProvider, Callable, None]
    ) -> CounterfactualSearch:
        """
        Assemble the search for a request without starting it.

        Raises:
            ConfigurationError: for a missing model, goal criteria that are not
                callable, duplicate feature names or a domain that does not fit
                its feature
        """
        if model is None:
            raise ConfigurationError("A prediction model is required", ["model"])
        if not isinstance(model, PredictionProvider):
            if not callable(model):
                raise ConfigurationError(f"Model {model!r} is not a prediction provider", ["model"])
            model = FunctionPredictionProvider(model)

        names = [f.name for f in prediction.input.features]
        duplicates = sorted({n for n in names if names.count(n) > 1})
        if duplicates:
            raise ConfigurationError(f"Duplicate feature names: {duplicates}", duplicates)

        unknown = sorted(set(prediction.distributions) - set(names))
        if unknown:
            raise ConfigurationError(f"Distributions given for unknown features: {unknown}", unknown)

        entities = [
            CounterfactualEntity.from_feature(f, prediction.distributions.get(f.name))
            for f in prediction.input.features
        ]

        if prediction.goal_criteria is not None:
            goal_criteria = as_goal_criteria(prediction.goal_criteria)
        else:
            threshold = prediction.goal_threshold
            if threshold is None:
                threshold = self.config.goal_threshold
            goal_criteria = DefaultGoalCriteria(prediction.goal, threshold, prediction.output_thresholds)

        calculator = CounterfactualScoreCalculator(
            model,
            goal_criteria,
            weights=self.config.weights,
            prediction_timeout=self.config.prediction_timeout_seconds,
            prediction_retries=self.config.prediction_retries
        )

        return CounterfactualSearch(
            prediction,
            model,
            entities,
            goal_criteria,
            calculator,
            self.optimizer_factory(self.config),
            self.termination_for(prediction),
            self.config
        )

    async def _run_with_timeout(
        self,
        search: CounterfactualSearch,
        consumer: Optional[ResultConsumer]
    ) -> CounterfactualResult:
        timeout = self.config.async_timeout_seconds
        try:
            return await asyncio.wait_for(search.run(consumer), timeout=timeout)
        except asyncio.TimeoutError:
            search.state = SearchState.TIMED_OUT
            raise SearchTimeoutError(
                f"Counterfactual search {search.execution_id} did not finish within {timeout}s",
                timeout
            ) from None

    def submit(self, search: CounterfactualSearch, consumer: Optional[ResultConsumer] = None) -> asyncio.Task:
        """Start a built search on the running event loop."""
        loop = asyncio.get_running_loop()
        return loop.create_task(self._run_with_timeout(search, consumer))

    def explain_async(
        self,
        prediction: CounterfactualPrediction,
        model: Union[PredictionProvider, Callable],
        consumer: Optional[ResultConsumer] = None
    ) -> asyncio.Task:
        """
        Start an explanation and return its task immediately.

        Must be called from a running event loop. Configuration errors are
        raised here, before any task exists.
        """
        return self.submit(self.build(prediction, model), consumer)

    def explain(
        self,
        prediction: CounterfactualPrediction,
        model: Union[PredictionProvider, Callable],
        consumer: Optional[ResultConsumer] = None
    ) -> CounterfactualResult:
        """Blocking wrapper around explain_async for callers without an event loop."""
        search = self.build(prediction, model)
        return asyncio.run(self._run_with_timeout(search, consumer))

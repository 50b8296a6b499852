"""
Tests for the counterfactual explainer.
"""

import asyncio
import uuid

import pytest
from unittest.mock import AsyncMock

from cfsearch.counterfactual.explainer import CounterfactualExplainer, SearchState
from cfsearch.counterfactual.goal import FunctionGoalCriteria, GoalScore
from cfsearch.model.domains import CategoricalDomain, CategoricalNumericDomain, NumericRangeDomain
from cfsearch.model.features import (
    categorical_feature,
    categorical_numerical_feature,
    numerical_feature,
)
from cfsearch.model.prediction import (
    CounterfactualPrediction,
    Output,
    PredictionInput,
    PredictionOutput,
)
from cfsearch.model.provider import FunctionPredictionProvider, PredictionProvider
from cfsearch.model.types import FeatureType
from cfsearch.utils.config import CounterfactualConfig
from cfsearch.utils.error_utils import (
    ConfigurationError,
    CounterfactualError,
    PredictionError,
    SearchTimeoutError,
)

from conftest import (
    feature_pass_model,
    linear_model,
    sum_skip_model,
    sum_threshold_model,
    symbolic_arithmetic_model,
)


def make_config(max_evaluations=2000, seed=0):
    return CounterfactualConfig().with_seed(seed).with_max_evaluations(max_evaluations)


def sum_request(fixed=(), execution_id=None):
    features = []
    for i in range(4):
        domain = None if i in fixed else NumericRangeDomain(0.0, 1000.0)
        features.append(numerical_feature(f"f-num{i + 1}", 100.0, domain))
    goal = PredictionOutput([Output("inside", FeatureType.BOOLEAN, True, 0.0)])
    return CounterfactualPrediction(
        PredictionInput(features), goal, goal_threshold=0.0, execution_id=execution_id
    )


def test_sum_within_range(sum_model):
    result = CounterfactualExplainer(make_config()).explain(sum_request(), sum_model)

    assert result.is_valid()
    total = sum(f.value for f in result.features)
    assert 490.0 <= total <= 510.0
    assert result.output[0].by_name("inside").value is True
    for feature in result.features:
        assert 0.0 <= feature.value <= 1000.0


def test_sum_with_fixed_features(sum_model):
    result = CounterfactualExplainer(make_config()).explain(sum_request(fixed=(0, 2)), sum_model)

    assert result.is_valid()
    assert result.features[0].value == 100.0
    assert result.features[2].value == 100.0
    assert not result.entities[0].is_changed()
    assert not result.entities[2].is_changed()
    assert 490.0 <= sum(f.value for f in result.features) <= 510.0


def test_determinism(sum_model):
    def run():
        intermediate = []
        result = CounterfactualExplainer(make_config(300, seed=5)).explain(
            sum_request(), sum_model, intermediate.append
        )
        return [f.value for f in result.features], [r.sequence_id for r in intermediate] + [result.sequence_id]

    assert run() == run()


def test_sequence_ids_and_execution_id(sum_model):
    execution_id = uuid.uuid4()
    intermediate = []

    result = CounterfactualExplainer(make_config(500)).explain(
        sum_request(execution_id=execution_id), sum_model, intermediate.append
    )

    sequence_ids = [r.sequence_id for r in intermediate] + [result.sequence_id]
    assert len(intermediate) >= 1
    assert len(set(sequence_ids)) == len(intermediate) + 1
    assert sequence_ids == sorted(sequence_ids)
    assert all(r.execution_id == execution_id for r in intermediate)
    assert result.execution_id == execution_id
    assert len({r.solution_id for r in intermediate} | {result.solution_id}) == len(intermediate) + 1
    assert result.is_final and not any(r.is_final for r in intermediate)


def test_generated_execution_id_is_stable(sum_model):
    prediction = sum_request()
    intermediate = []

    result = CounterfactualExplainer(make_config(200)).explain(prediction, sum_model, intermediate.append)

    assert isinstance(prediction.execution_id, uuid.UUID)
    assert result.execution_id == prediction.execution_id
    assert all(r.execution_id == prediction.execution_id for r in intermediate)


def test_range_invariant_on_intermediate_results():
    features = [numerical_feature(f"x{i}", 5.0, NumericRangeDomain(0.0, 10.0)) for i in range(3)]
    goal = PredictionOutput([Output("linear-sum", FeatureType.NUMBER, 100.0)])
    prediction = CounterfactualPrediction(PredictionInput(features), goal)
    intermediate = []

    result = CounterfactualExplainer(make_config(400)).explain(
        prediction, linear_model([1.0, 2.0, 3.0]), intermediate.append
    )

    for r in intermediate + [result]:
        for feature in r.features:
            assert 0.0 <= feature.value <= 10.0


def test_unreachable_goal_is_invalid_not_an_error():
    features = [numerical_feature(f"x{i}", 1.0, NumericRangeDomain(0.0, 10.0)) for i in range(2)]
    goal = PredictionOutput([Output("linear-sum", FeatureType.NUMBER, 1000.0)])
    prediction = CounterfactualPrediction(PredictionInput(features), goal, goal_threshold=0.0)

    result = CounterfactualExplainer(make_config(60)).explain(prediction, linear_model([1.0, 1.0]))

    assert not result.is_valid()
    # the original sits at 2.0, anything found must be at least as close to 1000
    assert result.goal_distance <= (1000.0 - 2.0) / 1000.0
    assert result.goal_distance > 0.0


def test_small_budget_with_zero_threshold_is_invalid():
    features = [numerical_feature(f"x{i}", 1.0, NumericRangeDomain(0.0, 100.0)) for i in range(3)]
    goal = PredictionOutput([Output("linear-sum", FeatureType.NUMBER, 123.456789)])
    prediction = CounterfactualPrediction(PredictionInput(features), goal, goal_threshold=0.0)
    seen = []

    def record(inputs):
        outputs = linear_model([1.0, 1.0, 1.0])(inputs)
        seen.extend(o.outputs[0].value for o in outputs)
        return outputs

    result = CounterfactualExplainer(make_config(20)).explain(prediction, record)

    assert not result.is_valid()
    closest = min(abs(v - 123.456789) / 123.456789 for v in seen)
    assert result.goal_distance == pytest.approx(closest)


def test_sparsity_prefers_single_change():
    features = [
        numerical_feature("x1", 5.0, NumericRangeDomain(0.0, 10.0)),
        numerical_feature("x2", 3.0, NumericRangeDomain(0.0, 10.0)),
    ]
    goal = PredictionOutput([Output("sum", FeatureType.NUMBER, 10.0)])
    prediction = CounterfactualPrediction(PredictionInput(features), goal)

    result = CounterfactualExplainer(make_config(4000)).explain(prediction, sum_skip_model(-1))

    assert result.is_valid()
    assert 9.9 <= sum(f.value for f in result.features) <= 10.1
    assert len(result.changed_features()) == 1


def test_categorical_numeric_search():
    features = [
        categorical_numerical_feature("x", 1, CategoricalNumericDomain(1, 2, 3, 4, 5)),
        numerical_feature("y", 2.0),
    ]
    goal = PredictionOutput([Output("linear-sum", FeatureType.NUMBER, 6.0)])
    prediction = CounterfactualPrediction(PredictionInput(features), goal, goal_threshold=0.0)

    result = CounterfactualExplainer(make_config(200)).explain(prediction, linear_model([1.0, 1.0]))

    assert result.is_valid()
    assert result.features[0].value == 4
    assert result.features[1].value == 2.0


def test_symbolic_arithmetic_changes_operator():
    features = [
        numerical_feature("x", 6.0),
        categorical_feature("op", "+", CategoricalDomain("+", "-", "*")),
        numerical_feature("y", 3.0),
    ]
    goal = PredictionOutput([Output("result", FeatureType.NUMBER, 18.0)])
    prediction = CounterfactualPrediction(PredictionInput(features), goal, goal_threshold=0.0)

    result = CounterfactualExplainer(make_config(100)).explain(prediction, symbolic_arithmetic_model())

    assert result.is_valid()
    assert result.features[1].value == "*"
    assert result.changed_features() == ["op"]


def test_feature_pass_categorical_goal():
    features = [
        categorical_feature("colour", "red", CategoricalDomain("red", "green", "blue")),
        numerical_feature("size", 3.0, NumericRangeDomain(0.0, 10.0)),
    ]
    goal = PredictionOutput([Output("colour", FeatureType.CATEGORICAL, "blue")])
    prediction = CounterfactualPrediction(PredictionInput(features), goal, goal_threshold=0.0)

    result = CounterfactualExplainer(make_config(200)).explain(prediction, feature_pass_model(0))

    assert result.is_valid()
    assert result.features[0].value == "blue"
    assert result.features[1].value == 3.0


def test_dynamic_goal():
    features = [numerical_feature(f"x{i}", 1.0, NumericRangeDomain(0.0, 100.0)) for i in range(2)]

    def at_least_fifty(outputs):
        value = outputs[0].value
        return GoalScore.create(max(0.0, 50.0 - value) / 50.0)

    prediction = CounterfactualPrediction(
        PredictionInput(features),
        PredictionOutput([]),
        goal_criteria=FunctionGoalCriteria(at_least_fifty)
    )

    result = CounterfactualExplainer(make_config(2000)).explain(prediction, linear_model([1.0, 1.0]))

    assert result.is_valid()
    assert sum(f.value for f in result.features) >= 50.0


def test_plain_function_goal_is_wrapped():
    features = [numerical_feature(f"x{i}", 1.0, NumericRangeDomain(0.0, 100.0)) for i in range(2)]

    def at_least_fifty(outputs):
        return max(0.0, 50.0 - outputs[0].value) / 50.0

    prediction = CounterfactualPrediction(
        PredictionInput(features), PredictionOutput([]), goal_criteria=at_least_fifty
    )
    explainer = CounterfactualExplainer(make_config(2000))
    assert isinstance(explainer.build(prediction, linear_model([1.0, 1.0])).goal_criteria, FunctionGoalCriteria)

    result = explainer.explain(prediction, linear_model([1.0, 1.0]))

    assert result.is_valid()
    assert sum(f.value for f in result.features) >= 50.0


def test_non_callable_goal_is_rejected(sum_model):
    prediction = CounterfactualPrediction(
        PredictionInput([numerical_feature("a", 1.0)]), PredictionOutput([]), goal_criteria=0.5
    )
    with pytest.raises(ConfigurationError):
        CounterfactualExplainer(make_config()).build(prediction, sum_model)


def test_empty_input_and_goal():
    prediction = CounterfactualPrediction(PredictionInput([]), PredictionOutput([]))

    result = CounterfactualExplainer(make_config(10)).explain(prediction, lambda inputs: [PredictionOutput([]) for _ in inputs])

    assert result.is_valid()
    assert result.features == ()
    assert result.sequence_id == 2


def test_consumer_exception_does_not_abort(sum_model):
    delivered = []

    def consumer(result):
        delivered.append(result.sequence_id)
        raise ValueError("consumer bug")

    result = CounterfactualExplainer(make_config(300)).explain(sum_request(), sum_model, consumer)

    assert len(delivered) >= 1
    assert result.sequence_id == delivered[-1] + 1


def test_predictor_failure_surfaces():
    model = AsyncMock(spec=PredictionProvider)
    model.predict_async.side_effect = RuntimeError("model unavailable")
    explainer = CounterfactualExplainer(make_config(100))
    search = explainer.build(sum_request(), model)

    with pytest.raises(PredictionError):
        asyncio.run(search.run())

    assert search.state == SearchState.FAILED
    assert search.final_result is None


def test_build_rejects_bad_requests(sum_model):
    explainer = CounterfactualExplainer(make_config())

    with pytest.raises(ConfigurationError):
        explainer.build(sum_request(), None)

    duplicated = CounterfactualPrediction(
        PredictionInput([numerical_feature("a", 1.0), numerical_feature("a", 2.0)]),
        PredictionOutput([])
    )
    with pytest.raises(ConfigurationError):
        explainer.build(duplicated, sum_model)

    out_of_range = CounterfactualPrediction(
        PredictionInput([numerical_feature("a", 50.0, NumericRangeDomain(0.0, 1.0))]),
        PredictionOutput([])
    )
    with pytest.raises(ConfigurationError):
        explainer.build(out_of_range, sum_model)


def test_termination_precedence():
    prediction = sum_request()
    prediction.max_running_time_seconds = 3.0

    assert CounterfactualExplainer(make_config(100)).termination_for(prediction).max_evaluations == 100
    assert CounterfactualExplainer(CounterfactualConfig()).termination_for(prediction).max_seconds == 3.0
    prediction.max_running_time_seconds = None
    assert CounterfactualExplainer(CounterfactualConfig(max_running_time_seconds=7.0)).termination_for(
        prediction
    ).max_seconds == 7.0


@pytest.mark.asyncio
async def test_explain_async_returns_task(sum_model):
    intermediate = []
    explainer = CounterfactualExplainer(make_config(200))

    task = explainer.explain_async(sum_request(), sum_model, intermediate.append)
    assert isinstance(task, asyncio.Task)

    result = await task
    assert result.sequence_id == len(intermediate) + 1


@pytest.mark.asyncio
async def test_timeout_marks_search_timed_out():
    async def slow(inputs):
        await asyncio.sleep(0.05)
        return sum_threshold_model(500.0, 10.0)(inputs)

    config = CounterfactualConfig(async_timeout_seconds=0.2, max_running_time_seconds=60.0)
    explainer = CounterfactualExplainer(config)
    search = explainer.build(sum_request(), FunctionPredictionProvider(slow))

    with pytest.raises(SearchTimeoutError):
        await explainer.submit(search)

    assert search.state == SearchState.TIMED_OUT


@pytest.mark.asyncio
async def test_cancel_marks_search_cancelled(sum_model):
    async def slow(inputs):
        await asyncio.sleep(0.05)
        return sum_model(inputs)

    explainer = CounterfactualExplainer(CounterfactualConfig(max_running_time_seconds=60.0))
    search = explainer.build(sum_request(), FunctionPredictionProvider(slow))
    task = explainer.submit(search)

    await asyncio.sleep(0.2)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert search.state == SearchState.CANCELLED


def test_search_runs_only_once(sum_model):
    explainer = CounterfactualExplainer(make_config(20))
    search = explainer.build(sum_request(), sum_model)
    asyncio.run(search.run())

    assert search.state == SearchState.COMPLETED
    with pytest.raises(CounterfactualError):
        asyncio.run(search.run())


def test_completed_search_reports_progress(sum_model):
    search = CounterfactualExplainer(make_config(200)).build(sum_request(), sum_model)
    asyncio.run(search.run())

    report = search.monitor.get_progress_report()
    assert search.state == SearchState.COMPLETED
    assert report["current_stage"] == "COMPLETE"
    assert report["completed_stages"] == ["BUILD", "SEARCH", "REPORT"]
    assert report["search_progress"] == 1.0

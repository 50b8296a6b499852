"""
Tests for the predictor adapters and the prediction call policy.
"""

import asyncio

import aiohttp
import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from cfsearch.model.features import numerical_feature
from cfsearch.model.prediction import Output, PredictionInput, PredictionOutput
from cfsearch.model.provider import (
    FunctionPredictionProvider,
    HttpPredictionProvider,
    PredictionProvider,
    predict_with_policy,
)
from cfsearch.model.types import FeatureType
from cfsearch.utils.error_utils import PredictionError


@pytest.fixture
def inputs():
    return [PredictionInput([numerical_feature("a", 1.0), numerical_feature("b", 2.0)])]


def echo_sum(batch):
    return [
        PredictionOutput([Output("sum", FeatureType.NUMBER, sum(f.value for f in pi.features))])
        for pi in batch
    ]


@pytest.mark.asyncio
async def test_function_provider_sync(inputs):
    outputs = await FunctionPredictionProvider(echo_sum).predict_async(inputs)
    assert outputs[0].by_name("sum").value == 3.0


@pytest.mark.asyncio
async def test_function_provider_async(inputs):
    async def predict(batch):
        await asyncio.sleep(0)
        return echo_sum(batch)

    outputs = await FunctionPredictionProvider(predict).predict_async(inputs)
    assert outputs[0].by_name("sum").value == 3.0


@pytest.mark.asyncio
async def test_function_provider_in_thread(inputs):
    outputs = await FunctionPredictionProvider(echo_sum, run_in_thread=True).predict_async(inputs)
    assert outputs[0].by_name("sum").value == 3.0


@pytest.mark.asyncio
async def test_policy_retries_then_succeeds(inputs):
    model = AsyncMock(spec=PredictionProvider)
    model.predict_async.side_effect = [RuntimeError("flaky"), echo_sum(inputs)]

    outputs = await predict_with_policy(model, inputs, attempts=2)

    assert outputs[0].by_name("sum").value == 3.0
    assert model.predict_async.await_count == 2


@pytest.mark.asyncio
async def test_policy_timeout_raises_prediction_error(inputs):
    async def slow(batch):
        await asyncio.sleep(1.0)
        return echo_sum(batch)

    with pytest.raises(PredictionError) as excinfo:
        await predict_with_policy(FunctionPredictionProvider(slow), inputs, timeout=0.01)

    assert "TimeoutError" in excinfo.value.details["cause"]


@pytest.mark.asyncio
async def test_policy_rejects_wrong_output_count(inputs):
    model = FunctionPredictionProvider(lambda batch: [])
    with pytest.raises(PredictionError):
        await predict_with_policy(model, inputs)


def test_http_encode_decode(inputs):
    body = HttpPredictionProvider.encode_inputs(inputs)
    assert body == {"inputs": [{"a": 1.0, "b": 2.0}]}

    outputs = HttpPredictionProvider.decode_outputs(
        {"outputs": [[{"name": "approved", "type": "boolean", "value": True, "score": 0.7}]]}
    )
    assert outputs[0].by_name("approved") == Output("approved", FeatureType.BOOLEAN, True, 0.7)

    with pytest.raises(PredictionError):
        HttpPredictionProvider.decode_outputs({"outputs": [[{"value": 1}]]})


@pytest.mark.asyncio
async def test_http_predict(inputs):
    payload = {"outputs": [[{"name": "sum", "type": "number", "value": 3.0}]]}
    with patch.object(HttpPredictionProvider, "_post", new_callable=AsyncMock) as mock_post:
        mock_post.return_value = payload

        async with HttpPredictionProvider("http://model.local/predict") as provider:
            outputs = await provider.predict_async(inputs)

        mock_post.assert_called_once_with({"inputs": [{"a": 1.0, "b": 2.0}]})
        assert outputs[0].by_name("sum").value == 3.0


@pytest.mark.asyncio
async def test_http_predict_count_mismatch(inputs):
    with patch.object(HttpPredictionProvider, "_post", new_callable=AsyncMock) as mock_post:
        mock_post.return_value = {"outputs": []}

        async with HttpPredictionProvider("http://model.local/predict") as provider:
            with pytest.raises(PredictionError):
                await provider.predict_async(inputs)


@pytest.mark.asyncio
async def test_http_server_error_is_not_retried(inputs):
    response = MagicMock()
    response.status = 500
    response.text = AsyncMock(return_value="boom")
    context = MagicMock()
    context.__aenter__ = AsyncMock(return_value=response)
    context.__aexit__ = AsyncMock(return_value=False)
    session = MagicMock(spec=aiohttp.ClientSession)
    session.post.return_value = context

    provider = HttpPredictionProvider("http://model.local/predict", session=session)
    with pytest.raises(PredictionError):
        await provider.predict_async(inputs)

    assert session.post.call_count == 1

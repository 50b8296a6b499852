"""
Predictor interfaces.

The search engine treats the model as a black box: an asynchronous function
from a batch of prediction inputs to one prediction output per input.
"""

import asyncio
import inspect
import logging
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Union

import aiohttp
from tenacity import (
    AsyncRetrying,
    RetryError,
    before_sleep_log,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from cfsearch.model.prediction import Output, PredictionInput, PredictionOutput
from cfsearch.model.types import FeatureType
from cfsearch.utils.error_utils import PredictionError

logger = logging.getLogger(__name__)

PredictFunction = Callable[
    [List[PredictionInput]],
    Union[List[PredictionOutput], Awaitable[List[PredictionOutput]]]
]


class PredictionProvider(ABC):
    """Abstract base class for black-box models"""

    @abstractmethod
    async def predict_async(self, inputs: List[PredictionInput]) -> List[PredictionOutput]:
        """Predict one output per input"""
        pass


class FunctionPredictionProvider(PredictionProvider):
    """Adapts a plain (sync or async) callable to the predictor contract."""

    def __init__(self, fn: PredictFunction, run_in_thread: bool = False):
        """
        Args:
            fn: Callable mapping a list of inputs to a list of outputs
            run_in_thread: Run a synchronous callable in a worker thread so a slow
                model does not block the event loop
        """
        self.fn = fn
        self.run_in_thread = run_in_thread

    async def predict_async(self, inputs: List[PredictionInput]) -> List[PredictionOutput]:
        if self.run_in_thread and not inspect.iscoroutinefunction(self.fn):
            result = await asyncio.to_thread(self.fn, inputs)
        else:
            result = self.fn(inputs)
        if inspect.isawaitable(result):
            result = await result
        return list(result)


class TransientPredictionError(PredictionError):
    """A failure of a remote model that is worth retrying."""
    pass


class HttpPredictionProvider(PredictionProvider):
    """
    Predictor backed by a remote model server.

    Request body: {"inputs": [{feature name: value, ...}, ...]}
    Response body: {"outputs": [[{"name", "type", "value", "score"}, ...], ...]}
    """

    def __init__(
        self,
        endpoint: str,
        headers: Optional[Dict[str, str]] = None,
        timeout: float = 30.0,
        session: Optional[aiohttp.ClientSession] = None
    ):
        self.endpoint = endpoint
        self.headers = headers or {}
        self.timeout = timeout
        self.session = session
        self._created_session = False

    async def __aenter__(self):
        """Set up the session for the async context manager"""
        if self.session is None:
            self.session = aiohttp.ClientSession(
                headers={"Content-Type": "application/json", **self.headers},
                timeout=aiohttp.ClientTimeout(total=self.timeout)
            )
            self._created_session = True
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Clean up the session when exiting the async context"""
        if self._created_session and self.session:
            await self.session.close()
            self.session = None
            self._created_session = False

    @staticmethod
    def encode_inputs(inputs: Sequence[PredictionInput]) -> Dict[str, Any]:
        return {"inputs": [{f.name: f.value for f in pi.features} for pi in inputs]}

    @staticmethod
    def decode_outputs(payload: Dict[str, Any]) -> List[PredictionOutput]:
        try:
            return [
                PredictionOutput([
                    Output(
                        name=o["name"],
                        type=FeatureType(o.get("type", FeatureType.NUMBER.value)),
                        value=o["value"],
                        score=float(o.get("score", 1.0)),
                    )
                    for o in outputs
                ])
                for outputs in payload["outputs"]
            ]
        except (KeyError, TypeError, ValueError) as e:
            raise PredictionError("Malformed model server response", cause=str(e)) from e

    @retry(
        retry=retry_if_exception_type(TransientPredictionError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        before_sleep=before_sleep_log(logger, logging.INFO),
        reraise=True
    )
    async def _post(self, body: Dict[str, Any]) -> Dict[str, Any]:
        if self.session is None:
            raise RuntimeError("Session not initialized. Use async with context.")
        try:
            async with self.session.post(self.endpoint, json=body) as response:
                text = await response.text()
                if response.status in (429, 502, 503, 504):
                    raise TransientPredictionError(
                        f"Model server unavailable (status {response.status})", cause=text[:200]
                    )
                if response.status != 200:
                    raise PredictionError(
                        f"Model server error (status {response.status})", cause=text[:200]
                    )
                return await response.json()
        except aiohttp.ClientError as e:
            raise TransientPredictionError("Model server connection failed", cause=str(e)) from e

    async def predict_async(self, inputs: List[PredictionInput]) -> List[PredictionOutput]:
        if not inputs:
            return []
        payload = await self._post(self.encode_inputs(inputs))
        outputs = self.decode_outputs(payload)
        if len(outputs) != len(inputs):
            raise PredictionError(
                f"Model server returned {len(outputs)} outputs for {len(inputs)} inputs"
            )
        return outputs


async def predict_with_policy(
    model: PredictionProvider,
    inputs: List[PredictionInput],
    timeout: Optional[float] = None,
    attempts: int = 1
) -> List[PredictionOutput]:
    """
    Call the model with a per-attempt timeout and a bounded number of attempts.

    Raises:
        PredictionError: if every attempt failed or timed out, or if the model
            returned a different number of outputs than inputs
    """
    try:
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(max(1, attempts)),
            retry=retry_if_exception_type(Exception),
            before_sleep=before_sleep_log(logger, logging.WARNING),
        ):
            with attempt:
                if timeout is not None:
                    outputs = await asyncio.wait_for(model.predict_async(inputs), timeout)
                else:
                    outputs = await model.predict_async(inputs)
    except RetryError as e:
        cause = e.last_attempt.exception()
        raise PredictionError(
            "Prediction failed during counterfactual evaluation",
            attempts=attempts,
            cause=f"{type(cause).__name__}: {cause}"
        ) from cause

    if len(outputs) != len(inputs):
        raise PredictionError(
            f"Model returned {len(outputs)} outputs for {len(inputs)} inputs",
            attempts=attempts
        )
    return outputs

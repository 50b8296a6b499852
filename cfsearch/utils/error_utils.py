"""
Error handling utilities for the counterfactual search engine.
Defines the exception taxonomy and consistent error logging helpers.
"""

import json
import logging
import functools
import traceback
from typing import Any, Callable, Dict, List, Optional, TypeVar, cast

logger = logging.getLogger(__name__)

# Type variables for function signatures
F = TypeVar('F', bound=Callable[..., Any])


class CounterfactualError(Exception):
    """Base exception class for the counterfactual search engine."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} - {json.dumps(self.details, default=str)}"
        return self.message

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for reports and CLI output"""
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "details": self.details,
        }


class ConfigurationError(CounterfactualError):
    """Raised when a request cannot be turned into a search problem."""

    def __init__(self, message: str, invalid_fields: Optional[List[str]] = None):
        details = {"invalid_fields": invalid_fields} if invalid_fields else {}
        super().__init__(message, details)


class PredictionError(CounterfactualError):
    """Raised when the external predictor fails or times out during an evaluation."""

    def __init__(self, message: str, attempts: int = 1, cause: Optional[str] = None):
        details: Dict[str, Any] = {"attempts": attempts}
        if cause:
            details["cause"] = cause
        super().__init__(message, details)


class SearchTimeoutError(CounterfactualError):
    """Raised when a search does not resolve within the asynchronous timeout."""

    def __init__(self, message: str, timeout_seconds: float):
        super().__init__(message, {"timeout_seconds": timeout_seconds})


class SearchCancelledError(CounterfactualError):
    """Raised when a search is abandoned before it completes."""
    pass


class IdentityInvariantError(CounterfactualError):
    """Raised if two surfaced solutions would share a sequence id."""

    def __init__(self, message: str, sequence_id: int):
        super().__init__(message, {"sequence_id": sequence_id})


def handle_exceptions(
    fallback_return: Any = None,
    reraise: bool = False,
    error_log_level: int = logging.ERROR
) -> Callable[[F], F]:
    """
    Decorator for consistent exception handling.

    Args:
        fallback_return: Value to return in case of exception
        reraise: Whether to reraise the exception after handling
        error_log_level: Logging level for the error

    Returns:
        Decorated function
    """
    def decorator(func: F) -> F:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            try:
                return func(*args, **kwargs)
            except Exception as e:
                logger.log(
                    error_log_level,
                    f"Error in {getattr(func, '__name__', repr(func))}: {str(e)}\n{traceback.format_exc()}"
                )

                if reraise:
                    raise

                return fallback_return

        return cast(F, wrapper)

    return decorator


def log_exception(e: Exception, log_level: int = logging.ERROR) -> None:
    """
    Log an exception with details

    Args:
        e: The exception to log
        log_level: The logging level to use
    """
    logger.log(log_level, f"Exception: {str(e)}")
    logger.log(log_level, f"Type: {type(e).__name__}")
    logger.log(log_level, f"Traceback: {traceback.format_exc()}")

    if isinstance(e, CounterfactualError) and e.details:
        logger.log(log_level, f"Details: {json.dumps(e.details, indent=2, default=str)}")


def format_error_for_user(e: BaseException) -> Dict[str, Any]:
    """
    Format an error for user display

    Args:
        e: The exception to format

    Returns:
        Dictionary with formatted error information
    """
    if isinstance(e, CounterfactualError):
        return e.to_dict()
    return {
        "error": type(e).__name__,
        "message": str(e),
        "details": {},
    }

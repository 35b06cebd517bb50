"""
Error taxonomy and timeout handling for the Sevak orchestration core

Every failure that crosses a component boundary is expressed as a SevakError
subclass carrying a category. Raw exceptions from upstream services never
reach end users: the orchestrator and the fallback chain answer with the
localized texts in sevak.messages instead.
"""

import asyncio
import logging
import time
from contextvars import ContextVar
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Context variables for request tracking
request_id_var: ContextVar[str] = ContextVar('request_id', default='')
user_id_var: ContextVar[str] = ContextVar('user_id', default='')
stage_var: ContextVar[str] = ContextVar('stage', default='')


class ErrorCategory(Enum):
    """Structured error categories for precise handling"""
    TRANSIENT = "transient"        # Upstream hiccup, breaker records it
    TIMEOUT = "timeout"            # Call exceeded its deadline
    DEGRADED = "degraded"          # Capability lost, response shape downgraded
    TERMINAL = "terminal"          # No further local recovery possible
    VALIDATION = "validation"      # Malformed request or input
    CIRCUIT_OPEN = "circuit_open"  # Internal signal consumed by the fallback chain


class SevakError(Exception):
    """Base exception for orchestration failures"""

    def __init__(
        self,
        message: str,
        category: ErrorCategory = ErrorCategory.TRANSIENT,
        retryable: bool = True,
        original_exception: Optional[BaseException] = None
    ):
        super().__init__(message)
        self.category = category
        self.retryable = retryable
        self.original_exception = original_exception
        self.timestamp = time.time()


class TranscriptionError(SevakError):
    """Speech-to-text failed after the service exhausted its own retries"""

    def __init__(self, message: str, attempts: int = 0, original_exception: Optional[BaseException] = None):
        super().__init__(message, ErrorCategory.TRANSIENT, retryable=False, original_exception=original_exception)
        self.attempts = attempts


class SynthesisError(SevakError):
    """Text-to-speech failed; callers downgrade to text-only"""

    def __init__(self, message: str, original_exception: Optional[BaseException] = None):
        super().__init__(message, ErrorCategory.DEGRADED, retryable=False, original_exception=original_exception)


class InferenceError(SevakError):
    """Language model call failed or returned nothing usable"""

    def __init__(self, message: str, original_exception: Optional[BaseException] = None):
        super().__init__(message, ErrorCategory.TRANSIENT, original_exception=original_exception)


class EmbeddingError(SevakError):
    """Embedding service failed"""

    def __init__(self, message: str, original_exception: Optional[BaseException] = None):
        super().__init__(message, ErrorCategory.TRANSIENT, original_exception=original_exception)


class DeliveryError(SevakError):
    """Outbound delivery exhausted its attempts"""

    def __init__(self, message: str, attempts: int = 0, context: Any = None,
                 original_exception: Optional[BaseException] = None):
        super().__init__(message, ErrorCategory.TERMINAL, retryable=False, original_exception=original_exception)
        self.attempts = attempts
        self.context = context


class CircuitBreakerOpenError(SevakError):
    """Raised when a circuit breaker rejects a call without invoking it"""

    def __init__(self, service_name: str, state: str = "open"):
        super().__init__(
            f"Circuit breaker {state} for {service_name}",
            ErrorCategory.CIRCUIT_OPEN,
            retryable=False
        )
        self.service_name = service_name
        self.state = state


class StageTimeoutError(SevakError):
    """A timeout-guarded call exceeded its deadline"""

    def __init__(self, operation: str, timeout: float):
        super().__init__(
            f"{operation} timed out after {timeout:.1f}s",
            ErrorCategory.TIMEOUT
        )
        self.operation = operation
        self.timeout = timeout


class RequestValidationError(SevakError):
    """Inbound request failed validation"""

    def __init__(self, message: str):
        super().__init__(message, ErrorCategory.VALIDATION, retryable=False)


class RequestCancelledError(SevakError):
    """Request abandoned at a stage boundary (deadline elapsed or client gone)"""

    def __init__(self, message: str, context: Any = None):
        super().__init__(message, ErrorCategory.TERMINAL, retryable=False)
        self.context = context


class ConfigurationError(SevakError):
    """Invalid or unloadable configuration"""

    def __init__(self, message: str):
        super().__init__(message, ErrorCategory.VALIDATION, retryable=False)


class ReminderError(SevakError):
    """Reminder command rejected"""

    def __init__(self, message: str):
        super().__init__(message, ErrorCategory.VALIDATION, retryable=False)


class GovernmentDataError(SevakError):
    """Government data API failed and no cached copy exists"""

    def __init__(self, message: str, original_exception: Optional[BaseException] = None):
        super().__init__(message, ErrorCategory.TRANSIENT, original_exception=original_exception)


async def with_timeout(
    func: Callable[[], Awaitable[T]],
    timeout: float,
    operation: str
) -> T:
    """
    Run an async zero-arg callable under an explicit deadline.

    On expiry the awaited call is cancelled and StageTimeoutError is raised,
    which both the circuit breaker and the stage logic treat as a failure.
    """
    try:
        return await asyncio.wait_for(func(), timeout=timeout)
    except asyncio.TimeoutError:
        logger.warning(f"{operation} timed out after {timeout:.1f}s")
        raise StageTimeoutError(operation, timeout) from None


def describe_error(error: BaseException) -> str:
    """Short, log-safe error summary"""
    if isinstance(error, SevakError):
        return f"{type(error).__name__}[{error.category.value}]: {error}"
    return f"{type(error).__name__}: {error}"

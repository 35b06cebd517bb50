"""
Sliding-window circuit breaker for upstream dependencies

Protects the orchestration core against a failing model provider:
- Failure rate measured over a trailing time window
- Open state rejects calls without invoking them
- Single trial call in half-open state
- One breaker per dependency via CircuitBreakerRegistry
"""

import asyncio
import logging
import time
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Deque, Dict, Optional, TypeVar

from .error_handling import CircuitBreakerOpenError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ServiceState(Enum):
    """Circuit breaker service states"""
    CLOSED = "closed"      # Normal operation
    OPEN = "open"          # Calls rejected without invocation
    HALF_OPEN = "half_open"  # One trial call allowed through


@dataclass
class CircuitBreakerConfig:
    """Configuration for circuit breaker"""
    failure_rate_threshold: float = 0.5  # Failures per second over the window
    window_seconds: float = 60.0  # Trailing window for counting failures
    reset_interval: float = 30.0  # Time in open state before a trial call is admitted


class CircuitBreaker:
    """
    Circuit breaker wrapping calls to a single dependency.

    The failure rate is the number of failures inside the trailing window
    divided by the window length in seconds. The breaker opens when that rate
    strictly exceeds the configured threshold.
    """

    def __init__(
        self,
        service_name: str,
        config: Optional[CircuitBreakerConfig] = None,
        clock: Callable[[], float] = time.monotonic
    ):
        self.service_name = service_name
        self.config = config or CircuitBreakerConfig()
        self._clock = clock
        self._lock = asyncio.Lock()

        self.state = ServiceState.CLOSED
        self.failure_timestamps: Deque[float] = deque()
        self.opened_at: Optional[float] = None
        self._trial_in_flight = False

        self.stats = {
            'total_calls': 0,
            'successful_calls': 0,
            'failed_calls': 0,
            'rejected_calls': 0,
            'times_opened': 0
        }

        logger.info(f"CircuitBreaker initialized for {service_name}")

    @property
    def failure_rate(self) -> float:
        """Failures per second inside the trailing window"""
        self._prune(self._clock())
        return len(self.failure_timestamps) / self.config.window_seconds

    async def call(self, func: Callable[[], Awaitable[T]]) -> T:
        """Execute an async zero-arg callable with circuit breaker protection"""
        is_trial = await self._admit()

        try:
            result = await func()
        except asyncio.CancelledError:
            if is_trial:
                self._trial_in_flight = False
            raise
        except Exception:
            await self._record_failure(is_trial)
            raise

        await self._record_success(is_trial)
        return result

    async def _admit(self) -> bool:
        """Decide whether a call may proceed; returns True for the half-open trial call"""
        async with self._lock:
            self.stats['total_calls'] += 1
            now = self._clock()

            if self.state == ServiceState.OPEN:
                if now - self.opened_at >= self.config.reset_interval:
                    self._transition_to_half_open()
                else:
                    self.stats['rejected_calls'] += 1
                    raise CircuitBreakerOpenError(self.service_name, self.state.value)

            if self.state == ServiceState.HALF_OPEN:
                if self._trial_in_flight:
                    self.stats['rejected_calls'] += 1
                    raise CircuitBreakerOpenError(self.service_name, self.state.value)
                self._trial_in_flight = True
                return True

            return False

    async def _record_success(self, is_trial: bool):
        async with self._lock:
            self.stats['successful_calls'] += 1
            if is_trial:
                self._trial_in_flight = False
                self._transition_to_closed()

    async def _record_failure(self, is_trial: bool):
        async with self._lock:
            self.stats['failed_calls'] += 1
            now = self._clock()

            if is_trial:
                self._trial_in_flight = False
                self._transition_to_open(now)
                return

            # Late failures from calls admitted before the breaker opened
            if self.state != ServiceState.CLOSED:
                return

            self.failure_timestamps.append(now)
            self._prune(now)
            rate = len(self.failure_timestamps) / self.config.window_seconds
            if rate > self.config.failure_rate_threshold:
                self._transition_to_open(now)

    def _prune(self, now: float):
        cutoff = now - self.config.window_seconds
        while self.failure_timestamps and self.failure_timestamps[0] <= cutoff:
            self.failure_timestamps.popleft()

    def _transition_to_open(self, now: float):
        """Transition to open state"""
        self.state = ServiceState.OPEN
        self.opened_at = now
        self.stats['times_opened'] += 1
        logger.warning(
            f"Circuit breaker OPENED for {self.service_name} - "
            f"{len(self.failure_timestamps)} failures in {self.config.window_seconds:.0f}s window"
        )

    def _transition_to_half_open(self):
        """Transition to half-open state"""
        self.state = ServiceState.HALF_OPEN
        logger.info(f"Circuit breaker HALF-OPEN for {self.service_name} - testing recovery")

    def _transition_to_closed(self):
        """Transition to closed state"""
        self.state = ServiceState.CLOSED
        self.failure_timestamps.clear()
        self.opened_at = None
        logger.info(f"Circuit breaker CLOSED for {self.service_name} - service recovered")

    def reset(self):
        """Force the breaker closed"""
        self._trial_in_flight = False
        self._transition_to_closed()
        logger.info(f"Manually reset circuit breaker for {self.service_name}")

    def get_state_info(self) -> Dict[str, Any]:
        """Get circuit breaker state information"""
        now = self._clock()
        self._prune(now)
        return {
            'service_name': self.service_name,
            'state': self.state.value,
            'failures_in_window': len(self.failure_timestamps),
            'failure_rate': len(self.failure_timestamps) / self.config.window_seconds,
            'opened_at': self.opened_at,
            'time_open': now - self.opened_at if self.opened_at is not None else 0.0,
            'stats': self.stats.copy()
        }


class CircuitBreakerRegistry:
    """Hands out one breaker per dependency name"""

    def __init__(
        self,
        config: Optional[CircuitBreakerConfig] = None,
        clock: Callable[[], float] = time.monotonic
    ):
        self.config = config or CircuitBreakerConfig()
        self._clock = clock
        self._breakers: Dict[str, CircuitBreaker] = {}

    def get(self, service_name: str) -> CircuitBreaker:
        if service_name not in self._breakers:
            self._breakers[service_name] = CircuitBreaker(service_name, self.config, self._clock)
        return self._breakers[service_name]

    def get_service_health(self) -> Dict[str, Any]:
        """Get health status of all registered dependencies"""
        return {name: breaker.get_state_info() for name, breaker in self._breakers.items()}

    def reset(self, service_name: str) -> bool:
        if service_name in self._breakers:
            self._breakers[service_name].reset()
            return True
        return False


def create_circuit_breaker(
    service_name: str,
    failure_rate_threshold: float = 0.5,
    window_seconds: float = 60.0,
    reset_interval: float = 30.0
) -> CircuitBreaker:
    """Factory function to create CircuitBreaker with custom configuration"""
    config = CircuitBreakerConfig(
        failure_rate_threshold=failure_rate_threshold,
        window_seconds=window_seconds,
        reset_interval=reset_interval
    )
    return CircuitBreaker(service_name, config)

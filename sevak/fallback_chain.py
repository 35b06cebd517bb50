"""
Multi-level fallback chain for answering a query

Strategies are tried in order and the first one meeting its acceptance floor
wins:
1. model_with_context - retrieval plus model inference behind the circuit breaker
2. lexical_match - keyword-overlap search over the knowledge store
3. default_response - localized canned answer, cannot fail

Every strategy runs under its own timeout, and any exception inside a strategy
counts as a failed attempt rather than an error for the caller.
"""

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from . import messages
from .circuit_breaker import CircuitBreaker
from .error_handling import CircuitBreakerOpenError, describe_error, with_timeout
from .inference import InferenceGateway
from .lexical_matcher import LexicalMatcher
from .models import FallbackAttemptResult, RequestContext, ResponseMode
from .retrieval import RetrievalEngine

logger = logging.getLogger(__name__)

STRATEGY_MODEL = "model_with_context"
STRATEGY_LEXICAL = "lexical_match"
STRATEGY_DEFAULT = "default_response"


@dataclass
class FallbackConfig:
    """Acceptance floors and per-strategy budgets"""
    model_confidence_floor: float = 0.7  # Model answers must exceed this
    lexical_score_floor: float = 0.7  # Lexical matches must reach this
    retrieval_timeout: float = 2.0  # Embedding and search, outside the breaker
    inference_timeout: float = 5.0  # Model call, inside the breaker
    lexical_timeout: float = 2.0
    retrieval_k: int = 5
    retrieval_min_similarity: float = 0.7


class FallbackChain:
    """Ordered answer strategies with acceptance floors"""

    def __init__(
        self,
        retrieval_engine: RetrievalEngine,
        inference_gateway: InferenceGateway,
        lexical_matcher: LexicalMatcher,
        breaker: CircuitBreaker,
        config: Optional[FallbackConfig] = None,
        clock: Callable[[], float] = time.monotonic
    ):
        self.retrieval_engine = retrieval_engine
        self.inference_gateway = inference_gateway
        self.lexical_matcher = lexical_matcher
        self.breaker = breaker
        self.config = config or FallbackConfig()
        self._clock = clock

        self.stats = {
            'total_resolutions': 0,
            'model_accepted': 0,
            'model_failed': 0,
            'model_below_floor': 0,
            'circuit_open': 0,
            'lexical_accepted': 0,
            'lexical_failed': 0,
            'lexical_below_floor': 0,
            'default_used': 0
        }

    async def resolve(
        self,
        query: str,
        language: str,
        context: Optional[RequestContext] = None
    ) -> FallbackAttemptResult:
        """Return exactly one answer for the query"""
        self.stats['total_resolutions'] += 1

        result = await self._try_model(query, language, context)
        if result is None:
            result = await self._try_lexical(query, language, context)
        if result is None:
            result = self._default(language, context)

        if context is not None:
            context.set_response_mode(result.mode)
            context.response_text = result.text
            context.response_confidence = result.confidence

        return result

    async def _try_model(
        self,
        query: str,
        language: str,
        context: Optional[RequestContext]
    ) -> Optional[FallbackAttemptResult]:
        start = self._clock()
        try:
            retrieved = await with_timeout(
                lambda: self.retrieval_engine.retrieve_context(
                    query, language, self.config.retrieval_k, self.config.retrieval_min_similarity
                ),
                self.config.retrieval_timeout,
                "retrieval"
            )

            # The breaker sees only the inference call and its own timeout
            inference = await self.breaker.call(
                lambda: with_timeout(
                    lambda: self.inference_gateway.generate(query, language, retrieved.entries),
                    self.config.inference_timeout,
                    "inference"
                )
            )
        except CircuitBreakerOpenError:
            self.stats['circuit_open'] += 1
            self._record_timing(context, STRATEGY_MODEL, start)
            logger.info(f"Model strategy skipped: circuit {self.breaker.state.value}, falling back")
            return None
        except Exception as e:
            self.stats['model_failed'] += 1
            self._record_timing(context, STRATEGY_MODEL, start)
            logger.warning(f"Model strategy failed ({describe_error(e)}), falling back")
            return None

        elapsed = self._record_timing(context, STRATEGY_MODEL, start)
        if inference.confidence <= self.config.model_confidence_floor:
            self.stats['model_below_floor'] += 1
            logger.info(
                f"Model confidence {inference.confidence:.2f} not above floor "
                f"{self.config.model_confidence_floor:.2f}, falling back"
            )
            return None

        self.stats['model_accepted'] += 1
        return FallbackAttemptResult(
            text=inference.text,
            mode=ResponseMode.ONLINE,
            confidence=inference.confidence,
            elapsed=elapsed,
            strategy=STRATEGY_MODEL,
            sources=list(inference.sources)
        )

    async def _try_lexical(
        self,
        query: str,
        language: str,
        context: Optional[RequestContext]
    ) -> Optional[FallbackAttemptResult]:
        start = self._clock()
        try:
            match = await with_timeout(
                lambda: self.lexical_matcher.search(query, language),
                self.config.lexical_timeout,
                "lexical_search"
            )
        except Exception as e:
            self.stats['lexical_failed'] += 1
            self._record_timing(context, STRATEGY_LEXICAL, start)
            logger.warning(f"Lexical strategy failed ({describe_error(e)}), using default response")
            return None

        elapsed = self._record_timing(context, STRATEGY_LEXICAL, start)
        if match is None or match.score < self.config.lexical_score_floor:
            self.stats['lexical_below_floor'] += 1
            score = match.score if match else 0.0
            logger.info(f"Lexical score {score:.2f} below floor, using default response")
            return None

        self.stats['lexical_accepted'] += 1
        return FallbackAttemptResult(
            text=match.entry.answer,
            mode=ResponseMode.OFFLINE,
            confidence=match.score,
            elapsed=elapsed,
            strategy=STRATEGY_LEXICAL,
            sources=[match.entry.entry_id]
        )

    def _default(self, language: str, context: Optional[RequestContext]) -> FallbackAttemptResult:
        start = self._clock()
        self.stats['default_used'] += 1
        text = messages.default_response(language)
        return FallbackAttemptResult(
            text=text,
            mode=ResponseMode.OFFLINE,
            confidence=0.0,
            elapsed=self._record_timing(context, STRATEGY_DEFAULT, start),
            strategy=STRATEGY_DEFAULT
        )

    def _record_timing(self, context: Optional[RequestContext], strategy: str, start: float) -> float:
        elapsed = self._clock() - start
        if context is not None:
            context.record_timing(f"resolving.{strategy}", elapsed)
        return elapsed

    def get_stats(self) -> Dict[str, Any]:
        return {
            'chain': self.stats.copy(),
            'breaker': self.breaker.get_state_info()
        }

"""
Inference Gateway for grounded answers

Builds a prompt from retrieved knowledge entries and routes it to a fast or
deep model based on simple complexity indicators:
- English and Hindi complexity keywords select the deep model
- Prompt carries the answer language and numbered Q/A context lines
- OpenAI chat completions over a pooled httpx client

Model answers carry a fixed confidence since providers expose none.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

import httpx
from openai import AsyncOpenAI

from .error_handling import InferenceError
from .interfaces import InferenceService
from .models import LANGUAGE_NAMES, KnowledgeEntry

logger = logging.getLogger(__name__)

# Providers return no calibrated confidence for completions
MODEL_CONFIDENCE = 0.9

COMPLEXITY_INDICATORS = (
    'eligibility', 'calculate', 'compare', 'explain why', 'how does',
    'पात्रता', 'गणना', 'तुलना', 'क्यों', 'कैसे',
)


class QueryComplexity(Enum):
    """Enum for query complexity levels"""
    SIMPLE = "simple"
    COMPLEX = "complex"


@dataclass
class InferenceConfig:
    """Model routing and generation settings"""
    fast_model: str = "gpt-4o-mini"
    deep_model: str = "gpt-4o"
    max_tokens: int = 500
    temperature: float = 0.3
    timeout: float = 5.0
    model_confidence: float = MODEL_CONFIDENCE
    assistant_name: str = "Sevak"
    connection_timeout: float = 5.0
    max_connections: int = 20
    max_keepalive_connections: int = 5


@dataclass
class InferenceResult:
    text: str
    model: str
    confidence: float
    sources: List[str] = field(default_factory=list)


def classify_query(query: str) -> QueryComplexity:
    query_lower = query.lower()
    if any(indicator in query_lower for indicator in COMPLEXITY_INDICATORS):
        return QueryComplexity.COMPLEX
    return QueryComplexity.SIMPLE


def build_prompt(
    query: str,
    language: str,
    context_entries: Sequence[KnowledgeEntry],
    assistant_name: str = "Sevak"
) -> str:
    """Prompt with the answer language and numbered Q/A context lines"""
    language_name = LANGUAGE_NAMES.get(language, language)
    prompt = (
        f"You are {assistant_name}, a helpful assistant for Indian government schemes and services. "
        f"Respond in {language_name} language.\n\n"
    )

    if context_entries:
        prompt += "Relevant information:\n"
        for index, entry in enumerate(context_entries, 1):
            prompt += f"{index}. Q: {entry.question}\n   A: {entry.answer}\n"
        prompt += "\n"

    prompt += f"User question: {query}\n\n"
    prompt += "Provide a helpful, accurate response based on the information above."
    return prompt


class InferenceGateway:
    """Stateless prompt construction and model selection over an inference service"""

    def __init__(self, inference_service: InferenceService, config: Optional[InferenceConfig] = None):
        self.inference_service = inference_service
        self.config = config or InferenceConfig()

        self.stats = {
            'total_requests': 0,
            'successful_requests': 0,
            'failed_requests': 0,
            'model_usage': {},
            'total_response_time': 0.0
        }

    def select_model(self, query: str) -> str:
        if classify_query(query) == QueryComplexity.COMPLEX:
            return self.config.deep_model
        return self.config.fast_model

    async def generate(
        self,
        query: str,
        language: str,
        context_entries: Sequence[KnowledgeEntry] = ()
    ) -> InferenceResult:
        """Generate an answer grounded in the given entries"""
        self.stats['total_requests'] += 1
        start_time = time.time()

        model = self.select_model(query)
        prompt = build_prompt(query, language, context_entries, self.config.assistant_name)

        try:
            text = await self.inference_service.complete(prompt, self.config.max_tokens, model)
        except InferenceError:
            self.stats['failed_requests'] += 1
            raise
        except Exception as e:
            self.stats['failed_requests'] += 1
            raise InferenceError(f"Inference with {model} failed: {e}", original_exception=e) from e

        if not text or not text.strip():
            self.stats['failed_requests'] += 1
            raise InferenceError(f"Model {model} returned an empty response")

        response_time = time.time() - start_time
        self.stats['successful_requests'] += 1
        self.stats['total_response_time'] += response_time
        self.stats['model_usage'][model] = self.stats['model_usage'].get(model, 0) + 1
        logger.debug(f"{model} answered in {response_time:.2f}s with {len(context_entries)} context entries")

        return InferenceResult(
            text=text.strip(),
            model=model,
            confidence=self.config.model_confidence,
            sources=[entry.entry_id for entry in context_entries]
        )

    def get_stats(self) -> Dict[str, Any]:
        return {**self.stats, 'model_usage': dict(self.stats['model_usage'])}


class OpenAIInferenceService:
    """Chat completion service backed by the OpenAI API"""

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        config: Optional[InferenceConfig] = None,
        organization: Optional[str] = None,
        client: Optional[AsyncOpenAI] = None
    ):
        self.config = config or InferenceConfig()
        self.client = client or self._initialize_client(api_key, base_url, organization)

    def _initialize_client(self, api_key, base_url, organization) -> AsyncOpenAI:
        """Create the OpenAI client with connection pooling and timeouts"""
        http_client = httpx.AsyncClient(
            timeout=httpx.Timeout(
                connect=self.config.connection_timeout,
                read=self.config.timeout,
                write=self.config.connection_timeout,
                pool=self.config.connection_timeout
            ),
            limits=httpx.Limits(
                max_connections=self.config.max_connections,
                max_keepalive_connections=self.config.max_keepalive_connections
            )
        )
        return AsyncOpenAI(
            api_key=api_key,
            organization=organization,
            base_url=base_url,
            http_client=http_client
        )

    async def complete(self, prompt: str, max_tokens: int, model: Optional[str] = None) -> str:
        model = model or self.config.fast_model
        try:
            response = await asyncio.wait_for(
                self.client.chat.completions.create(
                    model=model,
                    messages=[{"role": "user", "content": prompt}],
                    max_tokens=max_tokens,
                    temperature=self.config.temperature
                ),
                timeout=self.config.timeout
            )
        except asyncio.TimeoutError as e:
            raise InferenceError(f"{model} timed out after {self.config.timeout:.1f}s", original_exception=e) from e
        except Exception as e:
            raise InferenceError(f"OpenAI completion with {model} failed: {e}", original_exception=e) from e

        if not response.choices:
            raise InferenceError(f"{model} returned no choices")
        return response.choices[0].message.content or ""

    async def cleanup(self) -> None:
        """Clean up resources"""
        try:
            await self.client.close()
            logger.info("Inference client closed")
        except Exception as e:
            logger.warning(f"Error during inference client cleanup: {e}")

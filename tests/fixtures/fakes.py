"""
Shared test doubles for the Sevak test suite

Provides:
- A manually advanced clock whose sleep moves time forward
- Deterministic embedding, inference, transcription and synthesis services
- Knowledge entries for the PM-KISAN scenarios
"""

import asyncio
from typing import Dict, List, Optional, Sequence, Tuple

from sevak.circuit_breaker import CircuitBreaker, CircuitBreakerConfig
from sevak.delivery import RecordingDeliveryChannel
from sevak.error_handling import InferenceError, SynthesisError, TranscriptionError
from sevak.fallback_chain import FallbackChain
from sevak.inference import InferenceGateway
from sevak.knowledge_store import InMemoryKnowledgeStore, InMemoryPreferenceStore
from sevak.language_detector import LanguageDetector
from sevak.lexical_matcher import LexicalMatcher
from sevak.metrics import InMemoryMetrics
from sevak.models import AudioResult, KnowledgeEntry, TranscriptionResult
from sevak.orchestrator import RequestOrchestrator
from sevak.retrieval import create_retrieval_engine


class FakeClock:
    """Monotonic clock advanced by hand or by awaiting sleep()"""

    def __init__(self, start: float = 1000.0):
        self.now = start
        self.sleeps: List[float] = []

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds

    async def sleep(self, seconds: float):
        self.sleeps.append(seconds)
        self.now += seconds


class FakeEmbeddingService:
    """Returns fixed vectors per text and counts calls"""

    def __init__(self, vectors: Optional[Dict[str, Sequence[float]]] = None,
                 default: Sequence[float] = (1.0, 0.0)):
        self.vectors = dict(vectors or {})
        self.default = tuple(default)
        self.calls: List[str] = []

    async def embed(self, text: str) -> Sequence[float]:
        self.calls.append(text)
        return self.vectors.get(text, self.default)


class SlowEmbeddingService(FakeEmbeddingService):
    """Embeds after a real delay, for timeout tests"""

    def __init__(self, delay: float, vectors: Optional[Dict[str, Sequence[float]]] = None):
        super().__init__(vectors)
        self.delay = delay

    async def embed(self, text: str) -> Sequence[float]:
        await asyncio.sleep(self.delay)
        return await super().embed(text)


class FakeInferenceService:
    """Answers every prompt with a fixed text, or fails when told to"""

    def __init__(self, answer: str = "Model answer", fail: bool = False):
        self.answer = answer
        self.fail = fail
        self.prompts: List[Tuple[str, Optional[str]]] = []

    async def complete(self, prompt: str, max_tokens: int, model: Optional[str] = None) -> str:
        self.prompts.append((prompt, model))
        if self.fail:
            raise InferenceError("upstream returned 503")
        return self.answer

    @property
    def calls(self) -> int:
        return len(self.prompts)


class FakeTranscriptionService:
    def __init__(self, text: str = "", fail: bool = False, language: str = "hi"):
        self.text = text
        self.fail = fail
        self.language = language
        self.calls: List[Tuple[str, Optional[str]]] = []

    async def transcribe(self, audio_ref: str, language_hint: Optional[str]) -> TranscriptionResult:
        self.calls.append((audio_ref, language_hint))
        if self.fail:
            raise TranscriptionError("Transcription failed after 2 attempts", attempts=2)
        return TranscriptionResult(text=self.text, confidence=0.9, language=self.language)


class FakeSynthesisService:
    def __init__(self, fail: bool = False, audio_ref: str = "/tmp/sevak-reply.opus"):
        self.fail = fail
        self.audio_ref = audio_ref
        self.calls: List[Tuple[str, str]] = []

    async def synthesize(self, text: str, language: str) -> AudioResult:
        self.calls.append((text, language))
        if self.fail:
            raise SynthesisError("TTS unavailable")
        return AudioResult(audio_ref=self.audio_ref, duration=2.0, format="opus", expires_at=0.0)


def make_entry(entry_id: str, question: str, answer: str, language: str = "en",
               embedding: Sequence[float] = (), category: str = "agriculture") -> KnowledgeEntry:
    return KnowledgeEntry(
        entry_id=entry_id,
        question=question,
        answer=answer,
        category=category,
        language=language,
        embedding=tuple(embedding)
    )


# Unit vectors chosen so the query (1, 0) scores 0.81 and 0.75 against the
# first two entries and well below 0.7 against the third.
PM_KISAN_QUERY = "What is PM-KISAN?"
PM_KISAN_QUERY_VECTOR = (1.0, 0.0)


def _unit(cosine: float) -> Tuple[float, float]:
    return (cosine, (1.0 - cosine ** 2) ** 0.5)


def pm_kisan_entries() -> List[KnowledgeEntry]:
    return [
        make_entry("pm-kisan-1", "What is PM-KISAN?",
                   "PM-KISAN gives eligible farmer families Rs 6000 a year.", embedding=_unit(0.81)),
        make_entry("pm-kisan-2", "Who is eligible for PM-KISAN?",
                   "All landholding farmer families are eligible.", embedding=_unit(0.75)),
        make_entry("ration-1", "How do I apply for a ration card?",
                   "Apply at the state food department portal.", embedding=_unit(0.2)),
    ]


def make_orchestrator(
    clock: FakeClock,
    inference=None,
    transcription=None,
    synthesis=None,
    channel=None,
    preferences=None,
    entries=None,
    metrics=None,
    orchestrator_config=None
):
    """RequestOrchestrator wired to in-memory services and a fake clock"""
    store = InMemoryKnowledgeStore(entries if entries is not None else pm_kisan_entries())
    embeddings = FakeEmbeddingService({PM_KISAN_QUERY: PM_KISAN_QUERY_VECTOR})
    breaker = CircuitBreaker(
        "inference",
        CircuitBreakerConfig(failure_rate_threshold=0.5, window_seconds=2.0, reset_interval=30.0),
        clock
    )
    chain = FallbackChain(
        retrieval_engine=create_retrieval_engine(embeddings, store, clock=clock),
        inference_gateway=InferenceGateway(inference or FakeInferenceService()),
        lexical_matcher=LexicalMatcher(store),
        breaker=breaker,
        clock=clock
    )
    return RequestOrchestrator(
        transcription=transcription,
        synthesis=synthesis,
        language_detector=LanguageDetector(preferences or InMemoryPreferenceStore()),
        fallback_chain=chain,
        delivery=channel or RecordingDeliveryChannel(),
        metrics=metrics or InMemoryMetrics(),
        config=orchestrator_config,
        clock=clock,
        sleep=clock.sleep
    )

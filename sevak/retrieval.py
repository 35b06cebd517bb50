"""
Sevak Retrieval Engine

Semantic FAQ retrieval for context injection into model calls:
- Query embeddings cached in-process with a time-to-live
- Cosine similarity ranking over entries in the request language
- Similarity floor and result cap applied before returning

Uses the OpenAI embeddings API for vectors and numpy for similarity.
"""

import hashlib
import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence, Tuple

import numpy as np
from openai import AsyncOpenAI

from .error_handling import EmbeddingError
from .interfaces import EmbeddingService, KnowledgeStore
from .models import KnowledgeEntry

logger = logging.getLogger(__name__)


@dataclass
class RetrievalConfig:
    """Configuration for the retrieval engine"""
    embedding_model: str = "text-embedding-3-small"
    retrieval_k: int = 5
    min_similarity: float = 0.7
    cache_ttl_seconds: float = 3600.0


@dataclass
class ScoredEntry:
    entry: KnowledgeEntry
    score: float


@dataclass
class ContextResult:
    """Entries retrieved for a query, best first"""
    entries: List[KnowledgeEntry] = field(default_factory=list)
    scores: List[float] = field(default_factory=list)
    retrieval_time: float = 0.0


@dataclass
class EmbeddingCacheEntry:
    key: str
    vector: Tuple[float, ...]
    inserted_at: float


class EmbeddingCache:
    """
    In-process embedding cache keyed by SHA-256 of the text.

    Expired entries are evicted lazily when read. The cache never performs
    I/O, and reads and writes happen without an intervening await, so it is
    safe to share between concurrent requests on one event loop.
    """

    def __init__(self, ttl_seconds: float = 3600.0, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: Dict[str, EmbeddingCacheEntry] = {}

    @staticmethod
    def make_key(text: str) -> str:
        return hashlib.sha256(text.encode('utf-8')).hexdigest()

    def get(self, text: str) -> Optional[Tuple[float, ...]]:
        key = self.make_key(text)
        cached = self._entries.get(key)
        if cached is None:
            return None

        if self._clock() - cached.inserted_at > self.ttl_seconds:
            del self._entries[key]
            return None

        return cached.vector

    def set(self, text: str, vector: Sequence[float]):
        key = self.make_key(text)
        self._entries[key] = EmbeddingCacheEntry(key, tuple(vector), self._clock())

    def clear(self):
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine similarity of two equal-length vectors; 0.0 when either norm is zero"""
    if len(a) != len(b):
        raise ValueError(f"Vectors must have the same length ({len(a)} != {len(b)})")

    va = np.asarray(a, dtype=float)
    vb = np.asarray(b, dtype=float)
    norm_a = np.linalg.norm(va)
    norm_b = np.linalg.norm(vb)
    if norm_a == 0 or norm_b == 0:
        return 0.0

    return float(np.dot(va, vb) / (norm_a * norm_b))


class RetrievalEngine:
    """Embedding similarity search over the knowledge store"""

    def __init__(
        self,
        embedding_service: EmbeddingService,
        knowledge_store: KnowledgeStore,
        cache: Optional[EmbeddingCache] = None,
        config: Optional[RetrievalConfig] = None
    ):
        self.embedding_service = embedding_service
        self.knowledge_store = knowledge_store
        self.config = config or RetrievalConfig()
        self.cache = cache if cache is not None else EmbeddingCache(self.config.cache_ttl_seconds)

        self.stats = {
            'embeddings_requested': 0,
            'cache_hits': 0,
            'cache_misses': 0,
            'searches': 0
        }

    async def embed(self, text: str) -> Tuple[float, ...]:
        """Embedding for text, served from cache when fresh"""
        self.stats['embeddings_requested'] += 1

        cached = self.cache.get(text)
        if cached is not None:
            self.stats['cache_hits'] += 1
            return cached

        self.stats['cache_misses'] += 1
        try:
            vector = await self.embedding_service.embed(text)
        except EmbeddingError:
            raise
        except Exception as e:
            raise EmbeddingError(f"Embedding failed: {e}", original_exception=e) from e

        self.cache.set(text, vector)
        return tuple(vector)

    async def search(
        self,
        vector: Sequence[float],
        language: str,
        k: Optional[int] = None,
        min_similarity: Optional[float] = None
    ) -> List[ScoredEntry]:
        """Entries scoring at least min_similarity, best first, at most k"""
        k = self.config.retrieval_k if k is None else k
        min_similarity = self.config.min_similarity if min_similarity is None else min_similarity
        self.stats['searches'] += 1

        entries = await self.knowledge_store.entries_by_language(language)

        scored = []
        for entry in entries:
            if not entry.embedding:
                continue
            score = cosine_similarity(vector, entry.embedding)
            if score >= min_similarity:
                scored.append(ScoredEntry(entry, score))

        scored.sort(key=lambda s: (-s.score, s.entry.entry_id))
        return scored[:max(k, 0)]

    async def retrieve_context(
        self,
        query: str,
        language: str,
        k: Optional[int] = None,
        min_similarity: Optional[float] = None
    ) -> ContextResult:
        """Retrieve relevant knowledge entries for a query"""
        start_time = time.time()

        vector = await self.embed(query)
        results = await self.search(vector, language, k, min_similarity)

        retrieval_time = time.time() - start_time
        logger.debug(f"Retrieved {len(results)} entries for '{query[:50]}' in {retrieval_time:.3f}s")

        return ContextResult(
            entries=[r.entry for r in results],
            scores=[r.score for r in results],
            retrieval_time=retrieval_time
        )

    def get_stats(self):
        return {**self.stats, 'cache_size': len(self.cache)}


class OpenAIEmbeddingService:
    """Embedding service backed by the OpenAI embeddings API"""

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = "text-embedding-3-small",
        base_url: Optional[str] = None,
        client: Optional[AsyncOpenAI] = None
    ):
        self.model = model
        self.client = client or AsyncOpenAI(api_key=api_key, base_url=base_url)

    async def embed(self, text: str) -> List[float]:
        try:
            response = await self.client.embeddings.create(model=self.model, input=text)
        except Exception as e:
            raise EmbeddingError(f"OpenAI embedding request failed: {e}", original_exception=e) from e

        if not response.data:
            raise EmbeddingError("OpenAI embedding response contained no vectors")
        return list(response.data[0].embedding)


def create_retrieval_engine(
    embedding_service: EmbeddingService,
    knowledge_store: KnowledgeStore,
    config: Optional[RetrievalConfig] = None,
    clock: Callable[[], float] = time.monotonic
) -> RetrievalEngine:
    """Factory function to create a RetrievalEngine with its own cache"""
    config = config or RetrievalConfig()
    cache = EmbeddingCache(config.cache_ttl_seconds, clock)
    return RetrievalEngine(embedding_service, knowledge_store, cache, config)

"""
Tests for the retrieval engine

Tests cover:
- Cosine similarity edge cases
- Embedding cache hits, misses and TTL expiry
- Search ordering, similarity floor and result cap
- Embedding failures surfacing as EmbeddingError
"""

import pytest
from unittest.mock import AsyncMock

from sevak.error_handling import EmbeddingError
from sevak.knowledge_store import InMemoryKnowledgeStore
from sevak.retrieval import (
    EmbeddingCache, RetrievalConfig, RetrievalEngine, cosine_similarity, create_retrieval_engine
)

from tests.fixtures.fakes import (
    FakeClock, FakeEmbeddingService, PM_KISAN_QUERY, PM_KISAN_QUERY_VECTOR, make_entry, pm_kisan_entries
)


class TestCosineSimilarity:
    """Test cosine similarity"""

    def test_identical_vectors(self):
        """Identical vectors score 1"""
        assert cosine_similarity([1.0, 2.0, 3.0], [1.0, 2.0, 3.0]) == pytest.approx(1.0)

    def test_orthogonal_vectors(self):
        """Orthogonal vectors score 0"""
        assert cosine_similarity([1.0, 0.0], [0.0, 1.0]) == pytest.approx(0.0)

    def test_zero_vector(self):
        """A zero vector scores 0 instead of NaN"""
        assert cosine_similarity([0.0, 0.0], [1.0, 1.0]) == 0.0

    def test_length_mismatch(self):
        """Vectors of different length are rejected"""
        with pytest.raises(ValueError):
            cosine_similarity([1.0], [1.0, 0.0])


class TestEmbeddingCache:
    """Test the TTL cache"""

    def test_get_within_ttl(self):
        """Entries are served until the TTL passes"""
        clock = FakeClock()
        cache = EmbeddingCache(ttl_seconds=3600, clock=clock)
        cache.set("hello", [0.1, 0.2])

        clock.advance(3600)
        assert cache.get("hello") == (0.1, 0.2)

    def test_expired_entry_is_evicted(self):
        """Reading an expired entry removes it"""
        clock = FakeClock()
        cache = EmbeddingCache(ttl_seconds=3600, clock=clock)
        cache.set("hello", [0.1, 0.2])

        clock.advance(3601)
        assert cache.get("hello") is None
        assert len(cache) == 0

    def test_key_is_sha256_of_text(self):
        """Keys are 64-char hex digests"""
        key = EmbeddingCache.make_key("पीएम किसान")
        assert len(key) == 64
        assert key == EmbeddingCache.make_key("पीएम किसान")


class TestRetrievalEngine:
    """Test retrieval over the knowledge store"""

    def _engine(self, clock=None, entries=None):
        embeddings = FakeEmbeddingService({PM_KISAN_QUERY: PM_KISAN_QUERY_VECTOR})
        store = InMemoryKnowledgeStore(entries if entries is not None else pm_kisan_entries())
        engine = create_retrieval_engine(embeddings, store, RetrievalConfig(), clock or FakeClock())
        return engine, embeddings

    @pytest.mark.asyncio
    async def test_retrieve_context_filters_and_orders(self):
        """Only entries at or above the floor are returned, best first"""
        engine, _ = self._engine()

        result = await engine.retrieve_context(PM_KISAN_QUERY, "en")

        assert [e.entry_id for e in result.entries] == ["pm-kisan-1", "pm-kisan-2"]
        assert result.scores == [pytest.approx(0.81), pytest.approx(0.75)]

    @pytest.mark.asyncio
    async def test_never_returns_more_than_k(self):
        """Results are capped at k"""
        entries = [make_entry(f"e{i}", f"q{i}", f"a{i}", embedding=(1.0, 0.0)) for i in range(8)]
        engine, _ = self._engine(entries=entries)

        result = await engine.retrieve_context(PM_KISAN_QUERY, "en", k=3, min_similarity=0.7)

        assert len(result.entries) == 3
        assert all(score >= 0.7 for score in result.scores)

    @pytest.mark.asyncio
    async def test_ties_broken_by_entry_id(self):
        """Equal scores keep a stable order"""
        entries = [make_entry(i, "q", "a", embedding=(1.0, 0.0)) for i in ("b", "c", "a")]
        engine, _ = self._engine(entries=entries)

        result = await engine.retrieve_context(PM_KISAN_QUERY, "en")

        assert [e.entry_id for e in result.entries] == ["a", "b", "c"]

    @pytest.mark.asyncio
    async def test_other_languages_and_missing_embeddings_ignored(self):
        """Entries in another language or without a vector are skipped"""
        entries = [
            make_entry("hi-1", "q", "a", language="hi", embedding=(1.0, 0.0)),
            make_entry("en-no-vector", "q", "a"),
            make_entry("en-1", "q", "a", embedding=(1.0, 0.0)),
        ]
        engine, _ = self._engine(entries=entries)

        result = await engine.retrieve_context(PM_KISAN_QUERY, "en")

        assert [e.entry_id for e in result.entries] == ["en-1"]

    @pytest.mark.asyncio
    async def test_cache_avoids_second_embedding_call(self):
        """The same text twice within the TTL embeds once"""
        clock = FakeClock()
        engine, embeddings = self._engine(clock)

        await engine.retrieve_context(PM_KISAN_QUERY, "en")
        clock.advance(1800)
        await engine.retrieve_context(PM_KISAN_QUERY, "en")

        assert embeddings.calls == [PM_KISAN_QUERY]
        assert engine.get_stats()['cache_hits'] == 1

    @pytest.mark.asyncio
    async def test_cache_expiry_triggers_new_call(self):
        """After the TTL the embedding service is called again"""
        clock = FakeClock()
        engine, embeddings = self._engine(clock)

        await engine.retrieve_context(PM_KISAN_QUERY, "en")
        clock.advance(3601)
        await engine.retrieve_context(PM_KISAN_QUERY, "en")

        assert len(embeddings.calls) == 2

    @pytest.mark.asyncio
    async def test_embedding_failure_raises_embedding_error(self):
        """Unexpected embedding failures are wrapped"""
        service = AsyncMock()
        service.embed.side_effect = ConnectionError("reset by peer")
        engine = RetrievalEngine(service, InMemoryKnowledgeStore(pm_kisan_entries()))

        with pytest.raises(EmbeddingError):
            await engine.retrieve_context(PM_KISAN_QUERY, "en")

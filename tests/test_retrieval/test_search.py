"""Tests for retrieval search: in-memory store, table-driven embeddings, no API calls."""

import pytest

from docintel.errors import ScopeViolationError, VectorStoreError
from docintel.indexing.embeddings import EmbeddingClient
from docintel.models.document import DocumentChunk
from docintel.models.knowledge import KnowledgeEntry
from docintel.models.result import FragmentSource, RetrievalResult
from docintel.retrieval.search import VectorRetriever

from conftest import QUERY_VECTOR, ProviderHTTPError, TableEmbeddings, unit_vector_at

QUESTION = "What does a 70% PTSD rating mean?"


@pytest.fixture
def query_embeddings():
    return TableEmbeddings(vectors={QUESTION: QUERY_VECTOR})


@pytest.fixture
def retriever(embedding_config, query_embeddings, store, retriever_config):
    return VectorRetriever(EmbeddingClient(embedding_config, model=query_embeddings), store, retriever_config)


def add_chunk(store, retriever, similarity, owner="user-1", content=None, axis=1):
    chunk = DocumentChunk(
        document_id="doc-1",
        owner_id=owner,
        chunk_index=0,
        total_chunks=1,
        content=content or f"chunk at {similarity}",
        embedding=unit_vector_at(similarity, axis=axis),
        embedding_model=retriever._embedder.model_id,
    )
    store.upsert_chunk(chunk)
    return chunk


def add_entry(store, retriever, similarity, owner=None, title="VA Disability Ratings"):
    entry = KnowledgeEntry(
        title=title,
        content=f"{title} explained",
        embedding=unit_vector_at(similarity),
        embedding_model=retriever._embedder.model_id,
        owner_id=owner,
    )
    store.upsert_knowledge_entry(entry)
    return entry


class TestVectorRetriever:

    @pytest.mark.asyncio
    async def test_returns_only_relevant_chunk(self, retriever, store):
        relevant = add_chunk(store, retriever, 0.91, content="PTSD is rated 70% when ...")
        add_chunk(store, retriever, 0.40, content="Directions to the regional office", axis=2)

        result = await retriever.retrieve(QUESTION, "user-1", include_global=False)

        assert isinstance(result, RetrievalResult)
        assert [f.reference_id for f in result.fragments] == [relevant.id]
        fragment = result.fragments[0]
        assert fragment.source == FragmentSource.DOCUMENT
        assert fragment.document_id == "doc-1"
        assert fragment.score == pytest.approx(0.91)
        assert result.query_used == QUESTION
        assert not result.degraded

    @pytest.mark.asyncio
    async def test_knowledge_has_its_own_threshold(self, retriever, store):
        """0.79 clears the document threshold (0.78) but not the knowledge one (0.80)."""
        add_entry(store, retriever, 0.79, title="Too weak")
        strong = add_entry(store, retriever, 0.85, title="Strong")

        result = await retriever.retrieve(QUESTION, "user-1")

        assert [f.reference_id for f in result.fragments] == [strong.id]
        assert result.fragments[0].source == FragmentSource.KNOWLEDGE
        assert result.fragments[0].title == "Strong"

    @pytest.mark.asyncio
    async def test_merged_by_raw_score(self, retriever, store):
        chunk = add_chunk(store, retriever, 0.82)
        entry = add_entry(store, retriever, 0.95)

        result = await retriever.retrieve(QUESTION, "user-1")

        assert [f.reference_id for f in result.fragments] == [entry.id, chunk.id]
        # Each fragment keeps the rank from its own scope
        assert [f.rank for f in result.fragments] == [1, 1]

    @pytest.mark.asyncio
    async def test_global_knowledge_can_be_excluded(self, retriever, store):
        add_entry(store, retriever, 0.95)
        result = await retriever.retrieve(QUESTION, "user-1", include_global=False)
        assert result.fragments == []

    @pytest.mark.asyncio
    async def test_other_owners_never_returned(self, retriever, store):
        add_chunk(store, retriever, 0.99, owner="user-2")
        add_entry(store, retriever, 0.99, owner="user-2")

        result = await retriever.retrieve(QUESTION, "user-1")

        assert result.fragments == []

    @pytest.mark.asyncio
    async def test_overrides(self, retriever, store):
        for similarity in (0.5, 0.6, 0.7):
            add_chunk(store, retriever, similarity)

        result = await retriever.retrieve(
            QUESTION, "user-1", include_global=False, top_k=2, document_threshold=0.4,
        )

        assert [round(f.score, 1) for f in result.fragments] == [0.7, 0.6]

    @pytest.mark.asyncio
    async def test_mixed_model_vectors_ignored(self, retriever, store):
        stale = DocumentChunk(
            document_id="doc-old", owner_id="user-1", chunk_index=0, total_chunks=1,
            content="embedded by the previous model", embedding=QUERY_VECTOR,
            embedding_model="openai/text-embedding-ada-002",
        )
        store.upsert_chunk(stale)

        result = await retriever.retrieve(QUESTION, "user-1")

        assert result.fragments == []


class TestFailOpen:

    @pytest.mark.asyncio
    async def test_embedding_outage_degrades(self, embedding_config, store, retriever_config):
        model = TableEmbeddings(failures={"PTSD": ProviderHTTPError(503)})
        retriever = VectorRetriever(EmbeddingClient(embedding_config, model=model), store, retriever_config)

        result = await retriever.retrieve(QUESTION, "user-1")

        assert result.fragments == []
        assert result.degraded

    @pytest.mark.asyncio
    async def test_store_failure_degrades_one_scope(self, retriever, store, monkeypatch):
        entry = add_entry(store, retriever, 0.9)
        original = store.search

        def flaky_search(vector, scope, threshold, top_k):
            if scope.target.value == "documents":
                raise VectorStoreError("index offline", operation="search")
            return original(vector, scope, threshold, top_k)

        monkeypatch.setattr(store, "search", flaky_search)

        result = await retriever.retrieve(QUESTION, "user-1")

        assert result.degraded
        assert [f.reference_id for f in result.fragments] == [entry.id]

    @pytest.mark.asyncio
    async def test_scope_violation_propagates(self, retriever, store, monkeypatch):
        leaked = add_chunk(store, retriever, 0.99, owner="user-2")
        monkeypatch.setattr(store, "_query", lambda vector, scope, top_k: [(leaked, 0.99)])

        with pytest.raises(ScopeViolationError):
            await retriever.retrieve(QUESTION, "user-1")

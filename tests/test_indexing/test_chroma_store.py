"""Tests for the Chroma backend, using an in-process ephemeral client."""

import uuid

import pytest

chromadb = pytest.importorskip("chromadb")

from docintel.config import VectorStoreConfig  # noqa: E402
from docintel.errors import VectorStoreError  # noqa: E402
from docintel.indexing.vectorstore import ChromaVectorStore  # noqa: E402
from docintel.models.document import DocumentChunk  # noqa: E402
from docintel.models.knowledge import KnowledgeEntry, KnowledgeMetadata  # noqa: E402
from docintel.models.result import SearchScope, SearchTarget  # noqa: E402

from conftest import DIMS, QUERY_VECTOR, unit_vector_at  # noqa: E402

MODEL = "openai/text-embedding-3-small"


@pytest.fixture
def chroma_store():
    """Fresh collections per test; ephemeral clients share state within a process."""
    suffix = uuid.uuid4().hex[:8]
    config = VectorStoreConfig(
        store_type="chroma",
        chunk_collection=f"chunks_{suffix}",
        knowledge_collection=f"knowledge_{suffix}",
    )
    return ChromaVectorStore(config, client=chromadb.EphemeralClient(), dimensions=DIMS)


def chunk(owner="user-1", index=0, similarity=0.9, document="doc-1"):
    return DocumentChunk(
        document_id=document,
        owner_id=owner,
        chunk_index=index,
        total_chunks=3,
        content=f"{owner} chunk {index}",
        embedding=unit_vector_at(similarity),
        embedding_model=MODEL,
    )


class TestChromaSearch:

    def test_threshold_and_owner(self, chroma_store):
        relevant = chunk(index=0, similarity=0.91)
        chroma_store.upsert_chunk(relevant)
        chroma_store.upsert_chunk(chunk(index=1, similarity=0.40))
        chroma_store.upsert_chunk(chunk(owner="user-2", index=0, similarity=0.99, document="doc-2"))

        scope = SearchScope(owner_id="user-1", target=SearchTarget.DOCUMENTS, embedding_model=MODEL)
        hits = chroma_store.search(QUERY_VECTOR, scope, threshold=0.78, top_k=5)

        assert [h.entity.id for h in hits] == [relevant.id]
        assert hits[0].score == pytest.approx(0.91, abs=1e-4)
        assert hits[0].entity.owner_id == "user-1"

    def test_global_knowledge_round_trips_metadata(self, chroma_store):
        entry = KnowledgeEntry(
            title="PACT Act",
            content="Toxic exposure presumptives.",
            embedding=unit_vector_at(0.95),
            embedding_model=MODEL,
            metadata=KnowledgeMetadata(tags=["toxic exposure"], extra={"region": "all"}),
        )
        chroma_store.upsert_knowledge_entry(entry)

        scope = SearchScope(
            owner_id="user-1", target=SearchTarget.KNOWLEDGE, include_global=True, embedding_model=MODEL,
        )
        hits = chroma_store.search(QUERY_VECTOR, scope, threshold=0.8, top_k=5)

        assert len(hits) == 1
        found = hits[0].entity
        assert found.is_global
        assert found.metadata.tags == ["toxic exposure"]
        assert found.metadata.extra == {"region": "all"}


class TestChromaWrites:

    def test_idempotent_upsert_and_delete(self, chroma_store):
        first = chunk(index=0)
        chroma_store.upsert_chunk(first)
        chroma_store.upsert_chunk(first)
        chroma_store.upsert_chunk(chunk(index=1))

        assert chroma_store.count_chunks("doc-1") == 2
        assert chroma_store.delete_document_chunks("doc-1") == 2
        assert chroma_store.get_chunks("doc-1") == []

    def test_conflicting_rewrite_rejected(self, chroma_store):
        original = chunk(similarity=0.9)
        chroma_store.upsert_chunk(original)

        with pytest.raises(VectorStoreError):
            chroma_store.upsert_chunk(original.model_copy(update={"content": "something else"}))

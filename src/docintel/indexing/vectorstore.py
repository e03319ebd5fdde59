"""
Vector store backends.

Two implementations of BaseVectorStore, chosen by VectorStoreConfig:

    memory  In-process store. Rows live in dicts guarded by a lock and are
            scored with numpy. Nothing persists; use it for tests and
            single-process deployments that re-ingest on start.
    chroma  Persistent Chroma collections (one for chunks, one for knowledge
            entries) using cosine space. Owner and embedding-model filters
            run inside Chroma through `where` clauses, and every returned
            row is still checked against the scope by the base class.

Writes are atomic per row in both backends: a search either sees a
complete row or none of it.

Usage:
    from docintel.indexing.vectorstore import create_vector_store
    from docintel.config import VectorStoreConfig

    store = create_vector_store(VectorStoreConfig())                # memory
    store = create_vector_store(VectorStoreConfig(
        store_type="chroma", persist_directory="./chroma_db",
    ))
    hits = store.search(query_vector, scope, threshold=0.78, top_k=5)
"""

import json
import logging
import threading
from datetime import datetime, timezone
from typing import Any, Optional, Sequence, Union

import numpy as np

from docintel.base.vectorstore import BaseVectorStore, Row
from docintel.config import VectorStoreConfig, VectorStoreType
from docintel.errors import VectorStoreError
from docintel.models.document import DocumentChunk
from docintel.models.knowledge import KnowledgeEntry, KnowledgeMetadata
from docintel.models.result import SearchScope, SearchTarget

logger = logging.getLogger(__name__)


def cosine_similarities(query: Sequence[float], matrix: Sequence[Sequence[float]]) -> np.ndarray:
    """
    Cosine similarity of query against every row of matrix.

    Zero vectors have no direction; their similarity is 0.
    """
    query = np.asarray(query, dtype=float)
    matrix = np.asarray(matrix, dtype=float)
    if matrix.size == 0:
        return np.zeros(0)
    norms = np.linalg.norm(matrix, axis=1) * np.linalg.norm(query)
    dots = matrix @ query
    with np.errstate(divide="ignore", invalid="ignore"):
        scores = np.where(norms > 0, dots / norms, 0.0)
    return np.clip(scores, -1.0, 1.0)


def _same_vector(a: Sequence[float], b: Sequence[float]) -> bool:
    if len(a) != len(b):
        return False
    # Chroma stores float32, so exact equality is too strict
    return bool(np.allclose(np.asarray(a, dtype=float), np.asarray(b, dtype=float), atol=1e-5))


def _conflict(row_id: str, operation: str) -> VectorStoreError:
    return VectorStoreError(
        f"Row {row_id} already exists with a different vector or content; "
        f"delete it before writing a new version",
        operation=operation,
        details={"row_id": row_id},
    )


# ---------------------------------------------------------------------------
# In-memory
# ---------------------------------------------------------------------------

class InMemoryVectorStore(BaseVectorStore):
    """
    Lock-guarded in-process vector store.

    Rows are copied on the way in so later changes to the caller's objects
    cannot alter what is stored.
    """

    def __init__(self, dimensions: Optional[int] = None):
        super().__init__(dimensions)
        self._chunks: dict[str, DocumentChunk] = {}
        self._entries: dict[str, KnowledgeEntry] = {}
        self._lock = threading.Lock()

    def _upsert_chunk(self, chunk: DocumentChunk) -> None:
        with self._lock:
            self._write(self._chunks, chunk, "upsert_chunk")

    def _upsert_knowledge_entry(self, entry: KnowledgeEntry) -> None:
        with self._lock:
            self._write(self._entries, entry, "upsert_knowledge_entry")

    def _write(self, table: dict, row: Row, operation: str) -> None:
        existing = table.get(row.id)
        if existing is None:
            table[row.id] = row.model_copy(deep=True)
            return
        if existing.content != row.content or not _same_vector(existing.embedding, row.embedding):
            raise _conflict(row.id, operation)
        logger.debug("Upsert of unchanged row %s ignored", row.id)

    def _query(
        self,
        query_vector: list[float],
        scope: SearchScope,
        top_k: int,
    ) -> list[tuple[Row, float]]:
        with self._lock:
            if scope.target == SearchTarget.DOCUMENTS:
                rows = [c for c in self._chunks.values() if c.owner_id == scope.owner_id]
            else:
                rows = [e for e in self._entries.values() if scope.allows(e.owner_id)]

        if scope.embedding_model is not None:
            rows = [r for r in rows if r.embedding_model == scope.embedding_model]
        if not rows:
            return []

        rows.sort(key=lambda r: r.created_at)
        scores = cosine_similarities(query_vector, [r.embedding for r in rows])
        return [(row.model_copy(), float(score)) for row, score in zip(rows, scores)]

    def delete_document_chunks(self, document_id: str) -> int:
        with self._lock:
            ids = [cid for cid, c in self._chunks.items() if c.document_id == document_id]
            for cid in ids:
                del self._chunks[cid]
        return len(ids)

    def delete_knowledge_entry(self, entry_id: str) -> bool:
        with self._lock:
            return self._entries.pop(entry_id, None) is not None

    def get_chunks(self, document_id: str) -> list[DocumentChunk]:
        with self._lock:
            chunks = [c.model_copy() for c in self._chunks.values() if c.document_id == document_id]
        return sorted(chunks, key=lambda c: c.chunk_index)

    def get_knowledge_entry(self, entry_id: str) -> Optional[KnowledgeEntry]:
        with self._lock:
            entry = self._entries.get(entry_id)
        return entry.model_copy() if entry else None


# ---------------------------------------------------------------------------
# Chroma
# ---------------------------------------------------------------------------

class ChromaVectorStore(BaseVectorStore):
    """
    Chroma-backed vector store.

    Chroma persists to disk automatically when persist_directory is set;
    without it an ephemeral in-process client is used. A preconfigured
    chromadb client (HTTP client, test client) can be injected instead.

    Metadata layout per row:
        chunks:    document_id, owner_id, chunk_index, total_chunks,
                   embedding_model, created_at (POSIX timestamp)
        knowledge: owner_id ("" for global), is_global, title,
                   embedding_model, created_at, metadata_json
    """

    def __init__(
        self,
        config: VectorStoreConfig,
        client: Any = None,
        dimensions: Optional[int] = None,
    ):
        super().__init__(dimensions)

        if client is None:
            try:
                import chromadb
            except ImportError:
                raise ImportError(
                    "The chroma vector store requires chromadb. "
                    "Install with: pip install chromadb"
                )

            if config.persist_directory:
                client = chromadb.PersistentClient(path=config.persist_directory)
            else:
                client = chromadb.EphemeralClient()

        self._client = client
        self._chunks = client.get_or_create_collection(
            name=config.chunk_collection,
            metadata={"hnsw:space": "cosine"},
        )
        self._entries = client.get_or_create_collection(
            name=config.knowledge_collection,
            metadata={"hnsw:space": "cosine"},
        )
        # Serializes check-then-add so concurrent upserts of one id stay idempotent
        self._lock = threading.Lock()

    # -- writes -----------------------------------------------------------

    def _upsert_chunk(self, chunk: DocumentChunk) -> None:
        metadata = {
            "document_id": chunk.document_id,
            "owner_id": chunk.owner_id,
            "chunk_index": chunk.chunk_index,
            "total_chunks": chunk.total_chunks,
            "embedding_model": chunk.embedding_model or "",
            "created_at": chunk.created_at.timestamp(),
        }
        self._write(self._chunks, chunk, metadata, "upsert_chunk")

    def _upsert_knowledge_entry(self, entry: KnowledgeEntry) -> None:
        metadata = {
            "owner_id": entry.owner_id or "",
            "is_global": entry.is_global,
            "title": entry.title,
            "embedding_model": entry.embedding_model or "",
            "created_at": entry.created_at.timestamp(),
            "metadata_json": entry.metadata.model_dump_json(),
        }
        self._write(self._entries, entry, metadata, "upsert_knowledge_entry")

    def _write(self, collection, row: Row, metadata: dict, operation: str) -> None:
        try:
            with self._lock:
                existing = collection.get(ids=[row.id], include=["embeddings", "documents"])
                if existing["ids"]:
                    stored_vector = existing["embeddings"][0]
                    stored_text = existing["documents"][0]
                    if stored_text != row.content or not _same_vector(stored_vector, row.embedding):
                        raise _conflict(row.id, operation)
                    logger.debug("Upsert of unchanged row %s ignored", row.id)
                    return

                collection.add(
                    ids=[row.id],
                    embeddings=[row.embedding],
                    documents=[row.content],
                    metadatas=[metadata],
                )
        except VectorStoreError:
            raise
        except Exception as e:
            raise VectorStoreError(
                f"Chroma write failed: {e}",
                operation=operation,
                details={"row_id": row.id},
            ) from e

    # -- search -----------------------------------------------------------

    def _query(
        self,
        query_vector: list[float],
        scope: SearchScope,
        top_k: int,
    ) -> list[tuple[Row, float]]:
        documents = scope.target == SearchTarget.DOCUMENTS
        collection = self._chunks if documents else self._entries

        try:
            count = collection.count()
            if count == 0:
                return []
            result = collection.query(
                query_embeddings=[query_vector],
                # Extra candidates so ties at the cut-off can be ordered by age
                n_results=min(count, max(top_k * 4, 20)),
                where=self._where(scope),
                include=["documents", "metadatas", "distances", "embeddings"],
            )
        except Exception as e:
            raise VectorStoreError(f"Chroma query failed: {e}", operation="search") from e

        build = self._to_chunk if documents else self._to_entry
        pairs = []
        for i, row_id in enumerate(result["ids"][0]):
            metadata = result["metadatas"][0][i]
            row = build(row_id, result["documents"][0][i], metadata, result["embeddings"][0][i])
            # Chroma cosine distance is 1 - similarity
            pairs.append((row, 1.0 - float(result["distances"][0][i])))

        pairs.sort(key=lambda pair: pair[0].created_at)
        return pairs

    @staticmethod
    def _where(scope: SearchScope) -> dict:
        if scope.target == SearchTarget.KNOWLEDGE and scope.include_global:
            owner_clause = {"$or": [{"owner_id": scope.owner_id}, {"is_global": True}]}
        else:
            owner_clause = {"owner_id": scope.owner_id}

        if scope.embedding_model is None:
            return owner_clause
        return {"$and": [owner_clause, {"embedding_model": scope.embedding_model}]}

    # -- maintenance ------------------------------------------------------

    def delete_document_chunks(self, document_id: str) -> int:
        try:
            with self._lock:
                existing = self._chunks.get(where={"document_id": document_id}, include=[])
                ids = existing["ids"]
                if ids:
                    self._chunks.delete(ids=ids)
        except Exception as e:
            raise VectorStoreError(
                f"Chroma delete failed: {e}",
                operation="delete_document_chunks",
                details={"document_id": document_id},
            ) from e
        return len(ids)

    def delete_knowledge_entry(self, entry_id: str) -> bool:
        try:
            with self._lock:
                if not self._entries.get(ids=[entry_id], include=[])["ids"]:
                    return False
                self._entries.delete(ids=[entry_id])
        except Exception as e:
            raise VectorStoreError(
                f"Chroma delete failed: {e}",
                operation="delete_knowledge_entry",
                details={"entry_id": entry_id},
            ) from e
        return True

    def get_chunks(self, document_id: str) -> list[DocumentChunk]:
        try:
            result = self._chunks.get(
                where={"document_id": document_id},
                include=["documents", "metadatas", "embeddings"],
            )
        except Exception as e:
            raise VectorStoreError(f"Chroma get failed: {e}", operation="get_chunks") from e

        chunks = [
            self._to_chunk(row_id, result["documents"][i], result["metadatas"][i], result["embeddings"][i])
            for i, row_id in enumerate(result["ids"])
        ]
        return sorted(chunks, key=lambda c: c.chunk_index)

    # -- row mapping ------------------------------------------------------

    @staticmethod
    def _to_chunk(row_id: str, content: str, metadata: dict, embedding) -> DocumentChunk:
        return DocumentChunk(
            id=row_id,
            document_id=metadata["document_id"],
            owner_id=metadata["owner_id"],
            chunk_index=metadata["chunk_index"],
            total_chunks=metadata["total_chunks"],
            content=content,
            embedding=[float(x) for x in embedding],
            embedding_model=metadata.get("embedding_model") or None,
            created_at=_from_timestamp(metadata["created_at"]),
        )

    @staticmethod
    def _to_entry(row_id: str, content: str, metadata: dict, embedding) -> KnowledgeEntry:
        return KnowledgeEntry(
            id=row_id,
            title=metadata.get("title", ""),
            content=content,
            embedding=[float(x) for x in embedding],
            embedding_model=metadata.get("embedding_model") or None,
            metadata=KnowledgeMetadata.model_validate(json.loads(metadata.get("metadata_json") or "{}")),
            owner_id=metadata.get("owner_id") or None,
            created_at=_from_timestamp(metadata["created_at"]),
        )


def _from_timestamp(value: Union[int, float]) -> datetime:
    return datetime.fromtimestamp(float(value), tz=timezone.utc)


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------

def create_vector_store(
    config: VectorStoreConfig,
    dimensions: Optional[int] = None,
) -> BaseVectorStore:
    """
    Create the vector store backend named by config.store_type.

    Args:
        config: Backend choice and Chroma settings.
        dimensions: Expected vector length (usually EmbeddingConfig.dimensions).

    Raises:
        ValueError: Unknown store type.
    """
    if config.store_type == VectorStoreType.MEMORY:
        return InMemoryVectorStore(dimensions=dimensions)

    elif config.store_type == VectorStoreType.CHROMA:
        return ChromaVectorStore(config, dimensions=dimensions)

    else:
        raise ValueError(
            f"Unknown vector store type: '{config.store_type}'. "
            f"Supported: 'memory', 'chroma'."
        )

"""
Abstract base class for vector stores.

The store holds two row families: document chunks (always owned) and
knowledge entries (owned or global). Backends only implement storage and
raw similarity; BaseVectorStore.search() owns everything that must hold
for every backend:

    - only rows of the scope's owner (plus global knowledge when allowed)
    - only rows embedded by the same model as the query
    - only scores strictly above the threshold
    - descending score, ties by ascending creation order
    - at most top_k results

Rows a backend returns outside the scope are never dropped quietly: that
would hide a broken owner filter. search() logs them at CRITICAL and
raises ScopeViolationError.
"""

import logging
from abc import ABC, abstractmethod
from typing import Optional, Sequence, Union

from docintel.errors import ScopeViolationError, VectorStoreError
from docintel.models.document import DocumentChunk
from docintel.models.knowledge import KnowledgeEntry
from docintel.models.result import SearchHit, SearchScope, SearchTarget

logger = logging.getLogger(__name__)

Row = Union[DocumentChunk, KnowledgeEntry]


class BaseVectorStore(ABC):
    """
    Contract for vector stores.

    Subclasses implement the underscore methods. _query() returns
    (row, cosine similarity) pairs for the scope's candidates in ascending
    creation order; ordering by score happens here so ties stay stable.

    dimensions pins the vector length. When None, the first written vector
    pins it.
    """

    def __init__(self, dimensions: Optional[int] = None):
        self.dimensions = dimensions

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def upsert_chunk(self, chunk: DocumentChunk) -> None:
        """
        Insert a chunk, or do nothing if the identical chunk is stored.

        Raises:
            VectorStoreError: The chunk has no embedding, the wrong
                dimensionality, or its id is stored with a different
                vector or content.
        """
        self._check_vector(chunk.embedding, "upsert_chunk", chunk.id)
        self._upsert_chunk(chunk)

    def upsert_knowledge_entry(self, entry: KnowledgeEntry) -> None:
        """Insert a knowledge entry; same rules as upsert_chunk()."""
        self._check_vector(entry.embedding, "upsert_knowledge_entry", entry.id)
        self._upsert_knowledge_entry(entry)

    # ------------------------------------------------------------------
    # Search
    # ------------------------------------------------------------------

    def search(
        self,
        query_vector: Sequence[float],
        scope: SearchScope,
        threshold: float,
        top_k: int,
    ) -> list[SearchHit]:
        """
        Rank the scope's rows by cosine similarity to query_vector.

        Args:
            query_vector: Embedding of the query text.
            scope: Owner boundary and row family.
            threshold: Only rows with similarity strictly above it are returned.
            top_k: Maximum number of hits.

        Returns:
            Hits ordered by descending score, ranked from 1. Empty when
            nothing clears the threshold.

        Raises:
            ScopeViolationError: The backend produced a row outside the scope.
            VectorStoreError: The query vector does not fit the store.
        """
        if top_k <= 0:
            return []
        self._check_vector(list(query_vector), "search")

        candidates = self._query(list(query_vector), scope, top_k)

        for row, _ in candidates:
            self._enforce_scope(row, scope)

        passing = [(row, score) for row, score in candidates if score > threshold]
        # sorted() is stable, so equal scores keep creation order
        passing = sorted(passing, key=lambda pair: -pair[1])[:top_k]

        return [
            SearchHit(entity=row, score=score, rank=rank)
            for rank, (row, score) in enumerate(passing, start=1)
        ]

    def _enforce_scope(self, row: Row, scope: SearchScope) -> None:
        expected = DocumentChunk if scope.target == SearchTarget.DOCUMENTS else KnowledgeEntry
        if isinstance(row, expected) and scope.allows(row.owner_id):
            if scope.embedding_model is None or row.embedding_model == scope.embedding_model:
                return

        logger.critical(
            "Vector search returned a row outside its scope",
            extra={
                "row_id": row.id,
                "row_owner": row.owner_id,
                "scope_owner": scope.owner_id,
                "target": scope.target.value,
            },
        )
        raise ScopeViolationError(
            "Search returned data outside the requested scope",
            details={"row_id": row.id, "target": scope.target.value},
        )

    def _check_vector(
        self,
        vector: Optional[Sequence[float]],
        operation: str,
        row_id: Optional[str] = None,
    ) -> None:
        if not vector:
            raise VectorStoreError(
                "Vector is missing or empty",
                operation=operation,
                details={"row_id": row_id} if row_id else None,
            )
        if self.dimensions is None:
            if operation != "search":
                self.dimensions = len(vector)
            return
        if len(vector) != self.dimensions:
            raise VectorStoreError(
                f"Vector has {len(vector)} dimensions, store expects {self.dimensions}",
                operation=operation,
                details={"row_id": row_id} if row_id else None,
            )

    # ------------------------------------------------------------------
    # Backend hooks
    # ------------------------------------------------------------------

    @abstractmethod
    def _upsert_chunk(self, chunk: DocumentChunk) -> None:
        ...

    @abstractmethod
    def _upsert_knowledge_entry(self, entry: KnowledgeEntry) -> None:
        ...

    @abstractmethod
    def _query(
        self,
        query_vector: list[float],
        scope: SearchScope,
        top_k: int,
    ) -> list[tuple[Row, float]]:
        """
        Return candidate rows for the scope with their cosine similarity.

        Backends must filter by owner, row family and embedding model
        themselves. top_k is a hint; returning more candidates is allowed.
        """
        ...

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    @abstractmethod
    def delete_document_chunks(self, document_id: str) -> int:
        """Delete every chunk of a document. Returns the number removed."""
        ...

    @abstractmethod
    def delete_knowledge_entry(self, entry_id: str) -> bool:
        """Delete one knowledge entry. Returns False if it did not exist."""
        ...

    @abstractmethod
    def get_chunks(self, document_id: str) -> list[DocumentChunk]:
        """Chunks of a document ordered by chunk_index."""
        ...

    def count_chunks(self, document_id: str) -> int:
        return len(self.get_chunks(document_id))

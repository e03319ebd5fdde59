"""
Retrieval for the chat path.

VectorRetriever embeds the user's message once and runs up to two scoped
searches against the vector store:

    documents  the owner's own document chunks       (document_threshold)
    knowledge  the owner's entries + global entries  (knowledge_threshold,
               only when include_global)

The two result lists are merged by raw cosine score without re-normalizing
one scope against the other, and each fragment keeps the rank it had in
its own scope. On equal scores personal document chunks come first.

Retrieval fails open: if the query cannot be embedded or a search fails,
the conversation continues without that context and the result is marked
degraded. A ScopeViolationError is different. It means owner isolation is
broken, so it always propagates.

Usage:
    retriever = VectorRetriever(embedder, store, RetrieverConfig())
    result = await retriever.retrieve("What does a 70% PTSD rating mean?", owner_id=user.id)
    for fragment in result.fragments:
        print(fragment.score, fragment.content[:80])
"""

import logging
from typing import Optional

from docintel.base.retriever import BaseRetriever
from docintel.base.vectorstore import BaseVectorStore
from docintel.config import RetrieverConfig
from docintel.errors import InvalidInputError, ProviderError, ServiceTimeoutError, VectorStoreError
from docintel.indexing.embeddings import EmbeddingClient
from docintel.models.document import DocumentChunk
from docintel.models.result import (
    ContextFragment,
    FragmentSource,
    RetrievalResult,
    SearchHit,
    SearchScope,
    SearchTarget,
)

logger = logging.getLogger(__name__)


class VectorRetriever(BaseRetriever):
    """
    Embedding similarity retriever over personal documents and knowledge.

    Thresholds and top_k come from RetrieverConfig and can be overridden
    per call.
    """

    def __init__(
        self,
        embedder: EmbeddingClient,
        store: BaseVectorStore,
        config: Optional[RetrieverConfig] = None,
    ):
        self._embedder = embedder
        self._store = store
        self._config = config or RetrieverConfig()

    async def retrieve(
        self,
        query_text: str,
        owner_id: str,
        include_global: Optional[bool] = None,
        top_k: Optional[int] = None,
        document_threshold: Optional[float] = None,
        knowledge_threshold: Optional[float] = None,
    ) -> RetrievalResult:
        if include_global is None:
            include_global = self._config.include_global
        top_k = top_k if top_k is not None else self._config.top_k
        if document_threshold is None:
            document_threshold = self._config.document_threshold
        if knowledge_threshold is None:
            knowledge_threshold = self._config.knowledge_threshold

        try:
            query_vector = await self._embedder.embed(query_text)
        except (ProviderError, ServiceTimeoutError, InvalidInputError) as e:
            logger.warning(
                "Query embedding failed, continuing without retrieved context: %s", e,
                extra={"owner_id": owner_id},
            )
            return RetrievalResult(query_used=query_text, degraded=True)

        degraded = False
        model_id = self._embedder.model_id

        document_scope = SearchScope(
            owner_id=owner_id,
            target=SearchTarget.DOCUMENTS,
            embedding_model=model_id,
        )
        try:
            document_hits = self._store.search(query_vector, document_scope, document_threshold, top_k)
        except VectorStoreError as e:
            logger.warning("Document search failed: %s", e, extra={"owner_id": owner_id})
            document_hits, degraded = [], True

        knowledge_hits: list[SearchHit] = []
        if include_global:
            knowledge_scope = SearchScope(
                owner_id=owner_id,
                target=SearchTarget.KNOWLEDGE,
                include_global=True,
                embedding_model=model_id,
            )
            try:
                knowledge_hits = self._store.search(
                    query_vector, knowledge_scope, knowledge_threshold, top_k,
                )
            except VectorStoreError as e:
                logger.warning("Knowledge search failed: %s", e, extra={"owner_id": owner_id})
                degraded = True

        fragments = [to_fragment(hit) for hit in document_hits + knowledge_hits]
        # Stable sort: on equal scores document chunks stay ahead of knowledge
        fragments.sort(key=lambda f: -f.score)

        logger.info(
            "Retrieved %d document and %d knowledge fragments",
            len(document_hits), len(knowledge_hits),
            extra={"owner_id": owner_id},
        )
        return RetrievalResult(fragments=fragments, query_used=query_text, degraded=degraded)


def to_fragment(hit: SearchHit) -> ContextFragment:
    """Turn a search hit into a prompt-ready fragment."""
    row = hit.entity
    if isinstance(row, DocumentChunk):
        return ContextFragment(
            content=row.content,
            score=hit.score,
            rank=hit.rank,
            source=FragmentSource.DOCUMENT,
            reference_id=row.id,
            document_id=row.document_id,
        )
    return ContextFragment(
        content=row.content,
        score=hit.score,
        rank=hit.rank,
        source=FragmentSource.KNOWLEDGE,
        reference_id=row.id,
        title=row.title,
    )

"""
Knowledge base training.

Turns curated records ({title, content, metadata, owner}) into embedded
KnowledgeEntry rows:

    record → TextChunker → EmbeddingClient.embed_batch → one entry per segment

A record that is split gets one entry per segment, titled
"<title> (Part i/n)", with original_title / chunk_index / total_chunks in
its metadata. Records are independent: a failing record is reported in
its TrainingOutcome and the batch carries on. Within a record the write
is all-or-nothing, so a half-trained record never shows up in search.

Usage:
    trainer = KnowledgeTrainer(embedder, store)
    outcomes = await trainer.train([
        TrainingRecord(title="PACT Act", content=text, metadata={"tags": ["toxic exposure"]}),
    ])
"""

import logging
from typing import Optional, Sequence

from docintel.base.vectorstore import BaseVectorStore
from docintel.config import ChunkingConfig, ToolkitConfig
from docintel.errors import DocIntelError, InvalidInputError
from docintel.indexing.chunking import TextChunker, count_words
from docintel.indexing.embeddings import EmbeddingClient
from docintel.models.knowledge import (
    KnowledgeEntry,
    KnowledgeMetadata,
    TrainingOutcome,
    TrainingRecord,
)

logger = logging.getLogger(__name__)


class KnowledgeTrainer:
    """Chunks, embeds and stores training records as knowledge entries."""

    def __init__(
        self,
        embedder: EmbeddingClient,
        store: BaseVectorStore,
        chunking: Optional[ChunkingConfig] = None,
    ):
        self.embedder = embedder
        self.store = store
        self.chunker = TextChunker(chunking or ToolkitConfig().training_chunking)

    async def train(self, records: Sequence[TrainingRecord]) -> list[TrainingOutcome]:
        """
        Train every record and report one outcome per record, in input order.

        Never raises for a single record's failure.
        """
        outcomes = []
        for index, record in enumerate(records):
            try:
                entry_ids = await self._train_record(record)
            except DocIntelError as e:
                logger.warning("Training record %d (%s) failed: %s", index, record.title, e)
                outcomes.append(TrainingOutcome(
                    record_index=index, title=record.title, success=False, error=e.message,
                ))
                continue

            outcomes.append(TrainingOutcome(
                record_index=index, title=record.title, success=True, entry_ids=entry_ids,
            ))

        succeeded = sum(1 for o in outcomes if o.success)
        logger.info("Trained %d/%d records", succeeded, len(outcomes))
        return outcomes

    async def _train_record(self, record: TrainingRecord) -> list[str]:
        if not record.title.strip():
            raise InvalidInputError("Training record has no title")

        base_metadata = KnowledgeMetadata.from_mapping(record.metadata)
        segments = self.chunker.chunk(record.content)
        if not segments:
            raise InvalidInputError("Training record has no content")

        vectors = await self.embedder.embed_batch(segments)
        total = len(segments)

        entries = []
        for i, (segment, vector) in enumerate(zip(segments, vectors)):
            metadata = base_metadata.model_copy(deep=True, update={
                "original_title": record.title,
                "chunk_index": i,
                "total_chunks": total,
                "word_count": count_words(segment),
            })
            entries.append(KnowledgeEntry(
                title=f"{record.title} (Part {i + 1}/{total})" if total > 1 else record.title,
                content=segment,
                embedding=vector,
                embedding_model=self.embedder.model_id,
                metadata=metadata,
                owner_id=record.owner_id,
            ))

        written = []
        try:
            for entry in entries:
                self.store.upsert_knowledge_entry(entry)
                written.append(entry.id)
        except DocIntelError:
            for entry_id in written:
                self.store.delete_knowledge_entry(entry_id)
            raise

        return written

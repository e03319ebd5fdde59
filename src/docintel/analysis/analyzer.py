"""
Document analysis: the ingestion pipeline for one uploaded document.

    pending → processing → completed
                        ↘ error

Inside processing:
    1. extract text (collaborator)
    2. chunk, fixing (chunk_index, total_chunks) for every chunk up front
    3. per chunk, at most max_concurrency at a time:
           embed → upsert into the vector store → LLM notes on the chunk
    4. join, then one LLM call merges the notes into the final analysis

A chunk whose embedding or write fails is logged and left out of both
retrieval and the analysis; the document carries on with the rest. The
document ends in error, with a message meant for the user, when:
    - extraction fails or yields no text
    - no chunk could be embedded and stored
    - no chunk could be analyzed
    - the final summary fails after its retries
On error every chunk already written for the document is removed again.
analyze() reports failures through the document status, never by raising.

Usage:
    analyzer = DocumentAnalyzer(extractor, chunker, embedder, store, repository, llm)
    report = await analyzer.analyze(document)
    if report.succeeded:
        print(report.document.analysis)
"""

import asyncio
import logging
from typing import NamedTuple, Optional

from langchain_core.language_models.chat_models import BaseChatModel
from langchain_core.messages import HumanMessage, SystemMessage

from docintel.analysis.prompts import ANALYST_SYSTEM_PROMPT, build_chunk_prompt, build_summary_prompt
from docintel.base.indexer import BaseChunker, BaseTextExtractor
from docintel.base.repository import DocumentRepository
from docintel.base.vectorstore import BaseVectorStore
from docintel.config import AnalyzerConfig
from docintel.errors import (
    CompletionRateLimitError,
    CompletionServiceError,
    DocIntelError,
    ExtractionError,
    InvalidInputError,
    VectorStoreError,
)
from docintel.indexing.embeddings import EmbeddingClient
from docintel.models.document import AnalysisReport, Document, DocumentChunk, DocumentStatus
from docintel.utils.helpers import message_text
from docintel.utils.retry import RetryExhausted, call_with_backoff, is_rate_limit_error, provider_status

logger = logging.getLogger(__name__)

NO_TEXT_MESSAGE = (
    "No readable text found in the document. "
    "The file might be empty, scanned, or unreadable."
)
NOT_TEXT_MESSAGE = "The document content could not be read as text."
EMBEDDING_FAILED_MESSAGE = (
    "We couldn't index this document because the embedding service is unavailable. "
    "Please try uploading it again later."
)
ANALYSIS_FAILED_MESSAGE = (
    "We couldn't analyze this document because the analysis service is unavailable. "
    "Please try uploading it again later."
)
SUMMARY_FAILED_MESSAGE = (
    "The document was read, but writing its summary failed. "
    "Please try uploading it again later."
)
UNEXPECTED_MESSAGE = "An unexpected error occurred while analyzing the document."
CANCELLED_MESSAGE = "Analysis was interrupted before it finished."


class AnalysisFailed(Exception):
    """Internal: ends processing with a user-readable message."""

    def __init__(self, user_message: str):
        self.user_message = user_message
        super().__init__(user_message)


class ChunkOutcome(NamedTuple):
    indexed: bool
    analysis: Optional[str]


class DocumentAnalyzer:
    """
    Runs the analysis state machine for documents.

    All collaborators are injected; the analyzer owns only the control flow
    and the error policy. llm is a LangChain chat model (see get_llm()).
    """

    def __init__(
        self,
        extractor: BaseTextExtractor,
        chunker: BaseChunker,
        embedder: EmbeddingClient,
        store: BaseVectorStore,
        repository: DocumentRepository,
        llm: BaseChatModel,
        config: Optional[AnalyzerConfig] = None,
    ):
        self.extractor = extractor
        self.chunker = chunker
        self.embedder = embedder
        self.store = store
        self.repository = repository
        self.llm = llm
        self.config = config or AnalyzerConfig()

    async def analyze(self, document: Document) -> AnalysisReport:
        """
        Analyze a pending document.

        Returns:
            AnalysisReport whose document is in COMPLETED or ERROR.

        Raises:
            InvalidInputError: The document is not PENDING.
            asyncio.CancelledError: The task was cancelled. The document is
                moved to ERROR and its chunks removed before re-raising.
        """
        if document.status != DocumentStatus.PENDING:
            raise InvalidInputError(
                f"Only pending documents can be analyzed, this one is {document.status.value}",
                details={"document_id": document.id},
            )

        document = self._transition(document, DocumentStatus.PROCESSING)
        report = AnalysisReport(document=document, title=document.title)
        logger.info(
            "Analyzing document %s (%s)", document.id, document.document_type.value,
            extra={"document_id": document.id, "owner_id": document.owner_id},
        )

        try:
            summary = await self._process(document, report)
        except AnalysisFailed as e:
            report.document = self._fail(document, e.user_message)
            return report
        except asyncio.CancelledError:
            report.document = self._fail(document, CANCELLED_MESSAGE)
            raise
        except Exception:
            logger.exception("Unexpected failure analyzing document %s", document.id)
            report.document = self._fail(document, UNEXPECTED_MESSAGE)
            return report

        report.document = self._transition(
            document, DocumentStatus.COMPLETED, analysis=summary, error_message=None,
        )
        logger.info(
            "Document %s completed: %d/%d chunks indexed, %d analyzed",
            document.id, report.chunks_indexed, report.chunks_total, report.chunks_analyzed,
        )
        return report

    # ------------------------------------------------------------------
    # Pipeline steps
    # ------------------------------------------------------------------

    async def _process(self, document: Document, report: AnalysisReport) -> str:
        try:
            text = await self.extractor.extract(document.storage_locator, document.media_type)
        except ExtractionError as e:
            logger.warning("Extraction failed for document %s: %s", document.id, e)
            raise AnalysisFailed(e.message) from e

        if not text or not text.strip():
            raise AnalysisFailed(NO_TEXT_MESSAGE)

        try:
            segments = self.chunker.chunk(text)
        except InvalidInputError as e:
            logger.warning("Document %s is not text: %s", document.id, e)
            raise AnalysisFailed(NOT_TEXT_MESSAGE) from e
        if not segments:
            raise AnalysisFailed(NO_TEXT_MESSAGE)

        total = len(segments)
        chunks = [
            DocumentChunk(
                document_id=document.id,
                owner_id=document.owner_id,
                chunk_index=i,
                total_chunks=total,
                content=segment,
            )
            for i, segment in enumerate(segments)
        ]
        report.word_count = len(text.split())
        report.chunks_total = total

        semaphore = asyncio.Semaphore(self.config.max_concurrency)
        outcomes = await asyncio.gather(
            *(self._process_chunk(document, chunk, semaphore) for chunk in chunks)
        )

        report.chunks_indexed = sum(1 for o in outcomes if o.indexed)
        report.chunks_failed = total - report.chunks_indexed
        analyses = [o.analysis for o in outcomes if o.analysis]
        report.chunks_analyzed = len(analyses)

        if report.chunks_indexed == 0:
            raise AnalysisFailed(EMBEDDING_FAILED_MESSAGE)
        if report.chunks_failed:
            logger.warning(
                "Document %s: %d of %d chunks failed to index and are excluded",
                document.id, report.chunks_failed, total,
            )
        if not analyses:
            raise AnalysisFailed(ANALYSIS_FAILED_MESSAGE)

        return await self._summarize(document, analyses)

    async def _process_chunk(
        self,
        document: Document,
        chunk: DocumentChunk,
        semaphore: asyncio.Semaphore,
    ) -> ChunkOutcome:
        async with semaphore:
            try:
                chunk.embedding = await self.embedder.embed(chunk.content)
                chunk.embedding_model = self.embedder.model_id
                self.store.upsert_chunk(chunk)
            except DocIntelError as e:
                logger.warning(
                    "Chunk %d/%d of document %s not indexed: %s",
                    chunk.chunk_index + 1, chunk.total_chunks, document.id, e,
                )
                return ChunkOutcome(indexed=False, analysis=None)

            prompt = build_chunk_prompt(
                document.document_type,
                document.title,
                chunk.chunk_index,
                chunk.total_chunks,
                chunk.content[:self.config.chunk_analysis_max_chars],
            )
            try:
                analysis = await self._complete(prompt, retry_all=False)
            except CompletionServiceError as e:
                logger.warning(
                    "Chunk %d/%d of document %s not analyzed: %s",
                    chunk.chunk_index + 1, chunk.total_chunks, document.id, e,
                )
                return ChunkOutcome(indexed=True, analysis=None)

            return ChunkOutcome(indexed=True, analysis=analysis)

    async def _summarize(self, document: Document, analyses: list[str]) -> str:
        prompt = build_summary_prompt(document.document_type, document.title, analyses)
        try:
            return await self._complete(prompt, retry_all=True)
        except CompletionServiceError as e:
            logger.error("Summary failed for document %s: %s", document.id, e)
            raise AnalysisFailed(SUMMARY_FAILED_MESSAGE) from e

    async def _complete(self, prompt: str, retry_all: bool) -> str:
        """
        One chat completion with backoff.

        Chunk notes only retry rate limits; the final summary retries any
        provider failure. Empty answers count as failures.
        """
        messages = [SystemMessage(content=ANALYST_SYSTEM_PROMPT), HumanMessage(content=prompt)]

        async def call() -> str:
            text = message_text(await self.llm.ainvoke(messages)).strip()
            if not text:
                raise CompletionServiceError("The model returned an empty answer")
            return text

        try:
            return await call_with_backoff(
                call,
                attempts=self.config.summary_attempts,
                initial_delay=self.config.initial_backoff_seconds,
                timeout=None,
                should_retry=(lambda e: True) if retry_all else is_rate_limit_error,
                description="Completion",
            )
        except RetryExhausted as e:
            if is_rate_limit_error(e.last_error):
                raise CompletionRateLimitError(
                    f"Completion provider is rate limiting requests: {e.last_error}",
                    status=provider_status(e.last_error) or 429,
                    details={"attempts": e.attempts},
                ) from e.last_error
            raise CompletionServiceError(
                f"Completion failed after {e.attempts} attempts: {e.last_error}",
                status=provider_status(e.last_error),
            ) from e.last_error
        except CompletionServiceError:
            raise
        except Exception as e:
            raise CompletionServiceError(f"Completion provider error: {e}") from e

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    def _transition(self, document: Document, status: DocumentStatus, **changes) -> Document:
        updated = document.model_copy(update={"status": status, **changes})
        self.repository.update(updated)
        logger.debug("Document %s → %s", document.id, status.value)
        return updated

    def _fail(self, document: Document, user_message: str) -> Document:
        try:
            removed = self.store.delete_document_chunks(document.id)
            if removed:
                logger.info("Removed %d chunks of failed document %s", removed, document.id)
        except VectorStoreError:
            logger.exception("Could not remove chunks of failed document %s", document.id)

        logger.warning("Document %s failed: %s", document.id, user_message)
        return self._transition(
            document, DocumentStatus.ERROR, error_message=user_message, analysis=None,
        )

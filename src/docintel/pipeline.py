"""
DocumentIntelligence: the entry point for applications.

Wires every stage together from one ToolkitConfig:

    ingestion  register_upload → analyze_document
               (extract → chunk → embed → store → analyze → summarize)
    query      chat
               (retrieve → assemble context → stream completion → persist)
    knowledge  train
    upkeep     delete_document, generate_title

    from docintel import DocumentIntelligence

    app = DocumentIntelligence()
    document = app.register_upload(user_id, "C&P Exam.pdf", "/uploads/cp.pdf", size, "application/pdf")
    report = await app.analyze_document(user_id, document.id)

    async for event in app.chat(user_id, session_id, "What did the examiner conclude?"):
        print(event.text, end="")

Every public operation takes the authenticated owner id. Documents of
other owners behave as if they did not exist.

Collaborators (models, store, repositories, extractor) can be passed in
to override what the config would build; tests pass LangChain fakes.
"""

import logging
from contextlib import aclosing
from typing import AsyncIterator, Optional, Sequence

from langchain_core.embeddings import Embeddings
from langchain_core.language_models.chat_models import BaseChatModel

from docintel.analysis.analyzer import DocumentAnalyzer
from docintel.analysis.extraction import SUPPORTED_MEDIA_TYPES, FileTextExtractor, classify_document_type
from docintel.base.indexer import BaseTextExtractor
from docintel.base.repository import DocumentRepository, MessageStore
from docintel.base.vectorstore import BaseVectorStore
from docintel.config import ToolkitConfig
from docintel.errors import DocumentNotFoundError, InvalidInputError, SessionNotFoundError
from docintel.generation.context import ContextAssembler
from docintel.generation.prompts import detect_mode
from docintel.generation.streaming import ChatCompletionStreamer
from docintel.generation.titles import TitleGenerator
from docintel.indexing.chunking import TextChunker
from docintel.indexing.embeddings import EmbeddingClient
from docintel.indexing.training import KnowledgeTrainer
from docintel.indexing.vectorstore import create_vector_store
from docintel.models.chat import ChatMode, Message, MessageRole, StreamEvent
from docintel.models.document import AnalysisReport, Document
from docintel.models.knowledge import TrainingOutcome, TrainingRecord
from docintel.retrieval.search import VectorRetriever
from docintel.storage.memory import InMemoryDocumentRepository, InMemoryMessageStore
from docintel.utils.helpers import build_rate_limiter, get_llm

logger = logging.getLogger(__name__)

MAX_UPLOAD_BYTES = 10 * 1024 * 1024


class DocumentIntelligence:
    """
    Facade over the ingestion, retrieval and chat stages.

    The embedding rate limiter is built once here and shared by every
    stage that embeds (analysis, retrieval, training), so they draw on
    one quota.
    """

    def __init__(
        self,
        config: Optional[ToolkitConfig] = None,
        *,
        llm: Optional[BaseChatModel] = None,
        analysis_llm: Optional[BaseChatModel] = None,
        embedding_model: Optional[Embeddings] = None,
        store: Optional[BaseVectorStore] = None,
        documents: Optional[DocumentRepository] = None,
        messages: Optional[MessageStore] = None,
        extractor: Optional[BaseTextExtractor] = None,
    ):
        """
        Args:
            config: Settings for every stage. Defaults to ToolkitConfig().
            llm: Chat model for conversations and titles. Built from config.llm when omitted.
            analysis_llm: Chat model for document analysis. Built from config.analysis_llm.
            embedding_model: LangChain embeddings. Built from config.embedding.
            store: Vector store. Built from config.vector_store.
            documents: Document repository. In-memory when omitted.
            messages: Message store. In-memory when omitted.
            extractor: Text extraction collaborator. Local files when omitted.
        """
        self.config = config or ToolkitConfig()
        cfg = self.config

        llm = llm or get_llm(cfg.llm)
        analysis_llm = analysis_llm or get_llm(cfg.analysis_llm)

        self.embedder = EmbeddingClient(
            cfg.embedding,
            model=embedding_model,
            rate_limiter=build_rate_limiter(cfg.embedding.requests_per_second),
        )
        self.store = store or create_vector_store(cfg.vector_store, dimensions=cfg.embedding.dimensions)
        self.documents = documents or InMemoryDocumentRepository()
        self.messages = messages or InMemoryMessageStore()

        self.analyzer = DocumentAnalyzer(
            extractor=extractor or FileTextExtractor(),
            chunker=TextChunker(cfg.chunking),
            embedder=self.embedder,
            store=self.store,
            repository=self.documents,
            llm=analysis_llm,
            config=cfg.analyzer,
        )
        self.retriever = VectorRetriever(self.embedder, self.store, cfg.retriever)
        self.assembler = ContextAssembler(cfg.context)
        self.streamer = ChatCompletionStreamer(llm, self.messages, cfg.streaming)
        self.trainer = KnowledgeTrainer(self.embedder, self.store, cfg.training_chunking)
        self.titles = TitleGenerator(llm)

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------

    def register_upload(
        self,
        owner_id: str,
        file_name: str,
        storage_locator: str,
        size_bytes: int,
        media_type: str,
    ) -> Document:
        """
        Validate an uploaded file and create its pending Document.

        Raises:
            InvalidInputError: Empty or oversized file, unsupported type,
                or missing owner.
        """
        if not owner_id:
            raise InvalidInputError("Uploads require an authenticated owner")
        if size_bytes <= 0:
            raise InvalidInputError("File appears to be empty", details={"file_name": file_name})
        if size_bytes > MAX_UPLOAD_BYTES:
            raise InvalidInputError(
                "File size exceeds 10MB limit",
                details={"file_name": file_name, "size_bytes": size_bytes},
            )
        if media_type not in SUPPORTED_MEDIA_TYPES:
            raise InvalidInputError(
                "Unsupported file type. Please upload PDF, TXT, or JSON files only.",
                details={"file_name": file_name, "media_type": media_type},
            )

        document = Document(
            owner_id=owner_id,
            file_name=file_name,
            storage_locator=storage_locator,
            size_bytes=size_bytes,
            media_type=media_type,
            document_type=classify_document_type(file_name),
        )
        self.documents.add(document)
        logger.info(
            "Registered upload %s as %s", document.id, document.document_type.value,
            extra={"owner_id": owner_id},
        )
        return document

    def get_document(self, owner_id: str, document_id: str) -> Document:
        """Raises DocumentNotFoundError for unknown ids and other owners' documents."""
        document = self.documents.get(document_id)
        if document is None or document.owner_id != owner_id:
            raise DocumentNotFoundError(document_id)
        return document

    def list_documents(self, owner_id: str) -> list[Document]:
        return self.documents.list_for_owner(owner_id)

    async def analyze_document(self, owner_id: str, document_id: str) -> AnalysisReport:
        """Run analysis for a pending document. Failures end up on the document, not raised."""
        return await self.analyzer.analyze(self.get_document(owner_id, document_id))

    def delete_document(self, owner_id: str, document_id: str) -> int:
        """
        Delete a document and, first, all of its chunks.

        Returns:
            Number of chunks removed from the vector store.
        """
        document = self.get_document(owner_id, document_id)
        removed = self.store.delete_document_chunks(document.id)
        self.documents.delete(document.id)
        logger.info("Deleted document %s and %d chunks", document.id, removed, extra={"owner_id": owner_id})
        return removed

    # ------------------------------------------------------------------
    # Knowledge base
    # ------------------------------------------------------------------

    async def train(self, records: Sequence[TrainingRecord]) -> list[TrainingOutcome]:
        return await self.trainer.train(records)

    # ------------------------------------------------------------------
    # Chat
    # ------------------------------------------------------------------

    async def chat(
        self,
        owner_id: str,
        session_id: str,
        user_message: str,
        mode: Optional[ChatMode] = None,
        include_global: Optional[bool] = None,
    ) -> AsyncIterator[StreamEvent]:
        """
        Answer one user message as a stream of events.

        Steps, strictly in sequence:
            1. load recent history, retrieve fragments, load document analyses
            2. assemble the context within budget
            3. persist the user message
            4. stream the completion; the assistant message is persisted
               only when the stream completes

        mode None picks one from the message keywords, falling back to
        claims. Closing the returned iterator early cancels the upstream
        model stream.

        Raises:
            InvalidInputError: user_message is empty.
            SessionNotFoundError: session_id belongs to another owner.
        """
        if not user_message or not user_message.strip():
            raise InvalidInputError("User message is empty")
        self.messages.ensure_session(session_id, owner_id)

        history = self.messages.list_messages(
            session_id, limit=self.config.context.max_history_messages,
        )
        retrieval = await self.retriever.retrieve(user_message, owner_id, include_global=include_global)
        context = self.assembler.assemble(
            retrieval.fragments,
            self.documents.list_for_owner(owner_id),
            history,
            user_message,
        )

        self.messages.append(Message(session_id=session_id, role=MessageRole.USER, content=user_message))

        mode = mode or detect_mode(user_message) or ChatMode.CLAIMS
        async with aclosing(self.streamer.stream_completion(context, session_id, mode)) as events:
            async for event in events:
                yield event

    async def generate_title(self, owner_id: str, session_id: str) -> str:
        """
        Title the session from its recent messages and store it on the session.

        Raises:
            SessionNotFoundError: unknown session, or one of another owner.
        """
        session = self.messages.get_session(session_id)
        if session is None or session.owner_id != owner_id:
            raise SessionNotFoundError(session_id)
        title = await self.titles.generate(self.messages.list_messages(session_id))
        self.messages.set_title(session_id, title)
        return title

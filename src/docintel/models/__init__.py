"""
Pydantic models shared across the pipeline.

Import from here rather than reaching into submodules:
    from docintel.models import Document, DocumentChunk, SearchScope
"""

from .document import AnalysisReport, Document, DocumentChunk, DocumentStatus, DocumentType
from .knowledge import KnowledgeEntry, KnowledgeMetadata, TrainingOutcome, TrainingRecord
from .chat import ChatMode, ChatSession, Message, MessageRole, StreamEvent, StreamEventType
from .result import (
    AssembledContext,
    ContextFragment,
    FragmentSource,
    PromptMessage,
    RetrievalResult,
    SearchHit,
    SearchScope,
    SearchTarget,
)

__all__ = [
    # Document
    "AnalysisReport",
    "Document",
    "DocumentChunk",
    "DocumentStatus",
    "DocumentType",
    # Knowledge
    "KnowledgeEntry",
    "KnowledgeMetadata",
    "TrainingOutcome",
    "TrainingRecord",
    # Chat
    "ChatMode",
    "ChatSession",
    "Message",
    "MessageRole",
    "StreamEvent",
    "StreamEventType",
    # Result
    "AssembledContext",
    "ContextFragment",
    "FragmentSource",
    "PromptMessage",
    "RetrievalResult",
    "SearchHit",
    "SearchScope",
    "SearchTarget",
]

"""
Document models for the ingestion pipeline.

These represent data at each stage:
  Uploaded Document (pending) → DocumentChunk (split + embedded) → AnalysisReport
"""

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


def _new_id() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DocumentType(str, Enum):
    """Classification tag of an uploaded document."""

    EXAM_REPORT = "c&p_exam"
    RATING_DECISION = "rating_decision"
    QUESTIONNAIRE = "dbq"
    OTHER = "other"


class DocumentStatus(str, Enum):
    """
    Document analysis lifecycle.

    PENDING → PROCESSING → COMPLETED, or PENDING → PROCESSING → ERROR.
    """

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    ERROR = "error"


class Document(BaseModel):
    """
    An uploaded file's logical record.

    Owned by exactly one user. Chunks reference it by id only, so deleting
    the document is a plain cascade over its id.
    """

    id: str = Field(default_factory=_new_id)
    owner_id: str = Field(description="Uploading user")
    file_name: str = Field(description="Display name, usually the original filename")
    storage_locator: str = Field(description="Where the raw file lives (path, URL, key)")
    size_bytes: int = Field(default=0, ge=0)
    media_type: str = Field(default="text/plain")
    document_type: DocumentType = Field(default=DocumentType.OTHER)
    status: DocumentStatus = Field(default=DocumentStatus.PENDING)
    analysis: Optional[str] = Field(default=None, description="Combined summary once completed")
    error_message: Optional[str] = Field(default=None, description="User-readable failure reason")
    created_at: datetime = Field(default_factory=_utcnow)

    @property
    def title(self) -> str:
        """File name without its extension."""
        stem, dot, _ = self.file_name.rpartition(".")
        return stem if dot and stem else self.file_name


class DocumentChunk(BaseModel):
    """
    A contiguous slice of a document's extracted text.

    chunk_index/total_chunks are fixed before the chunk is written and the
    embedding never changes afterwards; re-embedding means delete + recreate.
    """

    id: str = Field(default_factory=_new_id)
    document_id: str
    owner_id: str
    chunk_index: int = Field(ge=0)
    total_chunks: int = Field(gt=0)
    content: str
    embedding: Optional[list[float]] = Field(
        default=None,
        description="Vector embedding, populated after the embedding step",
    )
    embedding_model: Optional[str] = Field(
        default=None,
        description="Identifier of the model that produced the embedding",
    )
    created_at: datetime = Field(default_factory=_utcnow)


class AnalysisReport(BaseModel):
    """
    Outcome of one DocumentAnalyzer run.

    The document itself carries the status, summary and error message;
    the counters explain how much of it made it into the index.
    """

    document: Document
    title: str = ""
    word_count: int = 0
    chunks_total: int = 0
    chunks_indexed: int = 0
    chunks_failed: int = 0
    chunks_analyzed: int = 0

    @property
    def succeeded(self) -> bool:
        return self.document.status == DocumentStatus.COMPLETED

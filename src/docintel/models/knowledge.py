"""
Knowledge base models.

Knowledge entries are curated text units, independent of any uploaded
document. An entry without an owner is global and visible to everyone.
"""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field, ValidationError

from docintel.errors import InvalidInputError

from .document import _new_id, _utcnow


class KnowledgeMetadata(BaseModel):
    """
    Metadata attached to a knowledge entry.

    Known keys are typed fields. Anything else the caller supplies goes into
    `extra` untouched; core logic never reads from it.
    """

    tags: list[str] = Field(default_factory=list)
    source: Optional[str] = Field(default=None, description="Where the text came from")
    category: Optional[str] = Field(default=None)
    word_count: Optional[int] = Field(default=None, ge=0)
    original_title: Optional[str] = Field(
        default=None, description="Title of the training record this entry was cut from",
    )
    chunk_index: Optional[int] = Field(default=None, ge=0)
    total_chunks: Optional[int] = Field(default=None, gt=0)
    extra: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_mapping(cls, data: Optional[dict[str, Any]]) -> "KnowledgeMetadata":
        """
        Split a free-form dict into known keys and the extension map.

        Raises:
            InvalidInputError: A known key has the wrong type, such as a
                single string for tags.
        """
        data = dict(data or {})
        extra = data.pop("extra", None)
        extra = dict(extra) if isinstance(extra, dict) else {}
        known = {name: data.pop(name) for name in list(data) if name in cls.model_fields}
        extra.update(data)
        try:
            return cls(**known, extra=extra)
        except ValidationError as e:
            fields = sorted({str(err["loc"][0]) for err in e.errors() if err["loc"]})
            raise InvalidInputError(
                f"Invalid metadata: {', '.join(fields) or 'unknown field'}",
                details={"fields": fields},
            ) from e


class KnowledgeEntry(BaseModel):
    """A unit of curated knowledge with its embedding."""

    id: str = Field(default_factory=_new_id)
    title: str
    content: str
    embedding: Optional[list[float]] = None
    embedding_model: Optional[str] = None
    metadata: KnowledgeMetadata = Field(default_factory=KnowledgeMetadata)
    owner_id: Optional[str] = Field(default=None, description="None means global")
    created_at: datetime = Field(default_factory=_utcnow)

    @property
    def is_global(self) -> bool:
        return self.owner_id is None


class TrainingRecord(BaseModel):
    """One record submitted to the knowledge training entry point."""

    title: str
    content: str
    metadata: dict[str, Any] = Field(default_factory=dict)
    owner_id: Optional[str] = Field(default=None, description="None trains the global base")


class TrainingOutcome(BaseModel):
    """Per-record result of a training batch. Batches never fail as a whole."""

    record_index: int
    title: str
    success: bool
    entry_ids: list[str] = Field(default_factory=list)
    error: Optional[str] = None

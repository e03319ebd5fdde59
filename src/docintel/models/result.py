"""
Result models for search, retrieval and context assembly.

These are the outputs of the query path: what flows from the vector
store, through the retriever, into the prompt.
"""

from enum import Enum
from typing import Optional, Union

from pydantic import BaseModel, Field

from .chat import MessageRole
from .document import DocumentChunk
from .knowledge import KnowledgeEntry


# ---------------------------------------------------------------------------
# Vector search
# ---------------------------------------------------------------------------

class SearchTarget(str, Enum):
    """Which row family a search runs against."""

    DOCUMENTS = "documents"
    KNOWLEDGE = "knowledge"


class SearchScope(BaseModel):
    """
    The owner boundary of a similarity search.

    DOCUMENTS: only chunks owned by owner_id.
    KNOWLEDGE: entries owned by owner_id, plus global entries when
               include_global is set.

    embedding_model restricts candidates to vectors produced by the same
    model as the query vector.
    """

    owner_id: str = Field(min_length=1)
    target: SearchTarget = SearchTarget.DOCUMENTS
    include_global: bool = False
    embedding_model: Optional[str] = None

    def allows(self, owner_id: Optional[str]) -> bool:
        """True when a row with this owner may be returned for this scope."""
        if owner_id == self.owner_id:
            return True
        return self.target == SearchTarget.KNOWLEDGE and self.include_global and owner_id is None


class SearchHit(BaseModel):
    """A stored row with its cosine similarity to the query."""

    entity: Union[DocumentChunk, KnowledgeEntry]
    score: float = Field(description="Cosine similarity in [-1, 1]")
    rank: int = Field(default=0, description="Position in the result list")


# ---------------------------------------------------------------------------
# Retrieval
# ---------------------------------------------------------------------------

class FragmentSource(str, Enum):
    DOCUMENT = "document"
    KNOWLEDGE = "knowledge"


class ContextFragment(BaseModel):
    """
    One retrieved piece of text, ready for the prompt.

    rank is the fragment's position within its own scope's ranking; scores
    from the two scopes are never re-normalized against each other.
    """

    content: str
    score: float
    rank: int = 0
    source: FragmentSource
    reference_id: str = Field(description="Chunk or knowledge entry id")
    document_id: Optional[str] = None
    title: Optional[str] = None


class RetrievalResult(BaseModel):
    """
    Output of the retrieval stage.

    fragments are ordered most relevant first. degraded is set when
    retrieval failed and the empty result is a fallback, not a finding.
    """

    fragments: list[ContextFragment] = Field(default_factory=list)
    query_used: str = Field(description="The query text that was embedded")
    degraded: bool = False


# ---------------------------------------------------------------------------
# Context assembly
# ---------------------------------------------------------------------------

class PromptMessage(BaseModel):
    """A role/content pair sent to the chat model."""

    role: MessageRole
    content: str


class AssembledContext(BaseModel):
    """
    Output of the context assembler.

    context_text is the bounded block of retrieved fragments and document
    analyses; messages is the conversation (history, then the new user
    message last). The streamer wraps context_text in the system message.
    """

    context_text: str = ""
    messages: list[PromptMessage] = Field(default_factory=list)
    fragments_used: list[ContextFragment] = Field(default_factory=list)
    dropped_fragments: int = 0
    dropped_analyses: int = 0
    dropped_history: int = 0
    total_tokens: int = 0
    truncated: bool = False

    @property
    def user_message(self) -> str:
        return self.messages[-1].content if self.messages else ""

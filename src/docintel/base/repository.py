"""
Persistence contracts for documents and chat messages.

The relational store behind the product is a collaborator; the pipeline
only needs these few operations. In-memory implementations live in
docintel.storage and are what the tests use.
"""

from abc import ABC, abstractmethod
from typing import Optional

from docintel.models.chat import ChatSession, Message
from docintel.models.document import Document


class DocumentRepository(ABC):
    """Stores Document records, one owner per document."""

    @abstractmethod
    def add(self, document: Document) -> Document:
        ...

    @abstractmethod
    def get(self, document_id: str) -> Optional[Document]:
        ...

    @abstractmethod
    def update(self, document: Document) -> Document:
        """Persist a changed document. Raises DocumentNotFoundError if unknown."""
        ...

    @abstractmethod
    def delete(self, document_id: str) -> bool:
        ...

    @abstractmethod
    def list_for_owner(self, owner_id: str) -> list[Document]:
        """The owner's documents, most recently uploaded first."""
        ...


class MessageStore(ABC):
    """Stores chat sessions and their messages, in chronological order."""

    @abstractmethod
    def ensure_session(self, session_id: str, owner_id: str) -> ChatSession:
        """
        Return the session, creating it for owner_id on first use.

        Raises SessionNotFoundError if the session belongs to another owner.
        """
        ...

    @abstractmethod
    def get_session(self, session_id: str) -> Optional[ChatSession]:
        ...

    @abstractmethod
    def set_title(self, session_id: str, title: str) -> ChatSession:
        """Raises SessionNotFoundError if the session is unknown."""
        ...

    @abstractmethod
    def append(self, message: Message) -> Message:
        ...

    @abstractmethod
    def list_messages(self, session_id: str, limit: Optional[int] = None) -> list[Message]:
        """
        Messages of a session in chronological order.

        With limit, only the most recent `limit` messages (still oldest first).
        """
        ...

"""
In-memory repositories.

Process-local implementations of DocumentRepository and MessageStore.
Good for tests, demos and single-process tools; a deployment backs the
same interfaces with its relational database.
"""

import threading
from collections import defaultdict
from typing import Optional

from docintel.base.repository import DocumentRepository, MessageStore
from docintel.errors import DocumentNotFoundError, SessionNotFoundError
from docintel.models.chat import ChatSession, Message
from docintel.models.document import Document


class InMemoryDocumentRepository(DocumentRepository):
    def __init__(self):
        self._documents: dict[str, Document] = {}
        self._lock = threading.Lock()

    def add(self, document: Document) -> Document:
        with self._lock:
            self._documents[document.id] = document.model_copy()
        return document

    def get(self, document_id: str) -> Optional[Document]:
        with self._lock:
            document = self._documents.get(document_id)
        return document.model_copy() if document else None

    def update(self, document: Document) -> Document:
        with self._lock:
            if document.id not in self._documents:
                raise DocumentNotFoundError(document.id)
            self._documents[document.id] = document.model_copy()
        return document

    def delete(self, document_id: str) -> bool:
        with self._lock:
            return self._documents.pop(document_id, None) is not None

    def list_for_owner(self, owner_id: str) -> list[Document]:
        with self._lock:
            documents = [d.model_copy() for d in self._documents.values() if d.owner_id == owner_id]
        return sorted(documents, key=lambda d: d.created_at, reverse=True)


class InMemoryMessageStore(MessageStore):
    def __init__(self):
        self._sessions: dict[str, ChatSession] = {}
        self._messages: dict[str, list[Message]] = defaultdict(list)
        self._lock = threading.Lock()

    def ensure_session(self, session_id: str, owner_id: str) -> ChatSession:
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                session = ChatSession(id=session_id, owner_id=owner_id)
                self._sessions[session_id] = session
        if session.owner_id != owner_id:
            raise SessionNotFoundError(session_id)
        return session.model_copy()

    def get_session(self, session_id: str) -> Optional[ChatSession]:
        with self._lock:
            session = self._sessions.get(session_id)
        return session.model_copy() if session else None

    def set_title(self, session_id: str, title: str) -> ChatSession:
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                raise SessionNotFoundError(session_id)
            session = session.model_copy(update={"title": title})
            self._sessions[session_id] = session
        return session.model_copy()

    def append(self, message: Message) -> Message:
        with self._lock:
            self._messages[message.session_id].append(message.model_copy())
        return message

    def list_messages(self, session_id: str, limit: Optional[int] = None) -> list[Message]:
        with self._lock:
            messages = [m.model_copy() for m in self._messages.get(session_id, [])]
        if limit is not None:
            messages = messages[-limit:] if limit > 0 else []
        return messages

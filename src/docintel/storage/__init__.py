from .memory import InMemoryDocumentRepository, InMemoryMessageStore

__all__ = [
    "InMemoryDocumentRepository",
    "InMemoryMessageStore",
]

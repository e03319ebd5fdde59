from .indexer import BaseChunker, BaseTextExtractor
from .repository import DocumentRepository, MessageStore
from .retriever import BaseRetriever
from .vectorstore import BaseVectorStore

__all__ = [
    "BaseChunker",
    "BaseRetriever",
    "BaseTextExtractor",
    "BaseVectorStore",
    "DocumentRepository",
    "MessageStore",
]

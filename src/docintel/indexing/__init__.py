from .chunking import TextChunker, chunk_text, get_token_counter
from .embeddings import EmbeddingClient, get_embedding_model
from .training import KnowledgeTrainer
from .vectorstore import ChromaVectorStore, InMemoryVectorStore, create_vector_store

__all__ = [
    "ChromaVectorStore",
    "EmbeddingClient",
    "InMemoryVectorStore",
    "KnowledgeTrainer",
    "TextChunker",
    "chunk_text",
    "create_vector_store",
    "get_embedding_model",
    "get_token_counter",
]

"""
Shared test fixtures.

Everything here runs offline: embeddings and chat models are LangChain
fakes or small hand-written stand-ins, the vector store is in-memory.
"""

import asyncio
import math
from typing import Any, Optional

import pytest
from langchain_core.embeddings import DeterministicFakeEmbedding, Embeddings
from langchain_core.language_models.fake_chat_models import FakeListChatModel
from langchain_core.messages import AIMessage, AIMessageChunk

from docintel.config import (
    AnalyzerConfig,
    ChunkingConfig,
    ContextConfig,
    EmbeddingConfig,
    RetrieverConfig,
    StreamingConfig,
)
from docintel.errors import ExtractionError
from docintel.indexing.embeddings import EmbeddingClient
from docintel.indexing.vectorstore import InMemoryVectorStore
from docintel.storage.memory import InMemoryDocumentRepository, InMemoryMessageStore

DIMS = 4


def unit_vector_at(similarity: float, axis: int = 1) -> list[float]:
    """A unit vector whose cosine similarity to [1, 0, 0, 0] is exactly `similarity`."""
    vector = [0.0] * DIMS
    vector[0] = similarity
    vector[axis] = math.sqrt(1.0 - similarity ** 2)
    return vector


QUERY_VECTOR = [1.0, 0.0, 0.0, 0.0]


# ---------------------------------------------------------------------------
# Provider stand-ins
# ---------------------------------------------------------------------------

class ProviderHTTPError(Exception):
    """Shaped like the OpenAI/Anthropic SDK errors: carries status_code."""

    def __init__(self, status_code: int, message: str = "provider error"):
        self.status_code = status_code
        super().__init__(message)


class TableEmbeddings(Embeddings):
    """
    Embeddings with hand-picked vectors.

    Texts found in `vectors` get that exact vector; any text containing a
    key of `failures` raises that exception; everything else falls back
    to DeterministicFakeEmbedding.
    """

    def __init__(
        self,
        vectors: Optional[dict[str, list[float]]] = None,
        failures: Optional[dict[str, Exception]] = None,
        size: int = DIMS,
    ):
        self.vectors = vectors or {}
        self.failures = failures or {}
        self.fallback = DeterministicFakeEmbedding(size=size)
        self.calls: list[list[str]] = []

    def _vector(self, text: str) -> list[float]:
        for marker, error in self.failures.items():
            if marker in text:
                raise error
        if text in self.vectors:
            return list(self.vectors[text])
        return self.fallback.embed_query(text)

    def embed_documents(self, texts: list[str]) -> list[list[float]]:
        self.calls.append(list(texts))
        return [self._vector(t) for t in texts]

    def embed_query(self, text: str) -> list[float]:
        self.calls.append([text])
        return self._vector(text)


class FlakyEmbeddings(Embeddings):
    """Raises the queued errors in order, then answers with the fake embedding."""

    def __init__(self, errors: list[Exception], size: int = DIMS):
        self.errors = list(errors)
        self.fallback = DeterministicFakeEmbedding(size=size)
        self.attempts = 0

    def _next(self) -> None:
        self.attempts += 1
        if self.errors:
            raise self.errors.pop(0)

    def embed_documents(self, texts: list[str]) -> list[list[float]]:
        self._next()
        return self.fallback.embed_documents(texts)

    def embed_query(self, text: str) -> list[float]:
        self._next()
        return self.fallback.embed_query(text)


class SlowEmbeddings(Embeddings):
    def __init__(self, delay: float, size: int = DIMS):
        self.delay = delay
        self.size = size

    def embed_documents(self, texts):
        return [[1.0] * self.size for _ in texts]

    def embed_query(self, text):
        return [1.0] * self.size

    async def aembed_query(self, text):
        await asyncio.sleep(self.delay)
        return self.embed_query(text)


class AnalystChatModel:
    """
    Chat model stand-in for document analysis.

    Tells chunk prompts from summary prompts by their wording. Failures
    are injected per chunk (by a marker in the chunk text) or for the
    first N summary calls.
    """

    def __init__(
        self,
        summary: str = "**Summary:** Service connection granted at 70%.",
        fail_chunks_with: Optional[str] = None,
        summary_failures: int = 0,
        chunk_error: Optional[Exception] = None,
    ):
        self.summary = summary
        self.fail_chunks_with = fail_chunks_with
        self.summary_failures = summary_failures
        self.chunk_error = chunk_error or ProviderHTTPError(500, "chunk analysis failed")
        self.chunk_calls = 0
        self.summary_calls = 0
        self.summary_prompts: list[str] = []

    async def ainvoke(self, messages: list[Any], **kwargs) -> AIMessage:
        prompt = messages[-1].content
        if "Document part:" in prompt:
            self.chunk_calls += 1
            if self.fail_chunks_with and self.fail_chunks_with in prompt:
                raise self.chunk_error
            return AIMessage(content=f"- notes for call {self.chunk_calls}")

        self.summary_calls += 1
        self.summary_prompts.append(prompt)
        if self.summary_calls <= self.summary_failures:
            raise ProviderHTTPError(503, "summary backend unavailable")
        return AIMessage(content=self.summary)


class ScriptedStreamingModel:
    """
    Streaming chat model stand-in.

    Yields `tokens` one at a time. Records how many increments were
    produced and whether the stream was closed, so tests can check that
    consumers cancel the upstream stream.
    """

    def __init__(
        self,
        tokens: list[str],
        fail_after: Optional[int] = None,
        error: Optional[Exception] = None,
        stall_after: Optional[int] = None,
        open_failures: int = 0,
    ):
        self.tokens = tokens
        self.fail_after = fail_after
        self.error = error or ProviderHTTPError(500, "stream broke")
        self.stall_after = stall_after
        self.open_failures = open_failures
        self.calls = 0
        self.produced = 0
        self.closed = False
        self.received: list[Any] = []

    async def astream(self, messages, **kwargs):
        self.received = list(messages)
        self.calls += 1
        try:
            if self.calls <= self.open_failures:
                raise self.error
            for i, token in enumerate(self.tokens):
                if self.fail_after is not None and i == self.fail_after:
                    raise self.error
                if self.stall_after is not None and i == self.stall_after:
                    await asyncio.sleep(3600)
                self.produced += 1
                yield AIMessageChunk(content=token)
                await asyncio.sleep(0)
        finally:
            self.closed = True


class StaticExtractor:
    """Extraction collaborator returning fixed text, or raising."""

    def __init__(self, text: str = "", error: Optional[Exception] = None):
        self.text = text
        self.error = error
        self.calls: list[tuple[str, str]] = []

    async def extract(self, locator: str, media_type: str) -> str:
        self.calls.append((locator, media_type))
        if self.error:
            raise self.error
        return self.text


# ---------------------------------------------------------------------------
# Config fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def embedding_config():
    """Small vectors, no waiting between retries."""
    return EmbeddingConfig(
        dimensions=DIMS,
        max_attempts=3,
        initial_backoff_seconds=0.0,
        timeout_seconds=5.0,
        batch_size=4,
    )


@pytest.fixture
def chunking_config():
    return ChunkingConfig(max_tokens=500, overlap_tokens=50)


@pytest.fixture
def retriever_config():
    return RetrieverConfig(document_threshold=0.78, knowledge_threshold=0.80, top_k=5)


@pytest.fixture
def analyzer_config():
    return AnalyzerConfig(max_concurrency=3, summary_attempts=3, initial_backoff_seconds=0.0)


@pytest.fixture
def context_config():
    return ContextConfig(budget_tokens=6000, max_history_messages=10, min_recent_messages=2)


@pytest.fixture
def streaming_config():
    return StreamingConfig(chunk_timeout_seconds=5.0, initial_backoff_seconds=0.0)


# ---------------------------------------------------------------------------
# Component fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def store():
    return InMemoryVectorStore(dimensions=DIMS)


@pytest.fixture
def documents():
    return InMemoryDocumentRepository()


@pytest.fixture
def messages():
    return InMemoryMessageStore()


@pytest.fixture
def table_embeddings():
    return TableEmbeddings()


@pytest.fixture
def embedder(embedding_config, table_embeddings):
    """EmbeddingClient over TableEmbeddings."""
    return EmbeddingClient(embedding_config, model=table_embeddings)


@pytest.fixture
def fake_chat():
    """FakeListChatModel with a fixed answer, for title and smoke tests."""
    return FakeListChatModel(responses=["Understanding My PTSD Rating"])


@pytest.fixture
def missing_file_extractor():
    return StaticExtractor(error=ExtractionError("File not found in storage", locator="/nowhere"))

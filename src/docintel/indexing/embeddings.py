"""
Embedding model factory and client.

get_embedding_model() returns the right LangChain embedding model based on
EmbeddingConfig. This is the single place that maps provider strings to
actual classes.

Supported providers:
    "openai"      → OpenAIEmbeddings (API-based, default)
    "huggingface" → HuggingFaceEmbeddings (local sentence-transformers)
    "cohere"      → CohereEmbeddings (API-based)

EmbeddingClient wraps a model with the pipeline's failure policy:
    - rate-limit responses are retried with exponential backoff, then
      raised as EmbeddingRateLimitError
    - any other provider failure raises EmbeddingServiceError at once
    - every call is bounded by timeout_seconds (ServiceTimeoutError)
    - batches keep input order and are sent in sub-batches of batch_size

Usage:
    from docintel.indexing.embeddings import EmbeddingClient
    from docintel.config import EmbeddingConfig

    client = EmbeddingClient(EmbeddingConfig())
    vector = await client.embed("What does a 70% rating mean?")
    vectors = await client.embed_batch(chunks)

    # Tests and custom providers: pass any LangChain Embeddings instance
    client = EmbeddingClient(config, model=DeterministicFakeEmbedding(size=8))
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional, Sequence

from langchain_core.embeddings import Embeddings
from langchain_core.rate_limiters import BaseRateLimiter

from docintel.config import EmbeddingConfig
from docintel.errors import (
    EmbeddingRateLimitError,
    EmbeddingServiceError,
    InvalidInputError,
    ServiceTimeoutError,
)
from docintel.utils.helpers import build_rate_limiter
from docintel.utils.retry import (
    RetryExhausted,
    call_with_backoff,
    is_rate_limit_error,
    provider_status,
)

logger = logging.getLogger(__name__)


def get_embedding_model(config: EmbeddingConfig) -> Embeddings:
    """
    Factory that returns a LangChain embedding model based on config.

    Each provider has its own LangChain integration package. We import
    them lazily (inside the if-branch) so you only need the package
    for the provider you actually use.

    Provider-side retries are turned off where the integration allows it;
    EmbeddingClient owns the retry policy.

    Args:
        config: EmbeddingConfig with provider, model_name, and optional model_kwargs.

    Returns:
        A LangChain Embeddings instance.

    Raises:
        ValueError: If the provider is not recognized.
        ImportError: If the required package for the provider is not installed.
    """
    provider = config.provider.lower()

    if provider == "openai":
        from langchain_openai import OpenAIEmbeddings

        kwargs = {"max_retries": 0, "timeout": config.timeout_seconds}
        if config.dimensions and config.model_name.startswith("text-embedding-3"):
            kwargs["dimensions"] = config.dimensions
        kwargs.update(config.model_kwargs)
        return OpenAIEmbeddings(model=config.model_name, **kwargs)

    elif provider == "huggingface":
        try:
            from langchain_huggingface import HuggingFaceEmbeddings
        except ImportError:
            raise ImportError(
                "HuggingFace embeddings require langchain-huggingface. "
                "Install with: pip install docintel[huggingface]"
            )

        return HuggingFaceEmbeddings(
            model_name=config.model_name,
            model_kwargs=config.model_kwargs,
        )

    elif provider == "cohere":
        try:
            from langchain_cohere import CohereEmbeddings
        except ImportError:
            raise ImportError(
                "Cohere embeddings require langchain-cohere. "
                "Install with: pip install docintel[cohere]"
            )

        return CohereEmbeddings(
            model=config.model_name,
            **config.model_kwargs,
        )

    else:
        raise ValueError(
            f"Unknown embedding provider: '{config.provider}'. "
            f"Supported: 'openai', 'huggingface', 'cohere'. "
            f"For other providers, pass a LangChain Embeddings instance directly."
        )


class EmbeddingClient:
    """
    Async embedding client with retry, timeout and rate limiting.

    The rate limiter is an explicit object. Share one instance between
    clients that draw on the same provider quota; by default each client
    builds its own from config.requests_per_second.
    """

    def __init__(
        self,
        config: EmbeddingConfig,
        model: Optional[Embeddings] = None,
        rate_limiter: Optional[BaseRateLimiter] = None,
    ):
        self.config = config
        self.model = model if model is not None else get_embedding_model(config)
        self.rate_limiter = (
            rate_limiter if rate_limiter is not None
            else build_rate_limiter(config.requests_per_second)
        )

    @property
    def model_id(self) -> str:
        """Identifier stored with every vector this client produces."""
        return self.config.model_id

    async def embed(self, text: str) -> list[float]:
        """
        Embed a single text (a search query or one chunk).

        Raises:
            InvalidInputError: text is empty or not a string.
            EmbeddingRateLimitError: still rate limited after all attempts.
            EmbeddingServiceError: any other provider failure.
            ServiceTimeoutError: the provider did not answer in time.
        """
        self._check_texts([text])
        vector = await self._call(lambda: self.model.aembed_query(text), "embed")
        return self._check_vectors([vector], 1)[0]

    async def embed_batch(self, texts: Sequence[str]) -> list[list[float]]:
        """
        Embed many texts, returning one vector per text in input order.

        Sub-batches are sent one after another. A failure in any of them
        raises; nothing is dropped or returned partially.
        """
        texts = list(texts)
        if not texts:
            return []
        self._check_texts(texts)

        size = self.config.batch_size
        vectors: list[list[float]] = []
        for start in range(0, len(texts), size):
            batch = texts[start:start + size]
            result = await self._call(
                lambda batch=batch: self.model.aembed_documents(batch),
                f"embed_batch[{start}:{start + len(batch)}]",
            )
            vectors.extend(self._check_vectors(result, len(batch)))
        return vectors

    # ------------------------------------------------------------------

    async def _call(self, call: Callable[[], Awaitable], description: str):
        try:
            return await call_with_backoff(
                call,
                attempts=self.config.max_attempts,
                initial_delay=self.config.initial_backoff_seconds,
                timeout=self.config.timeout_seconds,
                should_retry=is_rate_limit_error,
                description=f"Embedding {description}",
                rate_limiter=self.rate_limiter,
            )
        except RetryExhausted as e:
            logger.error(
                "Embedding rate limit persisted after %d attempts", e.attempts,
                extra={"model": self.model_id},
            )
            raise EmbeddingRateLimitError(
                f"Embedding provider is rate limiting requests: {e.last_error}",
                status=provider_status(e.last_error) or 429,
                details={"model": self.model_id, "attempts": e.attempts},
            ) from e.last_error
        except asyncio.TimeoutError as e:
            raise ServiceTimeoutError(
                f"Embedding call timed out after {self.config.timeout_seconds}s",
                timeout_seconds=self.config.timeout_seconds,
                details={"model": self.model_id},
            ) from e
        except Exception as e:
            raise EmbeddingServiceError(
                f"Embedding provider error: {e}",
                status=provider_status(e),
                details={"model": self.model_id},
            ) from e

    def _check_texts(self, texts: list[str]) -> None:
        for i, text in enumerate(texts):
            if not isinstance(text, str):
                raise InvalidInputError(
                    f"Cannot embed {type(text).__name__}, expected str",
                    details={"position": i},
                )
            if not text.strip():
                raise InvalidInputError("Cannot embed empty text", details={"position": i})

    def _check_vectors(self, vectors, expected: int) -> list[list[float]]:
        if vectors is None or len(vectors) != expected:
            got = 0 if vectors is None else len(vectors)
            raise EmbeddingServiceError(
                f"Embedding provider returned {got} vectors for {expected} texts",
                details={"model": self.model_id},
            )

        checked = []
        for vector in vectors:
            vector = [float(x) for x in vector]
            if not vector:
                raise EmbeddingServiceError(
                    "Embedding provider returned an empty vector",
                    details={"model": self.model_id},
                )
            if self.config.dimensions is not None and len(vector) != self.config.dimensions:
                raise EmbeddingServiceError(
                    f"Embedding has {len(vector)} dimensions, expected {self.config.dimensions}",
                    details={"model": self.model_id},
                )
            checked.append(vector)
        return checked

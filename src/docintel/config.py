"""
Configuration for the document intelligence pipeline.

Split into one config per concern so each stage module only receives
what it needs. ToolkitConfig bundles them all for convenience.

Usage:
    # Full config, passed to the facade
    config = ToolkitConfig()

    # Override specific parts
    config = ToolkitConfig(
        llm=LLMConfig(provider="anthropic", model_name="claude-sonnet-4-5-20250929"),
        chunking=ChunkingConfig(max_tokens=300, overlap_tokens=30),
    )

    # Standalone: use just one piece
    retriever_config = RetrieverConfig(document_threshold=0.7, top_k=8)
"""

from enum import Enum
from pathlib import Path
from typing import Any, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, model_validator

# Load .env from the project root (walks up from this file to find it).
# Provider API keys (OPENAI_API_KEY, ANTHROPIC_API_KEY, ...) are read by the
# LangChain integrations straight from the environment.
_env_path = Path(__file__).resolve().parent.parent.parent / ".env"
load_dotenv(_env_path)


# ---------------------------------------------------------------------------
# Enums: things with a genuinely fixed set of choices
# ---------------------------------------------------------------------------

class LLMProvider(str, Enum):
    """
    Supported LLM providers.

    Each provider needs a different LangChain class (ChatOpenAI vs
    ChatAnthropic), so we must know the exact set we can instantiate.
    """

    OPENAI = "openai"
    ANTHROPIC = "anthropic"


class VectorStoreType(str, Enum):
    """Supported vector store backends."""

    MEMORY = "memory"
    CHROMA = "chroma"


class TokenCounter(str, Enum):
    """
    How text length is measured for chunking and context budgets.

    WORDS is an approximation (one token per whitespace-delimited word)
    that needs no tokenizer download. TIKTOKEN counts real BPE tokens.
    """

    WORDS = "words"
    TIKTOKEN = "tiktoken"


# ---------------------------------------------------------------------------
# Per-concern configs
# ---------------------------------------------------------------------------

class LLMConfig(BaseModel):
    """
    LLM configuration.

    Used by: analysis/analyzer.py, generation/streaming.py, generation/titles.py

    The provider + model_name pair determines which LangChain chat model
    class gets instantiated.
    """

    provider: LLMProvider = Field(
        default=LLMProvider.OPENAI,
        description="Which LLM provider to use",
    )
    model_name: str = Field(
        default="gpt-4-turbo-preview",
        description="Model identifier (e.g. 'gpt-4o', 'claude-sonnet-4-5-20250929')",
    )
    temperature: float = Field(
        default=0.7,
        ge=0.0,
        le=2.0,
        description="Sampling temperature. 0 = deterministic, higher = more creative",
    )
    max_tokens: int = Field(
        default=4096,
        gt=0,
        description="Maximum tokens in the LLM response",
    )
    timeout_seconds: float = Field(
        default=60.0,
        gt=0,
        description="Per-request timeout passed to the provider client",
    )
    requests_per_second: Optional[float] = Field(
        default=None,
        gt=0,
        description="Client-side rate limit. None disables the limiter",
    )


class EmbeddingConfig(BaseModel):
    """
    Embedding model configuration.

    Used by: indexing/embeddings.py

    Provider is an open string (not an enum) because the embedding landscape
    keeps growing. The factory in indexing/embeddings.py maps known provider
    strings to LangChain classes and raises a clear error for unknown ones.

    The retry knobs implement the rate-limit policy: a 429 response is
    retried up to max_attempts times, sleeping initial_backoff_seconds and
    doubling after each attempt. Other provider errors are not retried.
    """

    provider: str = Field(
        default="openai",
        description="Embedding provider: 'openai', 'huggingface', 'cohere'",
    )
    model_name: str = Field(
        default="text-embedding-3-small",
        description="Embedding model identifier",
    )
    dimensions: Optional[int] = Field(
        default=1536,
        gt=0,
        description="Expected vector length. None skips the check",
    )
    model_kwargs: dict[str, Any] = Field(
        default_factory=dict,
        description="Extra kwargs passed to the embedding model constructor",
    )
    batch_size: int = Field(
        default=64,
        gt=0,
        description="Maximum texts per provider call in embed_batch",
    )
    max_attempts: int = Field(
        default=3,
        ge=1,
        description="Total attempts for a rate-limited call",
    )
    initial_backoff_seconds: float = Field(
        default=1.0,
        ge=0.0,
        description="First retry delay; doubles on each further attempt",
    )
    timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        description="Upper bound for a single provider call",
    )
    requests_per_second: Optional[float] = Field(
        default=None,
        gt=0,
        description="Client-side rate limit. None disables the limiter",
    )

    @property
    def model_id(self) -> str:
        """Identifier stored next to every vector this model produces."""
        return f"{self.provider.lower()}/{self.model_name}"


class ChunkingConfig(BaseModel):
    """
    Document chunking configuration.

    Used by: indexing/chunking.py

    Sizes are in tokens as measured by token_counter. The chunker splits on
    paragraphs, then lines, then sentences, then words, then characters.
    """

    max_tokens: int = Field(
        default=500,
        gt=0,
        description="Upper bound on the size of a single chunk",
    )
    overlap_tokens: int = Field(
        default=50,
        ge=0,
        description="Content shared between consecutive chunks",
    )
    token_counter: TokenCounter = Field(
        default=TokenCounter.WORDS,
        description="How chunk size is measured",
    )
    encoding_name: str = Field(
        default="cl100k_base",
        description="tiktoken encoding, only used with TokenCounter.TIKTOKEN",
    )

    @model_validator(mode="after")
    def validate_overlap(self) -> "ChunkingConfig":
        """Overlap must be smaller than chunk size, otherwise chunks would never advance."""
        if self.overlap_tokens >= self.max_tokens:
            raise ValueError(
                f"overlap_tokens ({self.overlap_tokens}) must be less than "
                f"max_tokens ({self.max_tokens})"
            )
        return self


class RetrieverConfig(BaseModel):
    """
    Retrieval configuration.

    Used by: retrieval/search.py

    Thresholds are cosine similarities; only strictly greater scores are
    returned. Both thresholds and top_k can be overridden per call.
    """

    document_threshold: float = Field(
        default=0.78,
        ge=-1.0,
        le=1.0,
        description="Minimum similarity for personal document chunks",
    )
    knowledge_threshold: float = Field(
        default=0.80,
        ge=-1.0,
        le=1.0,
        description="Minimum similarity for knowledge base entries",
    )
    top_k: int = Field(
        default=5,
        gt=0,
        description="Maximum results per scope",
    )
    include_global: bool = Field(
        default=True,
        description="Search the global knowledge base next to personal documents",
    )


class VectorStoreConfig(BaseModel):
    """
    Vector store configuration.

    Used by: indexing/vectorstore.py

    persist_directory is only relevant for Chroma. The in-memory store
    lives for the lifetime of the process.
    """

    store_type: VectorStoreType = Field(
        default=VectorStoreType.MEMORY,
        description="Vector store backend",
    )
    persist_directory: Optional[str] = Field(
        default=None,
        description="Directory to persist the vector store (Chroma only)",
    )
    chunk_collection: str = Field(
        default="document_chunks",
        description="Collection holding per-document chunks (Chroma only)",
    )
    knowledge_collection: str = Field(
        default="knowledge_entries",
        description="Collection holding knowledge base entries (Chroma only)",
    )


class AnalyzerConfig(BaseModel):
    """
    Document analysis configuration.

    Used by: analysis/analyzer.py

    max_concurrency bounds how many chunks are embedded and analyzed at
    once, which keeps the fan-out under the providers' rate limits.
    """

    max_concurrency: int = Field(
        default=4,
        gt=0,
        description="Chunks processed concurrently",
    )
    summary_attempts: int = Field(
        default=3,
        ge=1,
        description="Attempts for the final summarization call",
    )
    initial_backoff_seconds: float = Field(
        default=1.0,
        ge=0.0,
        description="First retry delay for LLM calls; doubles on each retry",
    )
    chunk_analysis_max_chars: int = Field(
        default=12000,
        gt=0,
        description="Chunk text longer than this is cut before the analysis prompt",
    )


class ContextConfig(BaseModel):
    """
    Context assembly configuration.

    Used by: generation/context.py

    budget_tokens covers retrieved fragments, prior analyses, conversation
    history and the new user message together.
    """

    budget_tokens: int = Field(
        default=6000,
        gt=0,
        description="Token budget for everything sent besides the system instruction",
    )
    max_history_messages: int = Field(
        default=10,
        ge=0,
        description="Most recent conversation messages to include",
    )
    min_recent_messages: int = Field(
        default=2,
        ge=0,
        description="Most recent history messages that are never truncated",
    )
    max_prior_analyses: int = Field(
        default=5,
        ge=0,
        description="Most recently uploaded analyzed documents to include",
    )
    token_counter: TokenCounter = Field(default=TokenCounter.WORDS)


class StreamingConfig(BaseModel):
    """
    Streaming completion configuration.

    Used by: generation/streaming.py
    """

    chunk_timeout_seconds: float = Field(
        default=60.0,
        gt=0,
        description="Longest wait for the next increment before giving up",
    )
    max_attempts: int = Field(
        default=3,
        ge=1,
        description="Attempts to open a stream the provider rate limits",
    )
    initial_backoff_seconds: float = Field(
        default=1.0,
        ge=0.0,
        description="First delay before reopening a rate-limited stream; doubles each time",
    )


# ---------------------------------------------------------------------------
# Top-level config
# ---------------------------------------------------------------------------

class ToolkitConfig(BaseModel):
    """
    Complete pipeline configuration.

    The facade receives this and passes slices to each stage:
        self.chunker = TextChunker(config.chunking)
        self.retriever = VectorRetriever(embedder, store, config.retriever)
        self.assembler = ContextAssembler(config.context)

    All sub-configs have sensible defaults, so ToolkitConfig() with
    no arguments gives you a working setup out of the box.
    """

    llm: LLMConfig = Field(default_factory=LLMConfig)
    analysis_llm: LLMConfig = Field(
        default_factory=lambda: LLMConfig(temperature=0.2),
        description="LLM used for chunk analysis and document summaries",
    )
    embedding: EmbeddingConfig = Field(default_factory=EmbeddingConfig)
    chunking: ChunkingConfig = Field(default_factory=ChunkingConfig)
    training_chunking: ChunkingConfig = Field(
        default_factory=lambda: ChunkingConfig(
            max_tokens=512, overlap_tokens=0, token_counter=TokenCounter.TIKTOKEN,
        ),
        description="Chunking used when training the knowledge base (512 BPE tokens per entry)",
    )
    retriever: RetrieverConfig = Field(default_factory=RetrieverConfig)
    vector_store: VectorStoreConfig = Field(default_factory=VectorStoreConfig)
    analyzer: AnalyzerConfig = Field(default_factory=AnalyzerConfig)
    context: ContextConfig = Field(default_factory=ContextConfig)
    streaming: StreamingConfig = Field(default_factory=StreamingConfig)

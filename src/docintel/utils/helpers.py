"""
Shared utility functions.

Helpers used across the pipeline: LLM factory, rate limiter factory,
text cleaning.
"""

from typing import Any, Optional

from langchain_core.language_models.chat_models import BaseChatModel
from langchain_core.rate_limiters import BaseRateLimiter, InMemoryRateLimiter

from docintel.config import LLMConfig, LLMProvider


def build_rate_limiter(requests_per_second: Optional[float]) -> Optional[BaseRateLimiter]:
    """
    Create a token-bucket rate limiter, or None when no limit is configured.

    The limiter is an explicit object: pass the same instance to every
    client that shares a provider quota (process- or request-scoped).
    """
    if requests_per_second is None:
        return None
    return InMemoryRateLimiter(
        requests_per_second=requests_per_second,
        check_every_n_seconds=min(0.1, 1.0 / requests_per_second),
        max_bucket_size=max(1, int(requests_per_second)),
    )


def get_llm(
    config: LLMConfig,
    rate_limiter: Optional[BaseRateLimiter] = None,
) -> BaseChatModel:
    """
    Factory that returns a LangChain chat model based on config.

    Same pattern as the embedding factory. Lazy imports, so you only
    need the package for the provider you actually use.

    Provider-side retries are disabled: retry policy lives in this package
    so rate-limit handling is the same for every provider.

    Args:
        config: LLMConfig with provider, model_name, temperature, max_tokens.
        rate_limiter: Shared limiter; built from config when omitted.

    Returns:
        A LangChain BaseChatModel instance.
    """
    limiter = rate_limiter or build_rate_limiter(config.requests_per_second)

    if config.provider == LLMProvider.OPENAI:
        from langchain_openai import ChatOpenAI

        return ChatOpenAI(
            model=config.model_name,
            temperature=config.temperature,
            max_tokens=config.max_tokens,
            timeout=config.timeout_seconds,
            max_retries=0,
            rate_limiter=limiter,
        )

    elif config.provider == LLMProvider.ANTHROPIC:
        from langchain_anthropic import ChatAnthropic

        return ChatAnthropic(
            model=config.model_name,
            temperature=config.temperature,
            max_tokens=config.max_tokens,
            timeout=config.timeout_seconds,
            max_retries=0,
            rate_limiter=limiter,
        )

    else:
        raise ValueError(
            f"Unknown LLM provider: '{config.provider}'. "
            f"Supported: 'openai', 'anthropic'."
        )


def message_text(response: Any) -> str:
    """
    Extract plain text from a LangChain message or message chunk.

    Chat models return AIMessage objects whose content is either a string
    or a list of content blocks (Anthropic). Text blocks are concatenated.
    """
    content = response.content if hasattr(response, "content") else response
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = []
        for block in content:
            if isinstance(block, str):
                parts.append(block)
            elif isinstance(block, dict) and block.get("type") == "text":
                parts.append(block.get("text", ""))
        return "".join(parts)
    return str(content)


def clean_text(text: str) -> str:
    """
    Normalize extracted text before chunking.

    Replaces tabs and NBSPs with spaces and drops trailing whitespace on
    each line. PDF extraction leaves a lot of both.
    """
    text = text.replace("\t", " ").replace("\u00a0", " ")
    return "\n".join(line.rstrip() for line in text.splitlines())

"""Shared utilities: LLM factory, rate limiting, retries, logging."""

from .helpers import build_rate_limiter, clean_text, get_llm, message_text
from .logger import configure_logging
from .retry import RetryExhausted, call_with_backoff, is_rate_limit_error, provider_status

__all__ = [
    "build_rate_limiter",
    "call_with_backoff",
    "clean_text",
    "configure_logging",
    "get_llm",
    "is_rate_limit_error",
    "message_text",
    "provider_status",
    "RetryExhausted",
]

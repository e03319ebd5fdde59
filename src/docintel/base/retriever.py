"""
Abstract base class for retrievers.

A retriever takes a query and an authenticated owner and returns the
fragments worth putting into the prompt. Retrieval sits on the chat path,
so the contract is fail-open: when the query cannot be embedded or the
store is unavailable, the result is empty and marked degraded instead of
raising. The only exception is a scope violation, which always propagates.
"""

from abc import ABC, abstractmethod
from typing import Optional

from docintel.models.result import RetrievalResult


class BaseRetriever(ABC):
    """
    Contract for retrievers.

    Every retriever returns a RetrievalResult, which wraps the ordered
    ContextFragments plus the query used and whether the result is a
    fallback.
    """

    @abstractmethod
    async def retrieve(
        self,
        query_text: str,
        owner_id: str,
        include_global: Optional[bool] = None,
        top_k: Optional[int] = None,
    ) -> RetrievalResult:
        """
        Retrieve fragments relevant to query_text for owner_id.

        Args:
            query_text: The user's message.
            owner_id: Authenticated owner; scopes every search.
            include_global: Also search global knowledge. None uses config.
            top_k: Per-scope result limit. None uses config.

        Returns:
            RetrievalResult with fragments ordered most relevant first.
        """
        ...

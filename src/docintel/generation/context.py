"""
Context assembly.

Builds what the chat model sees besides the system instruction, inside a
token budget:

    context block   retrieved fragments, most relevant first
                    then document analyses, most recently uploaded first
    messages        conversation history, oldest first
                    then the new user message, always last

When everything does not fit, pieces are dropped in this order until it
does:
    1. retrieved fragments, least relevant first
    2. document analyses, oldest upload first
    3. history messages, oldest first, but never the min_recent_messages
       most recent ones
The new user message is never dropped. If it alone (plus the protected
recent turns) exceeds the budget, the result is over budget and marked
truncated rather than silently losing the user's words.

Usage:
    assembler = ContextAssembler(ContextConfig(budget_tokens=6000))
    context = assembler.assemble(retrieval.fragments, documents, history, "What does 70% mean?")
    system = build_system_prompt(mode, context.context_text)
"""

import logging
from typing import Optional, Sequence

from docintel.config import ContextConfig
from docintel.errors import InvalidInputError
from docintel.indexing.chunking import get_token_counter
from docintel.models.chat import Message, MessageRole
from docintel.models.document import Document, DocumentStatus
from docintel.models.result import AssembledContext, ContextFragment, FragmentSource, PromptMessage

logger = logging.getLogger(__name__)

FRAGMENTS_HEADER = "Relevant document sections:"
ANALYSES_HEADER = "Document analyses:"


def format_fragment(fragment: ContextFragment) -> str:
    if fragment.source == FragmentSource.KNOWLEDGE and fragment.title:
        return f"{fragment.title}:\n{fragment.content}"
    return fragment.content


def format_analysis(document: Document) -> str:
    return f"{document.file_name} ({document.document_type.value}):\n{document.analysis}"


class ContextAssembler:
    """Orders, measures and truncates prompt context under a token budget."""

    def __init__(self, config: Optional[ContextConfig] = None):
        self.config = config or ContextConfig()
        self.count_tokens = get_token_counter(self.config.token_counter)

    def select_analyses(self, documents: Sequence[Document]) -> list[Document]:
        """Analyzed documents, most recently uploaded first, capped at max_prior_analyses."""
        analyzed = [
            d for d in documents
            if d.status == DocumentStatus.COMPLETED and d.analysis
        ]
        analyzed.sort(key=lambda d: d.created_at, reverse=True)
        return analyzed[:self.config.max_prior_analyses]

    def select_history(self, history: Sequence[Message]) -> list[Message]:
        """User and assistant turns in chronological order, capped at max_history_messages."""
        turns = [m for m in history if m.role != MessageRole.SYSTEM]
        turns.sort(key=lambda m: m.created_at)
        if self.config.max_history_messages == 0:
            return []
        return turns[-self.config.max_history_messages:]

    def assemble(
        self,
        fragments: Sequence[ContextFragment],
        prior_analyses: Sequence[Document],
        history: Sequence[Message],
        user_message: str,
        budget_tokens: Optional[int] = None,
    ) -> AssembledContext:
        """
        Assemble prompt context within budget_tokens (config default when None).

        Raises:
            InvalidInputError: user_message is empty.
        """
        if not user_message or not user_message.strip():
            raise InvalidInputError("User message is empty")
        budget = budget_tokens if budget_tokens is not None else self.config.budget_tokens

        kept_fragments = sorted(fragments, key=lambda f: -f.score)
        kept_analyses = self.select_analyses(prior_analyses)
        kept_history = self.select_history(history)

        fragment_sizes = [self.count_tokens(format_fragment(f)) for f in kept_fragments]
        analysis_sizes = [self.count_tokens(format_analysis(d)) for d in kept_analyses]
        history_sizes = [self.count_tokens(m.content) for m in kept_history]
        user_size = self.count_tokens(user_message)
        fragments_header = self.count_tokens(FRAGMENTS_HEADER)
        analyses_header = self.count_tokens(ANALYSES_HEADER)

        def total() -> int:
            # A section header is paid for only while its section has content
            headers = (fragments_header if kept_fragments else 0) + (analyses_header if kept_analyses else 0)
            return headers + sum(fragment_sizes) + sum(analysis_sizes) + sum(history_sizes) + user_size

        dropped_fragments = dropped_analyses = dropped_history = 0
        protected = min(self.config.min_recent_messages, len(kept_history))

        while total() > budget:
            if kept_fragments:
                kept_fragments.pop()
                fragment_sizes.pop()
                dropped_fragments += 1
            elif kept_analyses:
                kept_analyses.pop()
                analysis_sizes.pop()
                dropped_analyses += 1
            elif len(kept_history) > protected:
                kept_history.pop(0)
                history_sizes.pop(0)
                dropped_history += 1
            else:
                logger.warning(
                    "Context exceeds budget (%d > %d) with only protected content left",
                    total(), budget,
                )
                break

        context = AssembledContext(
            context_text=self._render(kept_fragments, kept_analyses),
            messages=[PromptMessage(role=m.role, content=m.content) for m in kept_history]
            + [PromptMessage(role=MessageRole.USER, content=user_message)],
            fragments_used=kept_fragments,
            dropped_fragments=dropped_fragments,
            dropped_analyses=dropped_analyses,
            dropped_history=dropped_history,
            total_tokens=total(),
            truncated=bool(dropped_fragments or dropped_analyses or dropped_history) or total() > budget,
        )

        if context.truncated:
            logger.info(
                "Context truncated: dropped %d fragments, %d analyses, %d messages",
                dropped_fragments, dropped_analyses, dropped_history,
            )
        return context

    @staticmethod
    def _render(fragments: Sequence[ContextFragment], analyses: Sequence[Document]) -> str:
        sections = []
        if fragments:
            sections.append(
                FRAGMENTS_HEADER + "\n\n" + "\n\n".join(format_fragment(f) for f in fragments)
            )
        if analyses:
            sections.append(
                ANALYSES_HEADER + "\n\n" + "\n\n".join(format_analysis(d) for d in analyses)
            )
        return "\n\n".join(sections)

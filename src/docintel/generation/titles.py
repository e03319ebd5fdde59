"""
Conversation title generation.

Asks the model for a short title from the last few turns of a chat.
Titles are cosmetic, so any failure falls back to DEFAULT_TITLE instead
of raising.
"""

import logging
from typing import Sequence

from langchain_core.language_models.chat_models import BaseChatModel
from langchain_core.messages import HumanMessage, SystemMessage

from docintel.models.chat import Message, MessageRole
from docintel.utils.helpers import message_text

logger = logging.getLogger(__name__)

DEFAULT_TITLE = "New Conversation"
MAX_TITLE_WORDS = 6
TITLE_CONTEXT_MESSAGES = 3

TITLE_SYSTEM_PROMPT = (
    "You are a title generator. Generate a concise, descriptive title "
    f"(maximum {MAX_TITLE_WORDS} words) for this conversation. Respond with ONLY "
    "the title, no additional text or punctuation."
)


class TitleGenerator:
    def __init__(self, llm: BaseChatModel):
        self.llm = llm

    async def generate(self, messages: Sequence[Message]) -> str:
        """Title for a conversation, from its last three non-system messages."""
        turns = [m for m in messages if m.role != MessageRole.SYSTEM][-TITLE_CONTEXT_MESSAGES:]
        if not turns:
            return DEFAULT_TITLE

        transcript = "\n".join(f"{m.role.value}: {m.content}" for m in turns)
        try:
            response = await self.llm.ainvoke([
                SystemMessage(content=TITLE_SYSTEM_PROMPT),
                HumanMessage(content=transcript),
            ])
        except Exception as e:
            logger.warning("Title generation failed, using default: %s", e)
            return DEFAULT_TITLE

        return clean_title(message_text(response))


def clean_title(raw: str) -> str:
    """Strip quotes and trailing punctuation, cap the word count."""
    title = raw.strip().strip("\"'`").strip()
    title = title.rstrip(".!?:;,").strip()
    words = title.split()
    if not words:
        return DEFAULT_TITLE
    return " ".join(words[:MAX_TITLE_WORDS])

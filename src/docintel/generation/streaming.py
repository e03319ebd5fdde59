"""
Streaming chat completions.

ChatCompletionStreamer.stream_completion() is an async generator of
StreamEvents:

    TOKEN* (COMPLETE | ERROR)

Tokens are forwarded as soon as the model produces them. After the model
finishes, the full answer (exactly the concatenated tokens) is persisted
as an assistant Message and COMPLETE carries it. If the model fails or
stalls mid-stream, the tokens already sent stand, nothing is persisted,
and an ERROR event ends the stream.

A stream the provider rate limits before its first token is reopened with
exponential backoff, up to max_attempts times.

Cancellation: when the consumer stops iterating (breaks out of the loop,
calls aclose(), or its task is cancelled) the upstream model stream is
closed right away, so no further increments are requested and nothing is
persisted.

Usage:
    streamer = ChatCompletionStreamer(llm, message_store)
    async for event in streamer.stream_completion(context, session_id, ChatMode.CLAIMS):
        await websocket.send_json(event.to_dict())
"""

import asyncio
import logging
from contextlib import aclosing
from typing import Any, AsyncIterator, Optional

from langchain_core.language_models.chat_models import BaseChatModel
from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage

from docintel.base.repository import MessageStore
from docintel.config import StreamingConfig
from docintel.generation.prompts import build_system_prompt
from docintel.models.chat import ChatMode, Message, MessageRole, StreamEvent, StreamEventType
from docintel.models.result import AssembledContext
from docintel.utils.helpers import message_text
from docintel.utils.retry import RetryExhausted, call_with_backoff, is_rate_limit_error

logger = logging.getLogger(__name__)

TIMEOUT = "timeout"
RATE_LIMITED = "rate_limited"
PROVIDER_ERROR = "provider_error"
PERSISTENCE_ERROR = "persistence_error"

ERROR_MESSAGES = {
    TIMEOUT: "The assistant took too long to respond. Please try again.",
    RATE_LIMITED: "The assistant is handling too many requests right now. Please try again shortly.",
    PROVIDER_ERROR: "An error occurred while generating the response. Please try again.",
    PERSISTENCE_ERROR: "The response could not be saved. Please try again.",
}


def to_langchain_messages(context: AssembledContext, mode: ChatMode) -> list[BaseMessage]:
    """System instruction with the context block, then the conversation."""
    messages: list[BaseMessage] = [SystemMessage(content=build_system_prompt(mode, context.context_text))]
    for message in context.messages:
        if message.role == MessageRole.ASSISTANT:
            messages.append(AIMessage(content=message.content))
        elif message.role == MessageRole.USER:
            messages.append(HumanMessage(content=message.content))
        else:
            messages.append(SystemMessage(content=message.content))
    return messages


class ChatCompletionStreamer:
    """
    Streams one completion per call and persists the finished answer.

    One producer (the model), one consumer (the caller). The generator
    holds no state between calls, so concurrent sessions can share one
    streamer.
    """

    def __init__(
        self,
        llm: BaseChatModel,
        message_store: MessageStore,
        config: Optional[StreamingConfig] = None,
    ):
        self.llm = llm
        self.message_store = message_store
        self.config = config or StreamingConfig()

    async def stream_completion(
        self,
        context: AssembledContext,
        session_id: str,
        mode: ChatMode = ChatMode.CLAIMS,
    ) -> AsyncIterator[StreamEvent]:
        timeout = self.config.chunk_timeout_seconds
        parts: list[str] = []

        try:
            upstream, chunk = await self._open(to_langchain_messages(context, mode))
            async with aclosing(upstream):
                while chunk is not None:
                    text = message_text(chunk)
                    if text:
                        parts.append(text)
                        yield StreamEvent(event=StreamEventType.TOKEN, text=text, index=len(parts) - 1)
                    chunk = await self._next(upstream)
        except asyncio.TimeoutError:
            logger.warning(
                "No increment within %.1fs, ending stream after %d tokens", timeout, len(parts),
                extra={"session_id": session_id},
            )
            yield self._error(TIMEOUT)
            return
        except RetryExhausted as e:
            logger.error(
                "Completion stream still rate limited after %d attempts: %s", e.attempts, e.last_error,
                extra={"session_id": session_id},
            )
            yield self._error(RATE_LIMITED)
            return
        except Exception as e:
            code = RATE_LIMITED if is_rate_limit_error(e) else PROVIDER_ERROR
            logger.error(
                "Completion stream failed after %d tokens: %s", len(parts), e,
                extra={"session_id": session_id},
            )
            yield self._error(code)
            return

        answer = "".join(parts)
        if not answer.strip():
            logger.warning("Model returned an empty answer", extra={"session_id": session_id})
            yield StreamEvent(event=StreamEventType.COMPLETE, index=len(parts))
            return

        message = Message(session_id=session_id, role=MessageRole.ASSISTANT, content=answer)
        try:
            message = self.message_store.append(message)
        except Exception:
            logger.exception("Failed to persist assistant message", extra={"session_id": session_id})
            yield self._error(PERSISTENCE_ERROR)
            return

        logger.info(
            "Streamed %d tokens into message %s", len(parts), message.id,
            extra={"session_id": session_id},
        )
        yield StreamEvent(event=StreamEventType.COMPLETE, index=len(parts), message=message)

    async def _open(self, messages: list[BaseMessage]) -> tuple[AsyncIterator, Optional[Any]]:
        """
        Start the model stream and wait for its first increment.

        Rate limits are only retried here: once a token has reached the
        consumer, reopening the stream would repeat it.
        """

        async def attempt() -> tuple[AsyncIterator, Optional[Any]]:
            upstream = self.llm.astream(messages)
            try:
                first = await self._next(upstream)
            except BaseException:
                await upstream.aclose()
                raise
            return upstream, first

        return await call_with_backoff(
            attempt,
            attempts=self.config.max_attempts,
            initial_delay=self.config.initial_backoff_seconds,
            timeout=None,
            should_retry=is_rate_limit_error,
            description="Completion stream",
        )

    async def _next(self, upstream: AsyncIterator) -> Optional[Any]:
        """Next increment within the chunk timeout, or None at the end."""
        try:
            return await asyncio.wait_for(upstream.__anext__(), timeout=self.config.chunk_timeout_seconds)
        except StopAsyncIteration:
            return None

    @staticmethod
    def _error(code: str) -> StreamEvent:
        return StreamEvent(event=StreamEventType.ERROR, code=code, text=ERROR_MESSAGES[code])

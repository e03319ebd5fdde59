"""Tests for streamed chat completions: ordering, cancellation, errors, persistence."""

import asyncio

import pytest
from langchain_core.language_models.fake_chat_models import GenericFakeChatModel
from langchain_core.messages import AIMessage, HumanMessage, SystemMessage

from docintel.config import StreamingConfig
from docintel.generation.streaming import (
    PERSISTENCE_ERROR,
    PROVIDER_ERROR,
    RATE_LIMITED,
    TIMEOUT,
    ChatCompletionStreamer,
    to_langchain_messages,
)
from docintel.models.chat import ChatMode, MessageRole, StreamEventType
from docintel.models.result import AssembledContext, PromptMessage

from conftest import ProviderHTTPError, ScriptedStreamingModel

SESSION = "session-1"


@pytest.fixture
def context():
    return AssembledContext(
        context_text="Relevant document sections:\n\nPTSD rated at 70%.",
        messages=[
            PromptMessage(role=MessageRole.USER, content="Hi"),
            PromptMessage(role=MessageRole.ASSISTANT, content="Hello, how can I help?"),
            PromptMessage(role=MessageRole.USER, content="What does 70% mean?"),
        ],
    )


async def collect(stream):
    return [event async for event in stream]


class TestToLangchainMessages:

    def test_system_then_conversation(self, context):
        messages = to_langchain_messages(context, ChatMode.MENTAL_HEALTH)

        assert isinstance(messages[0], SystemMessage)
        assert "PTSD rated at 70%." in messages[0].content
        assert "Mental Health Support" in messages[0].content
        assert [type(m) for m in messages[1:]] == [HumanMessage, AIMessage, HumanMessage]
        assert messages[-1].content == "What does 70% mean?"


class TestCompletion:

    @pytest.mark.asyncio
    async def test_tokens_then_complete(self, context, messages, streaming_config):
        llm = ScriptedStreamingModel(["A 70% ", "rating ", "means ", "severe impairment."])
        streamer = ChatCompletionStreamer(llm, messages, streaming_config)

        events = await collect(streamer.stream_completion(context, SESSION))

        tokens = [e for e in events if e.event == StreamEventType.TOKEN]
        assert [e.index for e in tokens] == [0, 1, 2, 3]
        assert events[-1].event == StreamEventType.COMPLETE
        answer = "A 70% rating means severe impairment."
        assert "".join(e.text for e in tokens) == answer
        assert events[-1].message.content == answer

        [stored] = messages.list_messages(SESSION)
        assert stored.role == MessageRole.ASSISTANT
        assert stored.content == answer
        assert stored.id == events[-1].message.id

    @pytest.mark.asyncio
    async def test_with_langchain_fake_model(self, context, messages, streaming_config):
        llm = GenericFakeChatModel(messages=iter([AIMessage(content="File a supplemental claim")]))
        streamer = ChatCompletionStreamer(llm, messages, streaming_config)

        events = await collect(streamer.stream_completion(context, SESSION))

        assert events[-1].event == StreamEventType.COMPLETE
        assert events[-1].message.content == "File a supplemental claim"
        assert sum(1 for e in events if e.event == StreamEventType.TOKEN) > 1

    @pytest.mark.asyncio
    async def test_mode_reaches_system_prompt(self, context, messages, streaming_config):
        llm = ScriptedStreamingModel(["ok"])
        streamer = ChatCompletionStreamer(llm, messages, streaming_config)

        await collect(streamer.stream_completion(context, SESSION, ChatMode.EDUCATION))

        assert "Education & GI Bill Support" in llm.received[0].content

    @pytest.mark.asyncio
    async def test_empty_answer_not_persisted(self, context, messages, streaming_config):
        streamer = ChatCompletionStreamer(ScriptedStreamingModel(["", "  "]), messages, streaming_config)

        events = await collect(streamer.stream_completion(context, SESSION))

        assert events[-1].event == StreamEventType.COMPLETE
        assert events[-1].message is None
        assert messages.list_messages(SESSION) == []


class TestCancellation:

    @pytest.mark.asyncio
    async def test_consumer_stops_after_three_tokens(self, context, messages, streaming_config):
        """Closing the stream closes the model stream and persists nothing."""
        llm = ScriptedStreamingModel([f"token{i} " for i in range(20)])
        streamer = ChatCompletionStreamer(llm, messages, streaming_config)

        stream = streamer.stream_completion(context, SESSION)
        received = []
        async for event in stream:
            received.append(event)
            if len(received) == 3:
                break
        await stream.aclose()

        assert llm.closed
        produced_at_close = llm.produced
        assert produced_at_close == 3
        await asyncio.sleep(0.01)
        assert llm.produced == produced_at_close
        assert messages.list_messages(SESSION) == []

    @pytest.mark.asyncio
    async def test_task_cancellation(self, context, messages, streaming_config):
        llm = ScriptedStreamingModel(["one ", "two ", "three"], stall_after=2)
        streamer = ChatCompletionStreamer(llm, messages, streaming_config)
        seen = []

        async def consume():
            async for event in streamer.stream_completion(context, SESSION):
                seen.append(event)

        task = asyncio.create_task(consume())
        while len(seen) < 2:
            await asyncio.sleep(0)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert llm.closed
        assert messages.list_messages(SESSION) == []


class TestErrors:

    @pytest.mark.asyncio
    async def test_provider_failure_mid_stream(self, context, messages, streaming_config):
        llm = ScriptedStreamingModel(["partial ", "answer ", "never"], fail_after=2)
        streamer = ChatCompletionStreamer(llm, messages, streaming_config)

        events = await collect(streamer.stream_completion(context, SESSION))

        assert [e.event for e in events] == [
            StreamEventType.TOKEN, StreamEventType.TOKEN, StreamEventType.ERROR,
        ]
        assert events[-1].code == PROVIDER_ERROR
        assert messages.list_messages(SESSION) == []

    @pytest.mark.asyncio
    async def test_rate_limited(self, context, messages, streaming_config):
        llm = ScriptedStreamingModel(["x"], fail_after=0, error=ProviderHTTPError(429))
        events = await collect(ChatCompletionStreamer(llm, messages, streaming_config).stream_completion(context, SESSION))

        assert [e.event for e in events] == [StreamEventType.ERROR]
        assert events[-1].code == RATE_LIMITED
        assert llm.calls == streaming_config.max_attempts
        assert llm.closed

    @pytest.mark.asyncio
    async def test_rate_limit_at_open_is_retried(self, context, messages, streaming_config):
        llm = ScriptedStreamingModel(["ok"], open_failures=1, error=ProviderHTTPError(429))
        events = await collect(ChatCompletionStreamer(llm, messages, streaming_config).stream_completion(context, SESSION))

        assert llm.calls == 2
        assert [(e.event, e.text) for e in events[:-1]] == [(StreamEventType.TOKEN, "ok")]
        assert events[-1].event == StreamEventType.COMPLETE
        assert [m.content for m in messages.list_messages(SESSION)] == ["ok"]

    @pytest.mark.asyncio
    async def test_rate_limit_after_tokens_not_retried(self, context, messages, streaming_config):
        llm = ScriptedStreamingModel(["partial ", "rest"], fail_after=1, error=ProviderHTTPError(429))
        events = await collect(ChatCompletionStreamer(llm, messages, streaming_config).stream_completion(context, SESSION))

        assert llm.calls == 1
        assert [e.event for e in events] == [StreamEventType.TOKEN, StreamEventType.ERROR]
        assert events[-1].code == RATE_LIMITED

    @pytest.mark.asyncio
    async def test_non_rate_limit_error_at_open_not_retried(self, context, messages, streaming_config):
        llm = ScriptedStreamingModel(["x"], open_failures=1)
        events = await collect(ChatCompletionStreamer(llm, messages, streaming_config).stream_completion(context, SESSION))

        assert llm.calls == 1
        assert events[-1].code == PROVIDER_ERROR

    @pytest.mark.asyncio
    async def test_stalled_stream_times_out(self, context, messages):
        llm = ScriptedStreamingModel(["first ", "second"], stall_after=1)
        streamer = ChatCompletionStreamer(llm, messages, StreamingConfig(chunk_timeout_seconds=0.05))

        events = await collect(streamer.stream_completion(context, SESSION))

        assert [e.event for e in events] == [StreamEventType.TOKEN, StreamEventType.ERROR]
        assert events[-1].code == TIMEOUT
        assert llm.closed
        assert messages.list_messages(SESSION) == []

    @pytest.mark.asyncio
    async def test_persistence_failure(self, context, messages, streaming_config, monkeypatch):
        def broken_append(message):
            raise RuntimeError("database is locked")

        monkeypatch.setattr(messages, "append", broken_append)
        streamer = ChatCompletionStreamer(ScriptedStreamingModel(["done"]), messages, streaming_config)

        events = await collect(streamer.stream_completion(context, SESSION))

        assert events[-1].event == StreamEventType.ERROR
        assert events[-1].code == PERSISTENCE_ERROR

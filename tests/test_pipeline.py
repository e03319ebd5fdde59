"""End-to-end tests for the DocumentIntelligence facade, with fake providers."""

import pytest

from docintel import DocumentIntelligence, ToolkitConfig
from docintel.config import AnalyzerConfig, ChunkingConfig, EmbeddingConfig, StreamingConfig
from docintel.errors import DocumentNotFoundError, InvalidInputError, SessionNotFoundError
from docintel.models.chat import ChatMode, MessageRole, StreamEventType
from docintel.models.document import DocumentStatus, DocumentType
from docintel.models.knowledge import TrainingRecord
from docintel.pipeline import MAX_UPLOAD_BYTES

from conftest import (
    QUERY_VECTOR,
    AnalystChatModel,
    ScriptedStreamingModel,
    StaticExtractor,
    TableEmbeddings,
)

DOC_TEXT = "Service connection for PTSD is granted with an evaluation of 70 percent."
QUESTION = "What does my rating decision say about PTSD?"
KNOWLEDGE = "A 70 percent evaluation reflects occupational and social impairment."


@pytest.fixture
def chat_model():
    return ScriptedStreamingModel(["Your ", "rating ", "is ", "70%."])


@pytest.fixture
def app(chat_model, fake_chat):
    config = ToolkitConfig(
        embedding=EmbeddingConfig(dimensions=4, initial_backoff_seconds=0.0),
        analyzer=AnalyzerConfig(initial_backoff_seconds=0.0),
        streaming=StreamingConfig(chunk_timeout_seconds=5.0, initial_backoff_seconds=0.0),
        training_chunking=ChunkingConfig(max_tokens=512, overlap_tokens=0),
    )
    embeddings = TableEmbeddings(vectors={
        DOC_TEXT: QUERY_VECTOR,
        QUESTION: QUERY_VECTOR,
        KNOWLEDGE: QUERY_VECTOR,
    })
    app = DocumentIntelligence(
        config,
        llm=chat_model,
        analysis_llm=AnalystChatModel(summary="**Summary:** PTSD granted at 70%."),
        embedding_model=embeddings,
        extractor=StaticExtractor(DOC_TEXT),
    )
    # Titles come from a separate fake so the streaming model only answers chat
    app.titles.llm = fake_chat
    return app


def upload(app, owner="user-1", name="Rating Decision.pdf", size=2048, media_type="application/pdf"):
    return app.register_upload(owner, name, f"/uploads/{name}", size, media_type)


async def collect(stream):
    return [event async for event in stream]


class TestRegisterUpload:

    def test_creates_pending_document(self, app):
        doc = upload(app)
        assert doc.status == DocumentStatus.PENDING
        assert doc.document_type == DocumentType.RATING_DECISION
        assert app.get_document("user-1", doc.id) == doc

    def test_empty_file_rejected(self, app):
        with pytest.raises(InvalidInputError, match="empty"):
            upload(app, size=0)

    def test_oversized_file_rejected(self, app):
        with pytest.raises(InvalidInputError, match="10MB"):
            upload(app, size=MAX_UPLOAD_BYTES + 1)

    def test_unsupported_type_rejected(self, app):
        with pytest.raises(InvalidInputError, match="Unsupported"):
            upload(app, name="scan.png", media_type="image/png")

    def test_owner_required(self, app):
        with pytest.raises(InvalidInputError):
            upload(app, owner="")


class TestDocuments:

    @pytest.mark.asyncio
    async def test_analyze_document(self, app):
        doc = upload(app)

        report = await app.analyze_document("user-1", doc.id)

        assert report.succeeded
        stored = app.get_document("user-1", doc.id)
        assert stored.analysis == "**Summary:** PTSD granted at 70%."
        assert app.store.count_chunks(doc.id) == 1

    def test_other_owner_cannot_see_document(self, app):
        doc = upload(app, owner="user-1")
        with pytest.raises(DocumentNotFoundError):
            app.get_document("user-2", doc.id)
        assert app.list_documents("user-2") == []

    @pytest.mark.asyncio
    async def test_delete_removes_chunks_first(self, app):
        doc = upload(app)
        await app.analyze_document("user-1", doc.id)

        assert app.delete_document("user-1", doc.id) == 1
        assert app.store.count_chunks(doc.id) == 0
        with pytest.raises(DocumentNotFoundError):
            app.get_document("user-1", doc.id)


class TestChat:

    @pytest.mark.asyncio
    async def test_answer_uses_documents_and_persists_both_turns(self, app, chat_model):
        doc = upload(app)
        await app.analyze_document("user-1", doc.id)

        events = await collect(app.chat("user-1", "s1", QUESTION))

        assert events[-1].event == StreamEventType.COMPLETE
        system_prompt = chat_model.received[0].content
        assert DOC_TEXT in system_prompt
        assert "PTSD granted at 70%." in system_prompt

        stored = app.messages.list_messages("s1")
        assert [m.role for m in stored] == [MessageRole.USER, MessageRole.ASSISTANT]
        assert stored[0].content == QUESTION
        assert stored[1].content == "Your rating is 70%."

    @pytest.mark.asyncio
    async def test_other_owners_documents_not_used(self, app, chat_model):
        doc = upload(app, owner="user-2")
        await app.analyze_document("user-2", doc.id)

        await collect(app.chat("user-1", "s1", QUESTION))

        assert DOC_TEXT not in chat_model.received[0].content

    @pytest.mark.asyncio
    async def test_trained_knowledge_reaches_prompt(self, app, chat_model):
        [outcome] = await app.train([TrainingRecord(title="Rating Schedule", content=KNOWLEDGE)])
        assert outcome.success

        await collect(app.chat("user-1", "s1", QUESTION))

        assert "Rating Schedule:\n" + KNOWLEDGE in chat_model.received[0].content

    @pytest.mark.asyncio
    async def test_mode_detected_from_message(self, app, chat_model):
        await collect(app.chat("user-1", "s1", "Can I use the GI Bill for college?"))
        assert "Education & GI Bill Support" in chat_model.received[0].content

    @pytest.mark.asyncio
    async def test_explicit_mode_wins(self, app, chat_model):
        await collect(app.chat("user-1", "s1", QUESTION, mode=ChatMode.SURVIVOR))
        assert "Survivor & Dependent Benefits" in chat_model.received[0].content

    @pytest.mark.asyncio
    async def test_closing_early_persists_only_the_question(self, app, chat_model):
        stream = app.chat("user-1", "s1", QUESTION)
        received = []
        async for event in stream:
            received.append(event)
            if len(received) == 3:
                break
        await stream.aclose()

        assert chat_model.closed
        assert [m.role for m in app.messages.list_messages("s1")] == [MessageRole.USER]

    @pytest.mark.asyncio
    async def test_empty_message_rejected(self, app):
        with pytest.raises(InvalidInputError):
            await collect(app.chat("user-1", "s1", "  "))

    @pytest.mark.asyncio
    async def test_generate_title_stored_on_session(self, app):
        await collect(app.chat("user-1", "s1", QUESTION))

        assert await app.generate_title("user-1", "s1") == "Understanding My PTSD Rating"
        assert app.messages.get_session("s1").title == "Understanding My PTSD Rating"

    @pytest.mark.asyncio
    async def test_other_owners_session_rejected(self, app):
        await collect(app.chat("user-1", "s1", QUESTION))

        with pytest.raises(SessionNotFoundError):
            await collect(app.chat("user-2", "s1", "Show me their history"))
        with pytest.raises(SessionNotFoundError):
            await app.generate_title("user-2", "s1")
        assert len(app.messages.list_messages("s1")) == 2

    @pytest.mark.asyncio
    async def test_title_for_unknown_session(self, app):
        with pytest.raises(SessionNotFoundError):
            await app.generate_title("user-1", "never-started")

"""
Document chat example: upload, analyze, then ask about it.

This script:
    1. Registers a local PDF as an upload
    2. Analyzes it (extract, chunk, embed, summarize)
    3. Streams answers to a few questions

Needs OPENAI_API_KEY in the environment or in .env.

Run:
    pip install -e .
    python examples/document_chat.py data/rating_decision.pdf
"""

import asyncio
import os
import sys

from docintel import DocumentIntelligence, ToolkitConfig
from docintel.config import LLMConfig, RetrieverConfig, VectorStoreConfig
from docintel.models.chat import StreamEventType
from docintel.models.knowledge import TrainingRecord
from docintel.utils import configure_logging

USER_ID = "demo-veteran"


async def main(pdf_path: str):
    configure_logging("INFO")

    app = DocumentIntelligence(ToolkitConfig(
        llm=LLMConfig(provider="openai", model_name="gpt-4o-mini"),
        retriever=RetrieverConfig(top_k=6),
        vector_store=VectorStoreConfig(store_type="chroma", persist_directory="./chroma_db"),
    ))

    # --- Knowledge base: shared with every user ---
    await app.train([
        TrainingRecord(
            title="Intent to File",
            content="Submitting an intent to file sets a potential effective date "
                    "and gives you one year to complete the claim.",
            metadata={"tags": ["claims"], "source": "va.gov"},
        ),
    ])

    # --- Upload and analysis ---
    document = app.register_upload(
        USER_ID,
        os.path.basename(pdf_path),
        pdf_path,
        os.path.getsize(pdf_path),
        "application/pdf",
    )
    report = await app.analyze_document(USER_ID, document.id)
    if not report.succeeded:
        print(f"Analysis failed: {report.document.error_message}")
        return

    print(report.document.analysis)
    print(f"\n{report.chunks_indexed}/{report.chunks_total} chunks indexed")

    # --- Chat ---
    questions = [
        "What did the decision grant and at what percentage?",
        "Is there anything I should appeal?",
    ]
    for question in questions:
        print(f"\nQ: {question}\nA: ", end="")
        async for event in app.chat(USER_ID, "demo-session", question):
            if event.event == StreamEventType.TOKEN:
                print(event.text, end="", flush=True)
            elif event.event == StreamEventType.ERROR:
                print(f"\n[{event.code}] {event.text}")
        print()

    print(f"\nConversation title: {await app.generate_title(USER_ID, 'demo-session')}")


if __name__ == "__main__":
    if len(sys.argv) != 2:
        sys.exit("usage: python examples/document_chat.py <file.pdf>")
    asyncio.run(main(sys.argv[1]))

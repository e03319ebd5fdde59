"""
Text extraction from stored files.

FileTextExtractor is the default extraction collaborator: it reads files
from the local filesystem, where the locator is a path. Other storage
backends (object stores, OCR services) implement BaseTextExtractor.

Supported media types:
    application/pdf   pypdf page text, pages separated by blank lines
    text/plain        UTF-8
    application/json  UTF-8, validated as JSON and passed through as text

Also home to classify_document_type(), which tags an upload from its file
name the way users tend to name VA paperwork.
"""

import asyncio
import json
import logging
from pathlib import Path

from pypdf import PdfReader
from pypdf.errors import PyPdfError

from docintel.base.indexer import BaseTextExtractor
from docintel.errors import ExtractionError
from docintel.models.document import DocumentType
from docintel.utils.helpers import clean_text

logger = logging.getLogger(__name__)

PDF = "application/pdf"
TEXT = "text/plain"
JSON = "application/json"
SUPPORTED_MEDIA_TYPES = (PDF, TEXT, JSON)


def classify_document_type(file_name: str) -> DocumentType:
    """
    Guess the document type from its file name.

    "c&p" or "cp exam" → examination report, "rating" or "decision" →
    rating decision, "dbq" → questionnaire, anything else → other.
    """
    name = file_name.lower()
    if "c&p" in name or "cp exam" in name:
        return DocumentType.EXAM_REPORT
    if "rating" in name or "decision" in name:
        return DocumentType.RATING_DECISION
    if "dbq" in name:
        return DocumentType.QUESTIONNAIRE
    return DocumentType.OTHER


class FileTextExtractor(BaseTextExtractor):
    """Extracts text from local files. File IO runs in a worker thread."""

    async def extract(self, locator: str, media_type: str) -> str:
        if media_type not in SUPPORTED_MEDIA_TYPES:
            raise ExtractionError(
                "Unsupported file type. Please upload PDF, TXT, or JSON files only.",
                locator=locator,
                media_type=media_type,
            )

        path = Path(locator)
        if not path.is_file():
            raise ExtractionError("File not found in storage", locator=locator, media_type=media_type)

        if media_type == PDF:
            return await asyncio.to_thread(self._extract_pdf, path)
        return await asyncio.to_thread(self._extract_text, path, media_type)

    def _extract_pdf(self, path: Path) -> str:
        try:
            reader = PdfReader(path)
            if reader.is_encrypted:
                # Owner-password-only PDFs open with an empty user password
                if not reader.decrypt(""):
                    raise ExtractionError(
                        "Cannot process encrypted or password-protected PDF files",
                        locator=str(path),
                        media_type=PDF,
                    )

            pages = []
            for number, page in enumerate(reader.pages, start=1):
                try:
                    page_text = page.extract_text() or ""
                except Exception as e:
                    raise ExtractionError(
                        f"Failed to extract text from page {number}",
                        locator=str(path),
                        media_type=PDF,
                        details={"error": str(e)},
                    ) from e
                if page_text.strip():
                    pages.append(page_text.strip())
        except ExtractionError:
            raise
        except (PyPdfError, ValueError, OSError) as e:
            raise ExtractionError(
                "Invalid or corrupted PDF file",
                locator=str(path),
                media_type=PDF,
                details={"error": str(e)},
            ) from e

        if not pages:
            raise ExtractionError(
                "No readable text found in PDF. The file might be scanned or protected.",
                locator=str(path),
                media_type=PDF,
            )

        logger.info("Extracted %d pages of text from %s", len(pages), path.name)
        return clean_text("\n\n".join(pages))

    def _extract_text(self, path: Path, media_type: str) -> str:
        try:
            text = path.read_bytes().decode("utf-8")
        except UnicodeDecodeError as e:
            raise ExtractionError(
                "File is not valid UTF-8 text",
                locator=str(path),
                media_type=media_type,
            ) from e
        except OSError as e:
            raise ExtractionError(
                f"Failed to read file: {e}",
                locator=str(path),
                media_type=media_type,
            ) from e

        if media_type == JSON and text.strip():
            try:
                json.loads(text)
            except json.JSONDecodeError as e:
                raise ExtractionError(
                    "File is not valid JSON",
                    locator=str(path),
                    media_type=media_type,
                    details={"line": e.lineno},
                ) from e

        return clean_text(text)

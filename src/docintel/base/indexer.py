"""
Abstract base classes for text extraction and chunking.

Why separate BaseTextExtractor and BaseChunker?
    Extraction depends on where files live and what format they are in
    (local PDFs, object storage, OCR services). Chunking only ever sees
    plain text. Splitting them lets the analyzer swap either side:
        extractor = FileTextExtractor()
        chunker = TextChunker(config)
        segments = chunker.chunk(await extractor.extract(path, "application/pdf"))
"""

from abc import ABC, abstractmethod
from typing import Union

from docintel.config import ChunkingConfig


class BaseTextExtractor(ABC):
    """
    Contract for the text extraction collaborator.

    Given a stored file reference and its media type, return the file's
    plain text. An extractor never chunks and never returns None: a file
    that cannot be read raises ExtractionError, and a readable file with
    no text returns an empty string (the analyzer decides what that means).
    """

    @abstractmethod
    async def extract(self, locator: str, media_type: str) -> str:
        """
        Extract plain text from a stored file.

        Args:
            locator: Storage reference (path, URL, key) the extractor understands.
            media_type: MIME type recorded at upload.

        Returns:
            The extracted text, possibly empty.

        Raises:
            ExtractionError: The file is missing, unreadable, encrypted or of
                an unsupported type.
        """
        ...


class BaseChunker(ABC):
    """
    Contract for text chunkers.

    A chunker splits text into ordered segments that fit the embedding
    model's input. Every chunker receives a ChunkingConfig so the caller
    controls segment size and overlap.
    """

    def __init__(self, config: ChunkingConfig):
        self.config = config

    @abstractmethod
    def chunk(self, text: Union[str, bytes]) -> list[str]:
        """
        Split text into segments.

        Args:
            text: Extracted text. Bytes are accepted and must decode as UTF-8.

        Returns:
            Ordered segments; empty when the text has no content.

        Raises:
            InvalidInputError: The input is binary rather than text.
        """
        ...

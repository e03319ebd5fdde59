"""
Text chunking.

Splits extracted document text into segments small enough to embed. The
splitter tries natural boundaries in order:

    paragraphs ("\\n\\n") → lines ("\\n") → sentences (". ") → words (" ") → characters

Segments are verbatim slices of the input: separators stay attached to the
end of the piece they close and no whitespace is stripped, so the segments
read in order (minus the shared overlap) give back the original text.

Sizes are measured in tokens by a pluggable counter:
    "words"     one token per whitespace-delimited word (default, no deps)
    "tiktoken"  exact BPE token count for OpenAI models

Usage:
    from docintel.indexing.chunking import TextChunker, chunk_text
    from docintel.config import ChunkingConfig

    chunker = TextChunker(ChunkingConfig(max_tokens=500, overlap_tokens=50))
    segments = chunker.chunk(text)

    # One-off, without a config object
    segments = chunk_text(text, max_tokens=500, overlap_tokens=50)
"""

import logging
from typing import Callable, Union

from langchain_text_splitters import RecursiveCharacterTextSplitter

from docintel.base.indexer import BaseChunker
from docintel.config import ChunkingConfig, TokenCounter
from docintel.errors import InvalidInputError

logger = logging.getLogger(__name__)

SEPARATORS = ["\n\n", "\n", ". ", " ", ""]


def count_words(text: str) -> int:
    return len(text.split())


def get_token_counter(
    counter: Union[TokenCounter, str] = TokenCounter.WORDS,
    encoding_name: str = "cl100k_base",
) -> Callable[[str], int]:
    """
    Return a function that measures text length in tokens.

    Raises:
        ValueError: Unknown counter name.
        ImportError: "tiktoken" requested but tiktoken is not installed.
    """
    counter = TokenCounter(counter)

    if counter == TokenCounter.WORDS:
        return count_words

    elif counter == TokenCounter.TIKTOKEN:
        try:
            import tiktoken
        except ImportError:
            raise ImportError(
                "The tiktoken token counter requires tiktoken. "
                "Install with: pip install tiktoken"
            )

        # tiktoken caches encodings, so only the first count loads the BPE file
        return lambda text: len(
            tiktoken.get_encoding(encoding_name).encode(text, disallowed_special=())
        )

    raise ValueError(f"Unknown token counter: '{counter}'")


def ensure_text(text: Union[str, bytes]) -> str:
    """
    Return text as str, rejecting binary content.

    Raises:
        InvalidInputError: Bytes that are not valid UTF-8, or text that
            contains NUL characters (a sure sign of binary data).
    """
    if isinstance(text, bytes):
        try:
            text = text.decode("utf-8")
        except UnicodeDecodeError as e:
            raise InvalidInputError(
                "Input is binary content, not text",
                details={"position": e.start, "reason": e.reason},
            ) from e
    if not isinstance(text, str):
        raise InvalidInputError(f"Expected text, got {type(text).__name__}")
    if "\x00" in text:
        raise InvalidInputError(
            "Input contains NUL characters and cannot be treated as text",
            details={"position": text.index("\x00")},
        )
    return text


class TextChunker(BaseChunker):
    """
    Recursive boundary-aware chunker.

    RecursiveCharacterTextSplitter with a token length function instead of
    character count, sentence boundaries added between lines and words,
    and separators kept on the piece they end.
    """

    def __init__(self, config: ChunkingConfig):
        super().__init__(config)
        self.count_tokens = get_token_counter(config.token_counter, config.encoding_name)
        self._splitter = RecursiveCharacterTextSplitter(
            chunk_size=config.max_tokens,
            chunk_overlap=config.overlap_tokens,
            length_function=self.count_tokens,
            separators=SEPARATORS,
            keep_separator="end",
            strip_whitespace=False,
        )

    def chunk(self, text: Union[str, bytes]) -> list[str]:
        """
        Split text into ordered segments of at most max_tokens tokens.

        Whitespace-only pieces are folded into the previous segment (or the
        next one when they lead the text), so no characters are lost. An
        empty or whitespace-only input gives [].
        """
        text = ensure_text(text)
        if not text.strip():
            return []

        segments: list[str] = []
        leading = ""
        for piece in self._splitter.split_text(text):
            if piece.strip():
                segments.append(leading + piece)
                leading = ""
            elif segments:
                segments[-1] += piece
            else:
                leading += piece

        logger.debug(
            "Chunked %d tokens into %d segments",
            self.count_tokens(text), len(segments),
        )
        return segments


def chunk_text(
    text: Union[str, bytes],
    max_tokens: int,
    overlap_tokens: int,
    token_counter: Union[TokenCounter, str] = TokenCounter.WORDS,
) -> list[str]:
    """Split text with a one-off chunker. See TextChunker.chunk()."""
    config = ChunkingConfig(
        max_tokens=max_tokens,
        overlap_tokens=overlap_tokens,
        token_counter=token_counter,
    )
    return TextChunker(config).chunk(text)

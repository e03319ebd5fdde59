from .analyzer import DocumentAnalyzer
from .extraction import FileTextExtractor, classify_document_type

__all__ = [
    "DocumentAnalyzer",
    "FileTextExtractor",
    "classify_document_type",
]

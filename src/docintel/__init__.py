"""Retrieval-augmented document intelligence for veteran-assistance chat."""

from .config import ToolkitConfig
from .errors import DocIntelError
from .pipeline import DocumentIntelligence

__version__ = "0.1.0"

__all__ = [
    "DocIntelError",
    "DocumentIntelligence",
    "ToolkitConfig",
]

from .search import VectorRetriever, to_fragment

__all__ = [
    "VectorRetriever",
    "to_fragment",
]

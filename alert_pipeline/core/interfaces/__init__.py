"""
Core interfaces and abstract base classes for the pipeline.
"""

from .document_store import DocumentStore, QueryFilter, SortOption, SERVER_TIMESTAMP

__all__ = [
    "DocumentStore",
    "QueryFilter",
    "SortOption",
    "SERVER_TIMESTAMP",
]

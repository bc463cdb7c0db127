"""
RDF-QueryBase Storage Layer.

Saved parameterized queries with execution history.
"""

from rdf_querybase.storage.queries import (
    QueryExecution,
    SavedQuery,
    SavedQueryManager,
    analyze_query,
)

__all__ = [
    "QueryExecution",
    "SavedQuery",
    "SavedQueryManager",
    "analyze_query",
]

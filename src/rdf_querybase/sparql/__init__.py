"""
SPARQL syntax tree support for RDF-QueryBase.

Parses SPARQL 1.1 queries and updates into dataclass nodes, walks and
rewrites their graph patterns, and serializes them back to text.
"""

from rdf_querybase.sparql.parser import SPARQLParser, parse_query
from rdf_querybase.sparql.serializer import SPARQLSerializer, serialize_query
from rdf_querybase.sparql.walker import PatternRewriter, iter_patterns, iter_select_queries
from rdf_querybase.sparql import ast

__all__ = [
    "SPARQLParser",
    "parse_query",
    "SPARQLSerializer",
    "serialize_query",
    "PatternRewriter",
    "iter_patterns",
    "iter_select_queries",
    "ast",
]

"""
Output column detection.

The output columns of a stored query are the names its outermost SELECT
projects. Aliased expressions contribute their alias. Anything that is not
an explicit SELECT projection has no column list.
"""

import logging
from enum import Enum
from typing import Union

from rdf_querybase.sparql.ast import (
    Query, SelectQuery, ConstructQuery, AskQuery, DescribeQuery,
    ProjectionExpression, UpdateRequest, Variable,
)
from rdf_querybase.params.detector import as_query

logger = logging.getLogger(__name__)


class QueryType(Enum):
    """Form of a SPARQL request."""
    SELECT = "select"
    CONSTRUCT = "construct"
    ASK = "ask"
    DESCRIBE = "describe"
    UPDATE = "update"
    UNKNOWN = "unknown"


def detect_query_type(query: Union[str, Query]) -> QueryType:
    """Classify a query by its parsed form."""
    tree = as_query(query)
    if isinstance(tree, SelectQuery):
        return QueryType.SELECT
    if isinstance(tree, ConstructQuery):
        return QueryType.CONSTRUCT
    if isinstance(tree, AskQuery):
        return QueryType.ASK
    if isinstance(tree, DescribeQuery):
        return QueryType.DESCRIBE
    if isinstance(tree, UpdateRequest):
        return QueryType.UPDATE
    raise TypeError(f"Unknown query type: {type(tree).__name__}")


def detect_output_columns(query: Union[str, Query]) -> list[str]:
    """
    Names of the columns a SELECT query returns, in projection order.

    ``SELECT ?s (COUNT(?o) AS ?c) ?p`` gives ``["s", "c", "p"]``.
    SELECT *, CONSTRUCT, ASK, DESCRIBE and updates give ``[]``. Nested
    sub-SELECT projections are not outputs of the query.
    """
    tree = as_query(query)
    if not isinstance(tree, SelectQuery) or tree.is_select_all():
        return []

    columns = []
    for item in tree.variables:
        if isinstance(item, ProjectionExpression):
            columns.append(item.variable.name)
        elif isinstance(item, Variable):
            columns.append(item.name)
        else:
            raise TypeError(f"Unknown projection item: {type(item).__name__}")
    return columns

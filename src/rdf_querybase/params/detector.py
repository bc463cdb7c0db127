"""
Parameter detection for stored SPARQL queries.

A query exposes two kinds of parameter slots:

- VALUES clauses with a row where every variable is UNDEF. Each such
  clause is one parameter group, named by its variables.
- LIMIT / OFFSET integers written with a ``000`` prefix. ``LIMIT 000123``
  is the limit parameter ``"123"``; it still evaluates to 123 if sent
  unchanged.
"""

import logging
from typing import Union

from rdf_querybase.sparql.ast import Query, ValuesClause
from rdf_querybase.sparql.parser import parse_query
from rdf_querybase.sparql.walker import iter_patterns, iter_select_queries
from rdf_querybase.params.models import DetectedParameters, LimitOffsetParameters

logger = logging.getLogger(__name__)

PLACEHOLDER_PREFIX = "000"


def as_query(query: Union[str, Query]) -> Query:
    """Parse SPARQL text, or pass an already parsed tree through."""
    if isinstance(query, Query):
        return query
    return parse_query(query)


def placeholder_id(lexical: str | None) -> str | None:
    """
    Identifier carried by a LIMIT/OFFSET integer, or None for an ordinary one.

    The prefix must be followed by at least one digit, so ``000`` on its
    own is a plain zero.
    """
    if lexical and lexical.startswith(PLACEHOLDER_PREFIX) and len(lexical) > len(PLACEHOLDER_PREFIX):
        return lexical[len(PLACEHOLDER_PREFIX):]
    return None


def parameter_clauses(query: Query) -> list[ValuesClause]:
    """VALUES clauses that hold a fully unbound row, in lexical order."""
    return [
        pattern for pattern in iter_patterns(query)
        if isinstance(pattern, ValuesClause) and pattern.has_unbound_row()
    ]


def detect_parameter_groups(query: Union[str, Query]) -> list[list[str]]:
    """
    Find the VALUES clauses that can be bound at execution time.

    Args:
        query: SPARQL text or parsed query

    Returns:
        One list of variable names per eligible clause, in lexical order
    """
    tree = as_query(query)
    groups: list[list[str]] = []
    for clause in parameter_clauses(tree):
        names = []
        for variable in clause.variables:
            if variable.name not in names:
                names.append(variable.name)
        groups.append(names)
    logger.debug(f"Detected {len(groups)} VALUES parameter group(s)")
    return groups


def detect_limit_offset_parameters(query: Union[str, Query]) -> LimitOffsetParameters:
    """Find placeholder LIMIT and OFFSET clauses in the query and its sub-SELECTs."""
    tree = as_query(query)
    limits: list[str] = []
    offsets: list[str] = []
    for select in iter_select_queries(tree):
        limit_id = placeholder_id(select.limit)
        if limit_id is not None:
            limits.append(limit_id)
        offset_id = placeholder_id(select.offset)
        if offset_id is not None:
            offsets.append(offset_id)
    return LimitOffsetParameters(limit=limits, offset=offsets)


def detect_parameters(query: Union[str, Query]) -> DetectedParameters:
    """Detect every parameter slot of a query."""
    tree = as_query(query)
    limit_offset = detect_limit_offset_parameters(tree)
    return DetectedParameters(
        values_parameters=detect_parameter_groups(tree),
        limit_parameters=limit_offset.limit,
        offset_parameters=limit_offset.offset,
    )

"""
Graph pattern traversal and rewriting.

Both the iterator and the rewriter visit patterns in lexical order,
starting from the WHERE clause of a query (or of each update operation),
and descend into groups, OPTIONAL, UNION branches, MINUS, GRAPH, SERVICE,
EXISTS / NOT EXISTS inside FILTER and BIND expressions, and sub-SELECTs.

Solution modifiers and trailing VALUES blocks are not graph patterns and
are never visited by the pattern iterator.
"""

from dataclasses import replace
from typing import Iterator, Optional

from rdf_querybase.sparql.ast import (
    ExistsExpression, Expression,
    BasicGraphPattern, GroupPattern, OptionalPattern, MinusPattern,
    UnionPattern, GraphPattern, ServicePattern, Filter, Bind,
    ValuesClause, SubSelect,
    Query, PatternQuery, ModifyQuery, UpdateRequest,
)


def _roots(query: Query) -> list:
    """The WHERE groups of a query or update request."""
    if isinstance(query, PatternQuery):
        return [query.where] if query.where is not None else []
    if isinstance(query, UpdateRequest):
        return [op.where for op in query.operations
                if isinstance(op, ModifyQuery) and op.where is not None]
    raise TypeError(f"Unknown query type: {type(query).__name__}")


def iter_patterns(node, enter_subselects: bool = True) -> Iterator:
    """
    Yield every graph pattern reachable from ``node`` in pre-order.

    Args:
        node: A Query, UpdateRequest, or graph pattern
        enter_subselects: Whether to descend into sub-SELECT bodies

    Yields:
        Graph pattern nodes, parents before children
    """
    if isinstance(node, Query):
        for root in _roots(node):
            yield from iter_patterns(root, enter_subselects)
        return

    yield node

    if isinstance(node, (BasicGraphPattern, ValuesClause)):
        return
    if isinstance(node, GroupPattern):
        for child in node.patterns:
            yield from iter_patterns(child, enter_subselects)
    elif isinstance(node, (OptionalPattern, MinusPattern, GraphPattern, ServicePattern)):
        yield from iter_patterns(node.group, enter_subselects)
    elif isinstance(node, UnionPattern):
        for group in node.groups:
            yield from iter_patterns(group, enter_subselects)
    elif isinstance(node, (Filter, Bind)):
        for token in node.expression.tokens:
            if isinstance(token, ExistsExpression):
                yield from iter_patterns(token.group, enter_subselects)
    elif isinstance(node, SubSelect):
        if enter_subselects and node.query.where is not None:
            yield from iter_patterns(node.query.where, enter_subselects)
    else:
        raise TypeError(f"Unknown graph pattern: {type(node).__name__}")


def iter_select_queries(query: Query) -> Iterator[PatternQuery]:
    """
    Yield nested sub-SELECTs innermost first, then the query itself.

    This is the lexical order of their solution modifiers.
    """
    for pattern in iter_patterns(query, enter_subselects=False):
        if isinstance(pattern, SubSelect):
            yield from iter_select_queries(pattern.query)
    if isinstance(query, PatternQuery):
        yield query


class PatternRewriter:
    """
    Copy-on-write rewriter over graph patterns.

    Subclasses override ``rewrite_values`` and/or ``rewrite_modifiers``.
    Nodes that no hook changes are returned as-is, so an untouched subtree
    is shared with the input and a changed one is rebuilt along its path
    with ``dataclasses.replace``. The input tree is never mutated.
    """

    def rewrite_values(self, clause: ValuesClause) -> ValuesClause:
        return clause

    def rewrite_modifiers(self, query: PatternQuery) -> PatternQuery:
        return query

    def rewrite(self, query: Query) -> Query:
        if isinstance(query, UpdateRequest):
            operations = [self._operation(op) for op in query.operations]
            if all(new is old for new, old in zip(operations, query.operations)):
                return query
            return replace(query, operations=operations)
        if isinstance(query, PatternQuery):
            return self._pattern_query(query)
        raise TypeError(f"Unknown query type: {type(query).__name__}")

    def _operation(self, op):
        if isinstance(op, ModifyQuery) and op.where is not None:
            where = self._pattern(op.where)
            if where is not op.where:
                return replace(op, where=where)
        return op

    def _pattern_query(self, query: PatternQuery) -> PatternQuery:
        where = self._pattern(query.where) if query.where is not None else None
        if where is not query.where:
            query = replace(query, where=where)
        return self.rewrite_modifiers(query)

    def _patterns(self, patterns: list) -> Optional[list]:
        """Rewrite a list; None when nothing changed."""
        rewritten = [self._pattern(p) for p in patterns]
        if all(new is old for new, old in zip(rewritten, patterns)):
            return None
        return rewritten

    def _expression(self, expression: Expression) -> Expression:
        tokens = []
        changed = False
        for token in expression.tokens:
            if isinstance(token, ExistsExpression):
                group = self._pattern(token.group)
                if group is not token.group:
                    token = replace(token, group=group)
                    changed = True
            tokens.append(token)
        return replace(expression, tokens=tokens) if changed else expression

    def _pattern(self, node):
        if isinstance(node, BasicGraphPattern):
            return node
        if isinstance(node, ValuesClause):
            return self.rewrite_values(node)
        if isinstance(node, GroupPattern):
            patterns = self._patterns(node.patterns)
            return node if patterns is None else replace(node, patterns=patterns)
        if isinstance(node, (OptionalPattern, MinusPattern, GraphPattern, ServicePattern)):
            group = self._pattern(node.group)
            return node if group is node.group else replace(node, group=group)
        if isinstance(node, UnionPattern):
            groups = self._patterns(node.groups)
            return node if groups is None else replace(node, groups=groups)
        if isinstance(node, (Filter, Bind)):
            expression = self._expression(node.expression)
            return node if expression is node.expression else replace(node, expression=expression)
        if isinstance(node, SubSelect):
            query = self._pattern_query(node.query)
            return node if query is node.query else replace(node, query=query)
        raise TypeError(f"Unknown graph pattern: {type(node).__name__}")

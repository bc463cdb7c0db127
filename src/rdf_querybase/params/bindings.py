"""
Binding application: turning a parameterized query into an executable one.

Only parameter clauses are rewritten: a VALUES clause with at least one
placeholder row (every variable UNDEF) whose variables the binding set
covers. Its placeholder rows are dropped, its bound rows are kept in
front, and one row per binding row is appended. Clauses without a
placeholder row are fixed restrictions and stay as written.

Blank nodes can never appear in VALUES, so a bnode binding aborts the call
with IllegalBindingType. IRIs, datatypes and language tags that the SPARQL
grammar would not accept abort it with BindingError. Other problems are
logged and skipped.
"""

import logging
import re
from dataclasses import replace
from typing import Any, Mapping, Optional, Union

from rdf_querybase.errors import ArgumentMismatchError, BindingError, IllegalBindingType
from rdf_querybase.sparql.ast import IRI, Literal, Query, PatternQuery, ValuesClause, XSD_STRING
from rdf_querybase.sparql.parser import IRIREF_BODY, LANGTAG
from rdf_querybase.sparql.serializer import serialize_query
from rdf_querybase.sparql.walker import PatternRewriter
from rdf_querybase.params.detector import as_query, parameter_clauses, placeholder_id
from rdf_querybase.params.models import BindingSet, TypedValue

logger = logging.getLogger(__name__)

_IRIREF_RE = re.compile(IRIREF_BODY)
_LANGTAG_RE = re.compile(LANGTAG)


def _checked(pattern: re.Pattern, text: str, what: str, variable: str, clause: str) -> str:
    if pattern.fullmatch(text) is None:
        raise BindingError(f"Invalid {what} {text!r} for variable '{variable}' in {clause}")
    return text


def typed_value_to_term(value: TypedValue, variable: str, clause: str) -> Optional[Union[IRI, Literal]]:
    """
    Convert one SPARQL-JSON term to a VALUES cell.

    Returns None (UNDEF) for unknown kinds.

    Raises:
        IllegalBindingType: For blank nodes
        BindingError: For an IRI, datatype or language tag that is not
            valid SPARQL
    """
    if value.type == "uri":
        return IRI(_checked(_IRIREF_RE, value.value, "IRI", variable, clause))
    if value.type == "literal":
        if value.lang and value.datatype:
            logger.warning(
                f"Literal for ?{variable} has both xml:lang and datatype, using the language tag"
            )
        if value.lang:
            language = _checked(_LANGTAG_RE, value.lang, "language tag", variable, clause)
            return Literal(value.value, language=language)
        if value.datatype and value.datatype != XSD_STRING:
            datatype = _checked(_IRIREF_RE, value.datatype, "datatype IRI", variable, clause)
            return Literal(value.value, datatype=IRI(datatype))
        return Literal(value.value)
    if value.type == "bnode":
        raise IllegalBindingType(
            "bnode", variable, clause, "blank nodes are not allowed in VALUES"
        )
    logger.warning(f"Unsupported binding type '{value.type}' for ?{variable}, leaving it UNDEF")
    return None


def _is_placeholder(row: list) -> bool:
    return all(cell is None for cell in row)


def _rebind(clause: ValuesClause, rows: list[dict[str, TypedValue]], convert) -> ValuesClause:
    """Replace the placeholder rows of ``clause`` with rows built from ``rows``."""
    kept = [row for row in clause.rows if not _is_placeholder(row)]
    new_rows = []
    for row in rows:
        cells = []
        for variable in clause.variables:
            value = row.get(variable.name)
            cells.append(None if value is None else convert(value, variable.name))
        new_rows.append(cells)
    logger.debug(
        f"Rewrote {clause.describe()}: kept {len(kept)} row(s), added {len(new_rows)}"
    )
    return replace(clause, rows=kept + new_rows)


class _ValuesBinder(PatternRewriter):
    """Binds one BindingSet into every parameter clause it covers."""

    def __init__(self, binding_set: BindingSet):
        self.binding_set = binding_set
        self.header = set(binding_set.header)

    def rewrite_values(self, clause: ValuesClause) -> ValuesClause:
        if not clause.has_unbound_row():
            return clause

        missing = [v.name for v in clause.variables if v.name not in self.header]
        if missing:
            logger.warning(
                f"Pattern variables not fully covered by bindings, leaving {clause.describe()} "
                f"unchanged (missing: {', '.join(missing)})"
            )
            return clause

        if not self.binding_set.rows:
            return clause

        description = clause.describe()
        return _rebind(
            clause,
            self.binding_set.rows,
            lambda value, name: typed_value_to_term(value, name, description),
        )


def apply_bindings(
    query: Union[str, Query],
    bindings: Union[BindingSet, Mapping[str, Any], None],
    accept_results_format: bool = True,
) -> str:
    """
    Bind runtime values into the parameter clauses of a query.

    Args:
        query: SPARQL text or parsed query
        bindings: A BindingSet, or its JSON form
        accept_results_format: Also accept SPARQL-JSON ``results.bindings``
            documents, so one query's results can feed another

    Returns:
        The rewritten query as SPARQL text

    Raises:
        SPARQLSyntaxError: If the query does not parse
        IllegalBindingType: If a blank node is bound into a VALUES clause
        BindingError: If an IRI, datatype or language tag is not valid SPARQL
    """
    tree = as_query(query)

    if isinstance(bindings, BindingSet):
        binding_set = bindings
    else:
        try:
            binding_set = BindingSet.from_json(bindings, accept_results_format=accept_results_format)
        except ValueError as e:
            logger.warning(f"Ignoring malformed binding set, query left unchanged: {e}")
            return serialize_query(tree)

    return serialize_query(_ValuesBinder(binding_set).rewrite(tree))


# =============================================================================
# Strict positional arguments
# =============================================================================

def _argument_set(data: Any, index: int) -> BindingSet:
    if isinstance(data, BindingSet):
        return data
    try:
        return BindingSet.from_json(data, accept_results_format=False)
    except ValueError as e:
        raise ArgumentMismatchError(f"Argument set at index {index} is malformed: {e}") from e


class _ArgumentBinder(PatternRewriter):
    """Binds the i-th argument set into the i-th parameter clause."""

    def __init__(self, assignments: dict[int, tuple[int, BindingSet]]):
        # id of the clause object -> (1-based position, argument set)
        self.assignments = assignments

    def rewrite_values(self, clause: ValuesClause) -> ValuesClause:
        if id(clause) not in self.assignments:
            return clause
        position, argument_set = self.assignments[id(clause)]

        def convert(value: TypedValue, name: str):
            if value.type not in ("uri", "literal"):
                raise IllegalBindingType(
                    value.type, name, f"argument set {position}",
                    "only 'uri' and 'literal' are supported",
                )
            return typed_value_to_term(value, name, clause.describe())

        return _rebind(clause, argument_set.rows, convert)


def apply_arguments(query: Union[str, Query], argument_sets: list) -> str:
    """
    Bind argument sets positionally: set i fills the i-th parameter clause.

    Each argument set looks like ``{head: {vars}, arguments: [rows]}`` (a
    BindingSet is accepted too) and its header must name exactly the
    clause's variables.

    Raises:
        ArgumentMismatchError: On a count or header mismatch
        IllegalBindingType: For a binding that is not a uri or literal
    """
    tree = as_query(query)
    clauses = parameter_clauses(tree)

    if len(argument_sets) != len(clauses):
        raise ArgumentMismatchError(
            f"Mismatch: Found {len(clauses)} UNDEF VALUES clauses, "
            f"but received {len(argument_sets)} argument sets."
        )

    assignments: dict[int, tuple[int, BindingSet]] = {}
    for index, (clause, data) in enumerate(zip(clauses, argument_sets)):
        argument_set = _argument_set(data, index)
        expected = [v.name for v in clause.variables]
        if set(argument_set.header) != set(expected):
            raise ArgumentMismatchError(
                f"Variable mismatch for VALUES clause {index + 1}. "
                f"Query expects [{', '.join(expected)}], "
                f"arguments provide [{', '.join(argument_set.header)}]."
            )
        if not argument_set.rows:
            logger.warning(
                f"Argument set at index {index} has an empty arguments list. "
                f"Skipping modification for VALUES clause with variables [{', '.join(expected)}]."
            )
            continue
        assignments[id(clause)] = (index + 1, argument_set)

    return serialize_query(_ArgumentBinder(assignments).rewrite(tree))


# =============================================================================
# LIMIT / OFFSET placeholders
# =============================================================================

def _check_count(kind: str, identifier: str, value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise BindingError(
            f"{kind} parameter '{identifier}' must be a non-negative integer, got {value!r}"
        )
    return value


class _LimitOffsetBinder(PatternRewriter):
    """Substitutes mapped LIMIT and OFFSET placeholders in every query level."""

    def __init__(self, limit: Mapping[str, int], offset: Mapping[str, int]):
        self.limit = limit
        self.offset = offset

    def rewrite_modifiers(self, query: PatternQuery) -> PatternQuery:
        changes = {}
        limit_id = placeholder_id(query.limit)
        if limit_id is not None and limit_id in self.limit:
            changes["limit"] = str(_check_count("LIMIT", limit_id, self.limit[limit_id]))
        offset_id = placeholder_id(query.offset)
        if offset_id is not None and offset_id in self.offset:
            changes["offset"] = str(_check_count("OFFSET", offset_id, self.offset[offset_id]))
        return replace(query, **changes) if changes else query


def apply_limit_offset(
    query: Union[str, Query],
    limit: Optional[Mapping[str, int]] = None,
    offset: Optional[Mapping[str, int]] = None,
) -> str:
    """
    Substitute placeholder LIMIT / OFFSET values.

    Args:
        query: SPARQL text or parsed query
        limit: Placeholder identifier to limit, e.g. ``{"123": 50}``
        offset: Placeholder identifier to offset

    Placeholders without a mapping are left as written.

    Raises:
        BindingError: If a mapped value is not a non-negative integer
    """
    tree = as_query(query)
    binder = _LimitOffsetBinder(limit or {}, offset or {})
    return serialize_query(binder.rewrite(tree))

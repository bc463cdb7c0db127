"""
Abstract Syntax Tree (AST) nodes for SPARQL 1.1 queries and updates.

These classes represent the parsed structure of a query as a closed set of
node types, enabling parameter detection and binding to walk and rewrite
graph patterns without caring how the original text was laid out.

Expressions (FILTER, BIND, projections, solution modifiers) are kept as
token sequences. Only the graph patterns nested in EXISTS / NOT EXISTS
are structured, because nothing else needs expression structure.
"""

import re
from dataclasses import dataclass, field
from typing import Union, Optional


XSD = "http://www.w3.org/2001/XMLSchema#"
XSD_STRING = XSD + "string"
XSD_INTEGER = XSD + "integer"
XSD_DECIMAL = XSD + "decimal"
XSD_DOUBLE = XSD + "double"
XSD_BOOLEAN = XSD + "boolean"
RDF_TYPE = "http://www.w3.org/1999/02/22-rdf-syntax-ns#type"


# =============================================================================
# Term Types (subjects, predicates, objects, VALUES cells)
# =============================================================================

@dataclass(frozen=True)
class Variable:
    """
    A SPARQL variable (e.g., ?name, $person).

    The name is stored without its sigil.
    """
    name: str

    def __str__(self) -> str:
        return f"?{self.name}"


@dataclass(frozen=True)
class IRI:
    """A full IRI reference (<http://...>)."""
    value: str

    def __str__(self) -> str:
        return f"<{self.value}>"


@dataclass(frozen=True)
class PrefixedName:
    """
    A prefixed name (foaf:name).

    Kept apart from IRI so the query is re-emitted the way it was written;
    resolving against the prologue is not needed for parameterization.
    """
    prefix: str
    local: str = ""

    def __str__(self) -> str:
        return f"{self.prefix}:{self.local}"


_ESCAPES = {
    "\\": "\\\\",
    '"': '\\"',
    "\n": "\\n",
    "\r": "\\r",
    "\t": "\\t",
    "\b": "\\b",
    "\f": "\\f",
}

_NATIVE_FORMS = {
    XSD_INTEGER: r"[+-]?[0-9]+",
    XSD_DECIMAL: r"[+-]?[0-9]*\.[0-9]+",
    XSD_DOUBLE: r"[+-]?(?:[0-9]+\.[0-9]*|\.?[0-9]+)[eE][+-]?[0-9]+",
    XSD_BOOLEAN: r"true|false",
}


@dataclass(frozen=True)
class Literal:
    """
    An RDF Literal value.

    ``value`` holds the lexical form with escapes already decoded.
    Can have an optional language tag (@en) or datatype (^^xsd:integer).
    Numbers and booleans written without quotes parse to literals typed
    with the matching XSD datatype and are emitted unquoted again.
    """
    value: str
    language: Optional[str] = None
    datatype: Optional[Union[IRI, PrefixedName]] = None

    def is_native(self) -> bool:
        """True when the literal can be written without quotes."""

        if self.language or not isinstance(self.datatype, IRI):
            return False
        pattern = _NATIVE_FORMS.get(self.datatype.value)
        return pattern is not None and re.fullmatch(pattern, self.value) is not None

    def __str__(self) -> str:
        if self.is_native():
            return self.value
        quoted = '"' + "".join(_ESCAPES.get(ch, ch) for ch in self.value) + '"'
        if self.language:
            return f"{quoted}@{self.language}"
        if self.datatype is not None:
            return f"{quoted}^^{self.datatype}"
        return quoted


@dataclass(frozen=True)
class BlankNode:
    """A labelled blank node (_:b0)."""
    label: str

    def __str__(self) -> str:
        return f"_:{self.label}"


@dataclass(frozen=True)
class QuotedTriplePattern:
    """
    An RDF-Star quoted triple (<< s p o >>).

    Accepted wherever a term may appear in a triple pattern.
    """
    subject: "Term"
    predicate: "Term"
    object: "Term"

    def __str__(self) -> str:
        predicate = "a" if self.predicate == IRI(RDF_TYPE) else str(self.predicate)
        return f"<< {self.subject} {predicate} {self.object} >>"


# Type alias for any term that can appear in a triple pattern
Term = Union[Variable, IRI, PrefixedName, Literal, BlankNode, QuotedTriplePattern]


# =============================================================================
# Property Paths
# =============================================================================

@dataclass
class PathAlternative:
    """Alternative paths (p1 | p2)."""
    options: list["PropertyPath"]


@dataclass
class PathSequence:
    """Sequence paths (p1 / p2)."""
    steps: list["PropertyPath"]


@dataclass
class PathInverse:
    """Inverse path (^p)."""
    path: "PropertyPath"


@dataclass
class PathMod:
    """Path with a repetition modifier (p*, p+, p?)."""
    path: "PropertyPath"
    modifier: str


@dataclass
class PathNegated:
    """Negated property set (!p or !(p1 | ^p2))."""
    items: list["PropertyPath"]


@dataclass
class PathGroup:
    """A parenthesised path, kept so precedence survives re-emission."""
    path: "PropertyPath"


PropertyPath = Union[
    IRI, PrefixedName, PathAlternative, PathSequence,
    PathInverse, PathMod, PathNegated, PathGroup,
]


# =============================================================================
# Triple Patterns
# =============================================================================

@dataclass
class Collection:
    """An RDF collection ( a b c ); the empty collection is rdf:nil."""
    items: list["GraphNode"] = field(default_factory=list)


@dataclass
class PredicateObjects:
    """One verb and its comma-separated object list."""
    verb: Union[Variable, PropertyPath]
    objects: list["GraphNode"]


@dataclass
class BlankNodePropertyList:
    """An anonymous blank node with properties ([ p o ]); empty means []."""
    predicates: list[PredicateObjects] = field(default_factory=list)


GraphNode = Union[Term, Collection, BlankNodePropertyList]


@dataclass
class TriplePattern:
    """
    Triples sharing one subject.

    ``?s ex:p ?a , ?b ; ex:q ?c`` is a single TriplePattern with two
    PredicateObjects entries. ``predicates`` may be empty only when the
    subject is a blank node property list or a collection.
    """
    subject: GraphNode
    predicates: list[PredicateObjects] = field(default_factory=list)


# =============================================================================
# Expressions
# =============================================================================

@dataclass
class ExistsExpression:
    """EXISTS { ... } or NOT EXISTS { ... } inside an expression."""
    group: "GroupGraphPattern"
    negated: bool = False


@dataclass
class Expression:
    """
    An expression kept as its token sequence.

    Tokens are operator / keyword / function-name strings, terms, and
    ExistsExpression nodes. Parentheses are kept as "(" and ")" tokens.
    """
    tokens: list = field(default_factory=list)


@dataclass
class ProjectionExpression:
    """An aliased expression: (expr AS ?alias)."""
    expression: Expression
    variable: Variable


# =============================================================================
# Graph Patterns
# =============================================================================

@dataclass
class BasicGraphPattern:
    """A block of triple patterns matched conjunctively."""
    triples: list[TriplePattern] = field(default_factory=list)


@dataclass
class GroupPattern:
    """A group graph pattern { ... }."""
    patterns: list["GraphPatternElement"] = field(default_factory=list)


@dataclass
class OptionalPattern:
    """OPTIONAL { ... }"""
    group: "GroupGraphPattern"


@dataclass
class MinusPattern:
    """MINUS { ... }"""
    group: "GroupGraphPattern"


@dataclass
class UnionPattern:
    """{ ... } UNION { ... } [UNION { ... }]*"""
    groups: list["GroupGraphPattern"] = field(default_factory=list)


@dataclass
class GraphPattern:
    """GRAPH <g> { ... }"""
    name: Union[Variable, IRI, PrefixedName]
    group: "GroupGraphPattern"


@dataclass
class ServicePattern:
    """SERVICE [SILENT] <endpoint> { ... }"""
    endpoint: Union[Variable, IRI, PrefixedName]
    group: "GroupGraphPattern"
    silent: bool = False


@dataclass
class Filter:
    """A FILTER clause constraining query results."""
    expression: Expression


@dataclass
class Bind:
    """BIND (expr AS ?var)"""
    expression: Expression
    variable: Variable


@dataclass
class ValuesClause:
    """
    Inline data: VALUES ?x { ... } or VALUES (?x ?y) { (...) ... }.

    Each row holds one cell per variable, in variable order; None is UNDEF.
    """
    variables: list[Variable] = field(default_factory=list)
    rows: list[list[Optional[Term]]] = field(default_factory=list)

    def has_unbound_row(self) -> bool:
        """True if some row leaves every variable UNDEF."""
        return bool(self.variables) and any(
            all(cell is None for cell in row) for row in self.rows
        )

    def describe(self) -> str:
        names = " ".join(str(v) for v in self.variables)
        return f"VALUES ({names})"


@dataclass
class SubSelect:
    """A nested SELECT used as a group graph pattern: { SELECT ... }."""
    query: "SelectQuery"


GroupGraphPattern = Union[GroupPattern, SubSelect]

GraphPatternElement = Union[
    BasicGraphPattern, GroupPattern, OptionalPattern, MinusPattern,
    UnionPattern, GraphPattern, ServicePattern, Filter, Bind,
    ValuesClause, SubSelect,
]


# =============================================================================
# Query Structure
# =============================================================================

@dataclass
class DatasetClause:
    """FROM <g> or FROM NAMED <g>."""
    iri: Union[IRI, PrefixedName]
    named: bool = False


@dataclass
class Query:
    """Base class for all SPARQL query and update types."""
    prefixes: dict[str, str] = field(default_factory=dict)
    base: Optional[str] = None


@dataclass
class PatternQuery(Query):
    """
    A query form evaluated over a WHERE clause.

    ``limit`` and ``offset`` keep the integer exactly as written so that
    placeholder conventions on the lexical form stay visible.
    """
    datasets: list[DatasetClause] = field(default_factory=list)
    where: Optional[GroupGraphPattern] = None
    group_by: list[Union[Expression, ProjectionExpression]] = field(default_factory=list)
    having: list[Expression] = field(default_factory=list)
    order_by: list[Expression] = field(default_factory=list)
    limit: Optional[str] = None
    offset: Optional[str] = None
    values: Optional[ValuesClause] = None


@dataclass
class SelectQuery(PatternQuery):
    """
    A SELECT query returning variable bindings.

    SELECT ?s ?p ?o
    WHERE { ?s ?p ?o }
    """
    variables: list[Union[Variable, ProjectionExpression]] = field(default_factory=list)  # Empty list means SELECT *
    distinct: bool = False
    reduced: bool = False

    def is_select_all(self) -> bool:
        """Check if this is a SELECT * query."""
        return len(self.variables) == 0


@dataclass
class AskQuery(PatternQuery):
    """An ASK query returning boolean."""


@dataclass
class ConstructQuery(PatternQuery):
    """
    A CONSTRUCT query returning a new graph.

    ``template`` is None for the short form CONSTRUCT WHERE { ... }.
    """
    template: Optional[list[TriplePattern]] = None


@dataclass
class DescribeQuery(PatternQuery):
    """A DESCRIBE query; an empty resource list means DESCRIBE *."""
    resources: list[Union[Variable, IRI, PrefixedName]] = field(default_factory=list)


# =============================================================================
# SPARQL Update
# =============================================================================

@dataclass
class GraphTemplate:
    """GRAPH <g> { triples } inside quad data or a quad pattern."""
    name: Union[Variable, IRI, PrefixedName]
    triples: list[TriplePattern] = field(default_factory=list)


QuadElement = Union[TriplePattern, GraphTemplate]


@dataclass
class InsertDataQuery(Query):
    """INSERT DATA { ... }"""
    quads: list[QuadElement] = field(default_factory=list)


@dataclass
class DeleteDataQuery(Query):
    """DELETE DATA { ... }"""
    quads: list[QuadElement] = field(default_factory=list)


@dataclass
class DeleteWhereQuery(Query):
    """DELETE WHERE { ... }"""
    quads: list[QuadElement] = field(default_factory=list)


@dataclass
class ModifyQuery(Query):
    """[WITH <g>] DELETE { ... } INSERT { ... } [USING ...] WHERE { ... }"""
    with_graph: Optional[Union[IRI, PrefixedName]] = None
    delete: Optional[list[QuadElement]] = None
    insert: Optional[list[QuadElement]] = None
    using: list[DatasetClause] = field(default_factory=list)
    where: Optional[GroupGraphPattern] = None


# Graph targets are an IRI or one of the keywords DEFAULT, NAMED, ALL
GraphTarget = Union[IRI, PrefixedName, str]


@dataclass
class LoadQuery(Query):
    """LOAD [SILENT] <source> [INTO GRAPH <g>]"""
    source: Optional[Union[IRI, PrefixedName]] = None
    graph: Optional[Union[IRI, PrefixedName]] = None
    silent: bool = False


@dataclass
class ClearGraphQuery(Query):
    """CLEAR [SILENT] (GRAPH <g> | DEFAULT | NAMED | ALL)"""
    target: GraphTarget = "DEFAULT"
    silent: bool = False


@dataclass
class DropGraphQuery(Query):
    """DROP [SILENT] (GRAPH <g> | DEFAULT | NAMED | ALL)"""
    target: GraphTarget = "DEFAULT"
    silent: bool = False


@dataclass
class CreateGraphQuery(Query):
    """CREATE [SILENT] GRAPH <g>"""
    graph: Optional[Union[IRI, PrefixedName]] = None
    silent: bool = False


@dataclass
class AddGraphQuery(Query):
    """ADD [SILENT] source TO destination"""
    source: GraphTarget = "DEFAULT"
    destination: GraphTarget = "DEFAULT"
    silent: bool = False


@dataclass
class MoveGraphQuery(Query):
    """MOVE [SILENT] source TO destination"""
    source: GraphTarget = "DEFAULT"
    destination: GraphTarget = "DEFAULT"
    silent: bool = False


@dataclass
class CopyGraphQuery(Query):
    """COPY [SILENT] source TO destination"""
    source: GraphTarget = "DEFAULT"
    destination: GraphTarget = "DEFAULT"
    silent: bool = False


UpdateOperation = Union[
    InsertDataQuery, DeleteDataQuery, DeleteWhereQuery, ModifyQuery,
    LoadQuery, ClearGraphQuery, DropGraphQuery, CreateGraphQuery,
    AddGraphQuery, MoveGraphQuery, CopyGraphQuery,
]


@dataclass
class UpdateRequest(Query):
    """
    A SPARQL Update request: one or more operations separated by ';'.

    Prologue declarations from every operation are collected here.
    """
    operations: list[UpdateOperation] = field(default_factory=list)

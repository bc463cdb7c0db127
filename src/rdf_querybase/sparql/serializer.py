"""
SPARQL serializer: turns an AST back into query text.

The output is indented, one pattern per line. Parsing the output yields a
tree equal to the one serialized; the text itself need not match the
original formatting.
"""

from typing import Union

from rdf_querybase.sparql.ast import (
    RDF_TYPE,
    Variable, IRI, PrefixedName, Literal, BlankNode, QuotedTriplePattern,
    PathAlternative, PathSequence, PathInverse, PathMod, PathNegated, PathGroup,
    Collection, PredicateObjects, BlankNodePropertyList, TriplePattern,
    ExistsExpression, Expression, ProjectionExpression,
    BasicGraphPattern, GroupPattern, OptionalPattern, MinusPattern,
    UnionPattern, GraphPattern, ServicePattern, Filter, Bind,
    ValuesClause, SubSelect, DatasetClause,
    Query, PatternQuery, SelectQuery, AskQuery, ConstructQuery, DescribeQuery,
    GraphTemplate, InsertDataQuery, DeleteDataQuery, DeleteWhereQuery,
    ModifyQuery, LoadQuery, ClearGraphQuery, DropGraphQuery,
    CreateGraphQuery, AddGraphQuery, MoveGraphQuery, CopyGraphQuery,
    UpdateRequest,
)


# Expression tokens that are never followed by a space
_NO_SPACE_AFTER = {"(", "!"}
# Expression tokens that are never preceded by a space
_NO_SPACE_BEFORE = {")", ",", ";"}


class SPARQLSerializer:
    """Serialize query and update ASTs to SPARQL text."""

    def __init__(self, indent: str = "  "):
        self.indent = indent

    def serialize(self, query: Query) -> str:
        lines = self._prologue(query)
        if isinstance(query, UpdateRequest):
            operations = [self._update_operation(op) for op in query.operations]
            lines.append(" ;\n".join(operations))
        elif isinstance(query, PatternQuery):
            lines.extend(self._pattern_query(query, 0))
        else:
            raise TypeError(f"Cannot serialize {type(query).__name__}")
        return "\n".join(lines)

    def _pad(self, level: int) -> str:
        return self.indent * level

    def _prologue(self, query: Query) -> list[str]:
        lines = []
        if query.base:
            lines.append(f"BASE <{query.base}>")
        for prefix, iri in query.prefixes.items():
            lines.append(f"PREFIX {prefix}: <{iri}>")
        return lines

    # =========================================================================
    # Query forms
    # =========================================================================

    def _pattern_query(self, query: PatternQuery, level: int) -> list[str]:
        pad = self._pad(level)
        lines = []

        if isinstance(query, SelectQuery):
            head = "SELECT"
            if query.distinct:
                head += " DISTINCT"
            elif query.reduced:
                head += " REDUCED"
            if query.is_select_all():
                head += " *"
            else:
                head += " " + " ".join(self._projection(v) for v in query.variables)
            lines.append(pad + head)
        elif isinstance(query, ConstructQuery):
            if query.template is None:
                lines.append(pad + "CONSTRUCT")
            else:
                lines.append(pad + "CONSTRUCT " + self._triples_block(query.template, level))
        elif isinstance(query, AskQuery):
            lines.append(pad + "ASK")
        elif isinstance(query, DescribeQuery):
            targets = " ".join(str(r) for r in query.resources) or "*"
            lines.append(f"{pad}DESCRIBE {targets}")
        else:
            raise TypeError(f"Cannot serialize {type(query).__name__}")

        for dataset in query.datasets:
            lines.append(pad + self._dataset("FROM", dataset))

        if query.where is not None:
            lines.append(pad + "WHERE " + self._group(query.where, level))

        if query.group_by:
            lines.append(pad + "GROUP BY " + " ".join(self._projection(c) for c in query.group_by))
        if query.having:
            lines.append(pad + "HAVING " + " ".join(self._expression(c, level) for c in query.having))
        if query.order_by:
            lines.append(pad + "ORDER BY " + " ".join(self._expression(c, level) for c in query.order_by))
        if query.limit is not None:
            lines.append(f"{pad}LIMIT {query.limit}")
        if query.offset is not None:
            lines.append(f"{pad}OFFSET {query.offset}")
        if query.values is not None:
            lines.append(pad + self._values(query.values, level))
        return lines

    def _projection(self, item: Union[Variable, Expression, ProjectionExpression]) -> str:
        if isinstance(item, ProjectionExpression):
            return f"({self._expression(item.expression, 0)} AS {item.variable})"
        if isinstance(item, Expression):
            return self._expression(item, 0)
        return str(item)

    def _dataset(self, keyword: str, dataset: DatasetClause) -> str:
        if dataset.named:
            return f"{keyword} NAMED {dataset.iri}"
        return f"{keyword} {dataset.iri}"

    # =========================================================================
    # Graph patterns
    # =========================================================================

    def _group(self, group, level: int) -> str:
        """Render a braced group; continuation lines carry their own indentation."""
        pad = self._pad(level)
        if isinstance(group, SubSelect):
            body = self._pattern_query(group.query, level + 1)
            return "{\n" + "\n".join(body) + "\n" + pad + "}"
        if isinstance(group, GroupPattern):
            if not group.patterns:
                return "{ }"
            inner = self._pad(level + 1)
            body = [inner + self._pattern(p, level + 1) for p in group.patterns]
            return "{\n" + "\n".join(body) + "\n" + pad + "}"
        raise TypeError(f"Not a group graph pattern: {type(group).__name__}")

    def _pattern(self, pattern, level: int) -> str:
        if isinstance(pattern, BasicGraphPattern):
            return ("\n" + self._pad(level)).join(self._triple(t) + " ." for t in pattern.triples)
        if isinstance(pattern, (GroupPattern, SubSelect)):
            return self._group(pattern, level)
        if isinstance(pattern, OptionalPattern):
            return "OPTIONAL " + self._group(pattern.group, level)
        if isinstance(pattern, MinusPattern):
            return "MINUS " + self._group(pattern.group, level)
        if isinstance(pattern, UnionPattern):
            return " UNION ".join(self._group(g, level) for g in pattern.groups)
        if isinstance(pattern, GraphPattern):
            return f"GRAPH {pattern.name} " + self._group(pattern.group, level)
        if isinstance(pattern, ServicePattern):
            silent = "SILENT " if pattern.silent else ""
            return f"SERVICE {silent}{pattern.endpoint} " + self._group(pattern.group, level)
        if isinstance(pattern, Filter):
            text = self._expression(pattern.expression, level)
            return "FILTER" + ("" if text.startswith("(") else " ") + text
        if isinstance(pattern, Bind):
            return f"BIND({self._expression(pattern.expression, level)} AS {pattern.variable})"
        if isinstance(pattern, ValuesClause):
            return self._values(pattern, level)
        raise TypeError(f"Unknown graph pattern: {type(pattern).__name__}")

    def _values(self, clause: ValuesClause, level: int) -> str:
        def cell(value):
            return "UNDEF" if value is None else str(value)

        if len(clause.variables) == 1:
            cells = " ".join(cell(row[0]) for row in clause.rows)
            return f"VALUES {clause.variables[0]} {{ {cells} }}" if cells else f"VALUES {clause.variables[0]} {{ }}"

        head = "VALUES (" + " ".join(str(v) for v in clause.variables) + ")"
        if not clause.rows:
            return head + " { }"
        inner = self._pad(level + 1)
        rows = [inner + "(" + " ".join(cell(c) for c in row) + ")" for row in clause.rows]
        return head + " {\n" + "\n".join(rows) + "\n" + self._pad(level) + "}"

    # =========================================================================
    # Triples and terms
    # =========================================================================

    def _triples_block(self, triples: list, level: int) -> str:
        if not triples:
            return "{ }"
        inner = self._pad(level + 1)
        body = [inner + self._quad(t, level + 1) for t in triples]
        return "{\n" + "\n".join(body) + "\n" + self._pad(level) + "}"

    def _quad(self, element, level: int) -> str:
        if isinstance(element, GraphTemplate):
            return f"GRAPH {element.name} " + self._triples_block(element.triples, level)
        return self._triple(element) + " ."

    def _triple(self, triple: TriplePattern) -> str:
        subject = self._node(triple.subject)
        if not triple.predicates:
            return subject
        return subject + " " + self._property_list(triple.predicates)

    def _property_list(self, predicates: list[PredicateObjects]) -> str:
        parts = []
        for po in predicates:
            objects = " , ".join(self._node(o) for o in po.objects)
            parts.append(f"{self._verb(po.verb)} {objects}")
        return " ; ".join(parts)

    def _node(self, node) -> str:
        if isinstance(node, Collection):
            return "(" + " ".join(self._node(i) for i in node.items) + ")"
        if isinstance(node, BlankNodePropertyList):
            if not node.predicates:
                return "[]"
            return "[ " + self._property_list(node.predicates) + " ]"
        if isinstance(node, (Variable, IRI, PrefixedName, Literal, BlankNode, QuotedTriplePattern)):
            return str(node)
        raise TypeError(f"Unknown term: {type(node).__name__}")

    def _verb(self, verb) -> str:
        if isinstance(verb, Variable):
            return str(verb)
        return self._path(verb)

    def _path(self, path) -> str:
        if isinstance(path, IRI):
            return "a" if path.value == RDF_TYPE else str(path)
        if isinstance(path, PrefixedName):
            return str(path)
        if isinstance(path, PathAlternative):
            return " | ".join(self._path(p) for p in path.options)
        if isinstance(path, PathSequence):
            return "/".join(self._path(p) for p in path.steps)
        if isinstance(path, PathInverse):
            return "^" + self._path(path.path)
        if isinstance(path, PathMod):
            return self._path(path.path) + path.modifier
        if isinstance(path, PathNegated):
            if len(path.items) == 1:
                return "!" + self._path(path.items[0])
            return "!(" + " | ".join(self._path(p) for p in path.items) + ")"
        if isinstance(path, PathGroup):
            return "(" + self._path(path.path) + ")"
        raise TypeError(f"Unknown property path: {type(path).__name__}")

    # =========================================================================
    # Expressions
    # =========================================================================

    def _expression(self, expression: Expression, level: int) -> str:
        out = ""
        previous = None
        for token in expression.tokens:
            if isinstance(token, ExistsExpression):
                keyword = "NOT EXISTS " if token.negated else "EXISTS "
                text = keyword + self._group(token.group, level)
            else:
                text = str(token)
            if previous is not None and self._spaced(previous, token):
                out += " "
            out += text
            previous = token
        return out

    @staticmethod
    def _spaced(previous, token) -> bool:
        if isinstance(previous, str) and previous in _NO_SPACE_AFTER:
            # '!' '=' must not fuse into '!='
            return previous == "!" and isinstance(token, str) and not token[:1].isalpha() and token != "("
        if isinstance(token, str) and token in _NO_SPACE_BEFORE:
            return False
        if token == "(":
            # Function call: callee directly followed by its argument list
            if isinstance(previous, (IRI, PrefixedName)):
                return False
            if isinstance(previous, str) and (previous[:1].isalpha() or previous[:1] == "_"):
                return False
        return True

    # =========================================================================
    # SPARQL Update
    # =========================================================================

    def _update_operation(self, op) -> str:
        silent = "SILENT " if getattr(op, "silent", False) else ""
        if isinstance(op, InsertDataQuery):
            return "INSERT DATA " + self._triples_block(op.quads, 0)
        if isinstance(op, DeleteDataQuery):
            return "DELETE DATA " + self._triples_block(op.quads, 0)
        if isinstance(op, DeleteWhereQuery):
            return "DELETE WHERE " + self._triples_block(op.quads, 0)
        if isinstance(op, ModifyQuery):
            lines = []
            if op.with_graph is not None:
                lines.append(f"WITH {op.with_graph}")
            if op.delete is not None:
                lines.append("DELETE " + self._triples_block(op.delete, 0))
            if op.insert is not None:
                lines.append("INSERT " + self._triples_block(op.insert, 0))
            for dataset in op.using:
                lines.append(self._dataset("USING", dataset))
            lines.append("WHERE " + self._group(op.where, 0))
            return "\n".join(lines)
        if isinstance(op, LoadQuery):
            text = f"LOAD {silent}{op.source}"
            if op.graph is not None:
                text += f" INTO GRAPH {op.graph}"
            return text
        if isinstance(op, ClearGraphQuery):
            return f"CLEAR {silent}{self._graph_ref(op.target)}"
        if isinstance(op, DropGraphQuery):
            return f"DROP {silent}{self._graph_ref(op.target)}"
        if isinstance(op, CreateGraphQuery):
            return f"CREATE {silent}GRAPH {op.graph}"
        if isinstance(op, AddGraphQuery):
            return f"ADD {silent}{op.source} TO {op.destination}"
        if isinstance(op, MoveGraphQuery):
            return f"MOVE {silent}{op.source} TO {op.destination}"
        if isinstance(op, CopyGraphQuery):
            return f"COPY {silent}{op.source} TO {op.destination}"
        raise TypeError(f"Unknown update operation: {type(op).__name__}")

    @staticmethod
    def _graph_ref(target) -> str:
        if isinstance(target, str):
            return target
        return f"GRAPH {target}"


def serialize_query(query: Query) -> str:
    """Serialize a parsed query or update back to SPARQL text."""
    return SPARQLSerializer().serialize(query)

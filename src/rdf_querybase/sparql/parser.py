"""
SPARQL 1.1 Parser using pyparsing.

Parses SPARQL queries and updates (with RDF-Star quoted triples) into the
AST defined in ``rdf_querybase.sparql.ast``. Graph patterns are parsed in
full; expressions are kept as token sequences with nested EXISTS groups.
"""

import logging
import re
from dataclasses import dataclass
from typing import Any, Optional

import pyparsing as pp
from pyparsing import (
    Keyword, Literal as Lit, Regex,
    Suppress, Group, Optional as Opt, ZeroOrMore, OneOrMore,
    Forward, CaselessKeyword,
)

from rdf_querybase.errors import SPARQLSyntaxError
from rdf_querybase.sparql.ast import (
    XSD_INTEGER, XSD_DECIMAL, XSD_DOUBLE, XSD_BOOLEAN, RDF_TYPE,
    Variable, IRI, PrefixedName, Literal, BlankNode, QuotedTriplePattern,
    PathAlternative, PathSequence, PathInverse, PathMod, PathNegated, PathGroup,
    Collection, PredicateObjects, BlankNodePropertyList, TriplePattern,
    ExistsExpression, Expression, ProjectionExpression,
    BasicGraphPattern, GroupPattern, OptionalPattern, MinusPattern,
    UnionPattern, GraphPattern, ServicePattern, Filter, Bind,
    ValuesClause, SubSelect, DatasetClause,
    Query, SelectQuery, AskQuery, ConstructQuery, DescribeQuery,
    GraphTemplate, InsertDataQuery, DeleteDataQuery, DeleteWhereQuery,
    ModifyQuery, LoadQuery, ClearGraphQuery, DropGraphQuery,
    CreateGraphQuery, AddGraphQuery, MoveGraphQuery, CopyGraphQuery,
    UpdateRequest,
)

logger = logging.getLogger(__name__)


@dataclass
class _Clause:
    """Intermediate token tagging a query part until the query node is built."""
    kind: str
    value: Any


class _Undef:
    def __repr__(self) -> str:
        return "UNDEF"


# Parse actions returning None keep their tokens, so UNDEF needs a sentinel
_UNDEF = _Undef()


_ECHAR = {
    "t": "\t", "b": "\b", "n": "\n", "r": "\r", "f": "\f",
    '"': '"', "'": "'", "\\": "\\",
}

_ESCAPE_RE = re.compile(r'\\(?:u([0-9A-Fa-f]{4})|U([0-9A-Fa-f]{8})|(.))', re.DOTALL)

_ESC = r'(?:\\[tbnrf"\'\\]|\\u[0-9A-Fa-f]{4}|\\U[0-9A-Fa-f]{8})'

# Body of an IRIREF and of a LANGTAG, shared with the binding applier
IRIREF_BODY = r'[^<>"{}|^`\\\x00-\x20]*'
LANGTAG = r'[A-Za-z]+(?:-[A-Za-z0-9]+)*'


def _unescape(text: str) -> str:
    """Decode SPARQL string escapes (\\n, \\", \\u00E9, ...)."""
    def replace(match):
        code = match.group(1) or match.group(2)
        if code:
            return chr(int(code, 16))
        return _ECHAR[match.group(3)]
    return _ESCAPE_RE.sub(replace, text)


def _clauses(tokens) -> dict:
    """Collect _Clause tokens of one query form into a dict keyed by kind."""
    found: dict = {"prefixes": {}, "base": None, "datasets": []}
    for token in tokens:
        if isinstance(token, DatasetClause):
            found["datasets"].append(token)
        elif isinstance(token, _Clause):
            if token.kind == "prefix":
                name, iri = token.value
                found["prefixes"][name] = iri
            else:
                found[token.kind] = token.value
    return found


def _split_silent(tokens) -> tuple[bool, list]:
    tokens = list(tokens)
    if tokens and isinstance(tokens[0], str) and tokens[0] == "SILENT":
        return True, tokens[1:]
    return False, tokens


class SPARQLParser:
    """
    Parser for SPARQL 1.1 queries and updates.

    Supports:
    - SELECT, CONSTRUCT, ASK, DESCRIBE with dataset clauses
    - OPTIONAL, UNION, MINUS, GRAPH, SERVICE, FILTER, BIND, VALUES
    - Sub-SELECTs and FILTER EXISTS / NOT EXISTS
    - Property paths and RDF-Star quoted triples (<< s p o >>)
    - Solution modifiers and trailing VALUES blocks
    - SPARQL Update operations separated by ';'
    """

    def __init__(self):
        self._build_grammar()

    def _build_grammar(self):
        """Build the pyparsing grammar for SPARQL 1.1."""

        # Enable packrat parsing for performance
        pp.ParserElement.enable_packrat()

        # =================================================================
        # Keywords (case-insensitive)
        # =================================================================

        BASE = CaselessKeyword("BASE")
        PREFIX = CaselessKeyword("PREFIX")
        SELECT = CaselessKeyword("SELECT")
        CONSTRUCT = CaselessKeyword("CONSTRUCT")
        ASK = CaselessKeyword("ASK")
        DESCRIBE = CaselessKeyword("DESCRIBE")
        DISTINCT = CaselessKeyword("DISTINCT")
        REDUCED = CaselessKeyword("REDUCED")
        FROM = CaselessKeyword("FROM")
        NAMED = CaselessKeyword("NAMED")
        WHERE = CaselessKeyword("WHERE")
        OPTIONAL = CaselessKeyword("OPTIONAL")
        UNION = CaselessKeyword("UNION")
        MINUS = CaselessKeyword("MINUS")
        GRAPH = CaselessKeyword("GRAPH")
        SERVICE = CaselessKeyword("SERVICE")
        SILENT = CaselessKeyword("SILENT")
        FILTER = CaselessKeyword("FILTER")
        BIND = CaselessKeyword("BIND")
        AS = CaselessKeyword("AS")
        VALUES = CaselessKeyword("VALUES")
        UNDEF = CaselessKeyword("UNDEF")
        EXISTS = CaselessKeyword("EXISTS")
        NOT = CaselessKeyword("NOT")
        GROUP = CaselessKeyword("GROUP")
        BY = CaselessKeyword("BY")
        HAVING = CaselessKeyword("HAVING")
        ORDER = CaselessKeyword("ORDER")
        ASC = CaselessKeyword("ASC")
        DESC = CaselessKeyword("DESC")
        LIMIT = CaselessKeyword("LIMIT")
        OFFSET = CaselessKeyword("OFFSET")

        # SPARQL Update
        INSERT = CaselessKeyword("INSERT")
        DELETE = CaselessKeyword("DELETE")
        DATA = CaselessKeyword("DATA")
        WITH = CaselessKeyword("WITH")
        USING = CaselessKeyword("USING")
        LOAD = CaselessKeyword("LOAD")
        INTO = CaselessKeyword("INTO")
        CLEAR = CaselessKeyword("CLEAR")
        DROP = CaselessKeyword("DROP")
        CREATE = CaselessKeyword("CREATE")
        ADD = CaselessKeyword("ADD")
        MOVE = CaselessKeyword("MOVE")
        COPY = CaselessKeyword("COPY")
        TO = CaselessKeyword("TO")
        DEFAULT = CaselessKeyword("DEFAULT")
        ALL = CaselessKeyword("ALL")

        # Punctuation
        LBRACE = Suppress(Lit("{"))
        RBRACE = Suppress(Lit("}"))
        LPAREN = Suppress(Lit("("))
        RPAREN = Suppress(Lit(")"))
        LBRACK = Suppress(Lit("["))
        RBRACK = Suppress(Lit("]"))
        DOT = Suppress(Lit("."))
        COMMA = Suppress(Lit(","))
        SEMI = Suppress(Lit(";"))
        STAR = Lit("*")
        LQUOTE = Suppress(Lit("<<"))
        RQUOTE = Suppress(Lit(">>"))

        # Parentheses kept as tokens inside expressions
        OPEN = Lit("(")
        CLOSE = Lit(")")

        # =================================================================
        # Terms
        # =================================================================

        # Variable: ?name or $name
        def make_variable(tokens):
            return Variable(tokens[0][1:])

        variable = Regex(r'[?$]\w+').set_parse_action(make_variable)

        # IRI: <http://...>
        def make_full_iri(tokens):
            return IRI(tokens[0][1:-1])

        full_iri = Regex("<" + IRIREF_BODY + ">").set_parse_action(make_full_iri)

        # Prefixed name: prefix:local
        pname_ns = Regex(r'(?:[A-Za-z](?:[\w.\-]*[\w\-])?)?:')

        local_char = r'(?:[\w\-:%]|\\[_~.\-!$&\'()*+,;=/?#@%])'

        def make_prefixed_name(tokens):
            prefix, _, local = tokens[0].partition(":")
            return PrefixedName(prefix, local)

        prefixed_name = Regex(
            r'(?:[A-Za-z](?:[\w.\-]*[\w\-])?)?:'
            r'(?:' + local_char + r'(?:(?:' + local_char + r'|\.)*' + local_char + r')?)?'
        ).set_parse_action(make_prefixed_name)

        iri = full_iri | prefixed_name

        # Keyword 'a' for rdf:type
        def make_rdf_type(tokens):
            return IRI(RDF_TYPE)

        rdf_type = Keyword("a").set_parse_action(make_rdf_type)

        # Strings: long forms first so '''...''' is not read as ''
        def make_string(tokens):
            raw = tokens[0]
            if raw[:3] in ('"""', "'''"):
                return _unescape(raw[3:-3])
            return _unescape(raw[1:-1])

        string = (
            Regex(r'"""(?:(?:"|"")?(?:[^"\\]|' + _ESC + r'))*"""') |
            Regex(r"'''(?:(?:'|'')?(?:[^'\\]|" + _ESC + r"))*'''") |
            Regex(r'"(?:[^"\\\n\r]|' + _ESC + r')*"') |
            Regex(r"'(?:[^'\\\n\r]|" + _ESC + r")*'")
        ).set_parse_action(make_string)

        # Language tag: @en, @en-US
        def make_lang_tag(tokens):
            return _Clause("lang", tokens[0][1:])

        lang_tag = Regex("@" + LANGTAG).set_parse_action(make_lang_tag)

        # Datatype: ^^<type> or ^^prefix:type
        datatype = Suppress(Lit("^^")) + iri

        # Full literal with optional language or datatype
        def make_literal(tokens):
            value = tokens[0]
            if len(tokens) > 1:
                if isinstance(tokens[1], _Clause):
                    return Literal(value, language=tokens[1].value)
                return Literal(value, datatype=tokens[1])
            return Literal(value)

        rdf_literal = (string + Opt(lang_tag | datatype)).set_parse_action(make_literal)

        # Numeric literals keep their lexical form
        def numeric(pattern: str, dtype: str):
            def make_numeric(tokens):
                return Literal(tokens[0], datatype=IRI(dtype))
            return Regex(pattern).set_parse_action(make_numeric)

        def numeric_literal(sign: str):
            return (
                numeric(sign + r'(?:\d+\.\d*[eE][+-]?\d+|\.\d+[eE][+-]?\d+|\d+[eE][+-]?\d+)', XSD_DOUBLE) |
                numeric(sign + r'\d*\.\d+', XSD_DECIMAL) |
                numeric(sign + r'\d+', XSD_INTEGER)
            )

        signed_number = numeric_literal(r'[+-]?')
        unsigned_number = numeric_literal("")

        # Boolean literals
        def make_boolean(tokens):
            return Literal(tokens[0], datatype=IRI(XSD_BOOLEAN))

        boolean_literal = (Keyword("true") | Keyword("false")).set_parse_action(make_boolean)

        # Blank node
        def make_blank_node(tokens):
            return BlankNode(tokens[0][2:])

        blank_node = Regex(r'_:\w(?:[\w.\-]*[\w\-])?').set_parse_action(make_blank_node)

        var_or_iri = variable | iri

        # =================================================================
        # Quoted Triple Pattern (RDF-Star)
        # =================================================================

        quoted_triple = Forward()

        graph_term = iri | rdf_literal | signed_number | boolean_literal | blank_node | quoted_triple
        var_or_term = variable | graph_term

        def make_quoted_triple(tokens):
            return QuotedTriplePattern(
                subject=tokens[0],
                predicate=tokens[1],
                object=tokens[2]
            )

        quoted_triple <<= (
            LQUOTE + var_or_term + (variable | iri | rdf_type) + var_or_term + RQUOTE
        ).set_parse_action(make_quoted_triple)

        # =================================================================
        # Property Paths
        # =================================================================

        path = Forward()

        def make_inverse(tokens):
            return PathInverse(tokens[0])

        path_one_in_set = (
            (Suppress(Lit("^")) + (iri | rdf_type)).set_parse_action(make_inverse) |
            iri | rdf_type
        )

        def make_negated(tokens):
            return PathNegated(list(tokens[0]))

        path_negated = Suppress(Lit("!")) + (
            Group(path_one_in_set) |
            Group(LPAREN + Opt(path_one_in_set + ZeroOrMore(Suppress(Lit("|")) + path_one_in_set)) + RPAREN)
        ).set_parse_action(make_negated)

        def make_path_group(tokens):
            return PathGroup(tokens[0])

        path_primary = (
            iri | rdf_type | path_negated |
            (LPAREN + path + RPAREN).set_parse_action(make_path_group)
        )

        # A '?' modifier must not swallow the sigil of a following variable
        path_mod = Regex(r'[*+?](?!\w)')

        def make_path_elt(tokens):
            if len(tokens) == 2:
                return PathMod(tokens[0], tokens[1])
            return tokens[0]

        path_elt = (path_primary + Opt(path_mod)).set_parse_action(make_path_elt)

        path_elt_or_inverse = (
            (Suppress(Lit("^")) + path_elt).set_parse_action(make_inverse) |
            path_elt
        )

        def make_sequence(tokens):
            if len(tokens) == 1:
                return tokens[0]
            return PathSequence(list(tokens))

        path_sequence = (
            path_elt_or_inverse + ZeroOrMore(Suppress(Lit("/")) + path_elt_or_inverse)
        ).set_parse_action(make_sequence)

        def make_alternative(tokens):
            if len(tokens) == 1:
                return tokens[0]
            return PathAlternative(list(tokens))

        path <<= (
            path_sequence + ZeroOrMore(Suppress(Lit("|")) + path_sequence)
        ).set_parse_action(make_alternative)

        verb = variable | path

        # =================================================================
        # Triple Patterns
        # =================================================================

        graph_node = Forward()

        def make_collection(tokens):
            return Collection(list(tokens[0]))

        collection = (
            Group(LPAREN + ZeroOrMore(graph_node) + RPAREN)
        ).set_parse_action(make_collection)

        def make_predicate_objects(tokens):
            return PredicateObjects(verb=tokens[0], objects=list(tokens[1]))

        predicate_objects = (
            verb + Group(graph_node + ZeroOrMore(COMMA + graph_node))
        ).set_parse_action(make_predicate_objects)

        property_list = predicate_objects + ZeroOrMore(SEMI + Opt(predicate_objects))

        def make_bnode_property_list(tokens):
            return BlankNodePropertyList(list(tokens[0]))

        bnode_property_list = (
            Group(LBRACK + Opt(property_list) + RBRACK)
        ).set_parse_action(make_bnode_property_list)

        triples_node = collection | bnode_property_list

        graph_node <<= var_or_term | triples_node

        def make_triple_pattern(tokens):
            return TriplePattern(subject=tokens[0], predicates=list(tokens[1]))

        triples_same_subject = (
            (var_or_term + Group(property_list)) |
            (triples_node + Group(Opt(property_list)))
        ).set_parse_action(make_triple_pattern)

        triples_template = triples_same_subject + ZeroOrMore(DOT + triples_same_subject) + Opt(DOT)

        def make_bgp(tokens):
            return BasicGraphPattern(list(tokens[0]))

        triples_block = Group(triples_template).set_parse_action(make_bgp)

        # =================================================================
        # Expressions (token sequences)
        # =================================================================

        group_graph_pattern = Forward()
        expr_atom = Forward()

        def make_exists(tokens):
            return ExistsExpression(group=tokens[0])

        def make_not_exists(tokens):
            return ExistsExpression(group=tokens[0], negated=True)

        exists = (Suppress(EXISTS) + group_graph_pattern).set_parse_action(make_exists)
        not_exists = (Suppress(NOT + EXISTS) + group_graph_pattern).set_parse_action(make_not_exists)

        # Function names and keyword operators (IN, NOT, DISTINCT, SEPARATOR, ...)
        word = Regex(
            r'(?!(?:AS|GROUP|HAVING|ORDER|LIMIT|OFFSET|VALUES)\b)[A-Za-z_]\w*',
            flags=re.IGNORECASE,
        )
        operator = Regex(r'\|\||&&|!=|<=|>=|[=<>+\-*/!,;]')

        paren_group = OPEN + ZeroOrMore(expr_atom) + CLOSE

        expr_atom <<= (
            paren_group | not_exists | exists | variable | rdf_literal |
            unsigned_number | iri | word | operator
        )

        function_call = (iri | word) + paren_group
        constraint = paren_group | not_exists | exists | function_call

        def make_expression(tokens):
            return Expression(list(tokens[0]))

        def make_projection(tokens):
            return ProjectionExpression(Expression(list(tokens[0])), tokens[1])

        aliased_expression = (
            LPAREN + Group(OneOrMore(expr_atom)) + Suppress(AS) + variable + RPAREN
        ).set_parse_action(make_projection)

        # =================================================================
        # Graph Patterns
        # =================================================================

        def make_optional(tokens):
            return OptionalPattern(tokens[0])

        optional_pattern = (Suppress(OPTIONAL) + group_graph_pattern).set_parse_action(make_optional)

        def make_minus(tokens):
            return MinusPattern(tokens[0])

        minus_pattern = (Suppress(MINUS) + group_graph_pattern).set_parse_action(make_minus)

        def make_graph(tokens):
            return GraphPattern(name=tokens[0], group=tokens[1])

        graph_pattern = (Suppress(GRAPH) + var_or_iri + group_graph_pattern).set_parse_action(make_graph)

        def make_service(tokens):
            silent, rest = _split_silent(tokens)
            return ServicePattern(endpoint=rest[0], group=rest[1], silent=silent)

        service_pattern = (
            Suppress(SERVICE) + Opt(SILENT) + var_or_iri + group_graph_pattern
        ).set_parse_action(make_service)

        def make_filter(tokens):
            return Filter(expression=Expression(list(tokens[0])))

        filter_clause = (Suppress(FILTER) + Group(constraint)).set_parse_action(make_filter)

        def make_bind(tokens):
            return Bind(expression=Expression(list(tokens[0])), variable=tokens[1])

        bind_clause = (
            Suppress(BIND) + LPAREN + Group(OneOrMore(expr_atom)) + Suppress(AS) + variable + RPAREN
        ).set_parse_action(make_bind)

        def make_union(tokens):
            if len(tokens) == 1:
                return tokens[0]
            return UnionPattern(list(tokens))

        group_or_union = (
            group_graph_pattern + ZeroOrMore(Suppress(UNION) + group_graph_pattern)
        ).set_parse_action(make_union)

        # VALUES: single-variable and multi-variable forms
        def make_undef(tokens):
            return _UNDEF

        data_value = iri | rdf_literal | signed_number | boolean_literal | UNDEF.copy().set_parse_action(make_undef)

        def make_values(s, loc, tokens):
            variables = list(tokens[0])
            rows = []
            for row in tokens[1]:
                cells = [None if cell is _UNDEF else cell for cell in row]
                if len(cells) != len(variables):
                    raise pp.ParseFatalException(
                        s, loc,
                        f"VALUES row has {len(cells)} values for {len(variables)} variables"
                    )
                rows.append(cells)
            return ValuesClause(variables=variables, rows=rows)

        data_block = (
            (Group(variable) + LBRACE + Group(ZeroOrMore(Group(data_value))) + RBRACE) |
            (
                Group(LPAREN + ZeroOrMore(variable) + RPAREN) + LBRACE +
                Group(ZeroOrMore(Group(LPAREN + ZeroOrMore(data_value) + RPAREN))) + RBRACE
            )
        ).set_parse_action(make_values)

        inline_data = Suppress(VALUES) + data_block

        graph_pattern_not_triples = (
            group_or_union | optional_pattern | minus_pattern | graph_pattern |
            service_pattern | filter_clause | bind_clause | inline_data
        )

        def make_group(tokens):
            return GroupPattern(list(tokens[0]))

        group_graph_pattern_sub = Group(
            Opt(triples_block) +
            ZeroOrMore(graph_pattern_not_triples + Opt(DOT) + Opt(triples_block))
        ).set_parse_action(make_group)

        # =================================================================
        # Prologue and Dataset
        # =================================================================

        def make_prefix(tokens):
            return _Clause("prefix", (tokens[0][:-1], tokens[1].value))

        prefix_decl = (Suppress(PREFIX) + pname_ns + full_iri).set_parse_action(make_prefix)

        def make_base(tokens):
            return _Clause("base", tokens[0].value)

        base_decl = (Suppress(BASE) + full_iri).set_parse_action(make_base)

        prologue = ZeroOrMore(base_decl | prefix_decl)

        def make_dataset(tokens):
            return DatasetClause(iri=tokens[-1], named=len(tokens) == 2)

        dataset_clause = (Suppress(FROM) + Opt(NAMED) + iri).set_parse_action(make_dataset)
        using_clause = (Suppress(USING) + Opt(NAMED) + iri).set_parse_action(make_dataset)

        def make_where(tokens):
            return _Clause("where", tokens[0])

        where_clause = (Opt(Suppress(WHERE)) + group_graph_pattern).set_parse_action(make_where)
        required_where = (Suppress(WHERE) + group_graph_pattern).set_parse_action(make_where)

        # =================================================================
        # Solution Modifiers
        # =================================================================

        def clause(kind):
            def action(tokens):
                return _Clause(kind, list(tokens[0]))
            return action

        group_condition = aliased_expression | Group(function_call | paren_group | variable).set_parse_action(make_expression)
        group_clause = (Suppress(GROUP + BY) + Group(OneOrMore(group_condition))).set_parse_action(clause("group_by"))

        having_clause = (
            Suppress(HAVING) + Group(OneOrMore(Group(constraint).set_parse_action(make_expression)))
        ).set_parse_action(clause("having"))

        order_condition = Group(((ASC | DESC) + paren_group) | constraint | variable).set_parse_action(make_expression)
        order_clause = (Suppress(ORDER + BY) + Group(OneOrMore(order_condition))).set_parse_action(clause("order_by"))

        # LIMIT and OFFSET keep the integer as written
        def make_limit(tokens):
            return _Clause("limit", tokens[0])

        def make_offset(tokens):
            return _Clause("offset", tokens[0])

        limit_clause = (Suppress(LIMIT) + Regex(r'\d+')).set_parse_action(make_limit)
        offset_clause = (Suppress(OFFSET) + Regex(r'\d+')).set_parse_action(make_offset)
        limit_offset = (limit_clause + Opt(offset_clause)) | (offset_clause + Opt(limit_clause))

        solution_modifier = Opt(group_clause) + Opt(having_clause) + Opt(order_clause) + Opt(limit_offset)

        def make_trailing_values(tokens):
            return _Clause("values", tokens[0])

        trailing_values = (Suppress(VALUES) + data_block).set_parse_action(make_trailing_values)

        # =================================================================
        # SELECT Query and Sub-SELECT
        # =================================================================

        def make_modifier(tokens):
            return _Clause("modifier", tokens[0])

        def make_star(tokens):
            return _Clause("projection", [])

        projection = (
            STAR.copy().set_parse_action(make_star) |
            Group(OneOrMore(variable | aliased_expression)).set_parse_action(clause("projection"))
        )

        select_clause = (
            Suppress(SELECT) +
            Opt((DISTINCT | REDUCED).set_parse_action(make_modifier)) +
            projection
        )

        def make_select(tokens):
            found = _clauses(tokens)
            modifier = found.get("modifier")
            return SelectQuery(
                prefixes=found["prefixes"],
                base=found["base"],
                datasets=found["datasets"],
                where=found.get("where"),
                group_by=found.get("group_by", []),
                having=found.get("having", []),
                order_by=found.get("order_by", []),
                limit=found.get("limit"),
                offset=found.get("offset"),
                values=found.get("values"),
                variables=found["projection"],
                distinct=modifier == "DISTINCT",
                reduced=modifier == "REDUCED",
            )

        def make_sub_select(tokens):
            return SubSelect(make_select(tokens[0]))

        sub_select = Group(
            select_clause + where_clause + solution_modifier + Opt(trailing_values)
        ).set_parse_action(make_sub_select)

        group_graph_pattern <<= LBRACE + (sub_select | group_graph_pattern_sub) + RBRACE

        select_query = (
            prologue + select_clause + ZeroOrMore(dataset_clause) +
            where_clause + solution_modifier + Opt(trailing_values)
        ).set_parse_action(make_select)

        # =================================================================
        # CONSTRUCT, ASK, DESCRIBE
        # =================================================================

        def make_template(tokens):
            return _Clause("template", list(tokens[0]))

        def make_short_where(tokens):
            triples = list(tokens[0])
            return _Clause("where", GroupPattern([BasicGraphPattern(triples)] if triples else []))

        construct_template = (LBRACE + Group(Opt(triples_template)) + RBRACE).set_parse_action(make_template)

        short_where = (
            Suppress(WHERE) + LBRACE + Group(Opt(triples_template)) + RBRACE
        ).set_parse_action(make_short_where)

        def make_construct(tokens):
            found = _clauses(tokens)
            return ConstructQuery(
                prefixes=found["prefixes"],
                base=found["base"],
                datasets=found["datasets"],
                where=found.get("where"),
                group_by=found.get("group_by", []),
                having=found.get("having", []),
                order_by=found.get("order_by", []),
                limit=found.get("limit"),
                offset=found.get("offset"),
                values=found.get("values"),
                template=found.get("template"),
            )

        construct_query = (
            prologue + Suppress(CONSTRUCT) +
            (
                (construct_template + ZeroOrMore(dataset_clause) + where_clause) |
                (ZeroOrMore(dataset_clause) + short_where)
            ) +
            solution_modifier + Opt(trailing_values)
        ).set_parse_action(make_construct)

        def make_ask(tokens):
            found = _clauses(tokens)
            return AskQuery(
                prefixes=found["prefixes"],
                base=found["base"],
                datasets=found["datasets"],
                where=found.get("where"),
                group_by=found.get("group_by", []),
                having=found.get("having", []),
                order_by=found.get("order_by", []),
                limit=found.get("limit"),
                offset=found.get("offset"),
                values=found.get("values"),
            )

        ask_query = (
            prologue + Suppress(ASK) + ZeroOrMore(dataset_clause) +
            where_clause + solution_modifier + Opt(trailing_values)
        ).set_parse_action(make_ask)

        def make_resources(tokens):
            return _Clause("resources", list(tokens[0]))

        describe_targets = (
            STAR.copy().set_parse_action(lambda tokens: _Clause("resources", [])) |
            Group(OneOrMore(var_or_iri)).set_parse_action(make_resources)
        )

        def make_describe(tokens):
            found = _clauses(tokens)
            return DescribeQuery(
                prefixes=found["prefixes"],
                base=found["base"],
                datasets=found["datasets"],
                where=found.get("where"),
                group_by=found.get("group_by", []),
                having=found.get("having", []),
                order_by=found.get("order_by", []),
                limit=found.get("limit"),
                offset=found.get("offset"),
                values=found.get("values"),
                resources=found["resources"],
            )

        describe_query = (
            prologue + Suppress(DESCRIBE) + describe_targets + ZeroOrMore(dataset_clause) +
            Opt(where_clause) + solution_modifier + Opt(trailing_values)
        ).set_parse_action(make_describe)

        query_unit = select_query | construct_query | ask_query | describe_query

        # =================================================================
        # SPARQL Update
        # =================================================================

        def make_graph_template(tokens):
            return GraphTemplate(name=tokens[0], triples=list(tokens[1]))

        quads_not_triples = (
            Suppress(GRAPH) + var_or_iri + LBRACE + Group(Opt(triples_template)) + RBRACE
        ).set_parse_action(make_graph_template)

        quads = Group(
            LBRACE + Opt(triples_template) +
            ZeroOrMore(quads_not_triples + Opt(DOT) + Opt(triples_template)) +
            RBRACE
        )

        def quad_operation(cls):
            def action(tokens):
                return cls(quads=list(tokens[0]))
            return action

        insert_data = (Suppress(INSERT + DATA) + quads).set_parse_action(quad_operation(InsertDataQuery))
        delete_data = (Suppress(DELETE + DATA) + quads).set_parse_action(quad_operation(DeleteDataQuery))
        delete_where = (Suppress(DELETE + WHERE) + quads).set_parse_action(quad_operation(DeleteWhereQuery))

        def make_with(tokens):
            return _Clause("with", tokens[0])

        def make_delete_template(tokens):
            return _Clause("delete", list(tokens[0]))

        def make_insert_template(tokens):
            return _Clause("insert", list(tokens[0]))

        delete_template = (Suppress(DELETE) + quads).set_parse_action(make_delete_template)
        insert_template = (Suppress(INSERT) + quads).set_parse_action(make_insert_template)

        def make_modify(tokens):
            found = _clauses(tokens)
            return ModifyQuery(
                with_graph=found.get("with"),
                delete=found.get("delete"),
                insert=found.get("insert"),
                using=found["datasets"],
                where=found.get("where"),
            )

        modify = (
            Opt((Suppress(WITH) + iri).set_parse_action(make_with)) +
            ((delete_template + Opt(insert_template)) | insert_template) +
            ZeroOrMore(using_clause) + required_where
        ).set_parse_action(make_modify)

        graph_ref = Suppress(GRAPH) + iri
        graph_ref_all = graph_ref | DEFAULT | NAMED | ALL
        graph_or_default = DEFAULT | (Suppress(Opt(GRAPH)) + iri)

        def make_load(tokens):
            silent, rest = _split_silent(tokens)
            return LoadQuery(
                source=rest[0],
                graph=rest[1] if len(rest) > 1 else None,
                silent=silent,
            )

        load = (
            Suppress(LOAD) + Opt(SILENT) + iri + Opt(Suppress(INTO + GRAPH) + iri)
        ).set_parse_action(make_load)

        def graph_management(cls):
            def action(tokens):
                silent, rest = _split_silent(tokens)
                return cls(target=rest[0], silent=silent)
            return action

        clear = (Suppress(CLEAR) + Opt(SILENT) + graph_ref_all).set_parse_action(graph_management(ClearGraphQuery))
        drop = (Suppress(DROP) + Opt(SILENT) + graph_ref_all).set_parse_action(graph_management(DropGraphQuery))

        def make_create(tokens):
            silent, rest = _split_silent(tokens)
            return CreateGraphQuery(graph=rest[0], silent=silent)

        create = (Suppress(CREATE) + Opt(SILENT) + graph_ref).set_parse_action(make_create)

        def graph_transfer(cls):
            def action(tokens):
                silent, rest = _split_silent(tokens)
                return cls(source=rest[0], destination=rest[1], silent=silent)
            return action

        add = (
            Suppress(ADD) + Opt(SILENT) + graph_or_default + Suppress(TO) + graph_or_default
        ).set_parse_action(graph_transfer(AddGraphQuery))
        move = (
            Suppress(MOVE) + Opt(SILENT) + graph_or_default + Suppress(TO) + graph_or_default
        ).set_parse_action(graph_transfer(MoveGraphQuery))
        copy = (
            Suppress(COPY) + Opt(SILENT) + graph_or_default + Suppress(TO) + graph_or_default
        ).set_parse_action(graph_transfer(CopyGraphQuery))

        update_operation = (
            load | clear | drop | add | move | copy | create |
            insert_data | delete_data | delete_where | modify
        )

        def make_update(tokens):
            found = _clauses(tokens)
            operations = [token for token in tokens if isinstance(token, Query)]
            return UpdateRequest(
                prefixes=found["prefixes"],
                base=found["base"],
                operations=operations,
            )

        update_unit = (
            prologue + update_operation +
            ZeroOrMore(SEMI + prologue + update_operation) + Opt(SEMI)
        ).set_parse_action(make_update)

        # =================================================================
        # Top-level
        # =================================================================

        self.query = query_unit | update_unit

        # Ignore comments
        self.query.ignore(pp.python_style_comment)

    def parse(self, query_string: str) -> Query:
        """
        Parse a SPARQL query or update string into an AST.

        Args:
            query_string: The SPARQL text to parse

        Returns:
            Parsed Query AST (UpdateRequest for updates)

        Raises:
            SPARQLSyntaxError: If the text is empty or malformed
        """
        if not query_string or not query_string.strip():
            raise SPARQLSyntaxError("Failed to parse SPARQL query: empty query", line=1, column=1)
        try:
            result = self.query.parse_string(query_string, parse_all=True)
        except pp.ParseBaseException as e:
            logger.debug(f"SPARQL parse failure at line {e.lineno}, column {e.col}: {e.msg}")
            raise SPARQLSyntaxError(
                f"Failed to parse SPARQL query: {e.msg}",
                line=e.lineno,
                column=e.col,
            ) from e
        return result[0]


# Module-level parser instance for convenience
_parser: Optional[SPARQLParser] = None


def parse_query(query_string: str) -> Query:
    """
    Parse a SPARQL query string.

    This is a convenience function that uses a cached parser instance.

    Args:
        query_string: The SPARQL query to parse

    Returns:
        Parsed Query AST
    """
    global _parser
    if _parser is None:
        _parser = SPARQLParser()
    return _parser.parse(query_string)

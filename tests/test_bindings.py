"""
Tests for binding runtime values into parameterized queries.
"""

import logging

import pytest

from rdf_querybase.errors import ArgumentMismatchError, BindingError, IllegalBindingType
from rdf_querybase.params import (
    BindingSet,
    TypedValue,
    apply_arguments,
    apply_bindings,
    apply_limit_offset,
    detect_limit_offset_parameters,
    detect_parameter_groups,
)
from rdf_querybase.sparql import iter_patterns, parse_query
from rdf_querybase.sparql.ast import IRI, Literal, ValuesClause, XSD_INTEGER


EX = "http://example.org/"


def uri(name):
    return {"type": "uri", "value": EX + name}


def binding_set(variables, rows):
    return {"head": {"vars": variables}, "arguments": {"bindings": rows}}


def values_clauses(text):
    """VALUES clauses of a query, in lexical order."""
    return [p for p in iter_patterns(parse_query(text)) if isinstance(p, ValuesClause)]


PLACEHOLDER_QUERY = """
SELECT ?s ?o WHERE {
    ?s <http://example.org/p> ?o
    VALUES ?s { UNDEF }
}
"""


class TestBindingSet:
    """Tests for reading binding sets from JSON."""

    def test_arguments_bindings(self):
        """Test the arguments.bindings shape."""
        bs = BindingSet.from_json(binding_set(["s"], [{"s": uri("a")}]))
        assert bs.header == ["s"]
        assert bs.rows[0]["s"] == TypedValue(type="uri", value=EX + "a")

    def test_arguments_list(self):
        """Test arguments given directly as a list of rows."""
        bs = BindingSet.from_json({"head": {"vars": ["s"]}, "arguments": [{"s": uri("a")}]})
        assert len(bs.rows) == 1

    def test_results_bindings(self):
        """Test a SPARQL-JSON results document is accepted."""
        bs = BindingSet.from_json({"head": {"vars": ["s"]}, "results": {"bindings": [{"s": uri("a")}]}})
        assert len(bs.rows) == 1

    def test_results_bindings_disabled(self):
        """Test results documents can be refused."""
        with pytest.raises(ValueError):
            BindingSet.from_json(
                {"head": {"vars": ["s"]}, "results": {"bindings": []}},
                accept_results_format=False,
            )

    def test_xml_lang_alias(self):
        """Test the xml:lang key maps to the language tag."""
        bs = BindingSet.from_json(binding_set(
            ["l"], [{"l": {"type": "literal", "value": "hi", "xml:lang": "en"}}]
        ))
        assert bs.rows[0]["l"].lang == "en"

    def test_undeclared_keys_dropped(self, caplog):
        """Test row keys outside head.vars are dropped with a warning."""
        with caplog.at_level(logging.WARNING):
            bs = BindingSet.from_json(binding_set(["s"], [{"s": uri("a"), "x": uri("b")}]))
        assert list(bs.rows[0]) == ["s"]
        assert "not declared in head.vars" in caplog.text

    @pytest.mark.parametrize("data", [
        None,
        [],
        {"arguments": {"bindings": []}},
        {"head": {"vars": "s"}, "arguments": {"bindings": []}},
        {"head": {"vars": ["s"]}},
        {"head": {"vars": ["s"]}, "arguments": {"bindings": "nope"}},
        {"head": {"vars": ["s"]}, "arguments": {"bindings": [{"s": {"type": "uri"}}]}},
    ])
    def test_malformed(self, data):
        """Test malformed documents raise ValueError."""
        with pytest.raises(ValueError):
            BindingSet.from_json(data)

    def test_to_json(self):
        """Test the JSON form keeps xml:lang and omits empty fields."""
        bs = BindingSet.from_json(binding_set(
            ["l"], [{"l": {"type": "literal", "value": "hi", "xml:lang": "en"}}]
        ))
        assert bs.to_json() == binding_set(
            ["l"], [{"l": {"type": "literal", "value": "hi", "xml:lang": "en"}}]
        )


class TestApplyBindings:
    """Tests for apply_bindings."""

    def test_replaces_placeholder_row(self):
        """Test the UNDEF row is replaced by the bound rows."""
        result = apply_bindings(PLACEHOLDER_QUERY, binding_set(["s"], [{"s": uri("a")}, {"s": uri("b")}]))
        clause = values_clauses(result)[0]
        assert clause.rows == [[IRI(EX + "a")], [IRI(EX + "b")]]

    def test_keeps_bound_rows_in_front(self):
        """Test existing bound rows stay and new rows are appended."""
        query = """
        SELECT ?subject ?predicate WHERE {
            VALUES (?subject ?predicate) { (<ex:s1> <ex:p1>) (UNDEF UNDEF) }
            ?subject ?predicate ?o
        }
        """
        result = apply_bindings(query, binding_set(
            ["subject", "predicate"],
            [{"subject": {"type": "uri", "value": "ex:s2"}, "predicate": {"type": "uri", "value": "ex:p2"}}],
        ))
        clause = values_clauses(result)[0]
        assert clause.rows == [
            [IRI("ex:s1"), IRI("ex:p1")],
            [IRI("ex:s2"), IRI("ex:p2")],
        ]
        assert "UNDEF" not in result

    def test_partial_row_binding(self):
        """Test a variable missing from one row stays UNDEF in that row."""
        query = "SELECT ?a ?b WHERE { VALUES (?a ?b) { (UNDEF UNDEF) } }"
        result = apply_bindings(query, binding_set(
            ["a", "b"], [{"a": uri("x"), "b": uri("y")}, {"a": uri("z")}]
        ))
        clause = values_clauses(result)[0]
        assert clause.rows == [[IRI(EX + "x"), IRI(EX + "y")], [IRI(EX + "z"), None]]

    def test_fixed_clause_left_unchanged(self):
        """Test a covered clause without a placeholder row is not widened."""
        query = "SELECT ?s WHERE { ?s ?p ?o VALUES ?s { <http://example.org/a> } }"
        result = apply_bindings(query, binding_set(["s"], [{"s": uri("b")}]))
        assert values_clauses(result)[0].rows == [[IRI(EX + "a")]]

    def test_fixed_clause_beside_parameter(self):
        """Test only the placeholder clause is bound when both share a variable."""
        query = """
        SELECT ?s WHERE {
            VALUES ?s { <http://example.org/a> }
            OPTIONAL { VALUES ?s { UNDEF } ?s ?p ?o }
        }
        """
        result = apply_bindings(query, binding_set(["s"], [{"s": uri("b")}]))
        fixed, bound = values_clauses(result)
        assert fixed.rows == [[IRI(EX + "a")]]
        assert bound.rows == [[IRI(EX + "b")]]

    def test_uncovered_clause_left_unchanged(self, caplog):
        """Test a clause whose variables are not all in the header is untouched."""
        query = "SELECT ?a WHERE { VALUES (?a ?b) { (UNDEF UNDEF) } }"
        with caplog.at_level(logging.WARNING):
            result = apply_bindings(query, binding_set(["a"], [{"a": uri("x")}]))
        assert values_clauses(result)[0].rows == [[None, None]]
        assert "not fully covered" in caplog.text

    def test_uncovered_clause_does_not_stop_others(self):
        """Test processing continues past an uncovered clause."""
        query = """
        SELECT ?a WHERE {
            VALUES (?a ?b) { (UNDEF UNDEF) }
            VALUES ?a { UNDEF }
        }
        """
        result = apply_bindings(query, binding_set(["a"], [{"a": uri("x")}]))
        first, second = values_clauses(result)
        assert first.rows == [[None, None]]
        assert second.rows == [[IRI(EX + "x")]]

    def test_empty_rows_keep_placeholder(self):
        """Test an empty binding set does not destroy the placeholder."""
        result = apply_bindings(PLACEHOLDER_QUERY, binding_set(["s"], []))
        assert values_clauses(result)[0].rows == [[None]]

    def test_empty_values_block_untouched(self):
        """Test a VALUES block with zero rows is never rewritten."""
        query = "SELECT ?s WHERE { VALUES ?s { } }"
        result = apply_bindings(query, binding_set(["s"], [{"s": uri("a")}]))
        assert values_clauses(result)[0].rows == []

    def test_no_values_clause(self):
        """Test a query without VALUES comes back structurally unchanged."""
        query = "SELECT ?s WHERE { ?s ?p ?o FILTER(?o > 3) } ORDER BY ?s LIMIT 10"
        result = apply_bindings(query, binding_set(["s"], [{"s": uri("a")}]))
        assert parse_query(result) == parse_query(query)

    def test_every_covered_clause_is_bound(self):
        """Test all clauses for the same variables receive the rows."""
        query = """
        SELECT ?s WHERE {
            { VALUES ?s { UNDEF } ?s ?p ?o } UNION { VALUES ?s { UNDEF } ?o ?p ?s }
        }
        """
        result = apply_bindings(query, binding_set(["s"], [{"s": uri("a")}]))
        assert [c.rows for c in values_clauses(result)] == [[[IRI(EX + "a")]], [[IRI(EX + "a")]]]

    def test_sub_select_and_exists_clauses(self):
        """Test clauses inside sub-selects and FILTER EXISTS are bound."""
        query = """
        SELECT ?s WHERE {
            { SELECT ?s WHERE { ?s ?p ?o VALUES ?s { UNDEF } } }
            FILTER EXISTS { VALUES ?s { UNDEF } ?s ?q ?r }
        }
        """
        result = apply_bindings(query, binding_set(["s"], [{"s": uri("a")}]))
        assert all(c.rows == [[IRI(EX + "a")]] for c in values_clauses(result))

    def test_placeholders_removed_after_binding(self):
        """Test a fully bound set for every detected group removes every UNDEF row."""
        query = """
        SELECT ?a ?b WHERE {
            VALUES ?a { UNDEF }
            OPTIONAL { VALUES (?a ?b) { (<http://example.org/x> <http://example.org/y>) (UNDEF UNDEF) } }
        }
        """
        rows = [{"a": uri("1"), "b": uri("2")}]
        result = apply_bindings(query, binding_set(["a", "b"], rows))
        assert detect_parameter_groups(result) == []

    def test_literal_rendering(self):
        """Test plain, language-tagged and typed literals."""
        query = "SELECT ?a ?b ?c ?d WHERE { VALUES (?a ?b ?c ?d) { (UNDEF UNDEF UNDEF UNDEF) } }"
        result = apply_bindings(query, binding_set(["a", "b", "c", "d"], [{
            "a": {"type": "literal", "value": "plain"},
            "b": {"type": "literal", "value": "chat", "xml:lang": "fr"},
            "c": {"type": "literal", "value": "5", "datatype": XSD_INTEGER},
            "d": {"type": "literal", "value": "x", "datatype": "http://www.w3.org/2001/XMLSchema#string"},
        }]))
        row = values_clauses(result)[0].rows[0]
        assert row == [
            Literal("plain"),
            Literal("chat", language="fr"),
            Literal("5", datatype=IRI(XSD_INTEGER)),
            Literal("x"),
        ]
        assert '"chat"@fr' in result

    def test_language_wins_over_datatype(self, caplog):
        """Test a literal with both lang and datatype keeps the language."""
        with caplog.at_level(logging.WARNING):
            result = apply_bindings(PLACEHOLDER_QUERY, binding_set(["s"], [{
                "s": {"type": "literal", "value": "hi", "xml:lang": "en", "datatype": XSD_INTEGER},
            }]))
        assert values_clauses(result)[0].rows == [[Literal("hi", language="en")]]
        assert "using the language tag" in caplog.text

    def test_literal_escaping(self):
        """Test quotes and newlines in bound literals survive."""
        value = 'say "hi"\nnow'
        result = apply_bindings(PLACEHOLDER_QUERY, binding_set(["s"], [{
            "s": {"type": "literal", "value": value},
        }]))
        assert values_clauses(result)[0].rows == [[Literal(value)]]

    def test_bnode_is_illegal(self):
        """Test blank nodes abort the whole call."""
        with pytest.raises(IllegalBindingType) as exc_info:
            apply_bindings(PLACEHOLDER_QUERY, binding_set(["s"], [{"s": {"type": "bnode", "value": "b0"}}]))
        assert exc_info.value.binding_type == "bnode"
        assert exc_info.value.variable == "s"
        assert isinstance(exc_info.value, BindingError)

    def test_unknown_type_is_undef(self, caplog):
        """Test an unknown binding kind leaves the slot unbound."""
        query = "SELECT ?a ?b WHERE { VALUES (?a ?b) { (UNDEF UNDEF) } }"
        with caplog.at_level(logging.WARNING):
            result = apply_bindings(query, binding_set(["a", "b"], [{
                "a": uri("x"), "b": {"type": "triple", "value": "?"},
            }]))
        assert values_clauses(result)[0].rows == [[IRI(EX + "x"), None]]
        assert "Unsupported binding type 'triple'" in caplog.text

    def test_missing_type_is_undef(self, caplog):
        """Test a cell without a type only unbinds its own slot."""
        query = """
        SELECT ?a ?b WHERE {
            VALUES (?a ?b) { (UNDEF UNDEF) }
            VALUES ?a { UNDEF }
        }
        """
        with caplog.at_level(logging.WARNING):
            result = apply_bindings(query, binding_set(["a", "b"], [{
                "a": uri("x"), "b": {"value": "y"},
            }]))
        first, second = values_clauses(result)
        assert first.rows == [[IRI(EX + "x"), None]]
        assert second.rows == [[IRI(EX + "x")]]
        assert "Unsupported binding type ''" in caplog.text

    @pytest.mark.parametrize("value", [
        "http://a> } } ; DROP ALL #",
        "http://example.org/a b",
        'http://example.org/"q"',
    ])
    def test_invalid_iri(self, value):
        """Test IRIs the grammar would reject abort the call."""
        with pytest.raises(BindingError) as exc_info:
            apply_bindings(PLACEHOLDER_QUERY, binding_set(["s"], [{"s": {"type": "uri", "value": value}}]))
        assert "Invalid IRI" in str(exc_info.value)
        assert "'s'" in str(exc_info.value)

    @pytest.mark.parametrize("lang", ["en } FILTER(false) #", "en_US", "-en"])
    def test_invalid_language_tag(self, lang):
        """Test language tags outside LANGTAG abort the call."""
        bindings = binding_set(["s"], [{"s": {"type": "literal", "value": "x", "xml:lang": lang}}])
        with pytest.raises(BindingError) as exc_info:
            apply_bindings(PLACEHOLDER_QUERY, bindings)
        assert "Invalid language tag" in str(exc_info.value)

    def test_invalid_datatype(self):
        """Test a datatype that is not a valid IRI aborts the call."""
        bindings = binding_set(["s"], [{
            "s": {"type": "literal", "value": "5", "datatype": "http://x> } DROP ALL #"},
        }])
        with pytest.raises(BindingError) as exc_info:
            apply_bindings(PLACEHOLDER_QUERY, bindings)
        assert "Invalid datatype IRI" in str(exc_info.value)

    def test_valid_language_subtags(self):
        """Test multi-part language tags are accepted."""
        result = apply_bindings(PLACEHOLDER_QUERY, binding_set(["s"], [{
            "s": {"type": "literal", "value": "color", "xml:lang": "en-US"},
        }]))
        assert values_clauses(result)[0].rows == [[Literal("color", language="en-US")]]

    def test_results_document_chaining(self):
        """Test a SELECT results document can feed another query."""
        results = {"head": {"vars": ["s"]}, "results": {"bindings": [{"s": uri("a")}]}}
        result = apply_bindings(PLACEHOLDER_QUERY, results)
        assert values_clauses(result)[0].rows == [[IRI(EX + "a")]]

    def test_results_document_refused(self, caplog):
        """Test results documents are ignored when not accepted."""
        results = {"head": {"vars": ["s"]}, "results": {"bindings": [{"s": uri("a")}]}}
        with caplog.at_level(logging.WARNING):
            result = apply_bindings(PLACEHOLDER_QUERY, results, accept_results_format=False)
        assert values_clauses(result)[0].rows == [[None]]
        assert "malformed binding set" in caplog.text

    @pytest.mark.parametrize("bindings", [None, {}, {"head": {}}, "text"])
    def test_malformed_binding_set_is_noop(self, bindings, caplog):
        """Test a malformed binding set leaves the query unchanged."""
        with caplog.at_level(logging.WARNING):
            result = apply_bindings(PLACEHOLDER_QUERY, bindings)
        assert parse_query(result) == parse_query(PLACEHOLDER_QUERY)
        assert caplog.records

    def test_binding_set_instance(self):
        """Test a BindingSet object is accepted directly."""
        bs = BindingSet(header=["s"], rows=[{"s": TypedValue(type="uri", value=EX + "a")}])
        result = apply_bindings(PLACEHOLDER_QUERY, bs)
        assert values_clauses(result)[0].rows == [[IRI(EX + "a")]]

    def test_input_tree_not_mutated(self):
        """Test a parsed input query is left as it was."""
        tree = parse_query(PLACEHOLDER_QUERY)
        before = parse_query(PLACEHOLDER_QUERY)
        apply_bindings(tree, binding_set(["s"], [{"s": uri("a")}]))
        assert tree == before

    def test_deterministic(self):
        """Test identical inputs give identical text."""
        bindings = binding_set(["s"], [{"s": uri("a")}])
        assert apply_bindings(PLACEHOLDER_QUERY, bindings) == apply_bindings(PLACEHOLDER_QUERY, bindings)

    def test_update_where_clause(self):
        """Test binding into an update WHERE clause."""
        query = "DELETE { ?s ?p ?o } WHERE { ?s ?p ?o VALUES ?s { UNDEF } }"
        result = apply_bindings(query, binding_set(["s"], [{"s": uri("a")}]))
        assert values_clauses(result)[0].rows == [[IRI(EX + "a")]]


class TestApplyArguments:
    """Tests for positional argument binding."""

    QUERY = """
    SELECT ?a ?b ?c WHERE {
        VALUES (?a ?b) { (UNDEF UNDEF) }
        VALUES ?c { UNDEF }
    }
    """

    def test_positional_binding(self):
        """Test argument set i fills the i-th placeholder clause."""
        result = apply_arguments(self.QUERY, [
            {"head": {"vars": ["a", "b"]}, "arguments": [{"a": uri("1"), "b": uri("2")}]},
            {"head": {"vars": ["c"]}, "arguments": [{"c": uri("3")}]},
        ])
        first, second = values_clauses(result)
        assert first.rows == [[IRI(EX + "1"), IRI(EX + "2")]]
        assert second.rows == [[IRI(EX + "3")]]

    def test_count_mismatch(self):
        """Test the number of argument sets must match the placeholder clauses."""
        with pytest.raises(ArgumentMismatchError) as exc_info:
            apply_arguments(self.QUERY, [{"head": {"vars": ["a", "b"]}, "arguments": []}])
        assert str(exc_info.value) == "Mismatch: Found 2 UNDEF VALUES clauses, but received 1 argument sets."

    def test_header_mismatch(self):
        """Test a header must name exactly the clause's variables."""
        with pytest.raises(ArgumentMismatchError) as exc_info:
            apply_arguments(self.QUERY, [
                {"head": {"vars": ["a"]}, "arguments": [{"a": uri("1")}]},
                {"head": {"vars": ["c"]}, "arguments": [{"c": uri("3")}]},
            ])
        assert str(exc_info.value) == (
            "Variable mismatch for VALUES clause 1. Query expects [a, b], arguments provide [a]."
        )

    def test_header_order_does_not_matter(self):
        """Test the header may list the variables in any order."""
        result = apply_arguments(self.QUERY, [
            {"head": {"vars": ["b", "a"]}, "arguments": [{"a": uri("1"), "b": uri("2")}]},
            {"head": {"vars": ["c"]}, "arguments": [{"c": uri("3")}]},
        ])
        assert values_clauses(result)[0].rows == [[IRI(EX + "1"), IRI(EX + "2")]]

    def test_partial_row_is_undef(self):
        """Test a missing variable in a row becomes UNDEF."""
        result = apply_arguments(self.QUERY, [
            {"head": {"vars": ["a", "b"]}, "arguments": [{"a": uri("1")}]},
            {"head": {"vars": ["c"]}, "arguments": [{"c": uri("3")}]},
        ])
        assert values_clauses(result)[0].rows == [[IRI(EX + "1"), None]]

    def test_empty_arguments_keep_placeholder(self, caplog):
        """Test an empty argument list leaves its clause unchanged."""
        query = "SELECT ?a WHERE { VALUES ?a { UNDEF } }"
        with caplog.at_level(logging.WARNING):
            result = apply_arguments(query, [{"head": {"vars": ["a"]}, "arguments": []}])
        assert values_clauses(result)[0].rows == [[None]]
        assert (
            "Argument set at index 0 has an empty arguments list. "
            "Skipping modification for VALUES clause with variables [a]."
        ) in caplog.text

    def test_only_placeholder_clauses_are_counted(self):
        """Test fully bound VALUES clauses take no argument set."""
        query = """
        SELECT ?a ?x WHERE {
            VALUES ?x { <http://example.org/fixed> }
            VALUES ?a { UNDEF }
        }
        """
        result = apply_arguments(query, [{"head": {"vars": ["a"]}, "arguments": [{"a": uri("1")}]}])
        fixed, bound = values_clauses(result)
        assert fixed.rows == [[IRI(EX + "fixed")]]
        assert bound.rows == [[IRI(EX + "1")]]

    @pytest.mark.parametrize("kind", ["bnode", "triple"])
    def test_illegal_types(self, kind):
        """Test only uri and literal values are accepted."""
        with pytest.raises(IllegalBindingType):
            apply_arguments("SELECT ?a WHERE { VALUES ?a { UNDEF } }", [
                {"head": {"vars": ["a"]}, "arguments": [{"a": {"type": kind, "value": "x"}}]},
            ])

    def test_literal_argument(self):
        """Test literal arguments, with xsd:string written as a plain literal."""
        result = apply_arguments("SELECT ?a WHERE { VALUES ?a { UNDEF } }", [
            {"head": {"vars": ["a"]}, "arguments": [
                {"a": {"type": "literal", "value": "x",
                       "datatype": "http://www.w3.org/2001/XMLSchema#string"}},
            ]},
        ])
        assert values_clauses(result)[0].rows == [[Literal("x")]]
        assert "XMLSchema#string" not in result

    def test_invalid_iri_argument(self):
        """Test argument IRIs are checked like bound values."""
        with pytest.raises(BindingError):
            apply_arguments("SELECT ?a WHERE { VALUES ?a { UNDEF } }", [
                {"head": {"vars": ["a"]}, "arguments": [{"a": {"type": "uri", "value": "http://a> } #"}}]},
            ])

    def test_malformed_argument_set(self):
        """Test a malformed argument set raises a mismatch error."""
        with pytest.raises(ArgumentMismatchError):
            apply_arguments("SELECT ?a WHERE { VALUES ?a { UNDEF } }", [{"arguments": []}])


class TestApplyLimitOffset:
    """Tests for LIMIT/OFFSET placeholder substitution."""

    QUERY = "SELECT ?s WHERE { ?s ?p ?o } LIMIT 000123 OFFSET 00045"

    def test_substitutes_mapped_values(self):
        """Test mapped placeholders take the given values."""
        result = apply_limit_offset(self.QUERY, limit={"123": 50}, offset={"45": 10})
        tree = parse_query(result)
        assert tree.limit == "50"
        assert tree.offset == "10"

    def test_unmapped_placeholders_kept(self):
        """Test placeholders without a value stay as written."""
        result = apply_limit_offset(self.QUERY, limit={"999": 1})
        tree = parse_query(result)
        assert tree.limit == "000123"
        assert detect_limit_offset_parameters(result).offset == ["45"]

    def test_plain_values_untouched(self):
        """Test ordinary LIMIT values are never replaced."""
        result = apply_limit_offset("SELECT ?s WHERE { ?s ?p ?o } LIMIT 123", limit={"123": 1})
        assert parse_query(result).limit == "123"

    def test_sub_select(self):
        """Test sub-select placeholders are substituted."""
        query = "SELECT ?s WHERE { { SELECT ?s WHERE { ?s ?p ?o } LIMIT 0007 } }"
        result = apply_limit_offset(query, limit={"7": 3})
        inner = parse_query(result).where.patterns[0].query
        assert inner.limit == "3"

    @pytest.mark.parametrize("value", [-1, "10", 1.5, True])
    def test_invalid_values(self, value):
        """Test values must be non-negative integers."""
        with pytest.raises(BindingError):
            apply_limit_offset(self.QUERY, limit={"123": value})

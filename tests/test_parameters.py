"""
Tests for parameter detection and output column detection.
"""

import pytest

from rdf_querybase.errors import SPARQLSyntaxError
from rdf_querybase.params import (
    DetectedParameters,
    QueryType,
    detect_parameter_groups,
    detect_limit_offset_parameters,
    detect_parameters,
    detect_output_columns,
    detect_query_type,
)
from rdf_querybase.params.detector import placeholder_id
from rdf_querybase.sparql import parse_query


class TestDetectParameterGroups:
    """Tests for VALUES parameter detection."""

    def test_single_placeholder(self):
        """Test a single-variable VALUES with UNDEF is one group."""
        query = "SELECT ?s WHERE { ?s ?p ?o VALUES ?s { UNDEF } }"
        assert detect_parameter_groups(query) == [["s"]]

    def test_multi_variable_placeholder(self):
        """Test a multi-variable clause yields its variables in order."""
        query = """
        SELECT ?subject ?predicate WHERE {
            VALUES (?subject ?predicate) { (<http://example.org/s1> <http://example.org/p1>) (UNDEF UNDEF) }
            ?subject ?predicate ?o
        }
        """
        assert detect_parameter_groups(query) == [["subject", "predicate"]]

    def test_partial_undef_does_not_qualify(self):
        """Test a clause whose rows are only partly unbound is not a group."""
        query = """
        SELECT ?a WHERE { VALUES (?a ?b) { (<http://example.org/x> UNDEF) (UNDEF <http://example.org/y>) } }
        """
        assert detect_parameter_groups(query) == []

    def test_fully_bound_values_is_not_a_group(self):
        """Test ordinary inline data is left out."""
        query = "SELECT ?s WHERE { VALUES ?s { <http://example.org/a> } }"
        assert detect_parameter_groups(query) == []

    def test_no_values(self):
        """Test a query without VALUES has no groups."""
        assert detect_parameter_groups("SELECT ?s WHERE { ?s ?p ?o }") == []

    def test_empty_values_block(self):
        """Test a VALUES block with no rows is not a group."""
        assert detect_parameter_groups("SELECT ?s WHERE { VALUES ?s { } }") == []

    def test_nested_patterns_in_lexical_order(self):
        """Test groups are found in OPTIONAL, UNION, EXISTS, GRAPH and sub-selects."""
        query = """
        SELECT ?a WHERE {
            VALUES ?a { UNDEF }
            OPTIONAL { VALUES ?b { UNDEF } }
            { VALUES ?c { UNDEF } } UNION { VALUES ?d { UNDEF } }
            GRAPH ?g { VALUES ?e { UNDEF } }
            FILTER NOT EXISTS { VALUES ?f { UNDEF } }
            { SELECT ?h WHERE { VALUES ?h { UNDEF } } }
        }
        """
        assert detect_parameter_groups(query) == [["a"], ["b"], ["c"], ["d"], ["e"], ["f"], ["h"]]

    def test_trailing_values_is_not_a_group(self):
        """Test the VALUES block after the WHERE clause is not a parameter."""
        query = "SELECT ?s WHERE { ?s ?p ?o } VALUES ?s { UNDEF }"
        assert detect_parameter_groups(query) == []

    def test_update_where_clause(self):
        """Test groups inside an update WHERE clause."""
        query = """
        DELETE { ?s ?p ?o } WHERE { ?s ?p ?o VALUES ?s { UNDEF } }
        """
        assert detect_parameter_groups(query) == [["s"]]

    def test_accepts_parsed_tree(self):
        """Test an already parsed query is accepted."""
        tree = parse_query("SELECT ?s WHERE { VALUES ?s { UNDEF } }")
        assert detect_parameter_groups(tree) == [["s"]]

    def test_deterministic(self):
        """Test the same query always gives the same groups."""
        query = "SELECT ?s WHERE { VALUES ?s { UNDEF } OPTIONAL { VALUES (?x ?y) { (UNDEF UNDEF) } } }"
        assert detect_parameter_groups(query) == detect_parameter_groups(query)

    def test_invalid_query_raises(self):
        """Test unparseable text raises a syntax error."""
        with pytest.raises(SPARQLSyntaxError):
            detect_parameter_groups("SELECT WHERE {")


class TestDetectLimitOffset:
    """Tests for LIMIT/OFFSET placeholder detection."""

    def test_placeholder_limit(self):
        """Test LIMIT 000123 is the parameter '123'."""
        result = detect_limit_offset_parameters("SELECT ?s WHERE { ?s ?p ?o } LIMIT 000123")
        assert result.limit == ["123"]
        assert result.offset == []

    def test_placeholder_offset(self):
        """Test OFFSET placeholders."""
        result = detect_limit_offset_parameters("SELECT ?s WHERE { ?s ?p ?o } LIMIT 10 OFFSET 00042")
        assert result.limit == []
        assert result.offset == ["42"]

    def test_plain_numbers_ignored(self):
        """Test ordinary LIMIT/OFFSET values are not parameters."""
        result = detect_limit_offset_parameters("SELECT ?s WHERE { ?s ?p ?o } LIMIT 100 OFFSET 20")
        assert result.limit == []
        assert result.offset == []

    def test_bare_prefix_is_zero(self):
        """Test LIMIT 000 is a plain zero, not a parameter."""
        result = detect_limit_offset_parameters("SELECT ?s WHERE { ?s ?p ?o } LIMIT 000")
        assert result.limit == []

    def test_sub_select_placeholders_in_lexical_order(self):
        """Test sub-select modifiers are scanned and come first."""
        query = """
        SELECT ?s WHERE {
            { SELECT ?s WHERE { ?s ?p ?o } LIMIT 0001 }
        } LIMIT 0002
        """
        assert detect_limit_offset_parameters(query).limit == ["1", "2"]

    @pytest.mark.parametrize("lexical,expected", [
        ("000123", "123"),
        ("0005", "5"),
        ("000", None),
        ("123", None),
        ("00", None),
        (None, None),
    ])
    def test_placeholder_id(self, lexical, expected):
        """Test identifier extraction from a lexical integer."""
        assert placeholder_id(lexical) == expected


class TestDetectParameters:
    """Tests for the combined detection result."""

    def test_combined(self):
        """Test VALUES, LIMIT and OFFSET slots together."""
        query = """
        SELECT ?s WHERE { ?s ?p ?o VALUES ?s { UNDEF } } LIMIT 0005 OFFSET 0007
        """
        detected = detect_parameters(query)

        assert isinstance(detected, DetectedParameters)
        assert detected.values_parameters == [["s"]]
        assert detected.limit_parameters == ["5"]
        assert detected.offset_parameters == ["7"]

    def test_json_keys(self):
        """Test the JSON form uses camelCase keys."""
        detected = detect_parameters("SELECT ?s WHERE { VALUES ?s { UNDEF } }")
        assert detected.to_json() == {
            "valuesParameters": [["s"]],
            "limitParameters": [],
            "offsetParameters": [],
        }


class TestDetectOutputColumns:
    """Tests for output column detection."""

    def test_plain_projection(self):
        """Test bare variables in declared order."""
        assert detect_output_columns("SELECT ?b ?a WHERE { ?a ?p ?b }") == ["b", "a"]

    def test_aliases(self):
        """Test aliased expressions contribute their alias."""
        query = "SELECT ?s (COUNT(?o) AS ?c) ?p WHERE { ?s ?p ?o } GROUP BY ?s ?p"
        assert detect_output_columns(query) == ["s", "c", "p"]

    def test_select_star(self):
        """Test SELECT * has no column list."""
        assert detect_output_columns("SELECT * WHERE { ?s ?p ?o }") == []

    @pytest.mark.parametrize("query", [
        "CONSTRUCT { ?s ?p ?o } WHERE { ?s ?p ?o }",
        "ASK { ?s ?p ?o }",
        "DESCRIBE ?s WHERE { ?s ?p ?o }",
        "INSERT DATA { <http://example.org/a> <http://example.org/b> 1 }",
    ])
    def test_non_select_forms(self, query):
        """Test non-SELECT forms have no columns."""
        assert detect_output_columns(query) == []

    def test_sub_select_projection_not_included(self):
        """Test only the outermost projection counts."""
        query = """
        SELECT ?s WHERE {
            { SELECT ?s (MAX(?o) AS ?top) WHERE { ?s ?p ?o } GROUP BY ?s }
        }
        """
        assert detect_output_columns(query) == ["s"]


class TestDetectQueryType:
    """Tests for query form detection."""

    @pytest.mark.parametrize("query,expected", [
        ("SELECT ?s WHERE { ?s ?p ?o }", QueryType.SELECT),
        ("CONSTRUCT { ?s ?p ?o } WHERE { ?s ?p ?o }", QueryType.CONSTRUCT),
        ("ASK { ?s ?p ?o }", QueryType.ASK),
        ("DESCRIBE <http://example.org/a>", QueryType.DESCRIBE),
        ("CLEAR DEFAULT", QueryType.UPDATE),
    ])
    def test_query_types(self, query, expected):
        """Test each form is recognized."""
        assert detect_query_type(query) == expected

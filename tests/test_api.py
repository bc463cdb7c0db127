"""
Tests for the parameterization REST API.
"""

import pytest
from fastapi.testclient import TestClient

from rdf_querybase import __version__
from rdf_querybase.config import QueryBaseConfig
from rdf_querybase.params import detect_parameter_groups
from rdf_querybase.web import create_app


QUERY = """
SELECT ?s ?label WHERE {
    ?s <http://www.w3.org/2000/01/rdf-schema#label> ?label
    VALUES ?s { UNDEF }
} LIMIT 000100
"""


@pytest.fixture
def client(tmp_path):
    """Create a test client for the API."""
    config = QueryBaseConfig()
    config.storage.queries_dir = str(tmp_path / "queries")
    return TestClient(create_app(config))


class TestInfoAPI:
    """Test the info endpoints."""

    def test_health(self, client):
        """Test the health check."""
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "healthy", "version": __version__}

    def test_root(self, client):
        """Test the API root."""
        assert client.get("/").json()["name"] == "RDF-QueryBase"


class TestParameterAPI:
    """Test the parameterization endpoints."""

    def test_parameters(self, client):
        """Test detecting parameters over HTTP."""
        response = client.post("/sparql/parameters", json={"query": QUERY})
        assert response.status_code == 200
        assert response.json() == {
            "valuesParameters": [["s"]],
            "limitParameters": ["100"],
            "offsetParameters": [],
        }

    def test_outputs(self, client):
        """Test detecting output columns over HTTP."""
        response = client.post("/sparql/outputs", json={"query": QUERY})
        assert response.status_code == 200
        assert response.json() == {"outputs": ["s", "label"]}

    def test_apply(self, client):
        """Test binding values over HTTP."""
        response = client.post("/sparql/apply", json={
            "query": QUERY,
            "bindings": {
                "head": {"vars": ["s"]},
                "arguments": {"bindings": [{"s": {"type": "uri", "value": "http://example.org/a"}}]},
            },
            "limit": {"100": 5},
        })
        assert response.status_code == 200
        text = response.json()["query"]
        assert "<http://example.org/a>" in text
        assert "LIMIT 5" in text
        assert detect_parameter_groups(text) == []

    def test_apply_without_values(self, client):
        """Test apply with nothing to bind returns the query."""
        response = client.post("/sparql/apply", json={"query": "ASK { ?s ?p ?o }"})
        assert response.status_code == 200
        assert response.json()["query"].startswith("ASK")

    def test_arguments(self, client):
        """Test positional argument binding over HTTP."""
        response = client.post("/sparql/arguments", json={
            "query": QUERY,
            "arguments": [
                {"head": {"vars": ["s"]}, "arguments": [{"s": {"type": "uri", "value": "http://example.org/b"}}]},
            ],
        })
        assert response.status_code == 200
        assert "<http://example.org/b>" in response.json()["query"]

    def test_syntax_error(self, client):
        """Test malformed queries are a client error."""
        response = client.post("/sparql/parameters", json={"query": "SELECT ?s WHERE {"})
        assert response.status_code == 400
        assert "Failed to parse SPARQL query" in response.json()["detail"]

    def test_illegal_binding(self, client):
        """Test blank node bindings are a client error."""
        response = client.post("/sparql/apply", json={
            "query": QUERY,
            "bindings": {
                "head": {"vars": ["s"]},
                "arguments": {"bindings": [{"s": {"type": "bnode", "value": "b0"}}]},
            },
        })
        assert response.status_code == 400
        assert "bnode" in response.json()["detail"]

    def test_argument_mismatch(self, client):
        """Test argument count mismatches are a client error."""
        response = client.post("/sparql/arguments", json={"query": QUERY, "arguments": []})
        assert response.status_code == 400
        assert response.json()["detail"].startswith("Mismatch:")

    def test_negative_limit(self, client):
        """Test negative LIMIT values are a client error."""
        response = client.post("/sparql/apply", json={"query": QUERY, "limit": {"100": -1}})
        assert response.status_code == 400

    def test_invalid_language_tag(self, client):
        """Test a language tag that would break the query is a client error."""
        response = client.post("/sparql/apply", json={
            "query": QUERY,
            "bindings": {
                "head": {"vars": ["s"]},
                "arguments": {"bindings": [
                    {"s": {"type": "literal", "value": "x", "xml:lang": "en } FILTER(false) #"}},
                ]},
            },
        })
        assert response.status_code == 400
        assert "Invalid language tag" in response.json()["detail"]

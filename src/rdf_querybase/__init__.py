"""
RDF-QueryBase: parameterized SPARQL queries.

Detects the parameter slots of a stored query, binds runtime values into
them, and reports the columns the query returns.
"""

__version__ = "0.1.0"

from rdf_querybase.errors import (
    QueryBaseError,
    SPARQLSyntaxError,
    BindingError,
    IllegalBindingType,
    ArgumentMismatchError,
)
from rdf_querybase.sparql import parse_query, serialize_query
from rdf_querybase.params import (
    TypedValue,
    BindingSet,
    DetectedParameters,
    QueryType,
    detect_parameter_groups,
    detect_limit_offset_parameters,
    detect_parameters,
    apply_bindings,
    apply_arguments,
    apply_limit_offset,
    detect_output_columns,
    detect_query_type,
)
from rdf_querybase.config import QueryBaseConfig
from rdf_querybase.storage import SavedQuery, SavedQueryManager

__all__ = [
    "QueryBaseError",
    "SPARQLSyntaxError",
    "BindingError",
    "IllegalBindingType",
    "ArgumentMismatchError",
    "parse_query",
    "serialize_query",
    "TypedValue",
    "BindingSet",
    "DetectedParameters",
    "QueryType",
    "detect_parameter_groups",
    "detect_limit_offset_parameters",
    "detect_parameters",
    "apply_bindings",
    "apply_arguments",
    "apply_limit_offset",
    "detect_output_columns",
    "detect_query_type",
    "QueryBaseConfig",
    "SavedQuery",
    "SavedQueryManager",
]

"""
Query parameterization: detect parameter slots, bind runtime values,
and find output columns.
"""

from rdf_querybase.params.models import (
    TypedValue,
    BindingRow,
    BindingSet,
    DetectedParameters,
    LimitOffsetParameters,
)
from rdf_querybase.params.detector import (
    detect_parameter_groups,
    detect_limit_offset_parameters,
    detect_parameters,
)
from rdf_querybase.params.bindings import (
    apply_bindings,
    apply_arguments,
    apply_limit_offset,
)
from rdf_querybase.params.outputs import (
    QueryType,
    detect_output_columns,
    detect_query_type,
)

__all__ = [
    "TypedValue",
    "BindingRow",
    "BindingSet",
    "DetectedParameters",
    "LimitOffsetParameters",
    "detect_parameter_groups",
    "detect_limit_offset_parameters",
    "detect_parameters",
    "apply_bindings",
    "apply_arguments",
    "apply_limit_offset",
    "QueryType",
    "detect_output_columns",
    "detect_query_type",
]

"""
Data models for query parameters and runtime bindings.

Binding sets follow the SPARQL 1.1 Query Results JSON term encoding:

    {"head": {"vars": ["s", "p"]},
     "arguments": {"bindings": [
         {"s": {"type": "uri", "value": "http://example.org/s"},
          "p": {"type": "literal", "value": "hi", "xml:lang": "en"}}
     ]}}
"""

import logging
from typing import Any, NamedTuple, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

logger = logging.getLogger(__name__)


class TypedValue(BaseModel):
    """
    One RDF term in SPARQL-JSON encoding.

    ``type`` is kept as a free string: uri, literal and bnode are the known
    kinds, anything else (a missing type included) is reported by the
    binding applier and bound as UNDEF.
    """
    model_config = ConfigDict(populate_by_name=True)

    type: str = ""
    value: str
    datatype: Optional[str] = None
    lang: Optional[str] = Field(default=None, alias="xml:lang")


BindingRow = dict[str, TypedValue]


class BindingSet(BaseModel):
    """Caller-supplied values: a header of variable names plus rows of typed values."""
    header: list[str] = Field(default_factory=list)
    rows: list[BindingRow] = Field(default_factory=list)

    @classmethod
    def from_json(cls, data: Any, accept_results_format: bool = True) -> "BindingSet":
        """
        Build a binding set from its JSON form.

        Accepts ``{head: {vars}, arguments: {bindings}}``, the same with
        ``arguments`` given directly as the list of bindings, and (when
        ``accept_results_format`` is set) a SPARQL-JSON results document
        ``{head: {vars}, results: {bindings}}``.

        Row keys missing from ``head.vars`` are dropped with a warning.

        Raises:
            ValueError: If the document does not have one of these shapes
        """
        if not isinstance(data, dict):
            raise ValueError("binding set must be a JSON object")

        head = data.get("head")
        if not isinstance(head, dict) or not isinstance(head.get("vars"), list):
            raise ValueError("binding set has no 'head.vars' list")
        header = head["vars"]
        if not all(isinstance(name, str) for name in header):
            raise ValueError("'head.vars' must contain only strings")

        arguments = data.get("arguments")
        if isinstance(arguments, dict):
            bindings = arguments.get("bindings")
        elif isinstance(arguments, list):
            bindings = arguments
        elif accept_results_format and isinstance(data.get("results"), dict):
            bindings = data["results"].get("bindings")
        else:
            raise ValueError("binding set has no 'arguments.bindings' list")
        if not isinstance(bindings, list):
            raise ValueError("binding set bindings must be a list")

        rows = []
        for index, raw in enumerate(bindings):
            if not isinstance(raw, dict):
                raise ValueError(f"binding row {index} must be an object")
            extra = [name for name in raw if name not in header]
            if extra:
                logger.warning(
                    f"Binding row {index} has variables not declared in head.vars, dropping: {extra}"
                )
            try:
                rows.append({
                    name: TypedValue.model_validate(value)
                    for name, value in raw.items() if name in header
                })
            except ValidationError as e:
                raise ValueError(f"binding row {index} is malformed: {e}") from e

        return cls(header=header, rows=rows)

    def to_json(self) -> dict:
        return {
            "head": {"vars": list(self.header)},
            "arguments": {
                "bindings": [
                    {name: value.model_dump(by_alias=True, exclude_none=True) for name, value in row.items()}
                    for row in self.rows
                ]
            },
        }


class LimitOffsetParameters(NamedTuple):
    """Placeholder identifiers found in LIMIT and OFFSET clauses."""
    limit: list[str]
    offset: list[str]


class DetectedParameters(BaseModel):
    """Everything a query exposes for parameterization."""
    model_config = ConfigDict(populate_by_name=True)

    values_parameters: list[list[str]] = Field(default_factory=list, alias="valuesParameters")
    limit_parameters: list[str] = Field(default_factory=list, alias="limitParameters")
    offset_parameters: list[str] = Field(default_factory=list, alias="offsetParameters")

    def to_json(self) -> dict:
        """JSON form with camelCase keys."""
        return self.model_dump(by_alias=True)

"""
SPARQL Parameterization API Router.

Stateless endpoints over the parameterization engine:
- Detect parameter slots in a query
- Detect output columns
- Bind runtime values into a query
- Bind positional argument sets into a query
"""

import asyncio
import logging
from typing import Any, Optional

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field

from rdf_querybase.config import QueryBaseConfig
from rdf_querybase.errors import QueryBaseError
from rdf_querybase.params import (
    apply_arguments,
    apply_bindings,
    apply_limit_offset,
    detect_output_columns,
    detect_parameters,
)

logger = logging.getLogger(__name__)


# =============================================================================
# Pydantic Models
# =============================================================================

class QueryRequest(BaseModel):
    """A SPARQL query or update."""
    query: str = Field(..., description="SPARQL query string")


class ApplyBindingsRequest(BaseModel):
    """Runtime values for a parameterized query."""
    query: str = Field(..., description="SPARQL query string")
    bindings: Optional[dict[str, Any]] = Field(
        None, description="Binding set: {head: {vars}, arguments: {bindings}}"
    )
    limit: Optional[dict[str, int]] = Field(None, description="LIMIT placeholder identifier -> value")
    offset: Optional[dict[str, int]] = Field(None, description="OFFSET placeholder identifier -> value")


class ApplyArgumentsRequest(BaseModel):
    """Positional argument sets, one per parameter VALUES clause."""
    query: str = Field(..., description="SPARQL query string")
    arguments: list[dict[str, Any]] = Field(..., description="Argument sets in clause order")


class QueryTextResponse(BaseModel):
    """A rewritten query."""
    query: str


class OutputsResponse(BaseModel):
    """Output columns of a query."""
    outputs: list[str]


def create_sparql_router(config: Optional[QueryBaseConfig] = None) -> APIRouter:
    """
    Create the parameterization router.

    Args:
        config: Configuration; defaults are used if not provided

    Returns:
        APIRouter mounted under /sparql
    """
    config = config or QueryBaseConfig()
    accept_results_format = config.binding.accept_results_format

    router = APIRouter(prefix="/sparql", tags=["Parameters"])

    @router.post("/parameters")
    async def parameters(request: QueryRequest):
        """Detect VALUES, LIMIT and OFFSET parameter slots."""
        try:
            detected = await asyncio.to_thread(detect_parameters, request.query)
        except QueryBaseError as e:
            raise HTTPException(status_code=400, detail=str(e))
        return detected.to_json()

    @router.post("/outputs", response_model=OutputsResponse)
    async def outputs(request: QueryRequest):
        """Detect the columns the outermost SELECT returns."""
        try:
            columns = await asyncio.to_thread(detect_output_columns, request.query)
        except QueryBaseError as e:
            raise HTTPException(status_code=400, detail=str(e))
        return OutputsResponse(outputs=columns)

    @router.post("/apply", response_model=QueryTextResponse)
    async def apply(request: ApplyBindingsRequest):
        """Bind a binding set and LIMIT/OFFSET values into a query."""
        def _apply():
            sparql = request.query
            if request.bindings is not None:
                sparql = apply_bindings(
                    sparql, request.bindings, accept_results_format=accept_results_format
                )
            if request.limit or request.offset:
                sparql = apply_limit_offset(sparql, limit=request.limit, offset=request.offset)
            return sparql

        try:
            sparql = await asyncio.to_thread(_apply)
        except QueryBaseError as e:
            raise HTTPException(status_code=400, detail=str(e))
        return QueryTextResponse(query=sparql)

    @router.post("/arguments", response_model=QueryTextResponse)
    async def arguments(request: ApplyArgumentsRequest):
        """Bind argument set i into the i-th parameter VALUES clause."""
        try:
            sparql = await asyncio.to_thread(apply_arguments, request.query, request.arguments)
        except QueryBaseError as e:
            raise HTTPException(status_code=400, detail=str(e))
        return QueryTextResponse(query=sparql)

    return router

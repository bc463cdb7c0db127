"""
Saved Queries for RDF-QueryBase.

Provides functionality to save, organize, and execute parameterized
SPARQL queries:
- Persist queries with metadata (name, description, tags)
- Parameter and output column detection whenever the text changes
- Binding of runtime values right before execution
- Query history tracking
- Query stats (execution count, avg time)
"""
from __future__ import annotations

import hashlib
import json
import logging
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Mapping

from rdf_querybase.config import QueryBaseConfig
from rdf_querybase.errors import SPARQLSyntaxError
from rdf_querybase.params import (
    BindingSet,
    DetectedParameters,
    QueryType,
    apply_bindings,
    apply_limit_offset,
    detect_output_columns,
    detect_parameters,
    detect_query_type,
)
from rdf_querybase.sparql.parser import parse_query

logger = logging.getLogger(__name__)


@dataclass
class QueryExecution:
    """Record of a query execution."""
    query_id: str
    executed_at: datetime
    duration_ms: float
    result_count: int | None = None
    success: bool = True
    error_message: str | None = None
    bindings: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "query_id": self.query_id,
            "executed_at": self.executed_at.isoformat(),
            "duration_ms": self.duration_ms,
            "result_count": self.result_count,
            "success": self.success,
            "error_message": self.error_message,
            "bindings": self.bindings
        }

    @classmethod
    def from_dict(cls, data: dict) -> QueryExecution:
        return cls(
            query_id=data["query_id"],
            executed_at=datetime.fromisoformat(data["executed_at"]),
            duration_ms=data["duration_ms"],
            result_count=data.get("result_count"),
            success=data.get("success", True),
            error_message=data.get("error_message"),
            bindings=data.get("bindings", {})
        )


@dataclass
class SavedQuery:
    """
    A saved SPARQL query with metadata.

    ``parameters`` lists the variable groups of the query's bindable VALUES
    clauses; ``limit_parameters`` / ``offset_parameters`` the placeholder
    identifiers of its LIMIT / OFFSET clauses.
    """
    query_id: str
    name: str
    sparql: str
    query_type: QueryType
    description: str = ""
    tags: list[str] = field(default_factory=list)
    created_at: datetime = field(default_factory=datetime.now)
    updated_at: datetime = field(default_factory=datetime.now)
    created_by: str = ""
    parameters: list[list[str]] = field(default_factory=list)
    limit_parameters: list[str] = field(default_factory=list)
    offset_parameters: list[str] = field(default_factory=list)
    output_columns: list[str] = field(default_factory=list)
    execution_count: int = 0
    total_execution_time_ms: float = 0.0
    last_executed_at: datetime | None = None
    version: int = 1
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def avg_execution_time_ms(self) -> float:
        """Average execution time in milliseconds."""
        if self.execution_count == 0:
            return 0.0
        return self.total_execution_time_ms / self.execution_count

    @property
    def query_hash(self) -> str:
        """SHA-256 hash of the query text."""
        return hashlib.sha256(self.sparql.encode()).hexdigest()[:16]

    @property
    def is_parameterized(self) -> bool:
        return bool(self.parameters or self.limit_parameters or self.offset_parameters)

    def detected_parameters(self) -> DetectedParameters:
        return DetectedParameters(
            values_parameters=self.parameters,
            limit_parameters=self.limit_parameters,
            offset_parameters=self.offset_parameters,
        )

    def to_dict(self) -> dict:
        return {
            "query_id": self.query_id,
            "name": self.name,
            "sparql": self.sparql,
            "query_type": self.query_type.value,
            "description": self.description,
            "tags": self.tags,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
            "created_by": self.created_by,
            "parameters": self.parameters,
            "limit_parameters": self.limit_parameters,
            "offset_parameters": self.offset_parameters,
            "output_columns": self.output_columns,
            "execution_count": self.execution_count,
            "total_execution_time_ms": self.total_execution_time_ms,
            "last_executed_at": self.last_executed_at.isoformat() if self.last_executed_at else None,
            "version": self.version,
            "metadata": self.metadata
        }

    @classmethod
    def from_dict(cls, data: dict) -> SavedQuery:
        return cls(
            query_id=data["query_id"],
            name=data["name"],
            sparql=data["sparql"],
            query_type=QueryType(data["query_type"]),
            description=data.get("description", ""),
            tags=data.get("tags", []),
            created_at=datetime.fromisoformat(data["created_at"]),
            updated_at=datetime.fromisoformat(data["updated_at"]),
            created_by=data.get("created_by", ""),
            parameters=data.get("parameters", []),
            limit_parameters=data.get("limit_parameters", []),
            offset_parameters=data.get("offset_parameters", []),
            output_columns=data.get("output_columns", []),
            execution_count=data.get("execution_count", 0),
            total_execution_time_ms=data.get("total_execution_time_ms", 0.0),
            last_executed_at=datetime.fromisoformat(data["last_executed_at"]) if data.get("last_executed_at") else None,
            version=data.get("version", 1),
            metadata=data.get("metadata", {})
        )


def analyze_query(sparql: str) -> tuple[QueryType, DetectedParameters, list[str]]:
    """
    Parse a query once and derive its stored metadata.

    Text that does not parse is still storable: it gets type UNKNOWN and no
    parameters, and a warning is logged.
    """
    try:
        tree = parse_query(sparql)
    except SPARQLSyntaxError as e:
        logger.warning(f"Saving query without parameter metadata, it does not parse: {e}")
        return QueryType.UNKNOWN, DetectedParameters(), []
    return detect_query_type(tree), detect_parameters(tree), detect_output_columns(tree)


def _apply_metadata(query: SavedQuery) -> None:
    query_type, detected, columns = analyze_query(query.sparql)
    query.query_type = query_type
    query.parameters = detected.values_parameters
    query.limit_parameters = detected.limit_parameters
    query.offset_parameters = detected.offset_parameters
    query.output_columns = columns


class SavedQueryManager:
    """
    Manages saved SPARQL queries.

    Features:
    - Save/load queries with metadata
    - Parameter detection on save and update
    - Binding application on execute
    - Query history tracking

    Usage:
        manager = SavedQueryManager(workspace / "_queries")

        # Save a query with a parameter slot
        query = manager.save(
            name="Labels of a thing",
            sparql="SELECT ?label WHERE { ?s rdfs:label ?label VALUES ?s { UNDEF } }",
        )
        query.parameters  # [["s"]]

        # Execute with runtime values
        result = manager.execute(query.query_id, store, bindings={
            "head": {"vars": ["s"]},
            "arguments": {"bindings": [{"s": {"type": "uri", "value": "http://example.org/a"}}]},
        })
    """

    def __init__(
        self,
        queries_dir: Path | str,
        history_limit: int = 1000,
        accept_results_format: bool = True,
    ):
        self.queries_dir = Path(queries_dir)
        self.queries_dir.mkdir(parents=True, exist_ok=True)
        self.history_limit = history_limit
        self.accept_results_format = accept_results_format

        self._queries: dict[str, SavedQuery] = {}
        self._history: list[QueryExecution] = []

        self._load_queries()
        self._load_history()

    @classmethod
    def from_config(cls, config: QueryBaseConfig) -> SavedQueryManager:
        return cls(
            config.storage.queries_dir,
            history_limit=config.storage.history_limit,
            accept_results_format=config.binding.accept_results_format,
        )

    def save(
        self,
        name: str,
        sparql: str,
        description: str = "",
        tags: list[str] | None = None,
        created_by: str = "",
        metadata: dict | None = None
    ) -> SavedQuery:
        """
        Save a new query.

        Returns the saved query object.
        """
        query_id = f"query-{uuid.uuid4().hex[:12]}"

        query = SavedQuery(
            query_id=query_id,
            name=name,
            sparql=sparql,
            query_type=QueryType.UNKNOWN,
            description=description,
            tags=tags or [],
            created_by=created_by,
            metadata=metadata or {}
        )
        _apply_metadata(query)

        self._queries[query_id] = query
        self._save_query(query)

        logger.info(f"Saved query '{name}' with ID {query_id}")
        return query

    def update(
        self,
        query_id: str,
        name: str | None = None,
        sparql: str | None = None,
        description: str | None = None,
        tags: list[str] | None = None,
        metadata: dict | None = None
    ) -> SavedQuery:
        """
        Update an existing query.

        Only provided fields are updated. Changing the text re-detects
        parameters and output columns.
        """
        if query_id not in self._queries:
            raise KeyError(f"Query not found: {query_id}")

        query = self._queries[query_id]

        if name is not None:
            query.name = name
        if sparql is not None:
            query.sparql = sparql
            _apply_metadata(query)
        if description is not None:
            query.description = description
        if tags is not None:
            query.tags = tags
        if metadata is not None:
            query.metadata.update(metadata)

        query.updated_at = datetime.now()
        query.version += 1

        self._save_query(query)
        return query

    def get(self, query_id: str) -> SavedQuery | None:
        """Get a query by ID."""
        return self._queries.get(query_id)

    def delete(self, query_id: str) -> bool:
        """Delete a query."""
        if query_id not in self._queries:
            return False

        del self._queries[query_id]
        query_path = self.queries_dir / f"{query_id}.json"
        if query_path.exists():
            query_path.unlink()

        return True

    def list(
        self,
        tags: list[str] | None = None,
        query_type: QueryType | None = None,
        parameterized_only: bool = False,
        limit: int | None = None
    ) -> list[SavedQuery]:
        """
        List saved queries with optional filters.
        """
        results = []

        for query in self._queries.values():
            if tags:
                if not any(t in query.tags for t in tags):
                    continue
            if query_type is not None and query.query_type != query_type:
                continue
            if parameterized_only and not query.is_parameterized:
                continue

            results.append(query)

        # Sort by last updated
        results.sort(key=lambda q: q.updated_at, reverse=True)

        if limit:
            results = results[:limit]

        return results

    def execute(
        self,
        query_id: str,
        store: Any,
        bindings: BindingSet | Mapping[str, Any] | None = None,
        limit: Mapping[str, int] | None = None,
        offset: Mapping[str, int] | None = None,
    ) -> dict[str, Any]:
        """
        Bind runtime values into a saved query, execute it and track statistics.

        Args:
            query_id: ID of the saved query
            store: Anything with a ``query(sparql)`` method
            bindings: Values for the query's VALUES parameters
            limit: Values for LIMIT placeholders, by identifier
            offset: Values for OFFSET placeholders, by identifier

        Returns execution result and stats.
        """
        if query_id not in self._queries:
            raise KeyError(f"Query not found: {query_id}")

        query = self._queries[query_id]
        if isinstance(bindings, BindingSet):
            recorded = bindings.to_json()
        else:
            recorded = dict(bindings or {})

        start_time = time.time()
        try:
            sparql = query.sparql
            if bindings is not None:
                sparql = apply_bindings(sparql, bindings, accept_results_format=self.accept_results_format)
            if limit or offset:
                sparql = apply_limit_offset(sparql, limit=limit, offset=offset)

            result = store.query(sparql)
            duration_ms = (time.time() - start_time) * 1000

            # Determine result count
            if hasattr(result, '__len__'):
                result_count = len(result)
            else:
                result_count = None

            # Record execution
            execution = QueryExecution(
                query_id=query_id,
                executed_at=datetime.now(),
                duration_ms=duration_ms,
                result_count=result_count,
                success=True,
                bindings=recorded
            )

            # Update query stats
            query.execution_count += 1
            query.total_execution_time_ms += duration_ms
            query.last_executed_at = execution.executed_at
            self._save_query(query)

            # Add to history
            self._add_to_history(execution)

            return {
                "result": result,
                "sparql": sparql,
                "duration_ms": duration_ms,
                "result_count": result_count,
                "query_id": query_id
            }

        except Exception as e:
            duration_ms = (time.time() - start_time) * 1000

            execution = QueryExecution(
                query_id=query_id,
                executed_at=datetime.now(),
                duration_ms=duration_ms,
                success=False,
                error_message=str(e),
                bindings=recorded
            )
            self._add_to_history(execution)

            raise

    def get_history(
        self,
        query_id: str | None = None,
        limit: int = 100
    ) -> list[QueryExecution]:
        """
        Get query execution history.

        Optionally filter by query_id.
        """
        if query_id:
            history = [e for e in self._history if e.query_id == query_id]
        else:
            history = list(self._history)

        # Most recent first
        history.sort(key=lambda e: e.executed_at, reverse=True)
        return history[:limit]

    def _save_query(self, query: SavedQuery) -> None:
        """Save a query to disk."""
        query_path = self.queries_dir / f"{query.query_id}.json"
        with open(query_path, "w", encoding="utf-8") as f:
            json.dump(query.to_dict(), f, indent=2)

    def _load_queries(self) -> None:
        """Load all queries from disk."""
        for path in self.queries_dir.glob("query-*.json"):
            try:
                with open(path, "r", encoding="utf-8") as f:
                    data = json.load(f)
                query = SavedQuery.from_dict(data)
                self._queries[query.query_id] = query
            except (OSError, ValueError, KeyError) as e:
                logger.warning(f"Failed to load query from {path}: {e}")

    def _add_to_history(self, execution: QueryExecution) -> None:
        """Add execution to history."""
        self._history.append(execution)

        # Trim history if needed
        if len(self._history) > self.history_limit:
            self._history = self._history[-self.history_limit:]

        self._save_history()

    def _save_history(self) -> None:
        """Save execution history to disk."""
        history_path = self.queries_dir / "history.json"
        with open(history_path, "w", encoding="utf-8") as f:
            json.dump([e.to_dict() for e in self._history], f)

    def _load_history(self) -> None:
        """Load execution history from disk."""
        history_path = self.queries_dir / "history.json"
        if history_path.exists():
            try:
                with open(history_path, "r", encoding="utf-8") as f:
                    data = json.load(f)
                self._history = [QueryExecution.from_dict(e) for e in data]
            except (OSError, ValueError, KeyError) as e:
                logger.warning(f"Failed to load history: {e}")

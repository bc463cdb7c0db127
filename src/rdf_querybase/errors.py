"""
Exceptions raised by RDF-QueryBase.

Fatal conditions raise; recoverable ones (an uncovered VALUES clause, an
unknown binding type, a malformed binding set) are logged as warnings by
the module that meets them.
"""

from typing import Optional


class QueryBaseError(Exception):
    """Base class for all RDF-QueryBase errors."""
    pass


class SPARQLSyntaxError(QueryBaseError, ValueError):
    """Raised when SPARQL text cannot be parsed."""

    def __init__(self, message: str, line: Optional[int] = None, column: Optional[int] = None):
        self.line = line
        self.column = column
        if line is not None:
            message = f"{message} (line {line}, column {column})"
        super().__init__(message)


class BindingError(QueryBaseError, ValueError):
    """Raised when runtime values cannot be bound into a query."""
    pass


class IllegalBindingType(BindingError):
    """Raised when a value of a forbidden kind is bound into a VALUES clause."""

    def __init__(self, binding_type: str, variable: str, clause: str, reason: Optional[str] = None):
        self.binding_type = binding_type
        self.variable = variable
        self.clause = clause
        message = f"Illegal binding type '{binding_type}' for variable '{variable}' in {clause}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class ArgumentMismatchError(BindingError):
    """Raised when positional argument sets do not line up with the query's parameter clauses."""
    pass

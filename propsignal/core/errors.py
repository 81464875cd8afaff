from __future__ import annotations


class PropSignalError(Exception):
    pass


class MissingSuburbError(PropSignalError):
    """Raised when a plan asks for suburb-scoped data but names no suburb."""

    def __init__(self, message: str = "No suburb detected. Please specify a suburb (e.g., 'Doncaster VIC')."):
        super().__init__(message)


class DataFetchError(PropSignalError):
    """A read against the data store failed (after retries)."""

    def __init__(self, query_id: str, message: str):
        super().__init__(f"{query_id}: {message}")
        self.query_id = query_id


class PlanValidationError(PropSignalError):
    pass


class QueryRejectedError(PropSignalError):
    """A TableQuery referenced something outside the schema whitelist."""

"""Errors raised by event stores."""


class StoreError(Exception):
    """Base class for every store failure."""


class NotFound(StoreError):
    """An event id that does not exist was used where one is required."""


class Conflict(StoreError):
    """An event with the same id already exists."""


class ValidationError(StoreError):
    """Caller-supplied arguments are out of bounds."""


class BackendInitError(StoreError):
    """Schema setup or connection failed while initializing a backend."""


class QueryError(StoreError):
    """The underlying storage failed to execute a read or write."""

# src/docquery/base/exceptions.py


class QueryError(Exception):
    """Base class for every error raised while building or executing a query."""

    def __init__(self, message: str = "Query construction failed."):
        super().__init__(message)


class UsageError(QueryError, RuntimeError):
    """Raised when builder calls are made in an order that cannot work.

    For example an operator used before ``where()`` set an active path, or
    ``geometry()`` used without a preceding geo comparison.
    """

    def __init__(self, message: str = "Query builder used incorrectly."):
        super().__init__(message)


class InvalidArgumentError(QueryError, TypeError):
    """Raised when an argument has a shape the called method does not accept."""

    def __init__(self, message: str = "Invalid argument"):
        super().__init__(message)


class CompatibilityError(QueryError, ValueError):
    """Raised when an option is combined with an operation that forbids it."""

    def __init__(self, message: str = "Option cannot be used with this operation."):
        super().__init__(message)

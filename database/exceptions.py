"""Database exception types."""


class DatabaseError(Exception):
    """Base exception for database failures."""
    pass


class DatabaseSchemaError(DatabaseError):
    """Raised when schema files are invalid or migrations fail."""
    pass


class StoreUnavailableError(DatabaseError):
    """Raised when the store cannot be reached or a write could not be applied.

    The unit of work that raised it has been rolled back, so callers can rely on
    the previous committed state being intact.
    """
    pass


__all__ = ['DatabaseError', 'DatabaseSchemaError', 'StoreUnavailableError']

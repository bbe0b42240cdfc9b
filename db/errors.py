"""
db/errors.py
------------
Exception hierarchy for the storage layer.

Every failure raised by the connection provider, the transaction helper
or the repositories inherits from StorageError so callers can catch
broadly or narrowly as needed. Messages never carry raw driver text or
connection strings; the original driver exception is kept as
``__cause__`` for logging and debugging.

A missing program on fetch is not an error: repositories return None.
"""

from __future__ import annotations


class StorageError(Exception):
    """Base exception for all storage errors."""

    def __init__(
        self,
        message: str,
        *,
        operation: str | None = None,
        program_id: int | None = None,
    ) -> None:
        self.operation = operation
        self.program_id = program_id
        super().__init__(message)


class ConnectionAcquisitionError(StorageError):
    """A connection could not be opened or borrowed from the pool."""
    pass


class StatementError(StorageError):
    """A query, insert, update or delete failed; the transaction was rolled back."""
    pass


class DuplicateProgramError(StatementError):
    """An insert was attempted for a program identifier that already exists."""
    pass


class RollbackError(StorageError):
    """
    Rolling back a failed transaction failed as well.

    The on-disk state of the aggregate is unknown and needs manual
    reconciliation. Never retry automatically on this error.
    """
    pass


class ProgramNotFoundError(StorageError):
    """A replace targeted a program identifier that has no root row."""
    pass


class DataIntegrityError(StorageError):
    """Stored rows violate an invariant the schema does not enforce."""
    pass


class FundingIntegrityError(DataIntegrityError):
    """More than one funding row exists for a single program."""

    def __init__(self, message: str, *, row_count: int = 0, **kwargs) -> None:
        self.row_count = row_count
        super().__init__(message, **kwargs)

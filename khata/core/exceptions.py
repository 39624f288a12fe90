"""Errors raised by the ledger core.

Routes map them to HTTP responses; everything else in the app keeps using
plain ``ValueError`` for form-level problems, so ``ValidationError`` is one.
"""


class LedgerError(Exception):
    """Base class for ledger errors."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(LedgerError, ValueError):
    """Bad input, rejected before anything is written."""


class NotFoundError(LedgerError):
    """The entity, entry or product no longer exists (or was purged)."""


class PartialWriteError(LedgerError):
    """An atomic batch could not be committed; nothing was applied."""

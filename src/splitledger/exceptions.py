"""Custom exceptions for SplitLedger."""


class SplitLedgerError(Exception):
    """Base exception for all SplitLedger errors."""

    pass


class ConfigurationError(SplitLedgerError):
    """Raised when configuration is invalid or missing."""

    pass


class DataIntegrityError(SplitLedgerError):
    """Raised when ledger records reference users outside the group roster."""

    def __init__(self, message: str, offending_id: str | None = None):
        self.offending_id = offending_id
        super().__init__(message)


class ValidationError(SplitLedgerError):
    """Raised when an expense, settlement or group payload is malformed."""

    pass


class NotFoundError(SplitLedgerError):
    """Raised when a requested record does not exist."""

    def __init__(self, kind: str, record_id: str, message: str | None = None):
        self.kind = kind
        self.record_id = record_id
        super().__init__(message or f"{kind} {record_id} not found")


class AuthorizationError(SplitLedgerError):
    """Raised when a user may not perform an action on a resource."""

    pass


class StorageError(SplitLedgerError):
    """Raised when a storage backend request fails."""

    pass

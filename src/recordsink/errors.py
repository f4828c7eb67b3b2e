"""Write-side exceptions raised by every DatabaseService backend.

Backends translate their driver's exceptions into these so callers can
decide between retrying, recording a failed batch, and aborting.
"""


class WriteError(Exception):
    """A statement against the destination failed."""


class TransientWriteError(WriteError):
    """The failure may go away on retry (lock contention, dropped connection)."""


class ConstraintWriteError(WriteError):
    """The data itself was refused (duplicate key, type mismatch, NOT NULL)."""


class DestinationUnavailableError(WriteError, ConnectionError):
    """No connection to the destination could be opened or acquired."""


class BulkLoadUnavailableError(WriteError):
    """The backend has no native file loader, or it was not enabled."""

"""
Exceptions raised by nexus_sync.
"""

from typing import Any, Dict, List, Optional


class NexusSyncError(Exception):
    """Base class for all nexus_sync errors."""


class FieldKeyCollisionError(NexusSyncError):
    """Two distinct (relationship, type) pairs derive the same field key."""

    def __init__(self, collisions: Dict[str, List[tuple]]):
        self.collisions = collisions
        details = "; ".join(
            f"{key} <- {', '.join(f'{rel}/{typ}' for rel, typ in pairs)}"
            for key, pairs in collisions.items()
        )
        super().__init__(f"Field key collision: {details}")


class InvalidOperationError(NexusSyncError, ValueError):
    """A sync operation carries an action the bulk builder cannot express."""


class BulkDispatchError(NexusSyncError):
    """The bulk request as a whole failed (network, auth, malformed request)."""

    def __init__(self, message: str, cause: Optional[BaseException] = None, status: Any = None):
        super().__init__(message)
        self.cause = cause
        self.status = status

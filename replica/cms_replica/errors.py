"""
Error types for the CMS replica.

This module defines the exceptions raised by the store, the query engine,
the link resolver and the backup adapter:
- ReplicaError: Base exception
- UnrecognizedItemKind: Sync item with an unknown sys.type
- QueryError / UnsupportedOperator: Invalid query parameters
- MaxDepthExceeded: Link resolution depth above the safety limit
- MissingArgument: Required argument absent from a lookup
- CapabilityError: Operation needs a component that was not configured
- BackupError: Backup payload could not be read or written

Transport errors raised by sync clients live in sync/base.py.

Invariants:
    - All errors inherit from ReplicaError
    - An error raised by a store operation leaves the store unchanged
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class ReplicaError(Exception):
    """Base exception for all replica errors.

    Attributes:
        message: Error message
        code: Error code for programmatic handling
        details: Additional error context
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or "REPLICA_ERROR"
        self.details = details or {}


class UnrecognizedItemKind(ReplicaError):
    """A sync item had a sys.type the store does not know how to index."""

    def __init__(self, kind: Any, item_id: Optional[str] = None) -> None:
        super().__init__(
            f"Unrecognized sync item: {kind}",
            code="UNRECOGNIZED_ITEM_KIND",
            details={"kind": kind, "id": item_id},
        )
        self.kind = kind
        self.item_id = item_id


class QueryError(ReplicaError):
    """Query parameters could not be parsed."""

    def __init__(self, message: str, key: Optional[str] = None) -> None:
        super().__init__(message, code="QUERY_ERROR", details={"key": key})
        self.key = key


class UnsupportedOperator(QueryError):
    """A query key used an operator suffix that is not implemented."""

    def __init__(self, operator: str, key: str) -> None:
        super().__init__(f"Operator not implemented: '{operator}'", key=key)
        self.code = "UNSUPPORTED_OPERATOR"
        self.operator = operator


class MaxDepthExceeded(ReplicaError):
    """Requested include depth is above the resolver's hard limit."""

    def __init__(self, requested: int, maximum: int) -> None:
        super().__init__(
            f"Maximum include depth exceeded ({maximum})",
            code="MAX_DEPTH_EXCEEDED",
            details={"requested": requested, "maximum": maximum},
        )
        self.requested = requested
        self.maximum = maximum


class MissingArgument(ReplicaError):
    """A required argument was not supplied."""

    def __init__(self, argument: str) -> None:
        super().__init__(
            f"{argument} must be provided",
            code="MISSING_ARGUMENT",
            details={"argument": argument},
        )
        self.argument = argument


class CapabilityError(ReplicaError):
    """The replica was not composed with the component this call needs."""

    def __init__(self, capability: str) -> None:
        super().__init__(
            f"{capability} is not configured for this replica",
            code="CAPABILITY_ERROR",
            details={"capability": capability},
        )
        self.capability = capability


class BackupError(ReplicaError):
    """Backup payload could not be serialized or deserialized."""

    def __init__(self, message: str, key: Optional[str] = None) -> None:
        super().__init__(message, code="BACKUP_ERROR", details={"key": key})
        self.key = key

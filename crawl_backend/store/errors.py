"""
Error taxonomy for the bookshop store

Handlers translate these into HTTP status codes; the store itself never
builds responses.
"""

from __future__ import annotations

from collections.abc import Iterable


class StoreError(Exception):
    """Base class for all bookshop store errors."""


class NotFound(StoreError):
    """Bookshop is absent, or hidden because it was soft-deleted."""

    def __init__(self, bookshop_id: str):
        super().__init__(f'Bookshop "{bookshop_id}" not found')
        self.bookshop_id = bookshop_id


class InvalidField(StoreError):
    """Payload references fields the schema does not allow, or holds an unusable value."""

    def __init__(self, fields: Iterable[str], message: str | None = None):
        self.fields = sorted(fields)
        if message is None:
            message = f"Unknown or read-only fields: {', '.join(self.fields)}"
        super().__init__(message)


class InvalidTransition(InvalidField):
    """Moderation change that the approval/deletion state machine does not allow."""


class Conflict(StoreError):
    """Record changed since the caller last read it."""

    def __init__(self, bookshop_id: str):
        super().__init__(f'Bookshop "{bookshop_id}" was modified by another request')
        self.bookshop_id = bookshop_id


class StoreUnavailable(StoreError):
    """DynamoDB call failed; surfaced as-is, retries belong to the SDK."""

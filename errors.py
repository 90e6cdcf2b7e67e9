#!/usr/bin/env python3

"""
Error types shared by the store and the sync controllers.

Store failures wrap the backend exception (available as ``__cause__``) so
callers only need to know about this small taxonomy.
"""


class WeightTrackerError(Exception):
    """Base class for all tracker errors."""


class Unauthenticated(WeightTrackerError):
    """An operation needing a user was attempted with no active user."""

    def __init__(self, message: str = "Not authenticated"):
        super().__init__(message)


class StoreError(WeightTrackerError):
    """Base class for failures reported by the document store."""


class StoreSubscriptionFailed(StoreError):
    """The live subscription could not be served (permissions, schema, ...)."""


class StoreReadFailed(StoreError):
    """A one-shot read against the server failed."""


class StoreWriteFailed(StoreError):
    """A write or delete against the server failed."""

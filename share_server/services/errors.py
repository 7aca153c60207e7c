"""Store-level error types shared by the service modules."""

from __future__ import annotations


class StoreError(Exception):
    """Base class for store failures that callers may want to distinguish."""


class NotFoundError(StoreError, LookupError):
    """Raised when a referenced id does not exist (or is no longer valid)."""

    def __init__(self, what: str = "resource") -> None:
        super().__init__(f"{what} not found")
        self.what = what

from __future__ import annotations
from typing import Optional


class SyncError(Exception):
    """A remote note operation did not complete. Always recoverable by retrying."""


class TransportError(SyncError):
    """The request never got a response (connection refused, timeout, ...)."""


class ServerError(SyncError):
    def __init__(self, status_code: int, detail: Optional[str] = None):
        self.status_code = status_code
        self.detail = detail
        super().__init__(f"HTTP {status_code}: {detail or 'request failed'}")


class InvalidResponseError(SyncError):
    """The server answered 2xx but the body was not what we expected."""


class UnsavedChanges(Exception):
    """Raised when a draft with unsaved edits would be discarded without confirmation."""

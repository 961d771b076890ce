"""Error taxonomy of the sync engine."""
from __future__ import annotations

import socket
from typing import Dict, Optional
from uuid import UUID

from google.auth.exceptions import RefreshError, TransportError
from googleapiclient.errors import HttpError


_QUOTA_REASONS = {
    "quotaExceeded",
    "storageQuotaExceeded",
    "userRateLimitExceeded",
    "dailyLimitExceeded",
}


class SyncEngineError(Exception):
    """Base class for every error raised by the engine."""


class LocalIOError(SyncEngineError):
    """The on-device store could not complete a read or write."""


class AuthError(SyncEngineError):
    """The remote session could not be established."""


class AccountUnavailable(AuthError):
    """No account is signed in, or its grant was revoked."""


class RemoteError(SyncEngineError):
    retryable = False

    def __init__(self, message: str = "", *, status: Optional[int] = None):
        super().__init__(message or self.__class__.__name__)
        self.status = status


class RemoteTransientError(RemoteError):
    retryable = True


class NetworkUnavailable(RemoteTransientError):
    pass


class AuthExpired(RemoteTransientError):
    pass


class RecordConflict(RemoteTransientError):
    """The remote record changed underneath the write."""


class RemoteFatalError(RemoteError):
    retryable = False


class QuotaExceeded(RemoteFatalError):
    pass


class RemoteUnknownError(RemoteFatalError):
    pass


class RecordNotFound(RemoteError):
    """Raised by the record service when a record does not exist."""


# Names used by the error-handling section of the design notes.
NetworkError = NetworkUnavailable
RemoteConflictError = RecordConflict


class PartialSyncError(SyncEngineError):
    """Some items of a sync pass could not be pushed."""

    def __init__(self, synced_count: int, failures: Dict[UUID, RemoteError]):
        self.synced_count = synced_count
        self.failures = dict(failures)
        super().__init__(
            f"sync failed for {len(self.failures)} items ({synced_count} synced)"
        )

    @property
    def failed_ids(self) -> list[UUID]:
        return list(self.failures)


def _http_status(exc: HttpError) -> int:
    status = getattr(getattr(exc, "resp", None), "status", None)
    try:
        return int(status or 0)
    except (TypeError, ValueError):
        return 0


def _http_reasons(exc: HttpError) -> set[str]:
    details = getattr(exc, "error_details", None) or []
    reasons = set()
    if isinstance(details, list):
        for item in details:
            if isinstance(item, dict) and item.get("reason"):
                reasons.add(str(item["reason"]))
    return reasons


def classify_remote_error(exc: BaseException) -> RemoteError:
    """Map a transport or API exception onto the engine's taxonomy."""

    if isinstance(exc, RemoteError):
        return exc
    if isinstance(exc, HttpError):
        status = _http_status(exc)
        message = str(exc)
        if status == 401:
            return AuthExpired(message, status=status)
        if status == 403:
            if _http_reasons(exc) & _QUOTA_REASONS:
                return QuotaExceeded(message, status=status)
            return RemoteUnknownError(message, status=status)
        if status == 404:
            return RecordNotFound(message, status=status)
        if status in (409, 412):
            return RecordConflict(message, status=status)
        if status == 429 or status >= 500:
            return RemoteTransientError(message, status=status)
        return RemoteUnknownError(message, status=status)
    if isinstance(exc, RefreshError):
        return AuthExpired(str(exc))
    if isinstance(exc, (TransportError, socket.timeout, TimeoutError, ConnectionError)):
        return NetworkUnavailable(str(exc) or exc.__class__.__name__)
    if isinstance(exc, OSError):
        return NetworkUnavailable(str(exc))
    return RemoteUnknownError(f"{exc.__class__.__name__}: {exc}")


__all__ = [
    "AccountUnavailable",
    "AuthError",
    "AuthExpired",
    "LocalIOError",
    "NetworkError",
    "NetworkUnavailable",
    "PartialSyncError",
    "QuotaExceeded",
    "RecordConflict",
    "RecordNotFound",
    "RemoteConflictError",
    "RemoteError",
    "RemoteFatalError",
    "RemoteTransientError",
    "RemoteUnknownError",
    "SyncEngineError",
    "classify_remote_error",
]

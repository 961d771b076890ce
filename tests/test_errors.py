import socket

import httplib2
import pytest
from google.auth.exceptions import RefreshError, TransportError
from googleapiclient.errors import HttpError

from core.errors import (
    AuthExpired,
    NetworkUnavailable,
    PartialSyncError,
    QuotaExceeded,
    RecordConflict,
    RecordNotFound,
    RemoteTransientError,
    RemoteUnknownError,
    classify_remote_error,
)


def _http_error(status, reason=None):
    body = b'{"error": {"code": %d, "message": "x"}}' % status
    if reason:
        body = (
            b'{"error": {"code": %d, "message": "x", "errors": [{"reason": "%s"}]}}'
            % (status, reason.encode())
        )
    return HttpError(httplib2.Response({"status": status}), body)


@pytest.mark.parametrize(
    "exc, expected",
    [
        (_http_error(401), AuthExpired),
        (_http_error(403, "userRateLimitExceeded"), QuotaExceeded),
        (_http_error(403, "insufficientPermissions"), RemoteUnknownError),
        (_http_error(404), RecordNotFound),
        (_http_error(409), RecordConflict),
        (_http_error(412), RecordConflict),
        (_http_error(429), RemoteTransientError),
        (_http_error(502), RemoteTransientError),
        (RefreshError("invalid_grant"), AuthExpired),
        (TransportError("dns"), NetworkUnavailable),
        (socket.timeout("slow"), NetworkUnavailable),
        (ValueError("odd"), RemoteUnknownError),
    ],
)
def test_classification(exc, expected):
    assert type(classify_remote_error(exc)) is expected


def test_retryable_flags():
    assert NetworkUnavailable().retryable
    assert AuthExpired().retryable
    assert RecordConflict().retryable
    assert not QuotaExceeded().retryable
    assert not RemoteUnknownError().retryable


def test_http_status_is_kept():
    assert classify_remote_error(_http_error(409)).status == 409


def test_partial_sync_error_message():
    err = PartialSyncError(2, {"a": NetworkUnavailable("x"), "b": QuotaExceeded("y")})
    assert err.synced_count == 2
    assert err.failed_ids == ["a", "b"]
    assert "2 items" in str(err)

"""Remote session lifecycle: single-flight authentication with a failure cut-off."""
from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from typing import Callable, List, Optional, Protocol

from core.errors import AccountUnavailable
from core.events import AccountChanged, EventBus, RemoteUnavailable
from core.settings import REMOTE_SYNC


logger = logging.getLogger("todolist.session")


class CredentialProvider(Protocol):
    def authenticate(self) -> str: ...

    def revoke(self) -> None: ...


class IdentityStore(Protocol):
    @property
    def current_identity(self) -> Optional[str]: ...

    def set_current_identity(self, identity: Optional[str]) -> None: ...


@dataclass(frozen=True)
class SessionState:
    authenticated: bool
    in_progress: bool
    consecutive_failures: int
    remote_disabled: bool
    identity: Optional[str]


def _resolved(value: bool) -> "Future[bool]":
    future: Future[bool] = Future()
    future.set_result(value)
    return future


class SessionAuthenticator:
    """Owns whether the remote store may be used.

    All waiters of an attempt share one :class:`Future`; a second attempt is
    never started while one is running. After ``failure_threshold``
    consecutive failures the remote is disabled until :meth:`force_reset`
    or an account change.
    """

    def __init__(
        self,
        provider: CredentialProvider,
        identity_store: IdentityStore,
        bus: EventBus,
        *,
        enabled: bool = True,
        failure_threshold: int = REMOTE_SYNC.auth_failure_threshold,
        reset_delay: float = REMOTE_SYNC.reset_delay_sec,
        reset_delay_max: float = REMOTE_SYNC.reset_delay_max_sec,
        executor: Optional[ThreadPoolExecutor] = None,
    ):
        self._provider = provider
        self._identity_store = identity_store
        self._bus = bus
        self._enabled = enabled
        self._failure_threshold = max(1, failure_threshold)
        self._reset_delay = reset_delay
        self._reset_delay_max = reset_delay_max
        self._executor = executor or ThreadPoolExecutor(
            max_workers=1, thread_name_prefix="todolist-auth"
        )
        self._owns_executor = executor is None

        self._lock = threading.Lock()
        self._authenticated = False
        self._in_progress = False
        self._consecutive_failures = 0
        self._remote_disabled = not enabled
        self._pending: Optional[Future[bool]] = None
        self._identity: Optional[str] = identity_store.current_identity
        self._forgotten_identity: Optional[str] = None
        self._reset_timer: Optional[threading.Timer] = None
        self._reset_count = 0
        self._attempts = 0

    # ----- state -----
    def state(self) -> SessionState:
        with self._lock:
            return SessionState(
                authenticated=self._authenticated,
                in_progress=self._in_progress,
                consecutive_failures=self._consecutive_failures,
                remote_disabled=self._remote_disabled,
                identity=self._identity,
            )

    @property
    def identity(self) -> Optional[str]:
        with self._lock:
            return self._identity

    @property
    def remote_disabled(self) -> bool:
        with self._lock:
            return self._remote_disabled

    @property
    def attempt_count(self) -> int:
        """Number of times the credential provider has been contacted."""
        with self._lock:
            return self._attempts

    # ----- public API -----
    def ensure_authenticated(
        self, callback: Optional[Callable[[bool], None]] = None
    ) -> "Future[bool]":
        with self._lock:
            if self._authenticated and not self._in_progress:
                future = _resolved(True)
            else:
                future = self._start_attempt_locked()
        if callback is not None:
            future.add_done_callback(lambda done: callback(done.result()))
        return future

    def perform_authentication(self) -> "Future[bool]":
        with self._lock:
            return self._start_attempt_locked()

    def refresh_authentication(self) -> "Future[bool]":
        with self._lock:
            self._authenticated = False
            logger.info("Session refresh requested")
            return self._start_attempt_locked()

    def force_reset(self) -> None:
        with self._lock:
            pending = self._clear_locked()
            self._remote_disabled = not self._enabled
            delay = min(self._reset_delay * (2 ** self._reset_count), self._reset_delay_max)
            self._reset_count += 1
            self._schedule_retry_locked(delay)
        logger.warning("Session reset; next attempt in %.1fs", delay)
        if pending is not None and not pending.done():
            pending.set_result(False)

    def clear_remote_disabled(self) -> None:
        with self._lock:
            if not self._enabled:
                return
            self._remote_disabled = False
            self._consecutive_failures = 0

    def logout(self) -> None:
        try:
            self._provider.revoke()
        except Exception:
            logger.exception("Credential revoke failed")
        with self._lock:
            pending = self._clear_locked()
            self._forgotten_identity = None
            self._remote_disabled = True
        if pending is not None and not pending.done():
            pending.set_result(False)
        logger.info("Signed out; remote disabled")
        self._bus.emit(RemoteUnavailable("signed out"))

    def close(self) -> None:
        with self._lock:
            if self._reset_timer is not None:
                self._reset_timer.cancel()
                self._reset_timer = None
        if self._owns_executor:
            self._executor.shutdown(wait=False)

    # ----- internals -----
    def _clear_locked(self) -> Optional["Future[bool]"]:
        pending = self._pending
        self._pending = None
        self._in_progress = False
        self._authenticated = False
        self._consecutive_failures = 0
        if self._identity is not None:
            self._forgotten_identity = self._identity
        self._identity = None
        self._identity_store.set_current_identity(None)
        if self._reset_timer is not None:
            self._reset_timer.cancel()
            self._reset_timer = None
        return pending

    def _schedule_retry_locked(self, delay: float) -> None:
        timer = threading.Timer(delay, self.perform_authentication)
        timer.daemon = True
        self._reset_timer = timer
        timer.start()

    def _start_attempt_locked(self) -> "Future[bool]":
        if self._pending is not None:
            return self._pending
        if self._remote_disabled:
            return _resolved(False)
        future: Future[bool] = Future()
        try:
            self._executor.submit(self._run_attempt, future)
        except RuntimeError:
            logger.warning("Authentication requested after shutdown")
            return _resolved(False)
        self._pending = future
        self._in_progress = True
        return future

    def _run_attempt(self, future: "Future[bool]") -> None:
        with self._lock:
            self._attempts += 1
        identity: Optional[str] = None
        error: Optional[Exception] = None
        try:
            identity = self._provider.authenticate()
        except Exception as exc:
            error = exc

        events: List[object] = []
        with self._lock:
            if self._pending is not future:
                # Superseded by force_reset/logout; its waiters already got False.
                return
            self._pending = None
            self._in_progress = False
            if error is None and identity:
                self._authenticated = True
                self._consecutive_failures = 0
                self._reset_count = 0
                if self._reset_timer is not None:
                    self._reset_timer.cancel()
                    self._reset_timer = None
                previous = self._identity or self._forgotten_identity
                self._forgotten_identity = None
                if self._identity != identity:
                    self._identity = identity
                    self._identity_store.set_current_identity(identity)
                if previous is not None and previous != identity:
                    events.append(AccountChanged(identity, previous))
                result = True
                logger.info("Authenticated as %s", identity)
            else:
                self._authenticated = False
                self._consecutive_failures += 1
                logger.warning(
                    "Authentication failed (%d in a row): %s",
                    self._consecutive_failures,
                    error or "no identity",
                )
                if self._consecutive_failures >= self._failure_threshold:
                    self._remote_disabled = True
                    logger.error("Remote disabled after %d failures", self._consecutive_failures)
                if isinstance(error, AccountUnavailable) and self._identity is not None:
                    self._identity = None
                    self._identity_store.set_current_identity(None)
                    events.append(RemoteUnavailable(str(error)))
                result = False

        # Account events are handled before any waiter resumes remote work.
        for event in events:
            self._bus.emit(event)
        future.set_result(result)


__all__ = ["CredentialProvider", "IdentityStore", "SessionAuthenticator", "SessionState"]

"""Credential lifecycle: guest vs authenticated, login/register/logout, expiry."""
from __future__ import annotations

import logging
import re
import threading
from dataclasses import dataclass
from enum import Enum

from .api import ApiError, NetworkError, UnauthorizedError, ZenFocusApi
from .background import Runner, run_in_thread
from .events import AuthStateChanged, EventBus, SessionExpired
from .models import AuthIdentity, User
from .storage import KeyValueStore, clear_identity, load_identity, save_identity

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 6
_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class AuthState(str, Enum):
    UNINITIALIZED = "uninitialized"
    CHECKING = "checking"
    AUTHENTICATED = "authenticated"
    GUEST = "guest"


class AuthFailure(str, Enum):
    INVALID_CREDENTIALS = "invalid_credentials"
    DUPLICATE_ACCOUNT = "duplicate_account"
    VALIDATION = "validation"
    NETWORK = "network"


@dataclass(frozen=True)
class AuthResult:
    success: bool
    reason: AuthFailure | None = None
    error: str | None = None

    @classmethod
    def ok(cls) -> "AuthResult":
        return cls(success=True)

    @classmethod
    def fail(cls, reason: AuthFailure, error: str) -> "AuthResult":
        return cls(success=False, reason=reason, error=error)


def validate_credentials(email: str, password: str) -> str | None:
    """Returns a field-level message, or None when the input may be sent."""
    if not email or not email.strip():
        return "Email is required"
    if not _EMAIL_RE.match(email.strip()):
        return "Email address is not valid"
    if not password:
        return "Password is required"
    if len(password) < MIN_PASSWORD_LENGTH:
        return f"Password must be at least {MIN_PASSWORD_LENGTH} characters"
    return None


class AuthSessionManager:
    """
    Owns the bearer token and the identity it belongs to.

    - start(): a stored credential makes the session optimistically usable
      (CHECKING) while /auth/me confirms it in the background.
    - login()/register() never raise; they return an AuthResult.
    - invalidate() is the expiry path taken when any authenticated call gets a 401.
    """

    def __init__(
        self,
        store: KeyValueStore,
        api: ZenFocusApi | None = None,
        events: EventBus | None = None,
        background: Runner = run_in_thread,
    ):
        self.store = store
        self.api = api
        self.events = events or EventBus()
        self.background = background

        self._lock = threading.RLock()
        self._state = AuthState.UNINITIALIZED
        self._identity: AuthIdentity | None = None

    @property
    def state(self) -> AuthState:
        with self._lock:
            return self._state

    @property
    def identity(self) -> AuthIdentity | None:
        with self._lock:
            return self._identity

    @property
    def token(self) -> str | None:
        identity = self.identity
        return identity.token if identity else None

    @property
    def user(self) -> User | None:
        identity = self.identity
        return identity.user if identity else None

    @property
    def is_authenticated(self) -> bool:
        with self._lock:
            return self._identity is not None and self._state in (AuthState.CHECKING, AuthState.AUTHENTICATED)

    @property
    def is_guest(self) -> bool:
        return not self.is_authenticated

    def _set_state(self, state: AuthState) -> None:
        with self._lock:
            changed = state != self._state
            self._state = state
        if changed:
            logger.info(f"Auth state -> {state.value}")
            self.events.publish(AuthStateChanged(state=state.value))

    def start(self, verify: bool = True) -> AuthState:
        identity = load_identity(self.store)
        if identity is None:
            self._set_state(AuthState.GUEST)
            return self.state

        with self._lock:
            self._identity = identity

        if not verify or self.api is None:
            self._set_state(AuthState.AUTHENTICATED)
            return self.state

        self._set_state(AuthState.CHECKING)
        token = identity.token
        self.background(lambda: self.verify(token))
        return self.state

    def verify(self, token: str) -> bool:
        """Confirms a stored token; returns False only when the server rejected it."""
        if self.api is None:
            self._finish_check(token)
            return True
        try:
            user = self.api.me(token)
        except NetworkError as e:
            # Server unreachable: keep the stored session
            logger.warning(f"Could not verify stored session: {e.message}")
            self._finish_check(token)
            return True
        except (ApiError, ValueError) as e:
            logger.info(f"Stored session rejected: {e}")
            self.invalidate(token)
            return False

        with self._lock:
            if self._identity is not None and self._identity.token == token:
                self._identity = AuthIdentity(user=user, token=token)
                save_identity(self.store, self._identity)
        self._finish_check(token)
        return True

    def _finish_check(self, token: str) -> None:
        with self._lock:
            still_current = self._identity is not None and self._identity.token == token
            checking = self._state == AuthState.CHECKING
        if still_current and checking:
            self._set_state(AuthState.AUTHENTICATED)

    def login(self, email: str, password: str) -> AuthResult:
        problem = validate_credentials(email, password)
        if problem:
            return AuthResult.fail(AuthFailure.VALIDATION, problem)
        if self.api is None:
            return AuthResult.fail(AuthFailure.NETWORK, "No server configured")
        try:
            identity = self.api.login(email.strip(), password)
        except UnauthorizedError as e:
            return AuthResult.fail(AuthFailure.INVALID_CREDENTIALS, e.message or "Invalid email or password")
        except ApiError as e:
            return self._failure_from(e, "Login failed")
        except ValueError:
            return AuthResult.fail(AuthFailure.NETWORK, "Unexpected response from server")
        self._adopt(identity)
        return AuthResult.ok()

    def register(self, email: str, password: str, name: str = "") -> AuthResult:
        problem = validate_credentials(email, password)
        if problem:
            return AuthResult.fail(AuthFailure.VALIDATION, problem)
        if self.api is None:
            return AuthResult.fail(AuthFailure.NETWORK, "No server configured")
        try:
            identity = self.api.register(email.strip(), password, name.strip())
        except ApiError as e:
            return self._failure_from(e, "Registration failed")
        except ValueError:
            return AuthResult.fail(AuthFailure.NETWORK, "Unexpected response from server")
        self._adopt(identity)
        return AuthResult.ok()

    def _failure_from(self, e: ApiError, fallback: str) -> AuthResult:
        if isinstance(e, NetworkError):
            return AuthResult.fail(AuthFailure.NETWORK, "Network error. Please try again.")
        if e.status_code == 401:
            return AuthResult.fail(AuthFailure.INVALID_CREDENTIALS, e.message or fallback)
        if e.status_code == 409:
            return AuthResult.fail(AuthFailure.DUPLICATE_ACCOUNT, e.message or fallback)
        if e.status_code in (400, 422):
            return AuthResult.fail(AuthFailure.VALIDATION, e.message or fallback)
        return AuthResult.fail(AuthFailure.NETWORK, e.message or fallback)

    def _adopt(self, identity: AuthIdentity) -> None:
        with self._lock:
            self._identity = identity
            save_identity(self.store, identity)
        logger.info(f"Signed in as {identity.user.email}")
        self._set_state(AuthState.AUTHENTICATED)

    def logout(self) -> None:
        with self._lock:
            self._identity = None
            clear_identity(self.store)
        self._set_state(AuthState.GUEST)

    def invalidate(self, token: str | None = None) -> bool:
        """
        Drops the session after the server refused `token`.

        A refusal for a token that is no longer current (the user signed in
        again meanwhile) is ignored. Returns True when the session was dropped.
        """
        with self._lock:
            if self._identity is None:
                return False
            if token is not None and self._identity.token != token:
                return False
            user_id = self._identity.user.id
            self._identity = None
            clear_identity(self.store)
        logger.warning("Session expired; continuing as guest")
        self.events.publish(SessionExpired(user_id=user_id))
        self._set_state(AuthState.GUEST)
        return True

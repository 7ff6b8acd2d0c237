"""
auth_store.py — Persisted Auth Store

Holds the current session (user + bearer token) and keeps it durable across
process restarts. The store is pure state: it performs no network calls and
never touches the cart. Pairing a login/logout with the cart is the job of
session.AuthSessionManager.
"""

import logging
import threading
from typing import Optional

from pydantic import BaseModel

from .config import AUTH_STORAGE_KEY
from .models import AuthSession, User

log = logging.getLogger(__name__)


class AuthState(BaseModel):
    """Persisted fields of the auth store."""
    user: Optional[User] = None
    token: Optional[str] = None
    refreshToken: Optional[str] = None
    isAuthenticated: bool = False


class AuthStore:
    def __init__(self, storage, storage_key: str = AUTH_STORAGE_KEY):
        self.storage = storage
        self.storage_key = storage_key
        self._lock = threading.Lock()

        record = storage.load(storage_key)
        self._state = AuthState.model_validate(record) if record else AuthState()
        if self._state.isAuthenticated and (self._state.user is None or not self._state.token):
            log.warning("[Auth: unknown] Persisted session is incomplete, treating it as logged out.")
            self._state = AuthState()
            storage.remove(storage_key)
        elif self._state.isAuthenticated:
            log.info(f"[Auth: {self._state.user.email}] Session restored from storage.")

    def _commit(self, state: AuthState):
        # Callers hold self._lock.
        self._state = state
        self.storage.save(self.storage_key, state.model_dump(mode="json"))

    @property
    def state(self) -> AuthState:
        return self._state

    @property
    def user(self) -> Optional[User]:
        return self._state.user

    @property
    def token(self) -> Optional[str]:
        return self._state.token

    @property
    def refresh_token(self) -> Optional[str]:
        return self._state.refreshToken

    @property
    def is_authenticated(self) -> bool:
        return self._state.isAuthenticated

    @property
    def is_admin(self) -> bool:
        return self._state.user is not None and self._state.user.role == "ADMIN"

    @property
    def session(self) -> Optional[AuthSession]:
        state = self._state
        if not state.isAuthenticated or state.user is None or not state.token:
            return None
        return AuthSession(user=state.user, accessToken=state.token, refreshToken=state.refreshToken)

    def login(self, user: User, access_token: str, refresh_token: Optional[str] = None):
        """Replaces the session and persists it."""
        with self._lock:
            self._commit(AuthState(
                user=user,
                token=access_token,
                refreshToken=refresh_token,
                isAuthenticated=True,
            ))
        log.info(f"[Auth: {user.email}] Logged in.")

    def logout(self):
        """Clears the session and its durable record."""
        with self._lock:
            previous = self._state.user
            self._state = AuthState()
            self.storage.remove(self.storage_key)
        if previous is not None:
            log.info(f"[Auth: {previous.email}] Logged out.")

    def update_user(self, partial: dict):
        """Shallow-merges fields into the current user. No-op without a session."""
        with self._lock:
            if self._state.user is None:
                return
            user = User.model_validate({**self._state.user.model_dump(), **partial})
            self._commit(self._state.model_copy(update={"user": user}))

    def update_token(self, new_token: str):
        """Rotates the bearer credential; the user record is untouched."""
        with self._lock:
            self._commit(self._state.model_copy(update={"token": new_token}))

"""Auth backend used when SUPABASE_DISABLED=1.

Users and tokens live in a process-wide registry so that a token issued by one
request is accepted by the next. Each gateway instance carries its own current
session and listeners, like one client connected to the shared backend.
"""
from __future__ import annotations

import logging
import secrets
import uuid
from dataclasses import dataclass, field
from typing import Any, Callable

from src.application.ports import AuthListener
from src.domain.entities.identity import SIGNUP_METADATA_FIELDS, AuthSession, Identity
from src.domain.entities.session import AuthEvent
from src.domain.exceptions import AuthenticationError, RegistrationError

logger = logging.getLogger(__name__)


@dataclass
class InMemoryAuthBackend:
    passwords: dict[str, str] = field(default_factory=dict)  # email -> password
    users: dict[str, Identity] = field(default_factory=dict)  # email -> identity
    access_tokens: dict[str, Identity] = field(default_factory=dict)
    refresh_tokens: dict[str, Identity] = field(default_factory=dict)

    def issue(self, identity: Identity) -> AuthSession:
        access = f"mem-access-{secrets.token_hex(16)}"
        refresh = f"mem-refresh-{secrets.token_hex(16)}"
        self.access_tokens[access] = identity
        self.refresh_tokens[refresh] = identity
        return AuthSession(access_token=access, refresh_token=refresh, identity=identity)

    def expire(self, access_token: str) -> None:
        """Invalidate an access token, leaving its refresh token usable."""
        self.access_tokens.pop(access_token, None)


_BACKEND = InMemoryAuthBackend()


def get_memory_backend() -> InMemoryAuthBackend:
    return _BACKEND


class InMemoryAuthGateway:
    def __init__(
        self,
        backend: InMemoryAuthBackend | None = None,
        session: AuthSession | None = None,
    ) -> None:
        self.backend = backend if backend is not None else _BACKEND
        self._session = session
        self._listeners: list[AuthListener] = []

    def _emit(self, event: AuthEvent, identity: Identity | None) -> None:
        for listener in list(self._listeners):
            listener(event, identity)

    async def get_session(self) -> AuthSession | None:
        if self._session and self._session.access_token not in self.backend.access_tokens:
            return None
        return self._session

    async def get_user(self, access_token: str | None = None) -> Identity | None:
        token = access_token or (self._session.access_token if self._session else None)
        if not token:
            return None
        identity = self.backend.access_tokens.get(token)
        if identity is None:
            raise AuthenticationError("Invalid access token")
        return identity

    async def refresh_session(self, refresh_token: str) -> AuthSession | None:
        identity = self.backend.refresh_tokens.pop(refresh_token, None)
        if identity is None:
            raise AuthenticationError("Invalid refresh token")
        self._session = self.backend.issue(identity)
        self._emit(AuthEvent.TOKEN_REFRESHED, identity)
        return self._session

    async def sign_in(self, email: str, password: str) -> AuthSession:
        key = email.strip().lower()
        if self.backend.passwords.get(key) != password:
            raise AuthenticationError("Invalid login credentials")
        self._session = self.backend.issue(self.backend.users[key])
        self._emit(AuthEvent.SIGNED_IN, self._session.identity)
        return self._session

    async def sign_up(self, email: str, password: str, metadata: dict[str, Any]) -> Identity | None:
        key = email.strip().lower()
        if key in self.backend.users:
            raise RegistrationError("Registration Failed", "User already registered")
        identity = Identity(
            id=str(uuid.uuid4()),
            email=key,
            metadata={k: metadata.get(k) for k in SIGNUP_METADATA_FIELDS if k in metadata},
        )
        self.backend.users[key] = identity
        self.backend.passwords[key] = password
        logger.info(f"Registered in-memory user {identity.id}")
        return identity

    async def sign_out(self) -> None:
        if self._session:
            self.backend.access_tokens.pop(self._session.access_token, None)
            if self._session.refresh_token:
                self.backend.refresh_tokens.pop(self._session.refresh_token, None)
        self._session = None
        self._emit(AuthEvent.SIGNED_OUT, None)

    def subscribe(self, listener: AuthListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

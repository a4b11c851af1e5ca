from __future__ import annotations

from typing import Any, Callable, Protocol

from src.domain.entities.identity import AuthSession, Identity
from src.domain.entities.session import AuthEvent

AuthListener = Callable[[AuthEvent, Identity | None], None]


class AuthGateway(Protocol):
    """Operations the session layer needs from the auth backend.

    Every coroutine raises AuthenticationError when the backend rejects the
    call; a missing session or user is reported as None, not as an error.
    """

    async def get_session(self) -> AuthSession | None: ...

    async def get_user(self, access_token: str | None = None) -> Identity | None: ...

    async def refresh_session(self, refresh_token: str) -> AuthSession | None: ...

    async def sign_in(self, email: str, password: str) -> AuthSession: ...

    async def sign_up(self, email: str, password: str, metadata: dict[str, Any]) -> Identity | None: ...

    async def sign_out(self) -> None: ...

    def subscribe(self, listener: AuthListener) -> Callable[[], None]: ...

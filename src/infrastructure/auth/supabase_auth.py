from __future__ import annotations

import logging
from typing import Any, Callable

from supabase import AsyncClient

from src.application.ports import AuthListener
from src.domain.entities.identity import AuthSession, Identity
from src.domain.entities.session import AuthEvent
from src.domain.exceptions import AuthenticationError, RegistrationError

logger = logging.getLogger(__name__)


def _to_identity(user: Any) -> Identity:
    return Identity(
        id=str(user.id),
        email=getattr(user, "email", None),
        metadata=dict(getattr(user, "user_metadata", None) or {}),
    )


def _to_auth_session(session: Any) -> AuthSession:
    return AuthSession(
        access_token=session.access_token,
        refresh_token=session.refresh_token,
        identity=_to_identity(session.user),
    )


class SupabaseAuthGateway:
    """Auth operations over a Supabase async client.

    When built with a bound session (server side, one client per request),
    get_session() answers from that session instead of the client's storage.
    """

    def __init__(self, client: AsyncClient, session: AuthSession | None = None) -> None:
        self.client = client
        self._bound = session

    async def get_session(self) -> AuthSession | None:
        if self._bound is not None:
            return self._bound
        try:
            session = await self.client.auth.get_session()
        except Exception as exc:  # pragma: no cover - network
            raise AuthenticationError(f"Session lookup failed: {exc}") from exc
        return _to_auth_session(session) if session and session.user else None

    async def get_user(self, access_token: str | None = None) -> Identity | None:
        token = access_token or (self._bound.access_token if self._bound else None)
        try:  # pragma: no cover - network
            res = await self.client.auth.get_user(token)
        except Exception as exc:  # pragma: no cover - network
            raise AuthenticationError(f"Invalid access token: {exc}") from exc
        if not res or not res.user:
            return None
        return _to_identity(res.user)

    async def refresh_session(self, refresh_token: str) -> AuthSession | None:
        try:  # pragma: no cover - network
            res = await self.client.auth.refresh_session(refresh_token)
        except Exception as exc:  # pragma: no cover - network
            raise AuthenticationError(f"Session refresh failed: {exc}") from exc
        if not res or not res.session:
            return None
        self._bound = _to_auth_session(res.session)
        return self._bound

    async def sign_in(self, email: str, password: str) -> AuthSession:
        try:  # pragma: no cover - network
            res = await self.client.auth.sign_in_with_password({"email": email, "password": password})
        except Exception as exc:  # pragma: no cover - network
            raise AuthenticationError(str(exc)) from exc
        if not res.session:
            raise AuthenticationError("Sign-in did not return a session")
        self._bound = _to_auth_session(res.session)
        return self._bound

    async def sign_up(self, email: str, password: str, metadata: dict[str, Any]) -> Identity | None:
        try:  # pragma: no cover - network
            res = await self.client.auth.sign_up(
                {"email": email, "password": password, "options": {"data": metadata}}
            )
        except Exception as exc:  # pragma: no cover - network
            raise RegistrationError("Registration Failed", str(exc)) from exc
        return _to_identity(res.user) if res.user else None

    async def sign_out(self) -> None:
        try:  # pragma: no cover - network
            if self._bound is not None:
                # request-scoped clients hold no stored session, revoke the bound token directly
                await self.client.auth.admin.sign_out(self._bound.access_token)
            else:
                await self.client.auth.sign_out()
        except Exception as exc:  # pragma: no cover - network
            raise AuthenticationError(f"Sign-out failed: {exc}") from exc
        finally:
            self._bound = None

    def subscribe(self, listener: AuthListener) -> Callable[[], None]:
        def _on_change(event: str, session: Any) -> None:
            try:
                auth_event = AuthEvent(event)
            except ValueError:
                logger.debug(f"Ignoring auth event {event}")
                return
            identity = _to_identity(session.user) if session and session.user else None
            listener(auth_event, identity)

        subscription = self.client.auth.on_auth_state_change(_on_change)
        return subscription.unsubscribe

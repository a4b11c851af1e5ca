"""Single owner of the current session (identity, profile, loading flag).

State is an immutable ``SessionState`` snapshot that is only ever replaced,
never mutated, so a reader always sees an identity together with the profile
resolved for that identity (or an explicit absence of one).

Transitions that change who is signed in (``initialize``, auth events,
``sign_out``) take a ticket when they arrive. A resolution is committed only
while its ticket is still the newest one, so a slow profile fetch for an old
identity can never overwrite the state produced by a later event.
"""
from __future__ import annotations

import asyncio
import logging
import os
from dataclasses import replace
from typing import Callable

from src.application.ports import AuthGateway
from src.application.use_cases.fetch_profile import ProfileFetcher
from src.domain.entities.identity import Identity
from src.domain.entities.session import AuthEvent, Notice, ProfileStatus, SessionState

logger = logging.getLogger(__name__)

SessionListener = Callable[[SessionState], None]

PROFILE_UNAVAILABLE = Notice(
    title="Profile Unavailable",
    description="We could not load your profile. Please try again.",
    level="error",
)
SIGN_OUT_INCOMPLETE = Notice(
    title="Sign-out Incomplete",
    description="You have been signed out on this device, but the server could not be reached.",
    level="error",
)


class SessionStore:
    def __init__(
        self,
        auth: AuthGateway,
        fetcher: ProfileFetcher,
        *,
        init_timeout: float | None = None,
    ) -> None:
        self.auth = auth
        self.fetcher = fetcher
        if init_timeout is None:
            init_timeout = float(os.getenv("SESSION_INIT_TIMEOUT_SECONDS", "5"))
        self.init_timeout = init_timeout
        self._state = SessionState()
        self._lock = asyncio.Lock()
        self._ticket = 0
        self._listeners: list[SessionListener] = []
        self._pending: set[asyncio.Task] = set()
        self._unsubscribe: Callable[[], None] | None = None

    @property
    def state(self) -> SessionState:
        return self._state

    def subscribe(self, listener: SessionListener) -> Callable[[], None]:
        """Register a callback for every committed state. Returns an unsubscribe function."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def _take_ticket(self) -> int:
        self._ticket += 1
        return self._ticket

    def _publish(self, state: SessionState) -> None:
        self._state = state
        for listener in list(self._listeners):
            try:
                listener(state)
            except Exception:
                logger.exception("Session listener failed")

    def _commit(self, state: SessionState, ticket: int) -> bool:
        if ticket != self._ticket:
            logger.debug(f"Discarding stale session resolution (ticket {ticket}, latest {self._ticket})")
            return False
        self._publish(state)
        return True

    async def _resolve(self, identity: Identity | None) -> SessionState:
        if identity is None:
            return SessionState(loading=False)
        lookup = await self.fetcher.fetch(identity.id)
        return SessionState(
            identity=identity,
            profile=lookup.profile,
            profile_status=lookup.status,
            loading=False,
            notice=PROFILE_UNAVAILABLE if lookup.status is ProfileStatus.ERROR else None,
        )

    async def _initialize(self, ticket: int) -> None:
        async with self._lock:
            try:
                session = await self.auth.get_session()
            except Exception as exc:
                logger.warning(f"Could not read the initial session, treating as signed out: {exc}")
                session = None
            state = await self._resolve(session.identity if session else None)
            self._commit(state, ticket)

    async def initialize(self) -> SessionState:
        """Resolve the initial session, giving up after ``init_timeout`` seconds.

        Always leaves ``loading`` False. On timeout the identity and profile
        stay at whatever was last resolved.
        """
        ticket = self._take_ticket()
        try:
            await asyncio.wait_for(self._initialize(ticket), timeout=self.init_timeout)
        except TimeoutError:
            logger.warning(
                f"Auth initialization timed out after {self.init_timeout}s, "
                "continuing with the last resolved session"
            )
        finally:
            if self._state.loading:
                self._publish(replace(self._state, loading=False))
        return self._state

    async def on_auth_state_changed(
        self,
        event: AuthEvent,
        identity: Identity | None,
        *,
        ticket: int | None = None,
    ) -> SessionState:
        """Apply one auth event: re-resolve the profile for a present identity, clear it otherwise."""
        if ticket is None:
            ticket = self._take_ticket()
        logger.info(f"Auth state change: {event.value} (user present: {identity is not None})")
        async with self._lock:
            if ticket != self._ticket:
                logger.debug(f"Skipping superseded auth event {event.value}")
                return self._state
            state = await self._resolve(identity)
            self._commit(state, ticket)
        return self._state

    def _handle_event(self, event: AuthEvent, identity: Identity | None) -> None:
        # Ticket is taken on arrival so events resolve in the order the backend sent them
        ticket = self._take_ticket()
        task = asyncio.get_running_loop().create_task(
            self.on_auth_state_changed(event, identity, ticket=ticket)
        )
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def sign_out(self) -> SessionState:
        """Sign out on the backend, then clear the local session whatever the backend said."""
        notice = None
        try:
            await self.auth.sign_out()
        except Exception as exc:
            logger.error(f"Backend sign-out failed, clearing local session anyway: {exc}")
            notice = SIGN_OUT_INCOMPLETE
        # newer ticket so in-flight resolutions for the old identity are discarded
        self._take_ticket()
        self._publish(SessionState(loading=False, notice=notice))
        return self._state

    async def refresh_profile(self) -> SessionState:
        """Re-fetch the profile for the current identity. No-op when signed out."""
        async with self._lock:
            identity = self._state.identity
            if identity is None:
                return self._state
            ticket = self._ticket
            state = await self._resolve(identity)
            self._commit(state, ticket)
        return self._state

    async def start(self) -> SessionState:
        """Subscribe to backend auth events, then resolve the initial session."""
        if self._unsubscribe is None:
            self._unsubscribe = self.auth.subscribe(self._handle_event)
        return await self.initialize()

    async def wait_idle(self) -> None:
        """Wait until every queued auth event has been applied."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def aclose(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        await self.wait_idle()
        self._listeners.clear()

"""
Tests for the session store: bootstrap, auth events, sign-out and stale-response handling.
"""
from __future__ import annotations

import asyncio
import time
from unittest.mock import AsyncMock, Mock

import pytest

from src.application.services.session_store import SIGN_OUT_INCOMPLETE, SessionStore
from src.application.use_cases.fetch_profile import ProfileFetcher, ProfileLookup
from src.domain.entities.identity import Identity
from src.domain.entities.profile import ProfileEntity
from src.domain.entities.session import AuthEvent, ProfileStatus, SessionState
from src.domain.exceptions import AuthenticationError, ProfileAccessError
from src.infrastructure.auth.memory_auth import InMemoryAuthGateway


class GatedFetcher:
    """Fetcher whose lookups can be held open per identity."""

    def __init__(self) -> None:
        self.gates: dict[str, asyncio.Event] = {}
        self.calls: list[str] = []

    async def fetch(self, identity_id: str) -> ProfileLookup:
        self.calls.append(identity_id)
        gate = self.gates.get(identity_id)
        if gate is not None:
            await gate.wait()
        return ProfileLookup.found(ProfileEntity(id=identity_id, email=f"{identity_id}@campus.edu"))


class HangingAuth(InMemoryAuthGateway):
    async def get_session(self):
        await asyncio.sleep(10)


async def _signed_in_gateway(auth_backend, email="ada@campus.edu"):
    gateway = InMemoryAuthGateway(auth_backend)
    identity = await gateway.sign_up(email, "secret1", {"first_name": "Ada"})
    await gateway.sign_in(email, "secret1")
    return gateway, identity


class TestSessionState:
    def test_profile_without_identity_is_rejected(self):
        with pytest.raises(ValueError):
            SessionState(profile=ProfileEntity(id="u1", email=""), profile_status=ProfileStatus.FOUND)

    def test_profile_must_match_identity(self):
        with pytest.raises(ValueError):
            SessionState(
                identity=Identity(id="u1"),
                profile=ProfileEntity(id="u2", email=""),
                profile_status=ProfileStatus.FOUND,
            )

    def test_starts_loading(self):
        state = SessionState()
        assert state.loading is True
        assert not state.is_authenticated


@pytest.mark.asyncio
class TestInitialize:
    async def test_signed_in_with_profile(self, auth_backend, profile_repo):
        gateway, identity = await _signed_in_gateway(auth_backend)
        await profile_repo.insert(ProfileEntity(id=identity.id, email="ada@campus.edu", first_name="Ada"))

        store = SessionStore(gateway, ProfileFetcher(profile_repo))
        state = await store.initialize()

        assert state.loading is False
        assert state.identity == identity
        assert state.profile.first_name == "Ada"
        assert state.profile_status is ProfileStatus.FOUND

    async def test_signed_in_without_profile(self, auth_backend, profile_repo):
        gateway, identity = await _signed_in_gateway(auth_backend)
        state = await SessionStore(gateway, ProfileFetcher(profile_repo)).initialize()
        assert state.identity == identity
        assert state.profile is None
        assert state.needs_profile

    async def test_signed_out(self, auth_backend, profile_repo):
        state = await SessionStore(InMemoryAuthGateway(auth_backend), ProfileFetcher(profile_repo)).initialize()
        assert state.loading is False
        assert state.identity is None
        assert state.profile is None

    async def test_hanging_backend_times_out(self, auth_backend, profile_repo):
        store = SessionStore(HangingAuth(auth_backend), ProfileFetcher(profile_repo), init_timeout=0.05)
        started = time.monotonic()
        state = await store.initialize()
        assert time.monotonic() - started < 2
        assert state.loading is False
        assert state.identity is None

    async def test_backend_error_resolves_signed_out(self, profile_repo):
        gateway = Mock()
        gateway.get_session = AsyncMock(side_effect=AuthenticationError("expired"))
        state = await SessionStore(gateway, ProfileFetcher(profile_repo)).initialize()
        assert state.loading is False
        assert state.identity is None

    async def test_profile_permission_error_sets_notice(self, auth_backend):
        gateway, _ = await _signed_in_gateway(auth_backend)
        repo = Mock()
        repo.get = AsyncMock(side_effect=ProfileAccessError("permission denied"))
        state = await SessionStore(gateway, ProfileFetcher(repo)).initialize()
        assert state.profile is None
        assert state.profile_status is ProfileStatus.ERROR
        assert not state.needs_profile
        assert state.notice.title == "Profile Unavailable"

    async def test_listeners_see_final_state(self, auth_backend, profile_repo):
        store = SessionStore(InMemoryAuthGateway(auth_backend), ProfileFetcher(profile_repo))
        seen: list[SessionState] = []
        store.subscribe(seen.append)
        await store.initialize()
        assert seen[-1].loading is False

    async def test_failing_listener_does_not_break_store(self, auth_backend, profile_repo):
        store = SessionStore(InMemoryAuthGateway(auth_backend), ProfileFetcher(profile_repo))
        store.subscribe(Mock(side_effect=RuntimeError("render failed")))
        state = await store.initialize()
        assert state.loading is False


@pytest.mark.asyncio
class TestAuthEvents:
    async def test_sign_in_and_out(self, profile_repo):
        store = SessionStore(Mock(), ProfileFetcher(profile_repo))
        identity = Identity(id="u1", email="a@campus.edu")
        await profile_repo.insert(ProfileEntity(id="u1", email="a@campus.edu"))

        state = await store.on_auth_state_changed(AuthEvent.SIGNED_IN, identity)
        assert state.identity == identity
        assert state.profile.id == "u1"
        assert state.loading is False

        state = await store.on_auth_state_changed(AuthEvent.SIGNED_OUT, None)
        assert state.identity is None
        assert state.profile is None

    async def test_stale_fetch_is_discarded(self):
        fetcher = GatedFetcher()
        fetcher.gates["alice"] = asyncio.Event()
        store = SessionStore(Mock(), fetcher)
        seen: list[SessionState] = []
        store.subscribe(seen.append)

        first = asyncio.create_task(store.on_auth_state_changed(AuthEvent.SIGNED_IN, Identity(id="alice")))
        await asyncio.sleep(0)
        second = asyncio.create_task(store.on_auth_state_changed(AuthEvent.SIGNED_IN, Identity(id="bob")))
        await asyncio.sleep(0)
        fetcher.gates["alice"].set()
        await asyncio.gather(first, second)

        assert store.state.identity.id == "bob"
        assert store.state.profile.id == "bob"
        assert all(s.identity is None or s.identity.id == "bob" for s in seen)

    async def test_subscription_applies_events_in_order(self, auth_backend, profile_repo):
        gateway = InMemoryAuthGateway(auth_backend)
        identity = await gateway.sign_up("ada@campus.edu", "secret1", {})
        store = SessionStore(gateway, ProfileFetcher(profile_repo))
        await store.start()
        assert store.state.identity is None

        await gateway.sign_in("ada@campus.edu", "secret1")
        await store.wait_idle()
        assert store.state.identity == identity
        assert store.state.profile_status is ProfileStatus.NOT_FOUND

        await gateway.sign_in("ada@campus.edu", "secret1")
        await gateway.sign_out()
        await store.wait_idle()
        assert store.state.identity is None
        await store.aclose()


@pytest.mark.asyncio
class TestSignOutAndRefresh:
    async def test_sign_out_clears_session(self, auth_backend, profile_repo):
        gateway, _ = await _signed_in_gateway(auth_backend)
        store = SessionStore(gateway, ProfileFetcher(profile_repo))
        await store.initialize()
        state = await store.sign_out()
        assert state.identity is None
        assert state.profile is None
        assert state.notice is None

    async def test_sign_out_clears_session_when_backend_fails(self, profile_repo):
        gateway = Mock()
        gateway.get_session = AsyncMock(return_value=None)
        gateway.sign_out = AsyncMock(side_effect=AuthenticationError("network down"))
        store = SessionStore(gateway, ProfileFetcher(profile_repo))
        await store.on_auth_state_changed(AuthEvent.SIGNED_IN, Identity(id="u1"))

        state = await store.sign_out()

        assert state.identity is None
        assert state.profile is None
        assert state.notice == SIGN_OUT_INCOMPLETE

    async def test_refresh_profile_noop_when_signed_out(self, profile_repo):
        fetcher = GatedFetcher()
        store = SessionStore(Mock(), fetcher)
        await store.refresh_profile()
        assert fetcher.calls == []

    async def test_refresh_profile_picks_up_new_row(self, profile_repo):
        store = SessionStore(Mock(), ProfileFetcher(profile_repo))
        await store.on_auth_state_changed(AuthEvent.SIGNED_IN, Identity(id="u1", email="a@campus.edu"))
        assert store.state.profile is None

        await profile_repo.insert(ProfileEntity(id="u1", email="a@campus.edu"))
        state = await store.refresh_profile()
        assert state.profile.id == "u1"
        assert state.profile_status is ProfileStatus.FOUND

    async def test_refresh_discarded_after_sign_out(self):
        fetcher = GatedFetcher()
        gateway = Mock()
        gateway.sign_out = AsyncMock()
        store = SessionStore(gateway, fetcher)
        await store.on_auth_state_changed(AuthEvent.SIGNED_IN, Identity(id="alice"))

        fetcher.gates["alice"] = asyncio.Event()
        refresh = asyncio.create_task(store.refresh_profile())
        await asyncio.sleep(0)
        await store.sign_out()
        fetcher.gates["alice"].set()
        await refresh

        assert store.state.identity is None
        assert store.state.profile is None

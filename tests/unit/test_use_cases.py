from __future__ import annotations

from unittest.mock import AsyncMock, Mock

import pytest

from src.application.services.session_store import SessionStore
from src.application.use_cases.complete_profile_setup import CompleteProfileSetupUseCase, ProfileSetupForm
from src.application.use_cases.fetch_profile import ProfileFetcher
from src.application.use_cases.register_user import RegisterUserUseCase, RegistrationForm
from src.application.use_cases.run_diagnostics import RunDiagnosticsUseCase
from src.domain.entities.identity import Identity
from src.domain.entities.profile import ProfileEntity, ProfileRole
from src.domain.entities.session import AuthEvent
from src.domain.exceptions import (
    AuthenticationError,
    ProfileAccessError,
    ProfileBackendError,
    ProfileValidationError,
    RegistrationError,
)
from src.infrastructure.auth.memory_auth import InMemoryAuthGateway
from src.infrastructure.database.supabase_client import SupabaseConfig


def _form(**kwargs) -> RegistrationForm:
    defaults = dict(
        email="grace@campus.edu",
        password="secret1",
        confirm_password="secret1",
        first_name="Grace",
        last_name="Hopper",
        student_id="S-1906",
        major="Computer Science",
        year="senior",
    )
    defaults.update(kwargs)
    return RegistrationForm(**defaults)


@pytest.mark.asyncio
class TestRegisterUser:
    async def test_password_mismatch(self, auth_backend, profile_repo):
        with pytest.raises(RegistrationError) as err:
            await RegisterUserUseCase(InMemoryAuthGateway(auth_backend), profile_repo).execute(
                _form(confirm_password="different")
            )
        assert err.value.title == "Password Mismatch"
        assert err.value.description == "Passwords do not match. Please try again."
        assert auth_backend.users == {}

    async def test_password_too_short(self, auth_backend, profile_repo):
        with pytest.raises(RegistrationError, match="at least 6 characters"):
            await RegisterUserUseCase(InMemoryAuthGateway(auth_backend), profile_repo).execute(
                _form(password="abc", confirm_password="abc")
            )

    async def test_invalid_year(self, auth_backend, profile_repo):
        with pytest.raises(RegistrationError, match="Year must be one of"):
            await RegisterUserUseCase(InMemoryAuthGateway(auth_backend), profile_repo).execute(_form(year="fifth"))

    async def test_metadata_stored_on_identity(self, auth_backend, profile_repo):
        identity = await RegisterUserUseCase(InMemoryAuthGateway(auth_backend), profile_repo).execute(_form())
        assert identity.email == "grace@campus.edu"
        assert identity.meta("first_name") == "Grace"
        assert identity.meta("year") == "senior"

    async def test_copies_details_onto_trigger_created_row(self, profile_repo):
        gateway = Mock()
        gateway.sign_up = AsyncMock(return_value=Identity(id="trigger-user", email="grace@campus.edu"))
        await profile_repo.insert(ProfileEntity(id="trigger-user", email="grace@campus.edu"))

        await RegisterUserUseCase(gateway, profile_repo).execute(_form())

        row = await profile_repo.get("trigger-user")
        assert row.student_id == "S-1906"
        assert row.major == "Computer Science"
        assert row.year == "senior"

    async def test_details_failure_is_ignored(self, auth_backend):
        repo = Mock()
        repo.update_details = AsyncMock(side_effect=ProfileBackendError("timeout"))
        identity = await RegisterUserUseCase(InMemoryAuthGateway(auth_backend), repo).execute(_form())
        assert identity is not None

    async def test_duplicate_user(self, auth_backend, profile_repo):
        use_case = RegisterUserUseCase(InMemoryAuthGateway(auth_backend), profile_repo)
        await use_case.execute(_form())
        with pytest.raises(RegistrationError, match="already registered"):
            await use_case.execute(_form())

    async def test_backend_returns_no_user(self, profile_repo):
        gateway = Mock()
        gateway.sign_up = AsyncMock(return_value=None)
        with pytest.raises(RegistrationError, match="did not return a user"):
            await RegisterUserUseCase(gateway, profile_repo).execute(_form())


@pytest.mark.asyncio
class TestCompleteProfileSetup:
    async def _store(self, profile_repo, identity) -> SessionStore:
        store = SessionStore(Mock(), ProfileFetcher(profile_repo))
        await store.on_auth_state_changed(AuthEvent.SIGNED_IN, identity)
        return store

    async def test_requires_identity(self, profile_repo):
        store = SessionStore(Mock(), ProfileFetcher(profile_repo))
        with pytest.raises(AuthenticationError):
            await CompleteProfileSetupUseCase(profile_repo, store).execute(ProfileSetupForm(major="Art"))

    async def test_rejects_unknown_year(self, profile_repo, identity):
        store = await self._store(profile_repo, identity)
        with pytest.raises(ProfileValidationError):
            await CompleteProfileSetupUseCase(profile_repo, store).execute(ProfileSetupForm(year="fifth"))

    async def test_creates_missing_profile(self, profile_repo, identity):
        store = await self._store(profile_repo, identity)
        assert store.state.profile is None

        saved = await CompleteProfileSetupUseCase(profile_repo, store).execute(
            ProfileSetupForm(student_id="S-1", major="Mathematics", year="junior", bio="Engines")
        )

        assert saved.first_name == "Ada"
        assert saved.role is ProfileRole.STUDENT
        assert saved.is_complete
        assert store.state.profile.bio == "Engines"

    async def test_updates_existing_profile_and_keeps_role(self, profile_repo, identity):
        await profile_repo.insert(
            ProfileEntity(id=identity.id, email="ada@campus.edu", first_name="Augusta", role=ProfileRole.TUTOR)
        )
        store = await self._store(profile_repo, identity)

        saved = await CompleteProfileSetupUseCase(profile_repo, store).execute(
            ProfileSetupForm(student_id="S-2", major="Physics", year="senior")
        )

        assert saved.first_name == "Augusta"
        assert saved.role is ProfileRole.TUTOR
        assert (await profile_repo.get(identity.id)).major == "Physics"
        assert store.state.profile.major == "Physics"

    async def test_insert_conflict_falls_through_to_upsert(self, profile_repo, identity):
        store = await self._store(profile_repo, identity)
        # row created after the session was resolved, so the store has no profile loaded
        await profile_repo.insert(ProfileEntity(id=identity.id, email="ada@campus.edu"))

        saved = await CompleteProfileSetupUseCase(profile_repo, store).execute(ProfileSetupForm(major="Art"))

        assert saved.major == "Art"
        assert len(profile_repo._mem) == 1


@pytest.mark.asyncio
class TestDiagnostics:
    def _use_case(self, auth, profiles, store=None):
        store = store or SessionStore(auth, ProfileFetcher(profiles))
        return RunDiagnosticsUseCase(SupabaseConfig(url=None, key="anon", disabled=True), auth, profiles, store)

    async def test_connection_ok(self, auth_backend, profile_repo):
        report = await self._use_case(InMemoryAuthGateway(auth_backend), profile_repo).execute()
        assert report.connection == "Connection OK"
        assert report.data_mode == "memory"
        assert report.supabase_url_set is False
        assert report.supabase_key_set is True
        assert report.missing == ["SUPABASE_URL"]
        assert report.user_id is None

    async def test_auth_error(self, profile_repo):
        auth = Mock()
        auth.get_session = AsyncMock(side_effect=AuthenticationError("bad key"))
        assert await self._use_case(auth, profile_repo).test_connection() == "Auth Error: bad key"

    async def test_rls_blocking(self, auth_backend):
        repo = Mock()
        repo.probe = AsyncMock(side_effect=ProfileAccessError("permission denied"))
        result = await self._use_case(InMemoryAuthGateway(auth_backend), repo).test_connection()
        assert result == "Connection OK (RLS blocking profiles)"

    async def test_profiles_error(self, auth_backend):
        repo = Mock()
        repo.probe = AsyncMock(side_effect=ProfileBackendError("relation missing"))
        result = await self._use_case(InMemoryAuthGateway(auth_backend), repo).test_connection()
        assert result == "Profiles Error: relation missing"

    async def test_reports_signed_in_user(self, auth_backend, profile_repo, identity):
        await profile_repo.insert(ProfileEntity(id=identity.id, email="ada@campus.edu", first_name="Ada", last_name="Lovelace"))
        store = SessionStore(Mock(), ProfileFetcher(profile_repo))
        await store.on_auth_state_changed(AuthEvent.SIGNED_IN, identity)

        report = await self._use_case(InMemoryAuthGateway(auth_backend), profile_repo, store).execute()

        assert report.user_id == identity.id
        assert report.user_email == "ada@campus.edu"
        assert report.profile_name == "Ada Lovelace"
        assert report.loading is False

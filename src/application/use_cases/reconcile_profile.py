from __future__ import annotations

import asyncio
import logging
import os
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable

from src.application.services.session_store import SessionStore
from src.application.use_cases.fetch_profile import ProfileFetcher
from src.domain.entities.identity import Identity
from src.domain.entities.profile import ProfileEntity, ProfileRole
from src.domain.entities.session import Notice, ProfileStatus, SessionState
from src.domain.exceptions import ProfileConflictError
from src.infrastructure.database.repositories.profile_repository import ProfileRepository

logger = logging.getLogger(__name__)

PROFILE_SETUP_REQUIRED = Notice(
    title="Profile Setup Required",
    description="Please complete your profile setup to continue.",
    level="error",
)


class ReconcileOutcome(str, Enum):
    CREATED = "created"
    ALREADY_EXISTS = "already_exists"
    CONFLICT = "conflict"  # another writer created it first
    SKIPPED = "skipped"  # lookup failed, nothing written
    FAILED = "failed"


def profile_from_identity(identity: Identity) -> ProfileEntity:
    """Initial profile built from the signup metadata stored on the identity."""
    return ProfileEntity(
        id=identity.id,
        email=identity.email or "",
        first_name=identity.meta("first_name") or "",
        last_name=identity.meta("last_name") or "",
        student_id=identity.meta("student_id"),
        major=identity.meta("major"),
        year=identity.meta("year"),
        role=ProfileRole.STUDENT,
    )


@dataclass
class ProfileReconciler:
    """
    Makes sure a signed-in identity ends up with exactly one profile row.

    A backend trigger normally creates the row at signup; this covers the case
    where it has not run (yet). The settle delay gives the trigger a head start,
    but duplicate creation is prevented by the unique key on ``profiles.id``:
    losing the insert race is reported as CONFLICT and treated as success.
    """

    fetcher: ProfileFetcher
    profiles: ProfileRepository
    store: SessionStore | None = None
    settle_delay: float | None = None
    notify: Callable[[Notice], None] | None = None
    notices: list[Notice] = field(default_factory=list)

    def __post_init__(self) -> None:
        if self.settle_delay is None:
            self.settle_delay = float(os.getenv("PROFILE_SETTLE_DELAY_SECONDS", "1"))
        self._scheduled: dict[str, asyncio.Task] = {}
        self._unsubscribe: Callable[[], None] | None = None

    def _emit(self, notice: Notice) -> None:
        self.notices.append(notice)
        if self.notify is not None:
            self.notify(notice)

    async def _refresh_store(self) -> None:
        if self.store is not None:
            await self.store.refresh_profile()

    async def reconcile(self, identity: Identity) -> ReconcileOutcome:
        if self.settle_delay:
            await asyncio.sleep(self.settle_delay)

        lookup = await self.fetcher.fetch(identity.id)
        if lookup.status is ProfileStatus.FOUND:
            logger.info(f"Profile for user {identity.id} already exists, skipping creation")
            await self._refresh_store()
            return ReconcileOutcome.ALREADY_EXISTS
        if lookup.status is ProfileStatus.ERROR:
            logger.warning(f"Not creating profile for user {identity.id}, lookup failed: {lookup.reason}")
            return ReconcileOutcome.SKIPPED

        return await self.create_profile(identity)

    async def create_profile(self, identity: Identity) -> ReconcileOutcome:
        try:
            await self.profiles.insert(profile_from_identity(identity))
        except ProfileConflictError:
            logger.info(f"Profile for user {identity.id} was created by another writer")
            outcome = ReconcileOutcome.CONFLICT
        except Exception as exc:
            logger.error(f"Profile creation failed for user {identity.id}: {exc}")
            self._emit(PROFILE_SETUP_REQUIRED)
            return ReconcileOutcome.FAILED
        else:
            logger.info(f"Profile created for user {identity.id}")
            outcome = ReconcileOutcome.CREATED

        await self._refresh_store()
        return outcome

    def attach(self, store: SessionStore) -> None:
        """Watch a store and reconcile whenever it reports a missing profile."""
        self.store = store
        self._unsubscribe = store.subscribe(self._on_session)

    def _on_session(self, state: SessionState) -> None:
        if not state.needs_profile:
            return
        identity = state.identity
        if identity.id in self._scheduled:
            return
        task = asyncio.get_running_loop().create_task(self.reconcile(identity))
        self._scheduled[identity.id] = task
        task.add_done_callback(lambda _t, key=identity.id: self._scheduled.pop(key, None))

    async def wait_idle(self) -> None:
        while self._scheduled:
            await asyncio.gather(*list(self._scheduled.values()), return_exceptions=True)

    async def aclose(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        await self.wait_idle()

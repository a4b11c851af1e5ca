from __future__ import annotations

import logging
from dataclasses import dataclass

from src.application.services.session_store import SessionStore
from src.domain.entities.profile import ACADEMIC_YEARS, ProfileEntity, ProfileRole
from src.domain.entities.session import Notice
from src.domain.exceptions import AuthenticationError, ProfileError, ProfileValidationError
from src.infrastructure.database.repositories.profile_repository import ProfileRepository

logger = logging.getLogger(__name__)

PROFILE_UPDATED = Notice(title="Profile Updated!", description="Your profile has been successfully updated.")


@dataclass(frozen=True)
class ProfileSetupForm:
    student_id: str = ""
    major: str = ""
    year: str = ""
    bio: str = ""


@dataclass
class CompleteProfileSetupUseCase:
    """
    Manual fallback for users whose profile could not be created automatically.

    If the session has no profile loaded, an insert is attempted first; it may
    fail because the row exists but was not loaded, so the upsert on ``id``
    that follows is what actually persists the form.
    """

    profiles: ProfileRepository
    store: SessionStore

    async def execute(self, form: ProfileSetupForm) -> ProfileEntity:
        """
        Raises:
            AuthenticationError: Nobody is signed in.
            ProfileValidationError: Unknown academic year.
            ProfileError: The final upsert was rejected.
        """
        state = self.store.state
        identity = state.identity
        if identity is None:
            raise AuthenticationError("You must be logged in to complete your profile.")
        if form.year and form.year not in ACADEMIC_YEARS:
            raise ProfileValidationError(f"Year must be one of: {', '.join(ACADEMIC_YEARS)}")

        current = state.profile
        record = ProfileEntity(
            id=identity.id,
            email=identity.email or "",
            first_name=current.first_name if current else identity.meta("first_name") or "",
            last_name=current.last_name if current else identity.meta("last_name") or "",
            student_id=form.student_id or None,
            major=form.major or None,
            year=form.year or None,
            bio=form.bio or None,
            avatar_url=current.avatar_url if current else None,
            role=current.role if current else ProfileRole.STUDENT,
        )

        if current is None:
            try:
                await self.profiles.insert(record)
            except ProfileError as exc:
                logger.warning(f"Profile insert during setup failed for {identity.id}, upserting: {exc}")

        saved = await self.profiles.upsert(record)
        await self.store.refresh_profile()
        return saved

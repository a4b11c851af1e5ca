from __future__ import annotations

import logging
from dataclasses import dataclass

from src.application.ports import AuthGateway
from src.domain.entities.identity import Identity
from src.domain.entities.profile import ACADEMIC_YEARS
from src.domain.exceptions import ProfileError, ProfileNotFoundError, RegistrationError
from src.infrastructure.database.repositories.profile_repository import ProfileRepository

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 6


@dataclass(frozen=True)
class RegistrationForm:
    email: str
    password: str
    confirm_password: str
    first_name: str = ""
    last_name: str = ""
    student_id: str = ""
    major: str = ""
    year: str = ""

    def metadata(self) -> dict[str, str]:
        return {
            "first_name": self.first_name,
            "last_name": self.last_name,
            "student_id": self.student_id,
            "major": self.major,
            "year": self.year,
        }


@dataclass
class RegisterUserUseCase:
    auth: AuthGateway
    profiles: ProfileRepository

    @staticmethod
    def validate(form: RegistrationForm) -> None:
        if form.password != form.confirm_password:
            raise RegistrationError("Password Mismatch", "Passwords do not match. Please try again.")
        if len(form.password) < MIN_PASSWORD_LENGTH:
            raise RegistrationError(
                "Password Too Short",
                f"Password must be at least {MIN_PASSWORD_LENGTH} characters long.",
            )
        if form.year and form.year not in ACADEMIC_YEARS:
            raise RegistrationError("Invalid Year", f"Year must be one of: {', '.join(ACADEMIC_YEARS)}.")

    async def execute(self, form: RegistrationForm) -> Identity:
        """
        Sign the user up with their details stored as signup metadata.

        The profile row itself is created by the backend trigger or, failing
        that, by the profile reconciler on first sign-in. If the trigger has
        already run, the student fields are copied onto the row here; any
        failure of that step is logged and ignored.

        Raises:
            RegistrationError: Invalid form or signup rejected by the backend.
        """
        self.validate(form)
        logger.info(f"Attempting registration for {form.email}")
        identity = await self.auth.sign_up(form.email, form.password, form.metadata())
        if identity is None:
            raise RegistrationError("Registration Failed", "The auth service did not return a user.")

        details = {
            "student_id": form.student_id or None,
            "major": form.major or None,
            "year": form.year or None,
        }
        try:
            await self.profiles.update_details(identity.id, details)
        except ProfileNotFoundError:
            logger.info(f"No profile row yet for new user {identity.id}, it will be created on sign-in")
        except ProfileError as exc:
            logger.warning(f"Profile update after signup failed for {identity.id}: {exc}")
        return identity

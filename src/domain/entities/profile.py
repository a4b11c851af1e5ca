from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum

ACADEMIC_YEARS = ("freshman", "sophomore", "junior", "senior", "graduate")


class ProfileRole(str, Enum):
    STUDENT = "student"
    TUTOR = "tutor"
    ADMIN = "admin"


@dataclass(frozen=True)
class ProfileEntity:
    id: str  # same as the auth user id
    email: str
    first_name: str = ""
    last_name: str = ""
    student_id: str | None = None
    major: str | None = None
    year: str | None = None
    bio: str | None = None
    avatar_url: str | None = None
    role: ProfileRole = ProfileRole.STUDENT
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def is_complete(self) -> bool:
        return bool(self.student_id and self.major and self.year)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    def to_record(self) -> dict:
        """Row payload for the profiles table (timestamps are set by the backend)."""
        return {
            "id": self.id,
            "email": self.email,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "student_id": self.student_id,
            "major": self.major,
            "year": self.year,
            "bio": self.bio,
            "avatar_url": self.avatar_url,
            "role": self.role.value,
        }

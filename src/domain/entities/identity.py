from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

SIGNUP_METADATA_FIELDS = ("first_name", "last_name", "student_id", "major", "year")


@dataclass(frozen=True)
class Identity:
    id: str  # issued by the auth backend, never changes
    email: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def meta(self, key: str) -> str | None:
        """Signup metadata value, with empty strings treated as missing."""
        value = self.metadata.get(key)
        if value is None or value == "":
            return None
        return str(value)


@dataclass(frozen=True)
class AuthSession:
    access_token: str
    refresh_token: str | None
    identity: Identity

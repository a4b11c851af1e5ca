from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from src.domain.entities.identity import Identity
from src.domain.entities.profile import ProfileEntity


class AuthEvent(str, Enum):
    INITIAL_SESSION = "INITIAL_SESSION"
    SIGNED_IN = "SIGNED_IN"
    SIGNED_OUT = "SIGNED_OUT"
    TOKEN_REFRESHED = "TOKEN_REFRESHED"
    USER_UPDATED = "USER_UPDATED"


class ProfileStatus(str, Enum):
    NONE = "none"  # no identity, nothing looked up
    FOUND = "found"
    NOT_FOUND = "not_found"
    ERROR = "error"


@dataclass(frozen=True)
class Notice:
    title: str
    description: str
    level: str = "info"  # "info" | "error"


@dataclass(frozen=True)
class SessionState:
    identity: Identity | None = None
    profile: ProfileEntity | None = None
    profile_status: ProfileStatus = ProfileStatus.NONE
    loading: bool = True
    notice: Notice | None = None

    def __post_init__(self) -> None:
        if self.identity is None and (
            self.profile is not None or self.profile_status is not ProfileStatus.NONE
        ):
            raise ValueError("Session without identity cannot carry a profile")
        if self.profile is not None and self.profile.id != self.identity.id:
            raise ValueError("Profile does not belong to the session identity")

    @property
    def is_authenticated(self) -> bool:
        return self.identity is not None

    @property
    def needs_profile(self) -> bool:
        return (
            self.identity is not None
            and not self.loading
            and self.profile_status is ProfileStatus.NOT_FOUND
        )

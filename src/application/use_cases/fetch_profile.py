from __future__ import annotations

import logging
from dataclasses import dataclass

from src.domain.entities.profile import ProfileEntity
from src.domain.entities.session import ProfileStatus
from src.domain.exceptions import ProfileAccessError, ProfileError, ProfileNotFoundError
from src.infrastructure.database.repositories.profile_repository import ProfileRepository

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProfileLookup:
    status: ProfileStatus
    profile: ProfileEntity | None = None
    reason: str | None = None

    @classmethod
    def found(cls, profile: ProfileEntity) -> ProfileLookup:
        return cls(ProfileStatus.FOUND, profile=profile)

    @classmethod
    def not_found(cls) -> ProfileLookup:
        return cls(ProfileStatus.NOT_FOUND)

    @classmethod
    def transient(cls, reason: str) -> ProfileLookup:
        return cls(ProfileStatus.ERROR, reason=reason)

    @property
    def is_not_found(self) -> bool:
        return self.status is ProfileStatus.NOT_FOUND


@dataclass
class ProfileFetcher:
    """Read-only profile lookup that tells 'no row yet' apart from backend failures.

    Only a NOT_FOUND result may lead to profile creation. Permission and other
    backend failures come back as ERROR so callers never write on an ambiguous
    answer.
    """

    profiles: ProfileRepository

    async def fetch(self, identity_id: str) -> ProfileLookup:
        try:
            profile = await self.profiles.get(identity_id)
        except ProfileNotFoundError:
            logger.info(f"Profile does not exist yet for user {identity_id}")
            return ProfileLookup.not_found()
        except ProfileAccessError as exc:
            logger.warning(f"Profile read rejected for user {identity_id}: {exc}")
            return ProfileLookup.transient(f"permission: {exc}")
        except ProfileError as exc:
            logger.warning(f"Profile fetch failed for user {identity_id}: {exc}")
            return ProfileLookup.transient(str(exc))
        except Exception as exc:
            logger.exception(f"Unexpected error fetching profile for user {identity_id}")
            return ProfileLookup.transient(str(exc))
        return ProfileLookup.found(profile)

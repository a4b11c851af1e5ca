from __future__ import annotations

import asyncio
import os
from dataclasses import replace
from datetime import UTC, datetime
from typing import Any

from postgrest.exceptions import APIError
from supabase import AsyncClient

from src.domain.entities.profile import ProfileEntity, ProfileRole
from src.domain.exceptions import (
    ProfileAccessError,
    ProfileBackendError,
    ProfileConflictError,
    ProfileError,
    ProfileNotFoundError,
)
from src.infrastructure.database.postgres_client import get_postgres_client

# Columns a caller may change through update_details
UPDATABLE_FIELDS = ("first_name", "last_name", "student_id", "major", "year", "bio", "avatar_url")

_COLUMNS = (
    "id", "email", "first_name", "last_name", "student_id",
    "major", "year", "bio", "avatar_url", "role",
)

# module-level in-memory store for disabled mode
_MEM_PROFILES: dict[str, ProfileEntity] = {}


def translate_api_error(exc: APIError) -> ProfileError:
    """Classify a PostgREST error the way the profile fetch path needs it."""
    code = str(exc.code or "")
    message = str(exc.message or "")
    lowered = message.lower()
    if code == "PGRST116" and "relation" not in lowered:
        return ProfileNotFoundError(message or "No rows found")
    if code == "23505" or "duplicate key" in lowered:
        return ProfileConflictError(message)
    if code in ("PGRST301", "42501") or "jwt" in lowered or "permission denied" in lowered:
        return ProfileAccessError(message)
    return ProfileBackendError(f"{code}: {message}" if code else message)


class ProfileRepository:
    def __init__(self, client: AsyncClient | None, memory: dict[str, ProfileEntity] | None = None) -> None:
        self.client = client
        self.disabled = os.getenv("SUPABASE_DISABLED", "0") == "1"
        self.use_local_db = os.getenv("USE_LOCAL_DB", "0") == "1"
        self.pg_client = get_postgres_client() if self.use_local_db else None
        self._mem = _MEM_PROFILES if memory is None else memory

    @property
    def _in_memory(self) -> bool:
        return not (self.use_local_db and self.pg_client) and (self.disabled or self.client is None)

    @property
    def mode(self) -> str:
        if self.use_local_db and self.pg_client:
            return "local_db"
        return "memory" if self._in_memory else "supabase"

    def _row_to_entity(self, row: dict) -> ProfileEntity:
        """Convert database row to ProfileEntity."""
        created_at = row.get("created_at")
        if isinstance(created_at, str):
            created_at = datetime.fromisoformat(created_at)
        updated_at = row.get("updated_at")
        if isinstance(updated_at, str):
            updated_at = datetime.fromisoformat(updated_at)

        return ProfileEntity(
            id=row["id"],
            email=row.get("email") or "",
            first_name=row.get("first_name") or "",
            last_name=row.get("last_name") or "",
            student_id=row.get("student_id"),
            major=row.get("major"),
            year=row.get("year"),
            bio=row.get("bio"),
            avatar_url=row.get("avatar_url"),
            role=ProfileRole(row.get("role") or ProfileRole.STUDENT.value),
            created_at=created_at,
            updated_at=updated_at,
        )

    async def get(self, user_id: str) -> ProfileEntity:
        """Fetch one profile.

        Raises:
            ProfileNotFoundError: No row with this id.
            ProfileAccessError: The backend rejected the read.
            ProfileBackendError: Any other backend failure.
        """
        # PostgreSQL mode
        if self.use_local_db and self.pg_client:
            row = await asyncio.to_thread(
                self.pg_client.fetch_one, "SELECT * FROM profiles WHERE id = %s", (user_id,)
            )
            if row is None:
                raise ProfileNotFoundError(f"No profile for {user_id}")
            return self._row_to_entity(row)

        # In-memory mode
        if self._in_memory:
            entity = self._mem.get(user_id)
            if entity is None:
                raise ProfileNotFoundError(f"No profile for {user_id}")
            return entity

        # Supabase mode
        try:  # pragma: no cover - network
            res = await self.client.table("profiles").select("*").eq("id", user_id).limit(1).execute()
        except APIError as exc:
            raise translate_api_error(exc) from exc
        except Exception as exc:
            raise ProfileBackendError(f"DB get profile failed: {exc}") from exc
        if not res.data:
            raise ProfileNotFoundError(f"No profile for {user_id}")
        return self._row_to_entity(res.data[0])

    async def insert(self, profile: ProfileEntity) -> ProfileEntity:
        """Insert a new profile row.

        Raises:
            ProfileConflictError: A row with this id already exists.
        """
        record = profile.to_record()

        # PostgreSQL mode
        if self.use_local_db and self.pg_client:
            query = f"""
                INSERT INTO profiles ({", ".join(_COLUMNS)}, created_at, updated_at)
                VALUES ({", ".join(["%s"] * len(_COLUMNS))}, CURRENT_TIMESTAMP, CURRENT_TIMESTAMP)
                RETURNING *
            """
            row = await asyncio.to_thread(
                self.pg_client.fetch_one, query, tuple(record[c] for c in _COLUMNS)
            )
            return self._row_to_entity(row)

        # In-memory mode
        if self._in_memory:
            if profile.id in self._mem:
                raise ProfileConflictError(f"Profile already exists: {profile.id}")
            now = datetime.now(UTC)
            entity = replace(profile, created_at=now, updated_at=now)
            self._mem[profile.id] = entity
            return entity

        # Supabase mode
        try:  # pragma: no cover - network
            res = await self.client.table("profiles").insert(record).execute()
        except APIError as exc:
            raise translate_api_error(exc) from exc
        except Exception as exc:
            raise ProfileBackendError(f"DB insert profile failed: {exc}") from exc
        return self._row_to_entity(res.data[0]) if res.data else profile

    async def upsert(self, profile: ProfileEntity) -> ProfileEntity:
        """Insert or overwrite the profile row, resolving conflicts on id."""
        record = profile.to_record()

        # PostgreSQL mode
        if self.use_local_db and self.pg_client:
            assignments = ", ".join(f"{c} = EXCLUDED.{c}" for c in _COLUMNS if c != "id")
            query = f"""
                INSERT INTO profiles ({", ".join(_COLUMNS)}, created_at, updated_at)
                VALUES ({", ".join(["%s"] * len(_COLUMNS))}, CURRENT_TIMESTAMP, CURRENT_TIMESTAMP)
                ON CONFLICT (id) DO UPDATE SET {assignments}, updated_at = CURRENT_TIMESTAMP
                RETURNING *
            """
            row = await asyncio.to_thread(
                self.pg_client.fetch_one, query, tuple(record[c] for c in _COLUMNS)
            )
            return self._row_to_entity(row)

        # In-memory mode
        if self._in_memory:
            now = datetime.now(UTC)
            current = self._mem.get(profile.id)
            created_at = current.created_at if current else now
            entity = replace(profile, created_at=created_at, updated_at=now)
            self._mem[profile.id] = entity
            return entity

        # Supabase mode
        try:  # pragma: no cover - network
            res = await self.client.table("profiles").upsert(record, on_conflict="id").execute()
        except APIError as exc:
            raise translate_api_error(exc) from exc
        except Exception as exc:
            raise ProfileBackendError(f"DB upsert profile failed: {exc}") from exc
        return self._row_to_entity(res.data[0]) if res.data else profile

    async def update_details(self, user_id: str, fields: dict[str, Any]) -> ProfileEntity:
        """Update a subset of columns on an existing row.

        Raises:
            ProfileNotFoundError: No row with this id.
            ValueError: A field outside UPDATABLE_FIELDS was given.
        """
        unknown = set(fields) - set(UPDATABLE_FIELDS)
        if unknown:
            raise ValueError(f"Unsupported profile fields: {sorted(unknown)}")
        if not fields:
            return await self.get(user_id)

        # PostgreSQL mode
        if self.use_local_db and self.pg_client:
            assignments = ", ".join(f"{name} = %s" for name in fields)
            query = f"""
                UPDATE profiles SET {assignments}, updated_at = CURRENT_TIMESTAMP
                WHERE id = %s
                RETURNING *
            """
            row = await asyncio.to_thread(
                self.pg_client.fetch_one, query, (*fields.values(), user_id)
            )
            if row is None:
                raise ProfileNotFoundError(f"No profile for {user_id}")
            return self._row_to_entity(row)

        # In-memory mode
        if self._in_memory:
            current = self._mem.get(user_id)
            if current is None:
                raise ProfileNotFoundError(f"No profile for {user_id}")
            updated = replace(current, **fields, updated_at=datetime.now(UTC))
            self._mem[user_id] = updated
            return updated

        # Supabase mode
        try:  # pragma: no cover - network
            res = await self.client.table("profiles").update(fields).eq("id", user_id).execute()
        except APIError as exc:
            raise translate_api_error(exc) from exc
        except Exception as exc:
            raise ProfileBackendError(f"DB update profile failed: {exc}") from exc
        if not res.data:
            raise ProfileNotFoundError(f"No profile for {user_id}")
        return self._row_to_entity(res.data[0])

    async def probe(self) -> None:
        """Read at most one row to check that the profiles table is reachable."""
        # PostgreSQL mode
        if self.use_local_db and self.pg_client:
            await asyncio.to_thread(self.pg_client.fetch_one, "SELECT id FROM profiles LIMIT 1")
            return

        # In-memory mode
        if self._in_memory:
            return

        # Supabase mode
        try:  # pragma: no cover - network
            await self.client.table("profiles").select("id").limit(1).execute()
        except APIError as exc:
            raise translate_api_error(exc) from exc
        except Exception as exc:
            raise ProfileBackendError(f"DB probe failed: {exc}") from exc

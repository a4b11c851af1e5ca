from __future__ import annotations

import logging
from dataclasses import dataclass

from src.application.ports import AuthGateway
from src.application.services.session_store import SessionStore
from src.domain.exceptions import ProfileAccessError
from src.infrastructure.database.repositories.profile_repository import ProfileRepository
from src.infrastructure.database.supabase_client import SupabaseConfig

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DiagnosticsReport:
    supabase_url_set: bool
    supabase_key_set: bool
    missing: list[str]
    data_mode: str
    connection: str
    loading: bool
    user_id: str | None
    user_email: str | None
    profile_name: str | None


@dataclass
class RunDiagnosticsUseCase:
    config: SupabaseConfig
    auth: AuthGateway
    profiles: ProfileRepository
    store: SessionStore

    async def test_connection(self) -> str:
        try:
            await self.auth.get_session()
        except Exception as exc:
            return f"Auth Error: {exc}"
        try:
            await self.profiles.probe()
        except ProfileAccessError:
            # reachable, row-level security just hides the rows
            return "Connection OK (RLS blocking profiles)"
        except Exception as exc:
            logger.warning(f"Profiles probe failed: {exc}")
            return f"Profiles Error: {exc}"
        return "Connection OK"

    async def execute(self) -> DiagnosticsReport:
        missing = self.config.missing()
        if missing:
            logger.warning(f"Supabase configuration incomplete, missing {missing}")
        state = self.store.state
        return DiagnosticsReport(
            supabase_url_set=bool(self.config.url),
            supabase_key_set=bool(self.config.key),
            missing=missing,
            data_mode=self.profiles.mode,
            connection=await self.test_connection(),
            loading=state.loading,
            user_id=state.identity.id if state.identity else None,
            user_email=state.identity.email if state.identity else None,
            profile_name=state.profile.full_name if state.profile else None,
        )

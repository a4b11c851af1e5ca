from __future__ import annotations

from dataclasses import asdict

from fastapi import APIRouter, Depends

from src.application.dtos.session_dto import DiagnosticsResponse
from src.application.services.session_store import SessionStore
from src.application.use_cases.run_diagnostics import RunDiagnosticsUseCase
from src.infrastructure.api.dependencies import RequestBackend, get_backend, get_session_store
from src.infrastructure.database.supabase_client import SupabaseConfig

router = APIRouter(prefix="/debug", tags=["Diagnostics"])


@router.get(
    "",
    response_model=DiagnosticsResponse,
    summary="Configuration Diagnostics",
    description="""
    Report whether the Supabase URL and public key are configured, which data
    backend is in use, whether the auth and profiles endpoints answer, and the
    caller's session summary. Never fails because of missing configuration.
    """,
)
async def diagnostics(
    backend: RequestBackend = Depends(get_backend),
    store: SessionStore = Depends(get_session_store),
):
    """Run configuration and connectivity checks."""
    report = await RunDiagnosticsUseCase(
        SupabaseConfig.from_env(), backend.auth, backend.profiles, store
    ).execute()
    return DiagnosticsResponse(**asdict(report))

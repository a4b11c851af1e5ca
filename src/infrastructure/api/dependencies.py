from __future__ import annotations

from dataclasses import dataclass
from typing import Annotated

from fastapi import Depends, Request

from src.application.ports import AuthGateway
from src.application.services.session_store import SessionStore
from src.application.use_cases.fetch_profile import ProfileFetcher
from src.application.use_cases.reconcile_profile import ProfileReconciler
from src.domain.entities.identity import AuthSession
from src.infrastructure.auth.memory_auth import InMemoryAuthGateway
from src.infrastructure.auth.supabase_auth import SupabaseAuthGateway
from src.infrastructure.database.repositories.profile_repository import ProfileRepository
from src.infrastructure.database.supabase_client import SupabaseConfig, create_request_client


@dataclass
class RequestBackend:
    auth: AuthGateway
    profiles: ProfileRepository


async def get_guard_gateway() -> AuthGateway:
    """Gateway used by the route guard to validate and refresh tokens."""
    if SupabaseConfig.from_env().enabled:
        return SupabaseAuthGateway(await create_request_client())
    return InMemoryAuthGateway()


def get_request_session(request: Request) -> AuthSession | None:
    return getattr(request.state, "auth_session", None)


async def get_backend(request: Request) -> RequestBackend:
    """Auth gateway and profile repository acting as the caller for this request."""
    session = get_request_session(request)
    if SupabaseConfig.from_env().enabled:
        client = await create_request_client(session.access_token if session else None)
        return RequestBackend(SupabaseAuthGateway(client, session=session), ProfileRepository(client))
    return RequestBackend(InMemoryAuthGateway(session=session), ProfileRepository(None))


async def get_session_store(
    backend: Annotated[RequestBackend, Depends(get_backend)],
) -> SessionStore:
    store = SessionStore(backend.auth, ProfileFetcher(backend.profiles))
    await store.initialize()
    return store


def get_reconciler(
    backend: Annotated[RequestBackend, Depends(get_backend)],
    store: Annotated[SessionStore, Depends(get_session_store)],
) -> ProfileReconciler:
    return ProfileReconciler(ProfileFetcher(backend.profiles), backend.profiles, store=store)

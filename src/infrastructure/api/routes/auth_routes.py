from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Response, status

from src.application.dtos.common_dto import ErrorResponse
from src.application.dtos.session_dto import (
    LoginRequest,
    LoginResponse,
    RegisterRequest,
    RegisterResponse,
    SessionResponse,
)
from src.application.services.session_store import SessionStore
from src.application.use_cases.reconcile_profile import ProfileReconciler
from src.application.use_cases.register_user import RegisterUserUseCase, RegistrationForm
from src.domain.exceptions import AuthenticationError, RegistrationError
from src.infrastructure.api.dependencies import (
    RequestBackend,
    get_backend,
    get_reconciler,
    get_session_store,
)
from src.infrastructure.api.route_guard import clear_session_cookies, set_session_cookies

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/auth",
    tags=["Authentication"],
    responses={
        401: {"model": ErrorResponse, "description": "Unauthorized - Invalid credentials or session"},
        422: {"description": "Validation Error - Invalid request format"},
    },
)


@router.post(
    "/register",
    response_model=RegisterResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Register Account",
    description="""
    Create an account with the auth backend.

    Name, student id, major and year are stored as signup metadata; the
    profile row is created from them by the backend trigger or, failing that,
    on the first session lookup after sign-in.

    **Authentication required**: No
    """,
    responses={400: {"model": ErrorResponse, "description": "Bad Request - Invalid form or signup rejected"}},
)
async def register(body: RegisterRequest, backend: RequestBackend = Depends(get_backend)):
    """Register a new user."""
    form = RegistrationForm(**body.model_dump())
    try:
        identity = await RegisterUserUseCase(backend.auth, backend.profiles).execute(form)
    except RegistrationError as exc:
        raise HTTPException(status_code=400, detail=f"{exc.title}: {exc.description}")
    return {
        "user_id": identity.id,
        "email": identity.email,
        "message": "Your account has been created successfully. Please check your email to verify your account.",
    }


@router.post(
    "/login",
    response_model=LoginResponse,
    status_code=status.HTTP_200_OK,
    summary="Sign In",
    description="""
    Sign in with email and password. The session tokens are returned and also
    set as HTTP-only cookies, which the route guard refreshes on later requests.

    **Authentication required**: No
    """,
)
async def login(body: LoginRequest, response: Response, backend: RequestBackend = Depends(get_backend)):
    """Sign in with a password."""
    try:
        session = await backend.auth.sign_in(body.email, body.password)
    except AuthenticationError as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(exc))
    set_session_cookies(response, session)
    return {
        "user_id": session.identity.id,
        "email": session.identity.email,
        "access_token": session.access_token,
        "refresh_token": session.refresh_token,
    }


@router.post(
    "/logout",
    response_model=SessionResponse,
    status_code=status.HTTP_200_OK,
    summary="Sign Out",
    description="""
    Sign out on the auth backend and clear the session cookies. The local
    session is cleared even when the backend call fails; a notice reports it.
    """,
)
async def logout(response: Response, store: SessionStore = Depends(get_session_store)):
    """Sign the current user out."""
    state = await store.sign_out()
    clear_session_cookies(response)
    return SessionResponse.from_state(state)


@router.get(
    "/session",
    response_model=SessionResponse,
    status_code=status.HTTP_200_OK,
    summary="Get Current Session",
    description="""
    Resolve the caller's session: the signed-in user and their profile.

    When the user is signed in but has no profile row yet, the profile is
    created from the signup metadata before responding. If that fails the
    response carries a "Profile Setup Required" notice and the profile stays
    null until the setup form is submitted.
    """,
)
async def read_session(
    store: SessionStore = Depends(get_session_store),
    reconciler: ProfileReconciler = Depends(get_reconciler),
):
    """Get the current session, creating a missing profile on the way."""
    outcome = None
    if store.state.needs_profile:
        outcome = (await reconciler.reconcile(store.state.identity)).value
    return SessionResponse.from_state(store.state, notices=reconciler.notices, reconcile_outcome=outcome)

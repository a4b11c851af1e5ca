from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, status

from src.application.dtos.common_dto import ErrorResponse
from src.application.dtos.session_dto import (
    NoticeResponse,
    ProfileResponse,
    ProfileSetupRequest,
    ProfileSetupResponse,
)
from src.application.services.session_store import SessionStore
from src.application.use_cases.complete_profile_setup import (
    PROFILE_UPDATED,
    CompleteProfileSetupUseCase,
    ProfileSetupForm,
)
from src.domain.entities.session import ProfileStatus
from src.domain.exceptions import AuthenticationError, ProfileError, ProfileValidationError
from src.infrastructure.api.dependencies import RequestBackend, get_backend, get_session_store

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/profile",
    tags=["Profile"],
    responses={
        307: {"description": "Redirect - Not signed in, sent to /auth/login"},
        422: {"description": "Validation Error - Invalid request format"},
    },
)


@router.get(
    "",
    response_model=ProfileResponse,
    summary="Get Own Profile",
    responses={
        404: {"model": ErrorResponse, "description": "Not Found - Profile has not been created yet"},
        503: {"model": ErrorResponse, "description": "Service Unavailable - Profile could not be read, retry later"},
    },
)
async def get_profile(store: SessionStore = Depends(get_session_store)):
    """Get the signed-in user's profile."""
    state = store.state
    if state.identity is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
    if state.profile_status is ProfileStatus.NOT_FOUND:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Profile not found. Please complete your profile setup.",
        )
    if state.profile is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="We could not load your profile. Please try again.",
        )
    return ProfileResponse.from_entity(state.profile)


@router.post(
    "/setup",
    response_model=ProfileSetupResponse,
    status_code=status.HTTP_200_OK,
    summary="Complete Profile Setup",
    description="""
    Save student id, major, academic year and bio for the signed-in user,
    creating the profile row if it does not exist yet.

    **Request Requirements:**
    - Year must be one of freshman, sophomore, junior, senior, graduate, or empty
    - Empty fields are stored as null
    """,
    responses={400: {"model": ErrorResponse, "description": "Bad Request - Invalid form or update rejected"}},
)
async def complete_setup(
    body: ProfileSetupRequest,
    backend: RequestBackend = Depends(get_backend),
    store: SessionStore = Depends(get_session_store),
):
    """Submit the profile setup form."""
    use_case = CompleteProfileSetupUseCase(backend.profiles, store)
    try:
        profile = await use_case.execute(ProfileSetupForm(**body.model_dump()))
    except AuthenticationError as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(exc))
    except ProfileValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    except ProfileError as exc:
        logger.error(f"Profile setup failed: {exc}")
        raise HTTPException(status_code=400, detail=f"Update Failed: {exc}")
    return ProfileSetupResponse(
        profile=ProfileResponse.from_entity(profile),
        notice=NoticeResponse.from_notice(PROFILE_UPDATED),
    )

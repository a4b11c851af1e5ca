from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from src.domain.entities.identity import Identity
from src.domain.entities.profile import ProfileEntity
from src.domain.entities.session import Notice, SessionState


class UserResponse(BaseModel):
    """Authenticated user as issued by the auth backend."""
    id: str = Field(..., description="Unique identifier of the user")
    email: str | None = Field(None, description="Email address of the user", examples=["student@campus.edu"])

    @classmethod
    def from_identity(cls, identity: Identity) -> UserResponse:
        return cls(id=identity.id, email=identity.email)


class ProfileResponse(BaseModel):
    """Application profile stored in the profiles table."""
    id: str = Field(..., description="Profile id, equal to the user id")
    email: str = Field(..., description="Email address copied from the account")
    first_name: str = Field("", description="First name", examples=["Ada"])
    last_name: str = Field("", description="Last name", examples=["Lovelace"])
    student_id: str | None = Field(None, description="Student id number")
    major: str | None = Field(None, description="Field of study", examples=["Computer Science"])
    year: str | None = Field(None, description="Academic year", examples=["junior"])
    bio: str | None = Field(None, description="Short self description")
    avatar_url: str | None = Field(None, description="Public URL of the avatar image")
    role: str = Field(..., description="One of student, tutor, admin", examples=["student"])
    is_complete: bool = Field(..., description="True when student id, major and year are set")
    created_at: datetime | None = Field(None, description="ISO timestamp when the profile was created")
    updated_at: datetime | None = Field(None, description="ISO timestamp of the last profile change")

    @classmethod
    def from_entity(cls, profile: ProfileEntity) -> ProfileResponse:
        return cls(
            id=profile.id,
            email=profile.email,
            first_name=profile.first_name,
            last_name=profile.last_name,
            student_id=profile.student_id,
            major=profile.major,
            year=profile.year,
            bio=profile.bio,
            avatar_url=profile.avatar_url,
            role=profile.role.value,
            is_complete=profile.is_complete,
            created_at=profile.created_at,
            updated_at=profile.updated_at,
        )


class NoticeResponse(BaseModel):
    """User-visible message produced while resolving the session."""
    title: str = Field(..., examples=["Profile Setup Required"])
    description: str = Field(..., examples=["Please complete your profile setup to continue."])
    level: str = Field("info", description="info or error")

    @classmethod
    def from_notice(cls, notice: Notice) -> NoticeResponse:
        return cls(title=notice.title, description=notice.description, level=notice.level)


class SessionResponse(BaseModel):
    """Snapshot of the session store for the calling user."""
    user: UserResponse | None = Field(None, description="Signed-in user, null when signed out")
    profile: ProfileResponse | None = Field(None, description="Profile of the user, null when missing")
    profile_status: str = Field(..., description="none, found, not_found or error", examples=["found"])
    loading: bool = Field(..., description="Whether the session is still being resolved")
    reconcile_outcome: str | None = Field(
        None, description="Result of the profile reconciliation run for this request, if one ran"
    )
    notices: list[NoticeResponse] = Field(default_factory=list, description="Messages to show the user")

    @classmethod
    def from_state(
        cls,
        state: SessionState,
        notices: list[Notice] | None = None,
        reconcile_outcome: str | None = None,
    ) -> SessionResponse:
        collected = ([state.notice] if state.notice else []) + list(notices or [])
        return cls(
            user=UserResponse.from_identity(state.identity) if state.identity else None,
            profile=ProfileResponse.from_entity(state.profile) if state.profile else None,
            profile_status=state.profile_status.value,
            loading=state.loading,
            reconcile_outcome=reconcile_outcome,
            notices=[NoticeResponse.from_notice(n) for n in collected],
        )


class RegisterRequest(BaseModel):
    """Request model for account registration."""
    email: str = Field(..., min_length=3, max_length=320, examples=["student@campus.edu"])
    password: str = Field(..., description="At least 6 characters")
    confirm_password: str = Field(..., description="Must equal password")
    first_name: str = Field("", max_length=100)
    last_name: str = Field("", max_length=100)
    student_id: str = Field("", max_length=50)
    major: str = Field("", max_length=100)
    year: str = Field("", description="freshman, sophomore, junior, senior or graduate")


class RegisterResponse(BaseModel):
    """Response model for a successful registration."""
    user_id: str = Field(..., description="Identifier of the new user")
    email: str | None = Field(None, description="Registered email address")
    message: str = Field(..., description="Follow-up instructions for the user")


class LoginRequest(BaseModel):
    """Request model for password sign-in."""
    email: str = Field(..., min_length=3, max_length=320)
    password: str = Field(..., min_length=1)


class LoginResponse(BaseModel):
    """Response model for password sign-in; the tokens are also set as cookies."""
    user_id: str
    email: str | None = None
    access_token: str
    refresh_token: str | None = None


class ProfileSetupRequest(BaseModel):
    """Request model for the profile setup form."""
    student_id: str = Field("", max_length=50, description="Student id number")
    major: str = Field("", max_length=100, description="Field of study", examples=["Computer Science"])
    year: str = Field("", description="freshman, sophomore, junior, senior or graduate")
    bio: str = Field("", max_length=1000, description="Optional short bio")


class ProfileSetupResponse(BaseModel):
    """Response model for a saved profile setup form."""
    profile: ProfileResponse
    notice: NoticeResponse


class DiagnosticsResponse(BaseModel):
    """Configuration and connectivity report."""
    supabase_url_set: bool = Field(..., description="Whether SUPABASE_URL is set")
    supabase_key_set: bool = Field(..., description="Whether SUPABASE_ANON_KEY is set")
    missing: list[str] = Field(default_factory=list, description="Names of missing variables")
    data_mode: str = Field(..., description="supabase, local_db or memory")
    connection: str = Field(..., examples=["Connection OK"])
    loading: bool
    user_id: str | None = None
    user_email: str | None = None
    profile_name: str | None = None

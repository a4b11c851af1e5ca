"""Per-request session refresh and route gating.

Runs before every non-static request: validates the caller's access token,
exchanges an expired one for a new session when a refresh token is available,
then either lets the request through or redirects to the login page. Nothing
is kept between requests except the tokens written back as cookies.
"""
from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Callable
from urllib.parse import urlencode

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import RedirectResponse, Response

from src.application.ports import AuthGateway
from src.domain.entities.identity import AuthSession, Identity
from src.domain.exceptions import AuthenticationError

logger = logging.getLogger(__name__)

ACCESS_COOKIE = "sb-access-token"
REFRESH_COOKIE = "sb-refresh-token"
LOGIN_PATH = "/auth/login"

# Matched on whole path segments: "/profile" covers "/profile/setup" but not "/profiles"
PROTECTED_PREFIXES = ("/profile", "/materials/upload", "/tutoring/create", "/marketplace/create")
AUTH_ROUTES = ("/auth/login", "/auth/register")

_STATIC_PATH = re.compile(
    r"^/(?:static|_next)/|^/favicon\.ico$|\.(?:svg|png|jpe?g|gif|webp)$",
    re.IGNORECASE,
)


class RouteKind(str, Enum):
    STATIC = "static"
    PROTECTED = "protected"
    AUTH = "auth"
    PUBLIC = "public"


@dataclass(frozen=True)
class GuardDecision:
    allow: bool
    redirect_to: str | None = None


def _redirect_authenticated_default() -> bool:
    return os.getenv("AUTH_ROUTES_REDIRECT_AUTHENTICATED", "0") == "1"


@dataclass
class RouteGuard:
    protected_prefixes: tuple[str, ...] = PROTECTED_PREFIXES
    auth_routes: tuple[str, ...] = AUTH_ROUTES
    # Signed-in users may still open login/register unless this is switched on
    redirect_authenticated: bool = field(default_factory=_redirect_authenticated_default)

    def classify(self, path: str) -> RouteKind:
        if _STATIC_PATH.search(path):
            return RouteKind.STATIC
        if any(path == p or path.startswith(p + "/") for p in self.protected_prefixes):
            return RouteKind.PROTECTED
        if path in self.auth_routes:
            return RouteKind.AUTH
        return RouteKind.PUBLIC

    def evaluate(self, path: str, identity: Identity | None) -> GuardDecision:
        kind = self.classify(path)
        if kind is RouteKind.PROTECTED and identity is None:
            return GuardDecision(allow=False, redirect_to=f"{LOGIN_PATH}?{urlencode({'redirectTo': path})}")
        if kind is RouteKind.AUTH and identity is not None and self.redirect_authenticated:
            return GuardDecision(allow=False, redirect_to="/")
        return GuardDecision(allow=True)


def read_tokens(request: Request) -> tuple[str | None, str | None]:
    """Access and refresh token from the Authorization header or the session cookies."""
    access = None
    header = request.headers.get("authorization", "")
    scheme, _, credentials = header.partition(" ")
    if scheme.lower() == "bearer" and credentials:
        access = credentials.strip()
    return access or request.cookies.get(ACCESS_COOKIE), request.cookies.get(REFRESH_COOKIE)


def set_session_cookies(response: Response, session: AuthSession) -> None:
    secure = os.getenv("SESSION_COOKIE_SECURE", "0") == "1"
    response.set_cookie(ACCESS_COOKIE, session.access_token, httponly=True, samesite="lax", secure=secure)
    if session.refresh_token:
        response.set_cookie(REFRESH_COOKIE, session.refresh_token, httponly=True, samesite="lax", secure=secure)


def clear_session_cookies(response: Response) -> None:
    response.delete_cookie(ACCESS_COOKIE)
    response.delete_cookie(REFRESH_COOKIE)


def _sets_session_cookie(response: Response) -> bool:
    names = (f"{ACCESS_COOKIE}=", f"{REFRESH_COOKIE}=")
    return any(value.startswith(names) for value in response.headers.getlist("set-cookie"))


@dataclass(frozen=True)
class RefreshResult:
    identity: Identity | None = None
    session: AuthSession | None = None
    renewed: bool = False  # new tokens must be written back
    stale: bool = False  # tokens were sent but none of them is valid any more


async def refresh_request_session(
    access: str | None, refresh: str | None, auth: AuthGateway
) -> RefreshResult:
    if access:
        try:
            identity = await auth.get_user(access)
        except AuthenticationError as exc:
            logger.info(f"Access token rejected: {exc}")
            identity = None
        if identity is not None:
            return RefreshResult(identity=identity, session=AuthSession(access, refresh, identity))
    if refresh:
        try:
            session = await auth.refresh_session(refresh)
        except AuthenticationError as exc:
            logger.info(f"Refresh token rejected: {exc}")
            session = None
        if session is not None:
            return RefreshResult(identity=session.identity, session=session, renewed=True)
    return RefreshResult(stale=bool(access or refresh))


class RouteGuardMiddleware(BaseHTTPMiddleware):
    def __init__(
        self,
        app,
        auth_factory: Callable[[], Awaitable[AuthGateway]],
        guard: RouteGuard | None = None,
    ) -> None:
        super().__init__(app)
        self.auth_factory = auth_factory
        self.guard = guard or RouteGuard()

    async def dispatch(self, request: Request, call_next) -> Response:
        path = request.url.path
        if self.guard.classify(path) is RouteKind.STATIC:
            return await call_next(request)

        access, refresh = read_tokens(request)
        result = RefreshResult()
        if access or refresh:
            try:
                result = await refresh_request_session(access, refresh, await self.auth_factory())
            except Exception as exc:
                logger.error(f"Session refresh failed, treating request as signed out: {exc}")
        request.state.identity = result.identity
        request.state.auth_session = result.session

        decision = self.guard.evaluate(path, result.identity)
        if decision.allow:
            response = await call_next(request)
        else:
            logger.info(f"Redirecting {path} to {decision.redirect_to}")
            response = RedirectResponse(decision.redirect_to, status_code=307)

        if _sets_session_cookie(response):
            # the route already wrote the session cookies (login, logout), its values win
            return response
        if result.renewed and result.session is not None:
            set_session_cookies(response, result.session)
        elif result.stale:
            clear_session_cookies(response)
        return response

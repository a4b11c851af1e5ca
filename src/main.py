from __future__ import annotations

import logging
import os

from fastapi import FastAPI

from src.application.dtos.common_dto import HealthResponse, RootResponse
from src.infrastructure.api.middlewares import add_default_middlewares
from src.infrastructure.api.route_guard import RouteGuard
from src.infrastructure.api.routes.auth_routes import router as auth_router
from src.infrastructure.api.routes.diagnostics_routes import router as diagnostics_router
from src.infrastructure.api.routes.profile_routes import router as profile_router
from src.infrastructure.database.supabase_client import SupabaseConfig

logger = logging.getLogger(__name__)


def create_app(guard: RouteGuard | None = None) -> FastAPI:
    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO"),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    app = FastAPI(
        title="Campus Hub Backend",
        version="0.1.0",
        description="""
        ## Campus Hub Backend API

        Session and profile service for the Campus Hub student community, using
        Supabase for authentication and the profiles table.

        ### Features
        - **Authentication**: Registration, password sign-in and sign-out against Supabase
        - **Session**: Resolve the signed-in user together with their profile
        - **Profiles**: Missing profiles are created from signup metadata, once per user
        - **Route Guard**: Sessions are refreshed on every request; protected paths
          redirect to `/auth/login?redirectTo=...` when nobody is signed in
        - **Diagnostics**: Check configuration and backend connectivity at `/debug`

        ### Authentication
        Send the access token as a Bearer token or rely on the `sb-access-token` /
        `sb-refresh-token` cookies set by `/auth/login`:
        ```
        Authorization: Bearer your-jwt-token
        ```

        ### Error Responses
        - **307 Temporary Redirect**: Protected path requested without a session
        - **400 Bad Request**: Invalid form values or rejected update
        - **401 Unauthorized**: Missing or invalid credentials
        - **404 Not Found**: Profile does not exist yet
        - **503 Service Unavailable**: Profile backend rejected or failed the read
        """,
        license_info={
            "name": "MIT License",
            "url": "https://opensource.org/licenses/MIT",
        },
    )
    add_default_middlewares(app, guard=guard)

    missing = SupabaseConfig.from_env().missing()
    if missing and os.getenv("SUPABASE_DISABLED", "0") != "1":
        logger.warning(f"Supabase is not configured (missing {', '.join(missing)}), using in-memory backends")

    @app.get(
        "/",
        response_model=RootResponse,
        summary="API Root",
        description="Get basic information about the Campus Hub API",
    )
    def root():
        """Get API root information."""
        return {"status": "ok", "service": "campus-hub-backend", "version": app.version}

    @app.get(
        "/health",
        response_model=HealthResponse,
        summary="Health Check",
        description="Check if the API service is running and healthy",
    )
    def health():
        """Check API health status."""
        return {"status": "healthy"}

    app.include_router(auth_router)
    app.include_router(profile_router)
    app.include_router(diagnostics_router)
    return app


app = create_app()

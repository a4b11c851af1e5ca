from __future__ import annotations

import os

from fastapi import FastAPI
from starlette.middleware.cors import CORSMiddleware

from src.infrastructure.api.dependencies import get_guard_gateway
from src.infrastructure.api.route_guard import RouteGuard, RouteGuardMiddleware


def add_default_middlewares(app: FastAPI, guard: RouteGuard | None = None) -> None:
    # Route guard first so CORS wraps it and preflight requests never get redirected
    app.add_middleware(RouteGuardMiddleware, auth_factory=get_guard_gateway, guard=guard)

    env = os.getenv("ENV", "development")
    if env in ("development", "staging"):
        allowed_origins = [
            "http://localhost:3000",
            "http://localhost:3001",
            "http://127.0.0.1:3000",
            "http://127.0.0.1:3001",
        ]
    else:
        allowed_origins = [o.strip() for o in os.getenv("CORS_ORIGINS", "").split(",") if o.strip()]

    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

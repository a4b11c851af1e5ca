import os
import sys
import uuid
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

# Ensure project root is on sys.path so 'src' is importable during tests
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

os.environ.setdefault("SUPABASE_DISABLED", "1")
os.environ.setdefault("USE_LOCAL_DB", "0")
os.environ.setdefault("PROFILE_SETTLE_DELAY_SECONDS", "0")


@pytest.fixture()
def client() -> TestClient:
    # lazy import after env configured
    from src.main import create_app

    app = create_app()

    @app.get("/materials")
    def materials():
        return {"items": []}

    return TestClient(app)


@pytest.fixture()
def auth_backend():
    from src.infrastructure.auth.memory_auth import InMemoryAuthBackend

    return InMemoryAuthBackend()


@pytest.fixture()
def profile_repo():
    from src.infrastructure.database.repositories.profile_repository import ProfileRepository

    return ProfileRepository(None, memory={})


@pytest.fixture()
def identity():
    from src.domain.entities.identity import Identity

    return Identity(
        id=str(uuid.uuid4()),
        email="ada@campus.edu",
        metadata={
            "first_name": "Ada",
            "last_name": "Lovelace",
            "student_id": "S-1815",
            "major": "Mathematics",
            "year": "",
        },
    )


@pytest.fixture()
def new_email() -> str:
    return f"student-{uuid.uuid4().hex[:10]}@campus.edu"

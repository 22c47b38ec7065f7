"""
Test fixtures for StudySpark.

Provides app, client, auth_client, store and db fixtures with file-based
SQLite. Generative model SDKs are mocked globally to avoid API calls
during tests.
"""

from __future__ import annotations

import json
import pytest
from unittest.mock import patch, MagicMock
from datetime import datetime, timezone

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

TEST_USER_ID = "user-1"
OTHER_USER_ID = "user-2"
TEST_PASSWORD = "testpass123"


@pytest.fixture(scope="session", autouse=True)
def mock_gemini():
    """Mock Google Generative AI globally to prevent API calls."""
    mock_model = MagicMock()
    mock_model.generate_content.return_value = MagicMock(
        text=json.dumps({"answer": "Photosynthesis turns light into chemical energy."})
    )
    genai = MagicMock()
    genai.GenerativeModel.return_value = mock_model

    with patch.dict("sys.modules", {
        "google.generativeai": genai,
    }):
        yield mock_model


@pytest.fixture(autouse=True)
def reset_circuit_breaker():
    from ai_resilience import get_cache, get_circuit_breaker
    get_circuit_breaker().reset()
    get_cache().clear()
    yield


def _seed_user(uid: str, email: str, first: str, last: str) -> None:
    from werkzeug.security import generate_password_hash
    from database import get_db
    from db_stores import ProfileStore
    from extensions import get_store
    from models import UserProfile

    db = get_db()
    db.execute(
        "INSERT INTO users (id, email, password_hash, created_at) VALUES (?, ?, ?, ?)",
        (uid, email, generate_password_hash(TEST_PASSWORD), datetime.now(timezone.utc).isoformat()),
    )
    db.commit()
    ProfileStore(get_store()).create(UserProfile(
        uid=uid, email=email, first_name=first, last_name=last,
        profession="student", class_name="BSc CS", college_name="Test College",
    ))


@pytest.fixture
def app(tmp_path):
    """Create app with file-based SQLite for testing."""
    from app import create_app

    db_file = str(tmp_path / "test.db")
    app = create_app({
        "TESTING": True,
        "DATABASE": db_file,
        "SECRET_KEY": "test-secret-key",
        "STORE_BACKEND": "sqlite",
        "UPLOAD_DIR": str(tmp_path / "uploads"),
        "UPLOAD_BASE_URL": "/uploads",
        "AI_PROVIDER": "gemini",
        "GOOGLE_API_KEY": "test-key",
        "AI_CACHE_TTL": 0,
    })

    with app.app_context():
        from database import init_db, run_migrations

        init_db()
        run_migrations()

        # Seed test users
        _seed_user(TEST_USER_ID, "test@example.com", "Test", "Student")
        _seed_user(OTHER_USER_ID, "other@example.com", "Other", "Student")

    yield app

    app.extensions["sessions"].close_all()


@pytest.fixture
def client(app):
    """Unauthenticated test client."""
    return app.test_client()


def login(client, email="test@example.com", password=TEST_PASSWORD):
    return client.post("/login", json={"email": email, "password": password})


@pytest.fixture
def auth_client(app):
    """Authenticated test client (logged in as the test user)."""
    client = app.test_client()
    resp = login(client)
    assert resp.status_code == 200
    return client


@pytest.fixture
def other_client(app):
    """Authenticated test client for a second user."""
    client = app.test_client()
    resp = login(client, "other@example.com")
    assert resp.status_code == 200
    return client


@pytest.fixture
def db(app):
    """Direct database access for store tests."""
    with app.app_context():
        from database import get_db
        yield get_db()


@pytest.fixture
def store(app):
    """The document store, inside an app context."""
    with app.app_context():
        yield app.extensions["document_store"]

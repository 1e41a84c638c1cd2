import os
import tempfile

os.environ.setdefault("FINANCE_DATA_DIR", tempfile.mkdtemp(prefix="finance-tests-"))
os.environ.setdefault("FINANCE_DATABASE_URL", "sqlite://")
os.environ["FINANCE_BCRYPT_ROUNDS"] = "4"

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from config import get_settings  # noqa: E402

get_settings.cache_clear()

import models  # noqa: E402,F401
from database import Base  # noqa: E402
from main import app, get_db  # noqa: E402


def make_session_factory():
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


@pytest.fixture
def session_factory():
    return make_session_factory()


@pytest.fixture
def session(session_factory):
    db = session_factory()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def client(session_factory):
    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def auth_headers(client):
    def _login(username: str = "alice") -> dict[str, str]:
        client.post(
            "/api/auth/register",
            json={
                "username": username,
                "password": "p1",
                "email": f"{username}@x.com",
            },
        )
        response = client.post(
            "/api/auth/login", json={"username": username, "password": "p1"}
        )
        return {"Authorization": f"Bearer {response.json()['token']}"}

    return _login

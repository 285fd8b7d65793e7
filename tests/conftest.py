from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Callable

import pytest
from fastapi.testclient import TestClient


def pytest_configure() -> None:
    # Ensure the SQLAlchemy engine is created against sqlite for tests.
    os.environ["ORM_DB_URL"] = "sqlite:///./test.db"
    os.environ["ENVIRONMENT"] = "test"
    os.environ["ADMIN_EMAILS"] = '["admin@example.com"]'
    os.environ.setdefault("JWT_SECRET", "test-secret")


@pytest.fixture(autouse=True)
def reset_database() -> None:
    import app.models  # noqa: F401 - register tables
    from app.database import Base, engine

    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)


@pytest.fixture(autouse=True)
def storage_dir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    from app.config import settings

    root = tmp_path / "storage"
    monkeypatch.setattr(settings, "storage_dir", str(root))
    return root


@pytest.fixture()
def db() -> Any:
    from app.database import SessionLocal

    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def make_user(db) -> Callable[..., int]:
    """Create an account and run the post-authentication hook; returns the user id."""

    from app.models.user import User
    from app.services.identity import on_authenticated
    from app.utils.password_hash import hash_password

    def _make(email: str = "user@example.com") -> int:
        user = User(email=email, password=hash_password("SecretPass123"))
        db.add(user)
        db.commit()
        db.refresh(user)
        on_authenticated(db, user)
        return user.id

    return _make


@pytest.fixture()
def store_for(db) -> Callable[[int], Any]:
    from app.services.access_policy import Caller
    from app.services.profile_store import ProfileStore

    def _store(user_id: int) -> ProfileStore:
        return ProfileStore(db, Caller(user_id=user_id))

    return _store


@pytest.fixture()
def client() -> Any:
    from app.main import create_app

    app = create_app()
    with TestClient(app) as c:
        yield c


STEP1 = {
    "email": "a@x.com",
    "name": "Asha Rao",
    "contact": "9876543210",
    "gender": "female",
    "dob": "2000-01-01",
}

STEP2 = {
    "age": 24,
    "district": "Pune",
    "category": "OBC",
    "highest_qualification": "B.Sc.",
}

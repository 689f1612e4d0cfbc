import os
from typing import Generator

# Point the app module at a throwaway in-memory database before it is imported
os.environ.setdefault("DATABASE_URL", "sqlite://")

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from foneflow import crud, schemas, store
from foneflow.db import Base, enable_sqlite_foreign_keys
from foneflow.main import app, get_db
from foneflow.models import Role

from helpers import bearer


@pytest.fixture(scope="function")
def db_session() -> Generator:
    # Use in-memory SQLite with a single connection
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    enable_sqlite_foreign_keys(engine)
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine, future=True)
    Base.metadata.create_all(bind=engine)

    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        engine.dispose()


@pytest.fixture(autouse=True)
def no_leftover_listeners():
    yield
    store.clear_listeners()


@pytest.fixture(scope="function")
def client(db_session):
    # Override dependency to use the same session
    def override_get_db():
        try:
            yield db_session
        finally:
            pass
    app.dependency_overrides[get_db] = override_get_db
    from fastapi.testclient import TestClient
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def admin(db_session):
    return crud.create_user(
        db_session, schemas.UserCreate(name="Prince", email="admin@example.com", role=Role.admin, password="adminpass")
    )


@pytest.fixture
def admin_headers(admin):
    return bearer(admin)

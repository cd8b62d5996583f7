from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from docshare.api import deps
from docshare.core.config import Settings
from docshare.core.security import create_access_token
from docshare.db.base import Base
from docshare.models import Document, User
from docshare.services.notifier import RecordingNotifier

START = datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, now: datetime = START):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture()
def engine():
    engine = create_engine(
        "sqlite://",
        future=True,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        engine.dispose()


@pytest.fixture()
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False, future=True)


@pytest.fixture()
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture()
def notifier():
    return RecordingNotifier()


@pytest.fixture()
def settings(tmp_path):
    return Settings(file_root=str(tmp_path / "files"), public_app_url="https://docs.example.com")


def make_user(db, email: str) -> User:
    user = User(email=email)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def make_document(db, owner: User, file_name: str = "report.pdf") -> Document:
    document = Document(
        owner_user_id=owner.user_id,
        file_name=file_name,
        file_path=f"{owner.user_id}-{file_name}",
        mime_type="application/pdf",
        file_size_bytes=4,
    )
    db.add(document)
    db.commit()
    db.refresh(document)
    return document


@pytest.fixture()
def owner(db):
    return make_user(db, "owner@example.com")


@pytest.fixture()
def alice(db):
    return make_user(db, "alice@example.com")


@pytest.fixture()
def document(db, owner):
    return make_document(db, owner)


def auth_headers(user: User) -> dict:
    return {"Authorization": f"Bearer {create_access_token(user.user_id, user.email)}"}


@pytest.fixture()
def client(session_factory, clock, notifier, settings):
    from docshare.main import create_app

    app = create_app()

    def override_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[deps.get_db] = override_db
    app.dependency_overrides[deps.get_clock] = lambda: clock
    app.dependency_overrides[deps.get_notifier] = lambda: notifier
    app.dependency_overrides[deps.get_app_settings] = lambda: settings
    return TestClient(app)

import itertools
from datetime import date

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from src.api.auth import get_db, hash_password, issue_member_token, issue_user_token
from src.api.main import app
from src.api.membership import next_welin_id
from src.api.models import Base, GenderEnum, Member, User

engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)

_seq = itertools.count(1)


def override_get_db():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture(autouse=True)
def setup_database():
    Base.metadata.create_all(bind=engine)
    app.dependency_overrides[get_db] = override_get_db
    yield
    app.dependency_overrides.clear()
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db():
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def session_factory():
    return TestingSessionLocal


@pytest.fixture
def client():
    return TestClient(app)


@pytest.fixture
def make_user(db):
    def _make(role="vendor", password="secret123", is_active=True, vendor_id=None, email=None, mobile=None):
        n = next(_seq)
        user = User(
            name=f"{role.title()} {n}",
            email=email or f"{role}{n}@welin.in",
            mobile=mobile or f"9{n:09d}",
            hashed_password=hash_password(password),
            role=role,
            vendor_id=vendor_id,
            is_active=is_active,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user
    return _make


@pytest.fixture
def make_member(db):
    def _make(vendor, password="password", email=None, agent=None):
        n = next(_seq)
        member = Member(
            vendor_id=vendor.id,
            agent_id=agent.id if agent else None,
            welin_id=next_welin_id(db),
            member_name=f"Member {n}",
            contact_no=f"8{n:09d}",
            email=email if email is not None else f"member{n}@welin.in",
            hashed_password=hash_password(password),
            dob=date(1990, 5, 15),
            age=35,
            gender=GenderEnum.female,
            documents=[],
        )
        db.add(member)
        db.commit()
        db.refresh(member)
        return member
    return _make


def auth_headers(identity) -> dict:
    if isinstance(identity, Member):
        token = issue_member_token(identity)
    else:
        token = issue_user_token(identity)
    return {"Authorization": f"Bearer {token.access_token}"}


@pytest.fixture
def headers():
    return auth_headers

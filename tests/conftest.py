"""
Reserve Personnel API - Test Configuration and Fixtures
"""
import os
from typing import Generator
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool

# Set testing environment
os.environ['DATABASE_URL'] = 'sqlite://'
os.environ['JWT_SECRET'] = 'test-jwt-secret-for-testing-only'
os.environ['CELERY_TASK_ALWAYS_EAGER'] = 'true'
os.environ['SMTP_HOST'] = ''

from reserve_api.main import app
from reserve_api.db.base import Base
from reserve_api.db.session import get_db
from reserve_api.models.user import User, UserStatus
from reserve_api.models.account_request import AccountRequest, AccountStatus
from reserve_api.core.permissions import Role
from reserve_api.core.rate_limiter import limiter
from reserve_api.core.security import hash_password, create_access_token
from reserve_api.services.cache_service import cache_service

TEST_PASSWORD = 'correct-horse-battery'

test_engine = create_engine(
    'sqlite://',
    connect_args={'check_same_thread': False},
    poolclass=StaticPool,
)
TestSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=test_engine)


class FakeRedis:
    """In-memory stand-in for the handful of Redis calls the cache makes."""

    def __init__(self):
        self.store = {}

    def get(self, key):
        return self.store.get(key)

    def setex(self, key, ttl, value):
        self.store[key] = value

    def delete(self, *keys):
        for key in keys:
            self.store.pop(key, None)

    def ping(self):
        return True


@pytest.fixture(autouse=True)
def fake_redis() -> Generator[FakeRedis, None, None]:
    fake = FakeRedis()
    cache_service._client = fake
    yield fake
    cache_service._client = None


@pytest.fixture(autouse=True)
def reset_rate_limits():
    limiter.reset()
    yield


@pytest.fixture(scope='function')
def db() -> Generator[Session, None, None]:
    """Fresh schema and session for each test"""
    Base.metadata.create_all(bind=test_engine)
    session = TestSessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        session.close()
        Base.metadata.drop_all(bind=test_engine)


@pytest.fixture
def client(db: Session) -> Generator[TestClient, None, None]:
    """Test client bound to the test session"""
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


def make_user(db: Session, role: Role, email: str = None, status=UserStatus.active, company='Alpha') -> User:
    user = User(
        email=email or f'{role.value}@army.mil.ph',
        hashed_password=hash_password(TEST_PASSWORD),
        first_name=role.value.title(),
        last_name='Tester',
        role=role,
        status=status,
        company=company,
        rank='Captain',
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def bearer(user: User) -> dict:
    token = create_access_token({'sub': str(user.id), 'email': user.email})
    return {'Authorization': f'Bearer {token}'}


def make_request(db: Session, first_name='John', last_name='Smith', email=None, password=None, **extra) -> AccountRequest:
    account = AccountRequest(
        first_name=first_name,
        last_name=last_name,
        email=email or f'{first_name}.{last_name}@army.mil.ph'.lower(),
        rank=extra.pop('rank', 'Private First Class'),
        company=extra.pop('company', 'Alpha'),
        hashed_password=hash_password(password) if password else None,
        status=extra.pop('status', AccountStatus.pending),
        **extra,
    )
    db.add(account)
    db.commit()
    db.refresh(account)
    return account


@pytest.fixture
def reservist(db):
    return make_user(db, Role.reservist)


@pytest.fixture
def staff(db):
    return make_user(db, Role.staff)


@pytest.fixture
def administrator(db):
    return make_user(db, Role.administrator)


@pytest.fixture
def director(db):
    return make_user(db, Role.director, company='Headquarters')


@pytest.fixture
def pending_request(db):
    return make_request(db)


@pytest.fixture
def user_factory(db):
    def factory(role: Role, **kwargs) -> User:
        return make_user(db, role, **kwargs)
    return factory


@pytest.fixture
def request_factory(db):
    def factory(**kwargs) -> AccountRequest:
        return make_request(db, **kwargs)
    return factory


@pytest.fixture
def auth_headers():
    return bearer

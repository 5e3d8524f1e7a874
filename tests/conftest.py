import os
import tempfile

# Configuration is read at import time, so point it at scratch locations first
_TMP_DIR = tempfile.mkdtemp(prefix="dms-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_TMP_DIR, 'test.db')}"
os.environ["STORAGE_VENDOR"] = "local"
os.environ["STORAGE_ROOT"] = os.path.join(_TMP_DIR, "storage")
os.environ["REDIS_URL"] = "redis://127.0.0.1:1/0"
os.environ["SECRET_KEY"] = "test-secret"
os.environ["LOG_LEVEL"] = "WARNING"

import pytest

from dms import create_app
from dms.database import Base, SessionLocal, engine
from dms.models import User
from dms.services.realtime import hub
from dms.utils.auth_utils import create_token, hash_password
from dms.utils.rate_limiter import reset_rate_limit

PASSWORD = "Sup3rSecret!"


@pytest.fixture(autouse=True)
def fresh_database():
    import dms.models  # noqa: F401

    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    hub.clear()
    reset_rate_limit()
    yield
    SessionLocal.remove()


@pytest.fixture
def app():
    return create_app()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def db_session():
    session = SessionLocal()
    yield session
    session.close()


def make_user(username, role, **extra):
    session = SessionLocal()
    try:
        user = User(
            username=username,
            email=extra.pop("email", f"{username}@autolab.test"),
            password_hash=hash_password(PASSWORD),
            first_name=extra.pop("first_name", username.title()),
            last_name=extra.pop("last_name", "Tester"),
            role=role,
            **extra,
        )
        session.add(user)
        session.commit()
        session.refresh(user)
        session.expunge(user)
        return user
    finally:
        session.close()


@pytest.fixture
def admin_user():
    return make_user("admin", "admin")


@pytest.fixture
def manager_user():
    return make_user("manager", "manager")


@pytest.fixture
def sales_user():
    return make_user("sally", "salesperson")


def auth_headers(user):
    return {"Authorization": f"Bearer {create_token(user)}"}


@pytest.fixture
def admin_headers(admin_user):
    return auth_headers(admin_user)


@pytest.fixture
def manager_headers(manager_user):
    return auth_headers(manager_user)


@pytest.fixture
def sales_headers(sales_user):
    return auth_headers(sales_user)


@pytest.fixture
def user_factory():
    return make_user


@pytest.fixture
def headers_for():
    return auth_headers


@pytest.fixture
def password():
    return PASSWORD

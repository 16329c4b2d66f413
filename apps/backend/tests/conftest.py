import os
import sys
import pathlib

import pytest

# ===========================================================================
# Pytest Bootstrap & Environment Hardening
# ===========================================================================

# 1) Ensure backend package on sys.path (apps/backend)
_THIS_DIR = pathlib.Path(__file__).parent
_BACKEND_ROOT = _THIS_DIR.parent
if str(_BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(_BACKEND_ROOT))

# 2) Test environment must be in place before finance_tracker.config is imported
os.environ["APP_ENV"] = "test"
os.environ["DATABASE_URL"] = "sqlite+pysqlite:///:memory:"
os.environ.setdefault("AUTH_SECRET", "test-secret")
# Cheap password hashing keeps auth tests fast
os.environ.setdefault("PASSWORD_HASH_ITERATIONS", "1000")
os.environ.setdefault("TZ", "UTC")
os.environ.pop("PROMETHEUS_MULTIPROC_DIR", None)

from decimal import Decimal  # noqa: E402

from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402

import finance_tracker.db as app_db  # noqa: E402
from finance_tracker.main import app  # noqa: E402
from finance_tracker.orm_models import User  # noqa: E402
from finance_tracker.services.categories import create_category  # noqa: E402
from finance_tracker.utils.auth import create_tokens, hash_password  # noqa: E402


@pytest.fixture(scope="session")
def _engine():
    # make_engine gives StaticPool + PRAGMA foreign_keys=ON for :memory:
    return app_db.make_engine("sqlite+pysqlite:///:memory:")


@pytest.fixture(scope="session")
def _SessionLocal(_engine):
    return sessionmaker(bind=_engine, autocommit=False, autoflush=False, future=True)


@pytest.fixture(autouse=True, scope="session")
def _force_sqlite_for_all_tests(_engine, _SessionLocal):
    """
    Autouse: before any test runs, force the app to use our SQLite engine/session,
    even if some code imports finance_tracker.db.SessionLocal directly.
    """
    app_db.engine = _engine
    app_db.SessionLocal = _SessionLocal

    def override_get_db():
        db = _SessionLocal()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[app_db.get_db] = override_get_db
    yield
    app.dependency_overrides.pop(app_db.get_db, None)


@pytest.fixture
def db_session():
    """Session on the app's engine with a clean schema per test."""
    app_db.Base.metadata.drop_all(bind=app_db.engine)
    app_db.Base.metadata.create_all(bind=app_db.engine)
    db = app_db.SessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def make_user(db_session):
    counter = {"n": 0}

    def _make(username=None, email=None, password="pass1234", **extra):
        counter["n"] += 1
        n = counter["n"]
        u = User(
            username=username or f"user{n}",
            email=email or f"user{n}@test.local",
            password_hash=hash_password(password),
            first_name=extra.pop("first_name", "Test"),
            last_name=extra.pop("last_name", f"User{n}"),
            **extra,
        )
        db_session.add(u)
        db_session.commit()
        return u

    return _make


@pytest.fixture
def user(make_user):
    return make_user(username="alice", email="alice@test.local")


@pytest.fixture
def make_category(db_session):
    def _make(user_id, name, type_="expense", **fields):
        is_default = fields.pop("is_default", False)
        return create_category(
            db_session, user_id, {"name": name, "type": type_, **fields}, is_default=is_default
        )

    return _make


@pytest.fixture
def salary(user, make_category):
    return make_category(user.id, "Salary", "income")


@pytest.fixture
def food(user, make_category):
    return make_category(user.id, "Food", "expense")


@pytest.fixture
def client(db_session):
    # Use context manager to ensure underlying transport / connections close cleanly.
    with TestClient(app) as c:
        yield c


@pytest.fixture
def auth_headers():
    def _headers(u) -> dict:
        return {"Authorization": f"Bearer {create_tokens(u.id).access_token}"}

    return _headers


@pytest.fixture
def balance_of(db_session):
    def _balance(user_id) -> Decimal:
        db_session.expire_all()
        return db_session.get(User, user_id).total_balance

    return _balance

import sqlite3
import threading
from decimal import Decimal

import pytest
from sqlalchemy import func, select, text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import sessionmaker

from finance_tracker.db import Base, make_engine
from finance_tracker.errors import Conflict, is_lock_conflict
from finance_tracker.orm_models import Category, Transaction, User
from finance_tracker.services import ledger


@pytest.fixture
def file_db(tmp_path):
    """File-backed SQLite (WAL + busy_timeout) so threads get separate connections."""
    engine = make_engine(f"sqlite:///{tmp_path / 'ledger.db'}")
    Base.metadata.create_all(bind=engine)
    Session = sessionmaker(bind=engine, autoflush=False, future=True)
    with Session() as db:
        u = User(username="race", email="race@test.local", password_hash="x", first_name="R", last_name="C")
        db.add(u)
        db.flush()
        c = Category(user_id=u.id, name="Salary", type="income")
        db.add(c)
        db.commit()
        ids = (u.id, c.id)
    yield Session, ids
    engine.dispose()


def _tick(category_id):
    return {"amount": "1.00", "description": "tick", "type": "income", "category_id": category_id}


def test_concurrent_creates_lose_no_update(file_db):
    Session, (user_id, category_id) = file_db
    per_thread = 50
    attempts = 5
    errors = []

    def worker():
        with Session() as db:
            for _ in range(per_thread):
                # Conflict is retryable as a whole mutation
                for attempt in range(attempts):
                    try:
                        ledger.create_transaction(db, user_id, _tick(category_id))
                        break
                    except Conflict as e:
                        if attempt == attempts - 1:
                            errors.append(e)
                    except Exception as e:  # noqa: BLE001
                        errors.append(e)
                        break

    threads = [threading.Thread(target=worker) for _ in range(2)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert errors == []
    with Session() as db:
        assert ledger.current_balance(db, user_id) == Decimal("100.00")
        assert ledger.computed_balance(db, user_id) == Decimal("100.00")


def test_held_write_lock_surfaces_conflict_and_writes_nothing(file_db, tmp_path):
    Session, (user_id, category_id) = file_db
    other = sqlite3.connect(str(tmp_path / "ledger.db"), isolation_level=None)
    try:
        other.execute("BEGIN IMMEDIATE")
        with Session() as db:
            # Fail fast instead of waiting out the engine's busy_timeout
            db.execute(text("PRAGMA busy_timeout=100"))
            with pytest.raises(Conflict) as ei:
                ledger.create_transaction(db, user_id, _tick(category_id))
        assert ei.value.status_code == 409
        assert ei.value.code == "conflict"
        assert isinstance(ei.value.__cause__, OperationalError)
    finally:
        other.execute("ROLLBACK")
        other.close()

    with Session() as db:
        assert ledger.current_balance(db, user_id) == Decimal("0.00")
        assert db.execute(select(func.count(Transaction.id))).scalar_one() == 0


class _PgError(Exception):
    def __init__(self, msg, pgcode):
        super().__init__(msg)
        self.pgcode = pgcode


@pytest.mark.parametrize(
    "orig",
    [
        sqlite3.OperationalError("database is locked"),
        _PgError("could not obtain lock on row", "55P03"),
        _PgError("deadlock detected", "40P01"),
        _PgError("could not serialize access", "40001"),
    ],
)
def test_lock_errors_are_classified_as_conflict(orig):
    assert is_lock_conflict(OperationalError("UPDATE users", {}, orig))


def test_other_operational_errors_are_not_conflicts():
    exc = OperationalError("SELECT 1", {}, sqlite3.OperationalError("no such table: users"))
    assert not is_lock_conflict(exc)

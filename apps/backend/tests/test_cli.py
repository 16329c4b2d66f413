from decimal import Decimal

import pytest
from sqlalchemy import update

import finance_tracker.cli as cli
from finance_tracker.orm_models import User
from finance_tracker.services import ledger
from finance_tracker.services.categories import DEFAULT_CATEGORIES, list_categories


@pytest.fixture
def cli_db(monkeypatch, _SessionLocal):
    def _get_db():
        db = _SessionLocal()
        try:
            yield db
        finally:
            db.close()

    monkeypatch.setattr(cli, "get_db", _get_db)


def test_seed_defaults_command(cli_db, db_session, user, capsys):
    cli.main(["seed-defaults", "--email", user.email])
    assert f"'defaults': {len(DEFAULT_CATEGORIES)}" in capsys.readouterr().out
    assert len(list_categories(db_session, user.id)) == len(DEFAULT_CATEGORIES)


def test_seed_defaults_unknown_email(cli_db, db_session):
    with pytest.raises(SystemExit) as ei:
        cli.main(["seed-defaults", "--email", "ghost@test.local"])
    assert ei.value.code == 2


def test_reconcile_dry_run_then_repair(cli_db, db_session, user, food, capsys):
    ledger.create_transaction(
        db_session,
        user.id,
        {"amount": "12.00", "description": "x", "type": "expense", "category_id": food.id},
    )
    db_session.execute(update(User).where(User.id == user.id).values(total_balance=Decimal("0")))
    db_session.commit()

    with pytest.raises(SystemExit) as ei:
        cli.main(["reconcile", "--dry-run"])
    assert ei.value.code == 1
    out = capsys.readouterr().out
    assert "'drifted': 1" in out
    assert ledger.current_balance(db_session, user.id) == Decimal("0.00")

    with pytest.raises(SystemExit) as ei:
        cli.main(["reconcile", "--email", user.email])
    assert ei.value.code == 1
    assert ledger.current_balance(db_session, user.id) == Decimal("-12.00")
    cli.main(["reconcile"])
    assert "'drifted': 0" in capsys.readouterr().out.splitlines()[-1]


def test_no_command_prints_help(capsys):
    with pytest.raises(SystemExit):
        cli.main([])
    assert "reconcile" in capsys.readouterr().out

"""Transaction mutations that keep ``users.total_balance`` consistent.

Invariant: after every committed mutation a user's ``total_balance`` equals the
sum of ``+amount`` (income) / ``-amount`` (expense) over that user's rows.

Each operation locks the owning user row, writes the transaction row and moves
the balance by an in-database increment, all inside one ``unit_of_work``. Two
concurrent mutations for one user therefore serialize on the row lock (or on
SQLite's writer lock) and neither increment is lost.
"""

from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Mapping, Tuple

from sqlalchemy import case, func, select, type_coerce, update
from sqlalchemy.orm import Session

from finance_tracker.errors import InvalidCategory, NotFound, ValidationError
from finance_tracker.orm_models import TXN_TYPES, Category, Transaction, User
from finance_tracker.services.uow import unit_of_work
from finance_tracker.utils.money import MAX_AMOUNT, ZERO, Money, has_at_most_cents, round2, to_decimal
from finance_tracker.utils.time import as_utc

log = logging.getLogger(__name__)

MUTABLE_FIELDS = ("amount", "description", "type", "category_id", "date", "notes", "tags", "location")
REQUIRED_FIELDS = ("amount", "description", "type", "category_id")


def contribution(txn_type: str, amount: Decimal) -> Decimal:
    return amount if txn_type == "income" else -amount


# ---------------------------------------------------------------------------
# Field validation
# ---------------------------------------------------------------------------


def _clean_amount(v: Any) -> Decimal:
    try:
        amt = to_decimal(v)
    except InvalidOperation:
        raise ValidationError("Amount must be a number")
    if not amt.is_finite() or amt <= 0:
        raise ValidationError("Amount must be greater than 0")
    if amt > MAX_AMOUNT:
        raise ValidationError("Amount is too large")
    if not has_at_most_cents(amt):
        raise ValidationError("Amount must have at most 2 decimal places")
    return round2(amt)


def _clean_text(name: str, v: Any, max_len: int, required: bool) -> str | None:
    if v is None:
        if required:
            raise ValidationError(f"{name} is required")
        return None
    s = str(v).strip()
    if required and not s:
        raise ValidationError(f"{name} is required")
    if len(s) > max_len:
        raise ValidationError(f"{name} must be at most {max_len} characters")
    return s or None


def _clean_date(v: Any) -> datetime:
    if isinstance(v, datetime):
        return as_utc(v)
    try:
        return as_utc(datetime.fromisoformat(str(v).replace("Z", "+00:00")))
    except ValueError:
        raise ValidationError("Invalid date format")


def clean_fields(fields: Mapping[str, Any], partial: bool) -> Dict[str, Any]:
    unknown = set(fields) - set(MUTABLE_FIELDS)
    if unknown:
        raise ValidationError(f"Unknown field(s): {', '.join(sorted(unknown))}")
    if not partial:
        missing = [f for f in REQUIRED_FIELDS if fields.get(f) is None]
        if missing:
            raise ValidationError(f"Missing field(s): {', '.join(missing)}")

    out: Dict[str, Any] = {}
    for key, v in fields.items():
        if key == "amount":
            out[key] = _clean_amount(v)
        elif key == "type":
            if v not in TXN_TYPES:
                raise ValidationError("Type must be 'income' or 'expense'")
            out[key] = v
        elif key == "category_id":
            try:
                out[key] = int(v)
            except (TypeError, ValueError):
                raise ValidationError("category_id must be an integer")
        elif key == "description":
            out[key] = _clean_text("Description", v, 200, required=True)
        elif key == "notes":
            out[key] = _clean_text("Notes", v, 500, required=False)
        elif key == "location":
            out[key] = _clean_text("Location", v, 100, required=False)
        elif key == "tags":
            if v is None:
                out[key] = []
            elif isinstance(v, (list, tuple)) and all(isinstance(t, str) for t in v):
                out[key] = [t.strip() for t in v if t.strip()]
            else:
                raise ValidationError("Tags must be a list of strings")
        elif key == "date":
            if v is not None:
                out[key] = _clean_date(v)
    return out


# ---------------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------------


def _lock_owner(db: Session, user_id: int) -> None:
    # FOR UPDATE serializes writers per user on Postgres/MySQL; SQLite omits it
    # and relies on its single-writer lock instead.
    uid = db.execute(
        select(User.id).where(User.id == user_id).with_for_update()
    ).scalar_one_or_none()
    if uid is None:
        raise NotFound("User not found")


def _owned_category(db: Session, user_id: int, category_id: int) -> Category:
    cat = db.execute(
        select(Category).where(Category.id == category_id, Category.user_id == user_id)
    ).scalar_one_or_none()
    if cat is None:
        raise InvalidCategory()
    return cat


def get_owned_transaction(db: Session, user_id: int, txn_id: int) -> Transaction:
    txn = db.execute(
        select(Transaction).where(Transaction.id == txn_id, Transaction.user_id == user_id)
    ).scalar_one_or_none()
    if txn is None:
        raise NotFound("Transaction not found")
    return txn


def _apply_delta(db: Session, user_id: int, delta: Decimal) -> None:
    if not delta:
        return
    db.execute(
        update(User)
        .where(User.id == user_id)
        .values(total_balance=User.total_balance + delta)
        .execution_options(synchronize_session=False)
    )


def current_balance(db: Session, user_id: int) -> Decimal:
    bal = db.execute(select(User.total_balance).where(User.id == user_id)).scalar_one_or_none()
    if bal is None:
        raise NotFound("User not found")
    return bal


def computed_balance(db: Session, user_id: int) -> Decimal:
    """Signed sum of the user's transactions, straight from the rows."""
    signed = case(
        (Transaction.type == "income", Transaction.amount),
        else_=-Transaction.amount,
    )
    total = db.execute(
        select(type_coerce(func.coalesce(func.sum(signed), 0), Money)).where(
            Transaction.user_id == user_id
        )
    ).scalar_one()
    return total if total is not None else ZERO


# ---------------------------------------------------------------------------
# Mutations
# ---------------------------------------------------------------------------


def create_transaction(
    db: Session, user_id: int, fields: Mapping[str, Any]
) -> Tuple[Transaction, Decimal]:
    with unit_of_work(db, "create_transaction"):
        data = clean_fields(fields, partial=False)
        _lock_owner(db, user_id)
        _owned_category(db, user_id, data["category_id"])
        txn = Transaction(user_id=user_id, **data)
        db.add(txn)
        db.flush()
        delta = txn.contribution
        _apply_delta(db, user_id, delta)
        txn_id = txn.id
    log.info("ledger.create user=%s txn=%s delta=%s", user_id, txn_id, delta)
    return txn, current_balance(db, user_id)


def update_transaction(
    db: Session, user_id: int, txn_id: int, fields: Mapping[str, Any]
) -> Tuple[Transaction, Decimal]:
    """Overlay ``fields`` on the stored row and move the balance by the difference
    between the new and old contributions (a type flip moves it by 2x amount)."""
    with unit_of_work(db, "update_transaction"):
        _lock_owner(db, user_id)
        txn = get_owned_transaction(db, user_id, txn_id)
        data = clean_fields(fields, partial=True)
        if "category_id" in data and data["category_id"] != txn.category_id:
            _owned_category(db, user_id, data["category_id"])
        old = txn.contribution
        for key, value in data.items():
            setattr(txn, key, value)
        delta = txn.contribution - old
        db.flush()
        _apply_delta(db, user_id, delta)
    log.info("ledger.update user=%s txn=%s delta=%s", user_id, txn_id, delta)
    return txn, current_balance(db, user_id)


def delete_transaction(db: Session, user_id: int, txn_id: int) -> Decimal:
    with unit_of_work(db, "delete_transaction"):
        _lock_owner(db, user_id)
        txn = get_owned_transaction(db, user_id, txn_id)
        delta = -txn.contribution
        _apply_delta(db, user_id, delta)
        db.delete(txn)
    log.info("ledger.delete user=%s txn=%s delta=%s", user_id, txn_id, delta)
    return current_balance(db, user_id)


def reconcile_balance(db: Session, user_id: int, dry_run: bool = False) -> Tuple[Decimal, Decimal]:
    """Recompute the stored balance from the rows. Returns (stored, computed)."""
    with unit_of_work(db, "reconcile_balance"):
        _lock_owner(db, user_id)
        stored = current_balance(db, user_id)
        expected = computed_balance(db, user_id)
        if stored != expected and not dry_run:
            db.execute(
                update(User)
                .where(User.id == user_id)
                .values(total_balance=expected)
                .execution_options(synchronize_session=False)
            )
            log.warning("ledger.reconcile user=%s stored=%s computed=%s", user_id, stored, expected)
    return stored, expected

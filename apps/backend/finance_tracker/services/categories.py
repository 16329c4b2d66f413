from __future__ import annotations

import logging
import re
from typing import Any, Dict, List, Mapping, Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from finance_tracker.errors import NotFound, ProtectedResource, ValidationError
from finance_tracker.orm_models import TXN_TYPES, Category, Transaction
from finance_tracker.services.uow import unit_of_work

log = logging.getLogger(__name__)

# (name, type, color, icon)
DEFAULT_CATEGORIES = [
    ("Food & Dining", "expense", "#ff6b6b", "restaurant"),
    ("Transportation", "expense", "#4ecdc4", "directions_car"),
    ("Shopping", "expense", "#45b7d1", "shopping_cart"),
    ("Entertainment", "expense", "#f9ca24", "movie"),
    ("Bills & Utilities", "expense", "#6c5ce7", "receipt"),
    ("Healthcare", "expense", "#fd79a8", "local_hospital"),
    ("Salary", "income", "#00b894", "work"),
    ("Freelance", "income", "#00cec9", "business_center"),
    ("Investment", "income", "#fdcb6e", "trending_up"),
    ("Other Income", "income", "#e17055", "account_balance_wallet"),
]

EDITABLE_FIELDS = ("name", "description", "color", "icon", "type")
_HEX_COLOR = re.compile(r"^#[0-9a-fA-F]{6}$")


def _clean(fields: Mapping[str, Any], partial: bool) -> Dict[str, Any]:
    unknown = set(fields) - set(EDITABLE_FIELDS)
    if unknown:
        raise ValidationError(f"Unknown field(s): {', '.join(sorted(unknown))}")
    out: Dict[str, Any] = {}
    if not partial:
        for req in ("name", "type"):
            if fields.get(req) is None:
                raise ValidationError(f"{req} is required")
    for key, v in fields.items():
        if key == "name":
            name = str(v or "").strip()
            if not name or len(name) > 50:
                raise ValidationError("Name must be 1-50 characters")
            out[key] = name
        elif key == "description":
            desc = None if v is None else str(v).strip()
            if desc and len(desc) > 200:
                raise ValidationError("Description must be at most 200 characters")
            out[key] = desc or None
        elif key == "color":
            if v is not None:
                if not _HEX_COLOR.match(str(v)):
                    raise ValidationError("Color must look like #rrggbb")
                out[key] = str(v).lower()
        elif key == "icon":
            if v is not None:
                icon = str(v).strip()
                if not icon or len(icon) > 50:
                    raise ValidationError("Icon must be 1-50 characters")
                out[key] = icon
        elif key == "type":
            if v not in TXN_TYPES:
                raise ValidationError("Type must be 'income' or 'expense'")
            out[key] = v
    return out


def list_categories(db: Session, user_id: int, type_: Optional[str] = None) -> List[Category]:
    q = select(Category).where(Category.user_id == user_id)
    if type_:
        q = q.where(Category.type == type_)
    q = q.order_by(Category.created_at.desc(), Category.id.desc())
    return list(db.execute(q).scalars())


def get_category(db: Session, user_id: int, category_id: int) -> Category:
    cat = db.execute(
        select(Category).where(Category.id == category_id, Category.user_id == user_id)
    ).scalar_one_or_none()
    if cat is None:
        raise NotFound("Category not found")
    return cat


def _guard_mutable(cat: Category, verb: str) -> None:
    if cat.is_default:
        raise ProtectedResource(f"Cannot {verb} default category")


def create_category(
    db: Session, user_id: int, fields: Mapping[str, Any], is_default: bool = False
) -> Category:
    """Create a user category. The HTTP layer never passes ``is_default``; it is
    set by seeding and admin tooling only."""
    with unit_of_work(db, "create_category"):
        data = _clean(fields, partial=False)
        cat = Category(user_id=user_id, is_default=is_default, **data)
        db.add(cat)
        db.flush()
    return cat


def update_category(db: Session, user_id: int, category_id: int, fields: Mapping[str, Any]) -> Category:
    with unit_of_work(db, "update_category"):
        cat = get_category(db, user_id, category_id)
        _guard_mutable(cat, "update")
        for key, value in _clean(fields, partial=True).items():
            setattr(cat, key, value)
        db.flush()
    return cat


def delete_category(db: Session, user_id: int, category_id: int) -> None:
    with unit_of_work(db, "delete_category"):
        cat = get_category(db, user_id, category_id)
        _guard_mutable(cat, "delete")
        in_use = db.execute(
            select(func.count(Transaction.id)).where(Transaction.category_id == cat.id)
        ).scalar_one()
        if in_use:
            raise ValidationError(
                f"Category is used by {in_use} transaction(s); reassign or delete them first"
            )
        db.delete(cat)
    log.info("category.delete user=%s category=%s", user_id, category_id)


def seed_default_categories(db: Session, user_id: int) -> List[Category]:
    """Insert whichever default categories the user is missing (keyed on name).

    Safe to call repeatedly; returns the user's default categories afterwards.
    """
    with unit_of_work(db, "seed_default_categories"):
        have = set(
            db.execute(select(Category.name).where(Category.user_id == user_id)).scalars()
        )
        added = 0
        for name, type_, color, icon in DEFAULT_CATEGORIES:
            if name in have:
                continue
            db.add(
                Category(
                    user_id=user_id,
                    name=name,
                    type=type_,
                    color=color,
                    icon=icon,
                    is_default=True,
                )
            )
            added += 1
    if added:
        log.info("category.seed user=%s added=%s", user_id, added)
    names = [c[0] for c in DEFAULT_CATEGORIES]
    return list(
        db.execute(
            select(Category)
            .where(Category.user_id == user_id, Category.name.in_(names))
            .order_by(Category.id)
        ).scalars()
    )

from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from finance_tracker.db import get_db
from finance_tracker.schemas.categories import CategoryCreate, CategoryOut, CategoryPatch
from finance_tracker.services import categories as svc
from finance_tracker.utils.auth import get_current_user_id

router = APIRouter(prefix="/api/categories", tags=["categories"])


@router.get("", response_model=List[CategoryOut])
def list_categories(
    type: Optional[str] = Query(None, pattern="^(income|expense)$"),
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    return svc.list_categories(db, user_id, type)


@router.post("", response_model=CategoryOut, status_code=status.HTTP_201_CREATED)
def create_category(
    body: CategoryCreate,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    return svc.create_category(db, user_id, body.model_dump(exclude_none=True))


@router.post("/defaults", response_model=List[CategoryOut])
def create_default_categories(
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """Seed the standard income/expense categories; existing names are kept."""
    return svc.seed_default_categories(db, user_id)


@router.get("/{category_id}", response_model=CategoryOut)
def get_category(
    category_id: int,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    return svc.get_category(db, user_id, category_id)


@router.put("/{category_id}", response_model=CategoryOut)
def update_category(
    category_id: int,
    body: CategoryPatch,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    return svc.update_category(db, user_id, category_id, body.model_dump(exclude_unset=True))


@router.delete("/{category_id}")
def delete_category(
    category_id: int,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    svc.delete_category(db, user_id, category_id)
    return {"ok": True, "id": category_id}

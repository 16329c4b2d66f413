import math
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from finance_tracker.db import get_db
from finance_tracker.orm_models import Transaction
from finance_tracker.schemas.stats import StatsResponse
from finance_tracker.schemas.transactions import (
    TxnCreate,
    TxnDeleteResp,
    TxnListResp,
    TxnMutationResp,
    TxnOut,
    TxnPatch,
)
from finance_tracker.services import ledger
from finance_tracker.services.stats import get_stats
from finance_tracker.utils.auth import get_current_user_id
from finance_tracker.utils.time import as_utc

router = APIRouter(prefix="/api/transactions", tags=["transactions"])


@router.get("", response_model=TxnListResp)
def list_transactions(
    type: Optional[str] = Query(None, pattern="^(income|expense)$"),
    category_id: Optional[int] = Query(None),
    start_date: Optional[datetime] = Query(None),
    end_date: Optional[datetime] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    where = [Transaction.user_id == user_id]
    if type:
        where.append(Transaction.type == type)
    if category_id is not None:
        where.append(Transaction.category_id == category_id)
    if start_date:
        where.append(Transaction.date >= as_utc(start_date))
    if end_date:
        where.append(Transaction.date <= as_utc(end_date))

    total = db.execute(select(func.count(Transaction.id)).where(*where)).scalar_one()
    rows = (
        db.execute(
            select(Transaction)
            .where(*where)
            .order_by(Transaction.date.desc(), Transaction.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        .scalars()
        .all()
    )
    return {
        "items": rows,
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "pages": math.ceil(total / limit),
        },
    }


@router.post("", response_model=TxnMutationResp, status_code=status.HTTP_201_CREATED)
def create_transaction(
    body: TxnCreate,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    txn, balance = ledger.create_transaction(db, user_id, body.model_dump(exclude_none=True))
    return {"transaction": txn, "balance": balance}


# Declared before "/{txn_id}" so "stats" is not parsed as an id
@router.get("/stats", response_model=StatsResponse)
def transaction_stats(
    period: str = Query("month"),
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    return get_stats(db, user_id, period)


@router.get("/{txn_id}", response_model=TxnOut)
def get_transaction(
    txn_id: int,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    return ledger.get_owned_transaction(db, user_id, txn_id)


@router.put("/{txn_id}", response_model=TxnMutationResp)
def update_transaction(
    txn_id: int,
    body: TxnPatch,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    txn, balance = ledger.update_transaction(db, user_id, txn_id, body.model_dump(exclude_unset=True))
    return {"transaction": txn, "balance": balance}


@router.delete("/{txn_id}", response_model=TxnDeleteResp)
def delete_transaction(
    txn_id: int,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    balance = ledger.delete_transaction(db, user_id, txn_id)
    return {"ok": True, "id": txn_id, "balance": balance}

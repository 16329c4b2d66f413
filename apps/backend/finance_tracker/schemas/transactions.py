from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from finance_tracker.utils.time import as_utc

# Amounts arrive as JSON numbers or strings and pass through untouched: the ledger
# parses them as Decimal and owns type, range and precision rules, so a bool or
# other bad shape is a domain ValidationError rather than a coerced 1 or 0.
AmountIn = Any


class TxnCreate(BaseModel):
    amount: AmountIn
    description: str
    type: str
    category_id: int
    date: Optional[datetime] = None
    notes: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    location: Optional[str] = None


class TxnPatch(BaseModel):
    amount: Optional[AmountIn] = None
    description: Optional[str] = None
    type: Optional[str] = None
    category_id: Optional[int] = None
    date: Optional[datetime] = None
    notes: Optional[str] = None
    tags: Optional[List[str]] = None
    location: Optional[str] = None


class CategoryRef(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: int
    name: str
    color: str
    icon: str


class TxnOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: int
    amount: Decimal
    description: str
    type: str
    category_id: int
    category: Optional[CategoryRef] = None
    date: datetime
    notes: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    location: Optional[str] = None

    @field_validator("date")
    @classmethod
    def _date_utc(cls, v: datetime) -> datetime:
        # SQLite hands back naive values; they were stored as UTC
        return as_utc(v)


class TxnMutationResp(BaseModel):
    transaction: TxnOut
    balance: Decimal


class TxnDeleteResp(BaseModel):
    ok: bool = True
    id: int
    balance: Decimal


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    pages: int


class TxnListResp(BaseModel):
    items: List[TxnOut]
    pagination: Pagination

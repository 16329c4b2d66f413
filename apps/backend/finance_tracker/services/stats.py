from __future__ import annotations

import logging
import time
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import func, select, type_coerce
from sqlalchemy.orm import Session

from finance_tracker.errors import ValidationError
from finance_tracker.orm_models import Category, Transaction
from finance_tracker.schemas.stats import CategoryTotals, StatsResponse, TypeTotals
from finance_tracker.utils.money import ZERO, Money, round2
from finance_tracker.utils.time import start_of_day, utc_iso, utc_now

log = logging.getLogger(__name__)

PERIODS = ("week", "month", "year")


class _Timed:
    def __init__(self, label: str):
        self.label = label
        self.t0 = 0.0

    def __enter__(self):
        self.t0 = time.perf_counter()
        return self

    def __exit__(self, *exc):
        dt_ms = int((time.perf_counter() - self.t0) * 1000)
        log.debug("stats.%s duration_ms=%s", self.label, dt_ms)


def window_start(period: str, now: Optional[datetime] = None) -> datetime:
    """Lower date bound for a stats period (UTC).

    week  -> midnight seven days ago (rolling, not a calendar week)
    month -> first day of the current month
    year  -> January 1st of the current year
    """
    now = now or utc_now()
    today = start_of_day(now)
    if period == "week":
        return start_of_day(now, days_back=7)
    if period == "month":
        return today.replace(day=1)
    if period == "year":
        return today.replace(month=1, day=1)
    raise ValidationError("Period must be one of: week, month, year")


def _avg(total: Decimal, count: int) -> Decimal:
    return round2(total / count) if count else ZERO


def get_stats(db: Session, user_id: int, period: str = "month", now: Optional[datetime] = None) -> StatsResponse:
    start = window_start(period, now)
    total_col = type_coerce(func.sum(Transaction.amount), Money)
    count_col = func.count(Transaction.id)
    in_window = (Transaction.user_id == user_id, Transaction.date >= start)

    with _Timed("overview"):
        rows = db.execute(
            select(Transaction.type, total_col.label("total"), count_col.label("count"))
            .where(*in_window)
            .group_by(Transaction.type)
            .order_by(Transaction.type)
        ).all()
    overview = [
        TypeTotals(type=t, total=total, count=count, avg_amount=_avg(total, count))
        for t, total, count in rows
    ]

    with _Timed("category_breakdown"):
        rows = db.execute(
            select(
                Category.id,
                Category.name,
                Category.color,
                Category.icon,
                Category.type,
                total_col.label("total"),
                count_col.label("count"),
            )
            .select_from(Transaction)
            .join(Category, Category.id == Transaction.category_id)
            .where(*in_window)
            .group_by(Category.id, Category.name, Category.color, Category.icon, Category.type)
            .order_by(func.sum(Transaction.amount).desc(), Category.id)
        ).all()
    breakdown = [
        CategoryTotals(
            category_id=cid,
            name=name,
            color=color,
            icon=icon,
            type=ctype,
            total=total,
            count=count,
            avg_amount=_avg(total, count),
        )
        for cid, name, color, icon, ctype, total, count in rows
    ]

    return StatsResponse(
        period=period,
        window_start=utc_iso(start),
        overview=overview,
        category_breakdown=breakdown,
    )

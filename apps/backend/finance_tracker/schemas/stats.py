from decimal import Decimal
from typing import List, Literal

from pydantic import BaseModel, ConfigDict, Field

Period = Literal["week", "month", "year"]


class TypeTotals(BaseModel):
    type: str
    total: Decimal
    count: int
    avg_amount: Decimal


class CategoryTotals(BaseModel):
    category_id: int
    name: str
    color: str
    icon: str
    type: str
    total: Decimal
    count: int
    avg_amount: Decimal


class StatsResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)
    period: Period
    window_start: str
    overview: List[TypeTotals] = Field(default_factory=list)
    category_breakdown: List[CategoryTotals] = Field(
        default_factory=list, alias="categoryBreakdown"
    )

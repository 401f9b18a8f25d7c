from __future__ import annotations

from typing import List, Literal, Optional

from pydantic import BaseModel, Field


class DashboardFiltersModel(BaseModel):
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    locations: List[str] = Field(default_factory=list)
    trainers: List[str] = Field(default_factory=list)
    conversion_statuses: List[str] = Field(default_factory=list)
    retention_statuses: List[str] = Field(default_factory=list)
    payment_methods: List[str] = Field(default_factory=list)
    is_new_values: List[str] = Field(default_factory=list)
    membership_types: List[str] = Field(default_factory=list)
    categories: List[str] = Field(default_factory=list)
    products: List[str] = Field(default_factory=list)
    sold_by: List[str] = Field(default_factory=list)
    min_ltv: Optional[float] = None
    max_ltv: Optional[float] = None
    min_discount_amount: Optional[float] = None
    max_discount_amount: Optional[float] = None
    min_discount_percent: Optional[float] = None
    max_discount_percent: Optional[float] = None
    top_n: int = 15


class DrilldownRequest(BaseModel):
    filters: DashboardFiltersModel = Field(default_factory=DashboardFiltersModel)
    metric_type: Optional[str] = None
    by: Literal["month", "type", "class"] = "month"
    granularity: Literal["month", "year"] = "month"
    period_key: Optional[str] = None
    dimension: Optional[str] = None


class MetaFiltersResponse(BaseModel):
    locations: List[str]
    trainers: List[str]
    conversion_statuses: List[str]
    retention_statuses: List[str]
    is_new_values: List[str]
    membership_types: List[str]
    categories: List[str]
    sold_by: List[str]

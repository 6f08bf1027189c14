from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, Field


class ProductBase(BaseModel):
    name: str = Field(..., min_length=1, description="Product name")
    sku: Optional[str] = Field(None, description="Stock keeping unit")
    brand: Optional[str] = None
    category: Optional[str] = None
    strain_type: Optional[str] = Field(None, description="indica | sativa | hybrid | cbd")
    thc_percent: Optional[Decimal] = Field(None, ge=0, le=100)
    price: Optional[Decimal] = Field(None, ge=0)
    description: Optional[str] = None
    tags: List[str] = Field(default_factory=list)


class ProductCreate(ProductBase):
    """Create payload for a product."""


class ProductRead(ProductBase):
    id: UUID
    is_active: bool
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class ProductImportRequest(BaseModel):
    """Bulk import from a supplier catalog or spreadsheet."""
    rows: List[ProductCreate] = Field(..., min_length=1, max_length=5000)
    threshold: float = Field(0.75, ge=0.5, le=1.0, description="Minimum similarity reported for review")
    dry_run: bool = Field(False, description="Report what would happen without writing")


class DuplicateMatchRead(BaseModel):
    left: Dict[str, Any]
    right: Dict[str, Any]
    score: float
    action: Literal["merge", "review"]
    field_scores: Dict[str, float] = Field(default_factory=dict)


class ProductImportResponse(BaseModel):
    created: int
    merged: int
    review: List[DuplicateMatchRead] = Field(default_factory=list)
    skipped: int


class DuplicateScanRequest(BaseModel):
    """Scan supplied rows, or the tenant catalog when rows is omitted."""
    rows: Optional[List[ProductCreate]] = None
    threshold: float = Field(0.75, ge=0.5, le=1.0)


class AvailabilityRule(BaseModel):
    """Menu availability rule; `config` shape depends on `rule_type`."""
    rule_type: Literal["time_window", "day_of_week", "quantity_limit", "date_range"]
    config: Dict[str, Any] = Field(default_factory=dict)
    is_enabled: bool = True


class AvailabilityEvaluateRequest(BaseModel):
    rules: List[AvailabilityRule] = Field(default_factory=list)
    at: Optional[datetime] = Field(None, description="Defaults to now (UTC)")
    sold: int = Field(0, ge=0, description="Units already sold against quantity limits")


class AvailabilityEvaluateResponse(BaseModel):
    is_available: bool
    remaining_quantity: Optional[int] = None
    summaries: List[str] = Field(default_factory=list)

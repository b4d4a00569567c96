"""
Pydantic Schemas for API Validation

Update schemas are patch structs: a field absent from the payload is left
unchanged, a field present with null clears the stored value. Services read
them with ``model_dump(exclude_unset=True)``.
"""
from pydantic import BaseModel, Field, ConfigDict
from typing import List, Optional
from datetime import datetime
from decimal import Decimal
from enum import Enum


# ==================== ENUMS ====================

class StockStatusEnum(str, Enum):
    TO_ORDER = "ToOrder"
    ORDERED = "Ordered"
    ARRIVED = "Arrived"
    SOLD = "Sold"


# ==================== ITEM SCHEMAS ====================

class ItemBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    cost_per_unit_usd: Decimal = Decimal("0")
    freight_cost_usd: Decimal = Decimal("0")
    selling_price_srd: Decimal = Decimal("0")
    location_id: Optional[int] = None
    assigned_user_id: Optional[int] = None


class ItemCreate(ItemBase):
    company_id: Optional[int] = None  # Defaults to the caller's company
    status: StockStatusEnum = StockStatusEnum.TO_ORDER
    use_batch_system: bool = True
    quantity_in_stock: int = 0  # Only meaningful for legacy items


class ItemUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    status: Optional[StockStatusEnum] = None
    use_batch_system: Optional[bool] = None
    quantity_in_stock: Optional[int] = None
    cost_per_unit_usd: Optional[Decimal] = None
    freight_cost_usd: Optional[Decimal] = None
    selling_price_srd: Optional[Decimal] = None
    location_id: Optional[int] = None
    assigned_user_id: Optional[int] = None


class ItemResponse(ItemBase):
    id: int
    company_id: int
    status: str
    use_batch_system: bool
    quantity_in_stock: int
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


# ==================== BATCH SCHEMAS ====================

class BatchCreate(BaseModel):
    item_id: int
    quantity: int
    status: Optional[StockStatusEnum] = None  # Defaults to ToOrder
    cost_per_unit_usd: Decimal
    freight_cost_usd: Optional[Decimal] = None
    location_id: Optional[int] = None
    assigned_user_id: Optional[int] = None
    order_date: Optional[datetime] = None
    expected_arrival: Optional[datetime] = None
    arrived_date: Optional[datetime] = None
    order_number: Optional[str] = Field(None, max_length=100)
    notes: Optional[str] = None


class BatchUpdate(BaseModel):
    quantity: Optional[int] = None
    status: Optional[StockStatusEnum] = None
    cost_per_unit_usd: Optional[Decimal] = None
    freight_cost_usd: Optional[Decimal] = None
    location_id: Optional[int] = None
    assigned_user_id: Optional[int] = None
    order_date: Optional[datetime] = None
    expected_arrival: Optional[datetime] = None
    arrived_date: Optional[datetime] = None
    order_number: Optional[str] = Field(None, max_length=100)
    notes: Optional[str] = None


class BatchTransferRequest(BaseModel):
    to_location_id: int
    quantity: Optional[int] = None  # Defaults to the whole batch


class BatchResponse(BaseModel):
    id: int
    item_id: int
    quantity: int
    original_quantity: int
    status: str
    cost_per_unit_usd: Decimal
    freight_cost_usd: Decimal
    committed_cost_usd: Decimal
    location_id: Optional[int] = None
    assigned_user_id: Optional[int] = None
    order_date: Optional[datetime] = None
    expected_arrival: Optional[datetime] = None
    arrived_date: Optional[datetime] = None
    order_number: Optional[str] = None
    notes: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class BatchCreateResponse(BaseModel):
    batch: BatchResponse
    consolidated: bool
    debited_amount: Decimal = Decimal("0")


class BatchDeleteResponse(BaseModel):
    message: str
    refunded_amount: Decimal


class SplitTransferResponse(BaseModel):
    message: str
    original_batch_id: int
    new_batch_id: int
    remaining_in_original: int
    transferred_amount: int


class RelocateTransferResponse(BaseModel):
    message: str
    batch_id: int
    transferred_amount: int


# ==================== STOCK ACTION SCHEMAS ====================

class AddStockRequest(BaseModel):
    item_id: int
    quantity: int = Field(..., ge=1)
    reason: Optional[str] = None


class SellStockRequest(BaseModel):
    item_id: int
    quantity: int = Field(..., ge=1)
    selling_price_srd: Optional[Decimal] = Field(None, ge=0)
    location_id: Optional[int] = None  # Prefer batches at this location


class RemoveStockRequest(BaseModel):
    item_id: int
    quantity: int = Field(..., ge=1)
    reason: Optional[str] = None


class StockActionResponse(BaseModel):
    message: str
    item_id: int
    quantity: int
    remaining_stock: int
    affected_batch_ids: List[int] = []
    revenue_srd: Optional[Decimal] = None
    profit_srd: Optional[Decimal] = None
    refunded_usd: Optional[Decimal] = None


# ==================== CONSISTENCY SCHEMAS ====================

class ItemConsistencyResponse(BaseModel):
    item_id: int
    item_name: str
    valid: bool
    item_quantity: int
    batch_total: int
    difference: int
    batch_count: int
    fixed: bool = False
    message: str


class ConsistencyReportResponse(BaseModel):
    valid: bool
    items: List[ItemConsistencyResponse] = []
    errors: List[str] = []
    warnings: List[str] = []

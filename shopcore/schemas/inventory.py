from pydantic import BaseModel, ConfigDict, Field
from typing import List, Optional
from datetime import datetime
import uuid

from shopcore.services.inventory_ledger import AdjustmentReason


class InventoryAdjustIn(BaseModel):
    product_id: uuid.UUID
    delta: int
    created_by: str = Field(min_length=1)
    reason: AdjustmentReason = AdjustmentReason.MANUAL_ADJUST
    note: Optional[str] = None


class BulkAdjustEntry(BaseModel):
    product_id: uuid.UUID
    delta: int


class BulkAdjustIn(BaseModel):
    updates: List[BulkAdjustEntry]
    created_by: str = Field(min_length=1)
    reason: AdjustmentReason = AdjustmentReason.MANUAL_ADJUST
    note: Optional[str] = None


class InventoryAdjustmentResponse(BaseModel):
    id: uuid.UUID
    product_id: uuid.UUID
    quantity_delta: int
    reason: str
    order_id: Optional[uuid.UUID] = None
    note: Optional[str] = None
    created_by: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from ledger.models import LedgerEntry


class RedemptionStatus(str, Enum):
    REQUESTED = "Requested"
    FULFILLED = "Fulfilled"
    CANCELLED = "Cancelled"


class CreateCatalogItemRequest(BaseModel):
    name: str = Field(default="", max_length=200)
    description: Optional[str] = Field(default=None, max_length=1000)
    points_cost: Decimal = Field(default=Decimal("250"))

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "name": "Yard Sign Printing Credit",
            "description": "Paid directly to vendor; upload invoice.",
            "points_cost": 250,
        }
    })


class CatalogItem(BaseModel):
    id: UUID
    name: str
    description: Optional[str] = None
    points_cost: Decimal
    is_active: bool = True
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class CreateRedemptionRequest(BaseModel):
    catalog_item_id: UUID


class FulfillRedemptionRequest(BaseModel):
    fulfillment_reference: Optional[str] = Field(default=None, description="Invoice/receipt number, vendor, etc.")


class RedemptionRequest(BaseModel):
    id: UUID
    user_id: UUID
    catalog_item_id: UUID
    catalog_item_name: str
    points_cost: Decimal
    status: RedemptionStatus
    fulfillment_reference: Optional[str] = None
    fulfilled_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class RedemptionAdminView(RedemptionRequest):
    user_display: str


class FulfillmentResult(BaseModel):
    redemption: RedemptionRequest
    ledger_entry: LedgerEntry
    message: str

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class EntryType(str, Enum):
    EARNED = "Earned"
    EARNED_CASH = "EarnedCash"
    EARNED_CREDIT = "EarnedCredit"
    REDEEMED = "Redeemed"


class CurrencyType(str, Enum):
    POINTS = "POINTS"
    USD_CASH = "USD_CASH"
    USD_CREDIT = "USD_CREDIT"


class NewLedgerEntry(BaseModel):
    user_id: UUID
    entry_type: EntryType
    currency_type: CurrencyType
    amount: Decimal = Field(..., description="Positive credits the user, negative debits")
    memo: Optional[str] = None
    referral_id: Optional[UUID] = None
    job_id: Optional[UUID] = None
    redemption_request_id: Optional[UUID] = None


class LedgerEntry(BaseModel):
    id: UUID
    user_id: UUID
    entry_type: EntryType
    currency_type: CurrencyType
    amount: Decimal
    balance_after: Decimal
    memo: Optional[str] = None
    referral_id: Optional[UUID] = None
    job_id: Optional[UUID] = None
    redemption_request_id: Optional[UUID] = None
    idempotency_key: Optional[str] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class UserBalance(BaseModel):
    user_id: UUID
    currency_type: CurrencyType
    balance: Decimal
    held: Decimal = Decimal("0")
    available: Decimal
    entry_count: int
    last_transaction_at: Optional[datetime] = None


class BalanceSummary(BaseModel):
    user_id: UUID
    balances: list[UserBalance]


class ReconciliationReport(BaseModel):
    user_id: UUID
    currency_type: CurrencyType
    running_balance: Decimal
    recomputed_balance: Decimal
    entry_count: int
    in_sync: bool


class LedgerHistoryResponse(BaseModel):
    user_id: UUID
    entries: list[LedgerEntry]
    total_count: int
    balances: list[UserBalance]

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from ledger.models import LedgerEntry
from rules.models import EventType, ProgramType, RewardRule


class PayoutPreference(str, Enum):
    CASH = "cash"
    CREDIT = "credit"


class ReferralStatus(str, Enum):
    SUBMITTED = "Submitted"
    APPROVED = "Approved"
    SCHEDULED = "Scheduled"
    COMPLETED_WORK = "Completed Work"
    ELIGIBLE = "Eligible"
    DENIED = "Denied"


ALLOWED_TRANSITIONS: dict[ReferralStatus, frozenset[ReferralStatus]] = {
    ReferralStatus.SUBMITTED: frozenset({ReferralStatus.APPROVED, ReferralStatus.DENIED}),
    ReferralStatus.APPROVED: frozenset({
        ReferralStatus.SCHEDULED, ReferralStatus.COMPLETED_WORK, ReferralStatus.DENIED,
    }),
    ReferralStatus.SCHEDULED: frozenset({ReferralStatus.COMPLETED_WORK, ReferralStatus.DENIED}),
    ReferralStatus.COMPLETED_WORK: frozenset({ReferralStatus.ELIGIBLE, ReferralStatus.DENIED}),
    ReferralStatus.ELIGIBLE: frozenset(),
    ReferralStatus.DENIED: frozenset(),
}


def can_transition(current: ReferralStatus, target: ReferralStatus) -> bool:
    return target in ALLOWED_TRANSITIONS[current]


def is_terminal(status: ReferralStatus) -> bool:
    return not ALLOWED_TRANSITIONS[status]


class Profile(BaseModel):
    id: UUID
    full_name: Optional[str] = None
    account_type: ProgramType = ProgramType.CUSTOMER
    is_admin: bool = False
    payout_preference: Optional[PayoutPreference] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)

    @property
    def display_name(self) -> str:
        return self.full_name or str(self.id)


class UpdateProfileRequest(BaseModel):
    full_name: Optional[str] = Field(default=None, max_length=120)
    account_type: Optional[ProgramType] = None


class PayoutPreferenceRequest(BaseModel):
    payout_preference: PayoutPreference


class SetAdminRequest(BaseModel):
    is_admin: bool


class SubmitReferralRequest(BaseModel):
    referred_name: Optional[str] = Field(default=None, max_length=200)
    referred_phone: Optional[str] = Field(default=None, max_length=40)
    referred_email: Optional[str] = Field(default=None, max_length=255)
    referred_address: Optional[str] = Field(default=None, max_length=500)


class Referral(BaseModel):
    id: UUID
    referrer_user_id: UUID
    program_type: ProgramType
    referred_name: Optional[str] = None
    referred_phone: Optional[str] = None
    referred_email: Optional[str] = None
    referred_address: Optional[str] = None
    status: ReferralStatus
    denied_reason: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ReferralAdminView(Referral):
    referrer_display: str


class SetStatusRequest(BaseModel):
    status: ReferralStatus
    override: bool = Field(default=False, description="Bypass the transition table to correct mistakes")
    reason: Optional[str] = None


class DenyReferralRequest(BaseModel):
    reason: Optional[str] = None


class IssueRewardRequest(BaseModel):
    job_type: EventType = EventType.REPAIR
    invoice_number: str = ""
    invoice_total: Decimal = Field(default=Decimal("0"), ge=0)


class Job(BaseModel):
    id: UUID
    referral_id: UUID
    job_type: EventType
    invoice_number: str
    invoice_total: Decimal
    completed_date: datetime

    model_config = ConfigDict(from_attributes=True)


class StatusChange(BaseModel):
    id: UUID
    referral_id: UUID
    from_status: ReferralStatus
    to_status: ReferralStatus
    actor_user_id: UUID
    override: bool = False
    reason: Optional[str] = None
    created_at: datetime


class IssueResult(BaseModel):
    referral: Referral
    job: Job
    ledger_entry: LedgerEntry
    rule: RewardRule
    message: str

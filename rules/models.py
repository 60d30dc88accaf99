from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class ProgramType(str, Enum):
    CUSTOMER = "customer"
    PARTNER = "partner"


class EventType(str, Enum):
    REPAIR = "Repair"
    REPLACEMENT = "Replacement"
    VIP_MEMBERSHIP = "VIP_MEMBERSHIP"
    VIP_RENEWAL = "VIP_RENEWAL"


@dataclass
class RewardRule:
    program_type: ProgramType
    event_type: EventType
    amount: Decimal
    effective_from: date
    is_active: bool = True
    id: UUID = field(default_factory=uuid4)
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def applies_to(self, program_type: ProgramType, event_type: EventType, as_of: date) -> bool:
        return (
            self.is_active
            and self.program_type == program_type
            and self.event_type == event_type
            and self.effective_from <= as_of
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id, "program_type": self.program_type, "event_type": self.event_type,
            "amount": self.amount, "effective_from": self.effective_from,
            "is_active": self.is_active, "created_at": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "RewardRule":
        return cls(
            id=data["id"], program_type=ProgramType(data["program_type"]),
            event_type=EventType(data["event_type"]), amount=Decimal(data["amount"]),
            effective_from=data["effective_from"], is_active=data.get("is_active", True),
            created_at=data["created_at"],
        )


class CreateRewardRuleRequest(BaseModel):
    program_type: ProgramType
    event_type: EventType
    amount: Decimal = Field(..., ge=0, description="USD for customer rules, points for partner rules")
    effective_from: date
    is_active: bool = True

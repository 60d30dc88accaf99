from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Optional, Union
from uuid import UUID

from loguru import logger

from core.exceptions import RuleNotFoundError, ValidationError
from core.storage import InMemoryStorage

from .models import CreateRewardRuleRequest, EventType, ProgramType, RewardRule


class RewardRuleResolver:
    """Versioned reward configuration: the newest active rule effective at a date wins."""

    def __init__(self, storage: Optional[InMemoryStorage] = None):
        self.storage = storage or InMemoryStorage()

    def add_rule(self, rule: RewardRule) -> RewardRule:
        if rule.program_type == ProgramType.PARTNER and rule.amount != rule.amount.to_integral_value():
            raise ValidationError(f"Partner rules award whole points, got {rule.amount}")
        with self.storage.transaction():
            if rule.is_active:
                self._ensure_unique(rule)
            self.storage.insert("reward_rules", rule.to_dict())
        logger.bind(
            rule_id=str(rule.id),
            program_type=rule.program_type.value,
            event_type=rule.event_type.value,
            amount=str(rule.amount),
        ).info("Reward rule added")
        return rule

    def create_rule(self, request: CreateRewardRuleRequest) -> RewardRule:
        return self.add_rule(RewardRule(
            program_type=request.program_type,
            event_type=request.event_type,
            amount=request.amount,
            effective_from=request.effective_from,
            is_active=request.is_active,
        ))

    def deactivate_rule(self, rule_id: UUID) -> RewardRule:
        with self.storage.transaction():
            self.get_rule(rule_id)
            row = self.storage.update("reward_rules", rule_id, {"is_active": False})
        logger.bind(rule_id=str(rule_id)).info("Reward rule deactivated")
        return RewardRule.from_dict(row)

    def get_rule(self, rule_id: UUID) -> RewardRule:
        row = self.storage.get("reward_rules", rule_id)
        if not row:
            raise RuleNotFoundError(f"Reward rule {rule_id} not found")
        return RewardRule.from_dict(row)

    def list_rules(
        self,
        program_type: Optional[ProgramType] = None,
        event_type: Optional[EventType] = None,
        active_only: bool = False,
    ) -> list[RewardRule]:
        rules = [RewardRule.from_dict(row) for row in self.storage.select("reward_rules")]
        if program_type:
            rules = [r for r in rules if r.program_type == program_type]
        if event_type:
            rules = [r for r in rules if r.event_type == event_type]
        if active_only:
            rules = [r for r in rules if r.is_active]
        rules.sort(key=lambda r: (r.effective_from, r.created_at), reverse=True)
        return rules

    def resolve(
        self,
        program_type: ProgramType,
        event_type: EventType,
        as_of: Union[date, datetime, None] = None,
    ) -> RewardRule:
        as_of_date = self._as_date(as_of)
        candidates = [
            rule for rule in self.list_rules(program_type, event_type)
            if rule.applies_to(program_type, event_type, as_of_date)
        ]
        if not candidates:
            raise RuleNotFoundError(
                f"No active reward rule for {program_type.value}/{event_type.value} as of {as_of_date.isoformat()}"
            )
        # list_rules orders by (effective_from, created_at) descending
        return candidates[0]

    def resolve_amount(
        self,
        program_type: ProgramType,
        event_type: EventType,
        as_of: Union[date, datetime, None] = None,
    ) -> Decimal:
        return self.resolve(program_type, event_type, as_of).amount

    def _ensure_unique(self, rule: RewardRule) -> None:
        for existing in self.list_rules(rule.program_type, rule.event_type, active_only=True):
            if existing.effective_from == rule.effective_from:
                raise ValidationError(
                    f"An active {rule.program_type.value}/{rule.event_type.value} rule already takes effect "
                    f"on {rule.effective_from.isoformat()}; deactivate it first"
                )

    @staticmethod
    def _as_date(as_of: Union[date, datetime, None]) -> date:
        if as_of is None:
            return datetime.now(timezone.utc).date()
        if isinstance(as_of, datetime):
            return as_of.date()
        return as_of


def create_sample_rules() -> list[RewardRule]:
    effective = date(2024, 1, 1)
    amounts = {
        ProgramType.PARTNER: {
            EventType.REPAIR: "100", EventType.REPLACEMENT: "250",
            EventType.VIP_MEMBERSHIP: "50", EventType.VIP_RENEWAL: "25",
        },
        ProgramType.CUSTOMER: {
            EventType.REPAIR: "50.00", EventType.REPLACEMENT: "150.00",
            EventType.VIP_MEMBERSHIP: "25.00", EventType.VIP_RENEWAL: "10.00",
        },
    }
    return [
        RewardRule(program_type=program, event_type=event, amount=Decimal(amount), effective_from=effective)
        for program, by_event in amounts.items()
        for event, amount in by_event.items()
    ]


def seed_sample_rules(resolver: RewardRuleResolver) -> int:
    if resolver.storage.count("reward_rules"):
        return 0
    rules = create_sample_rules()
    for rule in rules:
        resolver.add_rule(rule)
    return len(rules)

"""
Reward Rules Package

Versioned reward configuration mapping (program type, event type) to a
payout amount, and the resolver that picks the rule in effect at a date.
"""

from .models import (
    CreateRewardRuleRequest,
    EventType,
    ProgramType,
    RewardRule,
)
from .resolver import RewardRuleResolver, create_sample_rules, seed_sample_rules

__all__ = [
    "CreateRewardRuleRequest",
    "EventType",
    "ProgramType",
    "RewardRule",
    "RewardRuleResolver",
    "create_sample_rules",
    "seed_sample_rules",
]

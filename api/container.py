from dataclasses import dataclass
from typing import Optional

from core.config import Settings
from core.storage import InMemoryStorage
from ledger.service import LedgerService
from redemptions.service import CatalogService, RedemptionService
from referrals.profiles import ProfileService
from referrals.service import ReferralService
from rules.resolver import RewardRuleResolver


@dataclass
class Services:
    storage: InMemoryStorage
    profiles: ProfileService
    ledger: LedgerService
    rules: RewardRuleResolver
    referrals: ReferralService
    catalog: CatalogService
    redemptions: RedemptionService


def build_services(settings: Settings, storage: Optional[InMemoryStorage] = None) -> Services:
    storage = storage or InMemoryStorage()
    profiles = ProfileService(storage, admin_user_ids=settings.admin_user_ids)
    ledger = LedgerService(storage)
    rules = RewardRuleResolver(storage)
    catalog = CatalogService(storage)
    return Services(
        storage=storage,
        profiles=profiles,
        ledger=ledger,
        rules=rules,
        referrals=ReferralService(
            storage, ledger, rules, profiles, default_denial_reason=settings.DEFAULT_DENIAL_REASON,
        ),
        catalog=catalog,
        redemptions=RedemptionService(storage, ledger, catalog, profiles),
    )

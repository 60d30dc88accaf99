"""
Shared fixtures: one in-memory store wired into every service, and
request contexts for a customer, a partner and an admin.
"""

from uuid import UUID

import pytest

from core.context import RequestContext
from core.storage import InMemoryStorage
from ledger.service import LedgerService
from redemptions.service import CatalogService, RedemptionService
from referrals.models import UpdateProfileRequest
from referrals.profiles import ProfileService
from referrals.service import ReferralService
from rules.models import ProgramType
from rules.resolver import RewardRuleResolver

CUSTOMER_ID = UUID("550e8400-e29b-41d4-a716-446655440000")
PARTNER_ID = UUID("660e8400-e29b-41d4-a716-446655440001")
ADMIN_ID = UUID("770e8400-e29b-41d4-a716-446655440002")


@pytest.fixture
def storage():
    return InMemoryStorage()


@pytest.fixture
def profiles(storage):
    return ProfileService(storage, admin_user_ids={ADMIN_ID})


@pytest.fixture
def ledger(storage):
    return LedgerService(storage)


@pytest.fixture
def resolver(storage):
    return RewardRuleResolver(storage)


@pytest.fixture
def referrals(storage, ledger, resolver, profiles):
    return ReferralService(storage, ledger, resolver, profiles)


@pytest.fixture
def catalog(storage):
    return CatalogService(storage)


@pytest.fixture
def redemptions(storage, ledger, catalog, profiles):
    return RedemptionService(storage, ledger, catalog, profiles)


@pytest.fixture
def admin_ctx(profiles):
    profiles.ensure_profile(ADMIN_ID)
    return RequestContext(user_id=ADMIN_ID, is_admin=True)


@pytest.fixture
def customer_ctx(profiles):
    profiles.ensure_profile(CUSTOMER_ID)
    return RequestContext(user_id=CUSTOMER_ID)


@pytest.fixture
def partner_ctx(profiles):
    ctx = RequestContext(user_id=PARTNER_ID)
    profiles.ensure_profile(PARTNER_ID)
    profiles.update_profile(ctx, UpdateProfileRequest(full_name="Pat Partner", account_type=ProgramType.PARTNER))
    return ctx

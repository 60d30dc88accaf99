"""
Referral lifecycle.

Profiles, referral submission, the allow-listed status machine and the
complete-and-issue workflow that turns finished work into a ledger entry.
"""

from .models import (
    ALLOWED_TRANSITIONS,
    IssueResult,
    Job,
    PayoutPreference,
    Profile,
    Referral,
    ReferralStatus,
)
from .profiles import ProfileService
from .service import ReferralService

__all__ = [
    "ALLOWED_TRANSITIONS",
    "IssueResult",
    "Job",
    "PayoutPreference",
    "Profile",
    "Referral",
    "ReferralStatus",
    "ProfileService",
    "ReferralService",
]

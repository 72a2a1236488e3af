# chainshop/app/services/__init__.py
"""
Services layer for referral, session and polling logic.
Keeps views thin and business logic testable and reusable.
"""

from chainshop.app.services.referrals import (
    ReferralService,
    ReferralServiceError,
    InvalidReferralResponseError,
    FetchResult,
    tier_multiplier,
    bonus_commission,
    base_commission,
)
from chainshop.app.services.referral_codes import (
    derive_referral_code,
    is_valid_referral_code,
    build_referral_link,
    parse_referral_link,
)
from chainshop.app.services.reconciliation import ReferralDataController
from chainshop.app.services.session import (
    Session,
    SessionStore,
    SessionInvalidError,
    MemorySessionStorage,
    FileSessionStorage,
    RedisSessionStorage,
)
from chainshop.app.services.polling import PeriodicTask

__all__ = [
    # Referral service
    "ReferralService",
    "ReferralServiceError",
    "InvalidReferralResponseError",
    "FetchResult",
    "tier_multiplier",
    "bonus_commission",
    "base_commission",
    # Referral codes
    "derive_referral_code",
    "is_valid_referral_code",
    "build_referral_link",
    "parse_referral_link",
    # Reconciliation
    "ReferralDataController",
    # Session
    "Session",
    "SessionStore",
    "SessionInvalidError",
    "MemorySessionStorage",
    "FileSessionStorage",
    "RedisSessionStorage",
    # Polling
    "PeriodicTask",
]

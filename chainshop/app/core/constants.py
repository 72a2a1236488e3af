"""
Shared constants for the client application.
"""

# ---------------------------------------------------------------------------
# Referral program
# ---------------------------------------------------------------------------
REFERRAL_CODE_LENGTH = 8
REFERRAL_CODE_PATTERN = r"^[a-f0-9]{8}$"

BASE_COMMISSION_RATE = 0.1  # 10% of every referred purchase

TIER_MULTIPLIERS = {
    "bronze": 1.0,
    "silver": 1.2,
    "gold": 1.5,
    "platinum": 2.0,
}
DEFAULT_TIER_MULTIPLIER = 1.0

TOP_PERFORMERS_LIMIT = 5
MONTHLY_WINDOW_DAYS = 30
WEEKLY_WINDOW_DAYS = 7

# ---------------------------------------------------------------------------
# Commission statuses
# ---------------------------------------------------------------------------
COMMISSION_PENDING = "pending"
COMMISSION_COMPLETED = "completed"
COMMISSION_FAILED = "failed"

# ---------------------------------------------------------------------------
# Session storage keys
# ---------------------------------------------------------------------------
SESSION_TOKEN_KEY = "token"
SESSION_USER_KEY = "user"

# ---------------------------------------------------------------------------
# Contract
# ---------------------------------------------------------------------------
RECENT_PURCHASES_LIMIT = 10

# EIP-1193 provider error codes
USER_REJECTED_CODE = 4001
UNRECOGNIZED_CHAIN_CODE = 4902

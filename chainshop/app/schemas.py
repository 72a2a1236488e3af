from datetime import datetime, timezone
from enum import Enum
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from chainshop.app.core.constants import (
    COMMISSION_COMPLETED,
    COMMISSION_FAILED,
    COMMISSION_PENDING,
    MONTHLY_WINDOW_DAYS,
    TOP_PERFORMERS_LIMIT,
    WEEKLY_WINDOW_DAYS,
)


class CamelModel(BaseModel):
    """Backend payloads are camelCase; attributes stay snake_case."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        coerce_numbers_to_str=True,
        extra="ignore",
    )

    def to_payload(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Parse a backend date ("2024-05-01" or full ISO-8601) into an aware datetime."""
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


# --- Referrals ---

class ReferralRelationship(CamelModel):
    referrer_wallet: str
    referee_wallet: str
    referrer_id: str
    referee_id: str
    join_date: str
    total_purchases: float = 0.0
    total_commissions: float = 0.0
    is_active: bool = True
    referee_name: Optional[str] = None
    referee_email: Optional[str] = None


class CommissionStatus(str, Enum):
    PENDING = COMMISSION_PENDING
    COMPLETED = COMMISSION_COMPLETED
    FAILED = COMMISSION_FAILED

    @property
    def is_terminal(self) -> bool:
        return self is not CommissionStatus.PENDING

    @classmethod
    def can_transition(cls, current: "CommissionStatus", new: "CommissionStatus") -> bool:
        """pending -> completed | failed; completed and failed never change."""
        return current is cls.PENDING and new in (cls.COMPLETED, cls.FAILED)


class CommissionTransaction(CamelModel):
    id: str
    referrer_id: str
    referee_id: str
    purchase_amount: float
    commission_amount: float
    commission_rate: float
    transaction_hash: str = ""
    date: str
    status: CommissionStatus = CommissionStatus.PENDING
    product_id: Optional[str] = None
    product_name: Optional[str] = None

    @property
    def occurred_at(self) -> Optional[datetime]:
        return parse_timestamp(self.date)


class TopPerformer(CamelModel):
    wallet: str
    name: str = ""
    commissions: float = 0.0
    referrals: int = 0


class ReferralStats(CamelModel):
    total_referrals: int = 0
    active_referrals: int = 0
    total_commissions: float = 0.0
    pending_commissions: float = 0.0
    conversion_rate: float = 0.0
    top_performers: List[TopPerformer] = Field(default_factory=list)
    monthly_earnings: float = 0.0
    weekly_earnings: float = 0.0

    @model_validator(mode="after")
    def recompute_conversion_rate(self) -> "ReferralStats":
        # Always derived from the two counts, whatever the backend sent
        if self.total_referrals > 0:
            self.conversion_rate = self.active_referrals / self.total_referrals * 100
        else:
            self.conversion_rate = 0.0
        return self

    @classmethod
    def zero(cls) -> "ReferralStats":
        return cls()

    @classmethod
    def from_history(
        cls,
        relationships: List[ReferralRelationship],
        commissions: List[CommissionTransaction],
        now: Optional[datetime] = None,
    ) -> "ReferralStats":
        """
        Aggregate relationships and commission history into stats.

        Failed commissions count toward neither total nor pending.
        Monthly/weekly earnings only include completed commissions.
        """
        now = now or datetime.now(timezone.utc)
        completed = [c for c in commissions if c.status is CommissionStatus.COMPLETED]
        pending = [c for c in commissions if c.status is CommissionStatus.PENDING]

        def earned_within(days: int) -> float:
            total = 0.0
            for c in completed:
                occurred = c.occurred_at
                if occurred is not None and (now - occurred).days < days:
                    total += c.commission_amount
            return total

        ranked = sorted(relationships, key=lambda r: r.total_commissions, reverse=True)
        top_performers = [
            TopPerformer(
                wallet=r.referee_wallet,
                name=r.referee_name or "",
                commissions=r.total_commissions,
                referrals=1,
            )
            for r in ranked[:TOP_PERFORMERS_LIMIT]
            if r.total_commissions > 0
        ]

        return cls(
            total_referrals=len(relationships),
            active_referrals=sum(1 for r in relationships if r.is_active),
            total_commissions=sum(c.commission_amount for c in completed),
            pending_commissions=sum(c.commission_amount for c in pending),
            top_performers=top_performers,
            monthly_earnings=earned_within(MONTHLY_WINDOW_DAYS),
            weekly_earnings=earned_within(WEEKLY_WINDOW_DAYS),
        )


class DashboardReferralStats(ReferralStats):
    """Backend stats with on-chain totals shown next to them, never added in."""
    contract_total_purchases: float = 0.0
    contract_total_commissions: float = 0.0
    contract_purchase_count: int = 0
    contract_eligible_for_draw: bool = False


# --- Auth and profile ---

class LoginData(CamelModel):
    email: str
    password: str


class SignupData(CamelModel):
    fullname: str
    email: str
    password: str
    wallet_address: str
    referral_code: Optional[str] = None


class UserProfile(CamelModel):
    fullname: str = ""
    email: str = ""
    total_referral_commissions: float = 0.0
    referred_users: List[Any] = Field(default_factory=list)
    referral_code: str = ""
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    membership_tier: str = "Bronze"

    @property
    def referral_count(self) -> int:
        return len(self.referred_users)


class SessionUser(CamelModel):
    """Profile snapshot kept in session storage next to the token."""
    model_config = ConfigDict(extra="allow")

    email: str = ""
    name: str = ""
    wallet_address: Optional[str] = None
    is_logged_in: bool = False


# --- Contract ---

class ContractProduct(BaseModel):
    model_config = ConfigDict(strict=True, frozen=True)

    id: int
    name: str
    price: int
    active: bool
    total_sold: int = 0


class ContractUserInfo(BaseModel):
    model_config = ConfigDict(strict=True, frozen=True)

    wallet: str
    total_spent: int
    total_commissions: int
    purchase_count: int
    eligible_for_draw: bool
    last_purchase_time: int


class ContractPurchase(BaseModel):
    model_config = ConfigDict(strict=True, frozen=True)

    id: int
    product_id: int
    product_name: str
    amount: int
    buyer: str
    referrer: str
    commission: int
    timestamp: int


class DrawWinner(BaseModel):
    model_config = ConfigDict(strict=True, frozen=True)

    winner: str
    prize: int
    position: int
    round: int
    timestamp: int


class ContractStats(BaseModel):
    model_config = ConfigDict(strict=True, frozen=True)

    total_users: int
    total_purchases: int
    total_products: int
    eligible_for_draw: int
    contract_balance: int
    total_draws: int

# chainshop/app/services/referrals.py
"""
Referral service - backend referral ledger reads/writes and tier math.

Read paths never raise: a failed fetch degrades to an empty/zero value and
reports the failure through FetchResult.error so the dashboard still renders.
Write paths (register_referral, process_commission) propagate failures.
"""

from dataclasses import dataclass
from typing import Generic, List, Optional, TypeVar

from pydantic import ValidationError

from chainshop.app.api_client.base import BackendClient, BackendError
from chainshop.app.api_client.referrals import (
    api_get_commissions,
    api_get_referral_stats,
    api_get_referrals,
    api_process_commission,
    api_register_referral,
)
from chainshop.app.core.constants import BASE_COMMISSION_RATE, DEFAULT_TIER_MULTIPLIER, TIER_MULTIPLIERS
from chainshop.app.core.exceptions import ServiceError
from chainshop.app.core.logging import get_logger
from chainshop.app.core.metrics import referral_fetch_failures_total
from chainshop.app.schemas import CommissionTransaction, ReferralRelationship, ReferralStats
from chainshop.app.services.referral_codes import derive_referral_code, is_valid_referral_code

logger = get_logger(__name__)

T = TypeVar("T")


class ReferralServiceError(ServiceError):
    """Base exception for referral service errors."""


class InvalidReferralResponseError(ReferralServiceError):
    def __init__(self, what: str):
        super().__init__(f"Backend returned a malformed {what}", 502)


@dataclass
class FetchResult(Generic[T]):
    data: T
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def tier_multiplier(tier: Optional[str]) -> float:
    return TIER_MULTIPLIERS.get((tier or "").strip().lower(), DEFAULT_TIER_MULTIPLIER)


def bonus_commission(base_commission: float, tier: Optional[str]) -> float:
    """Only the bonus above the base rate, not the full commission."""
    return base_commission * (tier_multiplier(tier) - 1)


def base_commission(purchase_amount: float) -> float:
    return purchase_amount * BASE_COMMISSION_RATE


class ReferralService:
    """Service class for referral operations against the backend ledger."""

    def __init__(self, client: BackendClient):
        self.client = client

    # -- codes / tiers ------------------------------------------------------

    generate_referral_code = staticmethod(derive_referral_code)
    validate_referral_code = staticmethod(is_valid_referral_code)
    tier_multiplier = staticmethod(tier_multiplier)
    bonus_commission = staticmethod(bonus_commission)

    # -- reads --------------------------------------------------------------

    async def fetch_referral_relationships(self, wallet: str) -> FetchResult[List[ReferralRelationship]]:
        try:
            raw = await api_get_referrals(self.client, wallet)
            return FetchResult([ReferralRelationship.model_validate(item) for item in raw])
        except (BackendError, ValidationError, TypeError) as e:
            return FetchResult([], self._degraded("relationships", wallet, e))

    async def fetch_commission_history(self, wallet: str) -> FetchResult[List[CommissionTransaction]]:
        try:
            raw = await api_get_commissions(self.client, wallet)
            return FetchResult([CommissionTransaction.model_validate(item) for item in raw])
        except (BackendError, ValidationError, TypeError) as e:
            return FetchResult([], self._degraded("commissions", wallet, e))

    async def fetch_referral_stats(self, wallet: str) -> FetchResult[ReferralStats]:
        try:
            raw = await api_get_referral_stats(self.client, wallet)
            return FetchResult(ReferralStats.model_validate(raw))
        except (BackendError, ValidationError, TypeError) as e:
            return FetchResult(ReferralStats.zero(), self._degraded("stats", wallet, e))

    @staticmethod
    def _degraded(resource: str, wallet: str, error: Exception) -> str:
        referral_fetch_failures_total.labels(resource=resource).inc()
        message = error.message if isinstance(error, ServiceError) else f"Failed to fetch referral {resource}"
        logger.warning(
            "Referral fetch degraded",
            resource=resource,
            wallet=wallet,
            error_type=type(error).__name__,
            error=str(error),
        )
        return message

    # -- writes -------------------------------------------------------------

    async def register_referral(
        self,
        referrer_wallet: str,
        referee_wallet: str,
        referee_email: str,
        referee_name: str,
    ) -> ReferralRelationship:
        payload = {
            "referrerWallet": referrer_wallet,
            "refereeWallet": referee_wallet,
            "refereeEmail": referee_email,
            "refereeName": referee_name,
        }
        raw = await api_register_referral(self.client, payload)
        try:
            referral = ReferralRelationship.model_validate(raw)
        except ValidationError:
            raise InvalidReferralResponseError("referral")
        logger.info("Referral registered", referrer=referrer_wallet, referee=referee_wallet)
        return referral

    async def process_commission(
        self,
        referrer_wallet: str,
        referee_wallet: str,
        purchase_amount: float,
        product_id: str,
        transaction_hash: str,
    ) -> CommissionTransaction:
        payload = {
            "referrerWallet": referrer_wallet,
            "refereeWallet": referee_wallet,
            "purchaseAmount": purchase_amount,
            "productId": product_id,
            "transactionHash": transaction_hash,
        }
        raw = await api_process_commission(self.client, payload)
        try:
            commission = CommissionTransaction.model_validate(raw)
        except ValidationError:
            raise InvalidReferralResponseError("commission")
        logger.info(
            "Commission processed",
            referrer=referrer_wallet,
            referee=referee_wallet,
            amount=commission.commission_amount,
            status=commission.status.value,
        )
        return commission

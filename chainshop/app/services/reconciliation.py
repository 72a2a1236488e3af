"""
Referral data controller - keeps one wallet's referral snapshot fresh.

Backend relationships, commission history and stats are fetched together and
applied together. The on-chain user totals are shown next to the backend
numbers in ``dashboard_stats``; the two ledgers are never added up.
"""
import asyncio
from typing import List, Optional, TYPE_CHECKING

from web3 import Web3

from chainshop.app.core.logging import get_logger
from chainshop.app.core.metrics import referral_refreshes_total
from chainshop.app.schemas import (
    CommissionStatus,
    CommissionTransaction,
    DashboardReferralStats,
    ReferralRelationship,
    ReferralStats,
)
from chainshop.app.services.polling import PeriodicTask
from chainshop.app.services.referrals import ReferralService

if TYPE_CHECKING:
    from chainshop.app.chain.contract import ContractGateway

logger = get_logger(__name__)


def _same_wallet(a: Optional[str], b: Optional[str]) -> bool:
    return (a or "").lower() == (b or "").lower()


class ReferralDataController:
    def __init__(
        self,
        referrals: ReferralService,
        gateway: Optional["ContractGateway"] = None,
        poll_interval: float = 30.0,
    ):
        self.referrals = referrals
        self.gateway = gateway
        self.wallet: Optional[str] = None
        self.stats: ReferralStats = ReferralStats.zero()
        self.history: List[CommissionTransaction] = []
        self.relationships: List[ReferralRelationship] = []
        self.is_loading = False
        self.error: Optional[str] = None
        self._lock = asyncio.Lock()
        self._poller = PeriodicTask(self.refresh, poll_interval, name="referral-refresh")

    @property
    def is_polling(self) -> bool:
        return self._poller.running

    async def set_wallet(self, address: Optional[str]) -> None:
        changed = not _same_wallet(address, self.wallet)
        self.wallet = address
        if not address:
            await self._poller.stop()
            if changed:
                self._clear()
            return
        # Same wallet after close() still needs the timer back
        if changed or not self._poller.running:
            await self.refresh()
        self._poller.start()

    async def refresh(self) -> bool:
        """
        Re-fetch the snapshot for the current wallet.

        Returns False when there is no wallet or the wallet changed while the
        fetch was in flight; in that case the results are dropped.
        """
        async with self._lock:
            wallet = self.wallet
            if not wallet:
                return False

            self.is_loading = True
            try:
                relationships, history, stats = await asyncio.gather(
                    self.referrals.fetch_referral_relationships(wallet),
                    self.referrals.fetch_commission_history(wallet),
                    self.referrals.fetch_referral_stats(wallet),
                )
                if self.gateway is not None:
                    await self.gateway.user_info.refetch()
            finally:
                self.is_loading = False

            if not _same_wallet(wallet, self.wallet):
                referral_refreshes_total.labels(outcome="stale").inc()
                logger.info("Discarded stale referral refresh", wallet=wallet, current=self.wallet)
                return False

            self.relationships = relationships.data
            self.history = self._keep_terminal_statuses(history.data)
            if stats.error and not relationships.error and not history.error:
                # Stats endpoint down but the raw ledger came back: aggregate locally
                self.stats = ReferralStats.from_history(self.relationships, self.history)
            else:
                self.stats = stats.data
            errors = [r.error for r in (relationships, history, stats) if r.error]
            self.error = errors[0] if errors else None
            referral_refreshes_total.labels(outcome="degraded" if errors else "ok").inc()
            return True

    def _keep_terminal_statuses(self, fresh: List[CommissionTransaction]) -> List[CommissionTransaction]:
        """A completed or failed commission never goes back to another status."""
        known = {c.id: c.status for c in self.history}
        result = []
        for commission in fresh:
            previous = known.get(commission.id)
            if (
                previous is not None
                and previous is not commission.status
                and not CommissionStatus.can_transition(previous, commission.status)
            ):
                logger.warning(
                    "Ignoring invalid commission status change",
                    commission_id=commission.id,
                    previous=previous.value,
                    received=commission.status.value,
                )
                commission = commission.model_copy(update={"status": previous})
            result.append(commission)
        return result

    async def on_chain_changed(self, chain_id: int) -> None:
        """Reload the contract user totals as soon as the wallet is back on the required chain."""
        if self.gateway is not None and self.wallet and self.gateway.reads_enabled:
            await self.gateway.user_info.refetch()

    @property
    def dashboard_stats(self) -> DashboardReferralStats:
        merged = self.stats.model_dump()
        user_info = None
        if self.gateway is not None and self.gateway.reads_enabled:
            user_info = self.gateway.user_info.data
        # Cached on-chain totals only count when they belong to the wallet shown
        if user_info is not None and self.wallet and _same_wallet(user_info.wallet, self.wallet):
            merged.update(
                contract_total_purchases=float(Web3.from_wei(user_info.total_spent, "ether")),
                contract_total_commissions=float(Web3.from_wei(user_info.total_commissions, "ether")),
                contract_purchase_count=user_info.purchase_count,
                contract_eligible_for_draw=user_info.eligible_for_draw,
            )
        return DashboardReferralStats.model_validate(merged)

    async def process_commission(
        self,
        referrer_wallet: str,
        referee_wallet: str,
        purchase_amount: float,
        product_id: str,
        transaction_hash: str,
    ) -> CommissionTransaction:
        commission = await self.referrals.process_commission(
            referrer_wallet, referee_wallet, purchase_amount, product_id, transaction_hash
        )
        await self.refresh()
        return commission

    async def register_referral(
        self,
        referrer_wallet: str,
        referee_wallet: str,
        referee_email: str,
        referee_name: str,
    ) -> ReferralRelationship:
        referral = await self.referrals.register_referral(
            referrer_wallet, referee_wallet, referee_email, referee_name
        )
        await self.refresh()
        return referral

    async def close(self) -> None:
        await self._poller.stop()

    def _clear(self) -> None:
        self.stats = ReferralStats.zero()
        self.history = []
        self.relationships = []
        self.error = None

"""
Referral dashboard view: code, share link, tier bonus and the polled
referral snapshot of the connected wallet.
"""
from typing import Optional

from chainshop.app.chain.wallet import WalletConnector
from chainshop.app.schemas import DashboardReferralStats
from chainshop.app.services.reconciliation import ReferralDataController
from chainshop.app.services.referral_codes import build_referral_link, derive_referral_code
from chainshop.app.services.referrals import tier_multiplier


class ReferralDashboardView:
    def __init__(
        self,
        controller: ReferralDataController,
        wallet: WalletConnector,
        app_origin: str,
        user_tier: str = "Bronze",
    ):
        self.controller = controller
        self.wallet = wallet
        self.app_origin = app_origin
        self.user_tier = user_tier
        self.mounted = False

    async def mount(self) -> None:
        if not self.mounted:
            self.wallet.on_accounts_changed(self._on_accounts_changed)
            self.wallet.on_chain_changed(self.controller.on_chain_changed)
            self.mounted = True
        await self.controller.set_wallet(self.wallet.address)

    async def unmount(self) -> None:
        if self.mounted:
            self.wallet.remove_listener(WalletConnector.ACCOUNTS_CHANGED, self._on_accounts_changed)
            self.wallet.remove_listener(WalletConnector.CHAIN_CHANGED, self.controller.on_chain_changed)
            self.mounted = False
        await self.controller.close()

    async def _on_accounts_changed(self, accounts: list) -> None:
        await self.controller.set_wallet(accounts[0] if accounts else None)

    async def refresh(self) -> None:
        await self.controller.refresh()

    @property
    def referral_code(self) -> str:
        return derive_referral_code(self.controller.wallet) if self.controller.wallet else ""

    @property
    def referral_link(self) -> str:
        code = self.referral_code
        return build_referral_link(self.app_origin, code) if code else ""

    @property
    def tier_multiplier(self) -> float:
        return tier_multiplier(self.user_tier)

    @property
    def tier_bonus_message(self) -> Optional[str]:
        multiplier = self.tier_multiplier
        if multiplier <= 1:
            return None
        return (
            f"As a {self.user_tier} member, you earn {(multiplier - 1) * 100:.0f}% bonus "
            f"on all referral commissions!"
        )

    @property
    def stats(self) -> DashboardReferralStats:
        return self.controller.dashboard_stats

    @property
    def commission_history(self):
        return self.controller.history

    @property
    def relationships(self):
        return self.controller.relationships

    @property
    def is_loading(self) -> bool:
        return self.controller.is_loading

    @property
    def error(self) -> Optional[str]:
        return self.controller.error

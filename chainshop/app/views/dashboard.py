"""
Dashboard view: auth gate, profile load and wallet overview.
"""
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from chainshop.app.api_client.auth import api_get_profile
from chainshop.app.api_client.base import BackendClient, BackendError
from chainshop.app.chain.contract import ContractGateway
from chainshop.app.chain.wallet import WalletConnector, WalletError
from chainshop.app.core.logging import get_logger
from chainshop.app.schemas import SessionUser, UserProfile, parse_timestamp
from chainshop.app.services.referral_codes import build_referral_link, derive_referral_code
from chainshop.app.services.session import Session, SessionStore
from chainshop.app.views.common import LOGIN_PATH, Redirect, first_error, require_session

logger = get_logger(__name__)


@dataclass
class DashboardUser:
    name: str
    email: str
    referral_commissions: float = 0.0
    lucky_draw_eligible: bool = False
    referral_count: int = 0
    referral_code: str = ""
    member_since: Optional[datetime] = None
    last_activity: Optional[datetime] = None
    tier: str = "Bronze"

    @classmethod
    def from_profile(cls, profile: UserProfile, fallback: SessionUser) -> "DashboardUser":
        return cls(
            name=profile.fullname or fallback.name,
            email=profile.email or fallback.email,
            referral_commissions=profile.total_referral_commissions,
            referral_count=profile.referral_count,
            referral_code=profile.referral_code,
            member_since=parse_timestamp(profile.created_at),
            last_activity=parse_timestamp(profile.updated_at),
            tier=profile.membership_tier or "Bronze",
        )

    @classmethod
    def from_session(cls, user: SessionUser) -> "DashboardUser":
        now = datetime.now(timezone.utc)
        return cls(name=user.name or "User", email=user.email, member_since=now, last_activity=now)


class DashboardView:
    def __init__(
        self,
        client: BackendClient,
        session: SessionStore,
        wallet: WalletConnector,
        gateway: ContractGateway,
        app_origin: str,
    ):
        self.client = client
        self.session = session
        self.wallet = wallet
        self.gateway = gateway
        self.app_origin = app_origin
        self.user: Optional[DashboardUser] = None
        self.is_authenticated = False
        self.is_loading = False
        self.wallet_error: Optional[str] = None

    async def mount(self) -> Optional[Redirect]:
        self.is_loading = True
        try:
            gate = await require_session(self.session)
            if isinstance(gate, Redirect):
                return gate
            self.is_authenticated = True
            return await self._load_profile(gate)
        finally:
            self.is_loading = False

    async def _load_profile(self, session: Session) -> Optional[Redirect]:
        try:
            profile = await api_get_profile(self.client, token=session.token)
        except BackendError as e:
            if e.status_code in (401, 403):
                logger.info("Profile request rejected, ending session", status=e.status_code)
                await self.session.end()
                self.is_authenticated = False
                return Redirect(LOGIN_PATH, replace=True)
            logger.warning("Profile unavailable, using stored user", error=e.message, status=e.status_code)
            self.user = DashboardUser.from_session(session.user)
        else:
            self.user = DashboardUser.from_profile(profile, session.user)

        await self.refresh_contract_data()
        return None

    async def refresh_contract_data(self) -> None:
        await self.gateway.load_all()
        self.update_draw_status()

    def update_draw_status(self) -> None:
        if self.user is not None:
            self.user.lucky_draw_eligible = bool(self.gateway.user_purchases.data)

    @property
    def referral_code(self) -> str:
        if self.user and self.user.referral_code:
            return self.user.referral_code
        return derive_referral_code(self.wallet.address) if self.wallet.address else ""

    @property
    def referral_link(self) -> Optional[str]:
        code = self.referral_code
        return build_referral_link(self.app_origin, code) if code else None

    @property
    def error(self) -> Optional[str]:
        return first_error(self.wallet_error, self.gateway.error)

    async def connect_wallet(self) -> None:
        self.wallet_error = None
        try:
            await self.wallet.connect()
        except WalletError as e:
            self.wallet_error = e.message
            return
        await self.refresh_contract_data()

    async def logout(self) -> Redirect:
        await self.session.end()
        await self.wallet.disconnect()
        self.user = None
        self.is_authenticated = False
        return Redirect(LOGIN_PATH)

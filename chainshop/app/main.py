"""
Application context: builds and wires every service once, hands them to the
views, and tears them down on exit.
"""
import asyncio
import sys
from typing import Optional

from eth_account import Account
from web3 import AsyncHTTPProvider, AsyncWeb3

from chainshop.app.api_client.base import BackendClient
from chainshop.app.chain.chains import required_chain
from chainshop.app.chain.contract import ContractGateway, load_abi
from chainshop.app.chain.validator import ChainValidator
from chainshop.app.chain.wallet import WalletConnector, WalletError, WalletProvider, Web3WalletProvider
from chainshop.app.core.exceptions import ServiceError
from chainshop.app.core.logging import get_logger, setup_logging
from chainshop.app.core.settings import Settings, get_settings
from chainshop.app.services.reconciliation import ReferralDataController
from chainshop.app.services.referrals import ReferralService
from chainshop.app.services.session import (
    FileSessionStorage,
    MemorySessionStorage,
    RedisSessionStorage,
    SessionStorage,
    SessionStore,
)
from chainshop.app.views.auth import LoginView, SignupView
from chainshop.app.views.chain_guard import ChainGuard
from chainshop.app.views.dashboard import DashboardView
from chainshop.app.views.products import ProductsView
from chainshop.app.views.referral_dashboard import ReferralDashboardView

logger = get_logger(__name__)


def build_session_storage(settings: Settings) -> SessionStorage:
    if settings.SESSION_BACKEND == "memory":
        return MemorySessionStorage()
    if settings.SESSION_BACKEND == "redis":
        return RedisSessionStorage.from_settings(settings.REDIS_HOST, settings.REDIS_PORT, settings.REDIS_DB)
    return FileSessionStorage(settings.SESSION_FILE)


class AppContext:
    """Explicitly constructed services shared by all views of one app session."""

    def __init__(
        self,
        settings: Settings,
        w3: Optional[AsyncWeb3] = None,
        provider: Optional[WalletProvider] = None,
        storage: Optional[SessionStorage] = None,
        client: Optional[BackendClient] = None,
    ):
        self.settings = settings
        self.w3 = w3 or AsyncWeb3(AsyncHTTPProvider(settings.RPC_URL))
        if provider is None:
            account = Account.from_key(settings.WALLET_PRIVATE_KEY) if settings.WALLET_PRIVATE_KEY else None
            provider = Web3WalletProvider(self.w3, account)
        self.provider = provider

        self.storage = storage or build_session_storage(settings)
        self.session = SessionStore(self.storage)
        self.client = client or BackendClient(
            settings.API_BASE_URL,
            token_provider=self.session.token,
            timeout=settings.HTTP_TIMEOUT,
        )

        self.wallet = WalletConnector(self.provider)
        self.validator = ChainValidator(required_chain(settings.REQUIRED_CHAIN_ID, settings.RPC_URL), self.provider)
        self.validator.track(self.wallet)
        self.gateway = ContractGateway(
            self.w3,
            self.wallet,
            self.validator,
            settings.CONTRACT_ADDRESS,
            load_abi(settings.CONTRACT_ABI_PATH),
            receipt_timeout=settings.RECEIPT_TIMEOUT,
            receipt_poll_interval=settings.RECEIPT_POLL_INTERVAL,
        )
        self.gateway.track_wallet()
        self.referrals = ReferralService(self.client)
        self.referral_controller = ReferralDataController(
            self.referrals,
            gateway=self.gateway,
            poll_interval=settings.REFERRAL_POLL_INTERVAL,
        )

    # -- views --------------------------------------------------------------

    def login_view(self) -> LoginView:
        return LoginView(self.client, self.session)

    def signup_view(self) -> SignupView:
        return SignupView(self.client, self.session, self.wallet)

    def dashboard_view(self) -> DashboardView:
        return DashboardView(self.client, self.session, self.wallet, self.gateway, self.settings.APP_ORIGIN)

    def products_view(self) -> ProductsView:
        return ProductsView(self.session, self.wallet, self.validator, self.gateway)

    def referral_dashboard_view(self, user_tier: str = "Bronze") -> ReferralDashboardView:
        return ReferralDashboardView(self.referral_controller, self.wallet, self.settings.APP_ORIGIN, user_tier)

    def chain_guard(self) -> ChainGuard:
        return ChainGuard(self.wallet, self.validator)

    # -- lifecycle ----------------------------------------------------------

    async def close(self) -> None:
        await self.referral_controller.close()
        self.wallet.remove_all_listeners()
        await self.client.close()
        if isinstance(self.storage, RedisSessionStorage):
            await self.storage.close()
        logger.info("Application context closed")


async def run_status(settings: Settings) -> int:
    """Connect the configured wallet and log chain, contract and session state."""
    app = AppContext(settings)
    try:
        try:
            await app.wallet.connect()
        except WalletError as e:
            logger.error("Wallet connection failed", error=e.message)
            return 1

        if app.validator.is_wrong_chain:
            logger.warning(
                "Wrong network",
                current=app.validator.current_chain_name,
                required=app.validator.required_chain_name,
            )
            return 1

        await app.gateway.load_all()
        stats = app.gateway.stats.data
        logger.info(
            "Contract status",
            address=app.gateway.address,
            products=len(app.gateway.products.data or []),
            total_users=stats.total_users if stats else None,
            total_purchases=stats.total_purchases if stats else None,
            error=app.gateway.error,
        )
        logger.info("Session status", logged_in=await app.session.is_authenticated())
        return 0
    except ServiceError as e:
        logger.error("Status check failed", error=e.message)
        return 1
    finally:
        await app.close()


def main() -> None:
    # Load and validate settings
    try:
        settings = get_settings()
    except ValueError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)

    setup_logging(log_level=settings.LOG_LEVEL, json_format=settings.is_production)
    logger.info(
        "Application configuration loaded",
        environment=settings.ENVIRONMENT,
        chain_id=settings.REQUIRED_CHAIN_ID,
        session_backend=settings.SESSION_BACKEND,
    )
    sys.exit(asyncio.run(run_status(settings)))


if __name__ == "__main__":
    main()

"""
Login and signup views.
"""
from typing import Optional

from chainshop.app.api_client.auth import api_login, api_signup
from chainshop.app.api_client.base import BackendClient, BackendError, BackendUnavailableError
from chainshop.app.chain.wallet import WalletConnector, WalletError
from chainshop.app.core.logging import get_logger
from chainshop.app.schemas import SignupData
from chainshop.app.services.referral_codes import is_valid_referral_code, parse_referral_link
from chainshop.app.services.session import SessionStore
from chainshop.app.views.common import DASHBOARD_PATH, Redirect

logger = get_logger(__name__)


class LoginView:
    def __init__(self, client: BackendClient, session: SessionStore):
        self.client = client
        self.session = session
        self.error: Optional[str] = None
        self.is_loading = False

    async def submit(self, email: str, password: str) -> Optional[Redirect]:
        self.is_loading = True
        self.error = None
        try:
            result = await api_login(self.client, email, password)
            await self.session.start(result.token, result.user)
            return Redirect(DASHBOARD_PATH)
        except BackendUnavailableError as e:
            logger.error("Login request failed", error=e.message)
            self.error = "Network error. Please try again."
        except BackendError as e:
            self.error = e.message or "Login failed"
        finally:
            self.is_loading = False
        return None


class SignupView:
    def __init__(self, client: BackendClient, session: SessionStore, wallet: WalletConnector):
        self.client = client
        self.session = session
        self.wallet = wallet
        self.referral_code = ""
        self.error: Optional[str] = None
        self.wallet_error: Optional[str] = None
        self.is_loading = False
        self.is_connecting = False

    def mount(self, url: str) -> None:
        """Pre-fill the referral code from the ``ref`` query parameter."""
        code = parse_referral_link(url)
        if code is None:
            return
        code = code.strip().lower()
        if is_valid_referral_code(code):
            self.referral_code = code
        else:
            logger.info("Ignoring invalid referral code", code=code)

    async def connect_wallet(self) -> None:
        self.is_connecting = True
        self.wallet_error = None
        try:
            await self.wallet.connect()
        except WalletError as e:
            self.wallet_error = e.message
        finally:
            self.is_connecting = False

    async def submit(self, name: str, email: str, password: str, confirm_password: str) -> Optional[Redirect]:
        self.error = None
        if not self.wallet.is_connected or not self.wallet.address:
            self.error = "Please connect your wallet before signing up."
            return None
        if password != confirm_password:
            self.error = "Passwords do not match"
            return None

        referral_code = self.referral_code if is_valid_referral_code(self.referral_code) else None
        data = SignupData(
            fullname=name,
            email=email,
            password=password,
            wallet_address=self.wallet.address,
            referral_code=referral_code,
        )

        self.is_loading = True
        try:
            result = await api_signup(self.client, data)
            await self.session.start(result.token, result.user)
            logger.info("User registered", email=email, referred=referral_code is not None)
            return Redirect(DASHBOARD_PATH)
        except BackendUnavailableError as e:
            logger.error("Signup request failed", error=e.message)
            self.error = "Registration failed. Please try again."
        except BackendError as e:
            self.error = e.message or "Registration failed"
        finally:
            self.is_loading = False
        return None

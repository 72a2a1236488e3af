"""
Chain validation: keeps the wallet on the single chain the contract lives on.
"""
import enum
import inspect
from typing import Callable, List, Optional

from chainshop.app.chain.chains import ChainDescriptor, chain_name
from chainshop.app.chain.wallet import WalletConnector, WalletError, WalletProvider
from chainshop.app.core.logging import get_logger

logger = get_logger(__name__)


class ChainMismatchError(WalletError):
    def __init__(self, current_chain_id: Optional[int], required: ChainDescriptor):
        self.current_chain_id = current_chain_id
        self.required_chain_id = required.id
        super().__init__(
            f"Transaction blocked: Currently on chain {current_chain_id}, but {required.name} "
            f"({required.id}) is required. Please switch networks in your wallet.",
            status_code=409,
        )


class ChainState(str, enum.Enum):
    DISCONNECTED = "disconnected"
    CONNECTED_CORRECT_CHAIN = "connected_correct_chain"
    CONNECTED_WRONG_CHAIN = "connected_wrong_chain"


class ChainValidator:
    """
    State machine over wallet connectivity and chain id.

    The wrong-chain warning fires once per wrong-chain period: the
    ``has_shown_warning`` latch is only reset by a return to the required chain.
    """

    def __init__(self, required: ChainDescriptor, provider: Optional[WalletProvider] = None):
        self.required = required
        self.provider = provider
        self.state = ChainState.DISCONNECTED
        self.current_chain_id: Optional[int] = None
        self.has_shown_warning = False
        self.show_chain_modal = False
        self.is_switching = False
        self.switch_error: Optional[str] = None
        self._warning_listeners: List[Callable] = []

    # -- derived state ------------------------------------------------------

    @property
    def is_connected(self) -> bool:
        return self.state is not ChainState.DISCONNECTED

    @property
    def is_correct_chain(self) -> bool:
        return self.current_chain_id == self.required.id

    @property
    def is_wrong_chain(self) -> bool:
        return self.state is ChainState.CONNECTED_WRONG_CHAIN

    @property
    def can_interact_with_contract(self) -> bool:
        return self.state is ChainState.CONNECTED_CORRECT_CHAIN

    @property
    def current_chain_name(self) -> str:
        return chain_name(self.current_chain_id)

    @property
    def required_chain_name(self) -> str:
        return self.required.name

    def blocking_reason(self, action: str) -> Optional[str]:
        """Why ``action`` cannot reach the contract right now, or None."""
        if self.state is ChainState.CONNECTED_WRONG_CHAIN:
            return f"Please switch to {self.required.name} to {action}"
        if self.state is ChainState.DISCONNECTED:
            return f"Please connect your wallet to {action}"
        return None

    # -- transitions --------------------------------------------------------

    def on_warning(self, callback: Callable) -> None:
        self._warning_listeners.append(callback)

    def track(self, wallet: WalletConnector) -> None:
        """Follow a wallet connector's account and chain changes."""

        async def on_accounts_changed(accounts: list) -> None:
            await self.update(bool(accounts) and wallet.is_connected, wallet.chain_id)

        async def on_chain_changed(chain_id: int) -> None:
            await self.update(wallet.is_connected, chain_id)

        wallet.on_accounts_changed(on_accounts_changed)
        wallet.on_chain_changed(on_chain_changed)

    async def update(self, is_connected: bool, chain_id: Optional[int]) -> ChainState:
        self.current_chain_id = chain_id if is_connected else None
        if not is_connected:
            self.state = ChainState.DISCONNECTED
        elif chain_id == self.required.id:
            self.state = ChainState.CONNECTED_CORRECT_CHAIN
        else:
            self.state = ChainState.CONNECTED_WRONG_CHAIN

        if self.state is ChainState.CONNECTED_CORRECT_CHAIN:
            self.has_shown_warning = False
            self.show_chain_modal = False
            self.switch_error = None
        elif self.state is ChainState.CONNECTED_WRONG_CHAIN and not self.has_shown_warning:
            self.has_shown_warning = True
            self.show_chain_modal = True
            logger.warning(
                "Wallet on wrong chain",
                current_chain_id=chain_id,
                required_chain_id=self.required.id,
            )
            for callback in list(self._warning_listeners):
                result = callback(chain_id)
                if inspect.isawaitable(result):
                    await result
        return self.state

    def dismiss_chain_modal(self) -> None:
        self.show_chain_modal = False

    def validate_before_transaction(self, chain_id: Optional[int]) -> None:
        if chain_id != self.required.id:
            raise ChainMismatchError(chain_id, self.required)

    async def switch_to_required_chain(self) -> bool:
        """
        Ask the wallet to switch chains, falling back to adding the chain.
        Returns False and sets ``switch_error`` when both requests fail.
        """
        if self.provider is None:
            self.switch_error = "No wallet provider available"
            return False

        self.is_switching = True
        self.switch_error = None
        try:
            try:
                await self.provider.request(
                    "wallet_switchEthereumChain", [{"chainId": self.required.hex_id}]
                )
                return True
            except WalletError as e:
                logger.warning("Chain switch failed, adding network", error=e.message, code=e.code)

            try:
                await self.provider.request("wallet_addEthereumChain", [self.required.to_add_chain_params()])
                return True
            except WalletError as e:
                logger.error("Failed to add network", error=e.message, code=e.code)
                self.switch_error = e.message
                return False
        finally:
            self.is_switching = False

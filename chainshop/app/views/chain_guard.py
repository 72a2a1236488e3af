"""
Chain guard: wraps chain-dependent content and the wrong-network dialog.
"""
from typing import Optional

from chainshop.app.chain.validator import ChainValidator
from chainshop.app.chain.wallet import WalletConnector


class ChainGuard:
    """
    Content is shown when the wallet is disconnected or on the required chain;
    on any other chain the guard shows a switch-network prompt instead.
    """

    def __init__(self, wallet: WalletConnector, validator: ChainValidator):
        self.wallet = wallet
        self.validator = validator

    @property
    def show_content(self) -> bool:
        return not self.validator.is_wrong_chain

    @property
    def show_modal(self) -> bool:
        return self.validator.show_chain_modal

    @property
    def prompt(self) -> Optional[str]:
        if not self.validator.is_wrong_chain:
            return None
        return (
            f"You are connected to {self.validator.current_chain_name}. "
            f"Please switch to {self.validator.required_chain_name} to continue."
        )

    @property
    def is_switching(self) -> bool:
        return self.validator.is_switching

    @property
    def switch_error(self) -> Optional[str]:
        return self.validator.switch_error

    async def switch_network(self) -> bool:
        switched = await self.validator.switch_to_required_chain()
        if switched:
            await self.wallet.sync()
        return switched

    def dismiss(self) -> None:
        self.validator.dismiss_chain_modal()

"""
Products view: active catalog, purchased badges and the purchase flow.
"""
from dataclasses import dataclass
from typing import List, Optional, Set

from chainshop.app.chain.contract import ContractGateway, format_price, price_in_ether
from chainshop.app.chain.transactions import PendingTransaction
from chainshop.app.chain.validator import ChainValidator
from chainshop.app.chain.wallet import UserRejectedError, WalletConnector
from chainshop.app.core.exceptions import ServiceError
from chainshop.app.core.logging import get_logger
from chainshop.app.services.session import Session, SessionStore
from chainshop.app.views.common import DASHBOARD_PATH, Redirect, first_error, require_session

logger = get_logger(__name__)


@dataclass
class ProductCard:
    id: int
    name: str
    price: float
    price_wei: int
    is_purchased: bool = False


class ProductsView:
    def __init__(
        self,
        session: SessionStore,
        wallet: WalletConnector,
        validator: ChainValidator,
        gateway: ContractGateway,
    ):
        self.session = session
        self.wallet = wallet
        self.validator = validator
        self.gateway = gateway
        self.current: Optional[Session] = None
        self.purchased_ids: Set[int] = set()
        self.pending: Optional[PendingTransaction] = None
        self.error: Optional[str] = None
        self.message: Optional[str] = None

    async def mount(self) -> Optional[Redirect]:
        gate = await require_session(self.session)
        if isinstance(gate, Redirect):
            return gate
        self.current = gate
        await self.refresh()
        return None

    async def refresh(self) -> None:
        await self.gateway.products.refetch()
        if not self.gateway.user_purchases.enabled:
            self.purchased_ids = set()
            return
        await self.gateway.user_purchases.refetch()
        try:
            self.purchased_ids = await self.gateway.purchased_product_ids()
        except ServiceError as e:
            logger.warning("Could not resolve purchased products", error=e.message)

    @property
    def products(self) -> List[ProductCard]:
        return [
            ProductCard(
                id=p.id,
                name=p.name,
                price=price_in_ether(p.price),
                price_wei=p.price,
                is_purchased=p.id in self.purchased_ids,
            )
            for p in self.gateway.products.data or []
            if p.active
        ]

    @property
    def is_loading(self) -> bool:
        return self.gateway.products.is_loading or self.gateway.user_purchases.is_loading

    @property
    def display_error(self) -> Optional[str]:
        return first_error(self.error, self.gateway.error)

    def _find(self, product_id: int) -> Optional[ProductCard]:
        return next((p for p in self.products if p.id == product_id), None)

    async def purchase(self, product_id: int) -> Optional[Redirect]:
        self.error = None
        self.message = None
        required = self.validator.required_chain_name

        if not self.wallet.is_connected:
            self.error = "Please connect your wallet first"
            return None
        if self.validator.is_wrong_chain:
            self.error = (
                f"Wrong network detected! Please switch to {required} in your wallet before making a purchase."
            )
            self.validator.show_chain_modal = True
            return None
        if not self.validator.can_interact_with_contract:
            self.error = f"Cannot interact with contract. Please ensure you're connected to {required}."
            return None

        product = self._find(product_id)
        if product is None:
            self.error = "Product not available"
            return None

        balance = await self.wallet.get_balance()
        if float(balance) < product.price:
            self.error = "Insufficient balance"
            return None

        try:
            self.pending = await self.gateway.purchase_product(product.id, format_price(product.price_wei))
            await self.gateway.confirm(self.pending)
        except UserRejectedError:
            self.error = "Transaction cancelled"
            return None
        except ServiceError as e:
            logger.warning("Purchase failed", product_id=product.id, error=e.message)
            self.error = f"Purchase failed: {e.message}"
            return None

        self.message = f"Purchase successful! Transaction: {self.pending.tx_hash}"
        await self.refresh()
        return Redirect(DASHBOARD_PATH)

"""
Contract gateway - typed reads and chain-guarded writes against the
e-commerce contract.

Reads are cacheable ContractRead objects that are not attempted unless the
wallet is connected to the required chain. Writes check that interaction is
enabled, re-read the chain id from the wallet right before submission, and
pin the transaction to the required chain id.
"""
import asyncio
import json
from decimal import Decimal
from pathlib import Path
from typing import Any, Awaitable, Callable, Generic, List, Optional, Set, TypeVar

import aiohttp
from web3 import AsyncWeb3, Web3
from web3.exceptions import Web3Exception

from chainshop.app.chain.decoding import (
    ContractDecodeError,
    decode_address,
    decode_bool,
    decode_draw_winners,
    decode_products,
    decode_purchase,
    decode_purchases,
    decode_stats,
    decode_uint,
    decode_uint_list,
    decode_user_info,
)
from chainshop.app.chain.transactions import PendingTransaction, TransactionFailedError, TransactionStatus
from chainshop.app.chain.validator import ChainValidator
from chainshop.app.chain.wallet import UserRejectedError, WalletConnector, WalletError, parse_ether
from chainshop.app.core.constants import RECENT_PURCHASES_LIMIT
from chainshop.app.core.exceptions import ServiceError
from chainshop.app.core.logging import get_logger
from chainshop.app.core.metrics import contract_reads_total, contract_transactions_total
from chainshop.app.schemas import ContractPurchase

logger = get_logger(__name__)

T = TypeVar("T")

DEFAULT_ABI_PATH = Path(__file__).parent / "abi" / "ecommerce.json"

# Errors a contract call can end with: reverts, RPC failures, transport failures
CALL_ERRORS = (Web3Exception, ValueError, aiohttp.ClientError, asyncio.TimeoutError)


class ContractInteractionError(ServiceError):
    """Contract interaction is disabled (no wallet / wrong chain)."""

    def __init__(self, message: str):
        super().__init__(message, 409)


class ContractCallError(ServiceError):
    """Provider or contract rejected the call; message is passed through verbatim."""

    def __init__(self, message: str):
        super().__init__(message, 502)


def load_abi(path: Optional[str] = None) -> list:
    abi_path = Path(path) if path else DEFAULT_ABI_PATH
    with open(abi_path, "r", encoding="utf-8") as f:
        return json.load(f)


def format_price(wei: int) -> str:
    """Wei to an ether string without trailing zeros ("0.05", "1")."""
    value = Web3.from_wei(wei, "ether")
    if isinstance(value, Decimal):
        value = value.normalize()
        return format(value, "f")
    return str(value)


def price_in_ether(wei: int) -> float:
    return float(Web3.from_wei(wei, "ether"))


class ContractRead(Generic[T]):
    """One view function: cached result, last error, loading flag."""

    def __init__(
        self,
        gateway: "ContractGateway",
        function: str,
        decoder: Callable[[Any], T],
        args: Callable[[], tuple] = tuple,
        needs_user: bool = False,
    ):
        self.gateway = gateway
        self.function = function
        self.decoder = decoder
        self.args = args
        self.needs_user = needs_user
        self.data: Optional[T] = None
        self.error: Optional[str] = None
        self.is_loading = False
        self.loaded = False

    @property
    def enabled(self) -> bool:
        if not self.gateway.reads_enabled:
            return False
        return not self.needs_user or bool(self.gateway.user_address)

    async def load(self) -> Optional[T]:
        if self.loaded:
            return self.data
        return await self.refetch()

    async def refetch(self) -> Optional[T]:
        if not self.enabled:
            return self.data
        self.is_loading = True
        try:
            raw = await self.gateway.call(self.function, *self.args())
            self.data = self.decoder(raw)
            self.error = None
            self.loaded = True
            contract_reads_total.labels(function=self.function, outcome="ok").inc()
        except ContractDecodeError as e:
            self.error = e.message
            contract_reads_total.labels(function=self.function, outcome="decode_error").inc()
            logger.error("Contract read decode failed", function=self.function, error=e.message)
        except CALL_ERRORS as e:
            self.error = str(e) or type(e).__name__
            contract_reads_total.labels(function=self.function, outcome="error").inc()
            logger.warning("Contract read failed", function=self.function, error=self.error)
        finally:
            self.is_loading = False
        return self.data

    def reset(self) -> None:
        self.data = None
        self.error = None
        self.loaded = False


class ContractGateway:
    """Service class for e-commerce contract operations."""

    def __init__(
        self,
        w3: AsyncWeb3,
        wallet: WalletConnector,
        validator: ChainValidator,
        address: str,
        abi: Optional[list] = None,
        receipt_timeout: float = 120.0,
        receipt_poll_interval: float = 2.0,
    ):
        self.w3 = w3
        self.wallet = wallet
        self.validator = validator
        self.address = Web3.to_checksum_address(address)
        self.contract = w3.eth.contract(address=self.address, abi=abi if abi is not None else load_abi())
        self.receipt_timeout = receipt_timeout
        self.receipt_poll_interval = receipt_poll_interval
        self.write_error: Optional[str] = None
        self.last_transaction: Optional[PendingTransaction] = None
        self._reads_owner: Optional[str] = wallet.address
        self._confirmation_callbacks: List[Callable[[PendingTransaction], Awaitable[None]]] = []

        user = lambda: (self.user_address,)  # noqa: E731

        self.products = ContractRead(self, "getAllProducts", decode_products)
        self.active_products = ContractRead(self, "getActiveProducts", decode_products)
        self.stats = ContractRead(self, "getStats", decode_stats)
        self.product_count = ContractRead(self, "productCount", decode_uint)
        self.contract_balance = ContractRead(self, "getContractBalance", decode_uint)
        self.recent_purchases = ContractRead(
            self, "getRecentPurchases", decode_purchases, args=lambda: (RECENT_PURCHASES_LIMIT,)
        )
        self.draw_history = ContractRead(self, "getDrawHistory", decode_draw_winners)
        self.latest_draw = ContractRead(self, "getLatestDraw", decode_draw_winners)
        self.user_purchases = ContractRead(self, "getUserPurchases", decode_uint_list, args=user, needs_user=True)
        self.user_info = ContractRead(self, "getUserInfo", decode_user_info, args=user, needs_user=True)
        self.user_referrer = ContractRead(self, "getReferrer", decode_address, args=user, needs_user=True)
        self.user_draw_eligibility = ContractRead(
            self, "isEligibleForDraw", decode_bool, args=user, needs_user=True
        )

    # -- state --------------------------------------------------------------

    @property
    def user_address(self) -> Optional[str]:
        address = self.wallet.address
        return Web3.to_checksum_address(address) if address else None

    @property
    def reads_enabled(self) -> bool:
        return self.validator.can_interact_with_contract

    @property
    def can_interact_with_contract(self) -> bool:
        return self.validator.can_interact_with_contract

    @property
    def reads(self) -> List[ContractRead]:
        return [
            self.products, self.active_products, self.stats, self.product_count,
            self.contract_balance, self.recent_purchases, self.draw_history, self.latest_draw,
            self.user_purchases, self.user_info, self.user_referrer, self.user_draw_eligibility,
        ]

    @property
    def user_reads(self) -> List[ContractRead]:
        return [r for r in self.reads if r.needs_user]

    @property
    def error(self) -> Optional[str]:
        if self.write_error:
            return self.write_error
        return next((r.error for r in self.reads if r.error), None)

    def clear_error(self) -> None:
        self.write_error = None

    async def call(self, function: str, *args) -> Any:
        return await getattr(self.contract.functions, function)(*args).call()

    async def load_all(self) -> None:
        await asyncio.gather(*(r.load() for r in self.reads if r.enabled))

    def reset_user_reads(self) -> None:
        """Forget per-user data, e.g. after the wallet account changed."""
        for read in self.user_reads:
            read.reset()
        self._reads_owner = self.wallet.address

    def track_wallet(self) -> None:
        """Drop cached per-user reads whenever the connected account changes or goes away."""
        self.wallet.on_accounts_changed(self._on_accounts_changed)

    def _on_accounts_changed(self, accounts: list) -> None:
        address = accounts[0] if accounts and self.wallet.is_connected else None
        if (address or "").lower() != (self._reads_owner or "").lower():
            self.reset_user_reads()

    # -- helpers ------------------------------------------------------------

    format_price = staticmethod(format_price)
    price_in_ether = staticmethod(price_in_ether)

    async def get_purchase(self, purchase_id: int) -> ContractPurchase:
        if not self.reads_enabled:
            raise ContractInteractionError(self.validator.blocking_reason("load purchases"))
        try:
            raw = await self.call("getPurchase", purchase_id)
        except CALL_ERRORS as e:
            raise ContractCallError(str(e))
        return decode_purchase(raw)

    async def purchased_product_ids(self) -> Set[int]:
        purchase_ids = await self.user_purchases.load() or []
        purchases = await asyncio.gather(*(self.get_purchase(pid) for pid in purchase_ids))
        return {p.product_id for p in purchases}

    async def has_purchased_product(self, product_id: int) -> bool:
        return product_id in await self.purchased_product_ids()

    # -- writes -------------------------------------------------------------

    def on_confirmed(self, callback: Callable[[PendingTransaction], Awaitable[None]]) -> None:
        self._confirmation_callbacks.append(callback)

    async def purchase_product(self, product_id: int, price_ether: Any) -> PendingTransaction:
        return await self._submit(
            "purchaseProduct", (int(product_id),), "make purchases", value=parse_ether(price_ether)
        )

    async def register_user(self, referrer_address: str) -> PendingTransaction:
        return await self._submit("registerUser", (Web3.to_checksum_address(referrer_address),), "register")

    async def add_product(self, name: str, price_ether: Any) -> PendingTransaction:
        return await self._submit("addProduct", (name, parse_ether(price_ether)), "add products")

    async def update_product(self, product_id: int, name: str, price_ether: Any, active: bool) -> PendingTransaction:
        return await self._submit(
            "updateProduct", (int(product_id), name, parse_ether(price_ether), bool(active)), "update products"
        )

    async def execute_lucky_draw(self) -> PendingTransaction:
        return await self._submit("executeLuckyDraw", (), "execute draws")

    async def _submit(self, function: str, args: tuple, action: str, value: int = 0) -> PendingTransaction:
        reason = self.validator.blocking_reason(action)
        if reason:
            self.write_error = reason
            raise ContractInteractionError(reason)

        # The wallet may have switched chains since the validator last looked
        try:
            chain_id = await self.wallet.get_chain_id()
            self.validator.validate_before_transaction(chain_id)
        except WalletError as e:
            self.write_error = e.message
            raise

        self.write_error = None
        required_chain_id = self.validator.required.id
        tx_params = {"from": self.user_address, "chainId": required_chain_id}
        if value:
            tx_params["value"] = value

        try:
            tx = await getattr(self.contract.functions, function)(*args).build_transaction(tx_params)
            tx["chainId"] = required_chain_id
            tx_hash = await self.wallet.send_transaction(tx)
        except UserRejectedError as e:
            self.write_error = e.message
            contract_transactions_total.labels(function=function, outcome="rejected").inc()
            raise
        except WalletError as e:
            self.write_error = e.message
            contract_transactions_total.labels(function=function, outcome="error").inc()
            raise
        except CALL_ERRORS as e:
            self.write_error = str(e)
            contract_transactions_total.labels(function=function, outcome="error").inc()
            raise ContractCallError(str(e))

        pending = PendingTransaction(function=function, tx_hash=tx_hash, chain_id=required_chain_id)
        pending.advance(TransactionStatus.PENDING)
        self.last_transaction = pending
        contract_transactions_total.labels(function=function, outcome="submitted").inc()
        logger.info("Transaction submitted", function=function, tx_hash=tx_hash, chain_id=required_chain_id)
        return pending

    async def confirm(self, pending: PendingTransaction) -> PendingTransaction:
        """
        Wait for the receipt. Confirmation callbacks (refetches) run only when
        the receipt reports success.
        """
        try:
            receipt = await self.w3.eth.wait_for_transaction_receipt(
                pending.tx_hash,
                timeout=self.receipt_timeout,
                poll_latency=self.receipt_poll_interval,
            )
        except CALL_ERRORS as e:
            pending.advance(TransactionStatus.ERRORED, error=str(e))
            self.write_error = str(e)
            contract_transactions_total.labels(function=pending.function, outcome="errored").inc()
            raise TransactionFailedError(pending.tx_hash, str(e))

        if receipt.get("status") != 1:
            pending.advance(TransactionStatus.ERRORED, receipt=receipt, error="reverted")
            self.write_error = f"Transaction {pending.tx_hash} reverted"
            contract_transactions_total.labels(function=pending.function, outcome="reverted").inc()
            raise TransactionFailedError(pending.tx_hash, "reverted")

        pending.advance(TransactionStatus.CONFIRMED, receipt=receipt)
        contract_transactions_total.labels(function=pending.function, outcome="confirmed").inc()
        logger.info("Transaction confirmed", function=pending.function, tx_hash=pending.tx_hash)

        await self._refetch_after_confirmation()
        for callback in list(self._confirmation_callbacks):
            await callback(pending)
        return pending

    async def _refetch_after_confirmation(self) -> None:
        await asyncio.gather(
            self.products.refetch(),
            self.active_products.refetch(),
            self.user_purchases.refetch(),
            self.user_info.refetch(),
            self.stats.refetch(),
        )

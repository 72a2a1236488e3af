"""
Wallet connector over an EIP-1193 style provider.

The provider exposes a single ``request(method, params)`` coroutine. The
connector turns it into address / balance / chain id state, native transfers
and change notifications.
"""
import inspect
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Dict, List, Optional, Protocol

from eth_account.signers.local import LocalAccount
from web3 import AsyncWeb3, Web3
from web3.exceptions import Web3Exception
from web3.types import RPCEndpoint

from chainshop.app.core.constants import USER_REJECTED_CODE
from chainshop.app.core.exceptions import ServiceError
from chainshop.app.core.logging import bind_wallet_context, get_logger

logger = get_logger(__name__)


class WalletError(ServiceError):
    """Base exception for wallet/provider errors."""

    def __init__(self, message: str, code: Optional[int] = None, status_code: int = 400):
        self.code = code
        super().__init__(message, status_code)


class ProviderRPCError(WalletError):
    """Raw provider error; message is passed through verbatim."""


class UserRejectedError(WalletError):
    """The user declined the request in the wallet. Not retryable."""

    def __init__(self, message: str = "User rejected the request."):
        super().__init__(message, USER_REJECTED_CODE)


class WalletNotConnectedError(WalletError):
    def __init__(self):
        super().__init__("Wallet not connected")


def is_user_rejection(error: Exception) -> bool:
    return getattr(error, "code", None) == USER_REJECTED_CODE


class WalletProvider(Protocol):
    async def request(self, method: str, params: Optional[list] = None) -> Any:
        ...


def _rpc_error_from(exc: Exception) -> ProviderRPCError:
    code = None
    message = str(exc)
    rpc_response = getattr(exc, "rpc_response", None)
    error = rpc_response.get("error") if isinstance(rpc_response, dict) else None
    if error is None and exc.args and isinstance(exc.args[0], dict):
        error = exc.args[0]
    if isinstance(error, dict):
        code = error.get("code")
        message = error.get("message") or message
    return ProviderRPCError(message, code)


class Web3WalletProvider:
    """
    Provider backed by web3.py.

    With a local account, accounts are answered locally and transactions are
    signed client-side; otherwise the RPC node's own accounts are used.
    """

    def __init__(self, w3: AsyncWeb3, account: Optional[LocalAccount] = None):
        self.w3 = w3
        self.account = account

    async def request(self, method: str, params: Optional[list] = None) -> Any:
        params = list(params or [])
        try:
            if method in ("eth_requestAccounts", "eth_accounts") and self.account is not None:
                return [self.account.address]
            if method == "eth_sendTransaction":
                return await self._send_transaction(dict(params[0]))
            response = await self.w3.provider.make_request(RPCEndpoint(method), params)
        except (Web3Exception, ValueError) as e:
            raise _rpc_error_from(e)

        if response.get("error"):
            error = response["error"]
            raise ProviderRPCError(error.get("message", "Provider error"), error.get("code"))
        return response.get("result")

    async def _send_transaction(self, tx: Dict[str, Any]) -> str:
        if self.account is None:
            tx_hash = await self.w3.eth.send_transaction(tx)
            return Web3.to_hex(tx_hash)

        tx.setdefault("from", self.account.address)
        if "nonce" not in tx:
            tx["nonce"] = await self.w3.eth.get_transaction_count(self.account.address, "pending")
        if "gas" not in tx:
            tx["gas"] = await self.w3.eth.estimate_gas(tx)
        if "gasPrice" not in tx and "maxFeePerGas" not in tx:
            tx["gasPrice"] = await self.w3.eth.gas_price
        signed = self.account.sign_transaction(tx)
        tx_hash = await self.w3.eth.send_raw_transaction(signed.raw_transaction)
        return Web3.to_hex(tx_hash)


@dataclass
class WalletState:
    address: Optional[str] = None
    balance: Optional[str] = None
    chain_id: Optional[int] = None
    is_connected: bool = False


def _to_int(value: Any) -> int:
    if isinstance(value, int):
        return value
    return int(str(value), 16)


def format_ether(wei: int, places: int = 4) -> str:
    return f"{Web3.from_wei(wei, 'ether'):.{places}f}"


def parse_ether(amount: Any) -> int:
    try:
        return Web3.to_wei(Decimal(str(amount)), "ether")
    except (InvalidOperation, ValueError):
        raise WalletError(f"Invalid amount: {amount}")


class WalletConnector:
    """Connection state for one wallet provider plus change listeners."""

    ACCOUNTS_CHANGED = "accountsChanged"
    CHAIN_CHANGED = "chainChanged"

    def __init__(self, provider: WalletProvider):
        self.provider = provider
        self.state = WalletState()
        self._listeners: Dict[str, List[Callable]] = {self.ACCOUNTS_CHANGED: [], self.CHAIN_CHANGED: []}

    @property
    def address(self) -> Optional[str]:
        return self.state.address

    @property
    def is_connected(self) -> bool:
        return self.state.is_connected

    @property
    def chain_id(self) -> Optional[int]:
        return self.state.chain_id

    async def connect(self) -> WalletState:
        try:
            accounts = await self.provider.request("eth_requestAccounts")
        except WalletError as e:
            if is_user_rejection(e):
                raise UserRejectedError("User rejected the connection request.")
            raise WalletError(f"Failed to connect wallet: {e.message}", e.code)

        if not accounts:
            raise WalletError("No accounts found. Please unlock your wallet.")

        address = accounts[0]
        chain_id = await self.get_chain_id()
        balance = await self.get_balance(address)
        self.state = WalletState(address=address, balance=balance, chain_id=chain_id, is_connected=True)
        bind_wallet_context(address, chain_id)
        logger.info("Wallet connected")
        await self._emit(self.ACCOUNTS_CHANGED, [address])
        await self._emit(self.CHAIN_CHANGED, chain_id)
        return self.state

    async def disconnect(self) -> None:
        was_connected = self.state.is_connected
        self.state = WalletState()
        bind_wallet_context(None, None)
        if was_connected:
            logger.info("Wallet disconnected")
            await self._emit(self.ACCOUNTS_CHANGED, [])

    async def get_balance(self, address: Optional[str] = None) -> str:
        address = address or self.state.address
        if not address:
            raise WalletNotConnectedError()
        try:
            raw = await self.provider.request("eth_getBalance", [address, "latest"])
            return format_ether(_to_int(raw))
        except (WalletError, ValueError) as e:
            logger.warning("Balance lookup failed", address=address, error=str(e))
            return "0.0000"

    async def get_chain_id(self) -> int:
        raw = await self.provider.request("eth_chainId")
        try:
            return _to_int(raw)
        except (TypeError, ValueError):
            raise WalletError(f"Provider returned an invalid chain id: {raw!r}")

    async def send_transaction(self, tx: Dict[str, Any]) -> str:
        """Submit a prepared transaction through the provider and return its hash."""
        if not self.state.is_connected:
            raise WalletNotConnectedError()
        tx = dict(tx)
        tx.setdefault("from", self.state.address)
        try:
            return await self.provider.request("eth_sendTransaction", [tx])
        except WalletError as e:
            if is_user_rejection(e):
                raise UserRejectedError("User rejected the transaction.")
            raise

    async def send_native(self, to: str, amount_ether: Any) -> str:
        value = parse_ether(amount_ether)
        try:
            return await self.send_transaction({"to": to, "value": value})
        except UserRejectedError:
            raise
        except WalletNotConnectedError:
            raise
        except WalletError as e:
            raise WalletError(f"Transaction failed: {e.message}", e.code)

    async def sync(self) -> WalletState:
        """
        Re-read accounts and chain id from the provider and emit change events.
        Stands in for provider push events, which JSON-RPC endpoints do not have.
        """
        if not self.state.is_connected:
            return self.state
        accounts = await self.provider.request("eth_accounts")
        if not accounts:
            await self.disconnect()
            return self.state

        if accounts[0].lower() != (self.state.address or "").lower():
            self.state.address = accounts[0]
            self.state.balance = await self.get_balance(accounts[0])
            bind_wallet_context(accounts[0], self.state.chain_id)
            await self._emit(self.ACCOUNTS_CHANGED, list(accounts))

        chain_id = await self.get_chain_id()
        if chain_id != self.state.chain_id:
            logger.info("Chain changed", previous=self.state.chain_id, current=chain_id)
            self.state.chain_id = chain_id
            bind_wallet_context(self.state.address, chain_id)
            await self._emit(self.CHAIN_CHANGED, chain_id)
        return self.state

    # -- listeners ----------------------------------------------------------

    def on_accounts_changed(self, callback: Callable) -> None:
        self._listeners[self.ACCOUNTS_CHANGED].append(callback)

    def on_chain_changed(self, callback: Callable) -> None:
        self._listeners[self.CHAIN_CHANGED].append(callback)

    def remove_listener(self, event: str, callback: Callable) -> None:
        listeners = self._listeners[event]
        if callback in listeners:
            listeners.remove(callback)

    def listener_count(self, event: str) -> int:
        return len(self._listeners[event])

    def remove_all_listeners(self) -> None:
        for listeners in self._listeners.values():
            listeners.clear()

    async def _emit(self, event: str, payload: Any) -> None:
        for callback in list(self._listeners[event]):
            result = callback(payload)
            if inspect.isawaitable(result):
                await result

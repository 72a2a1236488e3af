"""
Test fixtures for chainshop tests.

Provides:
- In-process aiohttp fake of the backend REST API
- Fake EIP-1193 wallet provider
- Fake web3 contract / AsyncWeb3 built on unittest.mock
- Wired wallet connector, chain validator and contract gateway
"""
# IMPORTANT: Set environment variables BEFORE any other imports
import os

os.environ.setdefault("ENVIRONMENT", "development")
os.environ.setdefault("SESSION_BACKEND", "memory")
os.environ.setdefault("LOG_LEVEL", "DEBUG")

import pytest
from types import SimpleNamespace
from typing import Any, AsyncGenerator, Dict, List, Optional
from unittest.mock import AsyncMock, MagicMock

from aiohttp import web
from aiohttp.test_utils import TestServer

from chainshop.app.api_client.base import BackendClient
from chainshop.app.chain.chains import BSC_TESTNET
from chainshop.app.chain.contract import ContractGateway
from chainshop.app.chain.validator import ChainValidator
from chainshop.app.chain.wallet import WalletConnector, WalletError
from chainshop.app.services.session import MemorySessionStorage, SessionStore


CONTRACT_ADDRESS = "0xA39bC71CF47AE2C84C7868b0DE83eeBAddb270Fd"
USER_WALLET = "0x1234567890abcdef1234567890abcdef12345678"
OTHER_WALLET = "0xabcdef0123456789abcdef0123456789abcdef01"
REFERRER_WALLET = "0x9999999999999999999999999999999999999999"
ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"
TX_HASH = "0x" + "ab" * 32
ONE_ETHER = 10**18


# --- Fake backend ---

class FakeBackend:
    """Canned JSON responses keyed by (method, path below /api)."""

    def __init__(self):
        self.routes: Dict[tuple, tuple] = {}
        self.requests: List[SimpleNamespace] = []
        self.base_url = ""

    def respond(self, method: str, path: str, body: Any, status: int = 200) -> None:
        self.routes[(method.upper(), path)] = (status, body)

    def last(self, method: str, path: str) -> Optional[SimpleNamespace]:
        matches = [r for r in self.requests if r.method == method.upper() and r.path == path]
        return matches[-1] if matches else None

    async def handler(self, request: web.Request) -> web.Response:
        path = request.path[len("/api"):] if request.path.startswith("/api") else request.path
        payload = await request.json() if request.can_read_body else None
        self.requests.append(
            SimpleNamespace(method=request.method, path=path, headers=dict(request.headers), json=payload)
        )
        route = self.routes.get((request.method, path))
        if route is None:
            return web.json_response({"success": False, "message": "Not found"}, status=404)
        status, body = route
        if isinstance(body, str):
            return web.Response(text=body, status=status, content_type="text/html")
        return web.json_response(body, status=status)


@pytest.fixture
async def fake_backend() -> AsyncGenerator[FakeBackend, None]:
    backend = FakeBackend()
    app = web.Application()
    app.router.add_route("*", "/{tail:.*}", backend.handler)
    server = TestServer(app)
    await server.start_server()
    backend.base_url = str(server.make_url("/api"))
    yield backend
    await server.close()


@pytest.fixture
def session_store() -> SessionStore:
    return SessionStore(MemorySessionStorage())


@pytest.fixture
async def backend_client(fake_backend: FakeBackend, session_store: SessionStore) -> AsyncGenerator[BackendClient, None]:
    client = BackendClient(fake_backend.base_url, token_provider=session_store.token, timeout=5)
    yield client
    await client.close()


# --- Fake wallet provider ---

class FakeProvider:
    """EIP-1193 style provider with scripted accounts, chain and errors."""

    def __init__(self, accounts: Optional[list] = None, chain_id: int = 97, balance: int = ONE_ETHER):
        self.accounts = list(accounts if accounts is not None else [USER_WALLET])
        self.chain_id = chain_id
        self.balance = balance
        self.errors: Dict[str, Exception] = {}
        self.calls: List[tuple] = []
        self.sent: List[dict] = []

    async def request(self, method: str, params: Optional[list] = None) -> Any:
        self.calls.append((method, params))
        if method in self.errors:
            raise self.errors[method]
        if method in ("eth_requestAccounts", "eth_accounts"):
            return list(self.accounts)
        if method == "eth_chainId":
            return hex(self.chain_id)
        if method == "eth_getBalance":
            return hex(self.balance)
        if method == "eth_sendTransaction":
            self.sent.append(params[0])
            return TX_HASH
        if method == "wallet_switchEthereumChain":
            self.chain_id = int(params[0]["chainId"], 16)
            return None
        if method == "wallet_addEthereumChain":
            self.chain_id = int(params[0]["chainId"], 16)
            return None
        raise WalletError(f"Unsupported method {method}")

    def methods(self) -> List[str]:
        return [m for m, _ in self.calls]


@pytest.fixture
def provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def wallet(provider: FakeProvider) -> WalletConnector:
    return WalletConnector(provider)


@pytest.fixture
def validator(provider: FakeProvider, wallet: WalletConnector) -> ChainValidator:
    chain_validator = ChainValidator(BSC_TESTNET, provider)
    chain_validator.track(wallet)
    return chain_validator


# --- Fake contract ---

def product_tuple(product_id: int, name: str, price: int, active: bool = True, sold: int = 0) -> tuple:
    return (product_id, name, price, active, sold)


def purchase_tuple(purchase_id: int, product_id: int, buyer: str = USER_WALLET) -> tuple:
    return (purchase_id, product_id, f"Product {product_id}", 5 * 10**16, buyer, ZERO_ADDRESS, 0, 1714521600)


def default_contract_results() -> Dict[str, Any]:
    return {
        "getAllProducts": [
            product_tuple(1, "Starter Pack", 5 * 10**16, True, 3),
            product_tuple(2, "Pro Pack", 2 * 10**17, True, 1),
            product_tuple(3, "Retired Pack", 10**17, False, 9),
        ],
        "getActiveProducts": [
            product_tuple(1, "Starter Pack", 5 * 10**16, True, 3),
            product_tuple(2, "Pro Pack", 2 * 10**17, True, 1),
        ],
        "getStats": (12, 30, 3, 4, 2 * ONE_ETHER, 1),
        "productCount": 3,
        "getContractBalance": 2 * ONE_ETHER,
        "getRecentPurchases": [purchase_tuple(7, 1)],
        "getDrawHistory": [],
        "getLatestDraw": [],
        "getUserPurchases": [7],
        "getUserInfo": (USER_WALLET, 5 * 10**16, 2 * 10**16, 1, True, 1714521600),
        "getReferrer": ZERO_ADDRESS,
        "isEligibleForDraw": True,
        "getPurchase": lambda purchase_id: purchase_tuple(purchase_id, 1),
    }


class FakeContractFunction:
    def __init__(self, contract: "FakeContract", name: str, args: tuple):
        self.contract = contract
        self.name = name
        self.args = args

    async def call(self) -> Any:
        self.contract.calls.append((self.name, self.args))
        result = self.contract.results[self.name]
        if isinstance(result, Exception):
            raise result
        if callable(result):
            return result(*self.args)
        return result

    async def build_transaction(self, params: dict) -> dict:
        self.contract.built.append((self.name, self.args, dict(params)))
        error = self.contract.build_errors.get(self.name)
        if error is not None:
            raise error
        return {"to": self.contract.address, "data": f"0x{self.name}", "gas": 21000, **params}


class FakeFunctions:
    def __init__(self, contract: "FakeContract"):
        self._contract = contract

    def __getattr__(self, name: str):
        return lambda *args: FakeContractFunction(self._contract, name, args)


class FakeContract:
    def __init__(self, address: str = CONTRACT_ADDRESS):
        self.address = address
        self.results = default_contract_results()
        self.build_errors: Dict[str, Exception] = {}
        self.calls: List[tuple] = []
        self.built: List[tuple] = []
        self.functions = FakeFunctions(self)

    def called(self, name: str) -> int:
        return sum(1 for n, _ in self.calls if n == name)


@pytest.fixture
def fake_contract() -> FakeContract:
    return FakeContract()


@pytest.fixture
def fake_w3(fake_contract: FakeContract) -> MagicMock:
    w3 = MagicMock()
    w3.eth.contract.return_value = fake_contract
    w3.eth.wait_for_transaction_receipt = AsyncMock(return_value={"status": 1, "transactionHash": TX_HASH})
    return w3


@pytest.fixture
def gateway(fake_w3: MagicMock, wallet: WalletConnector, validator: ChainValidator) -> ContractGateway:
    gateway = ContractGateway(fake_w3, wallet, validator, CONTRACT_ADDRESS, abi=[])
    gateway.track_wallet()
    return gateway


@pytest.fixture
async def connected_wallet(wallet: WalletConnector, validator: ChainValidator) -> WalletConnector:
    """Wallet connected on BSC Testnet; the validator follows it."""
    await wallet.connect()
    return wallet


# --- Backend payload factories ---

def relationship_payload(referee: str = OTHER_WALLET, commissions: float = 0.005, active: bool = True, **extra) -> dict:
    return {
        "referrerWallet": USER_WALLET,
        "refereeWallet": referee,
        "referrerId": "12345678",
        "refereeId": referee[2:10],
        "joinDate": "2024-05-01T10:00:00Z",
        "totalPurchases": 0.05,
        "totalCommissions": commissions,
        "isActive": active,
        **extra,
    }


def commission_payload(commission_id: str = "c1", amount: float = 0.005, status: str = "completed", date: str = "2024-05-01T10:00:00Z") -> dict:
    return {
        "id": commission_id,
        "referrerId": "12345678",
        "refereeId": "abcdef01",
        "purchaseAmount": amount * 10,
        "commissionAmount": amount,
        "commissionRate": 0.1,
        "transactionHash": TX_HASH,
        "date": date,
        "status": status,
    }


def stats_payload(**overrides) -> dict:
    stats = {
        "totalReferrals": 4,
        "activeReferrals": 3,
        "totalCommissions": 0.02,
        "pendingCommissions": 0.005,
        "conversionRate": 12.0,
        "topPerformers": [],
        "monthlyEarnings": 0.01,
        "weeklyEarnings": 0.005,
    }
    stats.update(overrides)
    return stats

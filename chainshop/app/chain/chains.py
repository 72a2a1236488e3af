"""
Chain descriptors and display names.
"""
from dataclasses import dataclass, field
from typing import Optional


@dataclass(frozen=True)
class NativeCurrency:
    name: str
    symbol: str
    decimals: int = 18


@dataclass(frozen=True)
class ChainDescriptor:
    id: int
    name: str
    native_currency: NativeCurrency
    rpc_urls: tuple = field(default_factory=tuple)
    explorer_url: Optional[str] = None

    @property
    def hex_id(self) -> str:
        return hex(self.id)

    def to_add_chain_params(self) -> dict:
        """Parameters for a ``wallet_addEthereumChain`` request."""
        params = {
            "chainId": self.hex_id,
            "chainName": self.name,
            "nativeCurrency": {
                "name": self.native_currency.name,
                "symbol": self.native_currency.symbol,
                "decimals": self.native_currency.decimals,
            },
            "rpcUrls": list(self.rpc_urls[:1]),
        }
        if self.explorer_url:
            params["blockExplorerUrls"] = [self.explorer_url]
        return params


BSC_TESTNET = ChainDescriptor(
    id=97,
    name="BSC Testnet",
    native_currency=NativeCurrency(name="BNB", symbol="tBNB"),
    rpc_urls=("https://data-seed-prebsc-1-s1.bnbchain.org:8545",),
    explorer_url="https://testnet.bscscan.com",
)

CHAIN_NAMES = {
    1: "Ethereum Mainnet",
    56: "BSC Mainnet",
    97: "BSC Testnet",
    137: "Polygon",
    80001: "Polygon Mumbai",
    11155111: "Sepolia Testnet",
    167012: "Kasplex Testnet",
}

KNOWN_CHAINS = {BSC_TESTNET.id: BSC_TESTNET}


def chain_name(chain_id: Optional[int]) -> str:
    return CHAIN_NAMES.get(chain_id or 0, f"Chain {chain_id or 0}")


def required_chain(chain_id: int, rpc_url: Optional[str] = None) -> ChainDescriptor:
    """Descriptor for the configured chain; the RPC URL from settings goes first."""
    base = KNOWN_CHAINS.get(chain_id)
    if base is None:
        base = ChainDescriptor(
            id=chain_id,
            name=chain_name(chain_id),
            native_currency=NativeCurrency(name="Ether", symbol="ETH"),
        )
    if rpc_url and rpc_url not in base.rpc_urls:
        return ChainDescriptor(
            id=base.id,
            name=base.name,
            native_currency=base.native_currency,
            rpc_urls=(rpc_url,) + tuple(base.rpc_urls),
            explorer_url=base.explorer_url,
        )
    return base

"""
Strict decoders for ABI-decoded contract return values.

web3 hands struct outputs back as plain tuples. Each decoder maps tuple
positions to named fields and validates types; a tuple of the wrong arity or
with a wrong-typed member raises ContractDecodeError instead of defaulting.
"""
from collections.abc import Mapping, Sequence
from typing import Any, List, Type, TypeVar

from pydantic import BaseModel, ValidationError

from chainshop.app.core.exceptions import ServiceError
from chainshop.app.schemas import (
    ContractProduct,
    ContractPurchase,
    ContractStats,
    ContractUserInfo,
    DrawWinner,
)

M = TypeVar("M", bound=BaseModel)


class ContractDecodeError(ServiceError):
    def __init__(self, what: str, detail: str):
        super().__init__(f"Malformed {what} returned by contract: {detail}", 502)


# ABI field order, as declared by the contract structs
PRODUCT_FIELDS = ("id", "name", "price", "active", "totalSold")
USER_FIELDS = ("wallet", "totalSpent", "totalCommissions", "purchaseCount", "eligibleForDraw", "lastPurchaseTime")
PURCHASE_FIELDS = ("id", "productId", "productName", "amount", "buyer", "referrer", "commission", "timestamp")
DRAW_WINNER_FIELDS = ("winner", "prize", "position", "round", "timestamp")
STATS_FIELDS = ("totalUsers", "totalPurchases", "totalProducts", "eligibleForDraw", "contractBalance", "totalDraws")


def _snake(name: str) -> str:
    return "".join(f"_{c.lower()}" if c.isupper() else c for c in name)


def _decode(model: Type[M], fields: tuple, raw: Any, what: str) -> M:
    if isinstance(raw, Mapping):
        missing = [f for f in fields if f not in raw]
        if missing:
            raise ContractDecodeError(what, f"missing fields {missing}")
        values = {_snake(f): raw[f] for f in fields}
    elif isinstance(raw, Sequence) and not isinstance(raw, (str, bytes)):
        if len(raw) != len(fields):
            raise ContractDecodeError(what, f"expected {len(fields)} members, got {len(raw)}")
        values = {_snake(f): v for f, v in zip(fields, raw)}
    else:
        raise ContractDecodeError(what, f"unexpected type {type(raw).__name__}")

    try:
        return model.model_validate(values)
    except ValidationError as e:
        raise ContractDecodeError(what, "; ".join(err["msg"] for err in e.errors()))


def _decode_list(model: Type[M], fields: tuple, raw: Any, what: str) -> List[M]:
    if raw is None:
        return []
    if not isinstance(raw, Sequence) or isinstance(raw, (str, bytes)):
        raise ContractDecodeError(f"{what} list", f"unexpected type {type(raw).__name__}")
    return [_decode(model, fields, item, what) for item in raw]


def decode_product(raw: Any) -> ContractProduct:
    return _decode(ContractProduct, PRODUCT_FIELDS, raw, "product")


def decode_products(raw: Any) -> List[ContractProduct]:
    return _decode_list(ContractProduct, PRODUCT_FIELDS, raw, "product")


def decode_user_info(raw: Any) -> ContractUserInfo:
    return _decode(ContractUserInfo, USER_FIELDS, raw, "user info")


def decode_purchase(raw: Any) -> ContractPurchase:
    return _decode(ContractPurchase, PURCHASE_FIELDS, raw, "purchase")


def decode_purchases(raw: Any) -> List[ContractPurchase]:
    return _decode_list(ContractPurchase, PURCHASE_FIELDS, raw, "purchase")


def decode_draw_winners(raw: Any) -> List[DrawWinner]:
    return _decode_list(DrawWinner, DRAW_WINNER_FIELDS, raw, "draw winner")


def decode_stats(raw: Any) -> ContractStats:
    return _decode(ContractStats, STATS_FIELDS, raw, "stats")


def decode_uint(raw: Any, what: str = "uint256") -> int:
    if isinstance(raw, bool) or not isinstance(raw, int):
        raise ContractDecodeError(what, f"expected integer, got {type(raw).__name__}")
    if raw < 0:
        raise ContractDecodeError(what, "negative value")
    return raw


def decode_uint_list(raw: Any, what: str = "uint256[]") -> List[int]:
    if not isinstance(raw, Sequence) or isinstance(raw, (str, bytes)):
        raise ContractDecodeError(what, f"unexpected type {type(raw).__name__}")
    return [decode_uint(item, what) for item in raw]


def decode_bool(raw: Any, what: str = "bool") -> bool:
    if not isinstance(raw, bool):
        raise ContractDecodeError(what, f"expected bool, got {type(raw).__name__}")
    return raw


def decode_address(raw: Any, what: str = "address") -> str:
    if not isinstance(raw, str) or not raw.startswith("0x") or len(raw) != 42:
        raise ContractDecodeError(what, f"invalid address {raw!r}")
    return raw

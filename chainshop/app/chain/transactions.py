"""
Transaction lifecycle: submitted -> pending confirmation -> confirmed | errored.
"""
import enum
from dataclasses import dataclass, field
from typing import Any, Optional

from chainshop.app.core.exceptions import ServiceError


class TransactionStatus(str, enum.Enum):
    SUBMITTED = "submitted"
    PENDING = "pending"
    CONFIRMED = "confirmed"
    ERRORED = "errored"


_ALLOWED = {
    TransactionStatus.SUBMITTED: {TransactionStatus.PENDING, TransactionStatus.ERRORED},
    TransactionStatus.PENDING: {TransactionStatus.CONFIRMED, TransactionStatus.ERRORED},
    TransactionStatus.CONFIRMED: set(),
    TransactionStatus.ERRORED: set(),
}


class TransactionFailedError(ServiceError):
    def __init__(self, tx_hash: str, reason: str):
        self.tx_hash = tx_hash
        super().__init__(f"Transaction {tx_hash} failed: {reason}", 502)


class InvalidTransactionStateError(ServiceError):
    def __init__(self, current: TransactionStatus, new: TransactionStatus):
        super().__init__(f"Cannot move transaction from {current.value} to {new.value}", 409)


@dataclass
class PendingTransaction:
    function: str
    tx_hash: str
    chain_id: int
    status: TransactionStatus = TransactionStatus.SUBMITTED
    receipt: Optional[Any] = None
    error: Optional[str] = None
    extra: dict = field(default_factory=dict)

    @property
    def is_confirmed(self) -> bool:
        return self.status is TransactionStatus.CONFIRMED

    @property
    def is_final(self) -> bool:
        return self.status in (TransactionStatus.CONFIRMED, TransactionStatus.ERRORED)

    def advance(self, new: TransactionStatus, *, receipt: Any = None, error: Optional[str] = None) -> None:
        if new not in _ALLOWED[self.status]:
            raise InvalidTransactionStateError(self.status, new)
        self.status = new
        if receipt is not None:
            self.receipt = receipt
        if error is not None:
            self.error = error

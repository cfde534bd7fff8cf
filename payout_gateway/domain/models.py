"""Domain models - pure Python dataclasses representing business entities"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, List, Optional


class PayoutStatus(str, Enum):
    """Lifecycle of payouts and transfers"""

    REQUESTED = "REQUESTED"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    PAID = "PAID"


class BatchStatus(str, Enum):
    DRAFT = "DRAFT"
    POSTED = "POSTED"
    DISBURSED = "DISBURSED"
    RECONCILED = "RECONCILED"
    CANCELLED = "CANCELLED"


def payout_amount(approved_amount: Optional[int], requested_amount: Optional[int]) -> int:
    """Approved amount wins over requested; a missing amount counts as zero"""
    if approved_amount is not None:
        return approved_amount
    if requested_amount is not None:
        return requested_amount
    return 0


@dataclass
class CycleWindow:
    """Half-open weekly window [cycle_start, cycle_end) in UTC"""

    cycle_start: datetime
    cycle_end: datetime
    cycle_key: str  # closing Sunday, local date YYYY-MM-DD


@dataclass
class EligiblePayout:
    """Minimal projection of a payout that may be claimed by a transfer"""

    id: str
    user_id: str
    bank_account_id: Optional[str]
    requested_amount: Optional[int]
    approved_amount: Optional[int]

    @property
    def amount(self) -> int:
        return payout_amount(self.approved_amount, self.requested_amount)


@dataclass
class PayoutGroup:
    """All eligible payouts for one (user, bank account) pair"""

    user_id: str
    bank_account_id: str
    payout_ids: List[str] = field(default_factory=list)
    total: int = 0

    @property
    def key(self) -> str:
        return f"{self.user_id}:{self.bank_account_id}"


@dataclass
class GroupFailure:
    """A group whose unit of work was rolled back"""

    user_id: str
    bank_account_id: str
    payout_ids: List[str]
    code: str
    message: str


@dataclass
class TransferRunResult:
    """Outcome of a weekly transfer generation run"""

    window: CycleWindow
    transfers: List[Any]
    failures: List[GroupFailure]


@dataclass
class BatchResult:
    """Batch assembled from existing unbatched transfers"""

    batch: Any
    transfers: List[Any]


@dataclass
class RawBatchResult:
    """Batch assembled directly from payouts, with per-group failures"""

    batch: Any
    transfers: List[Any]
    failures: List[GroupFailure]

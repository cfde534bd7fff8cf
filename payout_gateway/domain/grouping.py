"""Grouping of eligible payouts into (user, bank account) transfer groups"""

from typing import Dict, Iterable, List
from payout_gateway.domain.models import EligiblePayout, PayoutGroup


def group_payouts(payouts: Iterable[EligiblePayout]) -> List[PayoutGroup]:
    """
    Partition payouts by (user_id, bank_account_id).

    Requirements:
    - Totals are exact Python ints; float amounts are rejected
    - Payout ids keep encounter order within a group
    - Groups keep first-seen order
    - Payouts without a bank account are skipped

    Raises:
        TypeError: If a payout amount is not an integer
    """
    groups: Dict[str, PayoutGroup] = {}

    for payout in payouts:
        if payout.bank_account_id is None:
            continue

        amount = payout.amount
        if isinstance(amount, bool) or not isinstance(amount, int):
            raise TypeError(f"Payout {payout.id} amount must be an integer in minor units, got {amount!r}")

        key = f"{payout.user_id}:{payout.bank_account_id}"
        group = groups.get(key)
        if group is None:
            group = PayoutGroup(user_id=payout.user_id, bank_account_id=payout.bank_account_id)
            groups[key] = group

        group.payout_ids.append(payout.id)
        group.total += amount

    return list(groups.values())

"""Domain-specific exceptions"""

from typing import List, Optional


class DomainException(Exception):
    """Base exception for domain layer"""

    code = "domain_error"


class NoEligiblePayoutsError(DomainException):
    """No payouts are ready to be grouped"""

    code = "no_eligible_payouts"

    def __init__(self, message: str, cycle_key: Optional[str] = None):
        super().__init__(message)
        self.cycle_key = cycle_key


class NoEligibleTransfersError(DomainException):
    """No unbatched transfers match the batch request"""

    code = "no_eligible_transfers"

    def __init__(self, message: str, cycle_key: Optional[str] = None):
        super().__init__(message)
        self.cycle_key = cycle_key


class GroupError(DomainException):
    """Failure scoped to a single (user, bank account) group"""


class BankAccountNotFoundError(GroupError):
    """Group references a bank account that no longer exists"""

    code = "bank_account_not_found"


class ConcurrencyConflictError(GroupError):
    """Rows were claimed by another run between selection and update"""

    code = "concurrency_conflict"


class PersistenceFailureError(GroupError):
    """Underlying store rejected the unit of work"""

    code = "persistence_failure"


class NoTransfersCreatedError(DomainException):
    """Every group failed, so nothing was written"""

    code = "no_transfers_created"

    def __init__(self, message: str, failures: Optional[List] = None):
        super().__init__(message)
        self.failures = failures or []

"""
Account Status Module

Status values shared by clients and loans, the precedence rule that derives a
client's status from their loans, and parsing of list filters.
"""

from enum import Enum
from typing import Iterable, Optional

from .exceptions import ValidationError


class AccountStatus(Enum):
    """Lifecycle status of a loan, and the derived status of a client"""
    PENDING = "pending"         # Installments still owed
    PAID = "paid"               # Every installment paid
    DELINQUENT = "delinquent"   # Manually flagged overdue (mora)


# Accepted spellings for list filters; None means "no filter"
_FILTER_ALIASES = {
    "pending": AccountStatus.PENDING,
    "paid": AccountStatus.PAID,
    "delinquent": AccountStatus.DELINQUENT,
    "mora": AccountStatus.DELINQUENT,
    "all": None,
}


def aggregate_client_status(
    loan_statuses: Iterable[AccountStatus],
    current: AccountStatus
) -> AccountStatus:
    """
    Derive a client's status from their loans.

    Precedence is delinquent > paid > pending: any delinquent loan makes the
    client delinquent; otherwise a client whose loans are all paid is paid;
    otherwise any pending loan makes them pending. With no loans the current
    status is returned unchanged.
    """
    statuses = list(loan_statuses)
    if not statuses:
        return current
    if AccountStatus.DELINQUENT in statuses:
        return AccountStatus.DELINQUENT
    if all(s == AccountStatus.PAID for s in statuses):
        return AccountStatus.PAID
    if AccountStatus.PENDING in statuses:
        return AccountStatus.PENDING
    return current


def parse_status_filter(value: Optional[str]) -> Optional[AccountStatus]:
    """Map a query-string status to an AccountStatus, or None for all"""
    if value is None or not value.strip():
        return None
    key = value.strip().lower()
    if key not in _FILTER_ALIASES:
        allowed = ", ".join(_FILTER_ALIASES)
        raise ValidationError(f"Invalid status filter '{value}'. Use one of: {allowed}")
    return _FILTER_ALIASES[key]

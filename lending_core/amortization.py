"""
Amortization Module

Flat-rate installment plans. Interest and the transaction levy are computed once
on the full principal and repeated unchanged on every installment; there is no
declining balance.
"""

from decimal import Decimal
from datetime import date
from dataclasses import dataclass
from typing import Any, List
import calendar

from .exceptions import ValidationError
from .money import ZERO, to_decimal

# 4x1000 transaction levy applied to each installment's base amount
LEVY_RATE = Decimal('0.004')


@dataclass(frozen=True)
class AmortizationEntry:
    """Single row of a flat-rate schedule"""
    installment_number: int
    due_date: date
    principal_portion: Decimal
    interest_portion: Decimal
    levy_portion: Decimal
    installment_amount: Decimal
    remaining_balance: Decimal


@dataclass(frozen=True)
class InstallmentPlan:
    """Monthly figures and totals for a loan"""
    principal: Decimal
    monthly_rate_percent: Decimal
    installment_count: int
    principal_portion: Decimal
    interest_portion: Decimal
    base_installment: Decimal
    levy_portion: Decimal
    installment_amount: Decimal
    total_interest: Decimal
    total_levy: Decimal
    total_payable: Decimal

    def schedule(self, start_date: date) -> List[AmortizationEntry]:
        """Expand the plan into one row per month after start_date"""
        entries = []
        remaining = self.total_payable
        for number in range(1, self.installment_count + 1):
            remaining = max(ZERO, remaining - self.installment_amount)
            if number == self.installment_count:
                remaining = ZERO
            entries.append(AmortizationEntry(
                installment_number=number,
                due_date=add_months(start_date, number),
                principal_portion=self.principal_portion,
                interest_portion=self.interest_portion,
                levy_portion=self.levy_portion,
                installment_amount=self.installment_amount,
                remaining_balance=remaining
            ))
        return entries


def _to_installment_count(value: Any) -> int:
    count = to_decimal(value, "installment_count")
    if count != count.to_integral_value():
        raise ValidationError("installment_count must be a whole number")
    return int(count)


def calculate_installment_plan(
    principal: Any,
    monthly_rate_percent: Any,
    installment_count: Any
) -> InstallmentPlan:
    """
    Compute the flat-rate plan for a loan.

    Args:
        principal: Amount lent, must be > 0
        monthly_rate_percent: Flat monthly interest in percent, must be >= 0
        installment_count: Number of monthly installments, must be >= 1

    Returns:
        InstallmentPlan with the seven derived figures at full precision

    Raises:
        ValidationError: if any input is missing or out of range
    """
    principal = to_decimal(principal, "principal")
    rate_percent = to_decimal(monthly_rate_percent, "monthly_rate")
    count = _to_installment_count(installment_count)

    if principal <= ZERO:
        raise ValidationError("principal must be greater than 0")
    if rate_percent < ZERO:
        raise ValidationError("monthly_rate cannot be negative")
    if count < 1:
        raise ValidationError("installment_count must be at least 1")

    monthly_rate = rate_percent / Decimal('100')
    principal_portion = principal / count
    interest_portion = principal * monthly_rate
    base_installment = principal_portion + interest_portion
    levy_portion = base_installment * LEVY_RATE
    installment_amount = base_installment + levy_portion
    total_interest = interest_portion * count
    total_levy = levy_portion * count

    return InstallmentPlan(
        principal=principal,
        monthly_rate_percent=rate_percent,
        installment_count=count,
        principal_portion=principal_portion,
        interest_portion=interest_portion,
        base_installment=base_installment,
        levy_portion=levy_portion,
        installment_amount=installment_amount,
        total_interest=total_interest,
        total_levy=total_levy,
        total_payable=principal + total_interest + total_levy
    )


def add_months(start_date: date, months: int) -> date:
    """Add months to a date, handling month-end edge cases"""
    month = start_date.month - 1 + months
    year = start_date.year + month // 12
    month = month % 12 + 1
    day = min(start_date.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


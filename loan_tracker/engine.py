"""Core calculation engine for the loan tracker.

This module implements the financial logic behind the tracker: the EMI
(equated monthly installment) formula, the month-by-month amortization
schedule with part payments, the savings comparison between paying with and
without part payments, and a calendar helper counting EMIs already due.

All functions are pure. They read a ``LoanRecord`` and return fresh result
objects without touching storage.
"""

from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal, getcontext
from typing import Dict, Iterable, List, Optional, Tuple

from .data_models import AmortizationRow, LoanRecord, MonthYear, PartPayment, SavingsAnalysis
from .utils import add_month, month_key

getcontext().prec = 28  # increase precision for financial calculations

logger = logging.getLogger(__name__)

# Balances below this are floating residue and are treated as fully paid.
BALANCE_EPSILON = Decimal("0.01")

ZERO = Decimal("0")


def _to_decimal(value) -> Decimal:
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def _monthly_rate(annual_rate) -> Decimal:
    return _to_decimal(annual_rate) / Decimal(12) / Decimal(100)


def calculate_emi(principal, annual_rate, tenure_years: int) -> Decimal:
    """Return the equated monthly installment for a reducing-balance loan.

    The formula is:

        emi = P * r * (1 + r)^n / ((1 + r)^n - 1)

    where ``P`` is the principal, ``r`` is the monthly interest rate
    (``annual_rate / 12 / 100``) and ``n`` is the number of months. When the
    rate is zero, the installment simplifies to ``P / n``.
    """
    if tenure_years <= 0:
        raise ValueError("Tenure must be positive")
    principal = _to_decimal(principal)
    rate_per_month = _monthly_rate(annual_rate)
    months = tenure_years * 12
    if rate_per_month == 0:
        return principal / Decimal(months)
    factor = (1 + rate_per_month) ** months
    return principal * rate_per_month * factor / (factor - 1)


def schedule_cap(record: LoanRecord) -> int:
    """Return the maximum number of rows the generator will produce."""
    return record.scheduled_months * 2


def _prepare_part_payments(
    part_payments: Iterable[PartPayment],
) -> Tuple[Dict[Tuple[int, int], Decimal], Dict[Tuple[int, int], Decimal]]:
    """Sum part payments into display and effect maps.

    The display map is keyed by the month a payment was made, the effect map
    by the following month, when the payment starts reducing the balance.
    """
    display: Dict[Tuple[int, int], Decimal] = {}
    effect: Dict[Tuple[int, int], Decimal] = {}
    for pp in part_payments:
        amount = _to_decimal(pp.amount)
        paid_key = month_key(pp.month, pp.year)
        display[paid_key] = display.get(paid_key, ZERO) + amount
        effect_key = month_key(*add_month(pp.month, pp.year))
        effect[effect_key] = effect.get(effect_key, ZERO) + amount
    return display, effect


def generate_amortization(record: LoanRecord, include_part_payments: bool = True) -> List[AmortizationRow]:
    """Compute the month-by-month amortization schedule for a loan.

    Parameters
    ----------
    record: LoanRecord
        The loan. ``emi_override`` replaces the computed EMI when it is set.
    include_part_payments: bool
        Whether the record's part payments reduce the balance. When False the
        schedule is the plain EMI schedule.

    Returns
    -------
    List[AmortizationRow]
        One row per month, starting at the record's start month. The list
        ends when the balance reaches zero, or after ``schedule_cap(record)``
        rows when the EMI never pays the loan off.
    """
    rate_per_month = _monthly_rate(record.annual_rate)
    if record.emi_override is not None:
        emi = _to_decimal(record.emi_override)
    else:
        emi = calculate_emi(record.principal, record.annual_rate, record.tenure_years)

    if include_part_payments:
        display_map, effect_map = _prepare_part_payments(record.part_payments)
    else:
        display_map, effect_map = {}, {}

    rows: List[AmortizationRow] = []
    balance = _to_decimal(record.principal)
    month, year = record.start_month, record.start_year
    cap = schedule_cap(record)

    for index in range(cap):
        if balance <= BALANCE_EPSILON:
            break
        key = month_key(month, year)

        # Part payment made last month lands before this month's interest
        effect = min(effect_map.get(key, ZERO), balance)
        balance -= effect
        if balance < BALANCE_EPSILON:
            balance = ZERO
        if balance == 0:
            break

        interest = balance * rate_per_month
        principal_portion = emi - interest
        applied_emi = emi
        if principal_portion > balance:
            principal_portion = balance
            applied_emi = balance + interest

        closing_balance = balance - principal_portion
        if closing_balance < BALANCE_EPSILON:
            closing_balance = ZERO

        rows.append(
            AmortizationRow(
                month_index=index,
                month=month,
                year=year,
                opening_balance=balance,
                emi=applied_emi,
                interest=interest,
                principal=principal_portion,
                part_payment=display_map.get(key, ZERO),
                closing_balance=closing_balance,
            )
        )

        balance = closing_balance
        month, year = add_month(month, year)

    if len(rows) == cap and balance > 0:
        logger.warning(
            "Schedule for %r did not converge within %d months; remaining balance %.2f",
            record.name or record.id,
            cap,
            balance,
        )
    logger.debug("Generated %d amortization rows (part payments: %s)", len(rows), include_part_payments)
    return rows


def is_non_amortizing(record: LoanRecord, rows: List[AmortizationRow]) -> bool:
    """Return True when ``rows`` hit the iteration cap without paying off."""
    return len(rows) == schedule_cap(record) and bool(rows) and rows[-1].closing_balance > 0


def _end_date(record: LoanRecord, rows: List[AmortizationRow]) -> MonthYear:
    if not rows:
        return MonthYear(record.start_month, record.start_year)
    return MonthYear(rows[-1].month, rows[-1].year)


def calculate_savings(record: LoanRecord) -> SavingsAnalysis:
    """Compare the schedule without part payments to the one with them."""
    without_pp = generate_amortization(record, include_part_payments=False)
    with_pp = generate_amortization(record, include_part_payments=True)

    original_interest = sum((row.interest for row in without_pp), ZERO)
    reduced_interest = sum((row.interest for row in with_pp), ZERO)

    return SavingsAnalysis(
        original_total_interest=original_interest,
        reduced_total_interest=reduced_interest,
        interest_saved=original_interest - reduced_interest,
        original_tenure_months=len(without_pp),
        reduced_tenure_months=len(with_pp),
        months_saved=len(without_pp) - len(with_pp),
        original_end_date=_end_date(record, without_pp),
        reduced_end_date=_end_date(record, with_pp),
    )


def count_paid_emis(record: LoanRecord, today: Optional[date] = None) -> int:
    """Count the scheduled EMIs whose month is at or before ``today``.

    Only calendar months are compared; the count never exceeds the loan's
    scheduled months.
    """
    if today is None:
        today = date.today()
    current = month_key(today.month, today.year)
    count = 0
    month, year = record.start_month, record.start_year
    for _ in range(record.scheduled_months):
        if month_key(month, year) > current:
            break
        count += 1
        month, year = add_month(month, year)
    return count

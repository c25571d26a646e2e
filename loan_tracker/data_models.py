"""Data models for the loan tracker.

This module defines dataclasses representing the entities used by the
tracker: part payments, the loan record itself, individual amortization rows
and the savings comparison derived from two schedules. Using dataclasses
makes it easy to construct, inspect and serialize these structures.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import List, NamedTuple, Optional


class MonthYear(NamedTuple):
    """A calendar month, used for schedule end dates."""

    month: int
    year: int


@dataclass
class PartPayment:
    """An extra payment made against the principal outside the EMI schedule.

    Attributes
    ----------
    month: int
        The calendar month (1-12) in which the payment was made.
    year: int
        The calendar year in which the payment was made.
    amount: Decimal
        The amount paid. The balance reduction takes effect from the
        following calendar month.
    id: str
        Identifier assigned by the project store. Empty for ad-hoc records.
    """

    month: int
    year: int
    amount: Decimal
    id: str = ""


@dataclass
class LoanRecord:
    """A tracked loan project.

    The amortization engine only reads the loan terms and part payments.
    ``id``, ``name`` and ``created_at`` are bookkeeping for the project store,
    and the pre-EMI fields are informational (persisted and exported only).
    """

    principal: Decimal
    annual_rate: Decimal  # annual nominal interest rate in percent
    tenure_years: int
    start_month: int
    start_year: int
    emi_override: Optional[Decimal] = None
    part_payments: List[PartPayment] = field(default_factory=list)
    name: str = ""
    id: str = ""
    created_at: int = 0  # epoch milliseconds
    pre_emi_interest: Optional[Decimal] = None
    pre_emi_month: Optional[int] = None
    pre_emi_year: Optional[int] = None

    @property
    def scheduled_months(self) -> int:
        return self.tenure_years * 12


@dataclass
class AmortizationRow:
    """One month of an amortization schedule.

    ``opening_balance`` is the balance after any part payment taking effect
    this month and before interest accrues. ``part_payment`` is the amount
    *recorded* in this month, which only reduces the balance next month.
    """

    month_index: int
    month: int
    year: int
    opening_balance: Decimal
    emi: Decimal
    interest: Decimal
    principal: Decimal
    part_payment: Decimal
    closing_balance: Decimal


@dataclass
class SavingsAnalysis:
    """Comparison of a schedule with and without part payments."""

    original_total_interest: Decimal
    reduced_total_interest: Decimal
    interest_saved: Decimal
    original_tenure_months: int
    reduced_tenure_months: int
    months_saved: int
    original_end_date: MonthYear
    reduced_end_date: MonthYear

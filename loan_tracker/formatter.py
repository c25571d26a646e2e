"""Output helpers for the loan tracker.

This module formats amounts the way Indian loan statements show them
(``₹12,34,567``) and renders schedules, savings and project lists as plain
text tables. We rely only on built-in printing and string formatting.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, Iterable, Sequence

from .data_models import AmortizationRow, LoanRecord, SavingsAnalysis

CURRENCY_SYMBOL = "₹"

MONTH_NAMES = ["Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec"]


def _group_indian(digits: str) -> str:
    """Insert Indian-style separators: last three digits, then pairs."""
    if len(digits) <= 3:
        return digits
    head, tail = digits[:-3], digits[-3:]
    pairs = []
    while len(head) > 2:
        pairs.insert(0, head[-2:])
        head = head[:-2]
    if head:
        pairs.insert(0, head)
    return ",".join(pairs + [tail])


def format_number(value, places: int = 0) -> str:
    """Format a number with Indian digit grouping and ``places`` decimals."""
    amount = Decimal(str(value))
    quantum = Decimal(1).scaleb(-places)
    rounded = amount.quantize(quantum, rounding=ROUND_HALF_UP)
    sign = "-" if rounded < 0 else ""
    text = f"{abs(rounded):.{places}f}"
    whole, _, fraction = text.partition(".")
    grouped = _group_indian(whole)
    return f"{sign}{grouped}.{fraction}" if fraction else f"{sign}{grouped}"


def format_currency(value) -> str:
    """Format an amount in whole rupees, e.g. ``₹9,650``."""
    text = format_number(value)
    if text.startswith("-"):
        return f"-{CURRENCY_SYMBOL}{text[1:]}"
    return f"{CURRENCY_SYMBOL}{text}"


def format_currency_detailed(value) -> str:
    """Format an amount with paise, e.g. ``₹9,650.22``."""
    text = format_number(value, places=2)
    if text.startswith("-"):
        return f"-{CURRENCY_SYMBOL}{text[1:]}"
    return f"{CURRENCY_SYMBOL}{text}"


def format_month_year(month: int, year: int) -> str:
    return f"{MONTH_NAMES[month - 1]} {year}"


def format_percentage(value) -> str:
    return f"{float(value):.2f}%"


def format_tenure(months: int) -> str:
    """Render a month count as years and months, e.g. ``18y 4m``."""
    years, rest = divmod(months, 12)
    if years and rest:
        return f"{years}y {rest}m"
    if years:
        return f"{years}y"
    return f"{rest}m"


def savings_to_dict(savings: SavingsAnalysis) -> Dict[str, object]:
    """Convert a savings analysis into a JSON-serialisable dictionary."""
    return {
        "original_total_interest": float(savings.original_total_interest),
        "reduced_total_interest": float(savings.reduced_total_interest),
        "interest_saved": float(savings.interest_saved),
        "original_tenure_months": savings.original_tenure_months,
        "reduced_tenure_months": savings.reduced_tenure_months,
        "months_saved": savings.months_saved,
        "original_end_date": savings.original_end_date._asdict(),
        "reduced_end_date": savings.reduced_end_date._asdict(),
    }


def row_to_dict(row: AmortizationRow) -> Dict[str, object]:
    """Convert a schedule row into a JSON-serialisable dictionary."""
    return {
        "month_index": row.month_index,
        "month": row.month,
        "year": row.year,
        "opening_balance": float(row.opening_balance),
        "emi": float(row.emi),
        "interest": float(row.interest),
        "principal": float(row.principal),
        "part_payment": float(row.part_payment),
        "closing_balance": float(row.closing_balance),
    }


def print_savings(savings: SavingsAnalysis) -> None:
    """Print the with/without part payment comparison."""
    print("Savings")
    print("-" * 72)
    print(f"Interest without part payments : {format_currency(savings.original_total_interest)}")
    print(f"Interest with part payments    : {format_currency(savings.reduced_total_interest)}")
    print(f"Interest saved                 : {format_currency(savings.interest_saved)}")
    print(
        f"Tenure without part payments   : {format_tenure(savings.original_tenure_months)}"
        f" (ends {format_month_year(*savings.original_end_date)})"
    )
    print(
        f"Tenure with part payments      : {format_tenure(savings.reduced_tenure_months)}"
        f" (ends {format_month_year(*savings.reduced_end_date)})"
    )
    if savings.months_saved:
        print(f"Tenure reduction               : {savings.months_saved} months")
    print("-" * 72)


def print_schedule(rows: Iterable[AmortizationRow]) -> None:
    """Print the amortization schedule as a simple table."""
    headers = ["#", "Month", "Opening", "EMI", "Interest", "Principal", "PartPay", "Closing"]
    print("\t".join(headers))
    for row in rows:
        part_payment = format_number(row.part_payment) if row.part_payment else "-"
        print(
            "\t".join(
                [
                    str(row.month_index + 1),
                    format_month_year(row.month, row.year),
                    format_number(row.opening_balance),
                    format_number(row.emi),
                    format_number(row.interest),
                    format_number(row.principal),
                    part_payment,
                    format_number(row.closing_balance),
                ]
            )
        )


def print_projects(projects: Sequence[LoanRecord], emis: Dict[str, Decimal], paid: Dict[str, int]) -> None:
    """Print one line per project with its EMI and progress."""
    if not projects:
        print("No projects saved.")
        return
    print(f"{'ID':36s}  {'Name':20s} {'Principal':>14s} {'Rate':>7s} {'EMI':>12s} {'Paid':>9s}")
    for project in projects:
        progress = f"{paid[project.id]}/{project.scheduled_months}"
        print(
            f"{project.id:36s}  {project.name[:20]:20s} {format_currency(project.principal):>14s}"
            f" {format_percentage(project.annual_rate):>7s} {format_currency(emis[project.id]):>12s}"
            f" {progress:>9s}"
        )

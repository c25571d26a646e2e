# tests/utils.py
from __future__ import annotations

from decimal import Decimal

from loan_tracker.data_models import LoanRecord


def make_record(**overrides) -> LoanRecord:
    """A 10 lakh, 10%, 20 year loan starting January 2024."""
    fields = dict(
        name="Home loan",
        principal=Decimal("1000000"),
        annual_rate=Decimal("10"),
        tenure_years=20,
        start_month=1,
        start_year=2024,
    )
    fields.update(overrides)
    return LoanRecord(**fields)

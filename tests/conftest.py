# tests/conftest.py
from __future__ import annotations

from decimal import Decimal
from pathlib import Path

import pytest

from loan_tracker.data_models import LoanRecord, PartPayment
from loan_tracker.storage import KeyValueStorage
from loan_tracker.store import init_store
from loan_tracker_web.app import create_app
from tests.utils import make_record


@pytest.fixture
def home_loan() -> LoanRecord:
    return make_record()


@pytest.fixture
def home_loan_with_part_payment() -> LoanRecord:
    # Paid in the 12th month of the schedule; reduces the 13th
    return make_record(part_payments=[PartPayment(month=12, year=2024, amount=Decimal("100000"))])


@pytest.fixture
def zero_rate_loan() -> LoanRecord:
    return make_record(principal=Decimal("500000"), annual_rate=Decimal("0"), tenure_years=5)


@pytest.fixture
def database_url(tmp_path: Path) -> str:
    return f"sqlite:///{tmp_path / 'loans.sqlite3'}"


@pytest.fixture
def storage(database_url: str):
    kv = KeyValueStorage(database_url)
    yield kv
    kv.dispose()


@pytest.fixture
def store(storage):
    return init_store(storage)


@pytest.fixture
def client(store):
    app = create_app(store=store)
    app.config["TESTING"] = True
    return app.test_client()

"""
Unit tests for loan_tracker/transfer.py

Covers:
  - Stored vs export shapes of a project.
  - Envelope validation and all-or-nothing parsing of imports.
  - JSON file round trip.
"""

from __future__ import annotations

import json
from decimal import Decimal
from pathlib import Path

import pytest

from loan_tracker.data_models import PartPayment
from loan_tracker.errors import ImportFormatError, InvalidRecordError
from loan_tracker.transfer import (
    build_export,
    dump_export,
    load_export,
    parse_import,
    record_from_dict,
    record_to_dict,
    validate_record,
)
from tests.utils import make_record


def test_stored_shape_keeps_ids():
    record = make_record(id="p1", created_at=1700000000000, part_payments=[PartPayment(3, 2024, Decimal("5000"), id="pp1")])
    data = record_to_dict(record)

    assert data["id"] == "p1"
    assert data["createdAt"] == 1700000000000
    assert data["partPayments"] == [{"id": "pp1", "month": 3, "year": 2024, "amount": 5000.0}]
    assert "emiOverride" not in data


def test_export_shape_omits_ids_and_timestamps():
    record = make_record(id="p1", created_at=1, emi_override=Decimal("12000"), part_payments=[PartPayment(3, 2024, Decimal("5000"), id="pp1")])
    data = record_to_dict(record, include_ids=False)

    assert "id" not in data
    assert "createdAt" not in data
    assert data["emiOverride"] == 12000.0
    assert data["partPayments"] == [{"month": 3, "year": 2024, "amount": 5000.0}]


def test_pre_emi_fields_are_kept():
    record = make_record(pre_emi_interest=Decimal("4500"), pre_emi_month=11, pre_emi_year=2023)
    restored = record_from_dict(record_to_dict(record))

    assert restored.pre_emi_interest == Decimal("4500")
    assert (restored.pre_emi_month, restored.pre_emi_year) == (11, 2023)


def test_record_round_trip():
    record = make_record(
        id="p1",
        created_at=42,
        annual_rate=Decimal("8.45"),
        emi_override=Decimal("15000"),
        part_payments=[PartPayment(12, 2024, Decimal("100000"), id="a"), PartPayment(6, 2025, Decimal("2500.5"), id="b")],
    )
    assert record_from_dict(record_to_dict(record)) == record


def test_record_from_dict_reports_missing_field():
    data = record_to_dict(make_record())
    del data["tenureYears"]
    with pytest.raises(InvalidRecordError, match="tenureYears"):
        record_from_dict(data)


@pytest.mark.parametrize("value", [2.7, True])
def test_record_from_dict_rejects_non_integral_tenure(value):
    data = dict(record_to_dict(make_record()), tenureYears=value)
    with pytest.raises(InvalidRecordError):
        record_from_dict(data)


@pytest.mark.parametrize(
    "overrides",
    [
        {"principal": Decimal("0")},
        {"annual_rate": Decimal("-1")},
        {"tenure_years": 0},
        {"start_month": 13},
        {"emi_override": Decimal("0")},
        {"pre_emi_month": 0},
        {"part_payments": [PartPayment(3, 2024, Decimal("-5"))]},
        {"part_payments": [PartPayment(0, 2024, Decimal("5"))]},
    ],
)
def test_validate_record_rejects(overrides):
    with pytest.raises(InvalidRecordError):
        validate_record(make_record(**overrides))


def test_validate_record_accepts_zero_rate():
    validate_record(make_record(annual_rate=Decimal("0")))


def test_build_export_envelope():
    data = build_export([make_record(), make_record(name="Car loan")])

    assert data["version"] == 1
    assert [p["name"] for p in data["projects"]] == ["Home loan", "Car loan"]


@pytest.mark.parametrize(
    "payload",
    [
        None,
        [],
        {"projects": []},
        {"version": 2, "projects": []},
        {"version": 1, "projects": {}},
        {"version": 1},
    ],
)
def test_parse_import_rejects_bad_envelopes(payload):
    with pytest.raises(ImportFormatError):
        parse_import(payload)


def test_parse_import_rejects_whole_batch_on_bad_entry():
    good = record_to_dict(make_record(), include_ids=False)
    bad = dict(good, principal=-10)
    with pytest.raises(ImportFormatError, match="Project #2"):
        parse_import({"version": 1, "projects": [good, bad]})


def test_parse_import_rejects_non_object_entry():
    with pytest.raises(ImportFormatError):
        parse_import({"version": 1, "projects": ["nope"]})


def test_parse_import_without_part_payments_key():
    entry = record_to_dict(make_record(), include_ids=False)
    del entry["partPayments"]
    (record,) = parse_import({"version": 1, "projects": [entry]})
    assert record.part_payments == []


def test_export_file_round_trip(tmp_path: Path):
    record = make_record(part_payments=[PartPayment(12, 2024, Decimal("100000"))])
    path = tmp_path / "loans.json"
    dump_export(path, build_export([record]))

    (restored,) = parse_import(load_export(path))
    assert restored.principal == record.principal
    assert restored.annual_rate == record.annual_rate
    assert restored.tenure_years == record.tenure_years
    assert [(pp.month, pp.year, pp.amount) for pp in restored.part_payments] == [(12, 2024, Decimal("100000"))]
    assert json.loads(path.read_text(encoding="utf-8"))["version"] == 1


def test_load_export_rejects_invalid_json(tmp_path: Path):
    path = tmp_path / "broken.json"
    path.write_text("{not json", encoding="utf-8")
    with pytest.raises(ImportFormatError):
        load_export(path)
